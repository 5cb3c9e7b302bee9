"""Property-based test for logging completeness."""

import json
import logging
from io import StringIO
from unittest.mock import patch

from hypothesis import given
from hypothesis import strategies as st

from pkgrelay.config import OperationLogger, setup_logging


@given(
    operation_name=st.text(
        min_size=1,
        max_size=50,
        alphabet="abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-",
    ),
    success=st.booleans(),
    files_count=st.integers(min_value=0, max_value=100),
    error_message=st.text(max_size=100),
)
def test_logging_completeness_property(operation_name, success, files_count, error_message):
    """Property test: every pipeline phase logs a start and a completion as structured JSON.

    Each entry carries timestamp, level, logger and message plus the
    operation fields passed by the caller.
    """
    log_stream = StringIO()

    with patch("sys.stderr", log_stream):
        setup_logging("INFO", json_logs=True)
        operations = OperationLogger()

        operations.start_operation(operation_name, files=files_count)
        if not success:
            operations.log_error(operation_name, ValueError(error_message))
        operations.complete_operation(operation_name, success=success, files=files_count)

    logging.getLogger().handlers.clear()

    log_lines = [line for line in log_stream.getvalue().splitlines() if line.strip()]
    parsed_logs = []
    for line in log_lines:
        try:
            parsed_logs.append(json.loads(line))
        except json.JSONDecodeError as e:
            # All log entries should be valid JSON
            raise AssertionError(f"Invalid JSON log entry: {line}") from e

    assert len(parsed_logs) == (2 if success else 3)

    for log_entry in parsed_logs:
        for field in ("timestamp", "level", "logger", "message"):
            assert field in log_entry, f"Missing required field '{field}' in log entry: {log_entry}"
        # ISO 8601 in UTC
        assert "T" in log_entry["timestamp"]
        assert log_entry["timestamp"].endswith("+00:00")
        assert log_entry["operation"] == operation_name

    start_log = parsed_logs[0]
    assert start_log["phase"] == "start"
    assert start_log["level"] == "INFO"
    assert start_log["files"] == files_count

    completion_log = parsed_logs[-1]
    assert completion_log["phase"] == "complete"
    assert completion_log["success"] == success
    assert completion_log["level"] == ("INFO" if success else "WARNING")
    assert isinstance(completion_log["duration_ms"], int)
    assert completion_log["duration_ms"] >= 0

    if not success:
        error_log = parsed_logs[1]
        assert error_log["level"] == "ERROR"
        assert error_log["phase"] == "error"
        assert error_log["error_type"] == "ValueError"


def test_plain_text_logging_by_default():
    log_stream = StringIO()
    with patch("sys.stderr", log_stream):
        setup_logging("DEBUG")
        logging.getLogger("pkgrelay.test").debug("hello")
    logging.getLogger().handlers.clear()

    assert " - pkgrelay.test - DEBUG - hello" in log_stream.getvalue()


def test_log_level_from_environment(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    setup_logging()
    try:
        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger("botocore").level == logging.WARNING
    finally:
        logging.getLogger().handlers.clear()
