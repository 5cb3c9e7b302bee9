"""Configuration and logging setup for pkgrelay."""

import json
import logging
import os
import sys
import time
from datetime import UTC, datetime

# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                entry[key] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: str | None = None, json_logs: bool = False) -> None:
    """Set up logging for the command-line tools.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to LOG_LEVEL or INFO.
        json_logs: Emit one JSON document per line instead of plain text.
    """
    log_level = level or os.getenv(ENV_LOG_LEVEL, "INFO")

    handler = logging.StreamHandler(sys.stderr)
    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    # Configure root logger
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        handlers=[handler],
        force=True,
    )

    # Reduce noise from HTTP and AWS libraries
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("github").setLevel(logging.WARNING)


class OperationLogger:
    """Logs the start, completion and failure of pipeline phases."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("pkgrelay.operations")
        self._started: dict[str, float] = {}

    def start_operation(self, operation: str, **fields) -> None:
        self._started[operation] = time.monotonic()
        self.logger.info(
            f"Starting {operation}",
            extra={"operation": operation, "phase": "start", **fields},
        )

    def complete_operation(self, operation: str, success: bool = True, **fields) -> None:
        started = self._started.pop(operation, None)
        duration_ms = (
            int((time.monotonic() - started) * 1000) if started is not None else None
        )
        level = logging.INFO if success else logging.WARNING
        self.logger.log(
            level,
            f"{'Completed' if success else 'Failed'} {operation}",
            extra={
                "operation": operation,
                "phase": "complete",
                "success": success,
                "duration_ms": duration_ms,
                **fields,
            },
        )

    def log_error(self, operation: str, error: Exception, **fields) -> None:
        self.logger.error(
            f"Error in {operation}: {error}",
            extra={
                "operation": operation,
                "phase": "error",
                "error_type": type(error).__name__,
                **fields,
            },
        )


def get_env_var(name: str, default: str | None = None, required: bool = False) -> str:
    """Get environment variable with optional default and validation.

    Args:
        name: Environment variable name
        default: Default value if not set
        required: Whether the variable is required

    Returns:
        Environment variable value

    Raises:
        ValueError: If required variable is not set
    """
    value = os.getenv(name, default)

    if required and not value:
        raise ValueError(f"Required environment variable {name} is not set")

    return value or ""


# Environment variable names
ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_GITHUB_TOKEN = "GITHUB_TOKEN"
ENV_EXIT_POLICY = "PKGRELAY_EXIT_POLICY"
ENV_COMMAND_TIMEOUT = "PKGRELAY_COMMAND_TIMEOUT"
ENV_CONFIG_DIR = "PKGRELAY_CONFIG_DIR"
ENV_ABUILD_PRIVKEY = "ABUILD_PRIVKEY"
ENV_AWS_REGION = "AWS_REGION"
ENV_SUCCESS_TOPIC = "SUCCESS_SNS_TOPIC"
ENV_FAILURE_TOPIC = "FAILURE_SNS_TOPIC"
