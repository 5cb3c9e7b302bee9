"""Unit tests for notification_service module."""

from pathlib import Path
from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import ClientError

from pkgrelay.models import (
    BuildReport,
    BuildResult,
    CollectionReport,
    FailureCategory,
    PublishReport,
    PublishResult,
    PublishStatus,
    RepoState,
)
from pkgrelay.notification_service import NotificationService

SUCCESS_TOPIC = "arn:aws:sns:us-east-1:123456789012:releases"
FAILURE_TOPIC = "arn:aws:sns:us-east-1:123456789012:release-failures"


@pytest.fixture
def topics(monkeypatch):
    monkeypatch.setenv("SUCCESS_SNS_TOPIC", SUCCESS_TOPIC)
    monkeypatch.setenv("FAILURE_SNS_TOPIC", FAILURE_TOPIC)


@pytest.fixture
def no_topics(monkeypatch):
    monkeypatch.delenv("SUCCESS_SNS_TOPIC", raising=False)
    monkeypatch.delenv("FAILURE_SNS_TOPIC", raising=False)


def build_report(failed: bool) -> BuildReport:
    results = [BuildResult("deb", "1.2.3", artifact_path=Path("/out/batdoc_1.2.3-1_amd64.deb"))]
    if failed:
        results.append(
            BuildResult("arch", "1.2.3", error="makepkg exited 1", category=FailureCategory.PACKAGING)
        )
    return BuildReport("1.2.3", results, CollectionReport(Path("/out")))


def test_disabled_without_topics(no_topics):
    with patch("pkgrelay.notification_service.boto3") as boto3:
        service = NotificationService()
    boto3.client.assert_not_called()
    assert not service.enabled
    # Sending is a no-op
    service.send_build_report(build_report(failed=False))


def test_successful_build_goes_to_success_topic(topics):
    sns = Mock()
    NotificationService(sns_client=sns).send_build_report(build_report(failed=False))

    kwargs = sns.publish.call_args.kwargs
    assert kwargs["TopicArn"] == SUCCESS_TOPIC
    assert kwargs["Subject"] == "Package build 1.2.3: 1/1 targets succeeded"
    assert "- deb: ok (batdoc_1.2.3-1_amd64.deb)" in kwargs["Message"]


def test_partial_build_goes_to_failure_topic(topics):
    sns = Mock()
    NotificationService(sns_client=sns).send_build_report(build_report(failed=True))

    kwargs = sns.publish.call_args.kwargs
    assert kwargs["TopicArn"] == FAILURE_TOPIC
    assert "- arch: FAILED [packaging] makepkg exited 1" in kwargs["Message"]


def test_publish_report(topics):
    sns = Mock()
    report = PublishReport(
        "1.2.3",
        [
            PublishResult("batdoc", PublishStatus.PUSHED, RepoState.PUSHED, commit="abc123"),
            PublishResult("homebrew-tap", PublishStatus.SKIPPED_NO_CREDS, RepoState.CLONE_FAILED),
        ],
    )
    NotificationService(sns_client=sns).send_publish_report(report)

    kwargs = sns.publish.call_args.kwargs
    assert kwargs["TopicArn"] == SUCCESS_TOPIC
    assert kwargs["Subject"] == "Release 1.2.3 published: 1 commit(s)"
    assert "- homebrew-tap: skipped-no-creds" in kwargs["Message"]


def test_failure_notification_truncates_subject(topics):
    sns = Mock()
    NotificationService(sns_client=sns).send_failure_notification(
        RuntimeError("x" * 200), context="release check"
    )
    kwargs = sns.publish.call_args.kwargs
    assert kwargs["TopicArn"] == FAILURE_TOPIC
    assert len(kwargs["Subject"]) <= 100
    assert "Context: release check" in kwargs["Message"]
    assert "Error Type: RuntimeError" in kwargs["Message"]


def test_sns_errors_are_logged_not_raised(topics, caplog):
    sns = Mock()
    sns.publish.side_effect = ClientError(
        {"Error": {"Code": "AuthorizationError", "Message": "denied"}}, "Publish"
    )
    NotificationService(sns_client=sns).send_build_report(build_report(failed=False))
    assert "Failed to send notification" in caplog.text
