"""SNS notifications about build and publish runs."""

import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from pkgrelay.config import ENV_AWS_REGION, ENV_FAILURE_TOPIC, ENV_SUCCESS_TOPIC, get_env_var
from pkgrelay.models import BuildReport, PublishReport

logger = logging.getLogger(__name__)


class NotificationService:
    """Sends run summaries to SNS topics when they are configured."""

    def __init__(self, sns_client=None):
        """Initialize the notification service.

        Args:
            sns_client: Pre-built boto3 SNS client; created on demand otherwise
        """
        self.region = get_env_var(ENV_AWS_REGION, "us-east-1")
        self.success_topic_arn = get_env_var(ENV_SUCCESS_TOPIC)
        self.failure_topic_arn = get_env_var(ENV_FAILURE_TOPIC)

        # Only create SNS client if topics are configured
        self.sns_client = sns_client
        if self.sns_client is None and (self.success_topic_arn or self.failure_topic_arn):
            self.sns_client = boto3.client("sns", region_name=self.region)

    @property
    def enabled(self) -> bool:
        return self.sns_client is not None

    def send_build_report(self, report: BuildReport) -> None:
        """Send a summary of a build run."""
        ok = not report.failed
        subject = (
            f"Package build {report.version}: "
            f"{len(report.succeeded)}/{len(report.results)} targets succeeded"
        )
        lines = [f"Build results for version {report.version}:", ""]
        for result in report.results:
            if result.succeeded:
                lines.append(f"- {result.target}: ok ({result.artifact_path.name})")
            else:
                lines.append(f"- {result.target}: FAILED [{result.category.value if result.category else 'unknown'}] {result.error}")
        lines += ["", f"Output directory: {report.collection.output_dir}"]
        self._publish(ok, subject, "\n".join(lines))

    def send_publish_report(self, report: PublishReport) -> None:
        """Send a summary of a publish run."""
        ok = not any(result.status.is_failure for result in report.results)
        subject = f"Release {report.version} published: {report.commits} commit(s)"
        lines = [f"Downstream results for version {report.version}:", ""]
        for result in report.results:
            detail = f" ({result.detail})" if result.detail and result.status.is_failure else ""
            lines.append(f"- {result.repo}: {result.status.value}{detail}")
        self._publish(ok, subject, "\n".join(lines))

    def send_failure_notification(self, error: Exception, context: str | None = None) -> None:
        """Send a notification for a run that aborted."""
        message = "The release tooling encountered an error:\n\n"
        if context:
            message += f"Context: {context}\n\n"
        message += f"Error Type: {type(error).__name__}\nError Message: {error}\n"
        self._publish(False, "Release tooling run failed", message)

    def _publish(self, success: bool, subject: str, message: str) -> None:
        topic = self.success_topic_arn if success else self.failure_topic_arn
        if not self.sns_client or not topic:
            return

        try:
            # SNS subjects are limited to 100 characters
            self.sns_client.publish(TopicArn=topic, Subject=subject[:100], Message=message)
            logger.info(f"Sent notification to {topic}")
        except (ClientError, BotoCoreError) as e:
            # Log error but don't fail the entire operation
            logger.error(f"Failed to send notification: {e}")
