"""
Email notifications for migration runs.

Notifications are fire-and-forget: a delivery problem is logged and the
migration carries on. There is no retry of the notification itself.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from profile_migration.models.config import NotificationConfig
from profile_migration.models.session import DeploymentStatus, JobRun, MigrationSession
from profile_migration.utils.helpers import format_duration

logger = logging.getLogger(__name__)


class EmailNotifier:
    """Sends notification emails through an SMTP relay."""

    def __init__(self, config: NotificationConfig):
        self.config = config

    def build_message(self, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.config.sender
        message["To"] = ", ".join(self.config.recipients)
        message["Subject"] = f"{self.config.subject_prefix} {subject}".strip()
        message.set_content(body)
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.config.smtp_server, self.config.smtp_port, timeout=self.config.timeout) as smtp:
            if self.config.use_tls:
                smtp.starttls()
            if self.config.username:
                smtp.login(self.config.username, self.config.password or "")
            smtp.send_message(message)

    async def send(self, subject: str, body: str) -> bool:
        """
        Send a notification email.

        Returns:
            True if the relay accepted the message, False otherwise
        """
        if not self.config.enabled:
            logger.info(f"Notifications disabled, not sending: {subject}")
            return False

        message = self.build_message(subject, body)
        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"Could not send notification '{subject}': {e}")
            return False

        logger.info(f"Notification sent: {subject}")
        return True

    async def job_failed(self, run: JobRun, status: Optional[DeploymentStatus] = None, final: bool = False) -> bool:
        """
        Notify that a job reported failure on its host.

        ``final`` marks the failure that used up the last retry attempt.
        """
        subject = f"{run.job_name} failed on {run.host}"
        lines = [
            f"The {run.job_name} job reported a failure on {run.host}.",
            "",
            f"Package: {run.package_id}",
            f"Collection: {run.collection_id}",
            f"Failure count: {run.failures}",
        ]
        if status is not None and status.description:
            lines.append(f"Status: {status.description}")
        if final:
            lines += ["", "No retry attempts are left. The migration has stopped."]
        else:
            lines += ["", "The job state will be reset and the job retried once the host is reachable."]
        return await self.send(subject, "\n".join(lines))

    async def migration_completed(self, session: MigrationSession) -> bool:
        """Notify that the whole migration finished."""
        subject = f"Profile migration {session.source_name} -> {session.target_name} completed"
        lines = [
            f"User profiles were captured from {session.source_name} and restored to {session.target_name}.",
            "",
            f"Session: {session.id}",
        ]
        if session.duration is not None:
            lines.append(f"Duration: {format_duration(session.duration)}")
        return await self.send(subject, "\n".join(lines))

    async def migration_failed(self, session: MigrationSession, error: str) -> bool:
        """Notify that the migration stopped with an error."""
        subject = f"Profile migration {session.source_name} -> {session.target_name} failed"
        body = "\n".join([
            f"The profile migration from {session.source_name} to {session.target_name} stopped.",
            "",
            f"Session: {session.id}",
            f"Step: {session.current_step or 'unknown'}",
            f"Error: {error}",
        ])
        return await self.send(subject, body)
