"""
Tests for email notifications.
"""

import smtplib
from unittest.mock import MagicMock, patch

import pytest

from profile_migration.models.config import NotificationConfig
from profile_migration.models.session import JobRun, MigrationSession
from profile_migration.notifications.mailer import EmailNotifier

from conftest import FAILED


@pytest.fixture
def notification_config():
    return NotificationConfig(
        smtp_server="smtp.corp.example.com",
        sender="profile-migration@corp.example.com",
        recipients=["desktop-support@corp.example.com", "lead@corp.example.com"],
    )


@pytest.fixture
def mock_smtp():
    with patch('profile_migration.notifications.mailer.smtplib.SMTP') as smtp_class:
        smtp = MagicMock()
        smtp_class.return_value.__enter__.return_value = smtp
        yield smtp_class, smtp


@pytest.fixture
def job_run():
    run = JobRun(job_name="Capture User State", host="OLD-PC01", package_id="PS100045", collection_id="PS100123")
    run.failures = 1
    return run


class TestEmailNotifier:
    """Test EmailNotifier delivery."""

    def test_build_message(self, notification_config):
        message = EmailNotifier(notification_config).build_message("Subject line", "Body text")

        assert message["From"] == "profile-migration@corp.example.com"
        assert message["To"] == "desktop-support@corp.example.com, lead@corp.example.com"
        assert message["Subject"] == "[Profile Migration] Subject line"
        assert "Body text" in message.get_content()

    @pytest.mark.asyncio
    async def test_send(self, notification_config, mock_smtp):
        smtp_class, smtp = mock_smtp

        sent = await EmailNotifier(notification_config).send("Hello", "World")

        assert sent is True
        smtp_class.assert_called_once_with("smtp.corp.example.com", 25, timeout=30.0)
        smtp.send_message.assert_called_once()
        smtp.starttls.assert_not_called()
        smtp.login.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_with_tls_and_login(self, mock_smtp):
        _, smtp = mock_smtp
        config = NotificationConfig(
            smtp_server="smtp.office365.com",
            smtp_port=587,
            recipients=["desktop-support@corp.example.com"],
            use_tls=True,
            username="relay@corp.example.com",
            password="relay-pass",
        )

        await EmailNotifier(config).send("Hello", "World")

        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("relay@corp.example.com", "relay-pass")

    @pytest.mark.asyncio
    async def test_delivery_failure_is_not_raised(self, notification_config, mock_smtp):
        _, smtp = mock_smtp
        smtp.send_message.side_effect = smtplib.SMTPRecipientsRefused({})

        sent = await EmailNotifier(notification_config).send("Hello", "World")

        assert sent is False

    @pytest.mark.asyncio
    async def test_unreachable_relay_is_not_raised(self, notification_config, mock_smtp):
        smtp_class, _ = mock_smtp
        smtp_class.side_effect = ConnectionRefusedError("refused")

        assert await EmailNotifier(notification_config).send("Hello", "World") is False

    @pytest.mark.asyncio
    async def test_disabled(self, mock_smtp):
        smtp_class, _ = mock_smtp
        config = NotificationConfig(enabled=False)

        assert await EmailNotifier(config).send("Hello", "World") is False
        smtp_class.assert_not_called()


class TestNotificationContent:
    """Test the notification messages."""

    @pytest.mark.asyncio
    async def test_job_failed(self, notification_config, job_run):
        notifier = EmailNotifier(notification_config)

        with patch.object(notifier, 'send', return_value=True) as mock_send:
            await notifier.job_failed(job_run, FAILED)

        subject, body = mock_send.call_args.args
        assert subject == "Capture User State failed on OLD-PC01"
        assert "PS100045" in body
        assert "exit code 26" in body
        assert "retried" in body

    @pytest.mark.asyncio
    async def test_final_job_failure(self, notification_config, job_run):
        notifier = EmailNotifier(notification_config)

        with patch.object(notifier, 'send', return_value=True) as mock_send:
            await notifier.job_failed(job_run, FAILED, final=True)

        _, body = mock_send.call_args.args
        assert "No retry attempts are left" in body
        assert "retried" not in body

    @pytest.mark.asyncio
    async def test_migration_completed(self, notification_config):
        notifier = EmailNotifier(notification_config)
        session = MigrationSession(id="s1", source_name="OLD-PC01", target_name="NEW-PC07")
        session.start()
        session.complete()

        with patch.object(notifier, 'send', return_value=True) as mock_send:
            await notifier.migration_completed(session)

        subject, body = mock_send.call_args.args
        assert subject == "Profile migration OLD-PC01 -> NEW-PC07 completed"
        assert "Session: s1" in body

    @pytest.mark.asyncio
    async def test_migration_failed(self, notification_config):
        notifier = EmailNotifier(notification_config)
        session = MigrationSession(id="s1", source_name="OLD-PC01", target_name="NEW-PC07", current_step="restore")

        with patch.object(notifier, 'send', return_value=True) as mock_send:
            await notifier.migration_failed(session, "Restore User State failed on NEW-PC07 3 time(s)")

        subject, body = mock_send.call_args.args
        assert subject.endswith("failed")
        assert "Step: restore" in body
        assert "3 time(s)" in body
