"""Replays a failed email through SMTP on behalf of the retry engine."""

import logging
from email.message import EmailMessage
from typing import Optional

from email_retry.config.environment import EnvironmentConfig
from email_retry.config.models import EmailConfig
from email_retry.domain.models import FailureRecord
from email_retry.logging import get_logger
from email_retry.retry.models import AttemptSend, SendResult
from email_retry.utils.timestamps import format_timestamp

from .models import SMTPDeliveryError
from .smtp_client import SMTPClient, build_sender_address, parse_recipients
from .templates import TemplateRenderer

logger = get_logger(__name__, component="notification")


class ReplaySender:
    """Builds the send operation handed to RetryEngine for one record.

    Example:
        >>> sender = ReplaySender(env_config, email_config)
        >>> coordinator.retry_all(sender.build_attempt_send)
    """

    def __init__(
        self,
        env_config: EnvironmentConfig,
        email_config: Optional[EmailConfig] = None,
        smtp_client: Optional[SMTPClient] = None,
        template_renderer: Optional[TemplateRenderer] = None,
        logger_instance: Optional[logging.Logger] = None,
    ):
        self.env_config = env_config
        self.email_config = email_config or EmailConfig()
        self.smtp_client = smtp_client or SMTPClient(
            env_config,
            use_tls=self.email_config.use_tls,
            timeout=self.email_config.timeout_seconds,
        )
        self.template_renderer = template_renderer or TemplateRenderer()
        self.logger = logger_instance or logger

    def build_message(self, record: FailureRecord) -> EmailMessage:
        """Render the replay email for a failure record.

        Raises:
            ValueError: If the stored recipient is not a valid address
            NotificationTemplateError: If rendering fails
        """
        recipients = parse_recipients(record.recipient)
        rendered = self.template_renderer.render(
            {
                "failure_id": record.id,
                "email_type": record.email_type.value,
                "subject": record.subject,
                "recipient": record.recipient,
                "created_at": format_timestamp(record.created_at),
            }
        )

        message = EmailMessage()
        message["Subject"] = rendered["subject"]
        message["From"] = build_sender_address(self.env_config, self.email_config.sender_email)
        message["To"] = ", ".join(recipients)
        message.set_content(rendered["text_body"])
        message.add_alternative(rendered["html_body"], subtype="html")
        return message

    def send(self, record: FailureRecord) -> SendResult:
        """Render and deliver once, reporting the outcome instead of raising.

        Raises:
            NotificationTemplateError: If rendering fails
        """
        try:
            message = self.build_message(record)
        except ValueError as e:
            return SendResult.failed(str(e))
        return self._deliver(record, message)

    def _deliver(self, record: FailureRecord, message: EmailMessage) -> SendResult:
        try:
            self.smtp_client.send(message)
        except SMTPDeliveryError as e:
            self.logger.warning(
                f"Replay of {record.id} rejected: {e}",
                extra={"event": "notification.send.failure", "smtp_code": e.smtp_code},
            )
            return SendResult.failed(str(e))

        self.logger.info(
            f"Replayed {record.email_type.value} email to {record.recipient}",
            extra={"event": "notification.send.success"},
        )
        return SendResult.ok()

    def build_attempt_send(self, record: FailureRecord) -> AttemptSend:
        """Factory passed to BatchRetryCoordinator.retry_all.

        The message is rendered here, before the engine sees the record, so a
        NotificationTemplateError reaches the caller and the record keeps its
        retry budget. An invalid stored recipient still becomes a failed
        attempt, since that error is recorded and then classified permanent.

        Raises:
            NotificationTemplateError: If rendering fails
        """
        try:
            message = self.build_message(record)
        except ValueError as e:
            error = str(e)

            def attempt_send() -> SendResult:
                return SendResult.failed(error)

            return attempt_send

        def attempt_send() -> SendResult:
            return self._deliver(record, message)

        return attempt_send
