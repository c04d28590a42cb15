"""Exceptions raised while replaying a failed email."""

from typing import Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when template rendering fails due to configuration or missing variables."""

    pass


class SMTPDeliveryError(NotificationError):
    """Raised when the SMTP server refuses or cannot receive a message.

    The message text is what ends up in FailureRecord.error_message, so it
    keeps wording the failure classifier recognises ("recipient rejected" for
    5xx replies, "temporarily unavailable" for 4xx replies, "unauthorized",
    "timeout", "network error").
    """

    def __init__(self, message: str, smtp_code: Optional[int] = None):
        super().__init__(message)
        self.smtp_code = smtp_code
