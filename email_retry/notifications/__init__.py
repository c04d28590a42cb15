"""Email replay for failed deliveries.

- ReplaySender: builds the send operation the retry engine invokes
- TemplateRenderer: Jinja2 rendering of the replayed message
- SMTPClient: smtplib wrapper with TLS/SSL support
"""

from .models import NotificationError, NotificationTemplateError, SMTPDeliveryError
from .sender import ReplaySender
from .smtp_client import SMTPClient, build_sender_address, parse_recipients
from .templates import TemplateRenderer

__all__ = [
    "ReplaySender",
    # Exceptions
    "NotificationError",
    "NotificationTemplateError",
    "SMTPDeliveryError",
    # Components
    "TemplateRenderer",
    "SMTPClient",
    # Utilities
    "build_sender_address",
    "parse_recipients",
]
