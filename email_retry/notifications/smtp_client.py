"""SMTP client wrapper used to replay failed emails.

Thin layer over smtplib with TLS/SSL, authentication and connection
cleanup. Errors are translated into SMTPDeliveryError messages whose
wording the failure classifier understands.
"""

import smtplib
import ssl
from email.message import EmailMessage
from typing import Callable, List, Optional

from email_validator import EmailNotValidError, validate_email

from email_retry.config.environment import EnvironmentConfig
from email_retry.logging import get_logger

from .models import SMTPDeliveryError

logger = get_logger(__name__, component="smtp")

IMPLICIT_TLS_PORT = 465


class SMTPClient:
    """Sends EmailMessage objects through a configured SMTP server.

    smtp_factory and smtp_ssl_factory exist so tests can inject mocks
    instead of opening real connections.
    """

    def __init__(
        self,
        env_config: EnvironmentConfig,
        use_tls: bool = True,
        timeout: float = 30,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
    ):
        self.env_config = env_config
        self.use_tls = use_tls
        self.timeout = timeout
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL

    def send(self, message: EmailMessage) -> None:
        """Send a message, always closing the connection afterwards.

        Raises:
            SMTPDeliveryError: If the server rejects the message or cannot be reached
        """
        host = self.env_config.smtp_host
        port = self.env_config.smtp_port
        smtp = None

        try:
            if port == IMPLICIT_TLS_PORT:
                logger.debug(f"Connecting to {host}:{port} with implicit TLS")
                smtp = self.smtp_ssl_factory(
                    host, port, timeout=self.timeout, context=ssl.create_default_context()
                )
            else:
                logger.debug(f"Connecting to {host}:{port}")
                smtp = self.smtp_factory(host, port, timeout=self.timeout)
                if self.use_tls:
                    smtp.starttls(context=ssl.create_default_context())

            if self.env_config.has_smtp_auth:
                smtp.login(self.env_config.smtp_user, self.env_config.smtp_pass)

            smtp.send_message(message)
            logger.debug(
                f"Message accepted for {message['To']}",
                extra={"event": "smtp.send.accepted"},
            )

        except smtplib.SMTPRecipientsRefused as e:
            raise SMTPDeliveryError(
                f"Recipient rejected: {_describe_refused(e.recipients)}",
                smtp_code=_first_code(e.recipients),
            ) from e
        except smtplib.SMTPAuthenticationError as e:
            raise SMTPDeliveryError(
                f"Unauthorized: SMTP authentication failed ({e.smtp_code})",
                smtp_code=e.smtp_code,
            ) from e
        except smtplib.SMTPResponseException as e:
            raise SMTPDeliveryError(_describe_response(e.smtp_code, e.smtp_error), smtp_code=e.smtp_code) from e
        except smtplib.SMTPServerDisconnected as e:
            raise SMTPDeliveryError(f"Connection reset by SMTP server: {e}") from e
        except smtplib.SMTPException as e:
            raise SMTPDeliveryError(f"SMTP error during message delivery: {e}") from e
        except TimeoutError as e:
            raise SMTPDeliveryError(f"Timeout connecting to {host}:{port}") from e
        except OSError as e:
            raise SMTPDeliveryError(f"Network error during SMTP connection: {e}") from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning(
                        f"Error closing SMTP connection: {e}",
                        extra={"event": "smtp.close.error"},
                    )


def _decode(value) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _describe_response(code: int, error) -> str:
    # 5xx replies are final and 4xx replies ask the client to come back later
    reply = f"SMTP error {code}: {_decode(error)}"
    if 500 <= code < 600:
        return f"Recipient rejected: {reply}"
    if 400 <= code < 500:
        return f"Service temporarily unavailable: {reply}"
    return reply


def _describe_refused(recipients) -> str:
    return ", ".join(
        f"{address} ({code} {_decode(reason)})" for address, (code, reason) in recipients.items()
    )


def _first_code(recipients) -> Optional[int]:
    for code, _reason in recipients.values():
        return code
    return None


def parse_recipients(recipient_string: str) -> List[str]:
    """Parse and validate comma-separated email addresses.

    Raises:
        ValueError: If any address is invalid or none are given. The message
            starts with "Invalid email" so the failure classifies as permanent.
    """
    recipients = []

    for email in (part.strip() for part in (recipient_string or "").split(",")):
        if not email:
            continue
        try:
            validated = validate_email(email, check_deliverability=False)
        except EmailNotValidError as e:
            raise ValueError(f"Invalid email address '{email}': {e}") from e
        recipients.append(validated.normalized)

    if not recipients:
        raise ValueError("Invalid email: no recipient address")

    return recipients


def build_sender_address(env_config: EnvironmentConfig, sender_email: Optional[str] = None) -> str:
    """Build the From header, e.g. "Email Retry Engine <noreply@example.com>".

    Prefers an explicit sender_email, then SMTP_USER, then noreply@<smtp host>.
    """
    address = sender_email or env_config.smtp_user or f"noreply@{env_config.smtp_host}"
    return f"{env_config.smtp_sender_name} <{address}>"
