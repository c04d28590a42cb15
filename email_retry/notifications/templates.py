"""Jinja2 rendering for replayed emails.

StrictUndefined makes a missing variable fail loudly instead of silently
producing an empty subject or body.
"""

from typing import Any, Dict, Optional

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError, select_autoescape

from email_retry.logging import get_logger

from .models import NotificationTemplateError

logger = get_logger(__name__, component="notification")


class TemplateRenderer:
    """Renders the subject, HTML and plain-text parts of a replayed email.

    Templates live in the email_retry.notifications.email_templates
    package directory and are cached by the Jinja2 environment.
    """

    def __init__(
        self,
        template_dir: str = "email_templates",
        subject_template: str = "replay_subject.j2",
        html_template: str = "replay_body.html.j2",
        text_template: str = "replay_body.txt.j2",
        environment: Optional[Environment] = None,
    ):
        self.subject_template_name = subject_template
        self.html_template_name = html_template
        self.text_template_name = text_template

        self.env = environment or Environment(
            loader=PackageLoader("email_retry.notifications", template_dir),
            # Only the HTML part is escaped; subject and text body stay literal
            autoescape=select_autoescape(enabled_extensions=("html.j2",), default=False),
            undefined=StrictUndefined,
        )

    def render(self, context: Dict[str, Any]) -> Dict[str, str]:
        """Render all three templates.

        Returns:
            Dictionary with "subject" (single line), "html_body" and "text_body"

        Raises:
            NotificationTemplateError: If a template is missing or references
                an undefined variable
        """
        try:
            subject = self.env.get_template(self.subject_template_name).render(context)
            html_body = self.env.get_template(self.html_template_name).render(context)
            text_body = self.env.get_template(self.text_template_name).render(context)
        except TemplateError as e:
            logger.error(
                f"Template rendering failed: {e}",
                extra={"event": "notification.template.error"},
            )
            raise NotificationTemplateError(f"Template rendering failed: {e}") from e

        return {
            "subject": " ".join(subject.split()),
            "html_body": html_body,
            "text_body": text_body,
        }
