"""Unit tests for replay email template rendering.

Tests the TemplateRenderer for:
- Subject, HTML, and text template rendering
- HTML auto-escaping
- Strict undefined variable detection
- Missing template handling
"""

import pytest
from jinja2 import DictLoader, Environment, StrictUndefined

from email_retry.notifications.models import NotificationTemplateError
from email_retry.notifications.templates import TemplateRenderer


@pytest.fixture
def sample_context():
    """Sample template context with all required fields."""
    return {
        "failure_id": "3f2e1d9c",
        "email_type": "disclosure",
        "subject": "Your secret has been disclosed",
        "recipient": "user@example.com",
        "created_at": "2025-11-04T11:00:00Z",
    }


@pytest.fixture
def renderer():
    return TemplateRenderer()


class TestPackagedTemplates:
    def test_render_returns_all_parts(self, renderer, sample_context):
        rendered = renderer.render(sample_context)

        assert set(rendered) == {"subject", "html_body", "text_body"}
        assert rendered["subject"] == "Your secret has been disclosed"

    def test_bodies_reference_original_message(self, renderer, sample_context):
        rendered = renderer.render(sample_context)

        for body in (rendered["html_body"], rendered["text_body"]):
            assert "Your secret has been disclosed" in body
            assert "2025-11-04T11:00:00Z" in body
            assert "Reference: 3f2e1d9c" in body

    @pytest.mark.parametrize(
        "email_type, phrase",
        [
            ("disclosure", "disclosure information"),
            ("verification", "already verified"),
            ("reminder", "reminder you were scheduled"),
        ],
    )
    def test_type_specific_paragraph(self, renderer, sample_context, email_type, phrase):
        sample_context["email_type"] = email_type

        rendered = renderer.render(sample_context)

        assert phrase in rendered["text_body"]
        assert phrase in rendered["html_body"]

    def test_admin_notification_has_no_extra_paragraph(self, renderer, sample_context):
        sample_context["email_type"] = "admin_notification"

        text_body = renderer.render(sample_context)["text_body"]

        assert "disclosure information" not in text_body
        assert "already verified" not in text_body
        assert "reminder you were scheduled" not in text_body

    def test_html_is_escaped(self, renderer, sample_context):
        sample_context["subject"] = "<script>alert(1)</script>"

        rendered = renderer.render(sample_context)

        assert "<script>" not in rendered["html_body"]
        assert "&lt;script&gt;" in rendered["html_body"]

    def test_text_parts_are_not_escaped(self, renderer, sample_context):
        sample_context["subject"] = "Q&A <session>"

        rendered = renderer.render(sample_context)

        assert rendered["subject"] == "Q&A <session>"
        assert "Q&A <session>" in rendered["text_body"]
        assert "Q&amp;A &lt;session&gt;" in rendered["html_body"]

    def test_subject_is_collapsed_to_one_line(self, renderer, sample_context):
        sample_context["subject"] = "  Check-in\n  required  "

        assert renderer.render(sample_context)["subject"] == "Check-in required"

    def test_missing_variable_raises(self, renderer, sample_context):
        del sample_context["failure_id"]

        with pytest.raises(NotificationTemplateError, match="Template rendering failed"):
            renderer.render(sample_context)


class TestCustomEnvironment:
    def make_environment(self, templates):
        return Environment(loader=DictLoader(templates), autoescape=True, undefined=StrictUndefined)

    def test_custom_templates(self):
        env = self.make_environment(
            {
                "replay_subject.j2": "[Retry] {{ subject }}",
                "replay_body.html.j2": "<p>{{ subject }}</p>",
                "replay_body.txt.j2": "{{ subject }}",
            }
        )

        rendered = TemplateRenderer(environment=env).render({"subject": "Hi"})

        assert rendered == {"subject": "[Retry] Hi", "html_body": "<p>Hi</p>", "text_body": "Hi"}

    def test_missing_template_raises(self):
        env = self.make_environment({"replay_subject.j2": "{{ subject }}"})

        with pytest.raises(NotificationTemplateError):
            TemplateRenderer(environment=env).render({"subject": "Hi"})
