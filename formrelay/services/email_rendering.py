"""Email content rendering with Jinja2.

Default bodies live in ``formrelay/templates``. Tenant-supplied confirmation
templates are rendered in a sandbox; a template that fails to render falls
back to the default body.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
from jinja2 import Environment, FileSystemLoader, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from formrelay.domain.analytics import META_KEY, strip_meta

logger = structlog.get_logger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


@dataclass(frozen=True)
class RenderedEmail:
    from_email: str
    subject: str
    html: str
    reply_to: str | None


class EmailRenderer:
    """Builds confirmation and developer-notice emails."""

    def __init__(self, default_from_email: str, default_reply_to: str | None = None) -> None:
        self.default_from_email = default_from_email
        self.default_reply_to = default_reply_to
        self.env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=True,
        )
        self.sandbox = SandboxedEnvironment(autoescape=True)

    def _render_custom(self, template: str, context: dict[str, Any]) -> str | None:
        try:
            return self.sandbox.from_string(template).render(**context)
        except TemplateError as exc:
            logger.warning("custom_template_render_failed", error=str(exc))
            return None

    def confirmation(self, form_name: str, data: dict[str, Any], email_settings) -> RenderedEmail:
        """Confirmation email for the submitter, falling back to system defaults per field."""
        fields = strip_meta(data)
        context = {"form_name": form_name, "fields": fields, "submission": fields}

        html = None
        template = getattr(email_settings, "template", None)
        if template:
            html = self._render_custom(template, context)
        if html is None:
            html = self.env.get_template("submission_confirmation.html").render(**context)

        return RenderedEmail(
            from_email=getattr(email_settings, "from_email", None) or self.default_from_email,
            subject=getattr(email_settings, "subject", None) or f"Confirmation: {form_name} Submission",
            html=html,
            reply_to=getattr(email_settings, "reply_to", None) or self.default_reply_to,
        )

    def developer_notice(
        self,
        form_name: str,
        submission_id: str,
        data: dict[str, Any],
        reply_to: str | None = None,
    ) -> RenderedEmail:
        html = self.env.get_template("developer_notification.html").render(
            form_name=form_name,
            submission_id=submission_id,
            fields=strip_meta(data),
            meta=data.get(META_KEY) or {},
        )
        return RenderedEmail(
            from_email=self.default_from_email,
            subject=f"New submission: {form_name}",
            html=html,
            reply_to=reply_to or self.default_reply_to,
        )
