from __future__ import annotations

from typing import Protocol

import structlog
import httpx
from jinja2 import Template
from pydantic import BaseModel

from monithq.config import CONFIG_DIR, get_settings
from monithq.models.schemas import Incident, Site

logger = structlog.get_logger()

RESEND_URL = "https://api.resend.com/emails"

SUBJECTS = {
    "incident_created": lambda incident, site: f"🚨 Incident Alert: {site.name} is {incident.status.lower()}",
    "incident_resolved": lambda incident, site: f"✅ Resolved: {site.name} incident resolved",
}


class EmailResult(BaseModel):
    success: bool
    message: str | None = None


class EmailSender(Protocol):
    async def send_email(self, to: str, template: str, incident: Incident, site: Site) -> EmailResult: ...


def load_template(name: str) -> Template:
    """Load an email template from config/templates/{name}.html."""
    path = CONFIG_DIR / "templates" / f"{name}.html"
    return Template(path.read_text(), autoescape=True)


def render_email(template: str, incident: Incident, site: Site) -> tuple[str, str]:
    """Return (subject, html) for a notification template."""
    if template not in SUBJECTS:
        raise ValueError(f"Unknown email template: {template}")

    duration_minutes = round(incident.duration_ms / 60000) if incident.duration_ms is not None else None
    html = load_template(template).render(
        incident=incident,
        site=site,
        duration_minutes=duration_minutes,
        app_url=get_settings().app_url.rstrip("/"),
    )
    return SUBJECTS[template](incident, site), html


class ResendEmailSender:
    """Delivers templated notification emails through the Resend HTTP API."""

    async def send_email(self, to: str, template: str, incident: Incident, site: Site) -> EmailResult:
        settings = get_settings()
        if not settings.resend_api_key:
            logger.warning("email_not_configured", to=to, template=template)
            return EmailResult(success=False, message="Email service not configured")

        subject, html = render_email(template, incident, site)
        payload = {"from": settings.email_from, "to": [to], "subject": subject, "html": html}
        headers = {"Authorization": f"Bearer {settings.resend_api_key}"}

        async with httpx.AsyncClient(timeout=15.0) as client:
            resp = await client.post(RESEND_URL, json=payload, headers=headers)

        if resp.is_success:
            logger.info("email_sent", to=to, template=template)
            return EmailResult(success=True)

        logger.error("email_failed", to=to, template=template, status=resp.status_code, body=resp.text[:200])
        return EmailResult(success=False, message=f"HTTP {resp.status_code}")
