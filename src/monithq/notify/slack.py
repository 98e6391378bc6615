from __future__ import annotations

from datetime import datetime, timezone

import structlog
import httpx

from monithq.config import get_settings
from monithq.models.schemas import Incident, Site

logger = structlog.get_logger()


def _format_time(value: datetime | None) -> str:
    if value is None:
        return "unknown"
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def compose_incident_message(incident: Incident, site: Site) -> str:
    lines = [
        f"🚨 Incident: {site.name} is {incident.status}",
        f"Severity: {incident.severity.value}",
    ]
    if incident.ai_summary:
        lines.append(f"AI Summary: {incident.ai_summary}")
    lines.append(f"Started: {_format_time(incident.start_time)}")
    if site.url:
        lines.append(f"URL: {site.url}")
    return "\n".join(lines)


def compose_resolution_message(incident: Incident, site: Site) -> str:
    lines = [f"✅ Incident resolved for {site.name}"]
    if incident.duration_ms is not None:
        lines.append(f"Duration: {round(incident.duration_ms / 60000)} minutes")
    lines.append(f"Resolved: {_format_time(incident.end_time)}")
    if incident.ai_summary:
        lines.append(f"Summary: {incident.ai_summary}")
    if site.url:
        lines.append(f"URL: {site.url}")
    return "\n".join(lines)


async def send_slack_message(webhook_url: str, text: str) -> bool:
    """POST a plain-text message to a Slack incoming webhook. Returns True on HTTP 200."""
    settings = get_settings()
    async with httpx.AsyncClient(timeout=settings.slack_timeout_seconds) as client:
        resp = await client.post(webhook_url, json={"text": text})

    if resp.status_code == 200:
        logger.info("slack_sent")
        return True

    logger.error("slack_failed", status=resp.status_code, body=resp.text[:200])
    return False
