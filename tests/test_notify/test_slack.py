from __future__ import annotations

from datetime import datetime, timezone
import json

import pytest
import respx
import httpx

from monithq.models.db import Severity
from monithq.models.schemas import Incident, Site
from monithq.notify.slack import compose_incident_message, compose_resolution_message, send_slack_message

SLACK_URL = "https://hooks.slack.com/services/T000/B000/XXX"


@pytest.fixture
def site():
    return Site(id="site_1", name="Docs Portal", url="https://docs.example.com", organization_id="org_1")


@pytest.fixture
def incident():
    return Incident(
        id="inc_1",
        status="DOWN",
        severity=Severity.CRITICAL,
        ai_summary="Origin returns 502 from all regions",
        start_time=datetime(2026, 5, 4, 9, 30, tzinfo=timezone.utc),
        end_time=datetime(2026, 5, 4, 10, 15, tzinfo=timezone.utc),
        duration_ms=45 * 60 * 1000,
    )


class TestComposeMessages:
    def test_incident_message(self, incident, site):
        text = compose_incident_message(incident, site)
        assert text.splitlines() == [
            "🚨 Incident: Docs Portal is DOWN",
            "Severity: CRITICAL",
            "AI Summary: Origin returns 502 from all regions",
            "Started: 2026-05-04 09:30 UTC",
            "URL: https://docs.example.com",
        ]

    def test_incident_message_without_summary(self, incident, site):
        text = compose_incident_message(incident.model_copy(update={"ai_summary": None}), site)
        assert "AI Summary" not in text

    def test_resolution_message(self, incident, site):
        text = compose_resolution_message(incident, site)
        assert text.splitlines() == [
            "✅ Incident resolved for Docs Portal",
            "Duration: 45 minutes",
            "Resolved: 2026-05-04 10:15 UTC",
            "Summary: Origin returns 502 from all regions",
            "URL: https://docs.example.com",
        ]


class TestSendSlackMessage:
    @pytest.mark.asyncio
    @respx.mock
    async def test_posts_plain_text(self):
        route = respx.post(SLACK_URL).mock(return_value=httpx.Response(200, text="ok"))

        assert await send_slack_message(SLACK_URL, "hello") is True
        assert json.loads(route.calls.last.request.content) == {"text": "hello"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_200_is_failure(self):
        respx.post(SLACK_URL).mock(return_value=httpx.Response(404, text="no_service"))

        assert await send_slack_message(SLACK_URL, "hello") is False
