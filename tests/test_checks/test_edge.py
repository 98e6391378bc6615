from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
import respx
import httpx

from monithq.checks.edge import (
    EdgeExecutorError,
    check_with_edge,
    colos_for_region,
    map_colo_to_region,
    transform_edge_response,
)
from monithq.config import Settings
from monithq.models.db import Region, SiteStatus

EDGE_URL = "https://edge.monithq.test/check"

EDGE_PAYLOAD = {
    "success": True,
    "region": {
        "colo": "IAD",
        "city": "Ashburn",
        "country": "US",
        "continent": "NA",
        "latitude": 39.02,
        "longitude": -77.46,
    },
    "check": {
        "success": True,
        "status": "ONLINE",
        "responseTime": 123,
        "statusCode": 200,
        "resolvedIp": "93.184.216.34",
        "timings": {"dns": 12, "connect": 25, "tls": 18},
    },
    "timestamp": "2026-03-01T12:00:00.000Z",
}


def edge_settings():
    return Settings(edge_worker_url=EDGE_URL, edge_worker_secret="edge-secret")


class TestColoMapping:
    def test_known_colo(self):
        assert map_colo_to_region("FRA") == Region.EU_CENTRAL
        assert map_colo_to_region("syd") == Region.AUSTRALIA

    def test_unknown_colo_defaults_to_us_east(self):
        assert map_colo_to_region("XYZ") == Region.US_EAST
        assert map_colo_to_region(None) == Region.US_EAST

    def test_colos_for_region(self):
        colos = colos_for_region(Region.SOUTH_AMERICA)
        assert "GRU" in colos
        assert all(map_colo_to_region(c) == Region.SOUTH_AMERICA for c in colos)


class TestTransform:
    def test_reports_requested_region(self):
        result = transform_edge_response(EDGE_PAYLOAD, Region.ASIA_EAST)

        assert result.region == Region.ASIA_EAST
        assert result.edge_region == Region.US_EAST
        assert result.edge_location.city == "Ashburn"
        assert result.status == SiteStatus.ONLINE
        assert result.response_time_ms == 123
        assert result.resolved_ip == "93.184.216.34"
        assert result.tls_handshake_time_ms == 18
        assert result.timings_estimated is True
        assert result.checked_at == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def test_failed_edge_check(self):
        payload = {
            "region": {"colo": "LHR"},
            "check": {"success": False, "status": "OFFLINE", "errorMessage": "Connection refused"},
        }
        result = transform_edge_response(payload, Region.EU_WEST)
        assert result.success is False
        assert result.validation_passed is False
        assert result.error_message == "Connection refused"


class TestCheckWithEdge:
    @pytest.mark.asyncio
    async def test_not_configured(self):
        with patch("monithq.checks.edge.get_settings", return_value=Settings()):
            with pytest.raises(EdgeExecutorError):
                await check_with_edge("https://example.com", Region.US_EAST)

    @pytest.mark.asyncio
    @respx.mock
    async def test_posts_url_with_api_key(self):
        route = respx.post(EDGE_URL).mock(return_value=httpx.Response(200, json=EDGE_PAYLOAD))

        with patch("monithq.checks.edge.get_settings", return_value=edge_settings()):
            result = await check_with_edge("https://example.com", Region.EU_WEST)

        request = route.calls.last.request
        assert request.headers["x-monithq-api-key"] == "edge-secret"
        assert b'"url": "https://example.com"' in request.content or b'"url":"https://example.com"' in request.content
        assert result.region == Region.EU_WEST

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_status_raises(self):
        respx.post(EDGE_URL).mock(return_value=httpx.Response(500, json={"error": "Worker crashed"}))

        with patch("monithq.checks.edge.get_settings", return_value=edge_settings()):
            with pytest.raises(EdgeExecutorError, match="Worker crashed"):
                await check_with_edge("https://example.com", Region.US_EAST)

    @pytest.mark.asyncio
    @respx.mock
    async def test_malformed_response_raises(self):
        respx.post(EDGE_URL).mock(return_value=httpx.Response(200, json={"success": True}))

        with patch("monithq.checks.edge.get_settings", return_value=edge_settings()):
            with pytest.raises(EdgeExecutorError):
                await check_with_edge("https://example.com", Region.US_EAST)

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_raises(self):
        respx.post(EDGE_URL).mock(side_effect=httpx.ConnectError("refused"))

        with patch("monithq.checks.edge.get_settings", return_value=edge_settings()):
            with pytest.raises(EdgeExecutorError):
                await check_with_edge("https://example.com", Region.US_EAST)
