from __future__ import annotations

from unittest.mock import patch

import pytest
import respx
import httpx

from monithq.checks.regions import (
    DEFAULT_REGIONS,
    approximate_region_check,
    average_response_time,
    check_all_regions,
    check_region,
    fastest_region,
    format_region_check_for_db,
    parse_region,
    slowest_region,
    summarize_regions,
)
from monithq.config import Settings
from monithq.models.db import Region, SiteStatus
from monithq.models.schemas import RegionResult

URL = "https://example.com"


def region_result(region, status=SiteStatus.ONLINE, ms=100, success=True):
    return RegionResult(success=success, region=region, status=status, response_time_ms=ms)


class TestParseRegion:
    def test_valid(self):
        assert parse_region("EU_WEST") == Region.EU_WEST
        assert parse_region(Region.AUSTRALIA) == Region.AUSTRALIA

    def test_invalid(self):
        with pytest.raises(ValueError, match="Invalid region: MARS"):
            parse_region("MARS")


class TestApproximateRegionCheck:
    @pytest.mark.asyncio
    @respx.mock
    async def test_online_with_estimated_timings(self):
        route = respx.head(URL).mock(return_value=httpx.Response(200))

        result = await approximate_region_check(URL, Region.EU_WEST)

        assert result.success is True
        assert result.region == Region.EU_WEST
        assert result.status == SiteStatus.ONLINE
        assert result.timings_estimated is True
        assert result.resolved_ip is None
        assert result.connect_time_ms == int(result.response_time_ms * 0.20)
        assert result.tls_handshake_time_ms == int(result.response_time_ms * 0.15)
        assert result.dns_lookup_time_ms >= 0
        request = route.calls.last.request
        assert request.headers["x-monithq-region"] == "EU_WEST"
        assert "Region: EU_WEST" in request.headers["user-agent"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_plain_http_has_no_tls_time(self):
        respx.head("http://example.com").mock(return_value=httpx.Response(200))

        result = await approximate_region_check("http://example.com", Region.US_EAST)

        assert result.tls_handshake_time_ms is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_status_is_offline(self):
        respx.head(URL).mock(return_value=httpx.Response(503))

        result = await approximate_region_check(URL, Region.US_WEST)

        assert result.success is True
        assert result.status == SiteStatus.OFFLINE
        assert result.error_message == "HTTP 503 Service Unavailable"

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error(self):
        respx.head(URL).mock(side_effect=httpx.ConnectError("Connection refused"))

        result = await approximate_region_check(URL, Region.US_WEST)

        assert result.success is False
        assert result.status == SiteStatus.OFFLINE
        assert "Connection refused" in result.error_message

    @pytest.mark.asyncio
    async def test_slow_response_within_configured_timeout(self, slow_server):
        result = await approximate_region_check(slow_server, Region.EU_WEST)

        assert result.success is True
        assert result.status_code == 200
        assert result.status == SiteStatus.DEGRADED
        assert result.error_message is None


class TestCheckRegion:
    @pytest.mark.asyncio
    @respx.mock
    async def test_edge_failure_falls_back_to_local_check(self):
        edge_url = "https://edge.monithq.test/check"
        respx.post(edge_url).mock(return_value=httpx.Response(502))
        respx.head(URL).mock(return_value=httpx.Response(200))
        settings = Settings(edge_worker_url=edge_url, edge_worker_secret="s")

        with patch("monithq.checks.edge.get_settings", return_value=settings):
            result = await check_region(URL, "ASIA_EAST")

        assert result.success is True
        assert result.region == Region.ASIA_EAST
        assert result.edge_region is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_edge_result_keeps_requested_region(self):
        edge_url = "https://edge.monithq.test/check"
        respx.post(edge_url).mock(return_value=httpx.Response(200, json={
            "region": {"colo": "NRT"},
            "check": {"success": True, "status": "ONLINE", "responseTime": 80, "statusCode": 200},
        }))
        settings = Settings(edge_worker_url=edge_url, edge_worker_secret="s")

        with patch("monithq.checks.edge.get_settings", return_value=settings):
            result = await check_region(URL, Region.SOUTH_AMERICA)

        assert result.region == Region.SOUTH_AMERICA
        assert result.edge_region == Region.ASIA_EAST

    @pytest.mark.asyncio
    async def test_unknown_region_raises(self):
        with pytest.raises(ValueError):
            await check_region(URL, "NOWHERE")


class TestCheckAllRegions:
    @pytest.mark.asyncio
    async def test_failing_region_is_isolated_and_order_preserved(self):
        async def fake_check(url, region):
            if region == Region.EU_WEST:
                raise RuntimeError("boom")
            return region_result(region)

        with patch("monithq.checks.regions.check_region", side_effect=fake_check):
            results = await check_all_regions(URL, ["US_EAST", "EU_WEST", "ASIA_EAST"])

        assert [r.region for r in results] == [Region.US_EAST, Region.EU_WEST, Region.ASIA_EAST]
        assert results[0].success is True
        assert results[1].success is False
        assert results[1].status == SiteStatus.OFFLINE
        assert results[1].error_message == "boom"
        assert results[2].success is True

    @pytest.mark.asyncio
    async def test_defaults_when_no_regions(self):
        async def fake_check(url, region):
            return region_result(region)

        with patch("monithq.checks.regions.check_region", side_effect=fake_check):
            results = await check_all_regions(URL)

        assert [r.region for r in results] == DEFAULT_REGIONS

    @pytest.mark.asyncio
    async def test_empty_region_list_checks_nothing(self):
        with patch("monithq.checks.regions.check_region") as mock_check:
            assert await check_all_regions(URL, []) == []
        mock_check.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_region_rejected_before_any_check(self):
        with patch("monithq.checks.regions.check_region") as mock_check:
            with pytest.raises(ValueError):
                await check_all_regions(URL, ["US_EAST", "MOON"])
        mock_check.assert_not_called()


class TestStatistics:
    def test_average_includes_degraded_successes(self):
        results = [
            region_result(Region.US_EAST, ms=100),
            region_result(Region.EU_WEST, status=SiteStatus.DEGRADED, ms=300),
            region_result(Region.ASIA_EAST, success=False, status=SiteStatus.OFFLINE, ms=0),
        ]
        assert average_response_time(results) == 200

    def test_average_of_nothing_is_zero(self):
        assert average_response_time([]) == 0

    def test_fastest_and_slowest_only_consider_online(self):
        results = [
            region_result(Region.US_EAST, ms=120),
            region_result(Region.EU_WEST, status=SiteStatus.DEGRADED, ms=10),
            region_result(Region.ASIA_EAST, ms=250),
            region_result(Region.AUSTRALIA, status=SiteStatus.DEGRADED, ms=9000),
        ]
        fastest = fastest_region(results)
        slowest = slowest_region(results)
        assert fastest.region == Region.US_EAST
        assert fastest.name == "US East"
        assert slowest.region == Region.ASIA_EAST
        assert slowest.response_time_ms == 250

    def test_no_online_regions(self):
        results = [region_result(Region.US_EAST, status=SiteStatus.DEGRADED)]
        assert fastest_region(results) is None
        assert slowest_region(results) is None

    def test_summary(self):
        results = [
            region_result(Region.US_EAST, ms=100),
            region_result(Region.EU_WEST, status=SiteStatus.OFFLINE, ms=50),
        ]
        stats = summarize_regions(results)
        assert stats.average_response_time_ms == 75
        assert stats.overall_status == SiteStatus.DEGRADED
        assert stats.fastest.region == Region.US_EAST

    def test_format_for_db(self):
        row = format_region_check_for_db(region_result(Region.US_EAST))
        assert row["region"] == Region.US_EAST
        assert row["status"] == SiteStatus.ONLINE
