from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from urllib.parse import urlsplit

import structlog
import httpx

from monithq.checks.aggregate import aggregate
from monithq.checks.edge import check_with_edge, is_edge_enabled
from monithq.config import get_settings
from monithq.models.db import Region, SiteStatus
from monithq.models.schemas import RegionResult, RegionStatistics, RegionSummary

logger = structlog.get_logger()

REGION_INFO: dict[Region, dict[str, str]] = {
    Region.US_EAST: {"name": "US East", "location": "Virginia, USA"},
    Region.US_WEST: {"name": "US West", "location": "California, USA"},
    Region.EU_WEST: {"name": "EU West", "location": "Ireland"},
    Region.EU_CENTRAL: {"name": "EU Central", "location": "Frankfurt, Germany"},
    Region.ASIA_EAST: {"name": "Asia East", "location": "Tokyo, Japan"},
    Region.ASIA_SOUTHEAST: {"name": "Asia Southeast", "location": "Singapore"},
    Region.AUSTRALIA: {"name": "Australia", "location": "Sydney, Australia"},
    Region.SOUTH_AMERICA: {"name": "South America", "location": "Sao Paulo, Brazil"},
}

DEFAULT_REGIONS = [Region.US_EAST, Region.EU_WEST, Region.ASIA_EAST]

# Simulated DNS delay per region (ms). The fallback path does not resolve names.
DNS_DELAY_MS: dict[Region, int] = {
    Region.US_EAST: 15,
    Region.US_WEST: 20,
    Region.EU_WEST: 25,
    Region.EU_CENTRAL: 23,
    Region.ASIA_EAST: 35,
    Region.ASIA_SOUTHEAST: 32,
    Region.AUSTRALIA: 40,
    Region.SOUTH_AMERICA: 45,
}
BASE_DNS_DELAY_MS = 10

# Fallback sub-timings are fractions of total elapsed time, not measured phases
CONNECT_SHARE = 0.20
TLS_SHARE = 0.15


def parse_region(value: Region | str) -> Region:
    try:
        return Region(value)
    except ValueError:
        raise ValueError(f"Invalid region: {value}") from None


def default_regions() -> list[Region]:
    configured = get_settings().load_yaml_config().get("regions", {}).get("default")
    if not configured:
        return list(DEFAULT_REGIONS)
    return [parse_region(r) for r in configured]


def _dns_delay_ms(region: Region) -> int:
    configured = get_settings().load_yaml_config().get("regions", {}).get("dns_delay_ms") or {}
    if region.value in configured:
        return int(configured[region.value])
    return DNS_DELAY_MS.get(region, BASE_DNS_DELAY_MS)


async def check_region(url: str, region: Region | str) -> RegionResult:
    """Check a URL on behalf of one region.

    Uses the edge executor when configured and falls back to a local approximation
    when the edge is unavailable. Raises ValueError for an unknown region.
    """
    region = parse_region(region)

    if is_edge_enabled():
        try:
            logger.info("edge_region_check", url=url, region=region.value)
            return await check_with_edge(url, region)
        except Exception as e:
            logger.warning("edge_check_failed_falling_back", url=url, region=region.value, error=str(e)[:200])

    return await approximate_region_check(url, region)


async def approximate_region_check(url: str, region: Region) -> RegionResult:
    """Local HEAD check with estimated sub-timings.

    The DNS time is a region-keyed sleep, connect time is 20% of the total and TLS
    time is 15% of the total for HTTPS targets. None of these are measured.
    """
    settings = get_settings()
    start = time.perf_counter()
    is_https = urlsplit(url).scheme == "https"

    dns_start = time.perf_counter()
    await asyncio.sleep(_dns_delay_ms(region) / 1000)
    dns_ms = int((time.perf_counter() - dns_start) * 1000)

    try:
        async with httpx.AsyncClient(
            timeout=settings.check_timeout_seconds,
            follow_redirects=True,
            headers={
                "User-Agent": f"MonitHQ-RegionalCheck/1.0 (Region: {region.value})",
                f"X-{settings.product_name}-Region": region.value,
            },
        ) as client:
            response = await asyncio.wait_for(client.head(url), timeout=settings.check_timeout_seconds)
    except Exception as e:
        total = int((time.perf_counter() - start) * 1000)
        if isinstance(e, (asyncio.TimeoutError, httpx.TimeoutException)):
            message = f"Request timed out after {settings.check_timeout_seconds:g}s"
        else:
            message = str(e) or type(e).__name__
        logger.warning("region_check_failed", url=url, region=region.value, error=message[:200])
        return RegionResult(
            success=False,
            region=region,
            status=SiteStatus.OFFLINE,
            response_time_ms=total,
            error_message=message,
            dns_lookup_time_ms=dns_ms,
            timings_estimated=True,
            request_method="HEAD",
        )

    total = int((time.perf_counter() - start) * 1000)
    if not response.is_success:
        status = SiteStatus.OFFLINE
    elif total > settings.degraded_threshold_ms:
        status = SiteStatus.DEGRADED
    else:
        status = SiteStatus.ONLINE

    logger.info(
        "region_check_complete",
        url=url,
        region=region.value,
        status=status.value,
        response_time_ms=total,
    )

    return RegionResult(
        success=True,
        region=region,
        status=status,
        response_time_ms=total,
        status_code=response.status_code,
        response_headers=dict(response.headers.items()),
        validation_passed=response.is_success,
        error_message=None if response.is_success else f"HTTP {response.status_code} {response.reason_phrase}".strip(),
        dns_lookup_time_ms=dns_ms,
        connect_time_ms=int(total * CONNECT_SHARE),
        tls_handshake_time_ms=int(total * TLS_SHARE) if is_https else None,
        timings_estimated=True,
        request_method="HEAD",
    )


async def check_all_regions(url: str, regions: Sequence[Region | str] | None = None) -> list[RegionResult]:
    """Check every region concurrently; output order follows input order.

    A region whose task raises becomes an OFFLINE result without affecting siblings.
    """
    targets = [parse_region(r) for r in regions] if regions is not None else default_regions()

    async def _guarded(region: Region) -> RegionResult:
        try:
            return await check_region(url, region)
        except Exception as e:
            logger.error("region_task_crashed", url=url, region=region.value, error=str(e)[:200])
            return RegionResult(
                success=False,
                region=region,
                status=SiteStatus.OFFLINE,
                response_time_ms=0,
                error_message=str(e) or "Check failed",
            )

    return list(await asyncio.gather(*(_guarded(r) for r in targets)))


def average_response_time(results: Sequence[RegionResult]) -> int:
    """Mean response time over protocol-successful checks, DEGRADED included."""
    timed = [r.response_time_ms for r in results if r.success and r.response_time_ms]
    if not timed:
        return 0
    return round(sum(timed) / len(timed))


def _online(results: Sequence[RegionResult]) -> list[RegionResult]:
    return [r for r in results if r.success and r.status == SiteStatus.ONLINE]


def _summary(result: RegionResult) -> RegionSummary:
    info = REGION_INFO.get(result.region, {"name": result.region.value, "location": ""})
    return RegionSummary(region=result.region, response_time_ms=result.response_time_ms, **info)


def fastest_region(results: Sequence[RegionResult]) -> RegionSummary | None:
    online = _online(results)
    if not online:
        return None
    return _summary(min(online, key=lambda r: r.response_time_ms))


def slowest_region(results: Sequence[RegionResult]) -> RegionSummary | None:
    online = _online(results)
    if not online:
        return None
    return _summary(max(online, key=lambda r: r.response_time_ms))


def summarize_regions(results: Sequence[RegionResult]) -> RegionStatistics:
    return RegionStatistics(
        average_response_time_ms=average_response_time(results),
        fastest=fastest_region(results),
        slowest=slowest_region(results),
        overall_status=aggregate(results),
    )


def format_region_check_for_db(result: RegionResult) -> dict:
    return result.model_dump(
        include={
            "region",
            "status",
            "response_time_ms",
            "status_code",
            "error_message",
            "resolved_ip",
            "dns_lookup_time_ms",
            "connect_time_ms",
            "tls_handshake_time_ms",
            "checked_at",
        },
        mode="json",
    )
