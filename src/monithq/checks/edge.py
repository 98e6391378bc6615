from __future__ import annotations

from datetime import datetime

import structlog
import httpx

from monithq.config import get_settings
from monithq.models.db import Region, SiteStatus
from monithq.models.schemas import EdgeLocation, RegionResult

logger = structlog.get_logger()

# Edge datacenter (colo) code -> logical monitoring region
COLO_TO_REGION: dict[str, Region] = {
    # US East
    "IAD": Region.US_EAST, "JFK": Region.US_EAST, "EWR": Region.US_EAST,
    "BOS": Region.US_EAST, "ATL": Region.US_EAST, "MIA": Region.US_EAST,
    "DFW": Region.US_EAST, "IAH": Region.US_EAST, "ORD": Region.US_EAST,
    # US West
    "SJC": Region.US_WEST, "LAX": Region.US_WEST, "SEA": Region.US_WEST,
    "SFO": Region.US_WEST, "PDX": Region.US_WEST, "PHX": Region.US_WEST,
    "DEN": Region.US_WEST,
    # EU West
    "DUB": Region.EU_WEST, "LHR": Region.EU_WEST, "MAN": Region.EU_WEST,
    "AMS": Region.EU_WEST, "CDG": Region.EU_WEST,
    # EU Central
    "FRA": Region.EU_CENTRAL, "MUC": Region.EU_CENTRAL, "VIE": Region.EU_CENTRAL,
    "ZRH": Region.EU_CENTRAL, "WAW": Region.EU_CENTRAL, "PRG": Region.EU_CENTRAL,
    # Asia East
    "NRT": Region.ASIA_EAST, "HND": Region.ASIA_EAST, "KIX": Region.ASIA_EAST,
    "ICN": Region.ASIA_EAST, "TPE": Region.ASIA_EAST, "HKG": Region.ASIA_EAST,
    # Asia Southeast
    "SIN": Region.ASIA_SOUTHEAST, "KUL": Region.ASIA_SOUTHEAST, "BKK": Region.ASIA_SOUTHEAST,
    "CGK": Region.ASIA_SOUTHEAST, "MNL": Region.ASIA_SOUTHEAST,
    # Australia
    "SYD": Region.AUSTRALIA, "MEL": Region.AUSTRALIA, "PER": Region.AUSTRALIA,
    "BNE": Region.AUSTRALIA, "ADL": Region.AUSTRALIA,
    # South America
    "GRU": Region.SOUTH_AMERICA, "SCL": Region.SOUTH_AMERICA, "BOG": Region.SOUTH_AMERICA,
    "EZE": Region.SOUTH_AMERICA, "LIM": Region.SOUTH_AMERICA,
}


class EdgeExecutorError(RuntimeError):
    """The remote edge executor is unconfigured, unreachable or returned an error."""


def map_colo_to_region(colo: str | None) -> Region:
    return COLO_TO_REGION.get((colo or "").upper(), Region.US_EAST)


def colos_for_region(region: Region) -> list[str]:
    return [colo for colo, mapped in COLO_TO_REGION.items() if mapped == region]


def is_edge_enabled() -> bool:
    return get_settings().edge_enabled


async def check_with_edge(url: str, requested_region: Region) -> RegionResult:
    """Run a check through the edge executor.

    The edge picks its own point of presence, so the result is labelled with the
    requested region; the colo-derived region is kept in ``edge_region``.
    """
    settings = get_settings()
    if not settings.edge_enabled:
        raise EdgeExecutorError("Edge executor not configured")

    headers = {
        "Content-Type": "application/json",
        f"X-{settings.product_name}-API-Key": settings.edge_worker_secret,
    }
    try:
        async with httpx.AsyncClient(timeout=settings.edge_timeout_ms / 1000 + 5) as client:
            resp = await client.post(
                settings.edge_worker_url,
                json={"url": url, "timeout": settings.edge_timeout_ms},
                headers=headers,
            )
    except httpx.HTTPError as e:
        raise EdgeExecutorError(f"Edge executor unreachable: {e}") from e

    if resp.status_code != 200:
        try:
            detail = resp.json().get("error")
        except ValueError:
            detail = None
        raise EdgeExecutorError(detail or f"HTTP {resp.status_code}")

    try:
        data = resp.json()
        return transform_edge_response(data, requested_region)
    except (ValueError, KeyError, TypeError) as e:
        raise EdgeExecutorError(f"Malformed edge response: {e}") from e


def transform_edge_response(data: dict, requested_region: Region) -> RegionResult:
    location = data.get("region") or {}
    check = data["check"]
    timings = check.get("timings") or {}
    colo = location.get("colo", "UNKNOWN")
    success = bool(check.get("success"))
    extra = {}
    if data.get("timestamp"):
        extra["checked_at"] = datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00"))

    return RegionResult(
        success=success,
        region=requested_region,
        status=SiteStatus(check.get("status", "OFFLINE")),
        response_time_ms=int(check.get("responseTime") or 0),
        status_code=check.get("statusCode"),
        error_message=check.get("errorMessage"),
        validation_passed=success and check.get("status") != SiteStatus.OFFLINE.value,
        resolved_ip=check.get("resolvedIp"),
        dns_lookup_time_ms=timings.get("dns"),
        connect_time_ms=timings.get("connect"),
        tls_handshake_time_ms=timings.get("tls"),
        # The edge worker itself estimates its phase timings
        timings_estimated=True,
        request_method="HEAD",
        edge_region=map_colo_to_region(colo),
        edge_location=EdgeLocation(
            colo=colo,
            city=location.get("city"),
            country=location.get("country"),
            continent=location.get("continent"),
            latitude=location.get("latitude"),
            longitude=location.get("longitude"),
        ),
        **extra,
    )
