from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException

from monithq.checks import http_check, regions, security_headers
from monithq.checks.aggregate import aggregate
from monithq.models.schemas import (
    AggregateRequest,
    AggregateResponse,
    CheckResult,
    CheckTarget,
    RegionCheckRequest,
    RegionCheckResponse,
    SecurityCheckRequest,
    SecurityCheckResult,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/checks")


@router.post("/api", response_model=CheckResult)
async def run_api_check(target: CheckTarget):
    try:
        return await http_check.execute(target)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/regions", response_model=RegionCheckResponse)
async def run_region_check(payload: RegionCheckRequest):
    try:
        results = await regions.check_all_regions(payload.url, payload.regions)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info("region_check_completed", url=payload.url, regions=len(results))
    return RegionCheckResponse(results=results, statistics=regions.summarize_regions(results))


@router.post("/security", response_model=SecurityCheckResult)
async def run_security_check(payload: SecurityCheckRequest):
    return await security_headers.check_security_headers(payload.url)


@router.post("/aggregate", response_model=AggregateResponse)
async def aggregate_status(payload: AggregateRequest):
    return AggregateResponse(status=aggregate(payload.results))
