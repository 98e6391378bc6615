from __future__ import annotations

from functools import lru_cache

from fastapi import APIRouter, Depends

from monithq.config import get_settings
from monithq.models.schemas import DispatchRequest, DispatchResponse
from monithq.notify import fanout
from monithq.notify.plans import CachedPlanLimitsProvider, PlanLimitsProvider, StaticPlanLimitsProvider

router = APIRouter(prefix="/notifications")


@lru_cache
def get_plan_provider() -> PlanLimitsProvider:
    return CachedPlanLimitsProvider(StaticPlanLimitsProvider.from_config().get_limits)


@router.post("/dispatch", response_model=DispatchResponse)
async def dispatch_notifications(
    payload: DispatchRequest,
    plans: PlanLimitsProvider = Depends(get_plan_provider),
):
    plan = payload.plan or get_settings().default_plan
    summary, tasks = await fanout.handle_event(payload.event, payload.recipients, plan, plans)
    # Organization webhooks keep delivering in the background
    return DispatchResponse(summary=summary, webhooks_triggered=len(tasks))
