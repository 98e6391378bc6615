from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Protocol

import structlog

from monithq.config import get_settings
from monithq.models.db import Channel
from monithq.models.schemas import PlanLimits

logger = structlog.get_logger()

FALLBACK_CHANNELS = {Channel.EMAIL}


class PlanLimitsProvider(Protocol):
    async def get_limits(self, plan: str) -> PlanLimits: ...


class StaticPlanLimitsProvider:
    """Serves plan limits from a fixed table (by default the `plans` yaml section)."""

    def __init__(self, plans: dict[str, PlanLimits], default_plan: str | None = None) -> None:
        self._plans = {name.upper(): limits for name, limits in plans.items()}
        self._default_plan = (default_plan or get_settings().default_plan).upper()

    @classmethod
    def from_config(cls) -> StaticPlanLimitsProvider:
        yaml_config = get_settings().load_yaml_config()
        plans = {}
        for name, entry in (yaml_config.get("plans") or {}).items():
            channels = (entry or {}).get("allowed_channels") or [c.value for c in FALLBACK_CHANNELS]
            plans[name] = PlanLimits(plan=name.upper(), allowed_channels={Channel(c) for c in channels})
        return cls(plans)

    async def get_limits(self, plan: str) -> PlanLimits:
        limits = self._plans.get((plan or "").upper()) or self._plans.get(self._default_plan)
        if limits is None:
            logger.warning("plan_not_found", plan=plan)
            return PlanLimits(plan=self._default_plan, allowed_channels=set(FALLBACK_CHANNELS))
        return limits


class CachedPlanLimitsProvider:
    """Read-through TTL cache in front of any async plan loader."""

    def __init__(
        self,
        loader: Callable[[str], Awaitable[PlanLimits]],
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._ttl = ttl_seconds if ttl_seconds is not None else get_settings().plan_cache_ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[float, PlanLimits]] = {}

    async def get_limits(self, plan: str) -> PlanLimits:
        now = self._clock()
        cached = self._cache.get(plan)
        if cached and cached[0] > now:
            return cached[1]
        limits = await self._loader(plan)
        self._cache[plan] = (now + self._ttl, limits)
        return limits

    def clear(self) -> None:
        self._cache.clear()
