from __future__ import annotations

import json
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select, func

from monithq.models.db import Webhook


async def create_webhook(
    session: AsyncSession,
    organization_id: str,
    url: str,
    events: list[str],
    secret: str | None = None,
    is_active: bool = True,
) -> Webhook:
    webhook = Webhook(
        organization_id=organization_id,
        url=url,
        events=json.dumps(sorted(set(events))),
        secret=secret,
        is_active=is_active,
    )
    session.add(webhook)
    await session.commit()
    await session.refresh(webhook)
    return webhook


async def get_webhook(session: AsyncSession, webhook_id: int) -> Webhook | None:
    return await session.get(Webhook, webhook_id)


async def get_active_webhooks(session: AsyncSession, organization_id: str, event_type: str) -> list[Webhook]:
    """Active webhooks of an organization subscribed to the event type."""
    result = await session.execute(
        select(Webhook).where(
            Webhook.organization_id == organization_id,
            Webhook.is_active == True,  # noqa: E712
        )
    )
    return [w for w in result.scalars().all() if event_type in w.event_types()]


async def touch_webhook(session: AsyncSession, webhook_id: int, when: datetime | None = None) -> None:
    webhook = await session.get(Webhook, webhook_id)
    if webhook is None:
        return
    webhook.last_triggered_at = when or datetime.now(timezone.utc)
    session.add(webhook)
    await session.commit()


async def get_active_webhooks_count(session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count(Webhook.id)).where(Webhook.is_active == True)  # noqa: E712
    )
    return result.scalar_one()
