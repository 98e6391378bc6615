from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from monithq.models.db import Webhook
from monithq.models.schemas import WebhookCreate, WebhookRead
from monithq.storage.database import get_session
from monithq.storage import repository

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks")


def _to_read(webhook: Webhook) -> WebhookRead:
    return WebhookRead(
        id=webhook.id,
        organization_id=webhook.organization_id,
        url=webhook.url,
        events=sorted(webhook.event_types()),
        is_active=webhook.is_active,
        last_triggered_at=webhook.last_triggered_at,
    )


@router.post("", response_model=WebhookRead, status_code=201)
async def register_webhook(payload: WebhookCreate, session: AsyncSession = Depends(get_session)):
    webhook = await repository.create_webhook(
        session,
        organization_id=payload.organization_id,
        url=payload.url,
        events=[e.value for e in payload.events],
        secret=payload.secret,
        is_active=payload.is_active,
    )
    logger.info("webhook_registered", webhook_id=webhook.id, organization_id=webhook.organization_id)
    return _to_read(webhook)


@router.get("/{webhook_id}", response_model=WebhookRead)
async def read_webhook(webhook_id: int, session: AsyncSession = Depends(get_session)):
    webhook = await repository.get_webhook(session, webhook_id)
    if webhook is None:
        raise HTTPException(status_code=404, detail="Webhook not found")
    return _to_read(webhook)
