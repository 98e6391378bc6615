from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
from datetime import datetime, timezone
from typing import Any

import structlog
import httpx
from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from monithq.config import get_settings
from monithq.models.db import Webhook
from monithq.storage.database import get_session_factory
from monithq.storage import repository

logger = structlog.get_logger()

USER_AGENT = "MonitHQ-Webhook/1.0"

# Strong references so discarded delivery tasks are not garbage collected mid-flight
_pending: set[asyncio.Task] = set()


class DeliveryResult(BaseModel):
    success: bool
    status_code: int | None = None
    error: str | None = None
    webhook_id: int | None = None


def sign(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """Recompute the signature over the raw received bytes and compare in constant time."""
    return hmac.compare_digest(sign(secret, body), signature)


def signature_header() -> str:
    return f"X-{get_settings().product_name}-Signature"


def event_header() -> str:
    return f"X-{get_settings().product_name}-Event"


def serialize(data: Any) -> bytes:
    return json.dumps(data, default=to_jsonable_python).encode("utf-8")


def build_envelope(event_type: str, payload: Any) -> bytes:
    timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return serialize({"event": event_type, "timestamp": timestamp, "data": payload})


def _headers(body: bytes, secret: str | None, event_type: str | None) -> dict[str, str]:
    headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
    if event_type:
        headers[event_header()] = event_type
    if secret:
        headers[signature_header()] = sign(secret, body)
    return headers


async def post_json(
    url: str,
    payload: Any,
    secret: str | None = None,
    event_type: str | None = None,
) -> DeliveryResult:
    """POST a JSON payload, signing it when a secret is given. Never raises."""
    body = serialize(payload)
    try:
        async with httpx.AsyncClient(timeout=get_settings().webhook_timeout_seconds) as client:
            resp = await client.post(url, content=body, headers=_headers(body, secret, event_type))
    except Exception as e:
        logger.error("webhook_post_error", url=url, error=str(e)[:200])
        return DeliveryResult(success=False, error=str(e) or type(e).__name__)

    if not resp.is_success:
        logger.error("webhook_post_failed", url=url, status=resp.status_code)
        return DeliveryResult(success=False, status_code=resp.status_code, error=f"HTTP {resp.status_code}")
    return DeliveryResult(success=True, status_code=resp.status_code)


async def send_webhook(webhook: Webhook, event_type: str, payload: Any) -> DeliveryResult:
    """Deliver one signed envelope and record the attempt.

    Any HTTP response, 2xx or not, updates ``last_triggered_at``; transport
    failures do not.
    """
    body = build_envelope(event_type, payload)
    headers = _headers(body, webhook.secret, event_type)

    try:
        async with httpx.AsyncClient(timeout=get_settings().webhook_timeout_seconds) as client:
            resp = await client.post(webhook.url, content=body, headers=headers)
    except Exception as e:
        logger.error("webhook_send_error", webhook_id=webhook.id, url=webhook.url, error=str(e)[:200])
        return DeliveryResult(success=False, error=str(e) or type(e).__name__, webhook_id=webhook.id)

    try:
        factory = get_session_factory()
        async with factory() as session:
            await repository.touch_webhook(session, webhook.id)
    except Exception as e:
        logger.error("webhook_touch_failed", webhook_id=webhook.id, error=str(e)[:200])

    if not resp.is_success:
        logger.error("webhook_send_failed", webhook_id=webhook.id, status=resp.status_code)
        return DeliveryResult(
            success=False,
            status_code=resp.status_code,
            error=f"HTTP {resp.status_code}",
            webhook_id=webhook.id,
        )

    logger.info("webhook_sent", webhook_id=webhook.id, event=event_type)
    return DeliveryResult(success=True, status_code=resp.status_code, webhook_id=webhook.id)


async def trigger(organization_id: str, event_type: str, payload: Any) -> list[asyncio.Task]:
    """Start delivery to every active organization webhook subscribed to the event.

    Returns one task per webhook. Callers may await them (``asyncio.gather``) or
    drop the list; each task resolves to a DeliveryResult and never raises.
    """
    try:
        factory = get_session_factory()
        async with factory() as session:
            webhooks = await repository.get_active_webhooks(session, organization_id, event_type)
    except Exception as e:
        logger.error("webhook_lookup_failed", organization_id=organization_id, error=str(e)[:200])
        return []

    if not webhooks:
        return []

    tasks = []
    for webhook in webhooks:
        task = asyncio.create_task(send_webhook(webhook, event_type, payload))
        _pending.add(task)
        task.add_done_callback(_pending.discard)
        tasks.append(task)

    logger.info("webhooks_triggered", organization_id=organization_id, event=event_type, count=len(tasks))
    return tasks
