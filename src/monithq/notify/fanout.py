from __future__ import annotations

import asyncio
from typing import Any

import structlog

from monithq.models.db import Channel, EventKind, Severity, UserRole, WebhookEvent
from monithq.models.schemas import DispatchSummary, NotificationEvent, PlanLimits, Recipient
from monithq.notify.channels import ChannelDispatcher, default_dispatchers
from monithq.notify.plans import PlanLimitsProvider
from monithq.webhooks import delivery

logger = structlog.get_logger()

# MEDIUM incidents are degradations; HIGH and CRITICAL are outages
DEGRADED_SEVERITIES = {Severity.MEDIUM}

ORG_WEBHOOK_EVENTS = {
    EventKind.INCIDENT: WebhookEvent.INCIDENT_CREATED,
    EventKind.RESOLUTION: WebhookEvent.INCIDENT_RESOLVED,
}


def skip_reason(event: NotificationEvent, recipient: Recipient) -> str | None:
    """Return why a recipient is skipped for this event, or None if all gates pass."""
    if event.kind == EventKind.INCIDENT and not recipient.notify_on_incident:
        return "incident_notifications_off"
    if event.kind == EventKind.RESOLUTION and not recipient.notify_on_resolution:
        return "resolution_notifications_off"

    if (
        event.kind == EventKind.INCIDENT
        and event.incident.severity in DEGRADED_SEVERITIES
        and not recipient.notify_on_degradation
    ):
        return "degradation_notifications_off"

    if recipient.notify_only_admins and recipient.role == UserRole.USER:
        return "admins_only"

    # No subscriptions recorded means subscribed to every site
    if recipient.site_subscriptions and event.site.id not in recipient.site_subscriptions:
        return "not_subscribed"

    return None


async def _notify_recipient(
    event: NotificationEvent,
    recipient: Recipient,
    plan_limits: PlanLimits,
    dispatchers: list[ChannelDispatcher],
) -> set[Channel]:
    delivered: set[Channel] = set()
    for dispatcher in dispatchers:
        if not dispatcher.can_send(recipient, plan_limits):
            continue
        try:
            ok = await dispatcher.send(event, recipient)
        except Exception as e:
            logger.error(
                "channel_send_error",
                channel=dispatcher.channel.value,
                to=recipient.email,
                incident_id=event.incident.id,
                error=str(e)[:200],
            )
            continue
        if ok:
            delivered.add(dispatcher.channel)
        else:
            logger.warning(
                "channel_not_delivered",
                channel=dispatcher.channel.value,
                to=recipient.email,
                incident_id=event.incident.id,
            )
    return delivered


async def dispatch(
    event: NotificationEvent,
    recipients: list[Recipient],
    plan_limits: PlanLimits,
    dispatchers: list[ChannelDispatcher] | None = None,
) -> DispatchSummary:
    """Fan an incident or resolution event out to every eligible recipient and channel.

    Gates are applied per recipient before any channel is tried. Channel
    failures are logged and counted as zero; nothing is retried.
    """
    if dispatchers is None:
        dispatchers = default_dispatchers()

    eligible = []
    for recipient in recipients:
        reason = skip_reason(event, recipient)
        if reason:
            logger.info("recipient_skipped", to=recipient.email, reason=reason, incident_id=event.incident.id)
            continue
        eligible.append(recipient)

    outcomes = await asyncio.gather(
        *(_notify_recipient(event, r, plan_limits, dispatchers) for r in eligible)
    )

    summary = DispatchSummary(total=len(recipients))
    for delivered in outcomes:
        if delivered:
            summary.sent += 1
        for channel in delivered:
            summary.channels[channel] += 1

    logger.info(
        "notifications_dispatched",
        kind=event.kind.value,
        incident_id=event.incident.id,
        site_id=event.site.id,
        sent=summary.sent,
        total=summary.total,
        channels={c.value: n for c, n in summary.channels.items()},
    )
    return summary


async def handle_event(
    event: NotificationEvent,
    recipients: list[Recipient],
    plan: str,
    plans: PlanLimitsProvider,
    dispatchers: list[ChannelDispatcher] | None = None,
    webhook_payload: Any = None,
) -> tuple[DispatchSummary, list[asyncio.Task]]:
    """Resolve plan limits, fan out to recipients and start organization webhook delivery.

    The returned tasks may be awaited or dropped.
    """
    limits = await plans.get_limits(plan)
    summary = await dispatch(event, recipients, limits, dispatchers)

    payload = webhook_payload
    if payload is None:
        payload = {
            "incident": event.incident.model_dump(mode="json"),
            "site": event.site.model_dump(mode="json"),
        }
    tasks = await delivery.trigger(event.site.organization_id, ORG_WEBHOOK_EVENTS[event.kind].value, payload)
    return summary, tasks
