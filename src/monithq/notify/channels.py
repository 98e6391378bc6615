from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

import structlog

from monithq.models.db import Channel, EventKind
from monithq.models.schemas import NotificationEvent, PlanLimits, Recipient
from monithq.notify.email import EmailSender, ResendEmailSender
from monithq.notify.slack import compose_incident_message, compose_resolution_message, send_slack_message
from monithq.webhooks import delivery

logger = structlog.get_logger()

EMAIL_TEMPLATES = {
    EventKind.INCIDENT: "incident_created",
    EventKind.RESOLUTION: "incident_resolved",
}

SmsProvider = Callable[[str, str], Awaitable[bool]]


def compose_message(event: NotificationEvent) -> str:
    if event.kind == EventKind.INCIDENT:
        return compose_incident_message(event.incident, event.site)
    return compose_resolution_message(event.incident, event.site)


def short_message(event: NotificationEvent) -> str:
    if event.kind == EventKind.INCIDENT:
        return f"Incident: {event.site.name} is {event.incident.status}"
    return f"Incident resolved for {event.site.name}"


class ChannelDispatcher(ABC):
    """One notification channel. A channel fires only when ``can_send`` allows it."""

    channel: Channel
    requires_credential: bool = True

    def credential(self, recipient: Recipient) -> str | None:
        return recipient.channel_config.get(self.channel) or None

    def can_send(self, recipient: Recipient, plan: PlanLimits) -> bool:
        if not recipient.channel_enabled.get(self.channel, False):
            return False
        if self.channel not in plan.allowed_channels:
            return False
        if self.requires_credential and not self.credential(recipient):
            return False
        return True

    @abstractmethod
    async def send(self, event: NotificationEvent, recipient: Recipient) -> bool:
        """Deliver the event. True only when the delivery succeeded."""


class EmailDispatcher(ChannelDispatcher):
    channel = Channel.EMAIL
    requires_credential = False

    def __init__(self, sender: EmailSender | None = None) -> None:
        self.sender = sender or ResendEmailSender()

    async def send(self, event: NotificationEvent, recipient: Recipient) -> bool:
        result = await self.sender.send_email(
            recipient.email,
            EMAIL_TEMPLATES[event.kind],
            event.incident,
            event.site,
        )
        if not result.success:
            logger.warning("email_not_delivered", to=recipient.email, reason=result.message)
        return result.success


class SlackDispatcher(ChannelDispatcher):
    channel = Channel.SLACK

    async def send(self, event: NotificationEvent, recipient: Recipient) -> bool:
        return await send_slack_message(self.credential(recipient), compose_message(event))


class SmsDispatcher(ChannelDispatcher):
    """SMS is gated like every other channel but has no built-in carrier.

    Pass a ``provider(phone_number, text) -> bool`` coroutine to deliver;
    without one, sends are logged and not counted.
    """

    channel = Channel.SMS

    def __init__(self, provider: SmsProvider | None = None) -> None:
        self.provider = provider

    async def send(self, event: NotificationEvent, recipient: Recipient) -> bool:
        phone = self.credential(recipient)
        if self.provider is None:
            logger.info("sms_provider_not_configured", phone=phone, site_id=event.site.id)
            return False
        return await self.provider(phone, short_message(event))


class WebhookDispatcher(ChannelDispatcher):
    channel = Channel.WEBHOOK

    async def send(self, event: NotificationEvent, recipient: Recipient) -> bool:
        url = self.credential(recipient)
        payload = {
            "type": event.kind.value,
            "incident": event.incident.model_dump(mode="json"),
            "site": event.site.model_dump(mode="json"),
            "message": short_message(event),
        }
        result = await delivery.post_json(url, payload)
        if not result.success:
            logger.error("user_webhook_failed", url=url, error=result.error)
        return result.success


def default_dispatchers() -> list[ChannelDispatcher]:
    return [EmailDispatcher(), SlackDispatcher(), SmsDispatcher(), WebhookDispatcher()]
