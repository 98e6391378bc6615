from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional
from enum import Enum

from sqlmodel import SQLModel, Field


class SiteStatus(str, Enum):
    ONLINE = "ONLINE"
    DEGRADED = "DEGRADED"
    OFFLINE = "OFFLINE"


class Region(str, Enum):
    US_EAST = "US_EAST"
    US_WEST = "US_WEST"
    EU_WEST = "EU_WEST"
    EU_CENTRAL = "EU_CENTRAL"
    ASIA_EAST = "ASIA_EAST"
    ASIA_SOUTHEAST = "ASIA_SOUTHEAST"
    AUSTRALIA = "AUSTRALIA"
    SOUTH_AMERICA = "SOUTH_AMERICA"


class AuthType(str, Enum):
    NONE = "NONE"
    BEARER = "BEARER"
    API_KEY = "API_KEY"
    BASIC = "BASIC"


class Channel(str, Enum):
    EMAIL = "email"
    SLACK = "slack"
    SMS = "sms"
    WEBHOOK = "webhook"


class UserRole(str, Enum):
    USER = "USER"
    ORG_ADMIN = "ORG_ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Grade(str, Enum):
    A_PLUS = "A+"
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


class EventKind(str, Enum):
    INCIDENT = "incident"
    RESOLUTION = "resolution"


class WebhookEvent(str, Enum):
    INCIDENT_CREATED = "incident_created"
    INCIDENT_UPDATED = "incident_updated"
    INCIDENT_RESOLVED = "incident_resolved"
    SITE_DOWN = "site_down"
    SITE_UP = "site_up"
    SITE_DEGRADED = "site_degraded"
    SITE_CREATED = "site_created"
    SITE_DELETED = "site_deleted"


class Webhook(SQLModel, table=True):
    __tablename__ = "webhooks"

    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: str = Field(index=True)
    url: str
    secret: Optional[str] = None
    events: str = "[]"  # JSON list of WebhookEvent values stored as string
    is_active: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_triggered_at: Optional[datetime] = None

    def event_types(self) -> set[str]:
        try:
            return set(json.loads(self.events or "[]"))
        except (json.JSONDecodeError, TypeError):
            return set()
