from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator

from monithq.models.db import (
    AuthType,
    Channel,
    EventKind,
    Grade,
    Region,
    Severity,
    SiteStatus,
    UserRole,
    WebhookEvent,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ValidationSpec(BaseModel):
    """Response validation rules. All three modes are independent."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    json_schema: Optional[dict[str, Any]] = Field(default=None, alias="schema")
    required_fields: list[str] = []
    field_values: dict[str, Any] = {}


class ValidationOutcome(BaseModel):
    passed: bool
    errors: list[str] = []


class CheckTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    method: str = "GET"
    headers: dict[str, str] = {}
    body: Any = None
    expected_status: list[int] = [200]
    auth_type: AuthType = AuthType.NONE
    auth_value: Optional[SecretStr] = None
    validation: Optional[ValidationSpec] = None
    timeout: Optional[float] = None  # seconds; None uses settings.check_timeout_seconds


class CheckResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    response_time_ms: int
    status_code: Optional[int] = None
    response_body: Any = None
    response_headers: dict[str, str] = {}
    validation_passed: bool = False
    validation_errors: list[str] = []
    error_message: Optional[str] = None
    request_method: str = "GET"
    request_headers: dict[str, str] = {}
    checked_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="before")
    @classmethod
    def _failed_checks_never_validate(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("success"):
            data = {**data, "validation_passed": False}
        return data


class EdgeLocation(BaseModel):
    colo: str
    city: Optional[str] = None
    country: Optional[str] = None
    continent: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class RegionResult(CheckResult):
    region: Region
    status: SiteStatus = SiteStatus.OFFLINE
    resolved_ip: Optional[str] = None
    dns_lookup_time_ms: Optional[int] = None
    connect_time_ms: Optional[int] = None
    tls_handshake_time_ms: Optional[int] = None
    # True when the sub-timings are percentage estimates rather than measured phases
    timings_estimated: bool = False
    edge_region: Optional[Region] = None
    edge_location: Optional[EdgeLocation] = None


class SecurityCheckResult(BaseModel):
    success: bool = True
    error_message: Optional[str] = None

    has_hsts: bool = False
    hsts_max_age: Optional[int] = None
    hsts_includes_subdomains: bool = False
    has_csp: bool = False
    csp_policy: Optional[str] = None
    has_x_frame_options: bool = False
    x_frame_options: Optional[str] = None
    has_x_content_type: bool = False
    has_x_xss_protection: bool = False
    has_referrer_policy: bool = False
    referrer_policy: Optional[str] = None
    has_permissions_policy: bool = False

    security_score: int = 0
    grade: Grade = Grade.F
    issues: list[str] = []
    recommendations: list[str] = []
    checked_at: datetime = Field(default_factory=utcnow)


class RegionSummary(BaseModel):
    region: Region
    response_time_ms: int
    name: str
    location: str


class RegionStatistics(BaseModel):
    average_response_time_ms: int
    fastest: Optional[RegionSummary] = None
    slowest: Optional[RegionSummary] = None
    overall_status: SiteStatus


class Site(BaseModel):
    id: str
    name: str
    url: str = ""
    organization_id: str


class Incident(BaseModel):
    id: str
    status: str = "INVESTIGATING"
    severity: Severity = Severity.HIGH
    ai_summary: Optional[str] = None
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    duration_ms: Optional[int] = None


class NotificationEvent(BaseModel):
    kind: EventKind
    incident: Incident
    site: Site


class Recipient(BaseModel):
    email: str
    role: UserRole = UserRole.USER
    notify_on_incident: bool = True
    notify_on_degradation: bool = True
    notify_on_resolution: bool = True
    notify_only_admins: bool = False
    channel_enabled: dict[Channel, bool] = {Channel.EMAIL: True}
    # Slack webhook URL, SMS phone number, custom webhook URL keyed by channel
    channel_config: dict[Channel, str] = {}
    site_subscriptions: set[str] = set()


class PlanLimits(BaseModel):
    plan: str = "FREE"
    allowed_channels: set[Channel] = {Channel.EMAIL}


class DispatchSummary(BaseModel):
    sent: int = 0
    total: int = 0
    channels: dict[Channel, int] = Field(default_factory=lambda: {c: 0 for c in Channel})


# --- API request/response models ---


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    webhooks_active: int = 0


class RegionCheckRequest(BaseModel):
    url: str
    regions: Optional[list[str]] = None


class RegionCheckResponse(BaseModel):
    results: list[RegionResult]
    statistics: RegionStatistics


class SecurityCheckRequest(BaseModel):
    url: str


class StatusEntry(BaseModel):
    success: bool
    status: SiteStatus


class AggregateRequest(BaseModel):
    results: list[StatusEntry] = []


class AggregateResponse(BaseModel):
    status: SiteStatus


class WebhookCreate(BaseModel):
    organization_id: str
    url: str
    events: list[WebhookEvent]
    secret: Optional[str] = None
    is_active: bool = True


class WebhookRead(BaseModel):
    id: int
    organization_id: str
    url: str
    events: list[str]
    is_active: bool
    last_triggered_at: Optional[datetime] = None


class DispatchRequest(BaseModel):
    event: NotificationEvent
    recipients: list[Recipient] = []
    plan: Optional[str] = None


class DispatchResponse(BaseModel):
    summary: DispatchSummary
    webhooks_triggered: int = 0
