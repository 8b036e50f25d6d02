"""Core data models for entitlement-gate.

Defines the schemas for:
- Plan tiers, user roles and maintenance tiers
- User snapshots (what the session knows about the caller)
- Entitlement state (derived trial / plan status)
- Maintenance configuration and per-user maintenance status
- Milestone events and records (one-time expiry reminders)
- Unread counter state (toast delta tracking)
- Route decisions (what the UI should do for a path)
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

TRIAL_DAYS = 15
PAID_PLAN_DAYS = 365

DEFAULT_MAINTENANCE_TITLE = "System Maintenance"
DEFAULT_MAINTENANCE_MESSAGE = (
    "We're currently performing maintenance. Please check back soon."
)

# --- Enums ---


class PlanTier(enum.StrEnum):
    NONE = "none"
    FREE = "free"
    SILVER = "silver"
    GOLD = "gold"


class UserRole(enum.StrEnum):
    USER = "user"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class AffectedTier(enum.StrEnum):
    ALL = "all"
    FREE = "free"
    SILVER = "silver"
    GOLD = "gold"


class RouteOutcome(enum.StrEnum):
    ALLOW = "allow"
    TRIAL_EXPIRED = "trial_expired"
    UPGRADE_REQUIRED = "upgrade_required"
    NOT_PERMITTED = "not_permitted"
    MAINTENANCE = "maintenance"


class ToastLevel(enum.StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


PAID_TIERS = frozenset({PlanTier.SILVER, PlanTier.GOLD})
ADMIN_ROLES = frozenset({UserRole.ADMIN, UserRole.SUPERADMIN})


def normalize_tier(raw: Any) -> PlanTier:
    """Map a raw plan value onto a PlanTier.

    Comparison is case-insensitive and exact: ``"Gold"`` is gold,
    ``"oldgold"`` is not. Missing or unrecognized values become free.
    """
    if raw is None:
        return PlanTier.FREE
    value = str(raw).strip().lower()
    try:
        return PlanTier(value)
    except ValueError:
        return PlanTier.FREE


def normalize_role(raw: Any) -> UserRole:
    """Map a raw role value onto a UserRole. Unknown roles are plain users."""
    if raw is None:
        return UserRole.USER
    try:
        return UserRole(str(raw).strip().lower())
    except ValueError:
        return UserRole.USER


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


# --- Snapshots ---


class _WireModel(BaseModel):
    """Accepts both snake_case and the backend's camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class SubscriptionInfo(_WireModel):
    """Subscription block attached to a profile."""

    tier: str | None = None
    days_remaining: int | None = None
    end_date: datetime | None = None

    @field_validator("end_date")
    @classmethod
    def _utc_end_date(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v)


class UserSnapshot(_WireModel):
    """Point-in-time copy of the user/profile the session holds.

    Refreshed on login and on periodic settings reload. Resolvers read it,
    nothing in this package mutates it.
    """

    created_at: datetime | None = None
    plan: str | None = None
    plan_activated_at: datetime | None = None
    subscription: SubscriptionInfo | None = None
    role: UserRole = UserRole.USER

    @field_validator("created_at", "plan_activated_at")
    @classmethod
    def _utc_timestamps(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v)

    @field_validator("role", mode="before")
    @classmethod
    def _lenient_role(cls, v: Any) -> UserRole:
        return normalize_role(v)

    @property
    def raw_tier(self) -> str | None:
        """Plan value before normalization (plan, then subscription tier)."""
        if self.plan:
            return self.plan
        if self.subscription is not None and self.subscription.tier:
            return self.subscription.tier
        return None

    @property
    def tier(self) -> PlanTier:
        return normalize_tier(self.raw_tier)


# --- Entitlement ---


class EntitlementState(BaseModel):
    """Derived trial / plan status. Recomputed on every evaluation.

    ``tier`` keeps the normalized plan as given: ``none`` and ``free`` are both
    trial tiers and are treated alike by the page table and ``plan_title``.
    """

    model_config = ConfigDict(frozen=True)

    has_paid_plan: bool
    tier: PlanTier
    is_on_trial: bool
    is_expired: bool
    days_remaining: int = Field(ge=0)
    days_used: int = Field(0, ge=0)

    @property
    def is_gold(self) -> bool:
        return self.tier == PlanTier.GOLD

    @property
    def is_silver(self) -> bool:
        return self.tier == PlanTier.SILVER

    @property
    def can_use_features(self) -> bool:
        return not self.is_expired

    @property
    def days_expired(self) -> int:
        """Days since an expired trial ended (0 while active or paid)."""
        if not self.is_expired:
            return 0
        return max(0, self.days_used - TRIAL_DAYS)

    @property
    def percent_remaining(self) -> int:
        if self.has_paid_plan:
            return 100
        return round(self.days_remaining / TRIAL_DAYS * 100)

    @property
    def plan_title(self) -> str:
        if self.tier in (PlanTier.NONE, PlanTier.FREE):
            return "Free Trial"
        return self.tier.value.capitalize()


# --- Maintenance ---


def filter_affected_tiers(raw: Any) -> set[AffectedTier]:
    """Keep recognized tier names; an empty result means everyone."""
    if raw is None:
        return {AffectedTier.ALL}
    if isinstance(raw, str):
        raw = [raw]
    tiers: set[AffectedTier] = set()
    for item in raw:
        try:
            tiers.add(AffectedTier(str(item).strip().lower()))
        except ValueError:
            continue
    return tiers or {AffectedTier.ALL}


class MaintenanceConfig(_WireModel):
    """Admin-owned maintenance window settings. Read-only to the engine."""

    is_enabled: bool = False
    affected_tiers: set[AffectedTier] = Field(
        default_factory=lambda: {AffectedTier.ALL},
    )
    allow_admin_access: bool = True
    title: str = DEFAULT_MAINTENANCE_TITLE
    message: str = DEFAULT_MAINTENANCE_MESSAGE
    estimated_end_time: datetime | None = None

    @field_validator("affected_tiers", mode="before")
    @classmethod
    def _filter_tiers(cls, v: Any) -> set[AffectedTier]:
        return filter_affected_tiers(v)

    @field_validator("estimated_end_time")
    @classmethod
    def _utc_end(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v)


class MaintenanceStatus(BaseModel):
    """Whether the current session is blocked by maintenance mode."""

    is_affected: bool = False
    is_enabled: bool = False
    title: str = DEFAULT_MAINTENANCE_TITLE
    message: str = DEFAULT_MAINTENANCE_MESSAGE
    estimated_end_time: datetime | None = None
    loading: bool = False

    @property
    def blocks_ui(self) -> bool:
        return self.is_affected and not self.loading

    def visible_end_time(self, now: datetime) -> datetime | None:
        """The estimated end time, or None once it has passed."""
        if self.estimated_end_time is None or self.estimated_end_time < now:
            return None
        return self.estimated_end_time


# --- Milestones ---


class MilestoneEvent(BaseModel):
    """A one-time expiry reminder ready to be enqueued as a notification."""

    milestone_id: str
    milestone: int
    kind: str
    title: str
    message: str
    notification_type: str = "billing"
    fired_at: datetime


class MilestoneRecord(BaseModel):
    """A milestone that has already been announced this session."""

    milestone_id: str
    fired_at: datetime


# --- Notifications ---


class UnreadCounterState(BaseModel):
    """Session-scoped baseline for unread-count deltas."""

    model_config = ConfigDict(frozen=True)

    last_count: int = Field(0, ge=0)
    is_first_load: bool = True
    last_sequence: int = Field(0, ge=0)


class UnreadObservation(BaseModel):
    should_fetch_latest: bool
    updated_state: UnreadCounterState


class Notification(_WireModel):
    """A user notification as returned by the backend."""

    id: str | None = Field(None, alias="_id")
    title: str = ""
    message: str = ""
    type: str = "info"
    read: bool = False
    milestone_id: str | None = None

    @field_validator("title", "message", mode="before")
    @classmethod
    def _null_text(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("type", mode="before")
    @classmethod
    def _null_type(cls, v: Any) -> Any:
        return "info" if v is None else v

    @property
    def toast_level(self) -> ToastLevel:
        if self.type == "error":
            return ToastLevel.ERROR
        if self.type == "warning":
            return ToastLevel.WARNING
        return ToastLevel.INFO


class Toast(BaseModel):
    title: str
    message: str
    level: ToastLevel = ToastLevel.INFO
    duration_ms: int = 5000


# --- Route decisions ---


class RouteDecision(BaseModel):
    """What the UI should do when the user navigates to a path."""

    path: str
    outcome: RouteOutcome
    reason: str

    @property
    def allowed(self) -> bool:
        return self.outcome == RouteOutcome.ALLOW
