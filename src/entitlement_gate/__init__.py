"""entitlement-gate: trial/plan entitlement and access gating for a studio SaaS."""

__version__ = "0.4.0"

from entitlement_gate.access.policy import (
    DEFAULT_PAGE_POLICY,
    GOLD_ONLY_PAGES,
    PLAN_PERMISSIONS,
    PagePolicy,
    PagePolicyError,
    can_access_page,
    evaluate_route,
    load_page_policy,
    requires_gold_plan,
)
from entitlement_gate.api.client import BackendClient, BackendError
from entitlement_gate.clock import ManualClock, utc_now
from entitlement_gate.config import GateConfig, find_config, load_config
from entitlement_gate.entitlement.resolver import resolve_entitlement
from entitlement_gate.events.bus import EventBus, UIEvent
from entitlement_gate.maintenance.gate import count_affected, is_affected
from entitlement_gate.milestones.tracker import MilestoneTracker, next_milestone
from entitlement_gate.models import (
    AffectedTier,
    EntitlementState,
    MaintenanceConfig,
    MaintenanceStatus,
    MilestoneEvent,
    MilestoneRecord,
    Notification,
    PlanTier,
    RouteDecision,
    RouteOutcome,
    SubscriptionInfo,
    Toast,
    UnreadCounterState,
    UnreadObservation,
    UserRole,
    UserSnapshot,
)
from entitlement_gate.notifications.unread import UnreadDeltaTracker, observe
from entitlement_gate.sdk.client import EntitlementGate, GateError
from entitlement_gate.sync.poller import Poller

__all__ = [
    "AffectedTier",
    "BackendClient",
    "BackendError",
    "can_access_page",
    "count_affected",
    "DEFAULT_PAGE_POLICY",
    "EntitlementGate",
    "EntitlementState",
    "evaluate_route",
    "EventBus",
    "find_config",
    "GateConfig",
    "GateError",
    "GOLD_ONLY_PAGES",
    "is_affected",
    "load_config",
    "load_page_policy",
    "MaintenanceConfig",
    "MaintenanceStatus",
    "ManualClock",
    "MilestoneEvent",
    "MilestoneRecord",
    "MilestoneTracker",
    "next_milestone",
    "Notification",
    "observe",
    "PagePolicy",
    "PagePolicyError",
    "PLAN_PERMISSIONS",
    "PlanTier",
    "Poller",
    "requires_gold_plan",
    "resolve_entitlement",
    "RouteDecision",
    "RouteOutcome",
    "SubscriptionInfo",
    "Toast",
    "UIEvent",
    "UnreadCounterState",
    "UnreadDeltaTracker",
    "UnreadObservation",
    "UserRole",
    "UserSnapshot",
    "utc_now",
    "__version__",
]
