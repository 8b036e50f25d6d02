"""EntitlementGate: the session-scoped public entry point.

Wires the resolver, page policy, maintenance gate, milestone tracker and
unread tracker around one user snapshot and (optionally) a backend client.

Usage::

    from entitlement_gate import BackendClient, EntitlementGate

    gate = EntitlementGate(
        user={"createdAt": "2026-10-01T09:00:00Z", "plan": "free"},
        client=BackendClient("https://api.example.com/api", token="eyJ..."),
    )
    decision = gate.evaluate_route("/quotations")
    gate.refresh_maintenance()
    toast = gate.poll_unread_delta()
    gate.next_milestone_event()
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from entitlement_gate.access.policy import (
    DEFAULT_PAGE_POLICY,
    PagePolicy,
    can_access_page,
    evaluate_route,
    requires_gold_plan,
    should_show_trial_modal,
)
from entitlement_gate.api.client import BackendClient, BackendError
from entitlement_gate.clock import Clock, utc_now
from entitlement_gate.entitlement.resolver import resolve_entitlement
from entitlement_gate.events.bus import EventBus, UIEvent
from entitlement_gate.maintenance.gate import parse_status
from entitlement_gate.milestones.tracker import MilestoneTracker
from entitlement_gate.models import (
    EntitlementState,
    MaintenanceStatus,
    MilestoneEvent,
    Notification,
    RouteDecision,
    Toast,
    UserSnapshot,
)
from entitlement_gate.notifications.unread import UnreadDeltaTracker

logger = logging.getLogger(__name__)


class GateError(Exception):
    """Raised for configuration or initialization errors."""


def _as_snapshot(user: UserSnapshot | dict[str, Any] | None) -> UserSnapshot | None:
    if user is None or isinstance(user, UserSnapshot):
        return user
    return UserSnapshot.model_validate(user)


class EntitlementGate:
    """Public API for one authenticated (or anonymous) session.

    Pure decisions (entitlement, page access) are recomputed on every call
    from the current snapshot. Session state (fired milestones, unread
    baseline, last maintenance status) lives here until ``logout()``.

    Results of backend calls carry the session generation they were issued
    under; once ``logout()`` bumps the generation, late results are dropped.
    """

    def __init__(
        self,
        user: UserSnapshot | dict[str, Any] | None = None,
        client: BackendClient | None = None,
        bus: EventBus | None = None,
        page_policy: PagePolicy | None = None,
        _clock: Clock | None = None,
    ) -> None:
        self._user = _as_snapshot(user)
        self._client = client
        self._bus = bus or EventBus()
        self._policy = page_policy or DEFAULT_PAGE_POLICY
        self._clock = _clock or utc_now

        self._generation = 0
        self._milestones = MilestoneTracker(_clock=self._clock)
        self._unread = UnreadDeltaTracker()
        self._maintenance = MaintenanceStatus(loading=True)
        self._trial_modal_shown = False

    # --- Accessors ---

    @property
    def user(self) -> UserSnapshot | None:
        return self._user

    @property
    def client(self) -> BackendClient | None:
        return self._client

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def page_policy(self) -> PagePolicy:
        return self._policy

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def milestones(self) -> MilestoneTracker:
        return self._milestones

    @property
    def unread(self) -> UnreadDeltaTracker:
        return self._unread

    @property
    def maintenance(self) -> MaintenanceStatus:
        return self._maintenance

    @property
    def is_authenticated(self) -> bool:
        if self._user is None:
            return False
        return self._client is None or self._client.is_authenticated

    # --- Session lifecycle ---

    def update_user(self, user: UserSnapshot | dict[str, Any]) -> None:
        """Replace the snapshot (login or periodic settings reload)."""
        self._user = _as_snapshot(user)

    def logout(self) -> None:
        """Tear down session state. In-flight results are discarded."""
        self._generation += 1
        self._user = None
        self._milestones.clear()
        self._unread.reset()
        self._maintenance = MaintenanceStatus(loading=True)
        self._trial_modal_shown = False
        if self._client is not None:
            self._client.set_token(None)
        logger.info("Session closed (generation %d)", self._generation)

    def is_current(self, generation: int | None) -> bool:
        return generation is None or generation == self._generation

    # --- Entitlement & access ---

    def resolve_entitlement(self, now: datetime | None = None) -> EntitlementState:
        return resolve_entitlement(self._user or UserSnapshot(), now or self._clock())

    def can_access_page(self, path: str) -> bool:
        return can_access_page(self.resolve_entitlement(), path, self._policy)

    def requires_gold_plan(self, path: str) -> bool:
        return requires_gold_plan(path, self._policy)

    def evaluate_route(self, path: str) -> RouteDecision:
        return evaluate_route(
            self.resolve_entitlement(), path, self._maintenance, self._policy,
        )

    def should_show_trial_modal(self) -> bool:
        return should_show_trial_modal(
            self.resolve_entitlement(), self._trial_modal_shown,
        )

    def mark_trial_modal_shown(self) -> None:
        self._trial_modal_shown = True

    # --- Maintenance ---

    def is_maintenance_affected(self) -> bool:
        return self._maintenance.is_affected

    def fetch_maintenance_payload(self) -> dict[str, Any]:
        """Blocking fetch of the endpoint matching the session's auth state."""
        client = self._require_client()
        if self.is_authenticated:
            return client.maintenance_check()
        return client.maintenance_status()

    def apply_maintenance(
        self,
        payload: dict[str, Any] | None,
        generation: int | None = None,
    ) -> MaintenanceStatus:
        """Fold a maintenance payload into the session.

        ``None`` means the fetch failed: the previous status is kept and
        loading ends, so a backend error never blocks the user.
        """
        if not self.is_current(generation):
            logger.debug("Discarding maintenance result from a closed session")
            return self._maintenance

        if payload is None:
            self._maintenance = self._maintenance.model_copy(update={"loading": False})
            return self._maintenance

        previous = self._maintenance
        self._maintenance = parse_status(payload, self.is_authenticated)
        if previous.is_affected != self._maintenance.is_affected:
            logger.info(
                "Maintenance status changed: affected=%s", self._maintenance.is_affected,
            )
            self._bus.publish_nowait(UIEvent.MAINTENANCE_CHANGED, self._maintenance)
        return self._maintenance

    def refresh_maintenance(self) -> MaintenanceStatus:
        generation = self._generation
        try:
            payload = self.fetch_maintenance_payload()
        except (BackendError, GateError):
            logger.exception("Failed to check maintenance status")
            payload = None
        return self.apply_maintenance(payload, generation)

    # --- Unread notifications ---

    def apply_unread_count(
        self,
        count: int,
        sequence: int | None = None,
        generation: int | None = None,
    ) -> bool:
        """Apply a polled count; True means the newest unread should be fetched."""
        if not self.is_current(generation):
            logger.debug("Discarding unread count from a closed session")
            return False
        return self._unread.observe(count, sequence)

    def show_toast(
        self,
        notification: Notification | None,
        generation: int | None = None,
    ) -> Toast | None:
        if notification is None or not self.is_current(generation):
            return None
        toast = Toast(
            title=notification.title,
            message=notification.message,
            level=notification.toast_level,
        )
        self._bus.publish_nowait(UIEvent.TOAST, toast)
        return toast

    def poll_unread_delta(self) -> Toast | None:
        """One unread poll cycle: count, compare, and toast the newest arrival."""
        client = self._require_client()
        generation = self._generation
        sequence = self._unread.next_sequence()
        try:
            count = client.unread_count()
        except BackendError:
            logger.debug("Error fetching unread count", exc_info=True)
            return None

        if not self.apply_unread_count(count, sequence, generation):
            return None

        try:
            latest = client.latest_unread()
        except BackendError:
            # Best effort: the badge count above stays authoritative.
            logger.debug("Error fetching latest notification for toast", exc_info=True)
            return None
        return self.show_toast(latest, generation)

    def mark_read(self, notification_id: str) -> bool:
        try:
            self._require_client().mark_read(notification_id)
        except BackendError:
            logger.debug("Error marking %s as read", notification_id, exc_info=True)
            return False
        self._unread.sync_count(self._unread.last_count - 1)
        return True

    def mark_all_read(self) -> bool:
        try:
            self._require_client().mark_all_read()
        except BackendError:
            logger.debug("Error marking all as read", exc_info=True)
            return False
        self._unread.sync_count(0)
        return True

    def dismiss(self, notification_id: str) -> bool:
        try:
            self._require_client().dismiss(notification_id)
        except BackendError:
            logger.debug("Error dismissing %s", notification_id, exc_info=True)
            return False
        return True

    def clear_all(self, notification_ids: list[str]) -> bool:
        """Dismiss every listed notification and zero the badge."""
        if not notification_ids:
            return False
        client = self._require_client()
        try:
            for nid in notification_ids:
                client.dismiss(nid)
        except BackendError:
            logger.debug("Error clearing notifications", exc_info=True)
            return False
        self._unread.sync_count(0)
        return True

    # --- Milestones ---

    def next_milestone_event(self) -> MilestoneEvent | None:
        """Emit the due expiry reminder over the bus; committed only on success."""
        if self._user is None:
            return None
        return self._milestones.dispatch(
            self.resolve_entitlement(),
            emit=lambda event: self._bus.publish(UIEvent.MILESTONE, event),
        )

    # --- Helpers ---

    def _require_client(self) -> BackendClient:
        if self._client is None:
            raise GateError("This operation needs a BackendClient")
        return self._client
