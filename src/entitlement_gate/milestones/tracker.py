"""One-time expiry reminders for trials and paid plans.

Milestones are remaining-day thresholds (15, 7, 3, 2, 1, 0). Each one fires
at most once per account session, identified as ``{kind}-{milestone}``
where kind is ``plan-expiry`` for paid tiers and ``trial-expiry`` otherwise.

Usage::

    tracker = MilestoneTracker()

    # On every poll / settings reload:
    event = tracker.dispatch(entitlement, emit=bus_publish)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from entitlement_gate.clock import Clock, utc_now
from entitlement_gate.models import (
    TRIAL_DAYS,
    EntitlementState,
    MilestoneEvent,
    MilestoneRecord,
)

logger = logging.getLogger(__name__)

PLAN_KIND = "plan-expiry"
TRIAL_KIND = "trial-expiry"


def milestone_for(days_remaining: int) -> int | None:
    """Map remaining days to the milestone they fall under, if any."""
    if days_remaining > TRIAL_DAYS:
        return None
    if days_remaining > 7:
        return 15
    if days_remaining > 3:
        return 7
    if days_remaining > 0:
        return days_remaining
    return 0


def milestone_id_for(entitlement: EntitlementState) -> str | None:
    milestone = milestone_for(entitlement.days_remaining)
    if milestone is None:
        return None
    kind = PLAN_KIND if entitlement.has_paid_plan else TRIAL_KIND
    return f"{kind}-{milestone}"


def _build_event(
    entitlement: EntitlementState, milestone: int, now: datetime,
) -> MilestoneEvent:
    days = entitlement.days_remaining
    plan = entitlement.plan_title

    if entitlement.has_paid_plan:
        kind = PLAN_KIND
        title = "Plan Expiring Soon"
        if milestone == 0:
            message = (
                f"Your {plan} plan has expired. "
                "Please renew to continue using all features."
            )
        else:
            message = (
                f"Your {plan} plan expires in {days} days. "
                "Please renew to keep your features."
            )
    else:
        kind = TRIAL_KIND
        title = "Free Trial Ending"
        if milestone == 0:
            message = (
                "Your free trial has ended. "
                "Subscribe to continue using all features."
            )
        else:
            message = (
                f"Your free trial ends in {days} days. "
                "Subscribe to keep all features."
            )

    return MilestoneEvent(
        milestone_id=f"{kind}-{milestone}",
        milestone=milestone,
        kind=kind,
        title=title,
        message=message,
        fired_at=now,
    )


def next_milestone(
    entitlement: EntitlementState,
    already_fired: set[str],
    now: datetime | None = None,
) -> MilestoneEvent | None:
    """Return the milestone event due for *entitlement*, or None.

    The event's id is added to *already_fired* before returning, so a second
    call with the same set never yields the same event twice.
    """
    milestone = milestone_for(entitlement.days_remaining)
    if milestone is None:
        return None

    event = _build_event(entitlement, milestone, now or utc_now())
    if event.milestone_id in already_fired:
        return None

    already_fired.add(event.milestone_id)
    return event


class MilestoneTracker:
    """Session-scoped record of announced milestones.

    Created at login, cleared on logout. The record is append-only while the
    session lives.
    """

    def __init__(self, _clock: Clock | None = None) -> None:
        self._clock = _clock or utc_now
        self._records: dict[str, MilestoneRecord] = {}

    @property
    def fired_ids(self) -> set[str]:
        return set(self._records)

    @property
    def records(self) -> list[MilestoneRecord]:
        return sorted(self._records.values(), key=lambda r: r.fired_at)

    def has_fired(self, milestone_id: str) -> bool:
        return milestone_id in self._records

    def seed(self, milestone_ids: Iterable[str]) -> None:
        """Mark milestones already announced elsewhere (e.g. server-side)."""
        now = self._clock()
        for mid in milestone_ids:
            self._records.setdefault(mid, MilestoneRecord(milestone_id=mid, fired_at=now))

    def next_milestone_event(self, entitlement: EntitlementState) -> MilestoneEvent | None:
        """Return and commit the due milestone event, if any."""
        fired = self.fired_ids
        event = next_milestone(entitlement, fired, now=self._clock())
        if event is not None:
            self._commit(event)
        return event

    def dispatch(
        self,
        entitlement: EntitlementState,
        emit: Callable[[MilestoneEvent], None],
    ) -> MilestoneEvent | None:
        """Emit the due milestone event and commit it only if *emit* succeeds.

        A failed emit is logged and left uncommitted so the next poll retries.
        """
        event = next_milestone(entitlement, self.fired_ids, now=self._clock())
        if event is None:
            return None

        try:
            emit(event)
        except Exception:
            logger.exception("Failed to emit milestone %s", event.milestone_id)
            return None

        self._commit(event)
        logger.info("Milestone %s fired", event.milestone_id)
        return event

    def clear(self) -> None:
        self._records.clear()

    def _commit(self, event: MilestoneEvent) -> None:
        self._records[event.milestone_id] = MilestoneRecord(
            milestone_id=event.milestone_id, fired_at=event.fired_at,
        )
