"""Entitlement resolution: trial and plan timelines.

Takes a user snapshot and a point in time and returns the derived
EntitlementState. Pure: no I/O, no clock reads, no mutation of the snapshot.

Paid plans (silver/gold) resolve days remaining through an ordered fallback:
1. plan activation date + 365 days
2. subscription.days_remaining as reported by billing
3. subscription.end_date
4. 365

Everyone else is on the 15-day trial counted from account creation.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from entitlement_gate.clock import DAY
from entitlement_gate.models import (
    PAID_PLAN_DAYS,
    PAID_TIERS,
    TRIAL_DAYS,
    EntitlementState,
    UserSnapshot,
    ensure_utc,
)


def _days_until(end: datetime, now: datetime) -> int:
    """Whole days left until *end*, rounded up, floored at zero."""
    return max(0, math.ceil((end - now) / DAY))


def _paid_days_remaining(
    user: UserSnapshot, now: datetime, plan_days: int,
) -> int:
    if user.plan_activated_at is not None:
        expiry = user.plan_activated_at + timedelta(days=plan_days)
        return _days_until(expiry, now)

    sub = user.subscription
    if sub is not None and sub.days_remaining is not None:
        return max(0, sub.days_remaining)
    if sub is not None and sub.end_date is not None:
        return _days_until(sub.end_date, now)

    return plan_days


def resolve_entitlement(
    user: UserSnapshot,
    now: datetime,
    *,
    trial_days: int = TRIAL_DAYS,
    plan_days: int = PAID_PLAN_DAYS,
) -> EntitlementState:
    """Resolve the entitlement state of *user* at *now*.

    Never raises for missing data: an absent ``created_at`` yields a fresh
    trial and an absent subscription yields the full paid term.
    """
    now = ensure_utc(now)
    tier = user.tier
    has_paid_plan = tier in PAID_TIERS

    if has_paid_plan:
        # Lapsed paid plans are a renewal concern, never an access block here.
        return EntitlementState(
            has_paid_plan=True,
            tier=tier,
            is_on_trial=False,
            is_expired=False,
            days_remaining=_paid_days_remaining(user, now, plan_days),
            days_used=0,
        )

    if user.created_at is None:
        return EntitlementState(
            has_paid_plan=False,
            tier=tier,
            is_on_trial=True,
            is_expired=False,
            days_remaining=trial_days,
            days_used=0,
        )

    days_used = max(0, math.floor((now - user.created_at) / DAY))
    days_remaining = max(0, trial_days - days_used)
    return EntitlementState(
        has_paid_plan=False,
        tier=tier,
        is_on_trial=True,
        is_expired=days_remaining <= 0,
        days_remaining=days_remaining,
        days_used=days_used,
    )
