"""Tests for entitlement resolution (trial and paid plan timelines)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from entitlement_gate.entitlement.resolver import resolve_entitlement
from entitlement_gate.models import PlanTier, SubscriptionInfo, UserSnapshot

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=UTC)


def _trial_user(days_ago: float, plan: str | None = "free") -> UserSnapshot:
    return UserSnapshot(created_at=NOW - timedelta(days=days_ago), plan=plan)


class TestTrial:
    def test_fresh_account_has_full_trial(self) -> None:
        ent = resolve_entitlement(_trial_user(0), NOW)
        assert ent.is_on_trial is True
        assert ent.is_expired is False
        assert ent.days_remaining == 15
        assert ent.days_used == 0

    def test_partial_days_are_floored(self) -> None:
        ent = resolve_entitlement(_trial_user(4.9), NOW)
        assert ent.days_used == 4
        assert ent.days_remaining == 11

    def test_expired_after_sixteen_days(self) -> None:
        ent = resolve_entitlement(_trial_user(16), NOW)
        assert ent.is_expired is True
        assert ent.days_remaining == 0
        assert ent.days_expired == 1
        assert ent.can_use_features is False

    def test_expires_exactly_at_day_fifteen(self) -> None:
        ent = resolve_entitlement(_trial_user(15), NOW)
        assert ent.is_expired is True
        assert ent.days_remaining == 0

    def test_missing_created_at_is_fresh_trial(self) -> None:
        ent = resolve_entitlement(UserSnapshot(plan="free"), NOW)
        assert ent.is_on_trial is True
        assert ent.is_expired is False
        assert ent.days_remaining == 15

    def test_no_plan_is_trial(self) -> None:
        ent = resolve_entitlement(_trial_user(3, plan=None), NOW)
        assert ent.has_paid_plan is False
        assert ent.tier == PlanTier.FREE
        assert ent.days_remaining == 12

    def test_none_plan_keeps_none_tier(self) -> None:
        ent = resolve_entitlement(_trial_user(3, plan="none"), NOW)
        assert ent.tier == PlanTier.NONE
        assert ent.plan_title == "Free Trial"

    def test_free_and_none_are_equivalent_trial_tiers(self) -> None:
        free = resolve_entitlement(_trial_user(3, plan="free"), NOW)
        none = resolve_entitlement(_trial_user(3, plan="none"), NOW)
        assert free.tier == PlanTier.FREE
        assert free.plan_title == none.plan_title == "Free Trial"
        assert free.days_remaining == none.days_remaining
        assert free.has_paid_plan is none.has_paid_plan is False

    def test_naive_now_treated_as_utc(self) -> None:
        ent = resolve_entitlement(_trial_user(2), NOW.replace(tzinfo=None))
        assert ent.days_used == 2

    def test_percent_remaining(self) -> None:
        ent = resolve_entitlement(_trial_user(3), NOW)
        assert ent.percent_remaining == 80


class TestTrialProperties:
    def test_days_remaining_non_increasing(self) -> None:
        user = _trial_user(0)
        previous = None
        for hours in range(0, 24 * 20, 7):
            ent = resolve_entitlement(user, NOW + timedelta(hours=hours))
            if previous is not None:
                assert ent.days_remaining <= previous
            previous = ent.days_remaining

    @pytest.mark.parametrize("skew_days", [1, 30, 400])
    def test_created_in_future_never_negative(self, skew_days: int) -> None:
        user = UserSnapshot(created_at=NOW + timedelta(days=skew_days), plan="free")
        ent = resolve_entitlement(user, NOW)
        assert ent.days_used == 0
        assert ent.days_remaining == 15

    def test_long_expired_never_negative(self) -> None:
        ent = resolve_entitlement(_trial_user(900), NOW)
        assert ent.days_remaining == 0
        assert ent.days_used == 900


class TestPaidPlan:
    def test_gold_activated_ten_days_ago(self) -> None:
        user = UserSnapshot(plan="gold", plan_activated_at=NOW - timedelta(days=10))
        ent = resolve_entitlement(user, NOW)
        assert ent.has_paid_plan is True
        assert ent.is_gold is True
        assert ent.is_on_trial is False
        assert ent.is_expired is False
        assert ent.days_remaining == 355

    def test_partial_day_rounds_up(self) -> None:
        user = UserSnapshot(
            plan="silver", plan_activated_at=NOW - timedelta(days=10, hours=6),
        )
        ent = resolve_entitlement(user, NOW)
        assert ent.days_remaining == 355

    def test_falls_back_to_subscription_days(self) -> None:
        user = UserSnapshot(
            plan="silver", subscription=SubscriptionInfo(days_remaining=42),
        )
        assert resolve_entitlement(user, NOW).days_remaining == 42

    def test_falls_back_to_subscription_end_date(self) -> None:
        user = UserSnapshot(
            plan="gold",
            subscription=SubscriptionInfo(end_date=NOW + timedelta(days=20, hours=1)),
        )
        assert resolve_entitlement(user, NOW).days_remaining == 21

    def test_falls_back_to_full_term(self) -> None:
        ent = resolve_entitlement(UserSnapshot(plan="gold"), NOW)
        assert ent.days_remaining == 365

    def test_subscription_tier_used_when_plan_missing(self) -> None:
        user = UserSnapshot(subscription=SubscriptionInfo(tier="Silver", days_remaining=5))
        ent = resolve_entitlement(user, NOW)
        assert ent.tier == PlanTier.SILVER
        assert ent.days_remaining == 5

    def test_lapsed_paid_plan_is_not_expired(self) -> None:
        user = UserSnapshot(plan="gold", plan_activated_at=NOW - timedelta(days=400))
        ent = resolve_entitlement(user, NOW)
        assert ent.days_remaining == 0
        assert ent.is_expired is False
        assert ent.days_expired == 0

    def test_paid_percent_remaining_is_full(self) -> None:
        ent = resolve_entitlement(UserSnapshot(plan="gold"), NOW)
        assert ent.percent_remaining == 100
        assert ent.plan_title == "Gold"


class TestTierMatching:
    @pytest.mark.parametrize("raw", ["Gold", "GOLD", " gold "])
    def test_case_insensitive(self, raw: str) -> None:
        ent = resolve_entitlement(UserSnapshot(plan=raw), NOW)
        assert ent.tier == PlanTier.GOLD

    @pytest.mark.parametrize("raw", ["oldgold", "golden", "silverish", "platinum"])
    def test_substrings_do_not_match(self, raw: str) -> None:
        ent = resolve_entitlement(UserSnapshot(plan=raw, created_at=NOW), NOW)
        assert ent.tier == PlanTier.FREE
        assert ent.has_paid_plan is False

    def test_camel_case_payload(self) -> None:
        user = UserSnapshot.model_validate({
            "createdAt": "2026-06-10T12:00:00Z",
            "plan": "free",
            "role": "Admin",
        })
        ent = resolve_entitlement(user, NOW)
        assert ent.days_used == 5
        assert user.role == "admin"
