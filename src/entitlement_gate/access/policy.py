"""Page access policy: which routes each plan tier may open.

The policy is a static table loaded once at process start (built-in
defaults or a YAML override) and never mutated afterwards.

Route evaluation layers the trial and maintenance checks on top of the
per-tier table:
1. Maintenance blocks every route for affected users
2. ``/payment`` is always reachable (the way out of every block)
3. An expired trial blocks everything else
4. Gold-only pages prompt an upgrade for non-gold tiers
5. Anything outside the tier's table is not permitted
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from entitlement_gate.models import (
    EntitlementState,
    MaintenanceStatus,
    PlanTier,
    RouteDecision,
    RouteOutcome,
    normalize_tier,
)

PAYMENT_PAGE = "/payment"

_BASE_PAGES = frozenset({
    "/dashboard",
    "/services",
    "/chat",
    "/team",
    "/events",
    "/projects",
    "/settings",
    PAYMENT_PAGE,
})

GOLD_ONLY_PAGES = frozenset({"/quotations", "/billing", "/policy"})

PLAN_PERMISSIONS: dict[PlanTier, frozenset[str]] = {
    PlanTier.NONE: _BASE_PAGES,
    PlanTier.FREE: _BASE_PAGES,
    PlanTier.SILVER: _BASE_PAGES,
    PlanTier.GOLD: _BASE_PAGES | GOLD_ONLY_PAGES,
}


class PagePolicyError(Exception):
    """Raised when a page policy file cannot be loaded."""


@dataclass(frozen=True)
class PagePolicy:
    """Static mapping of tier to allowed path prefixes."""

    permissions: dict[PlanTier, frozenset[str]] = field(
        default_factory=lambda: dict(PLAN_PERMISSIONS),
    )
    gold_only_pages: frozenset[str] = GOLD_ONLY_PAGES
    always_allowed: frozenset[str] = frozenset({PAYMENT_PAGE})

    def allowed_pages(self, tier: PlanTier) -> frozenset[str]:
        """Pages for *tier*; unknown tiers get the free set."""
        return self.permissions.get(tier, self.permissions[PlanTier.FREE])


DEFAULT_PAGE_POLICY = PagePolicy()


def _matches(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def can_access_page(
    entitlement: EntitlementState,
    path: str,
    policy: PagePolicy = DEFAULT_PAGE_POLICY,
) -> bool:
    """True if the tier's table covers *path* (exact or as a parent segment).

    Trial expiry is not considered here; see ``evaluate_route``.
    """
    if path in policy.always_allowed:
        return True
    return any(
        _matches(path, allowed)
        for allowed in policy.allowed_pages(entitlement.tier)
    )


def requires_gold_plan(
    path: str,
    policy: PagePolicy = DEFAULT_PAGE_POLICY,
) -> bool:
    """True if *path* is a gold-only page, whatever the user's tier."""
    return any(_matches(path, page) for page in policy.gold_only_pages)


def evaluate_route(
    entitlement: EntitlementState,
    path: str,
    maintenance: MaintenanceStatus | None = None,
    policy: PagePolicy = DEFAULT_PAGE_POLICY,
) -> RouteDecision:
    """Decide what the UI should do when the user navigates to *path*."""
    if maintenance is not None and maintenance.blocks_ui:
        return RouteDecision(
            path=path,
            outcome=RouteOutcome.MAINTENANCE,
            reason=maintenance.title,
        )

    if path in policy.always_allowed:
        return RouteDecision(
            path=path,
            outcome=RouteOutcome.ALLOW,
            reason="Payment page is always reachable",
        )

    if entitlement.is_expired and not entitlement.has_paid_plan:
        return RouteDecision(
            path=path,
            outcome=RouteOutcome.TRIAL_EXPIRED,
            reason="Free trial has ended",
        )

    if requires_gold_plan(path, policy) and not entitlement.is_gold:
        return RouteDecision(
            path=path,
            outcome=RouteOutcome.UPGRADE_REQUIRED,
            reason=f"{path} requires the Gold plan (current: {entitlement.plan_title})",
        )

    if not can_access_page(entitlement, path, policy):
        return RouteDecision(
            path=path,
            outcome=RouteOutcome.NOT_PERMITTED,
            reason=f"{path} is not available on the {entitlement.plan_title} plan",
        )

    return RouteDecision(path=path, outcome=RouteOutcome.ALLOW, reason="Allowed by plan")


def should_show_trial_modal(
    entitlement: EntitlementState, already_shown: bool,
) -> bool:
    """The trial info modal is shown once per session to active trial users."""
    return (
        not entitlement.has_paid_plan
        and not entitlement.is_expired
        and not already_shown
    )


def load_page_policy(path: str | Path) -> PagePolicy:
    """Load a page policy override from YAML.

    Expected shape::

        permissions:
          free: [/dashboard, /projects, /payment]
          gold: [/dashboard, /projects, /quotations, /payment]
        gold_only_pages: [/quotations]

    Tiers missing from ``permissions`` keep their built-in pages.
    """
    path = Path(path)
    if not path.is_file():
        raise PagePolicyError(f"Page policy file not found: {path}")

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise PagePolicyError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw, dict):
        raise PagePolicyError(f"Page policy must be a mapping: {path}")

    permissions = dict(PLAN_PERMISSIONS)
    raw_perms: Any = raw.get("permissions") or {}
    if not isinstance(raw_perms, dict):
        raise PagePolicyError(f"'permissions' must be a mapping: {path}")

    for tier_name, pages in raw_perms.items():
        tier = normalize_tier(tier_name)
        if tier.value != str(tier_name).strip().lower():
            raise PagePolicyError(f"Unknown tier '{tier_name}' in {path}")
        if not isinstance(pages, list):
            raise PagePolicyError(f"Pages for tier '{tier_name}' must be a list: {path}")
        permissions[tier] = frozenset(str(p) for p in pages) | {PAYMENT_PAGE}

    gold_only: Any = raw.get("gold_only_pages", sorted(GOLD_ONLY_PAGES))
    if not isinstance(gold_only, list):
        raise PagePolicyError(f"'gold_only_pages' must be a list: {path}")

    return PagePolicy(
        permissions=permissions,
        gold_only_pages=frozenset(str(p) for p in gold_only),
    )
