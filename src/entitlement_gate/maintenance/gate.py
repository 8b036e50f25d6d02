"""Maintenance mode gating.

Decides whether a user is blocked by the admin-controlled maintenance
window. Evaluation order matters:

1. Disabled maintenance never affects anyone
2. Anonymous visitors are always affected (they have no tier to exempt)
3. Admins are exempt when ``allow_admin_access`` is set, even if their
   own plan tier is listed
4. Otherwise the user's tier must be listed (or ``all``)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from entitlement_gate.models import (
    ADMIN_ROLES,
    DEFAULT_MAINTENANCE_MESSAGE,
    DEFAULT_MAINTENANCE_TITLE,
    AffectedTier,
    MaintenanceConfig,
    MaintenanceStatus,
    PlanTier,
    UserRole,
    UserSnapshot,
    ensure_utc,
    normalize_role,
    normalize_tier,
)

logger = logging.getLogger(__name__)


def _as_affected_tier(tier: PlanTier) -> AffectedTier:
    # Users without a plan are managed as the free tier.
    if tier in (PlanTier.NONE, PlanTier.FREE):
        return AffectedTier.FREE
    return AffectedTier(tier.value)


def is_affected(
    config: MaintenanceConfig,
    user_tier: PlanTier | str | None,
    user_role: UserRole | str | None,
    is_authenticated: bool = True,
) -> bool:
    """True if the maintenance window blocks this user."""
    if not config.is_enabled:
        return False

    if not is_authenticated:
        return True

    if config.allow_admin_access and normalize_role(user_role) in ADMIN_ROLES:
        return False

    if AffectedTier.ALL in config.affected_tiers:
        return True
    return _as_affected_tier(normalize_tier(user_tier)) in config.affected_tiers


def status_for(
    config: MaintenanceConfig,
    user: UserSnapshot | None,
    is_authenticated: bool = True,
) -> MaintenanceStatus:
    """Build the per-user maintenance status for *user*."""
    affected = is_affected(
        config,
        user.tier if user is not None else None,
        user.role if user is not None else None,
        is_authenticated=is_authenticated and user is not None,
    )
    return MaintenanceStatus(
        is_affected=affected,
        is_enabled=config.is_enabled,
        title=config.title,
        message=config.message,
        estimated_end_time=config.estimated_end_time,
    )


def count_affected(config: MaintenanceConfig, users: Iterable[UserSnapshot]) -> int:
    """Preview how many users *config* would block once enabled.

    Admins and superadmins are never counted, whatever ``allow_admin_access``
    says, so the preview reflects the customer base.
    """
    count = 0
    for user in users:
        if user.role in ADMIN_ROLES:
            continue
        if AffectedTier.ALL in config.affected_tiers:
            count += 1
        elif _as_affected_tier(user.tier) in config.affected_tiers:
            count += 1
    return count


def parse_status(
    payload: dict[str, Any], is_authenticated: bool,
) -> MaintenanceStatus:
    """Turn a ``/maintenance/status`` or ``/maintenance/check`` payload into a status.

    The public endpoint has no ``isAffected`` field: an anonymous visitor is
    affected whenever maintenance is enabled. A payload that is not a mapping
    yields the unaffected default.
    """
    if not isinstance(payload, dict):
        logger.warning("Ignoring malformed maintenance payload: %r", payload)
        return MaintenanceStatus()

    is_enabled = bool(payload.get("isEnabled", False))
    if is_authenticated:
        affected = bool(payload.get("isAffected", False))
    else:
        affected = is_enabled

    end_time = None
    raw_end = payload.get("estimatedEndTime")
    if raw_end:
        try:
            end_time = ensure_utc(MaintenanceStatus(estimated_end_time=raw_end).estimated_end_time)
        except ValidationError:
            logger.debug("Ignoring unparseable estimatedEndTime: %r", raw_end)

    return MaintenanceStatus(
        is_affected=affected,
        is_enabled=is_enabled,
        title=payload.get("title") or DEFAULT_MAINTENANCE_TITLE,
        message=payload.get("message") or DEFAULT_MAINTENANCE_MESSAGE,
        estimated_end_time=end_time,
    )
