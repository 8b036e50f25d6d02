"""Maintenance mode endpoints: public status, per-user check, admin settings."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from entitlement_gate.maintenance.gate import count_affected, status_for
from entitlement_gate.models import ADMIN_ROLES
from entitlement_gate.server.auth import SessionClaims, require_admin, require_auth
from entitlement_gate.server.schemas import (
    AffectedCountResponse,
    MaintenanceCheckResponse,
    MaintenancePublicStatus,
    MaintenanceSettingsResponse,
    MaintenanceSettingsUpdate,
    MaintenanceToggleResponse,
    MaintenanceUpdateResponse,
    sorted_tiers,
)
from entitlement_gate.server.store import MaintenanceStore, UserDirectory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/maintenance", tags=["maintenance"])

_store: MaintenanceStore | None = None
_users: UserDirectory | None = None


def init_router(store: MaintenanceStore, users: UserDirectory) -> None:
    global _store, _users  # noqa: PLW0603
    _store = store
    _users = users


def _svc() -> MaintenanceStore:
    assert _store is not None, "MaintenanceStore not initialized"
    return _store


def _dir() -> UserDirectory:
    assert _users is not None, "UserDirectory not initialized"
    return _users


def _settings_response() -> MaintenanceSettingsResponse:
    store = _svc()
    s = store.settings
    return MaintenanceSettingsResponse(
        is_enabled=s.is_enabled,
        affected_tiers=sorted_tiers(s),
        allow_admin_access=s.allow_admin_access,
        title=s.title,
        message=s.message,
        estimated_end_time=s.estimated_end_time,
        enabled_by=store.enabled_by,
        enabled_at=store.enabled_at,
        updated_at=store.updated_at,
    )


@router.get("/status", response_model=MaintenancePublicStatus)
def maintenance_status() -> MaintenancePublicStatus:
    """Public, unauthenticated maintenance status."""
    s = _svc().settings
    return MaintenancePublicStatus(
        is_enabled=s.is_enabled,
        affected_tiers=sorted_tiers(s),
        title=s.title,
        message=s.message,
        estimated_end_time=s.estimated_end_time,
        allow_admin_access=s.allow_admin_access,
    )


@router.get(
    "/check",
    response_model=MaintenanceCheckResponse,
    response_model_exclude_none=True,
)
def maintenance_check(
    claims: Annotated[SessionClaims, Depends(require_auth)],
) -> MaintenanceCheckResponse:
    """Whether the caller is blocked by the current maintenance window."""
    user = _dir().get(claims.sub)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    settings = _svc().settings
    if settings.allow_admin_access and user.role in ADMIN_ROLES:
        return MaintenanceCheckResponse(
            is_affected=False,
            is_enabled=settings.is_enabled,
            reason="Admin bypass",
        )

    status = status_for(settings, user)
    return MaintenanceCheckResponse(
        is_affected=status.is_affected,
        is_enabled=status.is_enabled,
        title=status.title,
        message=status.message,
        estimated_end_time=status.estimated_end_time,
        affected_tiers=sorted_tiers(settings),
    )


@router.get("/settings", response_model=MaintenanceSettingsResponse)
def get_settings(
    _admin: Annotated[SessionClaims, Depends(require_admin)],
) -> MaintenanceSettingsResponse:
    return _settings_response()


@router.put("/settings", response_model=MaintenanceUpdateResponse)
def update_settings(
    body: MaintenanceSettingsUpdate,
    admin: Annotated[SessionClaims, Depends(require_admin)],
) -> MaintenanceUpdateResponse:
    """Partially update the settings; only the fields sent are changed."""
    changes = {
        name: getattr(body, name)
        for name in body.model_fields_set
        # Null booleans/lists/strings are ignored; only the end time may be cleared.
        if getattr(body, name) is not None or name == "estimated_end_time"
    }
    updated = _svc().update(changes, actor=admin.sub)
    logger.info(
        "Maintenance settings updated by %s (enabled=%s, tiers=%s)",
        admin.sub,
        updated.is_enabled,
        sorted_tiers(updated),
    )
    return MaintenanceUpdateResponse(
        message="Maintenance mode enabled" if updated.is_enabled else "Maintenance mode disabled",
        settings=_settings_response(),
    )


@router.post("/toggle", response_model=MaintenanceToggleResponse)
def toggle_maintenance(
    admin: Annotated[SessionClaims, Depends(require_admin)],
) -> MaintenanceToggleResponse:
    updated = _svc().toggle(actor=admin.sub)
    logger.info("Maintenance toggled by %s: enabled=%s", admin.sub, updated.is_enabled)
    return MaintenanceToggleResponse(
        message="Maintenance mode enabled" if updated.is_enabled else "Maintenance mode disabled",
        is_enabled=updated.is_enabled,
    )


@router.get("/affected-count", response_model=AffectedCountResponse)
def affected_count(
    _admin: Annotated[SessionClaims, Depends(require_admin)],
) -> AffectedCountResponse:
    """How many non-admin users the current tier selection covers."""
    return AffectedCountResponse(
        affected_count=count_affected(_svc().settings, _dir().all()),
    )
