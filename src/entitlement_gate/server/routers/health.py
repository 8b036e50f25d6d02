"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from entitlement_gate import __version__
from entitlement_gate.server.schemas import HealthResponse
from entitlement_gate.server.store import MaintenanceStore, UserDirectory

router = APIRouter(tags=["health"])

_store: MaintenanceStore | None = None
_users: UserDirectory | None = None


def init_router(store: MaintenanceStore, users: UserDirectory) -> None:
    global _store, _users  # noqa: PLW0603
    _store = store
    _users = users


@router.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    return HealthResponse(
        version=__version__,
        maintenance_enabled=_store.settings.is_enabled if _store else False,
        users=len(_users) if _users else 0,
    )
