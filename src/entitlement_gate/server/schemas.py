"""Request/response schemas for the maintenance service (camelCase on the wire)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from entitlement_gate.models import MaintenanceConfig


class _Camel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MaintenancePublicStatus(_Camel):
    is_enabled: bool
    affected_tiers: list[str]
    title: str
    message: str
    estimated_end_time: datetime | None = None
    allow_admin_access: bool


class MaintenanceCheckResponse(_Camel):
    is_affected: bool
    is_enabled: bool
    title: str | None = None
    message: str | None = None
    estimated_end_time: datetime | None = None
    affected_tiers: list[str] | None = None
    reason: str | None = None


class MaintenanceSettingsResponse(_Camel):
    is_enabled: bool
    affected_tiers: list[str]
    allow_admin_access: bool
    title: str
    message: str
    estimated_end_time: datetime | None = None
    enabled_by: str | None = None
    enabled_at: datetime | None = None
    updated_at: datetime


class MaintenanceSettingsUpdate(_Camel):
    """Partial settings update. Omitted fields are left unchanged."""

    is_enabled: bool | None = None
    affected_tiers: list[str] | None = None
    allow_admin_access: bool | None = None
    title: str | None = None
    message: str | None = None
    estimated_end_time: datetime | None = None


class MaintenanceUpdateResponse(_Camel):
    message: str
    settings: MaintenanceSettingsResponse


class MaintenanceToggleResponse(_Camel):
    message: str
    is_enabled: bool


class AffectedCountResponse(_Camel):
    affected_count: int


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    maintenance_enabled: bool
    users: int


def sorted_tiers(config: MaintenanceConfig) -> list[str]:
    return sorted(t.value for t in config.affected_tiers)
