"""In-memory maintenance settings and user directory.

The service keeps a single maintenance settings document and a read-only
view of users (tier and role) for per-user checks. Both live in memory;
durable storage belongs to the main backend.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from entitlement_gate.models import MaintenanceConfig, UserSnapshot


class MaintenanceStore:
    """Holds the singleton maintenance settings.

    Thread-safe via a lock on all mutations.
    """

    def __init__(self, settings: MaintenanceConfig | None = None) -> None:
        self._lock = threading.Lock()
        self._settings = settings or MaintenanceConfig()
        self._enabled_by: str | None = None
        self._enabled_at: datetime | None = None
        self._updated_at = datetime.now(tz=UTC)

    @property
    def settings(self) -> MaintenanceConfig:
        return self._settings

    @property
    def enabled_by(self) -> str | None:
        return self._enabled_by

    @property
    def enabled_at(self) -> datetime | None:
        return self._enabled_at

    @property
    def updated_at(self) -> datetime:
        return self._updated_at

    def update(self, changes: Mapping[str, Any], actor: str) -> MaintenanceConfig:
        """Apply a partial update (snake_case field names) and validate it.

        Unknown affected tiers are dropped; an empty list means ``all``.
        """
        with self._lock:
            merged = self._settings.model_dump()
            merged.update(changes)
            updated = MaintenanceConfig.model_validate(merged)
            if changes.get("is_enabled") is True:
                self._enabled_by = actor
                self._enabled_at = datetime.now(tz=UTC)
            self._settings = updated
            self._updated_at = datetime.now(tz=UTC)
            return updated

    def toggle(self, actor: str) -> MaintenanceConfig:
        return self.update({"is_enabled": not self._settings.is_enabled}, actor)


class UserDirectory:
    """Lookup of user snapshots by id."""

    def __init__(self, users: Mapping[str, UserSnapshot] | None = None) -> None:
        self._lock = threading.Lock()
        self._users: dict[str, UserSnapshot] = dict(users or {})

    def get(self, user_id: str) -> UserSnapshot | None:
        with self._lock:
            return self._users.get(user_id)

    def put(self, user_id: str, user: UserSnapshot) -> None:
        with self._lock:
            self._users[user_id] = user

    def all(self) -> Iterable[UserSnapshot]:
        with self._lock:
            return list(self._users.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)
