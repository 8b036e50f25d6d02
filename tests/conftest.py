"""Shared fixtures: a scripted stand-in for BackendClient."""

from __future__ import annotations

from collections import deque
from typing import Any

import pytest

from entitlement_gate.api.client import BackendError
from entitlement_gate.models import Notification


class FakeBackend:
    """Records calls and replays scripted responses.

    A scripted value that is an exception instance is raised instead of
    returned.
    """

    def __init__(self, token: str | None = "tok") -> None:
        self.token = token
        self.calls: list[str] = []
        self.counts: deque[Any] = deque()
        self.latest: deque[Any] = deque()
        self.maintenance: deque[Any] = deque()
        self.fail_mutations = False

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def set_token(self, token: str | None) -> None:
        self.token = token

    @staticmethod
    def _next(queue: deque[Any], default: Any) -> Any:
        value = queue.popleft() if queue else default
        if isinstance(value, Exception):
            raise value
        return value

    def unread_count(self) -> int:
        self.calls.append("unread_count")
        return self._next(self.counts, 0)

    def latest_unread(self) -> Notification | None:
        self.calls.append("latest_unread")
        return self._next(self.latest, None)

    def maintenance_check(self) -> dict[str, Any]:
        self.calls.append("maintenance_check")
        return self._next(self.maintenance, {"isAffected": False, "isEnabled": False})

    def maintenance_status(self) -> dict[str, Any]:
        self.calls.append("maintenance_status")
        return self._next(self.maintenance, {"isEnabled": False})

    def _mutate(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_mutations:
            raise BackendError(f"{name} failed", status=500)

    def mark_read(self, notification_id: str) -> None:
        self._mutate(f"mark_read:{notification_id}")

    def mark_all_read(self) -> None:
        self._mutate("mark_all_read")

    def dismiss(self, notification_id: str) -> None:
        self._mutate(f"dismiss:{notification_id}")


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()
