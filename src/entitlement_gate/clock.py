"""Time sources.

Everything that needs "now" takes a ``Clock`` so tests can pin or advance
time deterministically.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

Clock = Callable[[], datetime]

DAY = timedelta(days=1)


def utc_now() -> datetime:
    """The default clock: timezone-aware UTC now."""
    return datetime.now(tz=UTC)


class ManualClock:
    """A controllable clock for simulations and tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or utc_now()

    def __call__(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta | None = None, *, days: float = 0) -> None:
        self._now += (delta or timedelta()) + timedelta(days=days)

    def set(self, when: datetime) -> None:
        self._now = when
