"""Unread-notification delta tracking.

Decides when a fresh unread count means "a new notification arrived, show a
toast for the newest one". The baseline always follows the server's count;
it is never incremented locally, so concurrent read/dismiss from other
clients cannot drift it.

Poll results may complete out of order. Each request can carry a sequence
number from ``UnreadDeltaTracker.next_sequence()``; a result older than the
last applied one is discarded instead of overwriting a newer count.
"""

from __future__ import annotations

import itertools

from entitlement_gate.models import UnreadCounterState, UnreadObservation


def observe(
    new_count: int,
    state: UnreadCounterState,
    sequence: int | None = None,
) -> UnreadObservation:
    """Fold a polled unread count into *state*.

    The first observation only records a baseline, so unread notifications
    that predate the session never produce toasts. A decrease never signals.
    """
    new_count = max(0, new_count)

    if sequence is not None and sequence < state.last_sequence:
        return UnreadObservation(should_fetch_latest=False, updated_state=state)

    last_sequence = state.last_sequence if sequence is None else sequence
    should_fetch = not state.is_first_load and new_count > state.last_count

    return UnreadObservation(
        should_fetch_latest=should_fetch,
        updated_state=UnreadCounterState(
            last_count=new_count,
            is_first_load=False,
            last_sequence=last_sequence,
        ),
    )


class UnreadDeltaTracker:
    """Session-scoped holder of the unread counter state."""

    def __init__(self) -> None:
        self._state = UnreadCounterState()
        self._sequence = itertools.count(1)

    @property
    def state(self) -> UnreadCounterState:
        return self._state

    @property
    def last_count(self) -> int:
        return self._state.last_count

    def next_sequence(self) -> int:
        """Sequence number to tag an outgoing unread-count request with."""
        return next(self._sequence)

    def observe(self, new_count: int, sequence: int | None = None) -> bool:
        """Apply a poll result; True means fetch the newest unread notification."""
        result = observe(new_count, self._state, sequence)
        self._state = result.updated_state
        return result.should_fetch_latest

    def sync_count(self, count: int) -> None:
        """Resync the baseline after a local read/clear without signalling.

        Polls issued before the resync are stale from here on.
        """
        self._state = self._state.model_copy(update={
            "last_count": max(0, count),
            "last_sequence": self.next_sequence(),
        })

    def reset(self) -> None:
        """Forget everything (logout). The next observation is a first load."""
        self._state = UnreadCounterState()
        self._sequence = itertools.count(1)
