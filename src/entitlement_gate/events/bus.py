"""In-process publish/subscribe bus for UI-facing signals.

Replaces string-matched global window events with an enumerated set of
event names. Handlers run synchronously in subscription order.

``publish()`` lets handler exceptions propagate to the publisher, which
is what callers that must know about delivery failures (milestone dispatch)
rely on. ``publish_nowait()`` is fire-and-forget: failures are logged and
the remaining handlers still run.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class UIEvent(enum.StrEnum):
    CLOSE_PLAN = "close_plan"
    OPEN_HELP = "open_help"
    NOTIFICATION_NAVIGATE = "notification_navigate"
    MILESTONE = "milestone"
    TOAST = "toast"
    MAINTENANCE_CHANGED = "maintenance_changed"


class EventBus:
    """Typed event emitter.

    Subscription changes are guarded by a lock; handlers are called outside
    of it so a handler may subscribe or unsubscribe.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[UIEvent, list[Handler]] = {}

    def subscribe(self, event: UIEvent, handler: Handler) -> Callable[[], None]:
        """Register *handler* for *event*. Returns an unsubscribe callable."""
        event = UIEvent(event)
        with self._lock:
            self._handlers.setdefault(event, []).append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event, [])
                if handler in handlers:
                    handlers.remove(handler)

        return _unsubscribe

    def handler_count(self, event: UIEvent) -> int:
        with self._lock:
            return len(self._handlers.get(UIEvent(event), []))

    def publish(self, event: UIEvent, payload: Any = None) -> int:
        """Deliver *payload* to every handler; returns how many ran.

        The first handler exception propagates.
        """
        handlers = self._snapshot(event)
        for handler in handlers:
            handler(payload)
        return len(handlers)

    def publish_nowait(self, event: UIEvent, payload: Any = None) -> int:
        """Deliver *payload*, logging handler failures. Returns successes."""
        delivered = 0
        for handler in self._snapshot(event):
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler for %s failed", event)
                continue
            delivered += 1
        return delivered

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    def _snapshot(self, event: UIEvent) -> list[Handler]:
        with self._lock:
            return list(self._handlers.get(UIEvent(event), []))
