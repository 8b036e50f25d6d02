"""Periodic refresh of maintenance status and unread count.

Runs two independent asyncio tasks on the caller's event loop:

- unread-count poll (default every 15 s)
- maintenance poll (default every 120 s)

Each tick finishes (or fails) before the task sleeps, so a task never
overlaps itself. Blocking HTTP calls run in a worker thread; every decision
and state update happens back on the event loop. Tick errors are logged and
never stop the loop.

Usage::

    async with Poller(gate) as poller:
        ...  # session is live

    # or, explicitly:
    poller = Poller(gate)
    poller.start()
    ...
    await poller.teardown()   # stop tasks + logout
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from entitlement_gate.api.client import BackendClient, BackendError
from entitlement_gate.config import DEFAULT_MAINTENANCE_INTERVAL, DEFAULT_UNREAD_INTERVAL
from entitlement_gate.models import MaintenanceStatus, Toast
from entitlement_gate.sdk.client import EntitlementGate, GateError

logger = logging.getLogger(__name__)


class Poller:
    """Owns the lifecycle of the two periodic tasks for one gate."""

    def __init__(
        self,
        gate: EntitlementGate,
        unread_interval: float = DEFAULT_UNREAD_INTERVAL,
        maintenance_interval: float = DEFAULT_MAINTENANCE_INTERVAL,
    ) -> None:
        if gate.client is None:
            raise GateError("Poller requires a gate with a BackendClient")
        if unread_interval <= 0 or maintenance_interval <= 0:
            raise GateError("Poll intervals must be positive")
        self._gate = gate
        self._client: BackendClient = gate.client
        self._unread_interval = unread_interval
        self._maintenance_interval = maintenance_interval
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self) -> None:
        """Schedule both tasks on the running loop. No-op if already running."""
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(
                self._run_every(self._unread_interval, self.poll_unread_once),
                name="entitlement-gate-unread",
            ),
            loop.create_task(
                self._run_every(self._maintenance_interval, self.poll_maintenance_once),
                name="entitlement-gate-maintenance",
            ),
        ]
        logger.debug(
            "Polling started (unread=%.0fs, maintenance=%.0fs)",
            self._unread_interval,
            self._maintenance_interval,
        )

    async def stop(self) -> None:
        """Cancel both tasks and wait for them to unwind."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.debug("Polling stopped")

    async def teardown(self) -> None:
        """Session teardown: stop polling, then clear the gate's session state."""
        await self.stop()
        self._gate.logout()

    async def __aenter__(self) -> Poller:
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()

    # --- Single ticks ---

    async def poll_unread_once(self) -> Toast | None:
        gate = self._gate
        generation = gate.generation
        # Milestones piggyback on the short poll so a failed emit retries soon.
        gate.next_milestone_event()

        sequence = gate.unread.next_sequence()
        try:
            count = await asyncio.to_thread(self._client.unread_count)
        except BackendError:
            logger.debug("Error fetching unread count", exc_info=True)
            return None

        if not gate.apply_unread_count(count, sequence, generation):
            return None

        try:
            latest = await asyncio.to_thread(self._client.latest_unread)
        except BackendError:
            logger.debug("Error fetching latest notification for toast", exc_info=True)
            return None
        return gate.show_toast(latest, generation)

    async def poll_maintenance_once(self) -> MaintenanceStatus:
        gate = self._gate
        generation = gate.generation
        try:
            payload = await asyncio.to_thread(gate.fetch_maintenance_payload)
        except BackendError:
            logger.exception("Failed to check maintenance status")
            payload = None
        return gate.apply_maintenance(payload, generation)

    @staticmethod
    async def _run_every(
        interval: float, tick: Callable[[], Awaitable[object]],
    ) -> None:
        while True:
            try:
                await tick()
            except Exception:
                logger.exception("Poll tick failed")
            await asyncio.sleep(interval)
