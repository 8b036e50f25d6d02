"""Tests for the asyncio Poller (unread and maintenance refresh tasks)."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from entitlement_gate.api.client import BackendError
from entitlement_gate.clock import ManualClock
from entitlement_gate.events.bus import UIEvent
from entitlement_gate.models import Notification
from entitlement_gate.sdk.client import EntitlementGate, GateError
from entitlement_gate.sync.poller import Poller

NOW = datetime(2026, 5, 20, 8, 0, tzinfo=UTC)


def _gate(backend, days_ago: int = 2) -> EntitlementGate:
    return EntitlementGate(
        user={"createdAt": (NOW - timedelta(days=days_ago)).isoformat(), "plan": "free"},
        client=backend,
        _clock=ManualClock(NOW),
    )


class TestConstruction:
    def test_requires_client(self) -> None:
        with pytest.raises(GateError, match="BackendClient"):
            Poller(EntitlementGate())

    def test_rejects_non_positive_interval(self, backend) -> None:
        with pytest.raises(GateError, match="positive"):
            Poller(_gate(backend), unread_interval=0)


class TestSingleTicks:
    def test_unread_tick_shows_toast_on_increase(self, backend) -> None:
        backend.counts.extend([1, 2])
        backend.latest.append(Notification(title="Hello", message="World"))
        poller = Poller(_gate(backend))

        async def run():
            first = await poller.poll_unread_once()
            second = await poller.poll_unread_once()
            return first, second

        first, second = asyncio.run(run())
        assert first is None
        assert second is not None
        assert second.title == "Hello"

    def test_unread_tick_fires_milestone(self, backend) -> None:
        gate = _gate(backend, days_ago=14)
        events: list[object] = []
        gate.bus.subscribe(UIEvent.MILESTONE, events.append)
        poller = Poller(gate)

        asyncio.run(poller.poll_unread_once())
        asyncio.run(poller.poll_unread_once())
        assert len(events) == 1

    def test_unread_error_is_swallowed(self, backend) -> None:
        backend.counts.append(BackendError("down"))
        poller = Poller(_gate(backend))
        assert asyncio.run(poller.poll_unread_once()) is None

    def test_maintenance_tick(self, backend) -> None:
        backend.maintenance.append({"isAffected": True, "isEnabled": True})
        gate = _gate(backend)
        status = asyncio.run(Poller(gate).poll_maintenance_once())
        assert status.is_affected is True
        assert gate.is_maintenance_affected() is True

    def test_maintenance_error_fails_open(self, backend) -> None:
        backend.maintenance.append(BackendError("down"))
        gate = _gate(backend)
        status = asyncio.run(Poller(gate).poll_maintenance_once())
        assert status.is_affected is False
        assert status.loading is False

    def test_result_after_logout_is_discarded(self, backend) -> None:
        gate = _gate(backend)
        gate.unread.observe(1)

        def count_then_logout() -> int:
            backend.calls.append("unread_count")
            gate.logout()
            return 9

        backend.unread_count = count_then_logout
        toast = asyncio.run(Poller(gate).poll_unread_once())
        assert toast is None
        assert "latest_unread" not in backend.calls
        assert gate.unread.state.is_first_load is True


class TestLifecycle:
    def test_start_and_stop(self, backend) -> None:
        backend.counts.extend([1, 1, 1])
        poller = Poller(_gate(backend), unread_interval=0.01, maintenance_interval=0.01)

        async def run() -> None:
            poller.start()
            poller.start()
            assert poller.running is True
            await asyncio.sleep(0.05)
            await poller.stop()
            assert poller.running is False

        asyncio.run(run())
        assert "unread_count" in backend.calls
        assert "maintenance_check" in backend.calls

    def test_context_manager(self, backend) -> None:
        async def run() -> bool:
            async with Poller(_gate(backend), unread_interval=0.01) as poller:
                await asyncio.sleep(0.02)
                running = poller.running
            return running and not poller.running

        assert asyncio.run(run()) is True

    def test_failing_tick_does_not_stop_loop(self, backend) -> None:
        gate = _gate(backend)
        poller = Poller(gate, unread_interval=0.01, maintenance_interval=10)
        ticks: list[int] = []

        async def broken_tick() -> None:
            ticks.append(1)
            raise RuntimeError("boom")

        async def run() -> None:
            task = asyncio.create_task(poller._run_every(0.01, broken_tick))
            await asyncio.sleep(0.05)
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        asyncio.run(run())
        assert len(ticks) >= 2

    def test_teardown_logs_out(self, backend) -> None:
        gate = _gate(backend)
        poller = Poller(gate, unread_interval=0.01)

        async def run() -> None:
            poller.start()
            await asyncio.sleep(0.02)
            await poller.teardown()

        asyncio.run(run())
        assert poller.running is False
        assert gate.user is None
        assert gate.generation == 1
        assert backend.token is None
