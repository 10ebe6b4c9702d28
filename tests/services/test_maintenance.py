"""Tests for the background sweep worker."""

from __future__ import annotations

import asyncio

import pytest

from shonra_admin.services.maintenance import MaintenanceWorker, SweepTask


def test_tick_is_gcd_of_intervals_with_floor(fake_clock) -> None:
    worker = MaintenanceWorker(
        [SweepTask("a", 300_000, lambda: 0), SweepTask("b", 60_000, lambda: 0)],
        fake_clock,
    )
    assert worker.tick_ms == 60_000
    fast = MaintenanceWorker([SweepTask("c", 250, lambda: 0)], fake_clock)
    assert fast.tick_ms == 1000


def test_run_due_respects_intervals(fake_clock) -> None:
    counts = {"fast": 0, "slow": 0}

    def bump(name: str):
        def run() -> int:
            counts[name] += 1
            return counts[name]

        return run

    worker = MaintenanceWorker(
        [SweepTask("fast", 1000, bump("fast")), SweepTask("slow", 5000, bump("slow"))],
        fake_clock,
    )
    assert worker.run_due() == {}

    fake_clock.advance(1000)
    assert worker.run_due() == {"fast": 1}
    fake_clock.advance(4000)
    assert worker.run_due() == {"fast": 2, "slow": 1}


def test_failing_sweep_is_contained(fake_clock, caplog) -> None:
    def broken() -> int:
        raise RuntimeError("boom")

    worker = MaintenanceWorker([SweepTask("broken", 1000, broken), SweepTask("ok", 1000, lambda: 3)], fake_clock)
    assert worker.run_once() == {"broken": 0, "ok": 3}
    assert "Sweep broken failed" in caplog.text


@pytest.mark.asyncio
async def test_start_is_idempotent_and_stop_waits(fake_clock) -> None:
    worker = MaintenanceWorker([SweepTask("noop", 60_000, lambda: 0)], fake_clock)
    await worker.start()
    task = worker._task
    await worker.start()
    assert worker._task is task
    assert worker.running

    await worker.stop()
    assert not worker.running
    assert task.done()


@pytest.mark.asyncio
async def test_loop_runs_due_sweeps(fake_clock, mocker) -> None:
    ran = asyncio.Event()

    def sweep() -> int:
        ran.set()
        return 1

    worker = MaintenanceWorker([SweepTask("sessions", 1000, sweep)], fake_clock)
    mocker.patch.object(MaintenanceWorker, "tick_ms", new_callable=mocker.PropertyMock, return_value=10)
    fake_clock.advance(1000)

    await worker.start()
    await asyncio.wait_for(ran.wait(), timeout=2)
    await worker.stop()
