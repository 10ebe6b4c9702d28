"""Background sweeps for the in-memory access-control state."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from functools import reduce

from shonra_admin.core.clock import Clock, now_ms

MIN_TICK_MS = 1000

logger = logging.getLogger(__name__)


@dataclass
class SweepTask:
    """A synchronous sweep run every ``interval_ms``."""

    name: str
    interval_ms: int
    run: Callable[[], int]
    last_run_at: int = 0


class MaintenanceWorker:
    """Runs due sweeps from a single asyncio task.

    The loop wakes at the greatest common divisor of the sweep intervals
    (at least one second) and runs every sweep whose interval has elapsed.
    A failing sweep is logged and does not stop the loop.
    """

    def __init__(self, tasks: list[SweepTask], clock: Clock = now_ms) -> None:
        self.tasks = tasks
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        start = clock()
        for task in tasks:
            task.last_run_at = start

    @property
    def tick_ms(self) -> int:
        intervals = [task.interval_ms for task in self.tasks if task.interval_ms > 0]
        if not intervals:
            return MIN_TICK_MS
        return max(MIN_TICK_MS, reduce(math.gcd, intervals))

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background loop."""
        if self.running:
            return
        # Bound to the running loop, which may differ between app lifespans.
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background loop and wait for it to finish."""
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None

    def run_due(self) -> dict[str, int]:
        """Run every sweep whose interval has elapsed."""
        now = self._clock()
        results: dict[str, int] = {}
        for task in self.tasks:
            if now - task.last_run_at >= task.interval_ms:
                results[task.name] = self._run_task(task, now)
        return results

    def run_once(self) -> dict[str, int]:
        """Run every sweep immediately."""
        now = self._clock()
        return {task.name: self._run_task(task, now) for task in self.tasks}

    def _run_task(self, task: SweepTask, now: int) -> int:
        task.last_run_at = now
        try:
            return task.run()
        except Exception:
            logger.exception("Sweep %s failed", task.name)
            return 0

    async def _run(self) -> None:
        interval = self.tick_ms / 1000
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if self._stopping.is_set():
                break
            self.run_due()
