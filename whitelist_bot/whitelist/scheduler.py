"""Debounced, single-flight scheduling of whitelist updates."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from typing import Any

log = logging.getLogger("whitelist.scheduler")

UPDATE_DELAY = 5.0


class SchedulerState(enum.Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    RUN_PENDING = "run_pending"


class UpdateScheduler:
    """Coalesce update triggers into as few passes as possible.

    A trigger starts (or restarts) a ``delay`` second timer. When the timer
    fires the callback runs. Triggers arriving while it runs are remembered
    and cause exactly one more pass, scheduled after the current one ends.
    ``_busy`` guarantees the callback never runs twice at once.

    :meth:`trigger` returns a future that resolves once the pass covering
    that trigger has finished: ``True`` on success, ``False`` if it raised.
    """

    def __init__(
        self, callback: Callable[[], Awaitable[Any]], delay: float = UPDATE_DELAY
    ) -> None:
        self.callback = callback
        self.delay = delay
        self.state = SchedulerState.IDLE
        self.runs = 0
        self._busy = False
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None
        # Futures for the next pass to start, and for the pass in flight.
        self._waiting: list[asyncio.Future] = []
        self._running: list[asyncio.Future] = []

    def trigger(self) -> asyncio.Future:
        """Request an update; must be called from within the event loop."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._waiting.append(future)
        if self.state is SchedulerState.IDLE:
            self.state = SchedulerState.SCHEDULED
            self._start_timer()
        elif self.state is SchedulerState.SCHEDULED:
            self._start_timer()
        elif self.state is SchedulerState.RUNNING:
            log.info("Already updating, rescheduling")
            self.state = SchedulerState.RUN_PENDING
        return future

    def _start_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().call_later(self.delay, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if self._busy:
            log.info("Already updating, rescheduling")
            self._start_timer()
            return
        self._busy = True
        self.state = SchedulerState.RUNNING
        self._running, self._waiting = self._waiting, []
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        ok = False
        try:
            await self.callback()
            ok = True
        except Exception:
            log.exception("Whitelist update failed")
        finally:
            self.runs += 1
            self._busy = False
            for future in self._running:
                if not future.done():
                    future.set_result(ok)
            self._running = []
            if self.state is SchedulerState.RUN_PENDING:
                self.state = SchedulerState.SCHEDULED
                self._start_timer()
            else:
                self.state = SchedulerState.IDLE

    async def close(self) -> None:
        """Cancel a pending timer and wait for a running pass to finish."""
        if self._task is not None and not self._task.done():
            await self._task
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for future in self._waiting:
            if not future.done():
                future.cancel()
        self._waiting = []
        self.state = SchedulerState.IDLE
