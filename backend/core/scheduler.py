"""
Clock and timer scheduling.

Session timeouts, token refreshes and the maintenance sweep are all driven
through a Scheduler so they can be cancelled as a unit and so tests can move
time forward deterministically.

- AsyncioScheduler: wall clock + event loop timers (production)
- ManualScheduler: virtual clock advanced explicitly (tests, scripts)

Dependencies: asyncio, backend.observability
System role: Timer abstraction for the session lifecycle
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Protocol

from backend.observability.log_utils import log_exception_with_context
from backend.observability.logger import get_logger

logger = get_logger(__name__)

AsyncCallback = Callable[[], Awaitable[None]]


class TimerHandle(Protocol):
    """Handle returned for every scheduled callback."""

    def cancel(self) -> None: ...

    @property
    def cancelled(self) -> bool: ...


class Scheduler(Protocol):
    """Clock plus one-shot and periodic async callbacks."""

    def now(self) -> datetime: ...

    def call_later(
        self, delay: float, callback: AsyncCallback, name: str | None = None
    ) -> TimerHandle: ...

    def call_every(
        self, interval: float, callback: AsyncCallback, name: str | None = None
    ) -> TimerHandle: ...


async def _run_callback(callback: AsyncCallback, name: str | None) -> None:
    """Await a timer callback; failures are logged, never propagated."""
    try:
        await callback()
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        log_exception_with_context(logger, "Scheduled callback failed", exc, timer=name)


class _AsyncioTimer:
    """One-shot or periodic timer backed by the running event loop."""

    def __init__(self, name: str | None) -> None:
        self.name = name
        self._handle: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._periodic = False
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
        # A one-shot callback that already started is allowed to finish: it
        # commonly cancels its own timer (e.g. timeout -> terminate).
        if self._periodic and self._task is not None and not self._task.done():
            self._task.cancel()


class AsyncioScheduler:
    """Scheduler using ``loop.call_later`` and background tasks."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _spawn(self, coro: Awaitable[None], name: str | None) -> asyncio.Task[None]:
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def call_later(
        self, delay: float, callback: AsyncCallback, name: str | None = None
    ) -> _AsyncioTimer:
        loop = asyncio.get_running_loop()
        timer = _AsyncioTimer(name)

        def _fire() -> None:
            if timer.cancelled:
                return
            timer._task = self._spawn(_run_callback(callback, name), name)

        timer._handle = loop.call_later(max(delay, 0.0), _fire)
        return timer

    def call_every(
        self, interval: float, callback: AsyncCallback, name: str | None = None
    ) -> _AsyncioTimer:
        if interval <= 0:
            raise ValueError("interval must be positive")
        timer = _AsyncioTimer(name)
        timer._periodic = True

        async def _loop() -> None:
            while not timer.cancelled:
                await asyncio.sleep(interval)
                await _run_callback(callback, name)

        timer._task = self._spawn(_loop(), name)
        return timer


class _ManualTimer:
    def __init__(
        self,
        due: datetime,
        callback: AsyncCallback,
        interval: float | None,
        name: str | None,
    ) -> None:
        self.due = due
        self.callback = callback
        self.interval = interval
        self.name = name
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class ManualScheduler:
    """
    Virtual-time scheduler.

    Time only moves through ``advance`` (fires due callbacks in due order)
    or ``set_time`` (moves the clock without firing anything).
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime.now(timezone.utc)
        self._queue: list[tuple[datetime, int, _ManualTimer]] = []
        self._seq = itertools.count()

    def now(self) -> datetime:
        return self._now

    def _push(self, timer: _ManualTimer) -> None:
        heapq.heappush(self._queue, (timer.due, next(self._seq), timer))

    def call_later(
        self, delay: float, callback: AsyncCallback, name: str | None = None
    ) -> _ManualTimer:
        timer = _ManualTimer(
            self._now + timedelta(seconds=max(delay, 0.0)), callback, None, name
        )
        self._push(timer)
        return timer

    def call_every(
        self, interval: float, callback: AsyncCallback, name: str | None = None
    ) -> _ManualTimer:
        if interval <= 0:
            raise ValueError("interval must be positive")
        timer = _ManualTimer(
            self._now + timedelta(seconds=interval), callback, interval, name
        )
        self._push(timer)
        return timer

    @property
    def pending(self) -> list[_ManualTimer]:
        """Timers that have not fired (one-shot) and are not cancelled."""
        return [timer for _, _, timer in sorted(self._queue) if not timer.cancelled]

    def set_time(self, when: datetime) -> None:
        self._now = when

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every callback that falls due."""
        target = self._now + timedelta(seconds=seconds)
        while self._queue and self._queue[0][0] <= target:
            due, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = max(self._now, due)
            if timer.interval is not None:
                timer.due = due + timedelta(seconds=timer.interval)
                self._push(timer)
            await _run_callback(timer.callback, timer.name)
        self._now = max(self._now, target)
