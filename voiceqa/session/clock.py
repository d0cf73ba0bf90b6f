"""
Clock and timer abstraction for the conversation session.

The session never touches the event loop's timers directly: it asks a
``Clock`` for ``call_later`` handles and for ``sleep``. ``AsyncioClock`` is
the production implementation; ``ManualClock`` lets tests step time forward
deterministically without real waits.
"""

import asyncio
import heapq
import itertools
import logging
import time
import traceback
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, Set, Tuple

from voiceqa.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle:
    """A scheduled callback that can be cancelled before it fires."""

    def __init__(self, name: str = ""):
        self.name = name
        self.cancelled = False
        self.fired = False
        self._loop_handle: Optional[asyncio.TimerHandle] = None

    def cancel(self) -> None:
        """Cancel the timer; a callback that already started is not interrupted."""
        self.cancelled = True
        if self._loop_handle is not None:
            self._loop_handle.cancel()


class Clock(ABC):
    """Time source and timer scheduler."""

    @abstractmethod
    def now(self) -> float:
        """Current time in seconds."""

    def now_ms(self) -> int:
        return int(self.now() * 1000)

    @abstractmethod
    def call_later(self, delay: float, callback: TimerCallback, name: str = "") -> TimerHandle:
        """Run ``callback`` after ``delay`` seconds unless cancelled."""

    @abstractmethod
    async def sleep(self, delay: float) -> None:
        """Suspend the calling coroutine."""


async def _run_callback(handle: TimerHandle, callback: TimerCallback) -> None:
    try:
        await callback()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"Error in timer callback {handle.name or callback}: {e}")
        logger.debug(f"Timer callback error details: {traceback.format_exc()}")


class AsyncioClock(Clock):
    """Wall-clock timers on the running event loop."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: TimerCallback, name: str = "") -> TimerHandle:
        handle = TimerHandle(name)
        loop = asyncio.get_running_loop()
        handle._loop_handle = loop.call_later(max(0.0, delay), self._fire, handle, callback)
        return handle

    def _fire(self, handle: TimerHandle, callback: TimerCallback) -> None:
        if handle.cancelled:
            return
        handle.fired = True
        task = asyncio.ensure_future(_run_callback(handle, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(delay)


class ManualClock(Clock):
    """
    Clock driven by the test: time only moves on ``advance``.

    ``sleep`` yields to the event loop without moving time, so paced sends and
    retry back-offs complete immediately.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._counter = itertools.count()
        self._timers: List[Tuple[float, int, TimerHandle, TimerCallback]] = []
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: TimerCallback, name: str = "") -> TimerHandle:
        handle = TimerHandle(name)
        heapq.heappush(self._timers, (self._now + max(0.0, delay), next(self._counter), handle, callback))
        return handle

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        await asyncio.sleep(0)

    def pending(self) -> List[str]:
        """Names of timers that are scheduled and not cancelled."""
        return [handle.name for _, _, handle, _ in sorted(self._timers) if not handle.cancelled]

    async def advance(self, seconds: float) -> None:
        """Move time forward, firing every timer that falls due, in order."""
        target = self._now + seconds
        while self._timers and self._timers[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._timers)
            if handle.cancelled:
                continue
            self._now = max(self._now, due)
            handle.fired = True
            await _run_callback(handle, callback)
        self._now = target
