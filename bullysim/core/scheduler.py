"""
Timer facilities for the single-threaded simulation.

All simulated concurrency is expressed as callbacks scheduled at offsets on a
Scheduler. Production code binds the asyncio event loop; tests and the
fast-forward CLI mode use the VirtualScheduler, which only moves time when
told to and fires callbacks in (due time, scheduling order) order.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol, TypeAlias, runtime_checkable

from loguru import logger

from ..datastructures.type_aliases import DurationSeconds, Timestamp

TimerCallback: TypeAlias = Callable[[], None]


@runtime_checkable
class ScheduledHandle(Protocol):
    """Handle to a pending callback. ``asyncio.TimerHandle`` satisfies it."""

    def cancel(self) -> None: ...

    def cancelled(self) -> bool: ...


@runtime_checkable
class Scheduler(Protocol):
    """Clock plus deferred execution."""

    def now(self) -> Timestamp: ...

    def call_later(
        self, delay: DurationSeconds, callback: TimerCallback
    ) -> ScheduledHandle: ...


@dataclass(slots=True)
class VirtualTimerHandle:
    """Pending callback on a VirtualScheduler."""

    due: Timestamp
    callback: TimerCallback
    _cancelled: bool = False
    _fired: bool = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired


@dataclass(slots=True)
class VirtualScheduler:
    """
    Deterministic scheduler driven by explicit time advancement.

    Callbacks due at the same instant run in the order they were scheduled.
    Callbacks scheduled while advancing run in the same advance call if they
    fall due before its target time.
    """

    start_time: Timestamp = 0.0
    _now: Timestamp = field(init=False)
    _queue: list[tuple[Timestamp, int, VirtualTimerHandle]] = field(
        default_factory=list, init=False
    )
    _sequence: itertools.count[int] = field(
        default_factory=itertools.count, init=False
    )

    def __post_init__(self) -> None:
        self._now = self.start_time

    def now(self) -> Timestamp:
        return self._now

    def call_later(
        self, delay: DurationSeconds, callback: TimerCallback
    ) -> VirtualTimerHandle:
        if delay < 0:
            raise ValueError("Delay cannot be negative")
        handle = VirtualTimerHandle(due=self._now + delay, callback=callback)
        heapq.heappush(self._queue, (handle.due, next(self._sequence), handle))
        return handle

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, handle in self._queue if not handle.cancelled())

    def next_due(self) -> Timestamp | None:
        """Due time of the earliest live callback."""
        self._drop_cancelled_head()
        return self._queue[0][0] if self._queue else None

    def advance(self, seconds: DurationSeconds) -> int:
        """
        Move time forward, firing every callback that falls due.

        Returns:
            Number of callbacks fired
        """
        if seconds < 0:
            raise ValueError("Cannot move time backwards")
        return self._advance_to(self._now + seconds)

    def run_until_idle(self, max_callbacks: int = 100_000) -> int:
        """
        Fire callbacks until nothing is pending.

        Raises:
            RuntimeError: if the queue never drains (e.g. a periodic timer)
        """
        fired = 0
        while (due := self.next_due()) is not None:
            if fired >= max_callbacks:
                raise RuntimeError(
                    f"Scheduler still busy after {max_callbacks} callbacks"
                )
            fired += self._advance_to(due)
        return fired

    def _advance_to(self, target: Timestamp) -> int:
        fired = 0

        while True:
            self._drop_cancelled_head()
            if not self._queue or self._queue[0][0] > target:
                break
            due, _, handle = heapq.heappop(self._queue)
            self._now = due
            handle._fired = True
            handle.callback()
            fired += 1

        self._now = max(self._now, target)
        return fired

    def _drop_cancelled_head(self) -> None:
        while self._queue and self._queue[0][2].cancelled():
            heapq.heappop(self._queue)


@dataclass(slots=True)
class AsyncioScheduler:
    """Scheduler bound to an asyncio event loop's real timer facility."""

    loop: asyncio.AbstractEventLoop | None = None

    def _loop(self) -> asyncio.AbstractEventLoop:
        if self.loop is None:
            self.loop = asyncio.get_running_loop()
            logger.debug("AsyncioScheduler bound to running event loop")
        return self.loop

    def now(self) -> Timestamp:
        return self._loop().time()

    def call_later(
        self, delay: DurationSeconds, callback: TimerCallback
    ) -> asyncio.TimerHandle:
        if delay < 0:
            raise ValueError("Delay cannot be negative")
        return self._loop().call_later(delay, callback)
