"""Clock and timer abstraction for the meter.

Every delayed action in the meter (throttle flush, fallback display, the
reaper's clock reads) goes through a Scheduler so that tests and log replay
can drive virtual time instead of sleeping.

Two implementations are provided:

- AsyncioScheduler: wall-clock milliseconds plus ``loop.call_later``
- VirtualScheduler: a manually advanced clock that fires due callbacks in
  order when ``advance()`` is called

Example:
    scheduler = VirtualScheduler(start_ms=0)
    scheduler.call_later(100, lambda: print("fired"))
    scheduler.advance(150)  # prints "fired"
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from tpsmeter.logging import get_logger

__all__ = [
    "GLOBAL_OWNER",
    "TimerHandle",
    "Scheduler",
    "AsyncioScheduler",
    "VirtualScheduler",
    "ScheduledTasks",
]

logger = get_logger(__name__)

#: Owner key for tasks that do not belong to a session
GLOBAL_OWNER = "__global__"


class TimerHandle(Protocol):
    """A scheduled callback that can be cancelled before it fires."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Source of time and delayed callbacks, in epoch milliseconds."""

    def now(self) -> float: ...

    def call_later(
        self, delay_ms: float, callback: Callable[[], None]
    ) -> TimerHandle: ...


class AsyncioScheduler:
    """Scheduler backed by the wall clock and an asyncio event loop.

    The loop is looked up lazily so the scheduler can be created before the
    host starts its loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def now(self) -> float:
        return time.time() * 1000

    def call_later(
        self, delay_ms: float, callback: Callable[[], None]
    ) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay_ms) / 1000, callback)


@dataclass(order=True)
class _VirtualTimer:
    due_ms: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class VirtualScheduler:
    """Deterministic scheduler whose clock only moves when told to.

    Callbacks scheduled for the same instant fire in scheduling order.
    Callbacks may schedule further callbacks; those fire within the same
    ``advance`` call if they fall due before its target time.

    Attributes:
        fired: Number of callbacks fired so far.
    """

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = float(start_ms)
        self._queue: list[_VirtualTimer] = []
        self._seq = itertools.count()
        self.fired = 0

    def now(self) -> float:
        return self._now

    def call_later(
        self, delay_ms: float, callback: Callable[[], None]
    ) -> _VirtualTimer:
        timer = _VirtualTimer(
            due_ms=self._now + max(0.0, delay_ms),
            seq=next(self._seq),
            callback=callback,
        )
        heapq.heappush(self._queue, timer)
        return timer

    @property
    def pending(self) -> int:
        """Number of scheduled, not yet cancelled callbacks."""
        return sum(1 for t in self._queue if not t.cancelled)

    def advance(self, delta_ms: float) -> None:
        """Move the clock forward by ``delta_ms``, firing due callbacks."""
        self.advance_to(self._now + max(0.0, delta_ms))

    def advance_to(self, target_ms: float) -> None:
        """Move the clock to ``target_ms`` (never backwards)."""
        target_ms = max(self._now, target_ms)
        while self._queue and self._queue[0].due_ms <= target_ms:
            timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = max(self._now, timer.due_ms)
            self.fired += 1
            timer.callback()
        self._now = target_ms

    def run_pending(self) -> None:
        """Fire everything that is due right now."""
        self.advance_to(self._now)


class ScheduledTasks:
    """Named, cancellable timers grouped by owner.

    At most one timer exists per ``(owner, name)``; scheduling again cancels
    the previous one. Callbacks run inside a catch-and-log boundary so a
    faulty callback never escapes into the host loop.
    """

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._handles: dict[tuple[str, str], TimerHandle] = {}

    def schedule(
        self,
        owner: str,
        name: str,
        delay_ms: float,
        callback: Callable[[], None],
    ) -> None:
        key = (owner, name)
        self.cancel(owner, name)

        def _fire() -> None:
            self._handles.pop(key, None)
            try:
                callback()
            except Exception:
                logger.warning(
                    "scheduled_task_failed", owner=owner, task=name, exc_info=True
                )

        self._handles[key] = self._scheduler.call_later(delay_ms, _fire)

    def is_scheduled(self, owner: str, name: str) -> bool:
        return (owner, name) in self._handles

    def cancel(self, owner: str, name: str) -> None:
        handle = self._handles.pop((owner, name), None)
        if handle is not None:
            handle.cancel()

    def cancel_owner(self, owner: str) -> None:
        """Cancel every timer belonging to ``owner``."""
        keys = [key for key in self._handles if key[0] == owner]
        for key in keys:
            self._handles.pop(key).cancel()

    def cancel_all(self) -> None:
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            handle.cancel()

    def __len__(self) -> int:
        return len(self._handles)
