"""Throttled display coordination.

The coordinator sits between the meter and the notification sinks:

- ``update_display`` buffers the latest snapshot (last write wins) and arms
  one flush timer per throttle interval, measured from the previous
  flush, so a burst of updates collapses into a single flush
- every flush passes a flood guard before reaching the sinks: identical
  text is dropped, and emissions closer together than
  ``max(150 ms, 3 x interval)`` are held back, not dropped, and flushed
  once the floor elapses
- ``show_final_stats`` bypasses both the throttle and the flood guard
- sinks are tried in order; the first that does not raise wins

Nothing here raises into the caller. Sink failures are logged at debug
level and the flush is dropped for that cycle.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Sequence
from enum import Enum
from typing import Any

from tpsmeter.config import TpsMeterConfig
from tpsmeter.constants import (
    DEFAULT_TOAST_DURATION_MS,
    FINAL_STATS_DURATION_MS,
    MIN_TOAST_INTERVAL_MS,
    TOAST_TITLE,
)
from tpsmeter.formatting import (
    DisplayOptions,
    color_variant,
    format_final,
    format_snapshot,
)
from tpsmeter.logging import get_logger
from tpsmeter.models import DisplaySnapshot, StreamDisplayEntry
from tpsmeter.scheduling import GLOBAL_OWNER, ScheduledTasks, Scheduler
from tpsmeter.sinks import Notice, Sink

__all__ = ["FlushState", "DisplayCoordinator"]

logger = get_logger(__name__)

_FLUSH_TASK = "flush"


class FlushState(str, Enum):
    """Coordinator lifecycle: IDLE -> PENDING -> FLUSHING -> IDLE."""

    IDLE = "idle"
    PENDING = "pending"
    FLUSHING = "flushing"


class DisplayCoordinator:
    """Batches, throttles and dispatches display updates.

    Attributes:
        sinks: Ordered fallback chain.
        emitted: Number of notices delivered so far.
    """

    def __init__(
        self,
        sinks: Sequence[Sink],
        scheduler: Scheduler,
        config: TpsMeterConfig | None = None,
        *,
        tasks: ScheduledTasks | None = None,
    ) -> None:
        config = config or TpsMeterConfig()
        self.sinks = list(sinks)
        self._scheduler = scheduler
        self._tasks = tasks or ScheduledTasks(scheduler)
        self._options = DisplayOptions.from_config(config)
        self._interval_ms = config.update_interval_ms

        self._state = FlushState.IDLE
        self._pending: DisplaySnapshot | None = None
        self._last_displayed: DisplaySnapshot | None = None
        self._last_flush_at: float | None = None
        self._last_shown_at: float | None = None
        self._last_message = ""
        self._background_results: set[asyncio.Future[Any]] = set()
        self.emitted = 0

    # -- introspection -----------------------------------------------------

    @property
    def state(self) -> FlushState:
        return self._state

    @property
    def update_interval_ms(self) -> float:
        return self._interval_ms

    @property
    def min_notice_interval_ms(self) -> float:
        return max(MIN_TOAST_INTERVAL_MS, 3 * self._interval_ms)

    @property
    def last_message(self) -> str:
        return self._last_message

    @property
    def last_displayed(self) -> DisplaySnapshot | None:
        return self._last_displayed

    # -- public interface --------------------------------------------------

    def update_display(
        self,
        instant_rate: float,
        avg_rate: float,
        total_count: int,
        elapsed_ms: float,
        streams: Sequence[StreamDisplayEntry] | None = None,
        *,
        primary_active: bool = True,
    ) -> None:
        """Buffer a snapshot for the next throttled flush."""
        self._pending = DisplaySnapshot(
            instant_rate=instant_rate,
            avg_rate=avg_rate,
            total_count=total_count,
            elapsed_ms=elapsed_ms,
            per_stream=tuple(streams or ()),
            primary_active=primary_active,
        )
        self._state = FlushState.PENDING
        self._schedule_flush()

    def show_final_stats(
        self, total_count: int, avg_rate: float, elapsed_ms: float
    ) -> None:
        """Emit completion stats immediately, after flushing pending state."""
        self._tasks.cancel(GLOBAL_OWNER, _FLUSH_TASK)
        self._flush_pending(retry=False)
        # an identical completion line must not be mistaken for a duplicate
        self._last_message = ""
        message = format_final(total_count, avg_rate, elapsed_ms, self._options)
        self._emit(message, instant_rate=0.0, final=True)

    def clear(self) -> None:
        """Cancel the flush timer, flush what is pending and reset."""
        self._tasks.cancel(GLOBAL_OWNER, _FLUSH_TASK)
        self._flush_pending(retry=False)
        self._pending = None
        self._last_displayed = None
        self._state = FlushState.IDLE

    def set_update_interval(self, ms: float) -> None:
        self._interval_ms = ms
        self._last_flush_at = None

    # -- throttling --------------------------------------------------------

    def _schedule_flush(self, delay_ms: float | None = None) -> None:
        if self._tasks.is_scheduled(GLOBAL_OWNER, _FLUSH_TASK):
            return
        if delay_ms is None:
            if self._last_flush_at is None:
                delay_ms = 0.0
            else:
                since_flush = self._scheduler.now() - self._last_flush_at
                delay_ms = max(0.0, self._interval_ms - since_flush)
        self._tasks.schedule(
            GLOBAL_OWNER, _FLUSH_TASK, delay_ms, self._on_flush_timer
        )

    def _on_flush_timer(self) -> None:
        self._last_flush_at = self._scheduler.now()
        self._flush_pending()

    def _flush_pending(self, *, retry: bool = True) -> None:
        snapshot = self._pending
        if snapshot is None:
            self._state = FlushState.IDLE
            return
        self._state = FlushState.FLUSHING
        self._pending = None
        message = format_snapshot(snapshot, self._options)
        held = self._emit(
            message, instant_rate=self._headline_rate(snapshot), retry=retry
        )
        if held:
            # keep the snapshot unless a newer one arrived meanwhile
            if self._pending is None:
                self._pending = snapshot
            self._state = FlushState.PENDING
            return
        self._last_displayed = snapshot
        self._state = FlushState.IDLE

    @staticmethod
    def _headline_rate(snapshot: DisplaySnapshot) -> float:
        if snapshot.primary_active:
            return snapshot.instant_rate
        return max((e.instant_rate for e in snapshot.background), default=0.0)

    # -- dispatch ----------------------------------------------------------

    def _emit(
        self,
        message: str,
        *,
        instant_rate: float,
        final: bool = False,
        retry: bool = False,
    ) -> bool:
        """Send a message through the flood guard and the sink chain.

        Args:
            retry: When the interval floor holds the message back, schedule
                another flush for the moment the floor elapses.

        Returns:
            True when the message was held back and a retry was scheduled.
        """
        if not message:
            return False
        now = self._scheduler.now()
        floor = self.min_notice_interval_ms

        if not final:
            if message == self._last_message:
                logger.debug("notice_suppressed", reason="duplicate")
                return False
            if self._last_shown_at is not None and now - self._last_shown_at < floor:
                logger.debug("notice_suppressed", reason="interval")
                if not retry:
                    return False
                self._schedule_flush(floor - (now - self._last_shown_at))
                return True

        notice = Notice(
            title=TOAST_TITLE,
            message=message,
            variant=color_variant(instant_rate, self._options, final=final),
            duration_ms=(
                FINAL_STATS_DURATION_MS
                if final
                else max(DEFAULT_TOAST_DURATION_MS, floor * 20)
            ),
            final=final,
        )
        for sink in self.sinks:
            try:
                result = sink(notice)
            except Exception as e:
                logger.debug("sink_failed", sink=sink.name, error=str(e))
                continue
            self._settle(result, sink.name)
            self._last_shown_at = now
            self._last_message = message
            self.emitted += 1
            return False

        logger.debug("notice_dropped", sinks=len(self.sinks), final=final)
        return False

    def _settle(self, result: Any, sink_name: str) -> None:
        """Run an awaitable sink result in the background, logging failures."""
        if not inspect.isawaitable(result):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no running loop: nothing can drive the awaitable
            if inspect.iscoroutine(result):
                result.close()
            logger.debug("sink_result_discarded", sink=sink_name)
            return
        future = asyncio.ensure_future(result, loop=loop)
        self._background_results.add(future)

        def _done(fut: asyncio.Future[Any]) -> None:
            self._background_results.discard(fut)
            if fut.cancelled():
                return
            error = fut.exception()
            if error is not None:
                logger.debug("sink_rejected", sink=sink_name, error=str(error))

        future.add_done_callback(_done)
