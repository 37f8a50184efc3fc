"""Per-stream throughput estimation.

A RateEstimator keeps a bounded, time-ordered ring buffer of recorded
counts and derives three rates from it:

- instantaneous: tokens in the rolling window divided by the span between
  the oldest and newest entry in the window (floored at 0.1 s)
- smoothed: an exponentially weighted moving average of the
  instantaneous rate, updated on every recording, whose half-life grows
  with the size of the recorded chunk so a single large flush does not
  spike the display
- average: lifetime total divided by time since creation

Example:
    estimator = RateEstimator(window_ms=1000, clock=scheduler.now)
    estimator.record_tokens(40, timestamp=0)
    estimator.record_tokens(40, timestamp=1000)
    estimator.get_instant_rate(now=1000)  # 80.0
"""

from __future__ import annotations

import math
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from tpsmeter.constants import (
    BURST_EWMA_HALF_LIFE_MS,
    BURST_TOKEN_THRESHOLD,
    DEFAULT_EWMA_HALF_LIFE_MS,
    DEFAULT_ROLLING_WINDOW_MS,
    LARGE_BURST_EWMA_HALF_LIFE_MS,
    LARGE_BURST_THRESHOLD,
    MAX_BUFFER_SIZE,
    MIN_SMOOTHING_STEP_MS,
    MIN_WINDOW_DURATION_SECONDS,
)

__all__ = ["BufferEntry", "SmoothingProfile", "RateEstimator"]

_LN2 = math.log(2)


def _wall_clock_ms() -> float:
    return time.time() * 1000


@dataclass(frozen=True, slots=True)
class BufferEntry:
    """One recorded event.

    Attributes:
        timestamp: Epoch milliseconds of the recording.
        count: Tokens recorded.
    """

    timestamp: float
    count: int


@dataclass(frozen=True, slots=True)
class SmoothingProfile:
    """Half-life selection for the EWMA.

    The thresholds are tuned defaults, not derived values.

    Attributes:
        half_life_ms: Half-life for ordinary increments.
        burst_threshold: Counts above this use burst_half_life_ms.
        burst_half_life_ms: Half-life for bursts.
        large_burst_threshold: Counts above this use large_burst_half_life_ms.
        large_burst_half_life_ms: Half-life for large bursts.
    """

    half_life_ms: float = DEFAULT_EWMA_HALF_LIFE_MS
    burst_threshold: int = BURST_TOKEN_THRESHOLD
    burst_half_life_ms: float = BURST_EWMA_HALF_LIFE_MS
    large_burst_threshold: int = LARGE_BURST_THRESHOLD
    large_burst_half_life_ms: float = LARGE_BURST_EWMA_HALF_LIFE_MS

    def half_life_for(self, count: int) -> float:
        if count > self.large_burst_threshold:
            return self.large_burst_half_life_ms
        if count > self.burst_threshold:
            return self.burst_half_life_ms
        return self.half_life_ms


class RateEstimator:
    """Rolling-window and EWMA rate estimator for one logical stream.

    Timestamps are epoch milliseconds. Recordings are kept in
    non-decreasing timestamp order: a timestamp earlier than the newest
    entry is clamped to it, and a non-finite timestamp is replaced by the
    clock's current time. Negative or non-finite counts are recorded as 0.

    Attributes:
        label: Optional identity label, preserved across reset().
    """

    def __init__(
        self,
        window_ms: float = DEFAULT_ROLLING_WINDOW_MS,
        *,
        clock: Callable[[], float] | None = None,
        smoothing: SmoothingProfile | None = None,
        label: str | None = None,
    ) -> None:
        self._clock = clock or _wall_clock_ms
        self._window_ms = (
            window_ms
            if math.isfinite(window_ms) and window_ms > 0
            else DEFAULT_ROLLING_WINDOW_MS
        )
        self._smoothing = smoothing or SmoothingProfile()
        self.label = label
        self._buffer: deque[BufferEntry] = deque(maxlen=MAX_BUFFER_SIZE)
        self._start_time = self._clock()
        self._total = 0
        self._smoothed_rate = 0.0
        self._last_smoothed_at = 0.0
        self._has_smoothed_value = False

    # -- recording ---------------------------------------------------------

    def record_tokens(self, count: int, timestamp: float | None = None) -> None:
        """Record ``count`` tokens at ``timestamp`` (default: now)."""
        ts = timestamp if timestamp is not None and math.isfinite(timestamp) else None
        if ts is None:
            ts = self._clock()
        if self._buffer and ts < self._buffer[-1].timestamp:
            ts = self._buffer[-1].timestamp
        if not math.isfinite(count) or count < 0:
            count = 0
        count = int(count)

        self._total += count
        # deque(maxlen) evicts from the front once capacity is exceeded
        self._buffer.append(BufferEntry(timestamp=ts, count=count))
        self._prune(ts)
        self._update_smoothing(count, ts)

    def _prune(self, now: float) -> None:
        cutoff = now - self._window_ms
        while self._buffer and self._buffer[0].timestamp < cutoff:
            self._buffer.popleft()

    def _update_smoothing(self, count: int, ts: float) -> None:
        raw = self._rate_at(ts)
        if not self._has_smoothed_value:
            self._smoothed_rate = raw
            self._has_smoothed_value = True
        else:
            dt = max(MIN_SMOOTHING_STEP_MS, ts - self._last_smoothed_at)
            half_life = self._smoothing.half_life_for(count)
            alpha = math.exp(-_LN2 * dt / half_life)
            self._smoothed_rate = alpha * self._smoothed_rate + (1 - alpha) * raw
        self._last_smoothed_at = ts

    # -- queries -----------------------------------------------------------

    def _rate_at(self, now: float) -> float:
        cutoff = now - self._window_ms
        in_window = 0
        oldest: float | None = None
        newest: float | None = None
        for entry in self._buffer:
            if entry.timestamp < cutoff or entry.timestamp > now:
                continue
            in_window += entry.count
            if oldest is None:
                oldest = entry.timestamp
            newest = entry.timestamp

        if in_window == 0 or oldest is None or newest is None:
            return 0.0
        span_seconds = (newest - oldest) / 1000
        return in_window / max(span_seconds, MIN_WINDOW_DURATION_SECONDS)

    def get_instant_rate(self, now: float | None = None) -> float:
        """Tokens/sec over the rolling window ending at ``now``."""
        return self._rate_at(self._clock() if now is None else now)

    def get_smoothed_rate(self) -> float:
        """EWMA of the instantaneous rate; raw rate before any recording."""
        if not self._has_smoothed_value:
            return self.get_instant_rate()
        return self._smoothed_rate

    def get_average_rate(self, now: float | None = None) -> float:
        """Lifetime tokens/sec since creation or the last reset()."""
        elapsed_seconds = self.get_elapsed_ms(now) / 1000
        if elapsed_seconds <= 0:
            return 0.0
        return self._total / elapsed_seconds

    def get_elapsed_ms(self, now: float | None = None) -> float:
        current = self._clock() if now is None else now
        return max(0.0, current - self._start_time)

    def reset(self) -> None:
        """Forget everything except the label and restart the clock."""
        self._buffer.clear()
        self._total = 0
        self._smoothed_rate = 0.0
        self._last_smoothed_at = 0.0
        self._has_smoothed_value = False
        self._start_time = self._clock()

    # -- introspection -----------------------------------------------------

    @property
    def total_tokens(self) -> int:
        return self._total

    @property
    def start_time(self) -> float:
        return self._start_time

    @property
    def buffer_size(self) -> int:
        return len(self._buffer)

    @property
    def max_buffer_size(self) -> int:
        return MAX_BUFFER_SIZE

    @property
    def window_ms(self) -> float:
        return self._window_ms

    @property
    def has_smoothed_value(self) -> bool:
        return self._has_smoothed_value

    def __repr__(self) -> str:
        return (
            f"RateEstimator(label={self.label!r}, total={self._total}, "
            f"buffered={len(self._buffer)}, window_ms={self._window_ms})"
        )
