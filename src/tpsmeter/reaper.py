"""Eviction of streams that never cleanly terminate.

Messages can be cancelled, crash, or lose their connection without ever
sending a completion event. The reaper bounds memory by dropping streams
that have been silent for longer than ``max_age_ms``. It has no timer of
its own: the meter calls ``maybe_sweep`` on every ingested event and the
reaper decides whether a sweep is due.
"""

from __future__ import annotations

from collections.abc import Callable

from tpsmeter.constants import CLEANUP_INTERVAL_MS, MAX_MESSAGE_AGE_MS
from tpsmeter.logging import get_logger
from tpsmeter.registry import StreamRegistry, StreamState

__all__ = ["StalenessReaper"]

logger = get_logger(__name__)


class StalenessReaper:
    """Periodic sweep over the registry.

    Attributes:
        sweep_interval_ms: Minimum time between two sweeps.
        max_age_ms: Streams silent for longer than this are evicted.
    """

    def __init__(
        self,
        registry: StreamRegistry,
        *,
        sweep_interval_ms: float = CLEANUP_INTERVAL_MS,
        max_age_ms: float = MAX_MESSAGE_AGE_MS,
        on_evict: Callable[[StreamState], None] | None = None,
    ) -> None:
        self._registry = registry
        self.sweep_interval_ms = sweep_interval_ms
        self.max_age_ms = max_age_ms
        self._on_evict = on_evict
        self._last_run_at: float | None = None

    @property
    def last_run_at(self) -> float | None:
        return self._last_run_at

    def is_due(self, now: float) -> bool:
        return (
            self._last_run_at is None
            or now - self._last_run_at >= self.sweep_interval_ms
        )

    def maybe_sweep(self, now: float) -> int | None:
        """Sweep if the interval has elapsed.

        Returns:
            Number of evicted streams, or None if no sweep was due.
        """
        if not self.is_due(now):
            return None
        self._last_run_at = now
        return self.sweep(now)

    def sweep(self, now: float) -> int:
        evicted = 0
        for session in list(self._registry.sessions.values()):
            stale = [
                key
                for key, stream in session.streams.items()
                if now - stream.last_update_at > self.max_age_ms
            ]
            for key in stale:
                stream = session.streams.pop(key)
                evicted += 1
                if self._on_evict is not None:
                    self._on_evict(stream)
            if stale and not session.streams:
                session.reset_aggregate()

        if evicted:
            logger.debug("stale_streams_evicted", count=evicted)
        return evicted

    def reset(self) -> None:
        self._last_run_at = None
