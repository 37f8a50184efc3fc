"""Primary (foreground) versus background stream classification.

The first session whose untagged stream receives a token becomes the
primary session. It stays primary while it is quiet and is released only
when it goes idle or the meter shuts down; the next untagged token then
claims the slot for its own session. Streams carrying agent metadata are always
background. Streams in any other session are background too: sub-agents
that run in their own session carry no per-part agent tag, so the session
boundary is the only signal available for them.
"""

from __future__ import annotations

from tpsmeter.constants import (
    ACTIVITY_WINDOW_MULTIPLIER,
    DEFAULT_ROLLING_WINDOW_MS,
    MIN_TPS_ELAPSED_MS,
    SESSION_LABEL_LENGTH,
)
from tpsmeter.logging import get_logger
from tpsmeter.registry import StreamRegistry, StreamState

__all__ = ["PrimaryStreamResolver"]

logger = get_logger(__name__)


class PrimaryStreamResolver:
    """Decides which live streams are primary.

    Attributes:
        primary_session_id: The sticky primary session, None until an
            untagged token arrives and again after the session is released.
    """

    def __init__(
        self,
        registry: StreamRegistry,
        *,
        window_ms: float = DEFAULT_ROLLING_WINDOW_MS,
        min_elapsed_ms: float = MIN_TPS_ELAPSED_MS,
    ) -> None:
        self._registry = registry
        self._activity_window_ms = max(
            window_ms, ACTIVITY_WINDOW_MULTIPLIER * min_elapsed_ms
        )
        self._agent_names: dict[str, str] = {}
        self.primary_session_id: str | None = None

    @property
    def activity_window_ms(self) -> float:
        return self._activity_window_ms

    def note_activity(self, stream: StreamState) -> None:
        """Claim the primary slot for an untagged stream's session if free."""
        if self.primary_session_id is not None or stream.has_agent_metadata:
            return
        self.primary_session_id = stream.session_id
        logger.info("primary_session_assigned", session_id=stream.session_id)
        for other in self._registry.iter_streams():
            other.label = self.label_for(other)

    def is_primary_stream(self, stream: StreamState) -> bool:
        return (
            not stream.has_agent_metadata
            and self.primary_session_id is not None
            and stream.session_id == self.primary_session_id
        )

    def is_background_stream(self, stream: StreamState) -> bool:
        if stream.has_agent_metadata:
            return True
        return (
            self.primary_session_id is not None
            and stream.session_id != self.primary_session_id
        )

    # -- agent names -------------------------------------------------------

    def remember_agent_name(self, session_id: str, name: str | None) -> None:
        """Cache an agent name for labelling untagged cross-session streams."""
        if not name:
            return
        self._agent_names[session_id] = name
        session = self._registry.get_session(session_id)
        if session is not None:
            for stream in session.streams.values():
                stream.label = self.label_for(stream)

    def agent_name_for(self, session_id: str) -> str | None:
        return self._agent_names.get(session_id)

    def forget_session(self, session_id: str) -> None:
        """Drop a session's agent name and release it if it was primary."""
        self._agent_names.pop(session_id, None)
        if session_id == self.primary_session_id:
            self.primary_session_id = None
            logger.info("primary_session_released", session_id=session_id)

    def reset(self) -> None:
        self._agent_names.clear()
        self.primary_session_id = None

    def label_for(self, stream: StreamState) -> str:
        if stream.agent_metadata is not None and stream.has_agent_metadata:
            name = stream.agent_metadata.display_name
            if name:
                return name
        if self.is_background_stream(stream):
            name = self._agent_names.get(stream.session_id) or "agent"
            return f"{name} ({stream.session_id[:SESSION_LABEL_LENGTH]})"
        return "main"

    # -- activity ----------------------------------------------------------

    def _is_recent(self, stream: StreamState, now: float) -> bool:
        return now - stream.last_update_at <= self._activity_window_ms

    def is_primary_active(self, now: float) -> bool:
        """True if an untagged primary-session stream updated recently."""
        if self.primary_session_id is None:
            return False
        session = self._registry.get_session(self.primary_session_id)
        if session is None:
            return False
        return any(
            not stream.has_agent_metadata and self._is_recent(stream, now)
            for stream in session.streams.values()
        )

    def list_active_primary_streams(self, now: float) -> list[StreamState]:
        return [
            stream
            for stream in self._registry.iter_streams()
            if self.is_primary_stream(stream) and self._is_recent(stream, now)
        ]

    def list_active_background_streams(self, now: float) -> list[StreamState]:
        """Recently updated background streams, fastest first."""
        active = [
            stream
            for stream in self._registry.iter_streams()
            if self.is_background_stream(stream) and self._is_recent(stream, now)
        ]
        active.sort(key=lambda s: s.estimator.get_instant_rate(now), reverse=True)
        return active
