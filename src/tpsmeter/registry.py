"""Session and stream bookkeeping.

The registry maps a composite StreamKey to per-stream state and groups
streams under a per-session aggregate estimator. It is instance-scoped: a
meter owns exactly one registry, and nothing outside the meter's
components mutates it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

from tpsmeter.constants import DEFAULT_ROLLING_WINDOW_MS
from tpsmeter.estimator import RateEstimator, SmoothingProfile
from tpsmeter.logging import get_logger
from tpsmeter.models import AgentMetadata, StreamKey

__all__ = [
    "StreamState",
    "SessionState",
    "StreamRegistry",
    "build_stream_key",
]

logger = get_logger(__name__)


@dataclass(slots=True)
class StreamState:
    """Mutable state of one logical stream.

    Attributes:
        key: Composite identity.
        message_id: Message the stream belongs to.
        part_id: Part that created the stream, if any.
        estimator: The stream's own rate estimator.
        label: Display label, recomputed when metadata changes.
        first_activity_at: Timestamp of the first recorded token.
        last_update_at: Timestamp of the last recorded token (or creation).
        agent_metadata: Merged identity signals, None when untagged.
    """

    key: StreamKey
    message_id: str
    part_id: str | None
    estimator: RateEstimator
    label: str
    first_activity_at: float | None = None
    last_update_at: float = 0.0
    agent_metadata: AgentMetadata | None = None

    @property
    def session_id(self) -> str:
        return self.key.session_id

    @property
    def has_agent_metadata(self) -> bool:
        return self.agent_metadata is not None and not self.agent_metadata.is_empty


@dataclass(slots=True)
class SessionState:
    """All streams of one session plus their combined estimator."""

    session_id: str
    aggregate: RateEstimator
    aggregate_first_token_at: float | None = None
    streams: dict[StreamKey, StreamState] = field(default_factory=dict)

    def reset_aggregate(self) -> None:
        self.aggregate.reset()
        self.aggregate_first_token_at = None


def build_stream_key(
    session_id: str,
    message_id: str,
    part_id: str | None = None,
    metadata: AgentMetadata | None = None,
) -> StreamKey:
    """Build the identity for a stream.

    Precedence: explicit agent id > agent type > part id > message only.
    """
    sub_identity: str | None = None
    if metadata is not None and metadata.agent_id:
        sub_identity = f"agent:{metadata.agent_id}"
    elif metadata is not None and metadata.agent_type:
        sub_identity = f"type:{metadata.agent_type}"
    elif part_id:
        sub_identity = f"part:{part_id}"
    return StreamKey(session_id, message_id, sub_identity)


def _default_label(stream: StreamState) -> str:
    if stream.agent_metadata is not None:
        name = stream.agent_metadata.display_name
        if name:
            return name
    return "main"


class StreamRegistry:
    """Registry of sessions and their streams.

    Attributes:
        labeler: Computes a stream's display label; replaced by the meter
            with the primary-stream resolver's labelling.
    """

    def __init__(
        self,
        window_ms: float = DEFAULT_ROLLING_WINDOW_MS,
        *,
        clock: Callable[[], float],
        smoothing: SmoothingProfile | None = None,
    ) -> None:
        self._window_ms = window_ms
        self._clock = clock
        self._smoothing = smoothing
        self._sessions: dict[str, SessionState] = {}
        self.labeler: Callable[[StreamState], str] = _default_label

    def _new_estimator(self, label: str) -> RateEstimator:
        return RateEstimator(
            self._window_ms,
            clock=self._clock,
            smoothing=self._smoothing,
            label=label,
        )

    # -- sessions ----------------------------------------------------------

    @property
    def sessions(self) -> dict[str, SessionState]:
        return self._sessions

    def get_session(self, session_id: str) -> SessionState | None:
        return self._sessions.get(session_id)

    def get_or_create_session(self, session_id: str) -> SessionState:
        session = self._sessions.get(session_id)
        if session is None:
            session = SessionState(
                session_id=session_id,
                aggregate=self._new_estimator(session_id),
            )
            self._sessions[session_id] = session
            logger.debug("session_created", session_id=session_id)
        return session

    def remove_session(self, session_id: str) -> SessionState | None:
        return self._sessions.pop(session_id, None)

    def clear(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    # -- streams -----------------------------------------------------------

    def iter_streams(self) -> Iterator[StreamState]:
        for session in self._sessions.values():
            yield from session.streams.values()

    def streams_for_message(
        self, session_id: str, message_id: str
    ) -> list[StreamState]:
        session = self._sessions.get(session_id)
        if session is None:
            return []
        return [s for s in session.streams.values() if s.message_id == message_id]

    def get_or_create_stream(
        self,
        session_id: str,
        message_id: str,
        part_id: str | None = None,
        metadata: AgentMetadata | None = None,
    ) -> StreamState:
        """Look up the stream for this identity, creating it if needed.

        When the stream exists, non-empty fields of ``metadata`` are merged
        in and the label is recomputed. A part whose stream was created
        before its agent tag arrived keeps that stream, re-keyed under the
        tagged identity.
        """
        session = self.get_or_create_session(session_id)
        key = build_stream_key(session_id, message_id, part_id, metadata)
        stream = session.streams.get(key)
        if stream is None and part_id is not None:
            stream = self._find_part_stream(session, message_id, part_id)
            # only an untagged part-level stream is upgraded to the tagged key
            if stream is not None and stream.key.sub_identity == f"part:{part_id}":
                self._rekey(session, stream, key)
        if stream is None:
            stream = StreamState(
                key=key,
                message_id=message_id,
                part_id=part_id,
                estimator=self._new_estimator(str(key)),
                label="",
                last_update_at=self._clock(),
                agent_metadata=(
                    metadata if metadata is not None and not metadata.is_empty else None
                ),
            )
            stream.label = self.labeler(stream)
            session.streams[key] = stream
            logger.debug("stream_created", stream=str(key), label=stream.label)
            return stream

        self.merge_metadata(stream, metadata)
        return stream

    @staticmethod
    def _find_part_stream(
        session: SessionState, message_id: str, part_id: str
    ) -> StreamState | None:
        for stream in session.streams.values():
            if stream.message_id == message_id and stream.part_id == part_id:
                return stream
        return None

    def _rekey(
        self, session: SessionState, stream: StreamState, key: StreamKey
    ) -> None:
        del session.streams[stream.key]
        logger.debug("stream_rekeyed", old=str(stream.key), new=str(key))
        stream.key = key
        stream.estimator.label = str(key)
        session.streams[key] = stream

    def merge_metadata(
        self, stream: StreamState, metadata: AgentMetadata | None
    ) -> None:
        if metadata is None or metadata.is_empty:
            return
        base = stream.agent_metadata or AgentMetadata()
        stream.agent_metadata = base.merged(metadata)
        stream.label = self.labeler(stream)

    def record_tokens(self, stream: StreamState, count: int, now: float) -> bool:
        """Record tokens on a stream and its session aggregate.

        Returns:
            True if this was the first token of the session aggregate since
            it was created or last reset.
        """
        session = self.get_or_create_session(stream.session_id)
        stream.estimator.record_tokens(count, now)
        session.aggregate.record_tokens(count, now)
        stream.last_update_at = now
        if stream.first_activity_at is None:
            stream.first_activity_at = now
        if session.aggregate_first_token_at is None:
            session.aggregate_first_token_at = now
            return True
        return False

    def remove_stream(self, session_id: str, message_id: str) -> list[StreamState]:
        """Remove every stream of a message.

        A message can fan out into several stream keys (one per sub-agent
        part). When the session ends up with no streams, its aggregate is
        reset.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return []
        keys = [k for k, s in session.streams.items() if s.message_id == message_id]
        removed = [session.streams.pop(k) for k in keys]
        if removed and not session.streams:
            session.reset_aggregate()
        return removed
