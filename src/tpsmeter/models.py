"""Core data types shared by the registry, resolver and display coordinator."""

from __future__ import annotations

from dataclasses import dataclass, field, replace


@dataclass(frozen=True, slots=True)
class AgentMetadata:
    """Identity signals attached to a stream by the host.

    Attributes:
        agent_id: Explicit agent identifier, the strongest signal.
        agent_type: Agent kind (e.g. "explore"), inferred by the host.
        agent_name: Human-readable agent name, used for labels only.
    """

    agent_id: str | None = None
    agent_type: str | None = None
    agent_name: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.agent_id or self.agent_type or self.agent_name)

    def merged(self, newer: AgentMetadata | None) -> AgentMetadata:
        """Overlay the non-empty fields of ``newer`` onto this metadata."""
        if newer is None:
            return self
        return replace(
            self,
            agent_id=newer.agent_id or self.agent_id,
            agent_type=newer.agent_type or self.agent_type,
            agent_name=newer.agent_name or self.agent_name,
        )

    @property
    def display_name(self) -> str | None:
        return self.agent_name or self.agent_type or self.agent_id


@dataclass(frozen=True, slots=True)
class StreamKey:
    """Composite identity of one logical generation stream.

    Attributes:
        session_id: Session the stream belongs to.
        message_id: Message the stream belongs to.
        sub_identity: Finer identity within the message ("agent:<id>",
            "type:<agent type>" or "part:<part id>"), None at message
            granularity.
    """

    session_id: str
    message_id: str
    sub_identity: str | None = None

    def __str__(self) -> str:
        base = f"{self.session_id}:{self.message_id}"
        return f"{base}:{self.sub_identity}" if self.sub_identity else base


@dataclass(frozen=True, slots=True)
class StreamDisplayEntry:
    """One stream's line in a display snapshot.

    Attributes:
        id: Stream identifier (stringified StreamKey).
        label: Human-readable label.
        instant_rate: Windowed instantaneous rate (tokens/sec).
        avg_rate: Lifetime average rate (tokens/sec).
        total_count: Tokens recorded for the stream.
        elapsed_ms: Time since the stream's first activity.
        is_primary: Whether the stream belongs to the primary stream set.
    """

    id: str
    label: str
    instant_rate: float
    avg_rate: float
    total_count: int
    elapsed_ms: float
    is_primary: bool = False


@dataclass(frozen=True, slots=True)
class DisplaySnapshot:
    """Everything one display flush needs. Produced per flush, never stored.

    Attributes:
        instant_rate: Headline instantaneous rate.
        avg_rate: Headline average rate.
        total_count: Headline token total.
        elapsed_ms: Headline elapsed time.
        per_stream: Per-stream entries, primary streams first.
        primary_active: Whether the headline line should be shown.
    """

    instant_rate: float
    avg_rate: float
    total_count: int
    elapsed_ms: float
    per_stream: tuple[StreamDisplayEntry, ...] = field(default_factory=tuple)
    primary_active: bool = True

    @property
    def background(self) -> tuple[StreamDisplayEntry, ...]:
        return tuple(entry for entry in self.per_stream if not entry.is_primary)
