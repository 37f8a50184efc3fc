"""Host integration: turns host events into display updates.

A TpsMeter owns one instance of every core component:

- StreamRegistry: per-stream and per-session rate estimators
- PrimaryStreamResolver: foreground versus background classification
- StalenessReaper: bounds memory for streams that never complete
- DisplayCoordinator: throttled, flood-guarded sink dispatch

plus the message-level caches the host protocol requires (roles, agent
metadata, previous part text, reported token counts, first-token times).
Nothing is module-global, so independent meters can coexist in one
process.

Usage:
    meter = create_meter(client=client)
    await meter.on_event(payload)
    ...
    meter.shutdown()
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from tpsmeter.config import TpsMeterConfig, load_config
from tpsmeter.constants import (
    COUNTABLE_PART_TYPES,
    DEFAULT_SESSION_ID,
    INVALID_FINISH_REASONS,
    MAX_MESSAGE_AGE_MS,
    MIN_TPS_ELAPSED_MS,
)
from tpsmeter.display import DisplayCoordinator
from tpsmeter.estimator import SmoothingProfile
from tpsmeter.events import (
    AgentPart,
    HostEvent,
    MessageInfo,
    MessageUpdated,
    PartUpdated,
    SessionIdle,
    decode_event,
    extract_part_text,
)
from tpsmeter.exceptions import ConfigError
from tpsmeter.logging import get_logger
from tpsmeter.models import AgentMetadata, DisplaySnapshot, StreamDisplayEntry
from tpsmeter.primary import PrimaryStreamResolver
from tpsmeter.reaper import StalenessReaper
from tpsmeter.registry import SessionState, StreamRegistry, StreamState
from tpsmeter.scheduling import AsyncioScheduler, ScheduledTasks, Scheduler
from tpsmeter.sinks import Sink, build_sink_chain
from tpsmeter.tokens import TokenCounter

__all__ = ["TpsMeter", "create_meter"]

logger = get_logger(__name__)

_FALLBACK_TASK = "fallback"


@dataclass(slots=True)
class _MessageCaches:
    """Message-level bookkeeping for one session."""

    roles: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, AgentMetadata] = field(default_factory=dict)
    part_text: dict[tuple[str, str | None, str], str] = field(default_factory=dict)
    tokens: dict[str, int] = field(default_factory=dict)
    first_token_at: dict[str, float] = field(default_factory=dict)
    seen_at: dict[str, float] = field(default_factory=dict)

    def forget_message(self, message_id: str) -> None:
        self.roles.pop(message_id, None)
        self.metadata.pop(message_id, None)
        self.tokens.pop(message_id, None)
        self.first_token_at.pop(message_id, None)
        self.seen_at.pop(message_id, None)
        for key in [k for k in self.part_text if k[0] == message_id]:
            del self.part_text[key]

    def forget_part(self, message_id: str, part_id: str | None) -> None:
        for key in [k for k in self.part_text if k[:2] == (message_id, part_id)]:
            del self.part_text[key]

    def __bool__(self) -> bool:
        return bool(self.seen_at)


class TpsMeter:
    """Multi-stream tokens-per-second meter.

    Attributes:
        config: The resolved configuration, never mutated.
        scheduler: Clock and timer source shared by every component.
        registry: Session and stream state.
        resolver: Primary stream classification.
        reaper: Staleness sweeps.
        coordinator: Display throttling and sink dispatch.
    """

    def __init__(
        self,
        config: TpsMeterConfig | None = None,
        client: Any = None,
        *,
        sinks: Sequence[Sink] | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.config = config or TpsMeterConfig()
        self.scheduler = scheduler or AsyncioScheduler()
        self._tasks = ScheduledTasks(self.scheduler)

        self.registry = StreamRegistry(
            self.config.rolling_window_ms,
            clock=self.scheduler.now,
            smoothing=SmoothingProfile(
                burst_threshold=self.config.burst_token_threshold,
                large_burst_threshold=self.config.large_burst_threshold,
            ),
        )
        self.resolver = PrimaryStreamResolver(
            self.registry,
            window_ms=self.config.rolling_window_ms,
            min_elapsed_ms=MIN_TPS_ELAPSED_MS,
        )
        self.registry.labeler = self.resolver.label_for
        self.reaper = StalenessReaper(
            self.registry,
            max_age_ms=MAX_MESSAGE_AGE_MS,
            on_evict=self._on_stream_evicted,
        )
        self.coordinator = DisplayCoordinator(
            sinks if sinks is not None else build_sink_chain(client),
            self.scheduler,
            self.config,
            tasks=self._tasks,
        )
        self._counter = TokenCounter(self.config.fallback_token_heuristic)
        self._caches: dict[str, _MessageCaches] = {}

        if self.enabled and not self.coordinator.sinks:
            logger.warning("no_display_sinks", client=type(client).__name__)

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    # -- host entry points -------------------------------------------------

    def handle_event(self, payload: Mapping[str, Any]) -> None:
        """Process one host event. Never raises."""
        if not self.enabled:
            return
        try:
            # plugin hosts wrap the event as {"event": {...}}
            if "type" not in payload and isinstance(payload.get("event"), Mapping):
                payload = payload["event"]
            event = decode_event(payload)
            if event is None:
                return
            self._sweep_if_due(self.scheduler.now())
            self._dispatch(event)
        except Exception:
            logger.warning("event_handling_failed", exc_info=True)

    async def on_event(self, payload: Mapping[str, Any]) -> None:
        """Async entry point for hosts that await their event handlers."""
        self.handle_event(payload)

    def shutdown(self) -> None:
        """Cancel every timer, flush the display and drop all state."""
        self.coordinator.clear()
        self._tasks.cancel_all()
        self.registry.clear()
        self._caches.clear()
        self.resolver.reset()
        self.reaper.reset()
        logger.debug("meter_shutdown")

    def _dispatch(self, event: HostEvent) -> None:
        match event:
            case PartUpdated():
                self._on_part_updated(event)
            case MessageUpdated(info=info):
                self._on_message_updated(info)
            case SessionIdle(session_id=session_id):
                self._on_session_idle(session_id or DEFAULT_SESSION_ID)

    # -- part updates ------------------------------------------------------

    def _caches_for(self, session_id: str) -> _MessageCaches:
        caches = self._caches.get(session_id)
        if caches is None:
            caches = self._caches[session_id] = _MessageCaches()
        return caches

    def _on_part_updated(self, event: PartUpdated) -> None:
        part = event.part
        session_id = part.session_id or DEFAULT_SESSION_ID

        if isinstance(part, AgentPart):
            self.resolver.remember_agent_name(session_id, part.name)
            return
        if part.type not in COUNTABLE_PART_TYPES:
            return

        caches = self._caches_for(session_id)
        message_id = part.message_id
        delta = event.delta
        text = extract_part_text(part)
        if not delta and text:
            key = (message_id, part.id, part.type)
            previous = caches.part_text.get(key, "")
            delta = text[len(previous) :] if text.startswith(previous) else text
            caches.part_text[key] = text
        if not delta:
            return
        if caches.roles.get(message_id) != "assistant":
            return

        count = self._counter.count(delta)
        if count <= 0:
            return
        now = self.scheduler.now()
        caches.seen_at[message_id] = now
        caches.first_token_at.setdefault(message_id, now)
        caches.tokens[message_id] = caches.tokens.get(message_id, 0) + count

        metadata = caches.metadata.get(message_id, AgentMetadata()).merged(
            part.agent_metadata()
        )
        stream = self.registry.get_or_create_stream(
            session_id, message_id, part.id, metadata
        )
        first_token = self.registry.record_tokens(stream, count, now)
        self.resolver.note_activity(stream)
        logger.debug(
            "tokens_recorded",
            stream=str(stream.key),
            count=count,
            instant_tps=round(stream.estimator.get_instant_rate(now), 1),
            smoothed_tps=round(stream.estimator.get_smoothed_rate(), 1),
        )

        if first_token:
            self._tasks.schedule(
                session_id,
                _FALLBACK_TASK,
                MIN_TPS_ELAPSED_MS,
                lambda: self._on_fallback_timer(session_id),
            )
        self._push_display(now, session_id)

    # -- display -----------------------------------------------------------

    def _stream_entry(
        self, stream: StreamState, now: float, *, is_primary: bool
    ) -> StreamDisplayEntry:
        started = stream.first_activity_at if stream.first_activity_at else now
        return StreamDisplayEntry(
            id=str(stream.key),
            label=stream.label,
            instant_rate=stream.estimator.get_instant_rate(now),
            avg_rate=stream.estimator.get_average_rate(now),
            total_count=stream.estimator.total_tokens,
            elapsed_ms=max(0.0, now - started),
            is_primary=is_primary,
        )

    def snapshot(self, now: float | None = None) -> DisplaySnapshot:
        """Build the display snapshot for ``now`` (default: the clock).

        The headline figures come from the primary session's aggregate;
        per-stream entries list active primary streams first, then active
        background streams fastest first.
        """
        now = self.scheduler.now() if now is None else now
        instant = avg = elapsed = 0.0
        total = 0
        primary = self._primary_session()
        if primary is not None and primary.aggregate_first_token_at is not None:
            instant = primary.aggregate.get_instant_rate(now)
            avg = primary.aggregate.get_average_rate(now)
            total = primary.aggregate.total_tokens
            elapsed = max(0.0, now - primary.aggregate_first_token_at)

        entries = [
            self._stream_entry(stream, now, is_primary=True)
            for stream in self.resolver.list_active_primary_streams(now)
        ]
        entries.extend(
            self._stream_entry(stream, now, is_primary=False)
            for stream in self.resolver.list_active_background_streams(now)
        )
        return DisplaySnapshot(
            instant_rate=instant,
            avg_rate=avg,
            total_count=total,
            elapsed_ms=elapsed,
            per_stream=tuple(entries),
            primary_active=self.resolver.is_primary_active(now),
        )

    def _primary_session(self) -> SessionState | None:
        session_id = self.resolver.primary_session_id
        if session_id is None:
            return None
        return self.registry.get_session(session_id)

    @staticmethod
    def _visible_rate(snapshot: DisplaySnapshot) -> float:
        rates = [entry.instant_rate for entry in snapshot.background]
        if snapshot.primary_active:
            rates.append(snapshot.instant_rate)
        return max(rates, default=0.0)

    def _push_display(
        self, now: float, session_id: str, *, fallback: bool = False
    ) -> None:
        session = self.registry.get_session(session_id)
        if session is None or session.aggregate_first_token_at is None:
            return
        since_first = now - session.aggregate_first_token_at
        if not fallback and since_first < MIN_TPS_ELAPSED_MS:
            return

        snapshot = self.snapshot(now)
        if not snapshot.primary_active and not snapshot.background:
            return
        if self._visible_rate(snapshot) < self.config.min_visible_tps:
            return

        self._tasks.cancel(session_id, _FALLBACK_TASK)
        self.coordinator.update_display(
            snapshot.instant_rate,
            snapshot.avg_rate,
            snapshot.total_count,
            snapshot.elapsed_ms,
            snapshot.per_stream,
            primary_active=snapshot.primary_active,
        )

    def _on_fallback_timer(self, session_id: str) -> None:
        logger.debug("fallback_display", session_id=session_id)
        self._push_display(self.scheduler.now(), session_id, fallback=True)

    # -- message status ----------------------------------------------------

    def _on_message_updated(self, info: MessageInfo) -> None:
        session_id = info.session_id or DEFAULT_SESSION_ID
        caches = self._caches_for(session_id)
        caches.roles[info.id] = info.role
        caches.seen_at[info.id] = self.scheduler.now()

        metadata = info.agent_metadata()
        if not metadata.is_empty:
            known = caches.metadata.get(info.id, AgentMetadata())
            caches.metadata[info.id] = known.merged(metadata)
            for stream in self.registry.streams_for_message(session_id, info.id):
                self.registry.merge_metadata(stream, metadata)
        name = metadata.agent_name or info.mode
        self.resolver.remember_agent_name(session_id, name)

        if info.error:
            logger.warning(
                "message_error", session_id=session_id, message_id=info.id
            )
        if info.role != "assistant":
            return

        reported = info.reported_tokens
        caches.tokens[info.id] = max(caches.tokens.get(info.id, 0), reported)
        if info.time.completed is not None:
            self._complete_message(session_id, info, caches)

    def _complete_message(
        self, session_id: str, info: MessageInfo, caches: _MessageCaches
    ) -> None:
        completed_at = info.time.completed
        if completed_at is None:
            return
        created_at = info.time.created
        if created_at is None:
            created_at = completed_at
        first_token_at = caches.first_token_at.get(info.id, created_at)
        elapsed_ms = max(0.0, completed_at - first_token_at)
        reported = info.reported_tokens
        total = reported if reported > 0 else caches.tokens.get(info.id, 0)
        avg_rate = total / (elapsed_ms / 1000) if elapsed_ms > 0 else 0.0

        valid_finish = (
            info.finish is not None and info.finish not in INVALID_FINISH_REASONS
        )
        if (
            session_id in self.registry
            and valid_finish
            and total > 0
            and elapsed_ms >= MIN_TPS_ELAPSED_MS
        ):
            self.coordinator.show_final_stats(total, avg_rate, elapsed_ms)
            logger.info(
                "final_stats",
                session_id=session_id,
                message_id=info.id,
                total_tokens=total,
                elapsed_ms=elapsed_ms,
                avg_tps=round(avg_rate, 1),
            )

        self.registry.remove_stream(session_id, info.id)
        session = self.registry.get_session(session_id)
        if session is not None and not session.streams:
            self._tasks.cancel(session_id, _FALLBACK_TASK)
        caches.forget_message(info.id)

    # -- teardown ----------------------------------------------------------

    def _on_session_idle(self, session_id: str) -> None:
        logger.debug("session_idle", session_id=session_id)
        self._tasks.cancel_owner(session_id)
        self.registry.remove_session(session_id)
        self._caches.pop(session_id, None)
        self.resolver.forget_session(session_id)
        if not len(self.registry):
            # no live sessions: drop display state, keep other sessions' roles
            self.coordinator.clear()
            self.reaper.reset()

    def _on_stream_evicted(self, stream: StreamState) -> None:
        caches = self._caches.get(stream.session_id)
        if caches is not None:
            if self.registry.streams_for_message(
                stream.session_id, stream.message_id
            ):
                # other parts of the message are still live
                caches.forget_part(stream.message_id, stream.part_id)
            else:
                caches.forget_message(stream.message_id)
        session = self.registry.get_session(stream.session_id)
        if session is not None and not session.streams:
            self._tasks.cancel(stream.session_id, _FALLBACK_TASK)

    def _sweep_if_due(self, now: float) -> None:
        if self.reaper.maybe_sweep(now) is None:
            return
        # messages that never produced a stream are not seen by the reaper
        for session_id, caches in list(self._caches.items()):
            stale = [
                message_id
                for message_id, seen_at in caches.seen_at.items()
                if now - seen_at > self.reaper.max_age_ms
            ]
            for message_id in stale:
                caches.forget_message(message_id)
            if not caches and session_id not in self.registry:
                del self._caches[session_id]
            if stale:
                logger.debug(
                    "stale_messages_evicted", session_id=session_id, count=len(stale)
                )


def create_meter(
    client: Any = None,
    config: TpsMeterConfig | None = None,
    *,
    scheduler: Scheduler | None = None,
) -> TpsMeter:
    """Create a meter for a host client.

    Configuration is loaded from the environment and config files unless
    given explicitly. A configuration that fails to load is replaced by
    the defaults; a disabled configuration yields an inert meter.
    """
    if config is None:
        try:
            config = load_config()
        except ConfigError as e:
            logger.warning("config_load_failed", error=e.message, field=e.field)
            config = TpsMeterConfig.model_construct()
    meter = TpsMeter(config, client, scheduler=scheduler)
    if meter.enabled:
        sinks = [sink.name for sink in meter.coordinator.sinks]
        logger.info("meter_initialized", sinks=sinks)
    else:
        logger.debug("meter_disabled")
    return meter
