"""Unit tests for primary versus background stream classification."""

from __future__ import annotations

import pytest

from tpsmeter.models import AgentMetadata
from tpsmeter.primary import PrimaryStreamResolver
from tpsmeter.registry import StreamRegistry, StreamState
from tpsmeter.scheduling import VirtualScheduler


@pytest.fixture
def registry(virtual_scheduler: VirtualScheduler) -> StreamRegistry:
    return StreamRegistry(1000, clock=virtual_scheduler.now)


@pytest.fixture
def resolver(registry: StreamRegistry) -> PrimaryStreamResolver:
    resolver = PrimaryStreamResolver(registry, window_ms=1000, min_elapsed_ms=250)
    registry.labeler = resolver.label_for
    return resolver


def _feed(
    registry: StreamRegistry,
    resolver: PrimaryStreamResolver,
    stream: StreamState,
    count: int,
    now: float,
) -> None:
    registry.record_tokens(stream, count, now)
    resolver.note_activity(stream)


class TestPrimaryAssignment:
    """Tests for the sticky primary session."""

    def test_first_untagged_session_becomes_primary(
        self,
        registry: StreamRegistry,
        resolver: PrimaryStreamResolver,
        virtual_scheduler: VirtualScheduler,
    ) -> None:
        now = virtual_scheduler.now()
        tagged = registry.get_or_create_stream(
            "ses-a", "m0", "p", AgentMetadata(agent_id="bg")
        )
        _feed(registry, resolver, tagged, 5, now)
        assert resolver.primary_session_id is None

        main = registry.get_or_create_stream("ses-a", "m1", "p")
        _feed(registry, resolver, main, 5, now)

        assert resolver.primary_session_id == "ses-a"
        assert resolver.is_primary_stream(main)
        assert not resolver.is_primary_stream(tagged)
        assert resolver.is_background_stream(tagged)

    def test_assignment_is_sticky(
        self,
        registry: StreamRegistry,
        resolver: PrimaryStreamResolver,
        virtual_scheduler: VirtualScheduler,
    ) -> None:
        """A later session never takes over, even after the first goes quiet."""
        first = registry.get_or_create_stream("ses-a", "m1", "p")
        _feed(registry, resolver, first, 5, virtual_scheduler.now())

        virtual_scheduler.advance(60_000)
        second = registry.get_or_create_stream("ses-b", "m2", "p")
        _feed(registry, resolver, second, 5, virtual_scheduler.now())

        assert resolver.primary_session_id == "ses-a"
        assert resolver.is_background_stream(second)

    def test_idle_primary_is_released(
        self,
        registry: StreamRegistry,
        resolver: PrimaryStreamResolver,
        virtual_scheduler: VirtualScheduler,
    ) -> None:
        """Once the primary session is forgotten the next session claims it."""
        first = registry.get_or_create_stream("ses-a", "m1", "p")
        _feed(registry, resolver, first, 5, virtual_scheduler.now())

        registry.remove_session("ses-a")
        resolver.forget_session("ses-a")
        assert resolver.primary_session_id is None

        second = registry.get_or_create_stream("ses-b", "m2", "p")
        _feed(registry, resolver, second, 5, virtual_scheduler.now())

        assert resolver.primary_session_id == "ses-b"
        assert resolver.is_primary_stream(second)
        assert second.label == "main"

    def test_forgetting_background_session_keeps_primary(
        self,
        registry: StreamRegistry,
        resolver: PrimaryStreamResolver,
        virtual_scheduler: VirtualScheduler,
    ) -> None:
        main = registry.get_or_create_stream("ses-a", "m1", "p")
        _feed(registry, resolver, main, 5, virtual_scheduler.now())

        resolver.forget_session("ses-b")

        assert resolver.primary_session_id == "ses-a"

    def test_reset_clears_primary_and_names(
        self,
        registry: StreamRegistry,
        resolver: PrimaryStreamResolver,
        virtual_scheduler: VirtualScheduler,
    ) -> None:
        main = registry.get_or_create_stream("ses-a", "m1", "p")
        _feed(registry, resolver, main, 5, virtual_scheduler.now())
        resolver.remember_agent_name("ses-b", "explore")

        resolver.reset()

        assert resolver.primary_session_id is None
        assert resolver.agent_name_for("ses-b") is None


class TestLabels:
    """Tests for display labels."""

    def test_cross_session_stream_uses_cached_agent_name(
        self,
        registry: StreamRegistry,
        resolver: PrimaryStreamResolver,
        virtual_scheduler: VirtualScheduler,
    ) -> None:
        now = virtual_scheduler.now()
        main = registry.get_or_create_stream("ses-main", "m1", "p")
        _feed(registry, resolver, main, 5, now)
        child = registry.get_or_create_stream("ses_0123456789abcdef", "m2", "p")
        _feed(registry, resolver, child, 5, now)

        assert main.label == "main"
        assert child.label == "agent (ses_0123)"

        resolver.remember_agent_name("ses_0123456789abcdef", "explore")

        assert child.label == "explore (ses_0123)"
        assert resolver.agent_name_for("ses_0123456789abcdef") == "explore"

    def test_metadata_name_wins(
        self, registry: StreamRegistry, resolver: PrimaryStreamResolver
    ) -> None:
        stream = registry.get_or_create_stream(
            "ses", "m", "p", AgentMetadata(agent_id="a-1", agent_type="librarian")
        )

        assert stream.label == "librarian"

    def test_labels_refresh_when_primary_is_assigned(
        self,
        registry: StreamRegistry,
        resolver: PrimaryStreamResolver,
        virtual_scheduler: VirtualScheduler,
    ) -> None:
        """A stream created before any primary exists is relabelled later."""
        early = registry.get_or_create_stream("ses-b", "m2", "p")
        assert early.label == "main"

        main = registry.get_or_create_stream("ses-a", "m1", "p")
        _feed(registry, resolver, main, 5, virtual_scheduler.now())

        assert early.label == "agent (ses-b)"


class TestActivity:
    """Tests for activity-window queries."""

    def test_activity_window_floor(self, registry: StreamRegistry) -> None:
        resolver = PrimaryStreamResolver(registry, window_ms=200, min_elapsed_ms=250)

        assert resolver.activity_window_ms == 1000

    def test_tagged_stream_does_not_make_primary_active(
        self,
        registry: StreamRegistry,
        resolver: PrimaryStreamResolver,
        virtual_scheduler: VirtualScheduler,
    ) -> None:
        t0 = virtual_scheduler.now()
        main = registry.get_or_create_stream("ses", "m1", "a")
        _feed(registry, resolver, main, 5, t0)
        tagged = registry.get_or_create_stream(
            "ses", "m2", "b", AgentMetadata(agent_id="bg")
        )

        later = t0 + 1500
        _feed(registry, resolver, tagged, 5, later)

        assert not resolver.is_primary_active(later)
        assert resolver.list_active_primary_streams(later) == []
        assert resolver.list_active_background_streams(later) == [tagged]

    def test_background_sorted_fastest_first(
        self,
        registry: StreamRegistry,
        resolver: PrimaryStreamResolver,
        virtual_scheduler: VirtualScheduler,
    ) -> None:
        now = virtual_scheduler.now()
        slow = registry.get_or_create_stream(
            "ses", "m1", "p", AgentMetadata(agent_id="slow")
        )
        fast = registry.get_or_create_stream(
            "ses", "m2", "p", AgentMetadata(agent_id="fast")
        )
        _feed(registry, resolver, slow, 2, now)
        _feed(registry, resolver, fast, 20, now)

        assert resolver.list_active_background_streams(now) == [fast, slow]

    def test_no_primary_means_inactive(
        self, resolver: PrimaryStreamResolver, virtual_scheduler: VirtualScheduler
    ) -> None:
        assert not resolver.is_primary_active(virtual_scheduler.now())
