"""Unit tests for notification sinks."""

from __future__ import annotations

import io
from types import SimpleNamespace

from rich.console import Console

from tests.fixtures.clients import MockTuiClient
from tpsmeter.sinks import (
    ConsoleSink,
    Notice,
    NotifySink,
    PublishSink,
    ToastSink,
    build_sink_chain,
)

NOTICE = Notice(
    title="TPS Meter",
    message="TPS: 42.0 (avg 38.5) | tokens: 1,842",
    variant="warning",
    duration_ms=20_000,
)


class TestHostSinks:
    """Tests for the sinks that call into the host client."""

    def test_toast_sink_passes_every_field(self, mock_client: MockTuiClient) -> None:
        ToastSink(mock_client.tui.show_toast)(NOTICE)

        assert mock_client.toast_calls == [
            {
                "title": "TPS Meter",
                "message": NOTICE.message,
                "variant": "warning",
                "duration": 20_000,
            }
        ]

    def test_publish_sink_shapes_toast_event(
        self, mock_client: MockTuiClient
    ) -> None:
        PublishSink(mock_client.tui.publish)(NOTICE)

        body = mock_client.publish_calls[0]
        assert body["type"] == "tui.toast.show"
        assert body["properties"]["message"] == NOTICE.message
        assert body["properties"]["variant"] == "warning"

    def test_notify_sink_uses_two_levels(self, mock_client: MockTuiClient) -> None:
        """Colour variants collapse to info; completion goes to success."""
        sink = NotifySink(mock_client.toast.info, mock_client.toast.success)

        sink(NOTICE)
        sink(Notice("TPS Meter", "done", "success", 2000, final=True))

        assert mock_client.notify_calls == [
            ("info", NOTICE.message),
            ("success", "done"),
        ]


class TestConsoleSink:
    """Tests for the CLI console sink."""

    @staticmethod
    def _console() -> tuple[Console, io.StringIO]:
        buffer = io.StringIO()
        return Console(file=buffer, width=120, color_system=None), buffer

    def test_prints_each_line(self) -> None:
        console, buffer = self._console()
        notice = Notice("TPS Meter", "TPS: 1.0\nexplore: 2.0 TPS", "info", 100)

        ConsoleSink(console)(notice)

        assert buffer.getvalue().splitlines() == ["TPS: 1.0", "explore: 2.0 TPS"]

    def test_clock_prefix_and_final_marker(self) -> None:
        console, buffer = self._console()
        sink = ConsoleSink(console, clock=lambda: 1500.0)

        sink(Notice("TPS Meter", "tokens: 12", "success", 2000, final=True))

        assert buffer.getvalue().strip() == "1.500s done tokens: 12"

    def test_markup_in_message_is_escaped(self) -> None:
        console, buffer = self._console()

        ConsoleSink(console)(Notice("TPS Meter", "[bold]agent[/bold]", "info", 100))

        assert buffer.getvalue().strip() == "[bold]agent[/bold]"


class TestBuildSinkChain:
    """Tests for build_sink_chain."""

    def test_no_client_means_no_sinks(self) -> None:
        assert build_sink_chain(None) == []

    def test_full_client_order(self, mock_client: MockTuiClient) -> None:
        names = [sink.name for sink in build_sink_chain(mock_client)]

        assert names == ["toast", "publish", "notify"]

    def test_partial_client(self) -> None:
        """Surfaces that are missing or not callable are skipped."""
        client = SimpleNamespace(
            tui=SimpleNamespace(show_toast="not callable", publish=lambda body: None),
            toast=SimpleNamespace(info=lambda message, duration=None: None),
        )

        names = [sink.name for sink in build_sink_chain(client)]

        assert names == ["publish"]
