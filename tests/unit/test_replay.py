"""Unit tests for event log replay."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from tests.fixtures.clients import RecordingSink
from tests.fixtures.events import T0, message_event, part_event
from tpsmeter.config import TpsMeterConfig
from tpsmeter.meter import TpsMeter
from tpsmeter.replay import ReplayRecord, read_event_log, replay_events
from tpsmeter.scheduling import VirtualScheduler


def _line(at: float | None, event: dict[str, Any]) -> str:
    record: dict[str, Any] = {"event": event}
    if at is not None:
        record["at"] = at
    return json.dumps(record)


class TestReadEventLog:
    """Tests for read_event_log."""

    def test_skips_blank_and_malformed_lines(self, temp_dir: Path) -> None:
        path = temp_dir / "events.jsonl"
        path.write_text(
            "\n".join(
                [
                    _line(T0, message_event("ses", "m1")),
                    "",
                    "{not json",
                    json.dumps({"at": T0 + 5}),
                    _line(T0 + 10, part_event("ses", "m1", "abcd")),
                    json.dumps({"at": "soon", "event": {}}),
                ]
            )
        )
        skipped: list[int] = []

        records = list(read_event_log(path, skipped))

        assert [r.at for r in records] == [T0, T0 + 10]
        assert skipped == [3, 4, 6]

    def test_missing_timestamp_inherits_previous(self, temp_dir: Path) -> None:
        path = temp_dir / "events.jsonl"
        path.write_text(
            "\n".join(
                [
                    _line(None, message_event("ses", "m0")),
                    _line(T0, message_event("ses", "m1")),
                    _line(None, part_event("ses", "m1", "abcd")),
                ]
            )
        )

        records = list(read_event_log(path))

        assert [r.at for r in records] == [T0, T0]
        assert records[1].event["type"] == "message.part.updated"


class TestReplayEvents:
    """Tests for replay_events."""

    @pytest.mark.asyncio
    async def test_replay_drives_virtual_time(self, config_sandbox: Path) -> None:
        scheduler = VirtualScheduler(start_ms=0)
        sink = RecordingSink()
        meter = TpsMeter(TpsMeterConfig(), sinks=[sink], scheduler=scheduler)
        records = [ReplayRecord(T0, message_event("ses", "m1", created=T0))]
        records.extend(
            ReplayRecord(T0 + k * 10, part_event("ses", "m1", "abcd" * k))
            for k in range(1, 51)
        )
        records.append(
            ReplayRecord(
                T0 + 600,
                message_event(
                    "ses",
                    "m1",
                    created=T0,
                    completed=T0 + 600,
                    output_tokens=120,
                    finish="stop",
                ),
            )
        )

        summary = await replay_events(records, meter, scheduler)

        assert summary.events == 52
        assert summary.duration_ms == 600
        assert summary.notices == len(sink.notices)
        assert sink.notices[-1].final
        assert sink.messages[-1] == "TPS: 0.0 (avg 203.4) | tokens: 120"
        assert len(meter.registry) == 0

    @pytest.mark.asyncio
    async def test_empty_replay(self, config_sandbox: Path) -> None:
        scheduler = VirtualScheduler(start_ms=0)
        meter = TpsMeter(TpsMeterConfig(), sinks=[], scheduler=scheduler)

        summary = await replay_events([], meter, scheduler)

        assert summary.events == 0
        assert summary.duration_ms == 0
