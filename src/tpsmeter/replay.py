"""Replay of recorded host event logs.

An event log is JSON Lines, one record per line::

    {"at": 1718000000123, "event": {"type": "message.part.updated", ...}}

``at`` is the host's epoch-millisecond timestamp for the event. Records are
fed to a meter driven by a VirtualScheduler, so throttle, flood-guard and
fallback timers fire exactly as they would have live, without waiting.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tpsmeter.logging import get_logger
from tpsmeter.meter import TpsMeter
from tpsmeter.scheduling import VirtualScheduler

__all__ = ["ReplayRecord", "ReplaySummary", "read_event_log", "replay_events"]

logger = get_logger(__name__)

#: Virtual time allowed after the last record for pending timers to fire
SETTLE_MS: float = 5000


@dataclass(frozen=True, slots=True)
class ReplayRecord:
    at: float
    event: dict[str, Any]


@dataclass(frozen=True, slots=True)
class ReplaySummary:
    """Outcome of a replay.

    Attributes:
        events: Records fed to the meter.
        notices: Notices delivered to a sink.
        duration_ms: Virtual time covered by the log.
    """

    events: int
    notices: int
    duration_ms: float


def _parse_line(line: str, previous_at: float | None) -> ReplayRecord:
    record = json.loads(line)
    if not isinstance(record, dict) or not isinstance(record.get("event"), dict):
        raise ValueError("record has no event object")
    at = record.get("at", previous_at)
    if isinstance(at, bool) or not isinstance(at, int | float):
        raise ValueError("record has no numeric 'at' timestamp")
    return ReplayRecord(at=float(at), event=record["event"])


def read_event_log(
    path: Path, skipped: list[int] | None = None
) -> Iterator[ReplayRecord]:
    """Yield records from a JSON Lines event log.

    Blank lines are ignored. Malformed lines are logged and skipped; their
    line numbers are appended to ``skipped`` when given. A record without
    ``at`` inherits the previous record's timestamp.
    """
    previous_at: float | None = None
    with open(path, encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                record = _parse_line(line, previous_at)
            except ValueError as e:
                # json.JSONDecodeError is a ValueError
                logger.warning("replay_line_skipped", line=lineno, error=str(e))
                if skipped is not None:
                    skipped.append(lineno)
                continue
            previous_at = record.at
            yield record


async def replay_events(
    records: Iterable[ReplayRecord],
    meter: TpsMeter,
    scheduler: VirtualScheduler,
    *,
    speed: float = 0.0,
    settle_ms: float = SETTLE_MS,
) -> ReplaySummary:
    """Feed records to ``meter``, advancing ``scheduler`` to each timestamp.

    Args:
        speed: Real-time pacing factor; 0 replays as fast as possible,
            1 in real time, 2 at double speed.
        settle_ms: Virtual time to run after the last record.

    Returns:
        Counts describing the replay.
    """
    count = 0
    started_at: float | None = None
    for record in records:
        if started_at is None:
            started_at = record.at
            scheduler.advance_to(record.at)
        gap_ms = record.at - scheduler.now()
        if speed > 0 and gap_ms > 0:
            await asyncio.sleep(gap_ms / 1000 / speed)
        scheduler.advance_to(record.at)
        await meter.on_event(record.event)
        count += 1

    end_at = scheduler.now()
    scheduler.advance(settle_ms)
    meter.shutdown()
    return ReplaySummary(
        events=count,
        notices=meter.coordinator.emitted,
        duration_ms=end_at - started_at if started_at is not None else 0.0,
    )
