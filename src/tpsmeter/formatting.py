"""Text rendering for display snapshots.

Formats (with every segment enabled):

- compact: ``TPS: 42.0 (avg 38.5) | tokens: 1,842 | 00:23``
- verbose: ``Instant: 42.0 tok/s | Average: 38.5 tok/s | Tokens: 1,842 |
  Elapsed: 00:23``
- minimal: ``42.0 TPS``

Background streams get one ``<label>: ...`` line each, below the headline.
The headline is omitted while the primary stream is idle.
"""

from __future__ import annotations

from dataclasses import dataclass

from tpsmeter.config import TpsMeterConfig
from tpsmeter.constants import DisplayFormat, ToastVariant
from tpsmeter.models import DisplaySnapshot, StreamDisplayEntry

__all__ = [
    "DisplayOptions",
    "format_elapsed",
    "format_count",
    "format_rates",
    "format_snapshot",
    "format_final",
    "color_variant",
]


@dataclass(frozen=True, slots=True)
class DisplayOptions:
    """The display-related subset of the configuration."""

    format: DisplayFormat = "compact"
    show_instant: bool = True
    show_average: bool = True
    show_total_tokens: bool = True
    show_elapsed: bool = False
    enable_color_coding: bool = False
    slow_tps_threshold: float = 10
    fast_tps_threshold: float = 50

    @classmethod
    def from_config(cls, config: TpsMeterConfig) -> DisplayOptions:
        return cls(
            format=config.format,
            show_instant=config.show_instant,
            show_average=config.show_average,
            show_total_tokens=config.show_total_tokens,
            show_elapsed=config.show_elapsed,
            enable_color_coding=config.enable_color_coding,
            slow_tps_threshold=config.slow_tps_threshold,
            fast_tps_threshold=config.fast_tps_threshold,
        )


def format_elapsed(ms: float) -> str:
    """Format milliseconds as MM:SS."""
    minutes, seconds = divmod(int(max(0.0, ms) // 1000), 60)
    return f"{minutes:02d}:{seconds:02d}"


def format_count(count: int) -> str:
    return f"{count:,}"


def format_rates(
    instant: float,
    avg: float,
    total: int,
    elapsed_ms: float,
    options: DisplayOptions,
    *,
    headline: bool = True,
) -> str:
    """Render one line of rate segments.

    Args:
        headline: The primary line; stream lines drop the ``TPS:`` prefix
            so the label leads.
    """
    if options.format == "minimal":
        if options.show_instant:
            return f"{instant:.1f} TPS"
        if options.show_average:
            return f"{avg:.1f} TPS"
        return ""

    segments: list[str] = []
    if options.format == "verbose":
        if options.show_instant:
            segments.append(f"Instant: {instant:.1f} tok/s")
        if options.show_average:
            segments.append(f"Average: {avg:.1f} tok/s")
        if options.show_total_tokens:
            segments.append(f"Tokens: {format_count(total)}")
        if options.show_elapsed:
            segments.append(f"Elapsed: {format_elapsed(elapsed_ms)}")
        return " | ".join(segments)

    rate_parts: list[str] = []
    if options.show_instant:
        rate_parts.append(f"TPS: {instant:.1f}" if headline else f"{instant:.1f} TPS")
    if options.show_average:
        rate_parts.append(f"(avg {avg:.1f})")
    if rate_parts:
        segments.append(" ".join(rate_parts))
    if options.show_total_tokens:
        segments.append(f"tokens: {format_count(total)}")
    if options.show_elapsed:
        segments.append(format_elapsed(elapsed_ms))
    return " | ".join(segments)


def _stream_line(entry: StreamDisplayEntry, options: DisplayOptions) -> str:
    rates = format_rates(
        entry.instant_rate,
        entry.avg_rate,
        entry.total_count,
        entry.elapsed_ms,
        options,
        headline=False,
    )
    return f"{entry.label}: {rates}" if rates else entry.label


def format_snapshot(snapshot: DisplaySnapshot, options: DisplayOptions) -> str:
    lines: list[str] = []
    if snapshot.primary_active:
        headline = format_rates(
            snapshot.instant_rate,
            snapshot.avg_rate,
            snapshot.total_count,
            snapshot.elapsed_ms,
            options,
        )
        if headline:
            lines.append(headline)
    lines.extend(_stream_line(entry, options) for entry in snapshot.background)
    return "\n".join(lines)


def format_final(
    total: int, avg: float, elapsed_ms: float, options: DisplayOptions
) -> str:
    """Completion line; the instantaneous rate is reported as 0."""
    return format_rates(0.0, avg, total, elapsed_ms, options)


def color_variant(
    instant: float, options: DisplayOptions, *, final: bool = False
) -> ToastVariant:
    if final:
        return "success"
    if not options.enable_color_coding:
        return "info"
    if instant < options.slow_tps_threshold:
        return "error"
    if instant > options.fast_tps_threshold:
        return "success"
    return "warning"
