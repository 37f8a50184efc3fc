from __future__ import annotations

from pathlib import Path

import click

from tpsmeter.cli.common import cli_error_handler
from tpsmeter.cli.console import console
from tpsmeter.cli.context import CLIContext, ExitCode, async_command
from tpsmeter.cli.output import format_error
from tpsmeter.logging import bind_context, clear_context, get_logger
from tpsmeter.meter import TpsMeter
from tpsmeter.replay import read_event_log, replay_events
from tpsmeter.scheduling import VirtualScheduler
from tpsmeter.sinks import ConsoleSink

logger = get_logger(__name__)


@click.command("replay")
@click.argument(
    "events_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--speed",
    type=click.FloatRange(min=0),
    default=0.0,
    show_default=True,
    help="Real-time pacing factor (0 = as fast as possible, 1 = real time).",
)
@click.pass_context
@async_command
async def replay(ctx: click.Context, events_file: Path, speed: float) -> None:
    """Replay a recorded event log through the meter.

    EVENTS_FILE is JSON Lines, one {"at": <epoch ms>, "event": {...}}
    object per line. Every notice the meter would have shown is printed
    with its offset from the first event.

    Examples:
        tpsmeter replay session.jsonl
        tpsmeter replay session.jsonl --speed 1
    """
    cli_ctx: CLIContext = ctx.obj["cli_ctx"]
    config = cli_ctx.config
    if not config.enabled:
        click.echo(format_error("The meter is disabled by configuration"), err=True)
        raise SystemExit(ExitCode.FAILURE)

    skipped: list[int] = []
    with cli_error_handler():
        records = list(read_event_log(events_file, skipped))
    if not records:
        click.echo(format_error(f"No events found in {events_file}"), err=True)
        raise SystemExit(ExitCode.FAILURE)

    start_at = records[0].at
    scheduler = VirtualScheduler(start_ms=start_at)
    sink = ConsoleSink(console, clock=lambda: scheduler.now() - start_at)
    meter = TpsMeter(config, sinks=[sink], scheduler=scheduler)

    bind_context(events_file=events_file.name)
    try:
        with cli_error_handler():
            summary = await replay_events(records, meter, scheduler, speed=speed)
        logger.info(
            "replay_finished", events=summary.events, notices=summary.notices
        )
    finally:
        clear_context()

    if not cli_ctx.quiet:
        console.print(
            f"[dim]{summary.events} events, {len(skipped)} skipped, "
            f"{summary.notices} notices over {summary.duration_ms / 1000:.1f}s[/dim]"
        )
