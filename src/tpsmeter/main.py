"""CLI entry point for the TPS meter.

This module defines the click-based command-line interface.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click
from dotenv import load_dotenv

from tpsmeter.logging import configure_logging

# Must happen before anything reads TPS_METER_* variables
load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

from tpsmeter import __version__  # noqa: E402
from tpsmeter.cli.commands.config import config  # noqa: E402
from tpsmeter.cli.commands.replay import replay  # noqa: E402
from tpsmeter.cli.context import CLIContext, ExitCode  # noqa: E402
from tpsmeter.cli.output import format_error  # noqa: E402
from tpsmeter.config import load_config  # noqa: E402
from tpsmeter.exceptions import ConfigError  # noqa: E402


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="tpsmeter")
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(exists=False, path_type=str),
    default=None,
    help="Path to config file (replaces ./.opencode/tps-meter.json).",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="Increase verbosity (-v for INFO, -vv for DEBUG).",
)
@click.option(
    "-q",
    "--quiet",
    is_flag=True,
    default=False,
    help="Suppress non-essential output (ERROR level only).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: str | None,
    verbose: int,
    quiet: bool,
) -> None:
    """tpsmeter - tokens-per-second meter for streaming text generation."""
    ctx.ensure_object(dict)

    # Priority: quiet > verbose > TPS_METER_LOG_LEVEL
    if quiet:
        configure_logging(level=logging.ERROR)
    elif verbose > 0:
        configure_logging(level=logging.INFO if verbose == 1 else logging.DEBUG)
    else:
        configure_logging()

    config_path = Path(config_file) if config_file else None
    try:
        config = load_config(config_path)
    except ConfigError as e:
        details = []
        if e.field:
            details.append(f"Field: {e.field}")
        if e.value is not None:
            details.append(f"Value: {e.value}")
        click.echo(format_error(e.message, details=details), err=True)
        ctx.exit(ExitCode.FAILURE)

    ctx.obj["cli_ctx"] = CLIContext(
        config=config,
        config_path=config_path,
        verbosity=verbose,
        quiet=quiet,
    )

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(config)
cli.add_command(replay)

if __name__ == "__main__":
    cli()
