from __future__ import annotations

import click
import yaml

from tpsmeter.cli.context import CLIContext
from tpsmeter.config import get_project_config_path, get_user_config_path


@click.command("config")
@click.option(
    "--sources",
    is_flag=True,
    default=False,
    help="Also list the config files that were consulted.",
)
@click.pass_context
def config(ctx: click.Context, sources: bool) -> None:
    """Display the resolved configuration as YAML.

    Shows the merged configuration from all sources (defaults, user config,
    project config, TPS_METER_* environment variables).

    Examples:
        tpsmeter config
        tpsmeter -c ./tps-meter.yaml config --sources
    """
    cli_ctx: CLIContext = ctx.obj["cli_ctx"]
    config_dict = cli_ctx.config.model_dump(mode="json")
    click.echo(yaml.dump(config_dict, default_flow_style=False, sort_keys=False))

    if sources:
        project = cli_ctx.config_path or get_project_config_path()
        for label, path in (("project", project), ("user", get_user_config_path())):
            state = "found" if path.exists() else "missing"
            click.echo(f"# {label}: {path} ({state})")
