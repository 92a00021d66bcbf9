"""Command line interface for trackermesh.

Adds commands:
- key
- config show
- config get
"""

from __future__ import annotations

import json
import logging

import click
import toml
from rich.console import Console
from rich.table import Table

from trackermesh import __version__
from trackermesh.config.config import ConfigManager, init_config
from trackermesh.discovery.tracker_registry import default_announce_opts
from trackermesh.models import LogLevel
from trackermesh.session.identity import derive_lookup_key, generate_peer_id
from trackermesh.utils.exceptions import ConfigurationError
from trackermesh.utils.logging_config import (
    configure_stdout_line_buffering,
    get_logger,
)

logger = get_logger(__name__)


@click.group()
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True),
    help="Configuration file path",
)
@click.option("--verbose", "-v", count=True, help="Increase verbosity (-v: info, -vv: debug)")
@click.version_option(__version__, prog_name="trackermesh")
@click.pass_context
def cli(ctx: click.Context, config_file: str | None, verbose: int):
    """Trackermesh - peer discovery over BitTorrent trackers."""
    ctx.ensure_object(dict)

    try:
        config_manager = init_config(config_file, configure_logging=False)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from None

    observability = config_manager.config.observability
    if verbose >= 2:
        observability.log_level = LogLevel.DEBUG
    elif verbose == 1:
        observability.log_level = LogLevel.INFO
    config_manager._setup_logging()  # noqa: SLF001
    ctx.obj["config_manager"] = config_manager
    logger.debug("Loaded configuration from %s", config_manager.config_file)


@cli.command("key")
@click.argument("identifier")
@click.pass_context
def key(ctx: click.Context, identifier: str):
    """Show the tracker lookup key for IDENTIFIER."""
    config_manager: ConfigManager = ctx.obj["config_manager"]
    console = Console()

    table = Table(title="Discovery identity", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Identifier", identifier)
    table.add_row("Lookup key", derive_lookup_key(identifier))
    table.add_row("Peer id", generate_peer_id().hex())
    opts = default_announce_opts(defaults=config_manager.config.discovery)
    table.add_row("Announce options", json.dumps(opts, sort_keys=True))
    console.print(table)


@cli.group()
def config():
    """Configuration commands."""


@config.command("show")
@click.option(
    "--format",
    "format_",
    type=click.Choice(["toml", "json"]),
    default="toml",
)
@click.option(
    "--section",
    type=str,
    default=None,
    help="Show specific section (e.g. discovery)",
)
@click.pass_context
def show_config(ctx: click.Context, format_: str, section: str | None):
    """Show the effective configuration."""
    config_manager: ConfigManager = ctx.obj["config_manager"]
    if section is None:
        click.echo(config_manager.export(format_))
        return

    data = json.loads(config_manager.export("json"))
    if section not in data:
        msg = f"Section not found: {section}"
        raise click.ClickException(msg)
    data = {section: data[section]}
    if format_ == "json":
        click.echo(json.dumps(data, indent=2))
    else:
        click.echo(toml.dumps(data))


@config.command("get")
@click.argument("key_path")
@click.pass_context
def get_value(ctx: click.Context, key_path: str):
    """Get a configuration value by dotted path."""
    config_manager: ConfigManager = ctx.obj["config_manager"]
    ref = config_manager.config.model_dump(mode="json")
    try:
        for part in key_path.split("."):
            ref = ref[part]
    except (KeyError, TypeError):
        msg = f"Key not found: {key_path}"
        raise click.ClickException(msg) from None
    click.echo(json.dumps(ref, indent=2))


def main():
    """Main CLI entry point."""
    configure_stdout_line_buffering()
    logging.captureWarnings(True)
    cli()


if __name__ == "__main__":
    main()
