"""reposeek CLI - reposeek command."""

from pathlib import Path

import click

from reposeek.cli.credits import credits_command
from reposeek.cli.db import init_db_command
from reposeek.cli.status import status_command
from reposeek.cli.up import up_command
from reposeek.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="reposeek")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="YAML config file (default: ./reposeek.yaml or $REPOSEEK_CONFIG)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """reposeek - Ingest repositories into a searchable index and keep it current."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config_path
    configure_logging(level="DEBUG" if verbose else "INFO")


cli.add_command(up_command, name="up")
cli.add_command(init_db_command, name="init-db")
cli.add_command(credits_command, name="credits")
cli.add_command(status_command, name="status")


if __name__ == "__main__":
    cli()
