"""reposeek up command - start the HTTP server."""

import asyncio

import click

from reposeek.cli.utils import load_cli_config
from reposeek.core.logging import configure_logging


@click.command()
@click.option("--host", "-h", type=str, help="Override bind address")
@click.option("--port", "-p", type=int, help="Override server port")
@click.pass_context
def up_command(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the reposeek server. Runs in foreground."""
    from reposeek.daemon.lifecycle import run_server

    config = load_cli_config(ctx)
    if host is not None:
        config.server.host = host
    if port is not None:
        config.server.port = port

    if ctx.find_root().obj.get("verbose"):
        config.logging.level = "DEBUG"
    configure_logging(config=config.logging)

    click.echo(f"reposeek listening on http://{config.server.host}:{config.server.port}")
    click.echo(f"  Database: {config.database.path}")
    asyncio.run(run_server(config))
