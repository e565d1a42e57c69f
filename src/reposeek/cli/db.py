"""reposeek init-db command - create the database schema."""

from pathlib import Path

import click

from reposeek.cli.utils import load_cli_config, open_database


@click.command()
@click.pass_context
def init_db_command(ctx: click.Context) -> None:
    """Create all tables in the configured SQLite database.

    Safe to run repeatedly; existing tables are left untouched.
    """
    config = load_cli_config(ctx)
    db = open_database(config)
    try:
        click.echo(f"Database ready: {Path(db.db_path).resolve()}")
    finally:
        db.dispose()
