"""Shared CLI helpers."""

import click

from reposeek.config.loader import load_config
from reposeek.config.models import ReposeekConfig
from reposeek.core.errors import ConfigError
from reposeek.store.database import Database


def load_cli_config(ctx: click.Context) -> ReposeekConfig:
    """Load configuration for the current invocation, as a click error on failure."""
    obj = ctx.find_root().obj or {}
    try:
        return load_config(obj.get("config_path"))
    except ConfigError as e:
        raise click.ClickException(e.message) from e


def open_database(config: ReposeekConfig) -> Database:
    """Open the configured database, creating tables if needed."""
    db = Database.from_config(config.database)
    db.create_all()
    return db
