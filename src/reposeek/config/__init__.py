"""Config module exports."""

from reposeek.config.loader import load_config
from reposeek.config.models import (
    DatabaseConfig,
    GitHubConfig,
    IndexingConfig,
    LoggingConfig,
    ReposeekConfig,
    ServerConfig,
)

__all__ = [
    "load_config",
    "ReposeekConfig",
    "DatabaseConfig",
    "GitHubConfig",
    "IndexingConfig",
    "LoggingConfig",
    "ServerConfig",
]
