"""reposeek daemon - HTTP server with detached indexing work."""

from reposeek.daemon.app import create_app
from reposeek.daemon.lifecycle import ServerController, run_server

__all__ = [
    "ServerController",
    "create_app",
    "run_server",
]
