"""Server lifecycle management."""

from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog
import uvicorn

from reposeek.config.models import ReposeekConfig, ServerConfig
from reposeek.host.github import GitHubClient
from reposeek.index.embedding import FastEmbedEmbedder
from reposeek.pipeline.ops import IngestCoordinator
from reposeek.store.database import Database

if TYPE_CHECKING:
    from reposeek.host.models import CodeHost

logger = structlog.get_logger()


@dataclass
class ServerController:
    """
    Orchestrates server components.

    Components:
    - IngestCoordinator: Provisioning, reindexing and status lookups
    - TaskRunner (via the coordinator): Work detached from requests
    - Database: SQLite store shared by every component
    - Code host client: Pooled HTTP connections to GitHub
    """

    coordinator: IngestCoordinator
    server_config: ServerConfig
    db: Database | None = None
    host: CodeHost | None = None

    _shutdown_event: asyncio.Event = field(default_factory=asyncio.Event, init=False)

    @classmethod
    def from_config(cls, config: ReposeekConfig) -> ServerController:
        """Build every component from configuration."""
        db = Database.from_config(config.database)
        db.create_all()
        host = GitHubClient(config.github)
        embedder = FastEmbedEmbedder(config.indexing.embedding_model)
        coordinator = IngestCoordinator.from_config(config, db, host, embedder)
        return cls(coordinator=coordinator, server_config=config.server, db=db, host=host)

    async def start(self) -> None:
        """Start all server components."""
        base_url = f"http://{self.server_config.host}:{self.server_config.port}"
        logger.info("server_started")
        logger.info("endpoint", name="health", url=f"{base_url}/health")
        logger.info("endpoint", name="projects", url=f"{base_url}/api/projects")

    async def stop(self) -> None:
        """Stop all server components gracefully."""
        logger.info("server_stopping")

        # Let detached indexing finish, cancel what overruns the timeout
        await self.coordinator.runner.stop(timeout=self.server_config.shutdown_timeout_sec)

        if isinstance(self.host, GitHubClient):
            await self.host.aclose()
        if self.db is not None:
            self.db.dispose()

        self._shutdown_event.set()
        logger.info("server_stopped")

    def wait_for_shutdown(self) -> asyncio.Event:
        """Get the shutdown event for external coordination."""
        return self._shutdown_event


async def run_server(config: ReposeekConfig) -> None:
    """Run the HTTP server until a shutdown signal."""
    from reposeek.daemon.app import create_app

    controller = ServerController.from_config(config)
    app = create_app(controller)

    uvicorn_config = uvicorn.Config(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level="warning",  # Use structlog instead
        ws="none",
    )
    server = uvicorn.Server(uvicorn_config)

    # Second signal forces exit without waiting for background tasks
    loop = asyncio.get_running_loop()
    shutdown_count = 0

    def signal_handler() -> None:
        nonlocal shutdown_count
        shutdown_count += 1
        logger.info("shutdown_signal_received", count=shutdown_count)
        server.should_exit = True
        if shutdown_count > 1:
            server.force_exit = True

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await controller.start()
        await server.serve()
    finally:
        await controller.stop()
