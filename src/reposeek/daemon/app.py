"""Starlette application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from starlette.applications import Starlette
from starlette.routing import BaseRoute

from reposeek.daemon.middleware import RequestIdMiddleware
from reposeek.daemon.routes import create_routes

if TYPE_CHECKING:
    from reposeek.daemon.lifecycle import ServerController


def create_app(controller: ServerController) -> Starlette:
    """Create the Starlette application bound to ``controller``."""
    routes: list[BaseRoute] = list(create_routes(controller))

    @asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        yield
        # Controller stop is handled in run_server finally block
        # so background tasks drain even if lifespan exit is skipped

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(RequestIdMiddleware)
    return app
