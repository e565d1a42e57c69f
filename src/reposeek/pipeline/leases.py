"""Single-flight leases keyed by project id.

Two reindex tasks for the same project must not interleave writes to the same
Commit rows. Holders for different projects never contend.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

logger = structlog.get_logger()


class ProjectLeases:
    """In-process asyncio locks, one per project.

    Locks are created on first use and dropped once no task holds or waits on
    them, so the table stays bounded by the number of active projects.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def is_held(self, project_id: str) -> bool:
        lock = self._locks.get(project_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, project_id: str) -> AsyncIterator[None]:
        """Wait for and hold the lease of ``project_id``."""
        lock = self._locks.setdefault(project_id, asyncio.Lock())
        self._waiters[project_id] = self._waiters.get(project_id, 0) + 1
        if lock.locked():
            logger.info("project_lease_waiting", project_id=project_id)
        try:
            async with lock:
                logger.debug("project_lease_acquired", project_id=project_id)
                yield
        finally:
            remaining = self._waiters[project_id] - 1
            if remaining:
                self._waiters[project_id] = remaining
            else:
                del self._waiters[project_id]
                del self._locks[project_id]
            logger.debug("project_lease_released", project_id=project_id)
