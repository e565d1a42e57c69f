"""Detached background work that outlives the HTTP request that started it."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger()


class RunnerState(Enum):
    """Task runner state."""

    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass
class RunnerStatus:
    """Current runner status."""

    state: RunnerState
    active: int
    completed: int
    failed: int
    last_error: str | None = None


@dataclass
class TaskRunner:
    """
    Fire-and-forget task spawner for work after the response.

    Design:
    - The request handler finishes its synchronous phase and returns
    - The remainder is spawned here and tracked until done
    - Outcomes are reported through the persisted status, never to the caller
    - Uncaught exceptions are logged, not re-raised
    - stop() waits for in-flight work up to a timeout, then cancels it
    """

    _tasks: set[asyncio.Task[Any]] = field(default_factory=set, init=False)
    _state: RunnerState = field(default=RunnerState.RUNNING, init=False)
    _completed: int = field(default=0, init=False)
    _failed: int = field(default=0, init=False)
    _last_error: str | None = field(default=None, init=False)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        """Schedule ``coro`` on the running loop and track it."""
        if self._state is not RunnerState.RUNNING:
            coro.close()
            raise RuntimeError(f"Task runner is {self._state.value}; cannot spawn {name}")

        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug("background_task_spawned", task=name, active=len(self._tasks))
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("background_task_cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            self._failed += 1
            self._last_error = str(exc)
            logger.error(
                "background_task_failed",
                task=task.get_name(),
                error=str(exc),
                exc_info=exc,
            )
        else:
            self._completed += 1
            logger.debug("background_task_finished", task=task.get_name())

    async def drain(self) -> None:
        """Wait until every tracked task (including ones spawned meanwhile) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self, timeout: float = 30.0) -> None:
        """Refuse new work, wait for in-flight tasks, cancel stragglers."""
        self._state = RunnerState.STOPPING
        pending = list(self._tasks)
        if pending:
            logger.info("background_tasks_draining", count=len(pending))
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)
        self._state = RunnerState.STOPPED
        logger.info("task_runner_stopped")

    @property
    def status(self) -> RunnerStatus:
        return RunnerStatus(
            state=self._state,
            active=len(self._tasks),
            completed=self._completed,
            failed=self._failed,
            last_error=self._last_error,
        )
