"""Provisioning status state machine.

    PENDING -> CREATING_PROJECT -> INDEXING -> COMPLETED
        \\              \\              \\
         +------------- +------------- +--> ERROR

COMPLETED and ERROR are terminal. COMPLETED may carry an error note when the
full index failed after the project was already created and paid for.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from reposeek.core.errors import InternalError, StoreError
from reposeek.store.models import CreationStatus, ProjectCreation, utcnow

if TYPE_CHECKING:
    from reposeek.store.database import Database

logger = structlog.get_logger()

TERMINAL_STATES: frozenset[CreationStatus] = frozenset(
    (CreationStatus.COMPLETED, CreationStatus.ERROR)
)

_TRANSITIONS: dict[CreationStatus, frozenset[CreationStatus]] = {
    CreationStatus.PENDING: frozenset((CreationStatus.CREATING_PROJECT, CreationStatus.ERROR)),
    CreationStatus.CREATING_PROJECT: frozenset((CreationStatus.INDEXING, CreationStatus.ERROR)),
    CreationStatus.INDEXING: frozenset((CreationStatus.COMPLETED, CreationStatus.ERROR)),
    CreationStatus.COMPLETED: frozenset(),
    CreationStatus.ERROR: frozenset(),
}


def can_transition(current: CreationStatus, target: CreationStatus) -> bool:
    return target in _TRANSITIONS[current]


def is_terminal(status: CreationStatus) -> bool:
    return status in TERMINAL_STATES


@dataclass(frozen=True)
class CreationSnapshot:
    """Detached view of a ProjectCreation row."""

    id: str
    user_id: str
    status: CreationStatus
    file_count: int | None
    project_id: str | None
    error: str | None

    @classmethod
    def from_row(cls, row: ProjectCreation) -> CreationSnapshot:
        return cls(
            id=row.id,
            user_id=row.user_id,
            status=CreationStatus(row.status),
            file_count=row.file_count,
            project_id=row.project_id,
            error=row.error,
        )


class StatusTracker:
    """Persists provisioning status transitions on ProjectCreation rows."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def open_request(self, request_id: str, user_id: str) -> CreationSnapshot:
        """Create the request in PENDING, or return the existing one.

        An existing request for a different user is treated as unknown.
        """
        with self._db.session() as session:
            row = session.get(ProjectCreation, request_id)
            if row is None:
                row = ProjectCreation(id=request_id, user_id=user_id)
                session.add(row)
                session.commit()
                logger.info("creation_request_opened", request_id=request_id, user_id=user_id)
            elif row.user_id != user_id:
                raise StoreError.not_found("ProjectCreation", request_id)
            return CreationSnapshot.from_row(row)

    def get(self, request_id: str) -> CreationSnapshot | None:
        with self._db.session() as session:
            row = session.get(ProjectCreation, request_id)
            return CreationSnapshot.from_row(row) if row is not None else None

    def advance(
        self,
        request_id: str,
        target: CreationStatus,
        *,
        error: str | None = None,
        file_count: int | None = None,
        project_id: str | None = None,
    ) -> CreationSnapshot:
        """Move the request to ``target``.

        ``error`` replaces the stored note (None clears it). ``file_count`` and
        ``project_id`` are only written when given.

        Raises:
            InternalError: the transition is not allowed from the current state.
            StoreError: the request does not exist.
        """
        with self._db.session() as session:
            row = session.get(ProjectCreation, request_id)
            if row is None:
                raise StoreError.not_found("ProjectCreation", request_id)
            current = CreationStatus(row.status)
            if not can_transition(current, target):
                raise InternalError.invalid_transition(request_id, current.value, target.value)

            row.status = target.value
            row.error = error
            if file_count is not None:
                row.file_count = file_count
            if project_id is not None:
                row.project_id = project_id
            row.updated_at = utcnow()
            session.add(row)
            session.commit()
            logger.info(
                "creation_status_changed",
                request_id=request_id,
                from_status=current.value,
                to_status=target.value,
                has_error=error is not None,
            )
            return CreationSnapshot.from_row(row)

    def record_file_count(self, request_id: str, file_count: int) -> None:
        """Persist the charge basis without changing status."""
        with self._db.session() as session:
            row = session.get(ProjectCreation, request_id)
            if row is None:
                raise StoreError.not_found("ProjectCreation", request_id)
            row.file_count = file_count
            row.updated_at = utcnow()
            session.add(row)
            session.commit()

    def fail(self, request_id: str, message: str) -> CreationSnapshot | None:
        """Best-effort move to ERROR. Returns None if already terminal or missing."""
        snapshot = self.get(request_id)
        if snapshot is None or is_terminal(snapshot.status):
            logger.warning(
                "creation_fail_ignored",
                request_id=request_id,
                status=snapshot.status.value if snapshot else None,
            )
            return None
        return self.advance(request_id, CreationStatus.ERROR, error=message)
