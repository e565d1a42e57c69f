"""Read-side lookups for projects and their owners."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlmodel import col, select

from reposeek.core.errors import StoreError
from reposeek.store.models import Project, UserToProject

if TYPE_CHECKING:
    from reposeek.store.database import Database


@dataclass(frozen=True)
class ProjectRecord:
    """Detached view of a Project row plus its first member."""

    id: str
    name: str
    repository_url: str
    branch: str
    created_at: datetime
    owner_id: str | None


class ProjectDirectory:
    def __init__(self, db: Database) -> None:
        self._db = db

    def find(self, project_id: str) -> ProjectRecord | None:
        with self._db.session() as session:
            project = session.get(Project, project_id)
            if project is None or project.deleted_at is not None:
                return None
            owner_id = session.exec(
                select(UserToProject.user_id)
                .where(UserToProject.project_id == project_id)
                .order_by(col(UserToProject.created_at).asc())
                .limit(1)
            ).first()
            return ProjectRecord(
                id=project.id,
                name=project.name,
                repository_url=project.repository_url,
                branch=project.branch,
                created_at=project.created_at,
                owner_id=owner_id,
            )

    def require(self, project_id: str) -> ProjectRecord:
        record = self.find(project_id)
        if record is None:
            raise StoreError.not_found("Project", project_id)
        return record
