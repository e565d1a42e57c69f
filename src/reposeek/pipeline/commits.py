"""Per-commit persisted state for the reindex pipeline.

Each Commit row carries a cached list of touched paths (filled once from the
diff) and a ``needs_reindex`` flag. The tracker never reorders commits: the
reindex batch is always loaded oldest first.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from sqlmodel import col, select

from reposeek.store.models import Commit, utcnow

if TYPE_CHECKING:
    from reposeek.store.database import Database

logger = structlog.get_logger()


@dataclass(frozen=True)
class CommitRecord:
    """Detached view of a Commit row."""

    id: str
    project_id: str
    commit_hash: str
    commit_message: str
    author_name: str
    author_avatar: str | None
    commit_date: datetime
    summary: str | None
    modified_files: list[str] | None
    needs_reindex: bool

    @classmethod
    def from_row(cls, row: Commit) -> CommitRecord:
        return cls(
            id=row.id,
            project_id=row.project_id,
            commit_hash=row.commit_hash,
            commit_message=row.commit_message,
            author_name=row.author_name,
            author_avatar=row.author_avatar,
            commit_date=row.commit_date,
            summary=row.summary,
            modified_files=row.modified_files,
            needs_reindex=row.needs_reindex,
        )


@dataclass(frozen=True)
class NewCommit:
    """Commit metadata as observed on the code host, before persistence."""

    commit_hash: str
    commit_message: str
    author_name: str
    commit_date: datetime
    author_avatar: str | None = None


class CommitTracker:
    """Reads and mutates Commit rows for one store."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def load_for_reindex(self, project_id: str, commit_ids: Iterable[str]) -> list[CommitRecord]:
        """Load the requested commits of ``project_id``, oldest first.

        ``commit_ids`` may be row ids or commit hashes. Unknown ids and commits
        of other projects are dropped with a warning. Ties on commit date are
        broken by hash so the order is total.
        """
        wanted = list(dict.fromkeys(commit_ids))
        if not wanted:
            return []

        with self._db.session() as session:
            rows = session.exec(
                select(Commit)
                .where(Commit.project_id == project_id)
                .where(col(Commit.id).in_(wanted) | col(Commit.commit_hash).in_(wanted))
                .order_by(col(Commit.commit_date).asc(), col(Commit.commit_hash).asc())
            ).all()
            records = [CommitRecord.from_row(row) for row in rows]

        found = {r.id for r in records} | {r.commit_hash for r in records}
        missing = [cid for cid in wanted if cid not in found]
        if missing:
            logger.warning(
                "reindex_commits_not_found",
                project_id=project_id,
                missing=missing,
            )
        return records

    def get(self, commit_row_id: str) -> CommitRecord | None:
        with self._db.session() as session:
            row = session.get(Commit, commit_row_id)
            return CommitRecord.from_row(row) if row is not None else None

    def cache_modified_files(self, commit_row_id: str, paths: Sequence[str]) -> None:
        """Persist the extracted path list so later batches skip the diff fetch."""
        with self._db.session() as session:
            row = session.get(Commit, commit_row_id)
            if row is None:
                logger.warning("commit_cache_target_missing", commit_id=commit_row_id)
                return
            row.set_modified_files(list(paths))
            row.updated_at = utcnow()
            session.add(row)
            session.commit()

    def mark_reindexed(self, commit_row_id: str) -> None:
        self._set_needs_reindex(commit_row_id, False)

    def mark_pending(self, commit_row_id: str) -> None:
        self._set_needs_reindex(commit_row_id, True)

    def _set_needs_reindex(self, commit_row_id: str, value: bool) -> None:
        with self._db.session() as session:
            row = session.get(Commit, commit_row_id)
            if row is None:
                logger.warning("commit_flag_target_missing", commit_id=commit_row_id)
                return
            row.needs_reindex = value
            row.updated_at = utcnow()
            session.add(row)
            session.commit()

    def pending_reindex(self, project_id: str) -> list[CommitRecord]:
        """Commits still flagged for reindex, oldest first."""
        with self._db.session() as session:
            rows = session.exec(
                select(Commit)
                .where(Commit.project_id == project_id)
                .where(col(Commit.needs_reindex).is_(True))
                .order_by(col(Commit.commit_date).asc(), col(Commit.commit_hash).asc())
            ).all()
            return [CommitRecord.from_row(row) for row in rows]

    def known_hashes(self, project_id: str) -> set[str]:
        with self._db.session() as session:
            hashes = session.exec(
                select(Commit.commit_hash).where(Commit.project_id == project_id)
            ).all()
            return set(hashes)

    def record_commits(
        self,
        project_id: str,
        commits: Iterable[NewCommit],
        *,
        placeholder_summary: str | None = None,
    ) -> list[CommitRecord]:
        """Insert commits not yet known for the project; return the inserted ones."""
        known = self.known_hashes(project_id)
        inserted: list[Commit] = []
        with self._db.session() as session:
            for new in commits:
                if new.commit_hash in known:
                    continue
                known.add(new.commit_hash)
                row = Commit(
                    project_id=project_id,
                    commit_hash=new.commit_hash,
                    commit_message=new.commit_message,
                    author_name=new.author_name,
                    author_avatar=new.author_avatar,
                    commit_date=new.commit_date,
                    summary=placeholder_summary,
                )
                session.add(row)
                inserted.append(row)
            session.commit()
            records = [CommitRecord.from_row(row) for row in inserted]

        if records:
            logger.info("commits_recorded", project_id=project_id, count=len(records))
        return records

    def complete_sync(
        self,
        commit_row_id: str,
        *,
        summary: str,
        modified_files: Sequence[str] | None,
        needs_reindex: bool,
    ) -> None:
        """Write the outcome of a history sync for one commit."""
        with self._db.session() as session:
            row = session.get(Commit, commit_row_id)
            if row is None:
                logger.warning("commit_sync_target_missing", commit_id=commit_row_id)
                return
            row.summary = summary
            if modified_files is not None:
                row.set_modified_files(list(modified_files))
            row.needs_reindex = needs_reindex
            row.updated_at = utcnow()
            session.add(row)
            session.commit()

    def list_commits(self, project_id: str, limit: int = 50) -> list[CommitRecord]:
        """Newest first."""
        with self._db.session() as session:
            rows = session.exec(
                select(Commit)
                .where(Commit.project_id == project_id)
                .order_by(col(Commit.commit_date).desc())
                .limit(limit)
            ).all()
            return [CommitRecord.from_row(row) for row in rows]
