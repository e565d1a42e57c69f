"""Incremental reindexing over a batch of commits.

Per batch:
- Hold the project's lease for the whole batch
- Load the requested commits oldest first
- Process them one at a time

Per commit:
- Cached modified files, or fetch the diff and cache the extracted paths
- A failed diff fetch leaves needs_reindex set, so a later batch retries it
- No indexable files left after filtering counts as done
- Indexing failures are logged and the commit is still marked done

Only failures outside the per-commit loop (unknown project, malformed
repository URL) reach the caller.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from reposeek.host.models import RepositoryRef, parse_repository_url
from reposeek.pipeline.diff import extract_files_from_diff
from reposeek.pipeline.filters import DEFAULT_FILTER, FileFilter

if TYPE_CHECKING:
    from reposeek.host.credentials import CredentialResolver
    from reposeek.host.models import CodeHost
    from reposeek.index.indexer import RepositoryIndexer
    from reposeek.pipeline.commits import CommitRecord, CommitTracker
    from reposeek.pipeline.leases import ProjectLeases
    from reposeek.pipeline.projects import ProjectDirectory

logger = structlog.get_logger()


@dataclass
class ReindexStats:
    """Per-batch outcome, in processing order."""

    project_id: str
    requested: int = 0
    processed: list[str] = field(default_factory=list)
    indexed: list[str] = field(default_factory=list)
    empty: list[str] = field(default_factory=list)
    fetch_failed: list[str] = field(default_factory=list)
    index_failed: list[str] = field(default_factory=list)
    files_by_commit: dict[str, list[str]] = field(default_factory=dict)


class CommitReindexer:
    """Reindexes the files touched by a batch of commits."""

    def __init__(
        self,
        commits: CommitTracker,
        projects: ProjectDirectory,
        host: CodeHost,
        indexer: RepositoryIndexer,
        credentials: CredentialResolver,
        leases: ProjectLeases,
        *,
        file_filter: FileFilter = DEFAULT_FILTER,
        default_branch: str = "main",
    ) -> None:
        self._commits = commits
        self._projects = projects
        self._host = host
        self._indexer = indexer
        self._credentials = credentials
        self._leases = leases
        self._filter = file_filter
        self._default_branch = default_branch

    async def reindex(
        self,
        project_id: str,
        repository_url: str,
        commit_ids: Sequence[str],
        credential: str | None = None,
    ) -> ReindexStats:
        """Reindex ``commit_ids`` of ``project_id`` in chronological order.

        Raises:
            StoreError: the project does not exist.
            RepositoryError: ``repository_url`` is malformed.
        """
        project = self._projects.require(project_id)
        ref = parse_repository_url(repository_url)
        branch = project.branch or self._default_branch
        token = self._credentials.resolve(project.owner_id, credential).token
        stats = ReindexStats(project_id=project_id, requested=len(commit_ids))

        async with self._leases.hold(project_id):
            batch = self._commits.load_for_reindex(project_id, commit_ids)
            logger.info(
                "reindex_batch_started",
                project_id=project_id,
                requested=len(commit_ids),
                found=len(batch),
                branch=branch,
            )
            for commit in batch:
                await self._reindex_commit(commit, ref, branch, token, stats)

        logger.info(
            "reindex_batch_finished",
            project_id=project_id,
            processed=len(stats.processed),
            indexed=len(stats.indexed),
            empty=len(stats.empty),
            fetch_failed=len(stats.fetch_failed),
            index_failed=len(stats.index_failed),
        )
        return stats

    async def _modified_files(
        self, commit: CommitRecord, ref: RepositoryRef, token: str | None
    ) -> list[str] | None:
        """Cached paths, or paths from a fresh diff (then cached). None on fetch failure."""
        if commit.modified_files is not None:
            logger.debug("commit_files_cached", commit=commit.commit_hash)
            return commit.modified_files

        try:
            diff_text = await self._host.get_commit_diff(ref, commit.commit_hash, token)
        except Exception as e:
            logger.warning(
                "commit_diff_fetch_failed",
                project_id=commit.project_id,
                commit=commit.commit_hash,
                error=str(e),
            )
            return None

        paths = extract_files_from_diff(diff_text)
        self._commits.cache_modified_files(commit.id, paths)
        return paths

    async def _reindex_commit(
        self,
        commit: CommitRecord,
        ref: RepositoryRef,
        branch: str,
        token: str | None,
        stats: ReindexStats,
    ) -> None:
        stats.processed.append(commit.commit_hash)
        log = logger.bind(project_id=commit.project_id, commit=commit.commit_hash)

        paths = await self._modified_files(commit, ref, token)
        if paths is None:
            self._commits.mark_pending(commit.id)
            stats.fetch_failed.append(commit.commit_hash)
            return

        files = self._filter.filter_paths(paths)
        stats.files_by_commit[commit.commit_hash] = files
        if not files:
            log.info("commit_no_indexable_files", modified=len(paths))
            self._commits.mark_reindexed(commit.id)
            stats.empty.append(commit.commit_hash)
            return

        try:
            await self._indexer.index_files(commit.project_id, ref, branch, files, token)
        except Exception as e:
            log.warning("commit_index_failed", files=len(files), error=str(e))
            stats.index_failed.append(commit.commit_hash)
        else:
            log.info("commit_reindexed", files=len(files))
            stats.indexed.append(commit.commit_hash)

        self._commits.mark_reindexed(commit.id)
