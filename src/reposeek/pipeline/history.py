"""Commit history sync: observe new upstream commits and queue them for reindex."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

import structlog

from reposeek.host.models import RepositoryRef, parse_repository_url
from reposeek.pipeline.commits import NewCommit
from reposeek.pipeline.diff import extract_files_from_diff

if TYPE_CHECKING:
    from reposeek.host.credentials import CredentialResolver
    from reposeek.host.models import CodeHost
    from reposeek.pipeline.commits import CommitRecord, CommitTracker
    from reposeek.pipeline.projects import ProjectDirectory

logger = structlog.get_logger()

PLACEHOLDER_SUMMARY = "Analyzing commit..."
EMPTY_SUMMARY = "No significant changes detected"
FAILED_SUMMARY = "Failed to generate summary"


class CommitSummarizer(Protocol):
    async def summarize_commit(self, diff_text: str) -> str: ...


@dataclass
class HistorySyncResult:
    project_id: str
    fetched: int = 0
    inserted: list[str] = field(default_factory=list)
    queued_for_reindex: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


def _headline(message: str) -> str:
    return message.strip().splitlines()[0] if message.strip() else ""


class CommitHistorySync:
    """Pulls the latest commits of a project and records the unseen ones.

    New commits get their modified files extracted from the diff. They are
    flagged for reindex unless the sync runs as part of project creation
    (the full index already covers them) or they touch no files.
    """

    def __init__(
        self,
        commits: CommitTracker,
        projects: ProjectDirectory,
        host: CodeHost,
        credentials: CredentialResolver,
        *,
        summarizer: CommitSummarizer | None = None,
        limit: int = 15,
    ) -> None:
        self._commits = commits
        self._projects = projects
        self._host = host
        self._credentials = credentials
        self._summarizer = summarizer
        self._limit = limit

    async def sync(
        self,
        project_id: str,
        *,
        is_project_creation: bool = False,
        credential: str | None = None,
    ) -> HistorySyncResult:
        """Record and process commits not yet known for ``project_id``.

        Raises:
            StoreError: the project does not exist.
            RepositoryError: the stored repository URL is malformed.
            UpstreamError: the commit listing could not be fetched.
        """
        project = self._projects.require(project_id)
        ref = parse_repository_url(project.repository_url)
        token = self._credentials.resolve(project.owner_id, credential).token

        listed = await self._host.list_commits(ref, project.branch, self._limit, token)
        listed.sort(key=lambda c: c.committed_at, reverse=True)
        result = HistorySyncResult(project_id=project_id, fetched=len(listed))

        inserted = self._commits.record_commits(
            project_id,
            (
                NewCommit(
                    commit_hash=c.sha,
                    commit_message=c.message,
                    author_name=c.author_name,
                    author_avatar=c.author_avatar,
                    commit_date=c.committed_at,
                )
                for c in listed
            ),
            placeholder_summary=PLACEHOLDER_SUMMARY,
        )
        logger.info(
            "commit_history_fetched",
            project_id=project_id,
            fetched=len(listed),
            new=len(inserted),
            is_project_creation=is_project_creation,
        )

        for commit in inserted:
            result.inserted.append(commit.commit_hash)
            try:
                needs_reindex = await self._process(commit, ref, token, is_project_creation)
            except Exception as e:
                logger.warning(
                    "commit_processing_failed",
                    project_id=project_id,
                    commit=commit.commit_hash,
                    error=str(e),
                )
                # Left pending so the reindexer fetches the diff again.
                self._commits.complete_sync(
                    commit.id,
                    summary=FAILED_SUMMARY,
                    modified_files=None,
                    needs_reindex=not is_project_creation,
                )
                result.failed[commit.commit_hash] = str(e)
                continue
            if needs_reindex:
                result.queued_for_reindex.append(commit.commit_hash)

        return result

    async def _process(
        self,
        commit: CommitRecord,
        ref: RepositoryRef,
        token: str | None,
        is_project_creation: bool,
    ) -> bool:
        diff_text = await self._host.get_commit_diff(ref, commit.commit_hash, token)
        files = extract_files_from_diff(diff_text)

        if self._summarizer is not None:
            summary = await self._summarizer.summarize_commit(diff_text)
        else:
            summary = _headline(commit.commit_message)

        needs_reindex = not is_project_creation and bool(files)
        self._commits.complete_sync(
            commit.id,
            summary=summary or EMPTY_SUMMARY,
            modified_files=files,
            needs_reindex=needs_reindex,
        )
        logger.debug(
            "commit_processed",
            commit=commit.commit_hash,
            files=len(files),
            needs_reindex=needs_reindex,
        )
        return needs_reindex
