"""High-level ingestion operations used by the HTTP layer and the CLI.

IngestCoordinator owns the split between the synchronous phase of each
operation and the detached work it spawns on the TaskRunner.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from reposeek.host.credentials import CredentialResolver
from reposeek.host.models import parse_repository_url
from reposeek.index.indexer import RepositoryIndexer
from reposeek.pipeline.commits import CommitRecord, CommitTracker
from reposeek.pipeline.credits import CreditLedger
from reposeek.pipeline.filters import FileFilter
from reposeek.pipeline.history import CommitHistorySync
from reposeek.pipeline.leases import ProjectLeases
from reposeek.pipeline.projects import ProjectDirectory, ProjectRecord
from reposeek.pipeline.provisioner import (
    CreateProjectCommand,
    ProjectProvisioner,
    ProvisionResult,
)
from reposeek.pipeline.reindex import CommitReindexer
from reposeek.pipeline.status import CreationSnapshot, StatusTracker
from reposeek.pipeline.tasks import TaskRunner
from reposeek.store.models import CreationStatus

if TYPE_CHECKING:
    from reposeek.config.models import ReposeekConfig
    from reposeek.host.models import CodeHost
    from reposeek.index.embedding import Embedder, Summarizer
    from reposeek.pipeline.history import CommitSummarizer
    from reposeek.store.database import Database

logger = structlog.get_logger()


@dataclass(frozen=True)
class CreationStatusView:
    """Status of one provisioning request for pollers."""

    creation: CreationSnapshot
    project: ProjectRecord | None
    embeddings_count: int

    @property
    def has_source_code_embeddings(self) -> bool:
        return self.embeddings_count > 0

    @property
    def is_fully_indexed(self) -> bool:
        return self.creation.status is CreationStatus.COMPLETED and self.embeddings_count > 0


class IngestCoordinator:
    """Facade over provisioning, reindexing and history sync."""

    def __init__(
        self,
        *,
        provisioner: ProjectProvisioner,
        reindexer: CommitReindexer,
        history: CommitHistorySync,
        status: StatusTracker,
        ledger: CreditLedger,
        commits: CommitTracker,
        projects: ProjectDirectory,
        indexer: RepositoryIndexer,
        runner: TaskRunner,
    ) -> None:
        self.provisioner = provisioner
        self.reindexer = reindexer
        self.history = history
        self.status = status
        self.ledger = ledger
        self.commits = commits
        self.projects = projects
        self.indexer = indexer
        self.runner = runner

    @classmethod
    def from_config(
        cls,
        config: ReposeekConfig,
        db: Database,
        host: CodeHost,
        embedder: Embedder,
        *,
        runner: TaskRunner | None = None,
        summarizer: Summarizer | None = None,
        commit_summarizer: CommitSummarizer | None = None,
    ) -> IngestCoordinator:
        """Wire every component against one store and one code host."""
        indexing = config.indexing
        file_filter = FileFilter.with_extras(
            indexing.extra_excluded_extensions, indexing.extra_excluded_dirs
        )
        credentials = CredentialResolver(db, config.github)
        ledger = CreditLedger(db)
        status = StatusTracker(db)
        commits = CommitTracker(db)
        projects = ProjectDirectory(db)
        indexer = RepositoryIndexer(
            db,
            host,
            embedder,
            summarizer=summarizer,
            file_filter=file_filter,
            max_concurrency=indexing.max_concurrency,
            max_file_bytes=indexing.max_file_bytes,
            max_embed_chars=indexing.max_embed_chars,
        )
        return cls(
            provisioner=ProjectProvisioner(
                db,
                host,
                credentials,
                ledger,
                status,
                indexer,
                file_filter=file_filter,
                credits_per_file=indexing.credits_per_file,
            ),
            reindexer=CommitReindexer(
                commits,
                projects,
                host,
                indexer,
                credentials,
                ProjectLeases(),
                file_filter=file_filter,
                default_branch=indexing.default_branch,
            ),
            history=CommitHistorySync(
                commits,
                projects,
                host,
                credentials,
                summarizer=commit_summarizer,
                limit=indexing.commit_history_limit,
            ),
            status=status,
            ledger=ledger,
            commits=commits,
            projects=projects,
            indexer=indexer,
            runner=runner or TaskRunner(),
        )

    async def create_project(self, command: CreateProjectCommand) -> ProvisionResult:
        """Provision synchronously, then spawn the full index."""
        result = await self.provisioner.provision(command)
        if not result.replayed:
            self.runner.spawn(
                self.provisioner.run_full_index(result),
                name=f"full-index:{result.project_id}",
            )
        return result

    def schedule_reindex(
        self,
        project_id: str,
        repository_url: str,
        commit_ids: Sequence[str],
        credential: str | None = None,
    ) -> int:
        """Validate the target and spawn the reindex batch; return the commit count.

        Raises:
            StoreError: unknown project.
            RepositoryError: malformed repository URL.
        """
        self.projects.require(project_id)
        parse_repository_url(repository_url)
        ids = list(commit_ids)
        self.runner.spawn(
            self.reindexer.reindex(project_id, repository_url, ids, credential),
            name=f"reindex:{project_id}",
        )
        logger.info("reindex_scheduled", project_id=project_id, commits=len(ids))
        return len(ids)

    def schedule_history_sync(
        self,
        project_id: str,
        *,
        is_project_creation: bool = False,
        credential: str | None = None,
    ) -> None:
        self.projects.require(project_id)
        self.runner.spawn(
            self.history.sync(
                project_id, is_project_creation=is_project_creation, credential=credential
            ),
            name=f"history-sync:{project_id}",
        )
        logger.info("history_sync_scheduled", project_id=project_id)

    def creation_status(self, request_id: str) -> CreationStatusView | None:
        snapshot = self.status.get(request_id)
        if snapshot is None:
            return None
        project = self.projects.find(snapshot.project_id) if snapshot.project_id else None
        count = self.indexer.embedding_count(project.id) if project is not None else 0
        return CreationStatusView(creation=snapshot, project=project, embeddings_count=count)

    def list_commits(self, project_id: str, limit: int = 50) -> list[CommitRecord]:
        self.projects.require(project_id)
        return self.commits.list_commits(project_id, limit)

    def credit_balance(self, user_id: str) -> int:
        return self.ledger.balance(user_id)
