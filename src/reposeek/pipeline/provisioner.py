"""Project provisioning: validate, charge, create, then index.

Provisioning is split at the response boundary:

    provision()       steps 1-8, awaited by the request handler
        1. request -> CREATING_PROJECT
        2. resolve credential
        3. validate repository (RepositoryError.invalid)
        4. private without user credential (RepositoryError.authorization_required)
        5. count indexable files, persist on the request
        6. balance check (CreditError.insufficient)
        7. one BEGIN IMMEDIATE transaction: charge + Project + membership
        8. request -> INDEXING, project linked

    run_full_index()  steps 9-11, spawned after the response
        9. full index
       10. failure or cancellation -> COMPLETED with an error note (project kept)
       11. success -> COMPLETED, error cleared

Any failure in steps 1-8 moves the request to ERROR and re-raises.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from sqlmodel import Session

from reposeek.core.errors import (
    InternalError,
    RepositoryError,
    ReposeekError,
    RequestValidationError,
    StoreError,
)
from reposeek.host.models import RepositoryRef, parse_repository_url
from reposeek.pipeline.credits import credits_required
from reposeek.pipeline.filters import DEFAULT_FILTER, FileFilter
from reposeek.store.models import CreationStatus, Project, ProjectCreation, UserToProject

if TYPE_CHECKING:
    from reposeek.host.credentials import CredentialResolver
    from reposeek.host.models import CodeHost
    from reposeek.index.indexer import RepositoryIndexer
    from reposeek.pipeline.credits import CreditLedger
    from reposeek.pipeline.status import StatusTracker
    from reposeek.store.database import Database

logger = structlog.get_logger()

PRIVATE_REPO_MESSAGE = "Private repository requires GitHub App installation"
INTERRUPTED_NOTE = "Indexing error: interrupted before completion"


@dataclass(frozen=True)
class CreateProjectCommand:
    name: str
    repository_url: str
    branch: str
    user_id: str
    request_id: str


@dataclass(frozen=True)
class ProvisionResult:
    """Outcome of the synchronous phase.

    ``replayed`` is set when the request had already been provisioned; the
    caller must not start another full index for it.
    """

    request_id: str
    project_id: str
    ref: RepositoryRef
    branch: str
    file_count: int
    token: str | None = None
    replayed: bool = False


class ProjectProvisioner:
    """Drives one ProjectCreation request through the provisioning states."""

    def __init__(
        self,
        db: Database,
        host: CodeHost,
        credentials: CredentialResolver,
        ledger: CreditLedger,
        status: StatusTracker,
        indexer: RepositoryIndexer,
        *,
        file_filter: FileFilter = DEFAULT_FILTER,
        credits_per_file: int = 1,
    ) -> None:
        self._db = db
        self._host = host
        self._credentials = credentials
        self._ledger = ledger
        self._status = status
        self._indexer = indexer
        self._filter = file_filter
        self._credits_per_file = credits_per_file

    async def provision(self, command: CreateProjectCommand) -> ProvisionResult:
        """Run steps 1-8.

        Raises:
            RequestValidationError: the request id is already in use.
            RepositoryError: invalid repository or missing authorization.
            CreditError: insufficient balance or unknown user.
            StoreError: the charge-and-create transaction failed.
            UpstreamError: the file count could not be computed.
        """
        log = logger.bind(request_id=command.request_id, user_id=command.user_id)
        snapshot = self._status.open_request(command.request_id, command.user_id)
        if snapshot.status is not CreationStatus.PENDING:
            return self._replay(command, snapshot.status, snapshot.project_id, snapshot.file_count)

        self._status.advance(command.request_id, CreationStatus.CREATING_PROJECT)
        log.info(
            "provisioning_started",
            repository_url=command.repository_url,
            branch=command.branch,
        )

        try:
            result = await self._provision(command)
        except ReposeekError as e:
            log.warning("provisioning_failed", error=e.error_name, message=e.message)
            self._status.fail(command.request_id, e.message)
            raise
        except Exception as e:
            log.exception("provisioning_crashed")
            self._status.fail(command.request_id, str(e))
            raise InternalError.unexpected(str(e), request_id=command.request_id) from e

        self._status.advance(
            command.request_id, CreationStatus.INDEXING, project_id=result.project_id
        )
        log.info(
            "provisioning_succeeded",
            project_id=result.project_id,
            file_count=result.file_count,
        )
        return result

    def _replay(
        self,
        command: CreateProjectCommand,
        status: CreationStatus,
        project_id: str | None,
        file_count: int | None,
    ) -> ProvisionResult:
        if project_id is None or status not in (CreationStatus.INDEXING, CreationStatus.COMPLETED):
            raise RequestValidationError.conflict(command.request_id, status.value)
        logger.info(
            "provisioning_replayed",
            request_id=command.request_id,
            project_id=project_id,
            status=status.value,
        )
        return ProvisionResult(
            request_id=command.request_id,
            project_id=project_id,
            ref=parse_repository_url(command.repository_url),
            branch=command.branch,
            file_count=file_count or 0,
            replayed=True,
        )

    async def _provision(self, command: CreateProjectCommand) -> ProvisionResult:
        ref = parse_repository_url(command.repository_url)
        credential = self._credentials.resolve(command.user_id)

        info = await self._host.get_repository(ref, credential.token)
        if info.is_private and not credential.authorizes_private:
            raise RepositoryError.authorization_required(command.repository_url, PRIVATE_REPO_MESSAGE)

        entries = await self._host.list_files(ref, command.branch, credential.token)
        file_count = len(self._filter.filter_paths(entry.path for entry in entries))
        self._status.record_file_count(command.request_id, file_count)

        required = credits_required(file_count, self._credits_per_file)
        self._ledger.ensure_sufficient(command.user_id, required)

        project_id = self._charge_and_create(command, required)
        return ProvisionResult(
            request_id=command.request_id,
            project_id=project_id,
            ref=ref,
            branch=command.branch,
            file_count=file_count,
            token=credential.token,
        )

    def _charge_and_create(self, command: CreateProjectCommand, amount: int) -> str:
        """Charge and create in one serializable transaction; return the project id."""
        try:
            with self._db.immediate_transaction() as session:
                project = Project(
                    name=command.name,
                    repository_url=command.repository_url,
                    branch=command.branch,
                )
                self._ledger.charge(session, command.user_id, amount, project_id=project.id)
                self._create_project(session, project, command.user_id)

                creation = session.get(ProjectCreation, command.request_id)
                if creation is not None:
                    creation.project_id = project.id
                    session.add(creation)
                return project.id
        except ReposeekError:
            raise
        except Exception as e:
            raise StoreError.transaction_failed("charge_and_create", str(e)) from e

    def _create_project(self, session: Session, project: Project, user_id: str) -> None:
        session.add(project)
        session.flush()
        session.add(UserToProject(user_id=user_id, project_id=project.id))
        session.flush()

    async def run_full_index(self, result: ProvisionResult) -> None:
        """Run steps 9-11. Never raises: the outcome lands on the request record."""
        log = logger.bind(request_id=result.request_id, project_id=result.project_id)
        try:
            stats = await self._indexer.index_repository(
                result.project_id, result.ref, result.branch, result.token
            )
        except ReposeekError as e:
            note = e.message
            if not note.startswith("Indexing error"):
                note = f"Indexing error: {note}"
            log.warning("full_index_failed", error=note)
            self._status.advance(result.request_id, CreationStatus.COMPLETED, error=note)
            return
        except asyncio.CancelledError:
            log.warning("full_index_interrupted")
            self._status.advance(
                result.request_id, CreationStatus.COMPLETED, error=INTERRUPTED_NOTE
            )
            raise
        except Exception as e:
            log.exception("full_index_crashed")
            self._status.advance(
                result.request_id, CreationStatus.COMPLETED, error=f"Indexing error: {e}"
            )
            return

        log.info(
            "full_index_completed",
            indexed=stats.files_indexed,
            failed=stats.files_failed,
            duration_ms=round(stats.duration_seconds * 1000),
        )
        self._status.advance(result.request_id, CreationStatus.COMPLETED, error=None)
