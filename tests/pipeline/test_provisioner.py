"""Tests for project provisioning.

Covers:
- The synchronous phase: validation, authorization, charging, creation
- Atomicity of the charge-and-create transaction
- The detached full index and its terminal status
- Replays of an already used request id
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest
from sqlmodel import Session, select

from reposeek.config.models import GitHubConfig
from reposeek.core.errors import (
    CreditError,
    ErrorCode,
    RepositoryError,
    RequestValidationError,
    StoreError,
    UpstreamError,
)
from reposeek.host.credentials import CredentialResolver
from reposeek.index.indexer import RepositoryIndexer
from reposeek.pipeline.credits import CreditLedger
from reposeek.pipeline.provisioner import (
    INTERRUPTED_NOTE,
    PRIVATE_REPO_MESSAGE,
    CreateProjectCommand,
    ProjectProvisioner,
)
from reposeek.pipeline.status import StatusTracker
from reposeek.pipeline.tasks import TaskRunner
from reposeek.store.database import Database
from reposeek.store.models import (
    CreationStatus,
    Project,
    SourceCodeEmbedding,
    UserToProject,
)

REPO_URL = "https://github.com/acme/widgets"


def _command(request_id: str = "req-1", user_id: str = "user-1") -> CreateProjectCommand:
    return CreateProjectCommand(
        name="widgets",
        repository_url=REPO_URL,
        branch="main",
        user_id=user_id,
        request_id=request_id,
    )


def _projects(db: Database) -> list[Project]:
    with db.session() as session:
        return list(session.exec(select(Project)).all())


@pytest.fixture
def provisioner(db: Database, fake_host: Any, fake_embedder: Any) -> ProjectProvisioner:
    indexer = RepositoryIndexer(db, fake_host, fake_embedder)
    return ProjectProvisioner(
        db,
        fake_host,
        CredentialResolver(db, GitHubConfig()),
        CreditLedger(db),
        StatusTracker(db),
        indexer,
    )


@pytest.fixture
def repo_files(fake_host: Any) -> dict[str, str]:
    """Three indexable files plus two the filter drops."""
    fake_host.files = {
        "src/app.py": "print('app')\n",
        "src/util.py": "def util(): ...\n",
        "README.md": "# widgets\n",
        "node_modules/x/index.js": "module.exports = 1\n",
        "logo.png": "binary",
    }
    return fake_host.files


class TestProvision:
    """Tests for the synchronous phase."""

    @pytest.mark.asyncio
    async def test_given_enough_credits_when_provisioned_then_charged_and_indexing(
        self,
        db: Database,
        provisioner: ProjectProvisioner,
        seed_user: Callable[..., str],
        repo_files: dict[str, str],
    ) -> None:
        """Success charges one credit per indexable file and links the project."""
        # Given
        seed_user(credits=10)

        # When
        result = await provisioner.provision(_command())

        # Then
        assert result.file_count == 3
        assert result.replayed is False
        assert CreditLedger(db).balance("user-1") == 7

        snapshot = StatusTracker(db).get("req-1")
        assert snapshot.status is CreationStatus.INDEXING
        assert snapshot.project_id == result.project_id
        assert snapshot.file_count == 3

        [project] = _projects(db)
        assert project.id == result.project_id
        assert project.repository_url == REPO_URL
        with db.session() as session:
            member = session.exec(select(UserToProject)).one()
        assert member.user_id == "user-1"

    @pytest.mark.asyncio
    async def test_given_120_files_and_100_credits_when_provisioned_then_insufficient(
        self,
        db: Database,
        provisioner: ProjectProvisioner,
        seed_user: Callable[..., str],
        fake_host: Any,
    ) -> None:
        """A short balance fails before anything is charged or created."""
        # Given
        seed_user(credits=100)
        fake_host.files = {f"src/f{i}.py": "x = 1\n" for i in range(120)}

        # When
        with pytest.raises(CreditError) as exc_info:
            await provisioner.provision(_command())

        # Then
        assert exc_info.value.code == ErrorCode.INSUFFICIENT_CREDITS
        assert CreditLedger(db).balance("user-1") == 100
        assert _projects(db) == []
        snapshot = StatusTracker(db).get("req-1")
        assert snapshot.status is CreationStatus.ERROR
        assert snapshot.error == "Not enough credits to create this project"
        assert snapshot.file_count == 120

    @pytest.mark.asyncio
    async def test_given_project_insert_fails_when_provisioned_then_charge_rolled_back(
        self,
        db: Database,
        provisioner: ProjectProvisioner,
        seed_user: Callable[..., str],
        repo_files: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """The charge and the project commit together or not at all."""
        # Given
        seed_user(credits=10)

        def broken_create(self: ProjectProvisioner, session: Session, *args: Any) -> None:
            raise RuntimeError("disk full")

        monkeypatch.setattr(ProjectProvisioner, "_create_project", broken_create)

        # When
        with pytest.raises(StoreError) as exc_info:
            await provisioner.provision(_command())

        # Then
        assert exc_info.value.code == ErrorCode.TRANSACTION_FAILED
        assert CreditLedger(db).balance("user-1") == 10
        assert CreditLedger(db).history("user-1") == []
        assert _projects(db) == []
        assert StatusTracker(db).get("req-1").status is CreationStatus.ERROR

    @pytest.mark.asyncio
    async def test_given_private_repo_without_user_token_when_provisioned_then_auth_required(
        self,
        db: Database,
        provisioner: ProjectProvisioner,
        seed_user: Callable[..., str],
        repo_files: dict[str, str],
        fake_host: Any,
    ) -> None:
        """Private repositories need a user credential."""
        # Given
        seed_user(credits=10)
        fake_host.is_private = True

        # When
        with pytest.raises(RepositoryError) as exc_info:
            await provisioner.provision(_command())

        # Then
        assert exc_info.value.code == ErrorCode.AUTHORIZATION_REQUIRED
        assert exc_info.value.message == PRIVATE_REPO_MESSAGE
        assert CreditLedger(db).balance("user-1") == 10
        assert fake_host.calls_named("list_files") == []

    @pytest.mark.asyncio
    async def test_given_private_repo_with_user_token_when_provisioned_then_succeeds(
        self,
        db: Database,
        provisioner: ProjectProvisioner,
        seed_user: Callable[..., str],
        repo_files: dict[str, str],
        fake_host: Any,
    ) -> None:
        """A stored user token authorizes private repositories and is sent upstream."""
        # Given
        seed_user(credits=10)
        fake_host.is_private = True
        CredentialResolver(db, GitHubConfig()).store("user-1", "ghu_user")

        # When
        result = await provisioner.provision(_command())

        # Then
        assert result.token == "ghu_user"
        assert fake_host.calls_named("get_repository")[0][2] == "ghu_user"

    @pytest.mark.asyncio
    async def test_given_malformed_url_when_provisioned_then_invalid_repository(
        self,
        db: Database,
        provisioner: ProjectProvisioner,
        seed_user: Callable[..., str],
    ) -> None:
        # Given
        seed_user(credits=10)
        command = CreateProjectCommand(
            name="x",
            repository_url="https://gitlab.com/acme/widgets",
            branch="main",
            user_id="user-1",
            request_id="req-1",
        )

        # When
        with pytest.raises(RepositoryError) as exc_info:
            await provisioner.provision(command)

        # Then
        assert exc_info.value.code == ErrorCode.REPOSITORY_INVALID
        assert StatusTracker(db).get("req-1").status is CreationStatus.ERROR

    @pytest.mark.asyncio
    async def test_given_unreachable_repo_when_provisioned_then_error_recorded(
        self,
        db: Database,
        provisioner: ProjectProvisioner,
        seed_user: Callable[..., str],
        fake_host: Any,
    ) -> None:
        """Code host failures end the request in ERROR with the message."""
        # Given
        seed_user(credits=10)
        fake_host.repository_error = RepositoryError.invalid(REPO_URL, "Repository not found.")

        # When
        with pytest.raises(RepositoryError):
            await provisioner.provision(_command())

        # Then
        snapshot = StatusTracker(db).get("req-1")
        assert snapshot.status is CreationStatus.ERROR
        assert snapshot.error == "Repository not found."


class TestReplay:
    """Tests for reused request ids."""

    @pytest.mark.asyncio
    async def test_given_provisioned_request_when_resubmitted_then_replayed(
        self,
        db: Database,
        provisioner: ProjectProvisioner,
        seed_user: Callable[..., str],
        repo_files: dict[str, str],
    ) -> None:
        """A duplicate submission is not charged twice."""
        # Given
        seed_user(credits=10)
        first = await provisioner.provision(_command())

        # When
        second = await provisioner.provision(_command())

        # Then
        assert second.replayed is True
        assert second.project_id == first.project_id
        assert CreditLedger(db).balance("user-1") == 7
        assert len(_projects(db)) == 1

    @pytest.mark.asyncio
    async def test_given_failed_request_when_resubmitted_then_conflict(
        self,
        provisioner: ProjectProvisioner,
        seed_user: Callable[..., str],
        fake_host: Any,
    ) -> None:
        """A request id that ended in ERROR cannot be reused."""
        # Given
        seed_user(credits=0)
        fake_host.files = {"a.py": "x"}
        with pytest.raises(CreditError):
            await provisioner.provision(_command())

        # When / Then
        with pytest.raises(RequestValidationError) as exc_info:
            await provisioner.provision(_command())
        assert exc_info.value.code == ErrorCode.REQUEST_CONFLICT


class TestRunFullIndex:
    """Tests for the detached phase."""

    @pytest.mark.asyncio
    async def test_given_provisioned_project_when_indexed_then_completed(
        self,
        db: Database,
        provisioner: ProjectProvisioner,
        seed_user: Callable[..., str],
        repo_files: dict[str, str],
    ) -> None:
        """A successful index completes the request without an error note."""
        # Given
        seed_user(credits=10)
        result = await provisioner.provision(_command())

        # When
        await provisioner.run_full_index(result)

        # Then
        snapshot = StatusTracker(db).get("req-1")
        assert snapshot.status is CreationStatus.COMPLETED
        assert snapshot.error is None
        with db.session() as session:
            names = sorted(
                session.exec(
                    select(SourceCodeEmbedding.file_name).where(
                        SourceCodeEmbedding.project_id == result.project_id
                    )
                ).all()
            )
        assert names == ["README.md", "src/app.py", "src/util.py"]

    @pytest.mark.asyncio
    async def test_given_index_failure_when_indexed_then_completed_with_note(
        self,
        db: Database,
        provisioner: ProjectProvisioner,
        seed_user: Callable[..., str],
        repo_files: dict[str, str],
        fake_host: Any,
    ) -> None:
        """The project is kept and paid for; the failure becomes a note."""
        # Given
        seed_user(credits=10)
        result = await provisioner.provision(_command())
        fake_host.list_files_error = UpstreamError.fetch_failed("tree", "Bad Gateway", 502)

        # When
        await provisioner.run_full_index(result)

        # Then
        snapshot = StatusTracker(db).get("req-1")
        assert snapshot.status is CreationStatus.COMPLETED
        assert snapshot.error.startswith("Indexing error: ")
        assert len(_projects(db)) == 1
        assert CreditLedger(db).balance("user-1") == 7

    @pytest.mark.asyncio
    async def test_given_unexpected_crash_when_indexed_then_never_raises(
        self,
        db: Database,
        provisioner: ProjectProvisioner,
        seed_user: Callable[..., str],
        repo_files: dict[str, str],
        fake_embedder: Any,
    ) -> None:
        # Given
        seed_user(credits=10)
        result = await provisioner.provision(_command())
        fake_embedder.error = RuntimeError("model missing")

        # When
        await provisioner.run_full_index(result)

        # Then
        snapshot = StatusTracker(db).get("req-1")
        assert snapshot.status is CreationStatus.COMPLETED
        assert "model missing" in snapshot.error

    @pytest.mark.asyncio
    async def test_given_index_in_flight_when_runner_stopped_then_completed_with_note(
        self,
        db: Database,
        provisioner: ProjectProvisioner,
        seed_user: Callable[..., str],
        repo_files: dict[str, str],
        fake_embedder: Any,
    ) -> None:
        """Shutdown cancellation still leaves the request in a terminal status."""
        # Given
        seed_user(credits=10)
        result = await provisioner.provision(_command())
        started = asyncio.Event()

        async def hang(texts: Any) -> list[list[float]]:
            started.set()
            await asyncio.Event().wait()
            return []

        fake_embedder.embed = hang
        runner = TaskRunner()
        runner.spawn(provisioner.run_full_index(result), name="full-index")
        await asyncio.wait_for(started.wait(), timeout=5)

        # When
        await runner.stop(timeout=0.01)

        # Then
        snapshot = StatusTracker(db).get("req-1")
        assert snapshot.status is CreationStatus.COMPLETED
        assert snapshot.error == INTERRUPTED_NOTE

        replay = await provisioner.provision(_command())
        assert replay.replayed is True
        assert replay.project_id == result.project_id
