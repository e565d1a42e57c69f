"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages,
and provides the shared store fixtures and in-memory collaborators.
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Generator, Sequence
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local reposeek package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of reposeek modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("reposeek"):
        del sys.modules[module_name]

from reposeek.core.errors import UpstreamError  # noqa: E402
from reposeek.host.models import (  # noqa: E402
    CommitInfo,
    RepositoryInfo,
    RepositoryRef,
    TreeEntry,
)
from reposeek.store.database import Database  # noqa: E402
from reposeek.store.models import Commit, Project, User, UserToProject  # noqa: E402

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


class FakeCodeHost:
    """In-memory code host. Files map path -> content for every branch."""

    def __init__(self) -> None:
        self.is_private = False
        self.files: dict[str, str] = {}
        self.sizes: dict[str, int] = {}
        self.diffs: dict[str, str | Exception] = {}
        self.commits: list[CommitInfo] = []
        self.repository_error: Exception | None = None
        self.list_files_error: Exception | None = None
        self.file_errors: dict[str, Exception] = {}
        self.calls: list[tuple[Any, ...]] = []

    async def get_repository(self, ref: RepositoryRef, token: str | None = None) -> RepositoryInfo:
        self.calls.append(("get_repository", ref.full_name, token))
        if self.repository_error is not None:
            raise self.repository_error
        return RepositoryInfo(ref=ref, is_private=self.is_private, default_branch="main")

    async def list_files(
        self, ref: RepositoryRef, branch: str, token: str | None = None
    ) -> list[TreeEntry]:
        self.calls.append(("list_files", ref.full_name, branch, token))
        if self.list_files_error is not None:
            raise self.list_files_error
        return [
            TreeEntry(path=path, size=self.sizes.get(path, len(content)))
            for path, content in self.files.items()
        ]

    async def get_file_content(
        self, ref: RepositoryRef, path: str, branch: str, token: str | None = None
    ) -> str:
        self.calls.append(("get_file_content", path, branch, token))
        if path in self.file_errors:
            raise self.file_errors[path]
        if path not in self.files:
            raise UpstreamError.fetch_failed(f"file {path}", "Not Found", 404)
        return self.files[path]

    async def get_commit_diff(self, ref: RepositoryRef, sha: str, token: str | None = None) -> str:
        self.calls.append(("get_commit_diff", sha, token))
        diff = self.diffs.get(sha)
        if isinstance(diff, Exception):
            raise diff
        if diff is None:
            raise UpstreamError.fetch_failed(f"diff {sha}", "Not Found", 404)
        return diff

    async def list_commits(
        self, ref: RepositoryRef, branch: str | None, limit: int, token: str | None = None
    ) -> list[CommitInfo]:
        self.calls.append(("list_commits", ref.full_name, branch, limit, token))
        return list(self.commits)[:limit]

    def calls_named(self, name: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == name]


class FakeEmbedder:
    """Deterministic embedder recording every batch."""

    def __init__(self) -> None:
        self.batches: list[list[str]] = []
        self.error: Exception | None = None

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.batches.append(list(texts))
        if self.error is not None:
            raise self.error
        return [[float(len(text)), 1.0] for text in texts]


def make_diff(*paths: str) -> str:
    """Minimal unified diff touching ``paths``."""
    chunks = [
        f"diff --git a/{p} b/{p}\nindex 111..222 100644\n"
        f"--- a/{p}\n+++ b/{p}\n@@ -1 +1 @@\n-a\n+b\n"
        for p in paths
    ]
    return "".join(chunks)


@pytest.fixture
def db(tmp_path: Path) -> Generator[Database, None, None]:
    """Fresh SQLite store with schema."""
    database = Database(tmp_path / "test.db", retry_base_delay=0.0)
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def seed_user(db: Database) -> Callable[..., str]:
    """Factory inserting a user with a credit balance."""

    def _seed(user_id: str = "user-1", credits: int = 100) -> str:
        with db.session() as session:
            session.add(User(id=user_id, credits=credits))
            session.commit()
        return user_id

    return _seed


@pytest.fixture
def seed_project(db: Database) -> Callable[..., str]:
    """Factory inserting a project owned by an existing user."""

    def _seed(
        owner_id: str = "user-1",
        repository_url: str = "https://github.com/acme/widgets",
        branch: str = "main",
        name: str = "widgets",
    ) -> str:
        with db.session() as session:
            project = Project(name=name, repository_url=repository_url, branch=branch)
            session.add(project)
            session.flush()
            session.add(UserToProject(user_id=owner_id, project_id=project.id))
            session.commit()
            return project.id

    return _seed


@pytest.fixture
def seed_commit(db: Database) -> Callable[..., str]:
    """Factory inserting a commit; ``offset_minutes`` orders commits in time."""

    def _seed(
        project_id: str,
        commit_hash: str,
        offset_minutes: int = 0,
        *,
        modified_files: list[str] | None = None,
        needs_reindex: bool = True,
    ) -> str:
        with db.session() as session:
            commit = Commit(
                project_id=project_id,
                commit_hash=commit_hash,
                commit_message=f"change {commit_hash}",
                commit_date=BASE_TIME + timedelta(minutes=offset_minutes),
                needs_reindex=needs_reindex,
            )
            if modified_files is not None:
                commit.set_modified_files(modified_files)
            session.add(commit)
            session.commit()
            return commit.id

    return _seed


@pytest.fixture
def fake_host() -> FakeCodeHost:
    return FakeCodeHost()


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def diff_for() -> Callable[..., str]:
    """Expose make_diff to test modules."""
    return make_diff
