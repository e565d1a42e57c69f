"""Code host value types and the collaborator protocol."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from reposeek.core.errors import RepositoryError

# Formats: https://github.com/owner/repo, github.com/owner/repo.git, git@github.com:owner/repo
_GITHUB_URL = re.compile(r"github\.com[:/]([^/\s]+)/([^/\s?#]+)", re.IGNORECASE)

INVALID_URL_MESSAGE = "Invalid GitHub URL format. Please enter a valid GitHub repository URL."


@dataclass(frozen=True)
class RepositoryRef:
    """Owner/name pair parsed from a repository URL."""

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def url(self) -> str:
        return f"https://github.com/{self.full_name}"


def parse_repository_url(url: str) -> RepositoryRef:
    """Parse a GitHub repository URL.

    Raises:
        RepositoryError: the URL does not name an owner and repository.
    """
    match = _GITHUB_URL.search(url.strip()) if isinstance(url, str) else None
    if match is None:
        raise RepositoryError.invalid(str(url), INVALID_URL_MESSAGE)

    owner = match.group(1)
    name = match.group(2).rstrip("/")
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not owner or not name:
        raise RepositoryError.invalid(url, INVALID_URL_MESSAGE)
    return RepositoryRef(owner=owner, name=name)


@dataclass(frozen=True)
class RepositoryInfo:
    """Result of a successful repository lookup."""

    ref: RepositoryRef
    is_private: bool
    default_branch: str


@dataclass(frozen=True)
class TreeEntry:
    """One blob of a recursive tree listing."""

    path: str
    size: int | None = None


@dataclass(frozen=True)
class CommitInfo:
    """Commit metadata from a history listing."""

    sha: str
    message: str
    author_name: str
    author_avatar: str | None
    committed_at: datetime


class CodeHost(Protocol):
    """Operations the pipeline needs from the remote code host."""

    async def get_repository(
        self, ref: RepositoryRef, token: str | None = None
    ) -> RepositoryInfo: ...

    async def list_files(
        self, ref: RepositoryRef, branch: str, token: str | None = None
    ) -> list[TreeEntry]: ...

    async def get_file_content(
        self, ref: RepositoryRef, path: str, branch: str, token: str | None = None
    ) -> str: ...

    async def get_commit_diff(
        self, ref: RepositoryRef, sha: str, token: str | None = None
    ) -> str: ...

    async def list_commits(
        self, ref: RepositoryRef, branch: str | None, limit: int, token: str | None = None
    ) -> list[CommitInfo]: ...
