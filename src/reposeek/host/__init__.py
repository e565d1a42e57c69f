"""Remote code host access: GitHub REST client and credential lookup."""

from reposeek.host.credentials import CredentialResolver, ResolvedCredential
from reposeek.host.github import GitHubClient
from reposeek.host.models import (
    CodeHost,
    CommitInfo,
    RepositoryInfo,
    RepositoryRef,
    TreeEntry,
    parse_repository_url,
)

__all__ = [
    "CodeHost",
    "CommitInfo",
    "CredentialResolver",
    "GitHubClient",
    "RepositoryInfo",
    "RepositoryRef",
    "ResolvedCredential",
    "TreeEntry",
    "parse_repository_url",
]
