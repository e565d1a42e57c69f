"""Async GitHub REST client with rate-limit aware retries."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from reposeek.config.models import GitHubConfig
from reposeek.core.errors import RepositoryError, UpstreamError
from reposeek.host.models import CommitInfo, RepositoryInfo, RepositoryRef, TreeEntry
from reposeek.store.models import as_utc, utcnow

logger = structlog.get_logger()

API_VERSION = "2022-11-28"
ACCEPT_JSON = "application/vnd.github+json"
ACCEPT_DIFF = "application/vnd.github.diff"
ACCEPT_RAW = "application/vnd.github.raw"


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    return response.status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0"


def _is_retryable(response: httpx.Response) -> bool:
    return _is_rate_limited(response) or response.status_code >= 500


def _parse_retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def _parse_timestamp(value: str | None) -> datetime:
    """ISO-8601 to aware UTC, matching the store's timestamps."""
    if not value:
        return utcnow()
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


class GitHubClient:
    """Thin async wrapper over the GitHub REST API.

    Retries 429, 5xx, transport errors and 403 responses whose rate limit is
    exhausted, with exponential backoff (``Retry-After`` wins when present).
    Non-retryable statuses are returned to the caller, which maps them onto
    domain errors.
    """

    def __init__(
        self,
        config: GitHubConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config or GitHubConfig()
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=self._config.api_url.rstrip("/"),
            timeout=httpx.Timeout(self._config.timeout_sec),
            transport=transport,
            headers={
                "Accept": ACCEPT_JSON,
                "User-Agent": self._config.user_agent,
                "X-GitHub-Api-Version": API_VERSION,
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _backoff(self, attempt: int, response: httpx.Response | None) -> float:
        if response is not None:
            retry_after = _parse_retry_after(response)
            if retry_after is not None:
                return min(retry_after, self._config.retry_max_delay_sec)
        return min(
            self._config.retry_base_delay_sec * (2**attempt),
            self._config.retry_max_delay_sec,
        )

    async def _send(
        self,
        path: str,
        *,
        token: str | None,
        accept: str = ACCEPT_JSON,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        headers = {"Accept": accept}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        retries = self._config.max_retries
        for attempt in range(retries + 1):
            try:
                response = await self._client.get(path, headers=headers, params=params)
            except httpx.TransportError as e:
                if attempt >= retries:
                    raise UpstreamError.fetch_failed(path, str(e)) from e
                delay = self._backoff(attempt, None)
                logger.warning(
                    "github_transport_retry",
                    path=path,
                    attempt=attempt + 1,
                    delay_sec=delay,
                    error=str(e),
                )
                await self._sleep(delay)
                continue

            if not _is_retryable(response) or attempt >= retries:
                return response

            delay = self._backoff(attempt, response)
            logger.warning(
                "github_retry",
                path=path,
                status=response.status_code,
                rate_limited=_is_rate_limited(response),
                attempt=attempt + 1,
                delay_sec=delay,
            )
            await self._sleep(delay)

        raise AssertionError("unreachable")

    @staticmethod
    def _ensure_ok(response: httpx.Response, resource: str) -> None:
        if response.is_success:
            return
        reason = "rate limit exceeded" if _is_rate_limited(response) else response.reason_phrase
        raise UpstreamError.fetch_failed(resource, reason, response.status_code)

    async def get_repository(self, ref: RepositoryRef, token: str | None = None) -> RepositoryInfo:
        """Look up a repository.

        Raises:
            RepositoryError: not found, not accessible, or unexpected status.
        """
        response = await self._send(f"/repos/{ref.full_name}", token=token)
        if response.status_code == 404:
            if token:
                message = (
                    "Repository not found. Check that the URL is correct and your token "
                    "has access to this repository."
                )
            else:
                message = (
                    "Repository not found. If this is a private repository, "
                    "please provide a GitHub token."
                )
            raise RepositoryError.invalid(ref.url, message)
        if _is_rate_limited(response):
            self._ensure_ok(response, f"repository {ref.full_name}")
        if response.status_code in (401, 403):
            raise RepositoryError.authorization_required(
                ref.url, "Authentication failed. Please check your GitHub token."
            )
        if not response.is_success:
            raise RepositoryError.invalid(
                ref.url,
                f"Failed to access repository: {response.status_code} {response.reason_phrase}",
            )

        data = response.json()
        return RepositoryInfo(
            ref=ref,
            is_private=bool(data.get("private", False)),
            default_branch=data.get("default_branch") or "main",
        )

    async def list_files(
        self, ref: RepositoryRef, branch: str, token: str | None = None
    ) -> list[TreeEntry]:
        """Recursive blob listing of ``branch``.

        A truncated recursive listing is replaced by a level-by-level walk so
        the file count stays complete.
        """
        resource = f"tree {ref.full_name}@{branch}"
        response = await self._send(
            f"/repos/{ref.full_name}/git/trees/{quote(branch, safe='')}",
            token=token,
            params={"recursive": "1"},
        )
        self._ensure_ok(response, resource)

        data = response.json()
        if not data.get("truncated"):
            return [
                TreeEntry(path=item["path"], size=item.get("size"))
                for item in data.get("tree", [])
                if item.get("type") == "blob"
            ]

        logger.warning("github_tree_truncated", repository=ref.full_name, branch=branch)
        return await self._walk_tree(ref, branch, resource, token)

    async def _walk_tree(
        self, ref: RepositoryRef, branch: str, resource: str, token: str | None
    ) -> list[TreeEntry]:
        """List blobs one tree level per request, for trees too large to list recursively.

        Raises:
            UpstreamError: a single level is itself truncated.
        """
        entries: list[TreeEntry] = []
        pending: list[tuple[str, str]] = [(quote(branch, safe=""), "")]
        while pending:
            tree, prefix = pending.pop()
            response = await self._send(f"/repos/{ref.full_name}/git/trees/{tree}", token=token)
            self._ensure_ok(response, resource)
            data = response.json()
            if data.get("truncated"):
                raise UpstreamError.fetch_failed(
                    resource, f"tree listing truncated at {prefix or '/'}", response.status_code
                )
            for item in data.get("tree", []):
                path = f"{prefix}{item['path']}"
                if item.get("type") == "tree":
                    pending.append((item["sha"], f"{path}/"))
                elif item.get("type") == "blob":
                    entries.append(TreeEntry(path=path, size=item.get("size")))
        logger.info(
            "github_tree_walked", repository=ref.full_name, branch=branch, files=len(entries)
        )
        return entries

    async def get_file_content(
        self, ref: RepositoryRef, path: str, branch: str, token: str | None = None
    ) -> str:
        response = await self._send(
            f"/repos/{ref.full_name}/contents/{quote(path)}",
            token=token,
            accept=ACCEPT_RAW,
            params={"ref": branch},
        )
        self._ensure_ok(response, f"file {path}")
        return response.text

    async def get_commit_diff(self, ref: RepositoryRef, sha: str, token: str | None = None) -> str:
        response = await self._send(
            f"/repos/{ref.full_name}/commits/{sha}",
            token=token,
            accept=ACCEPT_DIFF,
        )
        self._ensure_ok(response, f"diff {sha}")
        return response.text

    async def list_commits(
        self,
        ref: RepositoryRef,
        branch: str | None,
        limit: int,
        token: str | None = None,
    ) -> list[CommitInfo]:
        """Most recent commits first."""
        params: dict[str, Any] = {"per_page": limit}
        if branch:
            params["sha"] = branch
        response = await self._send(f"/repos/{ref.full_name}/commits", token=token, params=params)
        self._ensure_ok(response, f"commits {ref.full_name}")

        commits: list[CommitInfo] = []
        for item in response.json()[:limit]:
            commit = item.get("commit") or {}
            author = commit.get("author") or {}
            commits.append(
                CommitInfo(
                    sha=item["sha"],
                    message=commit.get("message") or "",
                    author_name=author.get("name") or "Unknown",
                    author_avatar=(item.get("author") or {}).get("avatar_url"),
                    committed_at=_parse_timestamp(author.get("date")),
                )
            )
        return commits
