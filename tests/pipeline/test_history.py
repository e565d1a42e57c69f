"""Tests for commit history sync."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

import pytest

from reposeek.config.models import GitHubConfig
from reposeek.core.errors import UpstreamError
from reposeek.host.credentials import CredentialResolver
from reposeek.host.models import CommitInfo
from reposeek.pipeline.commits import CommitTracker
from reposeek.pipeline.history import (
    EMPTY_SUMMARY,
    FAILED_SUMMARY,
    CommitHistorySync,
)
from reposeek.pipeline.projects import ProjectDirectory
from reposeek.store.database import Database

T0 = datetime(2024, 3, 1, 9, 0, 0)


def _info(sha: str, minutes: int, message: str = "") -> CommitInfo:
    return CommitInfo(
        sha=sha,
        message=message or f"Change {sha}\n\nDetails",
        author_name="Ann",
        author_avatar=None,
        committed_at=T0 + timedelta(minutes=minutes),
    )


class StubCommitSummarizer:
    async def summarize_commit(self, diff_text: str) -> str:
        return f"summary of {len(diff_text)} chars"


@pytest.fixture
def project_id(seed_user: Callable[..., str], seed_project: Callable[..., str]) -> str:
    seed_user()
    return seed_project()


def _sync(db: Database, host: Any, **kwargs: Any) -> CommitHistorySync:
    return CommitHistorySync(
        CommitTracker(db),
        ProjectDirectory(db),
        host,
        CredentialResolver(db, GitHubConfig()),
        **kwargs,
    )


class TestCommitHistorySync:
    """Tests for CommitHistorySync.sync."""

    @pytest.mark.asyncio
    async def test_given_new_commits_when_synced_then_recorded_and_queued(
        self,
        db: Database,
        project_id: str,
        fake_host: Any,
        diff_for: Callable[..., str],
    ) -> None:
        """Unseen commits are stored with their files and flagged for reindex."""
        # Given
        fake_host.commits = [_info("old", 0), _info("new", 5)]
        fake_host.diffs = {"old": diff_for("a.py"), "new": diff_for("b.py", "c.py")}

        # When
        result = await _sync(db, fake_host).sync(project_id)

        # Then
        assert result.inserted == ["new", "old"]
        assert sorted(result.queued_for_reindex) == ["new", "old"]
        [newest, oldest] = CommitTracker(db).list_commits(project_id)
        assert newest.commit_hash == "new"
        assert newest.modified_files == ["b.py", "c.py"]
        assert newest.summary == "Change new"
        assert newest.needs_reindex is True
        assert oldest.modified_files == ["a.py"]

    @pytest.mark.asyncio
    async def test_given_project_creation_when_synced_then_not_queued(
        self,
        db: Database,
        project_id: str,
        fake_host: Any,
        diff_for: Callable[..., str],
    ) -> None:
        """The full index already covers commits seen at creation."""
        # Given
        fake_host.commits = [_info("c1", 0)]
        fake_host.diffs = {"c1": diff_for("a.py")}

        # When
        result = await _sync(db, fake_host).sync(project_id, is_project_creation=True)

        # Then
        assert result.queued_for_reindex == []
        assert CommitTracker(db).pending_reindex(project_id) == []

    @pytest.mark.asyncio
    async def test_given_known_commits_when_synced_again_then_nothing_inserted(
        self,
        db: Database,
        project_id: str,
        fake_host: Any,
        diff_for: Callable[..., str],
    ) -> None:
        # Given
        fake_host.commits = [_info("c1", 0)]
        fake_host.diffs = {"c1": diff_for("a.py")}
        sync = _sync(db, fake_host)
        await sync.sync(project_id)

        # When
        result = await sync.sync(project_id)

        # Then
        assert result.fetched == 1
        assert result.inserted == []
        assert len(fake_host.calls_named("get_commit_diff")) == 1

    @pytest.mark.asyncio
    async def test_given_diff_failure_when_synced_then_commit_left_for_reindex(
        self,
        db: Database,
        project_id: str,
        fake_host: Any,
        diff_for: Callable[..., str],
    ) -> None:
        """One broken commit does not stop the rest of the sync."""
        # Given
        fake_host.commits = [_info("bad", 0), _info("good", 1)]
        fake_host.diffs = {
            "bad": UpstreamError.fetch_failed("diff bad", "Bad Gateway", 502),
            "good": diff_for("ok.py"),
        }

        # When
        result = await _sync(db, fake_host).sync(project_id)

        # Then
        assert list(result.failed) == ["bad"]
        assert result.queued_for_reindex == ["good"]
        bad = CommitTracker(db).load_for_reindex(project_id, ["bad"])[0]
        assert bad.summary == FAILED_SUMMARY
        assert bad.needs_reindex is True
        assert bad.modified_files is None
        pending = [c.commit_hash for c in CommitTracker(db).pending_reindex(project_id)]
        assert "bad" in pending

    @pytest.mark.asyncio
    async def test_given_rate_limited_diff_when_synced_then_pending_without_cached_files(
        self,
        db: Database,
        project_id: str,
        fake_host: Any,
    ) -> None:
        """The next reindex sees no cached files and fetches the diff itself."""
        # Given
        fake_host.commits = [_info("c1", 0)]
        fake_host.diffs = {"c1": UpstreamError.fetch_failed("diff c1", "rate limit", 403)}

        # When
        await _sync(db, fake_host).sync(project_id)

        # Then
        pending = CommitTracker(db).pending_reindex(project_id)
        assert [c.commit_hash for c in pending] == ["c1"]
        assert pending[0].modified_files is None

    @pytest.mark.asyncio
    async def test_given_diff_failure_during_creation_when_synced_then_not_queued(
        self,
        db: Database,
        project_id: str,
        fake_host: Any,
    ) -> None:
        """Commits seen at creation are covered by the full index even when their diff fails."""
        # Given
        fake_host.commits = [_info("c1", 0)]
        fake_host.diffs = {"c1": UpstreamError.fetch_failed("diff c1", "Bad Gateway", 502)}

        # When
        result = await _sync(db, fake_host).sync(project_id, is_project_creation=True)

        # Then
        assert list(result.failed) == ["c1"]
        assert CommitTracker(db).pending_reindex(project_id) == []

    @pytest.mark.asyncio
    async def test_given_summarizer_when_synced_then_summary_used(
        self,
        db: Database,
        project_id: str,
        fake_host: Any,
        diff_for: Callable[..., str],
    ) -> None:
        # Given
        fake_host.commits = [_info("c1", 0)]
        fake_host.diffs = {"c1": diff_for("a.py")}

        # When
        await _sync(db, fake_host, summarizer=StubCommitSummarizer()).sync(project_id)

        # Then
        [commit] = CommitTracker(db).list_commits(project_id)
        assert commit.summary.startswith("summary of ")

    @pytest.mark.asyncio
    async def test_given_blank_message_when_synced_then_empty_summary(
        self,
        db: Database,
        project_id: str,
        fake_host: Any,
        diff_for: Callable[..., str],
    ) -> None:
        # Given
        fake_host.commits = [_info("c1", 0, message="   ")]
        fake_host.diffs = {"c1": diff_for("a.py")}

        # When
        await _sync(db, fake_host).sync(project_id)

        # Then
        [commit] = CommitTracker(db).list_commits(project_id)
        assert commit.summary == EMPTY_SUMMARY

    @pytest.mark.asyncio
    async def test_given_limit_when_synced_then_passed_upstream(
        self, db: Database, project_id: str, fake_host: Any
    ) -> None:
        # When
        await _sync(db, fake_host, limit=7).sync(project_id)

        # Then
        assert fake_host.calls_named("list_commits")[0][3] == 7
