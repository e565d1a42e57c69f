"""Tests for store timestamps."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta, timezone

from reposeek.store.database import Database
from reposeek.store.models import Commit, User, as_utc, utcnow


class TestUtcTimestamps:
    """Timestamps are timezone-aware UTC on the way in and out."""

    def test_given_utcnow_when_called_then_aware(self) -> None:
        assert utcnow().tzinfo is UTC

    def test_given_naive_value_when_normalized_then_taken_as_utc(self) -> None:
        # Given
        naive = datetime(2024, 1, 1, 12, 0)

        # When
        result = as_utc(naive)

        # Then
        assert result == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def test_given_offset_value_when_normalized_then_converted(self) -> None:
        # Given
        plus_two = datetime(2024, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

        # When
        result = as_utc(plus_two)

        # Then
        assert result.tzinfo is UTC
        assert result.hour == 12

    def test_given_inserted_user_when_loaded_then_created_at_is_aware(self, db: Database) -> None:
        """Default timestamps survive the SQLite round trip with their zone."""
        # Given
        with db.session() as session:
            session.add(User(id="user-1", credits=5))
            session.commit()

        # When
        with db.session() as session:
            user = session.get(User, "user-1")

        # Then
        assert user is not None
        assert user.created_at.tzinfo is not None
        assert user.created_at.utcoffset() == timedelta(0)

    def test_given_offset_commit_date_when_loaded_then_same_instant_in_utc(
        self,
        db: Database,
        seed_user: Callable[..., str],
        seed_project: Callable[..., str],
    ) -> None:
        # Given
        seed_user()
        project_id = seed_project()
        committed = datetime(2024, 3, 1, 10, 0, tzinfo=timezone(timedelta(hours=2)))
        with db.session() as session:
            commit = Commit(project_id=project_id, commit_hash="abc", commit_date=committed)
            session.add(commit)
            session.commit()
            commit_id = commit.id

        # When
        with db.session() as session:
            loaded = session.get(Commit, commit_id)

        # Then
        assert loaded is not None
        assert loaded.commit_date == datetime(2024, 3, 1, 8, 0, tzinfo=UTC)
