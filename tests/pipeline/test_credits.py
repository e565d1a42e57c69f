"""Tests for the credit ledger."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from reposeek.core.errors import CreditError, ErrorCode
from reposeek.pipeline.credits import CreditLedger, credits_required
from reposeek.store.database import Database
from reposeek.store.models import LedgerReason


class TestCreditsRequired:
    """Tests for credits_required."""

    @pytest.mark.parametrize(
        ("file_count", "per_file", "expected"),
        [(0, 1, 0), (120, 1, 120), (10, 3, 30)],
    )
    def test_cost_scales_with_file_count(
        self, file_count: int, per_file: int, expected: int
    ) -> None:
        assert credits_required(file_count, per_file) == expected

    def test_negative_count_rejected(self) -> None:
        with pytest.raises(ValueError):
            credits_required(-1)


class TestCreditLedger:
    """Tests for CreditLedger."""

    def test_given_unknown_user_when_balance_then_user_not_found(self, db: Database) -> None:
        """Missing users are reported, not treated as zero balance."""
        with pytest.raises(CreditError) as exc_info:
            CreditLedger(db).balance("ghost")
        assert exc_info.value.code == ErrorCode.USER_NOT_FOUND

    def test_given_short_balance_when_ensure_then_insufficient(
        self, db: Database, seed_user: Callable[..., str]
    ) -> None:
        """Balance 100 cannot cover 120 credits."""
        # Given
        user_id = seed_user(credits=100)

        # When / Then
        with pytest.raises(CreditError) as exc_info:
            CreditLedger(db).ensure_sufficient(user_id, 120)
        assert exc_info.value.code == ErrorCode.INSUFFICIENT_CREDITS
        assert exc_info.value.details["balance"] == 100
        assert exc_info.value.details["required"] == 120

    def test_given_exact_balance_when_ensure_then_passes(
        self, db: Database, seed_user: Callable[..., str]
    ) -> None:
        user_id = seed_user(credits=120)
        assert CreditLedger(db).ensure_sufficient(user_id, 120) == 120

    def test_given_balance_when_charged_then_decremented_and_audited(
        self, db: Database, seed_user: Callable[..., str]
    ) -> None:
        """A charge decrements the balance and writes a negative ledger row."""
        # Given
        user_id = seed_user(credits=100)
        ledger = CreditLedger(db)

        # When
        with db.immediate_transaction() as session:
            ledger.charge(session, user_id, 40, project_id="p1")

        # Then
        assert ledger.balance(user_id) == 60
        history = ledger.history(user_id)
        assert [(t.amount, t.reason, t.project_id) for t in history] == [
            (-40, LedgerReason.PROJECT_CREATION.value, "p1")
        ]

    def test_given_balance_raced_below_amount_when_charged_then_nothing_written(
        self, db: Database, seed_user: Callable[..., str]
    ) -> None:
        """The conditional update refuses to go negative."""
        # Given
        user_id = seed_user(credits=10)
        ledger = CreditLedger(db)

        # When
        with pytest.raises(CreditError) as exc_info:
            with db.immediate_transaction() as session:
                ledger.charge(session, user_id, 11)

        # Then
        assert exc_info.value.code == ErrorCode.INSUFFICIENT_CREDITS
        assert ledger.balance(user_id) == 10
        assert ledger.history(user_id) == []

    def test_given_charge_when_transaction_rolls_back_then_balance_restored(
        self, db: Database, seed_user: Callable[..., str]
    ) -> None:
        """A charge is only durable if its transaction commits."""
        # Given
        user_id = seed_user(credits=100)
        ledger = CreditLedger(db)

        # When
        with pytest.raises(RuntimeError):
            with db.immediate_transaction() as session:
                ledger.charge(session, user_id, 100)
                raise RuntimeError("later step failed")

        # Then
        assert ledger.balance(user_id) == 100
        assert ledger.history(user_id) == []

    def test_given_missing_user_when_charged_then_user_not_found(self, db: Database) -> None:
        with pytest.raises(CreditError) as exc_info:
            with db.immediate_transaction() as session:
                CreditLedger(db).charge(session, "ghost", 1)
        assert exc_info.value.code == ErrorCode.USER_NOT_FOUND

    def test_given_user_when_granted_then_balance_increases(
        self, db: Database, seed_user: Callable[..., str]
    ) -> None:
        """Grants add to the balance and are recorded."""
        # Given
        user_id = seed_user(credits=5)
        ledger = CreditLedger(db)

        # When
        balance = ledger.grant(user_id, 20)

        # Then
        assert balance == 25
        assert ledger.history(user_id)[0].reason == LedgerReason.GRANT.value

    def test_given_unknown_user_when_granted_with_create_then_user_created(
        self, db: Database
    ) -> None:
        ledger = CreditLedger(db)
        assert ledger.grant("new-user", 50, create_user=True) == 50
        assert ledger.balance("new-user") == 50

    def test_given_unknown_user_when_granted_without_create_then_raises(
        self, db: Database
    ) -> None:
        with pytest.raises(CreditError):
            CreditLedger(db).grant("new-user", 50)
