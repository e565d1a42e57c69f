"""Credit ledger: balance checks, charges and grants.

Charges run inside a caller-owned transaction so the decrement commits or
rolls back together with whatever it pays for. The decrement itself is a
conditional UPDATE (``credits >= amount``), so a concurrent spend cannot push
the balance below zero even if the pre-check raced.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import update
from sqlmodel import Session, col, select

from reposeek.core.errors import CreditError
from reposeek.store.models import CreditTransaction, LedgerReason, User

if TYPE_CHECKING:
    from reposeek.store.database import Database

logger = structlog.get_logger()


def credits_required(file_count: int, credits_per_file: int = 1) -> int:
    """Credits needed to index ``file_count`` files."""
    if file_count < 0:
        raise ValueError(f"file_count must be non-negative, got {file_count}")
    return file_count * credits_per_file


class CreditLedger:
    """Reads and moves user credit balances."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def balance(self, user_id: str) -> int:
        """Current balance.

        Raises:
            CreditError: user does not exist.
        """
        with self._db.session() as session:
            user = session.get(User, user_id)
            if user is None:
                raise CreditError.user_not_found(user_id)
            return user.credits

    def ensure_sufficient(self, user_id: str, required: int) -> int:
        """Raise InsufficientCredits when ``balance < required``; return the balance."""
        current = self.balance(user_id)
        if current < required:
            logger.info(
                "credits_insufficient",
                user_id=user_id,
                balance=current,
                required=required,
            )
            raise CreditError.insufficient(user_id, current, required)
        return current

    def charge(
        self,
        session: Session,
        user_id: str,
        amount: int,
        *,
        reason: LedgerReason = LedgerReason.PROJECT_CREATION,
        project_id: str | None = None,
    ) -> None:
        """Decrement ``amount`` within ``session``'s transaction.

        Does not commit. Raises CreditError if the user is missing or the
        balance no longer covers the amount.
        """
        if amount < 0:
            raise ValueError(f"charge amount must be non-negative, got {amount}")

        result = session.execute(
            update(User)
            .where(col(User.id) == user_id, col(User.credits) >= amount)
            .values(credits=User.credits - amount)
        )
        if result.rowcount != 1:  # type: ignore[attr-defined]
            user = session.get(User, user_id)
            if user is None:
                raise CreditError.user_not_found(user_id)
            raise CreditError.insufficient(user_id, user.credits, amount)

        session.add(
            CreditTransaction(
                user_id=user_id,
                amount=-amount,
                reason=reason.value,
                project_id=project_id,
            )
        )
        logger.info("credits_charged", user_id=user_id, amount=amount, project_id=project_id)

    def grant(self, user_id: str, amount: int, *, create_user: bool = False) -> int:
        """Add credits and return the new balance."""
        if amount <= 0:
            raise ValueError(f"grant amount must be positive, got {amount}")

        with self._db.immediate_transaction() as session:
            user = session.get(User, user_id)
            if user is None:
                if not create_user:
                    raise CreditError.user_not_found(user_id)
                user = User(id=user_id, credits=0)
            user.credits += amount
            session.add(user)
            session.flush()
            session.add(
                CreditTransaction(user_id=user_id, amount=amount, reason=LedgerReason.GRANT.value)
            )
            new_balance = user.credits

        logger.info("credits_granted", user_id=user_id, amount=amount, balance=new_balance)
        return new_balance

    def history(self, user_id: str, limit: int = 50) -> list[CreditTransaction]:
        """Most recent ledger movements first."""
        with self._db.session() as session:
            rows = session.exec(
                select(CreditTransaction)
                .where(CreditTransaction.user_id == user_id)
                .order_by(col(CreditTransaction.created_at).desc())
                .limit(limit)
            ).all()
            return list(rows)
