"""Database engine and transaction helpers.

This module provides:
- Database: Connection manager with WAL mode for concurrent access
- Session utilities for ORM and serializable transactions
- Retry logic for SQLite busy timeout handling

The pattern:
- Use session() for ordinary reads and single-row status updates
- Use immediate_transaction() for the credit charge + project creation
  (serializable, all-or-nothing)
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import event, text
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine

# Registers table metadata on import
from reposeek.store import models as _models  # noqa: F401

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from reposeek.config.models import DatabaseConfig

logger = structlog.get_logger()

# Retry configuration for SQLite busy handling
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 0.1  # 100ms base
DEFAULT_RETRY_MAX_DELAY = 2.0  # 2s max
DEFAULT_BUSY_TIMEOUT_MS = 30000


def _is_database_locked_error(error: Exception) -> bool:
    """Check if error is a SQLite database locked error."""
    error_str = str(error).lower()
    return "database is locked" in error_str or "database is busy" in error_str


class Database:
    """SQLite connection manager with WAL mode for concurrent access.

    Includes retry logic with exponential backoff for handling
    SQLite busy timeouts when acquiring the write lock.
    """

    def __init__(
        self,
        db_path: Path,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    ) -> None:
        self.db_path = db_path
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self._busy_timeout_ms = busy_timeout_ms
        self.engine = self._create_engine()

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> Database:
        return cls(
            Path(config.path).expanduser(),
            max_retries=config.max_retries,
            retry_base_delay=config.retry_base_delay_sec,
            busy_timeout_ms=config.busy_timeout_ms,
        )

    def _create_engine(self) -> Engine:
        engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )
        busy_timeout_ms = self._busy_timeout_ms

        def _on_connect(dbapi_conn: Any, _connection_record: Any) -> None:
            _configure_pragmas(dbapi_conn, busy_timeout_ms)

        event.listen(engine, "connect", _on_connect)
        return engine

    def create_all(self) -> None:
        """Create all tables from SQLModel metadata."""
        SQLModel.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        """Drop all tables. Use with caution."""
        SQLModel.metadata.drop_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """ORM session for low-volume operations. Caller commits."""
        with Session(self.engine, expire_on_commit=False) as session:
            yield session

    @contextmanager
    def immediate_transaction(
        self,
        max_retries: int | None = None,
    ) -> Generator[Session, None, None]:
        """
        Session with BEGIN IMMEDIATE for serializable writes.

        BEGIN IMMEDIATE acquires a RESERVED lock up front, blocking other
        writers but allowing readers. Acquisition is retried with exponential
        backoff when the database is locked; the body itself runs once.

        The session commits on successful exit and rolls back on exception.

        Args:
            max_retries: Override default max retries (default: 3)
        """
        retries = max_retries if max_retries is not None else self._max_retries

        with Session(self.engine, expire_on_commit=False) as session:
            for attempt in range(retries + 1):  # +1 for initial attempt
                try:
                    session.execute(text("BEGIN IMMEDIATE"))
                    break
                except OperationalError as e:
                    session.rollback()
                    if not _is_database_locked_error(e) or attempt >= retries:
                        raise
                    delay = min(
                        self._retry_base_delay * (2**attempt),
                        self._retry_max_delay,
                    )
                    logger.warning(
                        "sqlite_busy_retry",
                        attempt=attempt + 1,
                        max_retries=retries,
                        delay_sec=delay,
                    )
                    time.sleep(delay)

            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise


def _configure_pragmas(dbapi_conn: Any, busy_timeout_ms: int) -> None:
    """Configure SQLite for concurrent access."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
    cursor.execute("PRAGMA synchronous=NORMAL")  # Safe with WAL
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
