"""SQLModel definitions for projects, commits, credits and the source index.

Single source of truth for all table schemas.

Ownership:
- Project is owned by users through UserToProject (many-to-many).
- Commit and SourceCodeEmbedding are owned by their Project (cascade delete).
- ProjectCreation is an audit record; it may point at a Project, never the reverse.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from typing import Any

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel


def _new_id() -> str:
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Aware UTC view of ``value``; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """Timezone-aware UTC timestamps.

    SQLite keeps no offset, so values are bound as UTC and come back with
    ``tzinfo=UTC`` attached.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        return as_utc(value) if value is not None else None

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        return as_utc(value) if value is not None else None


def _timestamp(*, nullable: bool = False, index: bool = False) -> Any:
    return Column(UTCDateTime(), nullable=nullable, index=index)


# ============================================================================
# ENUMS
# ============================================================================


class CreationStatus(str, Enum):
    """Lifecycle of one provisioning attempt."""

    PENDING = "PENDING"
    CREATING_PROJECT = "CREATING_PROJECT"
    INDEXING = "INDEXING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


class LedgerReason(str, Enum):
    """Why a credit balance moved."""

    PROJECT_CREATION = "project_creation"
    GRANT = "grant"


# ============================================================================
# USERS & CREDITS
# ============================================================================


class User(SQLModel, table=True):
    """Account holding the credit balance."""

    __tablename__ = "users"

    id: str = Field(primary_key=True)
    email: str | None = Field(default=None, index=True)
    credits: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp())


class CreditTransaction(SQLModel, table=True):
    """One ledger movement. Negative amounts are charges."""

    __tablename__ = "credit_transactions"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    amount: int
    reason: str = Field(index=True)
    project_id: str | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp())


class UserCredential(SQLModel, table=True):
    """Stored code-host access token for a user."""

    __tablename__ = "user_credentials"

    user_id: str = Field(foreign_key="users.id", primary_key=True)
    token: str
    installation_id: str | None = None
    expires_at: datetime | None = Field(default=None, sa_column=_timestamp(nullable=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp())


# ============================================================================
# PROJECTS
# ============================================================================


class Project(SQLModel, table=True):
    """An indexed repository."""

    __tablename__ = "projects"

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    repository_url: str
    branch: str
    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp())
    deleted_at: datetime | None = Field(default=None, sa_column=_timestamp(nullable=True))


class UserToProject(SQLModel, table=True):
    """Project membership."""

    __tablename__ = "user_to_projects"
    __table_args__ = (UniqueConstraint("user_id", "project_id"),)

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    project_id: str = Field(
        sa_column=Column(String, ForeignKey("projects.id", ondelete="CASCADE"), index=True)
    )
    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp())


class ProjectCreation(SQLModel, table=True):
    """Tracks one provisioning attempt. Never deleted."""

    __tablename__ = "project_creations"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    status: str = Field(default=CreationStatus.PENDING.value, index=True)
    file_count: int | None = None
    project_id: str | None = Field(default=None, index=True)
    error: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp())
    updated_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp())


# ============================================================================
# COMMITS
# ============================================================================


class Commit(SQLModel, table=True):
    """One ingested commit of a project."""

    __tablename__ = "commits"
    __table_args__ = (UniqueConstraint("project_id", "commit_hash"),)

    id: str = Field(default_factory=_new_id, primary_key=True)
    project_id: str = Field(
        sa_column=Column(String, ForeignKey("projects.id", ondelete="CASCADE"), index=True)
    )
    commit_hash: str = Field(index=True)
    commit_message: str = ""
    author_name: str = "Unknown"
    author_avatar: str | None = None
    commit_date: datetime = Field(sa_column=_timestamp(index=True))
    summary: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    modified_files_json: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    needs_reindex: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp())
    updated_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp())

    @property
    def modified_files(self) -> list[str] | None:
        """Cached list of touched paths, None until computed."""
        if self.modified_files_json is None:
            return None
        result: list[str] = json.loads(self.modified_files_json)
        return result

    def set_modified_files(self, paths: list[str]) -> None:
        self.modified_files_json = json.dumps(paths)


# ============================================================================
# SOURCE INDEX
# ============================================================================


class SourceCodeEmbedding(SQLModel, table=True):
    """One indexed file of a project."""

    __tablename__ = "source_code_embeddings"
    __table_args__ = (UniqueConstraint("project_id", "file_name"),)

    id: str = Field(default_factory=_new_id, primary_key=True)
    project_id: str = Field(
        sa_column=Column(String, ForeignKey("projects.id", ondelete="CASCADE"), index=True)
    )
    file_name: str = Field(index=True)
    source_code: str = Field(sa_column=Column(Text, nullable=False))
    summary: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    summary_embedding_json: str | None = Field(
        default=None, sa_column=Column(Text, nullable=True)
    )
    indexed_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp())

    @property
    def summary_embedding(self) -> list[float] | None:
        if self.summary_embedding_json is None:
            return None
        result: list[float] = json.loads(self.summary_embedding_json)
        return result
