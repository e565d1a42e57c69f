"""Persistent store: SQLModel tables and the SQLite database wrapper."""

from reposeek.store.database import Database
from reposeek.store.models import (
    Commit,
    CreationStatus,
    CreditTransaction,
    LedgerReason,
    Project,
    ProjectCreation,
    SourceCodeEmbedding,
    User,
    UserCredential,
    UserToProject,
)

__all__ = [
    "Commit",
    "CreationStatus",
    "CreditTransaction",
    "Database",
    "LedgerReason",
    "Project",
    "ProjectCreation",
    "SourceCodeEmbedding",
    "User",
    "UserCredential",
    "UserToProject",
]
