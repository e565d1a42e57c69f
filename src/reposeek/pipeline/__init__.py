"""Ingestion pipeline - provisioning, reindexing and status tracking.

Leaf components:
- diff: Paths touched by a unified diff
- filters: Indexability predicate (gates charging and indexing)
- credits: Credit ledger
- commits: Per-commit reindex state
- status: Provisioning state machine

Public API is in `reposeek.pipeline.ops`:
- IngestCoordinator: High-level orchestration
"""

from reposeek.pipeline.diff import extract_files_from_diff
from reposeek.pipeline.filters import DEFAULT_FILTER, FileFilter, should_index
from reposeek.pipeline.status import StatusTracker, can_transition, is_terminal

__all__ = [
    "DEFAULT_FILTER",
    "FileFilter",
    "StatusTracker",
    "can_transition",
    "extract_files_from_diff",
    "is_terminal",
    "should_index",
]
