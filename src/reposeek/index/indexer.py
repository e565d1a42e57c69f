"""Fetch, embed and store repository files for a project.

Two entry points share one pipeline:

- index_repository: full initial index of a branch (tree listing first)
- index_files: a given path list, used by commit reindexing

Pipeline per call:
1. Filter paths with the indexability predicate
2. Fetch contents with bounded concurrency (per-file failures are counted)
3. Optionally summarize, then embed all texts in one batch
4. Upsert SourceCodeEmbedding rows; delete rows for paths gone upstream
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import delete, func
from sqlmodel import col, select

from reposeek.core.errors import ReposeekError, UpstreamError
from reposeek.index.embedding import Embedder, Summarizer, embedding_text
from reposeek.pipeline.filters import DEFAULT_FILTER, FileFilter
from reposeek.store.models import SourceCodeEmbedding, utcnow

if TYPE_CHECKING:
    from reposeek.host.models import CodeHost, RepositoryRef
    from reposeek.store.database import Database

logger = structlog.get_logger()


@dataclass
class IndexStats:
    """Outcome of one indexing run."""

    files_requested: int = 0
    files_indexed: int = 0
    files_removed: int = 0
    files_skipped: int = 0
    files_failed: int = 0
    duration_seconds: float = 0.0
    failed_paths: list[str] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        attempted = self.files_requested - self.files_skipped
        return attempted > 0 and self.files_failed == attempted


@dataclass(frozen=True)
class _FetchedFile:
    path: str
    source: str
    summary: str | None = None


class RepositoryIndexer:
    """Builds and updates the per-project source index."""

    def __init__(
        self,
        db: Database,
        host: CodeHost,
        embedder: Embedder,
        *,
        summarizer: Summarizer | None = None,
        file_filter: FileFilter = DEFAULT_FILTER,
        max_concurrency: int = 5,
        max_file_bytes: int = 1_000_000,
        max_embed_chars: int = 1500,
    ) -> None:
        self._db = db
        self._host = host
        self._embedder = embedder
        self._summarizer = summarizer
        self._filter = file_filter
        self._max_concurrency = max_concurrency
        self._max_file_bytes = max_file_bytes
        self._max_embed_chars = max_embed_chars

    async def index_repository(
        self,
        project_id: str,
        ref: RepositoryRef,
        branch: str,
        token: str | None = None,
    ) -> IndexStats:
        """Full index of ``branch``.

        Raises:
            UpstreamError: the tree cannot be listed, embedding failed, or
                every file failed.
        """
        try:
            entries = await self._host.list_files(ref, branch, token)
        except ReposeekError as e:
            raise UpstreamError.indexing_failed(project_id, e.message) from e

        paths: list[str] = []
        oversized = 0
        for entry in entries:
            if not self._filter.should_index(entry.path):
                continue
            if entry.size is not None and entry.size > self._max_file_bytes:
                oversized += 1
                continue
            paths.append(entry.path)

        logger.info(
            "full_index_started",
            project_id=project_id,
            repository=ref.full_name,
            branch=branch,
            files=len(paths),
            oversized=oversized,
        )
        stats = await self._run(project_id, ref, branch, paths, token)
        stats.files_skipped += oversized
        stats.files_requested += oversized
        return stats

    async def index_files(
        self,
        project_id: str,
        ref: RepositoryRef,
        branch: str,
        paths: Sequence[str],
        token: str | None = None,
    ) -> IndexStats:
        """Reindex the given paths. Paths missing upstream are removed from the index.

        Raises:
            UpstreamError: embedding failed or every file failed.
        """
        return await self._run(project_id, ref, branch, self._filter.filter_paths(paths), token)

    async def _run(
        self,
        project_id: str,
        ref: RepositoryRef,
        branch: str,
        paths: Sequence[str],
        token: str | None,
    ) -> IndexStats:
        start = time.monotonic()
        stats = IndexStats(files_requested=len(paths))
        unique_paths = list(dict.fromkeys(paths))
        if not unique_paths:
            return stats

        semaphore = asyncio.Semaphore(self._max_concurrency)
        results = await asyncio.gather(
            *(self._fetch(ref, branch, path, token, semaphore) for path in unique_paths),
            return_exceptions=True,
        )

        fetched: list[_FetchedFile] = []
        removed: list[str] = []
        for path, result in zip(unique_paths, results, strict=True):
            if isinstance(result, _FetchedFile):
                fetched.append(result)
            elif result is None:
                stats.files_skipped += 1
            elif isinstance(result, UpstreamError) and result.details.get("status_code") == 404:
                removed.append(path)
            else:
                stats.files_failed += 1
                stats.failed_paths.append(path)
                logger.warning(
                    "file_index_failed",
                    project_id=project_id,
                    path=path,
                    error=str(result),
                )

        if fetched:
            texts = [
                embedding_text(f.path, f.source, f.summary, self._max_embed_chars) for f in fetched
            ]
            try:
                vectors = await self._embedder.embed(texts)
            except Exception as e:
                raise UpstreamError.indexing_failed(project_id, f"embedding failed: {e}") from e
            if len(vectors) != len(fetched):
                raise UpstreamError.indexing_failed(
                    project_id,
                    f"embedder returned {len(vectors)} vectors for {len(fetched)} texts",
                )
            self._upsert(project_id, fetched, vectors)

        if removed:
            self._remove(project_id, removed)

        stats.files_indexed = len(fetched)
        stats.files_removed = len(removed)
        stats.duration_seconds = time.monotonic() - start

        logger.info(
            "index_run_finished",
            project_id=project_id,
            indexed=stats.files_indexed,
            removed=stats.files_removed,
            skipped=stats.files_skipped,
            failed=stats.files_failed,
            duration_ms=round(stats.duration_seconds * 1000),
        )
        if stats.all_failed:
            raise UpstreamError.indexing_failed(
                project_id, f"all {stats.files_failed} files failed to index"
            )
        return stats

    async def _fetch(
        self,
        ref: RepositoryRef,
        branch: str,
        path: str,
        token: str | None,
        semaphore: asyncio.Semaphore,
    ) -> _FetchedFile | None:
        """Fetch and optionally summarize one file. None means skipped."""
        async with semaphore:
            source = await self._host.get_file_content(ref, path, branch, token)

        if "\x00" in source or len(source.encode("utf-8", errors="replace")) > self._max_file_bytes:
            logger.debug("file_skipped", path=path, reason="binary_or_oversized")
            return None

        summary: str | None = None
        if self._summarizer is not None:
            try:
                summary = await self._summarizer.summarize(path, source)
            except Exception as e:
                logger.warning("file_summary_failed", path=path, error=str(e))
        return _FetchedFile(path=path, source=source, summary=summary)

    def _upsert(
        self,
        project_id: str,
        files: Sequence[_FetchedFile],
        vectors: Sequence[Sequence[float]],
    ) -> None:
        names = [f.path for f in files]
        with self._db.session() as session:
            existing = {
                row.file_name: row
                for row in session.exec(
                    select(SourceCodeEmbedding)
                    .where(SourceCodeEmbedding.project_id == project_id)
                    .where(col(SourceCodeEmbedding.file_name).in_(names))
                ).all()
            }
            now = utcnow()
            for file, vector in zip(files, vectors, strict=True):
                row = existing.get(file.path) or SourceCodeEmbedding(
                    project_id=project_id, file_name=file.path, source_code=file.source
                )
                row.source_code = file.source
                row.summary = file.summary
                row.summary_embedding_json = json.dumps(list(vector))
                row.indexed_at = now
                session.add(row)
            session.commit()

    def _remove(self, project_id: str, paths: Sequence[str]) -> None:
        with self._db.session() as session:
            session.execute(
                delete(SourceCodeEmbedding)
                .where(col(SourceCodeEmbedding.project_id) == project_id)
                .where(col(SourceCodeEmbedding.file_name).in_(list(paths)))
            )
            session.commit()
        logger.info("index_paths_removed", project_id=project_id, count=len(paths))

    def embedding_count(self, project_id: str) -> int:
        with self._db.session() as session:
            count = session.exec(
                select(func.count())
                .select_from(SourceCodeEmbedding)
                .where(SourceCodeEmbedding.project_id == project_id)
            ).one()
            return int(count)
