"""Embedding and summarization collaborators.

The pipeline treats both as black boxes: ``embed(texts) -> vectors`` and
``summarize(path, source) -> text``. FastEmbedEmbedder is the bundled
embedder; summarization has no bundled implementation.
"""

from __future__ import annotations

import asyncio
import os
import threading
import time
from collections.abc import Sequence
from typing import Any, Protocol

import numpy as np
import structlog

log = structlog.get_logger(__name__)

DEFAULT_MODEL = "BAAI/bge-small-en-v1.5"
_EMBED_BATCH_SIZE = 16


class Embedder(Protocol):
    async def embed(self, texts: Sequence[str]) -> list[list[float]]: ...


class Summarizer(Protocol):
    async def summarize(self, path: str, source: str) -> str: ...


def embedding_text(path: str, source: str, summary: str | None, max_chars: int) -> str:
    """Text fed to the embedder for one file.

    Format: "{path}\\n{summary or leading source}"
    """
    body = summary if summary else source
    return f"{path}\n{body}"[:max_chars]


def _l2_normalize(vectors: list[Any]) -> list[list[float]]:
    if not vectors:
        return []
    matrix = np.array(vectors, dtype=np.float32)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms = np.maximum(norms, 1e-10)
    normalized: list[list[float]] = (matrix / norms).tolist()
    return normalized


class FastEmbedEmbedder:
    """Local ONNX text embeddings via fastembed.

    The model is loaded on first use and inference runs in a worker thread so
    the event loop keeps serving requests.
    """

    def __init__(self, model_name: str = DEFAULT_MODEL, threads: int | None = None) -> None:
        self.model_name = model_name
        self._threads = threads or max(1, (os.cpu_count() or 4) // 2)
        self._model: Any = None
        self._load_lock = threading.Lock()

    def _ensure_model(self) -> Any:
        """Lazy-load the fastembed TextEmbedding model."""
        with self._load_lock:
            if self._model is None:
                from fastembed import TextEmbedding  # type: ignore[import-not-found]

                start = time.monotonic()
                self._model = TextEmbedding(model_name=self.model_name, threads=self._threads)
                log.info(
                    "embedding_model_loaded",
                    model=self.model_name,
                    threads=self._threads,
                    elapsed_s=round(time.monotonic() - start, 2),
                )
            return self._model

    def embed_sync(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        model = self._ensure_model()
        raw = list(model.embed(list(texts), batch_size=_EMBED_BATCH_SIZE))
        return _l2_normalize(raw)

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        return await asyncio.to_thread(self.embed_sync, texts)
