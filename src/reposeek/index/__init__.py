"""Source index: embedding collaborators and the repository indexer."""

from reposeek.index.embedding import (
    DEFAULT_MODEL,
    Embedder,
    FastEmbedEmbedder,
    Summarizer,
    embedding_text,
)
from reposeek.index.indexer import IndexStats, RepositoryIndexer

__all__ = [
    "DEFAULT_MODEL",
    "Embedder",
    "FastEmbedEmbedder",
    "IndexStats",
    "RepositoryIndexer",
    "Summarizer",
    "embedding_text",
]
