"""Shared fixtures: a deterministic fake embedding provider and wired orchestrators."""

from __future__ import annotations

import threading
import zlib

import pytest

from docquery.ingestion.chunker import WordWindowChunker
from docquery.retrieval.embedder import EmbeddingGateway
from docquery.retrieval.orchestrator import RetrievalOrchestrator
from docquery.retrieval.vectorstore import InMemoryDocumentStore

DIM = 16


class HashingProvider:
    """Bag-of-words embedder: every lower-cased word bumps one of DIM buckets.

    Texts containing the word ``fail_on`` make the provider raise, which
    stands in for an outage of the remote embedding service.
    """

    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def embed_query(self, text: str) -> list[float]:
        with self._lock:
            self.calls.append(text)
        if self.fail_on is not None and self.fail_on in text.split():
            raise RuntimeError("embedding service unavailable")
        vec = [0.0] * DIM
        for word in text.lower().split():
            vec[zlib.crc32(word.encode("utf-8")) % DIM] += 1.0
        return vec


@pytest.fixture
def provider():
    return HashingProvider()


@pytest.fixture
def gateway(provider):
    return EmbeddingGateway(provider, dimension=DIM)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def orchestrator(gateway, store):
    return RetrievalOrchestrator(
        gateway=gateway,
        store=store,
        chunker=WordWindowChunker(window_size=10, overlap=5),
    )


@pytest.fixture
def make_orchestrator():
    """Factory for orchestrators with a custom provider, store or chunk size."""

    def _make(provider=None, store=None, window_size=10, overlap=5, **kwargs):
        return RetrievalOrchestrator(
            gateway=EmbeddingGateway(provider or HashingProvider(), dimension=DIM),
            store=store if store is not None else InMemoryDocumentStore(),
            chunker=WordWindowChunker(window_size=window_size, overlap=overlap),
            **kwargs,
        )

    return _make


_SETTINGS_VARS = (
    "DOCQUERY_WINDOW_SIZE",
    "DOCQUERY_OVERLAP",
    "DOCQUERY_BM25_K1",
    "DOCQUERY_BM25_B",
    "DOCQUERY_LEXICAL_WEIGHT",
    "DOCQUERY_VECTOR_WEIGHT",
    "DOCQUERY_TOP_K",
    "DOCQUERY_MAX_CONCURRENCY",
    "DOCQUERY_EMBEDDING_BACKEND",
    "DOCQUERY_EMBEDDING_MODEL",
    "DOCQUERY_EMBEDDING_DIM",
    "DOCQUERY_SCOPE_FIELD",
    "DOCQUERY_LEXICAL_FALLBACK",
    "CHROMA_PERSIST_DIR",
    "DOCQUERY_COLLECTION",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Unset every docquery variable and run from an empty directory (no stray .env)."""
    monkeypatch.chdir(tmp_path)
    for name in _SETTINGS_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def hashing_backend(monkeypatch):
    """Make settings-driven wiring build a HashingProvider instead of a real model."""
    monkeypatch.setattr(
        "docquery.retrieval.embedder.build_provider",
        lambda settings: HashingProvider(),
    )
