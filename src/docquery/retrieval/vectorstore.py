"""Document stores: where chunk text, vectors and metadata live.

The orchestrator only sees the :class:`DocumentStore` protocol. Two stores
ship with the package:
  InMemoryDocumentStore: process-local dict, insertion ordered
  ChromaDocumentStore  : one persistent (or ephemeral) Chroma collection
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Protocol

from ..ingestion.schema import Chunk, Scalar

logger = logging.getLogger(__name__)

# Maximum items per ChromaDB delete call
_DELETE_BATCH = 500


class DocumentStore(Protocol):
    def insert(self, chunk: Chunk) -> str: ...

    def list_all(self, scope: Scalar | None = None) -> list[Chunk]: ...

    def delete(self, chunk_ids: list[str]) -> int: ...


class InMemoryDocumentStore:
    """Dict-backed store; ``list_all`` returns chunks in insertion order."""

    def __init__(self, scope_field: str = "scope") -> None:
        self._scope_field = scope_field
        self._rows: dict[str, Chunk] = {}
        self._lock = threading.Lock()

    def insert(self, chunk: Chunk) -> str:
        with self._lock:
            if chunk.chunk_id in self._rows:
                raise ValueError(f"chunk {chunk.chunk_id!r} already stored")
            self._rows[chunk.chunk_id] = chunk
        return chunk.chunk_id

    def list_all(self, scope: Scalar | None = None) -> list[Chunk]:
        with self._lock:
            rows = list(self._rows.values())
        if scope is None:
            return rows
        return [c for c in rows if c.scope(self._scope_field) == scope]

    def delete(self, chunk_ids: list[str]) -> int:
        with self._lock:
            return sum(1 for cid in chunk_ids if self._rows.pop(cid, None) is not None)

    def __len__(self) -> int:
        return len(self._rows)


class ChromaDocumentStore:
    """Chunks in a single Chroma collection, cosine HNSW space.

    Usage::

        store = ChromaDocumentStore(persist_dir="data/vectorstore/chroma")
        store.insert(chunk)
        rows = store.list_all(scope="session-1")
    """

    def __init__(
        self,
        persist_dir: str | Path | None = None,
        collection: str = "documents",
        scope_field: str = "scope",
        client=None,
    ) -> None:
        import chromadb

        if client is None:
            if persist_dir is None:
                client = chromadb.EphemeralClient()
            else:
                path = Path(persist_dir)
                path.mkdir(parents=True, exist_ok=True)
                client = chromadb.PersistentClient(path=str(path))

        self._client = client
        self._scope_field = scope_field
        # vectors are always supplied by the gateway; no server-side embedding function
        self._coll = client.get_or_create_collection(
            name=collection,
            metadata={"hnsw:space": "cosine"},
            embedding_function=None,
        )
        logger.info("DocumentStore ready: collection=%s (%d chunks)", collection, self._coll.count())

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def insert(self, chunk: Chunk) -> str:
        if chunk.embedding is None:
            raise ValueError(f"chunk {chunk.chunk_id!r} has no embedding")
        row = chunk.to_chroma_document()
        self._coll.add(
            ids=[row["id"]],
            embeddings=[row["embedding"]],
            documents=[row["document"]],
            metadatas=[row["metadata"]],
        )
        return row["id"]

    def delete(self, chunk_ids: list[str]) -> int:
        if not chunk_ids:
            return 0
        existing = self._coll.get(ids=chunk_ids, include=[])["ids"]
        for start in range(0, len(existing), _DELETE_BATCH):
            self._coll.delete(ids=existing[start : start + _DELETE_BATCH])
        return len(existing)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def list_all(self, scope: Scalar | None = None) -> list[Chunk]:
        """Return every stored chunk (optionally only those in *scope*)."""
        kwargs: dict = {"include": ["documents", "metadatas", "embeddings"]}
        if scope is not None:
            kwargs["where"] = {self._scope_field: scope}
        raw = self._coll.get(**kwargs)

        embeddings = raw.get("embeddings")
        chunks = []
        for i, chunk_id in enumerate(raw["ids"]):
            chunks.append(
                Chunk.from_chroma_row(
                    chunk_id,
                    raw["documents"][i],
                    raw["metadatas"][i],
                    embeddings[i] if embeddings is not None else None,
                )
            )
        return chunks

    def __len__(self) -> int:
        return self._coll.count()
