"""RetrievalOrchestrator: text → chunks → embed → store + BM25, and query → ranked chunks."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from ..errors import (
    EmbeddingUnavailable,
    IngestFailed,
    InvalidConfiguration,
    OperationCancelled,
    QueryFailed,
)
from ..ingestion.chunker import WordWindowChunker
from ..ingestion.schema import Scalar, ScoredChunk
from .bm25_index import BM25Corpus
from .embedder import EmbeddingGateway
from .hybrid_retriever import HybridRanker
from .vectorstore import DocumentStore

if TYPE_CHECKING:
    from ..config import RetrievalSettings

logger = logging.getLogger(__name__)

_DEFAULT_TOP_K = 5


class RetrievalOrchestrator:
    """Coordinate chunker, embedding gateway, document store and BM25 index.

    Every collaborator is injected, so each instance (and each test) owns
    its own state.

    Usage::

        orchestrator = RetrievalOrchestrator(
            gateway=EmbeddingGateway(SentenceTransformerProvider()),
            store=InMemoryDocumentStore(),
        )
        ids = orchestrator.ingest("doc-1", text, {"scope": "session-1"})
        hits = orchestrator.query("boot partition size", top_k=5, scope="session-1")
    """

    def __init__(
        self,
        gateway: EmbeddingGateway,
        store: DocumentStore,
        index: BM25Corpus | None = None,
        ranker: HybridRanker | None = None,
        chunker: WordWindowChunker | None = None,
        *,
        scope_field: str = "scope",
        lexical_fallback: bool = False,
        default_top_k: int = _DEFAULT_TOP_K,
    ) -> None:
        if default_top_k < 1:
            raise InvalidConfiguration(f"default_top_k must be >= 1, got {default_top_k}")
        self._gateway = gateway
        self._store = store
        self._index = index if index is not None else BM25Corpus()
        self._ranker = ranker if ranker is not None else HybridRanker(scope_field=scope_field)
        self._chunker = chunker if chunker is not None else WordWindowChunker()
        self._scope_field = scope_field
        self._lexical_fallback = lexical_fallback
        self._default_top_k = default_top_k

    @classmethod
    def from_settings(cls, settings: "RetrievalSettings") -> "RetrievalOrchestrator":
        """Wire a complete orchestrator from :class:`RetrievalSettings`.

        When ``settings.chroma_dir`` is set the BM25 index is rebuilt from the
        chunks already persisted there.
        """
        from .embedder import build_provider
        from .vectorstore import ChromaDocumentStore, InMemoryDocumentStore

        # chunk parameters are checked before any store is opened
        chunker = WordWindowChunker(settings.window_size, settings.overlap)
        gateway = EmbeddingGateway(
            build_provider(settings),
            dimension=settings.embedding_dimension,
            max_concurrency=settings.max_concurrency,
        )
        if settings.chroma_dir:
            store = ChromaDocumentStore(
                persist_dir=settings.chroma_dir,
                collection=settings.collection,
                scope_field=settings.scope_field,
            )
        else:
            store = InMemoryDocumentStore(scope_field=settings.scope_field)

        orchestrator = cls(
            gateway=gateway,
            store=store,
            index=BM25Corpus(k1=settings.k1, b=settings.b),
            ranker=HybridRanker(
                lexical_weight=settings.lexical_weight,
                vector_weight=settings.vector_weight,
                scope_field=settings.scope_field,
            ),
            chunker=chunker,
            scope_field=settings.scope_field,
            lexical_fallback=settings.lexical_fallback,
            default_top_k=settings.top_k,
        )
        if settings.chroma_dir:
            orchestrator.load_corpus()
        return orchestrator

    @property
    def index(self) -> BM25Corpus:
        return self._index

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def scope_field(self) -> str:
        return self._scope_field

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def ingest(
        self,
        document_id: str,
        text: str,
        metadata: dict[str, Scalar] | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> list[str]:
        """Chunk, embed, store and index one document.

        Chunks are committed in document order; each commit writes the store
        first, then the BM25 index.

        Returns:
            Chunk ids in document order (empty for empty text).

        Raises:
            IngestFailed: an embedding, a store write or the caller's cancel
                event stopped the ingest. ``committed`` chunks stay in place.
        """
        chunks = self._chunker.chunk_document(document_id, text, metadata)
        if not chunks:
            logger.info("Document %s has no text to index", document_id)
            return []

        committed: list[str] = []
        vectors = self._gateway.iter_batch([c.text for c in chunks], cancel_event=cancel_event)
        try:
            for chunk in chunks:
                try:
                    vector = next(vectors)
                except (EmbeddingUnavailable, OperationCancelled) as exc:
                    logger.error(
                        "Ingest of %s stopped at chunk %d/%d: %s",
                        document_id, chunk.sequence_index + 1, len(chunks), exc,
                    )
                    raise IngestFailed(
                        document_id,
                        committed=len(committed),
                        total=len(chunks),
                        committed_chunk_ids=committed,
                        cancelled=isinstance(exc, OperationCancelled),
                    ) from exc

                stored = chunk.with_embedding(vector)
                try:
                    chunk_id = self._store.insert(stored)
                except Exception as exc:
                    logger.error(
                        "Store write failed for %s chunk %d/%d: %s",
                        document_id, chunk.sequence_index + 1, len(chunks), exc,
                    )
                    raise IngestFailed(
                        document_id,
                        committed=len(committed),
                        total=len(chunks),
                        committed_chunk_ids=committed,
                    ) from exc

                self._index.add_chunk(stored.text, chunk_id=chunk_id)
                committed.append(chunk_id)
        finally:
            vectors.close()

        logger.info("Ingested document %s: %d chunks", document_id, len(committed))
        return committed

    def load_corpus(self) -> int:
        """Rebuild the BM25 index from everything currently in the store."""
        self._index.clear()
        chunks = self._store.list_all()
        for chunk in chunks:
            self._index.add_chunk(chunk.text, chunk_id=chunk.chunk_id)
        logger.info("BM25 index loaded from store: %d chunks", len(chunks))
        return len(chunks)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def query(
        self,
        text: str,
        top_k: int | None = None,
        scope: Scalar | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> list[ScoredChunk]:
        """Rank the corpus against *text* and return the best *top_k* chunks.

        Corpus-wide statistics are always computed over the full corpus; the
        scope filter applies to the ranked output only.

        Raises:
            InvalidConfiguration: ``top_k < 1``.
            QueryFailed: the query could not be embedded (unless lexical
                fallback is enabled) or the store could not be read.
            OperationCancelled: the caller set *cancel_event*.
        """
        top_k = self._default_top_k if top_k is None else top_k
        if top_k < 1:
            raise InvalidConfiguration(f"top_k must be >= 1, got {top_k}")

        query_vector = self._embed_query(text, cancel_event)

        # Hold the index lock so no ingest lands between the two reads
        with self._index.lock:
            lexical_hits = self._index.search_all(text)
            try:
                snapshot = {c.chunk_id: c for c in self._store.list_all()}
            except Exception as exc:
                logger.error("Store read failed for query %r: %s", text, exc)
                raise QueryFailed(f"Document store read failed for query {text!r}: {exc}") from exc

        ranked = self._ranker.rank(lexical_hits, query_vector, snapshot, scope=scope)
        logger.info(
            "Query %r: %d candidates, returning %d (scope=%s)",
            text, len(ranked), min(top_k, len(ranked)), scope,
        )
        return ranked[:top_k]

    def _embed_query(self, text: str, cancel_event: threading.Event | None) -> list[float] | None:
        try:
            return self._gateway.embed_batch([text], cancel_event=cancel_event)[0]
        except EmbeddingUnavailable as exc:
            if self._lexical_fallback:
                logger.warning("Query embedding failed, ranking lexically only: %s", exc)
                return None
            raise QueryFailed(f"Could not embed query {text!r}: {exc}") from exc

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def list_documents(self, scope: Scalar | None = None) -> list[dict[str, Any]]:
        """One entry per document id: chunk count plus its first chunk's metadata."""
        documents: dict[str, dict[str, Any]] = {}
        for chunk in self._store.list_all(scope):
            entry = documents.get(chunk.document_id)
            if entry is None:
                entry = documents[chunk.document_id] = {
                    "document_id": chunk.document_id,
                    "chunks": 0,
                    "metadata": dict(chunk.metadata),
                    "_first": chunk.sequence_index,
                }
            elif chunk.sequence_index < entry["_first"]:
                entry["metadata"] = dict(chunk.metadata)
                entry["_first"] = chunk.sequence_index
            entry["chunks"] += 1
        for entry in documents.values():
            del entry["_first"]
        return list(documents.values())

    def delete_document(self, document_id: str) -> int:
        """Remove every chunk of *document_id* from the store and the BM25 index."""
        chunk_ids = [c.chunk_id for c in self._store.list_all() if c.document_id == document_id]
        if not chunk_ids:
            return 0
        with self._index.lock:
            deleted = self._store.delete(chunk_ids)
            for chunk_id in chunk_ids:
                self._index.remove_chunk(chunk_id)
        logger.info("Deleted document %s: %d chunks", document_id, deleted)
        return deleted

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        return {
            **self._index.stats(),
            "documents": len(self.list_documents()),
            "embedding_dimension": self._gateway.dimension,
        }
