"""HybridRanker: BM25 + cosine similarity, merged by weighted sum.

Architecture:
    Query
      ├─ embed          → query vector ─┐
      └─ BM25 search_all → lexical hits ─┤
                                         ↓
              combined = wl * bm25 + wv * cosine(query, chunk)
                                         ↓
            scope filter → sort (combined desc, insertion order) → top-k

The two scores live on different scales and the sum is not normalised.
A lexical hit without a stored vector keeps ``vector_score=None`` and is
ranked on its lexical score alone.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np
from langchain_core.documents import Document
from langchain_core.retrievers import BaseRetriever
from pydantic import ConfigDict

from ..ingestion.schema import Chunk, Scalar, ScoredChunk

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b*; 0.0 when either norm is 0."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def cosine_similarities(query: Sequence[float], matrix: Sequence[Sequence[float]]) -> list[float]:
    """Row-wise cosine similarity of *query* against each row of *matrix*."""
    if len(matrix) == 0:
        return []
    q = np.asarray(query, dtype=float)
    m = np.asarray(matrix, dtype=float)
    denom = np.linalg.norm(m, axis=1) * np.linalg.norm(q)
    dots = m @ q
    sims = np.divide(dots, denom, out=np.zeros_like(dots), where=denom != 0)
    return sims.tolist()


class HybridRanker:
    """Merge lexical hits and vector similarity into one ordered list."""

    def __init__(
        self,
        lexical_weight: float = 1.0,
        vector_weight: float = 1.0,
        scope_field: str = "scope",
    ) -> None:
        self.lexical_weight = lexical_weight
        self.vector_weight = vector_weight
        self.scope_field = scope_field

    def rank(
        self,
        lexical_hits: list[dict[str, Any]],
        query_vector: Sequence[float] | None,
        chunks: Mapping[str, Chunk],
        scope: Scalar | None = None,
    ) -> list[ScoredChunk]:
        """Score, filter and sort.

        Args:
            lexical_hits: ``BM25Corpus.search_all`` output (id, document, score, position).
            query_vector: Query embedding, or None for lexical-only ranking.
            chunks:       Corpus snapshot by chunk id (text, vector, metadata).
            scope:        When given, keep only chunks whose scope field matches.

        Returns:
            ScoredChunks sorted by combined score descending, ties by
            index insertion order.
        """
        vector_scores = self._vector_scores(lexical_hits, query_vector, chunks)

        ranked: list[tuple[float, int, ScoredChunk]] = []
        for hit in lexical_hits:
            chunk = chunks.get(hit["id"])
            if chunk is None:
                # indexed but absent from the store snapshot
                continue
            if scope is not None and chunk.scope(self.scope_field) != scope:
                continue
            vector_score = vector_scores.get(hit["id"])
            combined = self.lexical_weight * hit["score"] + self.vector_weight * (vector_score or 0.0)
            ranked.append(
                (
                    combined,
                    hit["position"],
                    ScoredChunk(
                        chunk_id=chunk.chunk_id,
                        document_id=chunk.document_id,
                        text=chunk.text,
                        sequence_index=chunk.sequence_index,
                        metadata=chunk.metadata,
                        lexical_score=hit["score"],
                        vector_score=vector_score,
                        combined_score=combined,
                    ),
                )
            )

        ranked.sort(key=lambda item: (-item[0], item[1]))
        logger.debug(
            "HybridRanker: %d lexical hits, %d with vectors, %d after scope filter",
            len(lexical_hits),
            len(vector_scores),
            len(ranked),
        )
        return [item[2] for item in ranked]

    @staticmethod
    def _vector_scores(
        lexical_hits: list[dict[str, Any]],
        query_vector: Sequence[float] | None,
        chunks: Mapping[str, Chunk],
    ) -> dict[str, float]:
        if query_vector is None:
            return {}
        ids: list[str] = []
        matrix: list[list[float]] = []
        for hit in lexical_hits:
            chunk = chunks.get(hit["id"])
            if chunk is not None and chunk.embedding is not None:
                if len(chunk.embedding) != len(query_vector):
                    logger.warning(
                        "Skipping vector for chunk %s: %d-dim, query is %d-dim",
                        chunk.chunk_id,
                        len(chunk.embedding),
                        len(query_vector),
                    )
                    continue
                ids.append(chunk.chunk_id)
                matrix.append(chunk.embedding)
        return dict(zip(ids, cosine_similarities(query_vector, matrix)))


class HybridRetriever(BaseRetriever):
    """LangChain-compatible view over :meth:`RetrievalOrchestrator.query`.

    Usage::

        retriever = HybridRetriever(orchestrator=orchestrator, n_results=5, scope="s1")
        docs = retriever.invoke("cat on a mat")
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    orchestrator: Any  # RetrievalOrchestrator; not a Pydantic model
    n_results: int = 5
    scope: str | None = None

    def _get_relevant_documents(self, query: str, *, run_manager) -> list[Document]:
        results = self.orchestrator.query(query, top_k=self.n_results, scope=self.scope)
        return [
            Document(
                page_content=r.text,
                metadata={
                    **r.metadata,
                    "_id": r.chunk_id,
                    "document_id": r.document_id,
                    "sequence_index": r.sequence_index,
                    "_lexical_score": r.lexical_score,
                    "_vector_score": r.vector_score,
                    "_combined_score": r.combined_score,
                },
            )
            for r in results
        ]
