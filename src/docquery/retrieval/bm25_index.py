"""BM25Corpus: incremental Okapi BM25 index over chunk texts.

Tokens come from ``text.split()``: whitespace only, case-sensitive, no stemming.

Scoring, summed over the query's term list (duplicates count per occurrence):

    tf   = count(term, doc) / len(doc)                 # normalised, not raw
    idf  = ln((N - n + 0.5) / (n + 0.5) + 1)
    term = idf * tf * (k1 + 1) / (tf + k1 * (1 - b + b * len(doc) / avgdl))

Lengths are word counts. An empty corpus scores every query 0. No clamping is applied to IDF.
"""

from __future__ import annotations

import logging
import math
import threading
import uuid
from collections import Counter
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

_DEFAULT_K1 = 1.5
_DEFAULT_B = 0.75


def _tokenize(text: str) -> list[str]:
    return text.split()


@dataclass(frozen=True)
class _Entry:
    chunk_id: str
    text: str
    length: int
    term_counts: Counter
    position: int   # monotonically increasing insertion ordinal


class BM25Corpus:
    """Mutable BM25 index, safe to share between request threads.

    Every mutation is computed first and then applied under the index lock in
    one step, so a reader never observes half-updated term statistics.

    Usage::

        corpus = BM25Corpus()
        corpus.add_chunk("The cat sat on the mat", chunk_id="a")
        corpus.add_chunk("Dogs are loyal companions", chunk_id="b")
        hits = corpus.search_all("cat")
        # [{"id": "a", "document": "...", "score": 0.41, "position": 0}, ...]
    """

    def __init__(self, k1: float = _DEFAULT_K1, b: float = _DEFAULT_B) -> None:
        self.k1 = k1
        self.b = b
        self._entries: dict[str, _Entry] = {}
        self._doc_freqs: dict[str, int] = {}
        self._total_length = 0
        self._avg_doc_length = 0.0
        # term -> (chunk count the value was computed under, idf)
        self._idf_cache: dict[str, tuple[int, float]] = {}
        self._next_position = 0
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_chunk(self, text: str, chunk_id: str | None = None) -> str:
        """Index *text* and return its chunk id (a fresh uuid4 when omitted)."""
        chunk_id = chunk_id or str(uuid.uuid4())
        terms = _tokenize(text)
        counts = Counter(terms)

        with self._lock:
            if chunk_id in self._entries:
                raise ValueError(f"chunk {chunk_id!r} is already indexed")
            self._entries[chunk_id] = _Entry(
                chunk_id=chunk_id,
                text=text,
                length=len(terms),
                term_counts=counts,
                position=self._next_position,
            )
            self._next_position += 1
            self._total_length += len(terms)
            self._avg_doc_length = self._total_length / len(self._entries)
            for term in counts:
                self._doc_freqs[term] = self._doc_freqs.get(term, 0) + 1
                self._idf_cache.pop(term, None)

        logger.debug("BM25: added chunk %s (%d terms)", chunk_id, len(terms))
        return chunk_id

    def remove_chunk(self, chunk_id: str) -> bool:
        """Drop *chunk_id* and its term counts. Returns False if unknown."""
        with self._lock:
            entry = self._entries.pop(chunk_id, None)
            if entry is None:
                return False
            self._total_length -= entry.length
            self._avg_doc_length = (
                self._total_length / len(self._entries) if self._entries else 0.0
            )
            for term in entry.term_counts:
                remaining = self._doc_freqs[term] - 1
                if remaining:
                    self._doc_freqs[term] = remaining
                else:
                    del self._doc_freqs[term]
                self._idf_cache.pop(term, None)

        logger.debug("BM25: removed chunk %s", chunk_id)
        return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._doc_freqs.clear()
            self._idf_cache.clear()
            self._total_length = 0
            self._avg_doc_length = 0.0
        logger.info("BM25 index cleared")

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    @property
    def lock(self) -> threading.RLock:
        """Hold this to read a consistent snapshot across several calls."""
        return self._lock

    @property
    def total_chunk_count(self) -> int:
        return len(self._entries)

    @property
    def average_chunk_length(self) -> float:
        return self._avg_doc_length

    def document_frequency(self, term: str) -> int:
        return self._doc_freqs.get(term, 0)

    def idf(self, term: str) -> float:
        """Inverse document frequency of *term*, recomputed lazily.

        Cached values are tagged with the chunk count they were computed
        under and discarded when that count has since changed.
        """
        with self._lock:
            total = len(self._entries)
            cached = self._idf_cache.get(term)
            if cached is not None and cached[0] == total:
                return cached[1]
            df = self._doc_freqs.get(term, 0)
            value = math.log((total - df + 0.5) / (df + 0.5) + 1)
            if df:
                self._idf_cache[term] = (total, value)
            return value

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def score(self, query: str, chunk_text: str) -> float:
        """BM25 score of *query* against *chunk_text* under current corpus stats."""
        terms = _tokenize(chunk_text)
        with self._lock:
            return self._score_terms(_tokenize(query), Counter(terms), len(terms))

    def search_all(self, query: str, n_results: int | None = None) -> list[dict[str, Any]]:
        """Score *query* against every indexed chunk.

        Returns:
            List of dicts with keys: id, document, score, position.
            Sorted by score descending; equal scores keep insertion order.
        """
        query_terms = _tokenize(query)
        with self._lock:
            hits = [
                {
                    "id": entry.chunk_id,
                    "document": entry.text,
                    "score": self._score_terms(query_terms, entry.term_counts, entry.length),
                    "position": entry.position,
                }
                for entry in self._entries.values()
            ]

        # sorted() is stable with reverse=True, so ties stay in insertion order
        ranked = sorted(hits, key=lambda h: h["score"], reverse=True)
        return ranked if n_results is None else ranked[:n_results]

    def _score_terms(self, query_terms: list[str], term_counts: Counter, doc_length: int) -> float:
        if not self._entries or doc_length == 0 or self._avg_doc_length == 0:
            return 0.0

        length_norm = 1 - self.b + self.b * (doc_length / self._avg_doc_length)
        score = 0.0
        for term in query_terms:
            tf = term_counts.get(term, 0) / doc_length
            if tf == 0:
                continue
            score += self.idf(term) * (tf * (self.k1 + 1)) / (tf + self.k1 * length_norm)
        return score

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "total_chunks": len(self._entries),
                "unique_terms": len(self._doc_freqs),
                "avg_chunk_length": self._avg_doc_length,
                "k1": self.k1,
                "b": self.b,
            }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, chunk_id: object) -> bool:
        return chunk_id in self._entries
