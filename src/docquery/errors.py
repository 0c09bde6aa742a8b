"""Exception taxonomy for the retrieval core.

Failures originate at two boundaries only: the embedding provider and the
document store. The chunker and the BM25 index never raise on valid input.
"""

from __future__ import annotations


class RetrievalError(Exception):
    """Base class for every error raised by docquery."""


class InvalidConfiguration(RetrievalError, ValueError):
    """Bad chunker / ranker / settings parameters, rejected before any work."""


class OperationCancelled(RetrievalError):
    """The caller set the cancel event while an operation was in flight."""


class EmbeddingUnavailable(RetrievalError):
    """The provider call failed or returned a malformed vector.

    ``text_index`` is the position of the offending text when the failure
    happened inside a batch, ``None`` for single calls.
    """

    def __init__(self, message: str, text_index: int | None = None) -> None:
        super().__init__(message)
        self.text_index = text_index


class IngestFailed(RetrievalError):
    """A multi-chunk ingest stopped part-way.

    ``committed`` chunks (ids in ``committed_chunk_ids``) were written to the
    store and the lexical index before the failure; the rest were not.
    """

    def __init__(
        self,
        document_id: str,
        committed: int,
        total: int,
        committed_chunk_ids: list[str] | None = None,
        cancelled: bool = False,
    ) -> None:
        reason = "cancelled" if cancelled else "failed"
        super().__init__(
            f"Ingest of document {document_id!r} {reason} after "
            f"{committed}/{total} chunks were committed"
        )
        self.document_id = document_id
        self.committed = committed
        self.total = total
        self.committed_chunk_ids = list(committed_chunk_ids or [])
        self.cancelled = cancelled


class QueryFailed(RetrievalError):
    """The query embedding (or the store read behind the merge) failed."""
