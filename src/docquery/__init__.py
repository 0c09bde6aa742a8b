"""docquery: hybrid BM25 + embedding retrieval over uploaded documents."""

from .config import RetrievalSettings
from .errors import (
    EmbeddingUnavailable,
    IngestFailed,
    InvalidConfiguration,
    OperationCancelled,
    QueryFailed,
    RetrievalError,
)

__version__ = "0.1.0"

__all__ = [
    "EmbeddingUnavailable",
    "IngestFailed",
    "InvalidConfiguration",
    "OperationCancelled",
    "QueryFailed",
    "RetrievalError",
    "RetrievalSettings",
]
