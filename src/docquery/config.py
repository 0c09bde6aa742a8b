"""Runtime settings for the retrieval core.

Environment variables are read at call time (not import time) via dotenv:
    DOCQUERY_WINDOW_SIZE       : words per chunk, default 200
    DOCQUERY_OVERLAP           : words shared by consecutive chunks, default 50
    DOCQUERY_BM25_K1           : BM25 term saturation, default 1.5
    DOCQUERY_BM25_B            : BM25 length normalisation, default 0.75
    DOCQUERY_LEXICAL_WEIGHT    : default 1.0
    DOCQUERY_VECTOR_WEIGHT     : default 1.0
    DOCQUERY_TOP_K             : default 5
    DOCQUERY_MAX_CONCURRENCY   : in-flight embedding calls, default 5
    DOCQUERY_EMBEDDING_BACKEND : "sentence-transformers" (default) or "openai"
    DOCQUERY_EMBEDDING_MODEL   : model name for the chosen backend
    DOCQUERY_EMBEDDING_DIM     : expected vector size, unset = first observed
    DOCQUERY_SCOPE_FIELD       : metadata key used for scope filtering
    DOCQUERY_LEXICAL_FALLBACK  : "1" to rank lexically when embedding fails
    CHROMA_PERSIST_DIR         : unset keeps chunks in memory
    DOCQUERY_COLLECTION        : Chroma collection name, default "documents"
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .errors import InvalidConfiguration

_BACKENDS = ("sentence-transformers", "openai")

_DEFAULT_MODELS = {
    "sentence-transformers": "BAAI/bge-m3",
    "openai": "text-embedding-ada-002",
}


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise InvalidConfiguration(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise InvalidConfiguration(f"{name} must be a number, got {raw!r}") from exc


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw not in ("0", "false", "no")


@dataclass(frozen=True)
class RetrievalSettings:
    window_size: int = 200
    overlap: int = 50
    k1: float = 1.5
    b: float = 0.75
    lexical_weight: float = 1.0
    vector_weight: float = 1.0
    top_k: int = 5
    max_concurrency: int = 5
    embedding_backend: str = "sentence-transformers"
    embedding_model: str = _DEFAULT_MODELS["sentence-transformers"]
    embedding_dimension: int | None = None
    scope_field: str = "scope"
    lexical_fallback: bool = False
    chroma_dir: str | None = None
    collection: str = "documents"

    def __post_init__(self) -> None:
        if self.embedding_backend not in _BACKENDS:
            raise InvalidConfiguration(
                f"Unknown embedding backend {self.embedding_backend!r}; expected one of {_BACKENDS}"
            )
        if self.top_k < 1:
            raise InvalidConfiguration(f"top_k must be >= 1, got {self.top_k}")
        if self.max_concurrency < 1:
            raise InvalidConfiguration(
                f"max_concurrency must be >= 1, got {self.max_concurrency}"
            )

    @classmethod
    def from_env(cls) -> "RetrievalSettings":
        """Build settings from the process environment (and ``.env`` if present)."""
        from dotenv import find_dotenv, load_dotenv

        load_dotenv(find_dotenv(usecwd=True))

        backend = os.environ.get("DOCQUERY_EMBEDDING_BACKEND", "sentence-transformers").strip()
        return cls(
            window_size=_env_int("DOCQUERY_WINDOW_SIZE", 200),
            overlap=_env_int("DOCQUERY_OVERLAP", 50),
            k1=_env_float("DOCQUERY_BM25_K1", 1.5),
            b=_env_float("DOCQUERY_BM25_B", 0.75),
            lexical_weight=_env_float("DOCQUERY_LEXICAL_WEIGHT", 1.0),
            vector_weight=_env_float("DOCQUERY_VECTOR_WEIGHT", 1.0),
            top_k=_env_int("DOCQUERY_TOP_K", 5),
            max_concurrency=_env_int("DOCQUERY_MAX_CONCURRENCY", 5),
            embedding_backend=backend,
            embedding_model=os.environ.get(
                "DOCQUERY_EMBEDDING_MODEL", _DEFAULT_MODELS.get(backend, "")
            ),
            embedding_dimension=_env_int("DOCQUERY_EMBEDDING_DIM", None),
            scope_field=os.environ.get("DOCQUERY_SCOPE_FIELD", "scope"),
            lexical_fallback=_env_flag("DOCQUERY_LEXICAL_FALLBACK", False),
            chroma_dir=os.environ.get("CHROMA_PERSIST_DIR") or None,
            collection=os.environ.get("DOCQUERY_COLLECTION", "documents"),
        )
