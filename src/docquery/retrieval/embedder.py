"""Embedding gateway and the concrete providers behind it.

The gateway owns request shaping (one provider call per text), bounded
concurrency and error translation. It never retries and never caches:
duplicate chunk texts are embedded once per occurrence.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING, Protocol

from ..errors import EmbeddingUnavailable, InvalidConfiguration, OperationCancelled

if TYPE_CHECKING:
    from ..config import RetrievalSettings

logger = logging.getLogger(__name__)

_DEFAULT_MAX_CONCURRENCY = 5
# Seconds between cancel-event checks while waiting on a provider call
_CANCEL_POLL = 0.05


class EmbeddingProvider(Protocol):
    """Anything with ``embed_query``; LangChain ``Embeddings`` objects qualify."""

    def embed_query(self, text: str) -> Sequence[float]: ...


class SentenceTransformerProvider:
    """Thin wrapper around SentenceTransformer for dense query/chunk embedding.

    Lazy-loads the model on first call so import time stays fast even when
    the GPU driver is slow to initialise. Vectors are L2-normalised.
    """

    def __init__(self, model_name: str = "BAAI/bge-m3", use_fp16: bool = False) -> None:
        self._model_name = model_name
        self._use_fp16 = use_fp16
        self._model = None  # lazy init
        self._load_lock = threading.Lock()

    @property
    def model(self):
        """Load and cache the SentenceTransformer model on first access."""
        with self._load_lock:
            if self._model is None:
                from sentence_transformers import SentenceTransformer  # heavy import

                logger.info("Loading embedding model via sentence-transformers: %s", self._model_name)
                self._model = SentenceTransformer(
                    self._model_name,
                    model_kwargs={"torch_dtype": "float16"} if self._use_fp16 else {},
                )
                logger.info("Embedding model loaded.")
        return self._model

    def embed_query(self, text: str) -> list[float]:
        vec = self.model.encode(
            [text],
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        return vec[0].tolist()


def build_provider(settings: "RetrievalSettings") -> EmbeddingProvider:
    """Instantiate the provider named by ``settings.embedding_backend``."""
    if settings.embedding_backend == "openai":
        from langchain_openai import OpenAIEmbeddings

        # OPENAI_API_KEY is read from the environment by the client
        return OpenAIEmbeddings(model=settings.embedding_model)
    if settings.embedding_backend == "sentence-transformers":
        return SentenceTransformerProvider(model_name=settings.embedding_model)
    raise InvalidConfiguration(f"Unknown embedding backend {settings.embedding_backend!r}")


class EmbeddingGateway:
    """Validate and fan out embedding requests to an :class:`EmbeddingProvider`.

    Usage::

        gateway = EmbeddingGateway(SentenceTransformerProvider(), dimension=1024)
        vec = gateway.embed("query text")
        vecs = gateway.embed_batch(["chunk A", "chunk B"])
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        dimension: int | None = None,
        max_concurrency: int = _DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        if max_concurrency < 1:
            raise InvalidConfiguration(f"max_concurrency must be >= 1, got {max_concurrency}")
        if dimension is not None and dimension < 1:
            raise InvalidConfiguration(f"dimension must be >= 1, got {dimension}")
        self._provider = provider
        self._dimension = dimension
        self._max_concurrency = max_concurrency
        self._dim_lock = threading.Lock()

    @property
    def dimension(self) -> int | None:
        return self._dimension

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    def embed(self, text: str) -> list[float]:
        """Embed one text.

        Raises:
            EmbeddingUnavailable: provider error, non-numeric output, or a
                vector whose length differs from the deployment dimension.
        """
        try:
            raw = self._provider.embed_query(text)
        except Exception as exc:
            logger.error("Embedding provider call failed: %s", exc)
            raise EmbeddingUnavailable(f"Embedding provider call failed: {exc}") from exc
        return self._check_vector(raw)

    def embed_batch(
        self,
        texts: Sequence[str],
        cancel_event: threading.Event | None = None,
    ) -> list[list[float]]:
        """Embed *texts*, preserving order. Fails on the first bad element."""
        return list(self.iter_batch(texts, cancel_event=cancel_event))

    def iter_batch(
        self,
        texts: Sequence[str],
        cancel_event: threading.Event | None = None,
    ) -> Iterator[list[float]]:
        """Yield one vector per text, in input order.

        Up to ``max_concurrency`` provider calls run at once. When an element
        fails, the cancel event fires, or the caller stops iterating, calls
        that have not started are cancelled and running ones are abandoned.

        Raises:
            EmbeddingUnavailable: with ``text_index`` set to the failed position.
            OperationCancelled: when *cancel_event* is set.
        """
        if not texts:
            return
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled("Embedding request cancelled by caller")

        pool = ThreadPoolExecutor(
            max_workers=min(self._max_concurrency, len(texts)),
            thread_name_prefix="embed",
        )
        futures = [pool.submit(self.embed, text) for text in texts]
        logger.debug("Submitted %d embedding requests (max %d in flight)", len(futures), self._max_concurrency)
        try:
            for idx, fut in enumerate(futures):
                self._await(fut, cancel_event)
                try:
                    yield fut.result()
                except EmbeddingUnavailable as exc:
                    raise EmbeddingUnavailable(
                        f"Embedding failed for text {idx + 1}/{len(texts)}: {exc}",
                        text_index=idx,
                    ) from exc
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    @staticmethod
    def _await(fut: Future, cancel_event: threading.Event | None) -> None:
        if cancel_event is None:
            wait([fut])
            return
        while True:
            if cancel_event.is_set():
                raise OperationCancelled("Embedding request cancelled by caller")
            done, _ = wait([fut], timeout=_CANCEL_POLL)
            if done:
                return

    def _check_vector(self, raw: Sequence[float]) -> list[float]:
        try:
            vector = [float(x) for x in raw]
        except (TypeError, ValueError) as exc:
            raise EmbeddingUnavailable(f"Provider returned a non-numeric vector: {exc}") from exc
        if not vector:
            raise EmbeddingUnavailable("Provider returned an empty vector")

        with self._dim_lock:
            if self._dimension is None:
                self._dimension = len(vector)
                logger.info("Embedding dimension fixed at %d", self._dimension)
            elif len(vector) != self._dimension:
                raise EmbeddingUnavailable(
                    f"Provider returned {len(vector)}-dim vector, expected {self._dimension}"
                )
        return vector
