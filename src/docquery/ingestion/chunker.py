"""WordWindowChunker: overlapping word-count windows over extracted text.

Policy: split on whitespace, emit windows of ``window_size`` words, advance
the window start by ``window_size - overlap`` words, stop once a window has
reached the last word. The final window may be shorter. Words inside a
window are re-joined with single spaces.
"""

from __future__ import annotations

import logging

from ..errors import InvalidConfiguration
from .schema import Chunk, Scalar

logger = logging.getLogger(__name__)

_WINDOW_SIZE = 200
_OVERLAP = 50


def _validate(window_size: int, overlap: int) -> None:
    if window_size < 1:
        raise InvalidConfiguration(f"window_size must be >= 1, got {window_size}")
    if not 0 <= overlap < window_size:
        raise InvalidConfiguration(
            f"overlap must satisfy 0 <= overlap < window_size ({window_size}), got {overlap}"
        )


def chunk_words(text: str, window_size: int, overlap: int) -> list[str]:
    """Split *text* into overlapping word windows.

    Raises:
        InvalidConfiguration: if ``overlap`` is negative or not smaller than
            ``window_size``.
    """
    _validate(window_size, overlap)

    words = text.split()
    step = window_size - overlap
    chunks: list[str] = []
    for start in range(0, len(words), step):
        chunks.append(" ".join(words[start : start + window_size]))
        if start + window_size >= len(words):
            break
    return chunks


class WordWindowChunker:
    """Turn one document's text into ordered :class:`Chunk` records.

    Parameters are checked once, at construction, so a bad configuration is
    rejected before any document is touched.
    """

    def __init__(self, window_size: int = _WINDOW_SIZE, overlap: int = _OVERLAP) -> None:
        _validate(window_size, overlap)
        self.window_size = window_size
        self.overlap = overlap

    def split(self, text: str) -> list[str]:
        return chunk_words(text, self.window_size, self.overlap)

    def chunk_document(
        self,
        document_id: str,
        text: str,
        metadata: dict[str, Scalar] | None = None,
    ) -> list[Chunk]:
        windows = self.split(text)
        logger.debug("Document %s split into %d chunks", document_id, len(windows))
        return [
            Chunk(
                document_id=document_id,
                text=window,
                sequence_index=idx,
                metadata=dict(metadata or {}),
            )
            for idx, window in enumerate(windows)
        ]
