"""Document chunking and the chunk schema."""

from .chunker import WordWindowChunker, chunk_words
from .schema import Chunk, ScoredChunk

__all__ = ["Chunk", "ScoredChunk", "WordWindowChunker", "chunk_words"]
