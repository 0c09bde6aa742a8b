"""Chunk and scored-result records shared by ingestion and retrieval."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field

# Metadata values must stay flat so every store can persist them.
Scalar = str | int | float | bool

# Store-level keys; user metadata may not shadow them.
RESERVED_METADATA_KEYS = ("document_id", "sequence_index")


class Chunk(BaseModel):
    """A window of one document's text, the unit of indexing and retrieval."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    document_id: str
    text: str
    sequence_index: int = 0           # position within the source document
    embedding: list[float] | None = None   # None until the gateway has run
    metadata: dict[str, Scalar] = Field(default_factory=dict)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def with_embedding(self, embedding: list[float]) -> "Chunk":
        return self.model_copy(update={"embedding": list(embedding)})

    def scope(self, scope_field: str = "scope") -> Scalar | None:
        """Value of *scope_field*; reserved keys resolve to the chunk's own fields."""
        if scope_field == "document_id":
            return self.document_id
        if scope_field == "sequence_index":
            return self.sequence_index
        return self.metadata.get(scope_field)

    def to_chroma_document(self) -> dict:
        """Convert to a dict suitable for ChromaDB ``add()``.

        Returns a dict with keys: id, document, embedding, metadata.
        """
        metadata: dict[str, Scalar] = {
            k: v for k, v in self.metadata.items() if k not in RESERVED_METADATA_KEYS
        }
        metadata["document_id"] = self.document_id
        metadata["sequence_index"] = self.sequence_index
        return {
            "id": self.chunk_id,
            "document": self.text,
            "embedding": self.embedding,
            "metadata": metadata,
        }

    @classmethod
    def from_chroma_row(
        cls,
        chunk_id: str,
        document: str,
        metadata: dict | None,
        embedding=None,
    ) -> "Chunk":
        meta = dict(metadata or {})
        document_id = str(meta.pop("document_id", ""))
        sequence_index = int(meta.pop("sequence_index", 0))
        return cls(
            chunk_id=chunk_id,
            document_id=document_id,
            text=document,
            sequence_index=sequence_index,
            embedding=[float(x) for x in embedding] if embedding is not None else None,
            metadata=meta,
        )


class ScoredChunk(BaseModel):
    """One ranked query result; produced per query, never persisted."""

    chunk_id: str
    document_id: str
    text: str
    sequence_index: int = 0
    metadata: dict[str, Scalar] = Field(default_factory=dict)
    lexical_score: float
    vector_score: float | None = None   # None → chunk had no stored vector
    combined_score: float
