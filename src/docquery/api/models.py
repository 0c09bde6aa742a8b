from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class IngestRequest(BaseModel):
    """
    Request model for the /documents upload endpoint (already-extracted text)
    """
    text: str = Field(..., description="Plain text of the document")
    document_id: Optional[str] = Field(None, description="Document identifier; generated when omitted")
    scope: Optional[str] = Field(None, description="Scope key (e.g. session id) stored with every chunk")
    metadata: Dict[str, Union[str, int, float, bool]] = Field(
        default_factory=dict, description="Extra scalar metadata such as filename"
    )


class IngestResponse(BaseModel):
    document_id: str
    chunk_ids: List[str] = Field(default_factory=list)


class QueryRequest(BaseModel):
    """
    Request model for the /query endpoint
    """
    query: str = Field(..., min_length=1, description="Natural-language query")
    top_k: int = Field(5, ge=1, description="Number of chunks to return")
    scope: Optional[str] = Field(None, description="Only return chunks stored under this scope")


class ResultItem(BaseModel):
    """
    A single ranked chunk
    """
    chunk_id: str
    document_id: str
    text: str
    lexical_score: float = Field(..., description="BM25 score")
    vector_score: Optional[float] = Field(None, description="Cosine similarity, null when the chunk has no vector")
    combined_score: float


class QueryResponse(BaseModel):
    results: List[ResultItem] = Field(default_factory=list)


class DocumentItem(BaseModel):
    document_id: str
    chunks: int
    metadata: Dict[str, Any] = Field(default_factory=dict)


class DocumentsResponse(BaseModel):
    documents: List[DocumentItem] = Field(default_factory=list)
