"""Retrieval core: BM25 index, embedding gateway, stores, hybrid ranking, orchestration."""

from .bm25_index import BM25Corpus
from .embedder import EmbeddingGateway, SentenceTransformerProvider
from .hybrid_retriever import HybridRanker, HybridRetriever, cosine_similarity
from .orchestrator import RetrievalOrchestrator
from .vectorstore import ChromaDocumentStore, DocumentStore, InMemoryDocumentStore

__all__ = [
    "BM25Corpus",
    "ChromaDocumentStore",
    "DocumentStore",
    "EmbeddingGateway",
    "HybridRanker",
    "HybridRetriever",
    "InMemoryDocumentStore",
    "RetrievalOrchestrator",
    "SentenceTransformerProvider",
    "cosine_similarity",
]
