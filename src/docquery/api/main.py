import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from docquery.api.models import (
    DocumentItem,
    DocumentsResponse,
    IngestRequest,
    IngestResponse,
    QueryRequest,
    QueryResponse,
    ResultItem,
)
from docquery.config import RetrievalSettings
from docquery.errors import IngestFailed, InvalidConfiguration, QueryFailed
from docquery.retrieval.orchestrator import RetrievalOrchestrator

logger = logging.getLogger("docquery-api")


def create_app(orchestrator: Optional[RetrievalOrchestrator] = None) -> FastAPI:
    """
    Build the HTTP app around an orchestrator.

    When none is injected, one is built from the environment on startup;
    a failure there aborts startup instead of serving with a broken store.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "orchestrator", None) is None:
            logger.info("Startup: building retrieval orchestrator from environment...")
            app.state.orchestrator = RetrievalOrchestrator.from_settings(RetrievalSettings.from_env())
            logger.info("Startup complete.")
        yield
        logger.info("Shutdown: releasing resources...")

    app = FastAPI(
        title="docquery API",
        version="0.1.0",
        description="Ingest plain-text documents and run hybrid BM25 + embedding queries.",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # restrict to the frontend origin when deployed
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _orchestrator(request: Request) -> RetrievalOrchestrator:
        return request.app.state.orchestrator

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": "docquery"}

    @app.post("/documents", response_model=IngestResponse)
    def ingest_document(body: IngestRequest, request: Request):
        """
        Chunk, embed and index an already-extracted document.
        """
        if not body.text.strip():
            raise HTTPException(status_code=400, detail="Document text is empty.")

        orchestrator = _orchestrator(request)
        document_id = body.document_id or str(uuid.uuid4())
        metadata = dict(body.metadata)
        if body.scope is not None:
            metadata[orchestrator.scope_field] = body.scope

        try:
            chunk_ids = orchestrator.ingest(document_id, body.text, metadata)
        except IngestFailed as e:
            logger.error(f"Ingest failed: {e}")
            raise HTTPException(
                status_code=502,
                detail={
                    "error": "Failed to process document",
                    "document_id": e.document_id,
                    "committed": e.committed,
                    "total": e.total,
                },
            )
        return IngestResponse(document_id=document_id, chunk_ids=chunk_ids)

    @app.post("/query", response_model=QueryResponse)
    def query_documents(body: QueryRequest, request: Request):
        """
        Hybrid search, optionally restricted to one scope.
        """
        try:
            results = _orchestrator(request).query(body.query, top_k=body.top_k, scope=body.scope)
        except InvalidConfiguration as e:
            raise HTTPException(status_code=400, detail=str(e))
        except QueryFailed as e:
            logger.error(f"Query failed: {e}")
            raise HTTPException(status_code=502, detail={"error": "Failed to run query", "details": str(e)})

        return QueryResponse(
            results=[
                ResultItem(
                    chunk_id=r.chunk_id,
                    document_id=r.document_id,
                    text=r.text,
                    lexical_score=r.lexical_score,
                    vector_score=r.vector_score,
                    combined_score=r.combined_score,
                )
                for r in results
            ]
        )

    @app.get("/documents", response_model=DocumentsResponse)
    def list_documents(request: Request, scope: Optional[str] = None):
        docs = _orchestrator(request).list_documents(scope)
        return DocumentsResponse(documents=[DocumentItem(**d) for d in docs])

    @app.delete("/documents/{document_id}")
    def delete_document(document_id: str, request: Request):
        deleted = _orchestrator(request).delete_document(document_id)
        if not deleted:
            raise HTTPException(status_code=404, detail=f"Document {document_id} not found")
        return {"deleted": deleted}

    return app


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
