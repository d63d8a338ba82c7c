"""Main entry point for Pagewise Vector Search API."""
import logging
from typing import Callable, List, Optional, Sequence
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from config import PORT, CORS_ORIGINS, LOG_FORMAT, LOG_LEVEL
from logger import setup_logging
from models.api import EmbeddingPayload, UrlIngestRequest, IngestResponse, ChunkRecord, RecordList
from models.chunk import Chunk
from services.tokenizer import TokenCounter, TokenizationError
from services.document_loader import DocumentLoader, DocumentLoadError
from services.chunking_engine import ChunkingEngine
from services.embedding_model import EmbeddingModel, EmbeddingError
from services.vector_store import VectorStore, TransactionError
from services.context_refiner import ContextRefiner
from services.retrieval_engine import RetrievalEngine
from services.ingestion_pipeline import IngestionPipeline

# Initialize logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Pagewise Vector Search",
    description="Chunked document embeddings with similarity search and context refinement",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services (will be done on startup)
vector_store: VectorStore = None
document_loader: DocumentLoader = None
ingestion_pipeline: IngestionPipeline = None
retrieval_engine: RetrievalEngine = None


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global vector_store, document_loader, ingestion_pipeline, retrieval_engine

    if LOG_FORMAT == "json":
        setup_logging(LOG_LEVEL)

    logger.info("Initializing Pagewise Vector Search services...")

    try:
        token_counter = TokenCounter()
        embedding_model = EmbeddingModel()
        vector_store = VectorStore()

        ingestion_pipeline = IngestionPipeline(
            embedding_model,
            vector_store,
            token_counter,
            ChunkingEngine()
        )
        logger.info("Initialized IngestionPipeline")

        retrieval_engine = RetrievalEngine(
            vector_store,
            embedding_model,
            ContextRefiner(embedding_model)
        )

        document_loader = DocumentLoader(token_counter)
        logger.info("Initialized DocumentLoader")

        logger.info("All services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are client errors (400), reported with the parse failure."""
    logger.warning(f"Rejected malformed request to {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Pagewise Vector Search API"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "pagewise-vector-search",
        "version": "1.0.0"
    }


@app.post("/{document_id}/embedding", response_model=IngestResponse)
def embedding_endpoint(document_id: str, payloads: List[EmbeddingPayload]) -> IngestResponse:
    """
    Chunk, embed and store the posted pages of a document.

    Oversized pages are split into overlapping chunks; the whole batch is
    written atomically.

    Args:
        document_id: Document the pages belong to
        payloads: Pages as {pageContent, metadata: {loc: {pageNumber, pageIndex}}}

    Returns:
        IngestResponse with the number of stored chunks

    Raises:
        HTTPException: 400 for malformed bodies, 500 when ingestion fails
    """
    logger.info(f"Ingesting {len(payloads)} pages for document {document_id}")
    return _ingest(document_id, ingestion_pipeline.ingest_payloads, payloads)


@app.post("/{document_id}/pdf", response_model=IngestResponse)
async def pdf_endpoint(document_id: str, request: Request) -> IngestResponse:
    """Extract the pages of a PDF sent as the raw request body and ingest them."""
    body = await request.body()

    try:
        document = await run_in_threadpool(document_loader.load_pdf, body, f"{document_id}.pdf")
    except DocumentLoadError as e:
        logger.warning(f"Rejected PDF for document {document_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    return await run_in_threadpool(_ingest, document_id, ingestion_pipeline.ingest_pages, document.pages)


@app.post("/{document_id}/url", response_model=IngestResponse)
def url_endpoint(document_id: str, request: UrlIngestRequest) -> IngestResponse:
    """Fetch a web page, convert it to text and ingest it as page 1."""
    try:
        document = document_loader.load_url(request.url)
    except DocumentLoadError as e:
        logger.warning(f"Could not fetch {request.url}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except TokenizationError as e:
        logger.error(f"Tokenization failed for {request.url}: {e}")
        raise HTTPException(status_code=500, detail=f"Ingestion failed: {str(e)}")

    return _ingest(document_id, ingestion_pipeline.ingest_pages, document.pages)


@app.delete("/{document_id}/embedding")
def delete_embeddings(document_id: str):
    """Remove every stored chunk of a document."""
    try:
        vector_store.delete_document(document_id)
    except Exception as e:
        logger.error(f"Failed to delete document {document_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")
    return {"document_id": document_id, "deleted": True}


@app.get("/embeddings", response_model=RecordList)
def list_embeddings(search: Optional[str] = None, file: Optional[str] = None) -> RecordList:
    """
    List stored chunks, optionally filtered to one document.

    With `search`, every listed chunk is scored against the query, the best
    ones are refined, and only the top results are returned.
    """
    try:
        chunks = vector_store.list_records(file)

        if search:
            scored_chunks = retrieval_engine.search(search, candidates=chunks)
            items = [_to_record(scored.chunk, scored.similarity) for scored in scored_chunks]
        else:
            items = [_to_record(chunk) for chunk in chunks]

    except EmbeddingError as e:
        logger.error(f"Query embedding failed: {e}")
        raise HTTPException(status_code=500, detail=f"Search failed: {str(e)}")
    except Exception as e:
        logger.error(f"Unexpected error listing embeddings: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")

    return RecordList(items=items, total=len(items))


def _ingest(document_id: str, ingest: Callable[[str, Sequence], List[Chunk]], items: Sequence) -> IngestResponse:
    """Run one ingestion call and map its failures to HTTP errors."""
    try:
        chunks = ingest(document_id, items)
    except (TokenizationError, EmbeddingError, TransactionError) as e:
        logger.error(f"Ingestion failed for document {document_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Ingestion failed: {str(e)}")
    except Exception as e:
        logger.error(f"Unexpected error ingesting document {document_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")

    return IngestResponse(document_id=document_id, chunks_stored=len(chunks))


def _to_record(chunk: Chunk, similarity: Optional[float] = None) -> ChunkRecord:
    return ChunkRecord(
        document_id=chunk.document_id,
        page_number=chunk.page_number,
        page_index=chunk.page_index,
        text=chunk.text,
        token_count=chunk.token_count,
        similarity_score=chunk.coherence_score,
        similarity=similarity
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)
