"""Services for Pagewise Vector Search."""
from .similarity import cosine, cosine_or_zero, DegenerateVectorError
from .tokenizer import TokenCounter, TokenizationError
from .page_extraction import PageExtractionPool, PageExtractionError
from .document_loader import DocumentLoader, DocumentLoadError
from .chunking_engine import ChunkingEngine
from .embedding_model import EmbeddingModel, EmbeddingError, TextEncoder
from .vector_store import VectorStore, Transaction, TransactionError
from .context_refiner import ContextRefiner
from .retrieval_engine import RetrievalEngine
from .ingestion_pipeline import IngestionPipeline

__all__ = ['cosine', 'cosine_or_zero', 'DegenerateVectorError', 'TokenCounter', 'TokenizationError', 'PageExtractionPool', 'PageExtractionError', 'DocumentLoader', 'DocumentLoadError', 'ChunkingEngine', 'EmbeddingModel', 'EmbeddingError', 'TextEncoder', 'VectorStore', 'Transaction', 'TransactionError', 'ContextRefiner', 'RetrievalEngine', 'IngestionPipeline']
