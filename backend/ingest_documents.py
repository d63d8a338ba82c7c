"""
Document Ingestion Script for Pagewise Vector Search.

This script:
1. Loads a PDF (pages extracted in parallel) or fetches a web page
2. Optionally removes the document's previously stored chunks
3. Splits oversized pages into overlapping chunks
4. Generates embeddings using HuggingFace API
5. Stores the batch in Supabase in one atomic write

Usage:
    python ingest_documents.py DOCUMENT_ID --pdf path/to/file.pdf [--replace]
    python ingest_documents.py DOCUMENT_ID --url https://example.com/page [--replace]
"""
import argparse
import sys
import logging
from pathlib import Path
from typing import List, Optional

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent))

from services.tokenizer import TokenCounter
from services.document_loader import DocumentLoader
from services.chunking_engine import ChunkingEngine
from services.embedding_model import EmbeddingModel
from services.vector_store import VectorStore
from services.ingestion_pipeline import IngestionPipeline
from config import HUGGINGFACE_API_KEY, SUPABASE_URL, SUPABASE_KEY, EXTRACTION_WORKERS

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest a PDF or web page into the vector store")
    parser.add_argument("document_id", help="Identifier the chunks are stored under")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--pdf", help="Path to a PDF file")
    source.add_argument("--url", help="URL of a web page")
    parser.add_argument("--replace", action="store_true",
                        help="Delete the document's existing chunks first")
    parser.add_argument("--workers", type=int, default=EXTRACTION_WORKERS,
                        help="Concurrent page extractions")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main ingestion process."""
    args = parse_args(argv)

    try:
        logger.info("=" * 60)
        logger.info(f"Ingesting document {args.document_id}")
        logger.info("=" * 60)

        # Step 1: Initialize services
        token_counter = TokenCounter()
        embedding_model = EmbeddingModel(api_key=HUGGINGFACE_API_KEY)
        vector_store = VectorStore(supabase_url=SUPABASE_URL, supabase_key=SUPABASE_KEY)
        pipeline = IngestionPipeline(embedding_model, vector_store, token_counter, ChunkingEngine())
        document_loader = DocumentLoader(token_counter, max_workers=args.workers)
        logger.info("✓ Services initialized")

        # Step 2: Load the source
        if args.pdf:
            document = document_loader.load_pdf_file(args.pdf)
        else:
            document = document_loader.load_url(args.url)
        logger.info(f"✓ Loaded {document.source} ({document.total_pages} pages)")

        if document.total_pages == 0:
            logger.error("No text could be extracted from the source")
            return 1

        # Step 3: Clear previous chunks
        if args.replace:
            vector_store.delete_document(args.document_id)
            logger.info("✓ Removed previously stored chunks")

        # Step 4: Warm up, then chunk, embed and store
        embedding_model.warmup()
        chunks = pipeline.ingest_pages(args.document_id, document.pages)

        logger.info("=" * 60)
        logger.info("INGESTION COMPLETE!")
        logger.info(f"Pages: {document.total_pages}, chunks stored: {len(chunks)}")
        logger.info(f"Chunks for this document in database: {vector_store.count(args.document_id)}")
        logger.info("=" * 60)
        return 0

    except KeyboardInterrupt:
        logger.warning("Ingestion interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"Ingestion failed: {str(e)}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
