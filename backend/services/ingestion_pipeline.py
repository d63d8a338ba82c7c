"""Ingestion pipeline: pages -> chunks -> embeddings -> coherence scores -> atomic write."""
import logging
import time
from collections import defaultdict
from typing import List, Optional, Sequence

from models.api import EmbeddingPayload
from models.chunk import Chunk
from models.document import Page
from services.chunking_engine import ChunkingEngine
from services.embedding_model import TextEncoder, EmbeddingError
from services.similarity import cosine_or_zero
from services.tokenizer import TokenCounter
from services.vector_store import VectorStore, Transaction
from config import POOLING_STRATEGY, EMBEDDING_TIMEOUT

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Turns the pages of one document into stored, embedded chunks."""

    def __init__(
        self,
        embedding_model: TextEncoder,
        vector_store: VectorStore,
        token_counter: TokenCounter,
        chunking_engine: Optional[ChunkingEngine] = None,
        pooling_strategy: str = POOLING_STRATEGY,
        embedding_timeout: Optional[float] = EMBEDDING_TIMEOUT
    ):
        """
        Initialize the pipeline.

        Args:
            embedding_model: Encoder for chunk text
            vector_store: Destination of the finished batch
            token_counter: Counts tokens of posted page payloads
            chunking_engine: Splits oversized pages; defaults to configured budget/overlap
            pooling_strategy: Pooling strategy for chunk embeddings
            embedding_timeout: Deadline in seconds for each embedding call
        """
        self.embedding_model = embedding_model
        self.vector_store = vector_store
        self.token_counter = token_counter
        self.chunking_engine = chunking_engine or ChunkingEngine()
        self.pooling_strategy = pooling_strategy
        self.embedding_timeout = embedding_timeout

    def ingest_payloads(self, document_id: str, payloads: Sequence[EmbeddingPayload]) -> List[Chunk]:
        """
        Ingest pages posted to the API, recounting their tokens.

        Raises:
            TokenizationError: If a page cannot be tokenized
        """
        chunks = [
            Chunk(
                document_id=document_id,
                page_number=payload.metadata.loc.page_number,
                text=payload.page_content,
                page_index=payload.metadata.loc.page_index,
                token_count=self.token_counter.count(payload.page_content)
            )
            for payload in payloads
        ]
        return self.ingest(document_id, chunks)

    def ingest_pages(self, document_id: str, pages: Sequence[Page]) -> List[Chunk]:
        """Ingest pages produced by the document loader."""
        chunks = [
            Chunk(
                document_id=document_id,
                page_number=page.page_number,
                text=page.text,
                token_count=page.token_count
            )
            for page in pages
        ]
        return self.ingest(document_id, chunks)

    def ingest(self, document_id: str, chunks: List[Chunk]) -> List[Chunk]:
        """
        Split, embed, score and persist one batch of page chunks.

        Args:
            document_id: Document the chunks belong to
            chunks: One chunk per page with token counts filled in

        Returns:
            The persisted chunks

        Raises:
            EmbeddingError: If any chunk cannot be embedded; nothing is written
            TransactionError: If the batch cannot be persisted; nothing is written
        """
        start_time = time.time()
        page_count = len(chunks)

        sources = list(chunks)
        source_indices = [chunk.page_index for chunk in sources]
        chunks = self.chunking_engine.expand(list(sources))
        chunks = self._number_sections(sources, source_indices, chunks)
        chunks = self._drop_blank_chunks(chunks)
        if not chunks:
            logger.warning(f"Nothing to ingest for document {document_id}")
            return []

        self._embed(chunks)
        self.score_coherence(chunks)

        def write_batch(transaction: Transaction) -> None:
            for chunk in chunks:
                transaction.save_record(chunk)

        self.vector_store.run_in_transaction(write_batch)

        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Ingested document {document_id}: {page_count} pages -> {len(chunks)} chunks in {elapsed_ms}ms",
            extra={"extra": {
                "document_id": document_id,
                "pages": page_count,
                "chunks": len(chunks),
                "latency_ms": elapsed_ms,
            }}
        )
        return chunks

    def _embed(self, chunks: List[Chunk]) -> None:
        for position, chunk in enumerate(chunks, start=1):
            logger.debug(f"Embedding chunk {position}/{len(chunks)}: {chunk.chunk_id}")
            try:
                chunk.embedding = self.embedding_model.encode(
                    chunk.text,
                    self.pooling_strategy,
                    timeout=self.embedding_timeout
                )
            except EmbeddingError as e:
                logger.error(f"Embedding failed for {chunk.chunk_id}, aborting batch: {e}")
                raise

    @staticmethod
    def score_coherence(chunks: List[Chunk]) -> None:
        """
        Set each chunk's coherence score to its mean similarity to the rest of the batch.

        Pairs without a usable similarity count as 0. A chunk with no
        siblings scores 0.0.
        """
        count = len(chunks)
        if count < 2:
            for chunk in chunks:
                chunk.coherence_score = 0.0
            return

        totals = [0.0] * count
        for i in range(count):
            for j in range(i + 1, count):
                similarity = cosine_or_zero(chunks[i].embedding, chunks[j].embedding)
                totals[i] += similarity
                totals[j] += similarity

        for chunk, total in zip(chunks, totals):
            chunk.coherence_score = total / (count - 1)

    @staticmethod
    def _number_sections(
        sources: List[Chunk],
        source_indices: List[int],
        expanded: List[Chunk]
    ) -> List[Chunk]:
        """
        Renumber page_index 1..k within each page so every key in the batch is unique.

        Several sources may share a page number (one payload per pageIndex),
        and each is numbered from 1 by the chunker. Sources are ordered by
        their posted page index, then each contributes its sections in
        section order. Pages posted once keep the numbering of the chunker.

        Args:
            sources: Chunks as passed to `ChunkingEngine.expand`, now holding their last section
            source_indices: page_index of every source before expansion
            expanded: The list returned by `ChunkingEngine.expand`

        Returns:
            The chunks ordered by page number, then page index
        """
        groups = []
        position = len(sources)
        for source, source_index in zip(sources, source_indices):
            # A source split into N sections holds section N; sections 1..N-1 were appended in order
            appended = source.page_index - 1
            sections = expanded[position:position + appended] + [source]
            position += appended
            groups.append((source.page_number, source_index, sections))

        next_index = defaultdict(int)
        ordered: List[Chunk] = []
        for page_number, _, sections in sorted(groups, key=lambda group: group[:2]):
            for chunk in sections:
                next_index[page_number] += 1
                chunk.page_index = next_index[page_number]
                ordered.append(chunk)
        return ordered

    @staticmethod
    def _drop_blank_chunks(chunks: List[Chunk]) -> List[Chunk]:
        kept = [chunk for chunk in chunks if chunk.text.strip()]
        if len(kept) < len(chunks):
            logger.warning(f"Skipped {len(chunks) - len(kept)} chunks without text")
        return kept
