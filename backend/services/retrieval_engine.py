"""Retrieval engine for ranking stored chunks against a query."""
import dataclasses
import logging
from typing import List, Optional, Sequence
from models.chunk import Chunk, ScoredChunk
from services.vector_store import VectorStore
from services.embedding_model import TextEncoder, EmbeddingError
from services.context_refiner import ContextRefiner
from services.similarity import cosine_or_zero
from config import TOP_WINDOW, TOP_FINAL, POOLING_STRATEGY, EMBEDDING_TIMEOUT

logger = logging.getLogger(__name__)


class RetrievalEngine:
    """Embed a query, score every candidate chunk, refine the best and re-rank."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedding_model: TextEncoder,
        context_refiner: Optional[ContextRefiner] = None,
        top_window: int = TOP_WINDOW,
        top_final: int = TOP_FINAL,
        pooling_strategy: str = POOLING_STRATEGY,
        embedding_timeout: Optional[float] = EMBEDDING_TIMEOUT
    ):
        """
        Initialize the retrieval engine.

        Args:
            vector_store: Source of candidate chunks when none are passed in
            embedding_model: Encoder for the query text
            context_refiner: Optional refiner applied to the top window
            top_window: Number of best candidates handed to the refiner
            top_final: Number of results returned
            pooling_strategy: Pooling strategy for the query embedding
            embedding_timeout: Deadline in seconds for the query embedding

        Raises:
            ValueError: If top_window or top_final is not positive
        """
        if top_window <= 0 or top_final <= 0:
            raise ValueError("top_window and top_final must be positive")

        self.vector_store = vector_store
        self.embedding_model = embedding_model
        self.context_refiner = context_refiner
        self.top_window = top_window
        self.top_final = top_final
        self.pooling_strategy = pooling_strategy
        self.embedding_timeout = embedding_timeout
        logger.info("Initialized RetrievalEngine")

    def search(
        self,
        query: str,
        candidates: Optional[Sequence[Chunk]] = None,
        document_id: Optional[str] = None
    ) -> List[ScoredChunk]:
        """
        Rank candidate chunks by cosine similarity to the query.

        1. Embed the query with the configured pooling strategy
        2. Score every candidate; a degenerate or missing vector scores 0
        3. Sort descending and keep the top window
        4. Refine each kept candidate, which may change its text and raise its score
        5. Sort again and return the top results

        Sorting is stable, so equal scores keep candidate order and repeated
        searches over the same corpus return the same results.

        Args:
            query: Search text
            candidates: Chunks to rank; loaded from the vector store when None
            document_id: Restricts loaded candidates to one document

        Returns:
            Scored chunks sorted by similarity, at most `top_final` of them.
            Candidates are copied, so refined text never leaks back into them.

        Raises:
            EmbeddingError: If the query or a refinement span cannot be embedded
            RuntimeError: If candidates cannot be loaded
        """
        # Handle empty query strings gracefully
        if not query or not query.strip():
            logger.warning("Empty query string provided, returning empty results")
            return []

        try:
            logger.debug(f"Embedding query: {query[:100]}...")
            query_vector = self.embedding_model.encode(
                query,
                self.pooling_strategy,
                timeout=self.embedding_timeout
            )

            if candidates is None:
                candidates = self.vector_store.list_records(document_id)

            if not candidates:
                logger.info("No chunks to rank for query")
                return []

            scored_chunks = [
                ScoredChunk(
                    chunk=dataclasses.replace(chunk),
                    similarity=cosine_or_zero(query_vector, chunk.embedding)
                )
                for chunk in candidates
            ]
            scored_chunks.sort(key=lambda scored: scored.similarity, reverse=True)
            window = scored_chunks[:self.top_window]

            if self.context_refiner is not None:
                for scored in window:
                    self._refine(query_vector, scored)
                window.sort(key=lambda scored: scored.similarity, reverse=True)

            results = window[:self.top_final]
            logger.info(
                f"Ranked {len(scored_chunks)} chunks, returning {len(results)} "
                f"(top similarity: {results[0].similarity:.3f})"
            )
            return results

        except EmbeddingError:
            raise
        except Exception as e:
            error_msg = f"Failed to retrieve chunks for query: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

    def _refine(self, query_vector: List[float], scored: ScoredChunk) -> None:
        """Narrow one candidate in place."""
        starting_similarity = scored.similarity
        best_similarity, best_text, loop_count = self.context_refiner.refine(
            query_vector, scored.similarity, scored.chunk.text
        )
        scored.chunk.text = best_text
        scored.similarity = best_similarity
        logger.debug(
            f"Refined {scored.chunk.chunk_id}: {starting_similarity:.3f} -> "
            f"{best_similarity:.3f} in {loop_count} steps"
        )
