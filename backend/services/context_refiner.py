"""Recursive narrowing of a matched chunk towards its most relevant sub-span."""
import logging
from typing import List, Optional, Sequence, Tuple

from services.embedding_model import TextEncoder
from services.similarity import cosine, DegenerateVectorError
from config import REFINE_ENABLED, REFINE_OVERLAP_PERCENT, POOLING_STRATEGY, EMBEDDING_TIMEOUT

logger = logging.getLogger(__name__)


class ContextRefiner:
    """
    Shrinks candidate text while the shrunken text matches the query better.

    Each step embeds two overlapping sub-spans: the first `p`% of the text
    and the last `p`% of the text. The better of the two replaces the text
    if it beats the current similarity, and the search continues on it.
    """

    def __init__(
        self,
        embedding_model: TextEncoder,
        overlap_percentage: int = REFINE_OVERLAP_PERCENT,
        enabled: bool = REFINE_ENABLED,
        pooling_strategy: str = POOLING_STRATEGY,
        embedding_timeout: Optional[float] = EMBEDDING_TIMEOUT
    ):
        """
        Initialize the refiner.

        Args:
            embedding_model: Encoder used for the sub-spans
            overlap_percentage: Share of the text each sub-span keeps, in (0, 100)
            enabled: When False, refine() returns its inputs untouched
            pooling_strategy: Pooling strategy passed to the encoder
            embedding_timeout: Deadline in seconds for each sub-span embedding
        """
        self._check_percentage(overlap_percentage)

        self.embedding_model = embedding_model
        self.overlap_percentage = overlap_percentage
        self.enabled = enabled
        self.pooling_strategy = pooling_strategy
        self.embedding_timeout = embedding_timeout

    def refine(
        self,
        query_vector: Sequence[float],
        base_similarity: float,
        text: str,
        overlap_percentage: Optional[int] = None,
        loop_count: int = 0
    ) -> Tuple[float, str, int]:
        """
        Narrow `text` towards the sub-span most similar to the query.

        Args:
            query_vector: Embedding of the query
            base_similarity: Similarity of `text` as it stands
            text: Candidate text
            overlap_percentage: Overrides the configured sub-span share
            loop_count: Number of successful narrowing steps so far

        Returns:
            (best_similarity, best_text, final_loop_count); best_similarity is
            never lower than base_similarity

        Raises:
            ValueError: If overlap_percentage is outside (0, 100)
            EmbeddingError: If a sub-span cannot be embedded
        """
        if not self.enabled or len(text) <= 1:
            return base_similarity, text, loop_count

        if overlap_percentage is None:
            percentage = self.overlap_percentage
        else:
            percentage = self._check_percentage(overlap_percentage)
        text_length = len(text)
        sub_text_left = text[:text_length * percentage // 100]
        sub_text_right = text[text_length * (100 - percentage) // 100:]

        similarity_left = self._span_similarity(query_vector, sub_text_left, text_length)
        similarity_right = self._span_similarity(query_vector, sub_text_right, text_length)

        if similarity_left is not None and (similarity_right is None or similarity_left > similarity_right):
            best_similarity, best_text = similarity_left, sub_text_left
        elif similarity_right is not None:
            best_similarity, best_text = similarity_right, sub_text_right
        else:
            return base_similarity, text, loop_count

        if best_similarity > base_similarity:
            return self.refine(query_vector, best_similarity, best_text, percentage, loop_count + 1)
        return base_similarity, text, loop_count

    def _span_similarity(
        self,
        query_vector: Sequence[float],
        span: str,
        parent_length: int
    ) -> Optional[float]:
        """Similarity of a sub-span to the query, None when it cannot be scored."""
        # A span that does not shrink could loop forever
        if not span.strip() or len(span) >= parent_length:
            return None

        vector: List[float] = self.embedding_model.encode(
            span,
            self.pooling_strategy,
            timeout=self.embedding_timeout
        )
        try:
            return cosine(vector, query_vector)
        except DegenerateVectorError as e:
            logger.debug(f"Skipping sub-span of {len(span)} chars: {e}")
            return None

    @staticmethod
    def _check_percentage(overlap_percentage: int) -> int:
        if not 0 < overlap_percentage < 100:
            raise ValueError("overlap_percentage must be in (0, 100)")
        return overlap_percentage
