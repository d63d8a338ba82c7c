"""Chunking engine with token-budgeted overlapping splits."""
import logging
from typing import List, Optional, Tuple

from models.chunk import Chunk
from config import TOKEN_BUDGET, OVERLAP_PERCENT

logger = logging.getLogger(__name__)

# A middle section's token estimate gets the overlap inflation applied this
# many extra times on top of the base adjustment. The extra inflation carries
# over to every later section of the same page.
MIDDLE_SECTION_EXTRA_INFLATIONS = 1


def _grow(value: int, percent: int) -> int:
    """Add `percent`% of a non-negative value, truncated to an int."""
    return value + value * percent // 100


def _shrink(value: int, percent: int) -> int:
    return value - value * percent // 100


class ChunkingEngine:
    """Segments page text into overlapping chunks bounded by a token budget."""

    def __init__(self, token_budget: int = TOKEN_BUDGET, overlap_percent: int = OVERLAP_PERCENT):
        """
        Initialize ChunkingEngine.

        Args:
            token_budget: Token count a chunk may reach before it is split
            overlap_percent: Share of each shared boundary duplicated into both sides
        """
        if token_budget <= 0:
            raise ValueError("token_budget must be positive")
        if not 0 <= overlap_percent < 100:
            raise ValueError("overlap_percent must be in [0, 100)")

        self.token_budget = token_budget
        self.overlap_percent = overlap_percent

    def split(
        self,
        chunk: Chunk,
        token_budget: Optional[int] = None,
        overlap_percent: Optional[int] = None
    ) -> List[Chunk]:
        """
        Split a chunk whose token count exceeds the budget.

        Token density is assumed uniform over characters, so sections are cut
        at equal character offsets and widened by the overlap percent. The
        last section is written back into `chunk` itself; every earlier
        section becomes a new chunk.

        Args:
            chunk: Chunk to split, mutated in place
            token_budget: Overrides the engine's token budget
            overlap_percent: Overrides the engine's overlap percent

        Returns:
            `chunk` followed by the new chunks in section order, so page
            indices read N, 1, 2, ..., N-1. A chunk within budget comes back
            alone with page_index 1.
        """
        token_budget = token_budget or self.token_budget
        overlap = self.overlap_percent if overlap_percent is None else overlap_percent

        if chunk.token_count <= token_budget:
            section_count = 1
        else:
            section_count = chunk.token_count // token_budget + 1

        if section_count == 1:
            chunk.page_index = 1
            return [chunk]

        text = chunk.text
        text_length = len(text)
        split_text_length = text_length // section_count
        split_token_count = _grow(chunk.token_count // section_count, overlap)

        sub_chunks: List[Chunk] = []
        for j in range(section_count):
            start = j * split_text_length
            end = (j + 1) * split_text_length
            is_first_section = j == 0
            is_last_section = j == section_count - 1

            if is_first_section:
                end = _grow(end, overlap)
            elif is_last_section:
                start = _shrink(start, overlap)
                # Integer division can leave a remainder past the last cut
                end = text_length
            else:
                start = _shrink(start, overlap)
                end = _grow(end, overlap)
                for _ in range(MIDDLE_SECTION_EXTRA_INFLATIONS):
                    split_token_count = _grow(split_token_count, overlap)

            start, end = self._clamp(start, end, text_length)
            sub_text = text[start:end]

            if is_last_section:
                chunk.text = sub_text
                chunk.page_index = j + 1
                chunk.token_count = split_token_count
            else:
                sub_chunks.append(Chunk(
                    document_id=chunk.document_id,
                    page_number=chunk.page_number,
                    text=sub_text,
                    page_index=j + 1,
                    token_count=split_token_count
                ))

        logger.debug(
            f"Split page {chunk.page_number} of {chunk.document_id} into {section_count} sections"
        )
        return [chunk] + sub_chunks

    def expand(self, chunks: List[Chunk]) -> List[Chunk]:
        """
        Split every oversized chunk, appending the new sub-chunks to `chunks`.

        Only the chunks present before the call are examined; appended
        sub-chunks are not split again.

        Args:
            chunks: Working list of page chunks, extended in place

        Returns:
            The same list
        """
        original_length = len(chunks)
        for i in range(original_length):
            chunks.extend(self.split(chunks[i])[1:])

        logger.info(f"Expanded {original_length} pages into {len(chunks)} chunks")
        return chunks

    @staticmethod
    def _clamp(start: int, end: int, text_length: int) -> Tuple[int, int]:
        start = max(0, min(start, text_length))
        end = max(start, min(end, text_length))
        return start, end
