"""Chunk data models."""
from dataclasses import dataclass
from typing import Optional, List

@dataclass
class Chunk:
    """A bounded span of page text, the unit of embedding and storage."""
    document_id: str
    page_number: int
    text: str
    page_index: int = 0  # 1-based position within the page once split
    token_count: int = 0
    embedding: Optional[List[float]] = None
    coherence_score: float = 0.0  # mean similarity to the other chunks of its ingestion batch

    @property
    def chunk_id(self) -> str:
        """Format: "{document_id}_{page_number}_{page_index}"."""
        return f"{self.document_id}_{self.page_number}_{self.page_index}"

@dataclass
class ScoredChunk:
    """Chunk with its cosine similarity to a query."""
    chunk: Chunk
    similarity: float
