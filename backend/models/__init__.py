"""Data models for Pagewise Vector Search."""
from .document import Document, Page
from .chunk import Chunk, ScoredChunk
from .api import (
    EmbeddingPayload,
    Metadata,
    Loc,
    UrlIngestRequest,
    IngestResponse,
    ChunkRecord,
    RecordList,
)

__all__ = [
    "Document",
    "Page",
    "Chunk",
    "ScoredChunk",
    "EmbeddingPayload",
    "Metadata",
    "Loc",
    "UrlIngestRequest",
    "IngestResponse",
    "ChunkRecord",
    "RecordList",
]
