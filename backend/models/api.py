"""Request and response models for the HTTP API."""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

class Loc(BaseModel):
    """Location of a payload inside its source document."""
    model_config = ConfigDict(populate_by_name=True)

    page_number: int = Field(alias="pageNumber", ge=0)
    page_index: int = Field(default=0, alias="pageIndex", ge=0)

class Metadata(BaseModel):
    loc: Loc

class EmbeddingPayload(BaseModel):
    """One page of text posted to the ingestion endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    page_content: str = Field(alias="pageContent")
    tokens: Optional[int] = Field(default=None, ge=0)  # recomputed server side
    metadata: Metadata

class UrlIngestRequest(BaseModel):
    url: str = Field(min_length=1)

class IngestResponse(BaseModel):
    document_id: str
    chunks_stored: int

class ChunkRecord(BaseModel):
    """A stored chunk as returned by the listing endpoint."""
    document_id: str
    page_number: int
    page_index: int
    text: str
    token_count: int
    similarity_score: float  # ingestion-time coherence score
    similarity: Optional[float] = None  # query similarity, only set for searches

class RecordList(BaseModel):
    items: List[ChunkRecord]
    total: int
