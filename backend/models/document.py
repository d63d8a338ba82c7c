"""Document data models."""
from dataclasses import dataclass
from typing import List

@dataclass(frozen=True)
class Page:
    """Plain text of a single source page with its token count."""
    page_number: int
    text: str
    token_count: int

@dataclass
class Document:
    """Pages extracted from one source (PDF file or web page)."""
    source: str
    pages: List[Page]

    @property
    def total_pages(self) -> int:
        return len(self.pages)
