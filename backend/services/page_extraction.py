"""Bounded-concurrency extraction of page text and token counts."""
import concurrent.futures
import logging
from typing import Any, List, Protocol, Sequence

from models.document import Page
from services.tokenizer import TokenCounter
from config import EXTRACTION_WORKERS

logger = logging.getLogger(__name__)


class PageExtractionError(Exception):
    """Raised when a single page cannot be turned into text."""

    def __init__(self, page_number: int, reason: str):
        self.page_number = page_number
        super().__init__(f"Page {page_number}: {reason}")


class PageTextExtractor(Protocol):
    def extract_plain_text(self, raw_page: Any) -> str:
        ...


class PageExtractionPool:
    """
    Extracts pages in parallel with at most `max_workers` in flight.

    Each page is an independent unit of work: extract plain text, then count
    its tokens. A failing page is logged and left out of the result rather
    than failing the whole document.
    """

    def __init__(
        self,
        text_extractor: PageTextExtractor,
        token_counter: TokenCounter,
        max_workers: int = EXTRACTION_WORKERS
    ):
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")

        self.text_extractor = text_extractor
        self.token_counter = token_counter
        self.max_workers = max_workers

    def extract(self, raw_pages: Sequence[Any]) -> List[Page]:
        """
        Extract every page and wait for all of them to finish.

        Args:
            raw_pages: Pages in document order; page numbers are their 1-based positions

        Returns:
            Extracted pages sorted by page number, failed pages omitted
        """
        if not raw_pages:
            return []

        pages: List[Page] = []
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(self._extract_page, page_number, raw_page): page_number
                for page_number, raw_page in enumerate(raw_pages, start=1)
            }

            # Barrier: nothing is returned until every page has finished
            done, _ = concurrent.futures.wait(futures)

            for future in done:
                try:
                    pages.append(future.result())
                except PageExtractionError as e:
                    logger.warning(f"Dropping page from document: {e}")

        pages.sort(key=lambda page: page.page_number)
        logger.info(
            f"Extracted {len(pages)}/{len(raw_pages)} pages with {self.max_workers} workers",
            extra={"extra": {"pages_total": len(raw_pages), "pages_extracted": len(pages)}}
        )
        return pages

    def _extract_page(self, page_number: int, raw_page: Any) -> Page:
        try:
            text = self.text_extractor.extract_plain_text(raw_page)
            token_count = self.token_counter.count(text)
        except Exception as e:
            raise PageExtractionError(page_number, str(e)) from e

        return Page(page_number=page_number, text=text, token_count=token_count)
