"""Document loading service for PDF and web page sources."""
import logging
import threading
from pathlib import Path
from typing import List
import fitz  # PyMuPDF
import httpx
from bs4 import BeautifulSoup

from models.document import Document, Page
from services.page_extraction import PageExtractionPool
from services.tokenizer import TokenCounter
from config import EXTRACTION_WORKERS, URL_FETCH_TIMEOUT

logger = logging.getLogger(__name__)


class DocumentLoadError(Exception):
    """Raised when a whole source cannot be opened or fetched."""


class PdfPageReader:
    """Reads the plain text of single pages from an open PDF."""

    def __init__(self, pdf_document: "fitz.Document"):
        self.pdf_document = pdf_document
        # PyMuPDF documents must not be used from several threads at once
        self._lock = threading.Lock()

    def extract_plain_text(self, page_number: int) -> str:
        with self._lock:
            text = self.pdf_document[page_number - 1].get_text()
        return text.replace("\n", " ")


class DocumentLoader:
    """Loads PDFs and web pages into extracted, token-counted pages."""

    def __init__(
        self,
        token_counter: TokenCounter,
        max_workers: int = EXTRACTION_WORKERS,
        fetch_timeout: float = URL_FETCH_TIMEOUT
    ):
        """
        Initialize DocumentLoader.

        Args:
            token_counter: Counts tokens for every extracted page
            max_workers: Concurrent page extractions per PDF
            fetch_timeout: Timeout in seconds for fetching web pages
        """
        self.token_counter = token_counter
        self.max_workers = max_workers
        self.fetch_timeout = fetch_timeout

    def load_pdf(self, data: bytes, source: str = "upload.pdf") -> Document:
        """
        Extract text page-by-page from PDF bytes.

        Args:
            data: Raw PDF file contents
            source: Name recorded on the returned document

        Returns:
            Document with the pages that could be extracted and are not blank

        Raises:
            DocumentLoadError: If the bytes are not a readable PDF
        """
        if not data:
            raise DocumentLoadError("PDF body is empty")

        try:
            pdf_document = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise DocumentLoadError(f"Failed to open PDF {source}: {e}") from e

        try:
            if pdf_document.needs_pass and not pdf_document.authenticate(""):
                raise DocumentLoadError(f"PDF {source} is password protected")

            page_count = len(pdf_document)
            pool = PageExtractionPool(
                PdfPageReader(pdf_document),
                self.token_counter,
                max_workers=self.max_workers
            )
            pages = pool.extract(list(range(1, page_count + 1)))
        finally:
            pdf_document.close()

        pages = self._drop_blank_pages(pages, source)
        logger.info(f"Loaded {source}: {len(pages)} of {page_count} pages")
        return Document(source=source, pages=pages)

    def load_pdf_file(self, filepath: str) -> Document:
        path = Path(filepath)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise DocumentLoadError(f"Failed to read {filepath}: {e}") from e
        return self.load_pdf(data, source=path.name)

    def load_url(self, url: str) -> Document:
        """
        Fetch a web page and convert it to a single page of plain text.

        Raises:
            DocumentLoadError: If the page cannot be fetched
            TokenizationError: If the text cannot be tokenized
        """
        try:
            response = httpx.get(url, timeout=self.fetch_timeout, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DocumentLoadError(f"Failed to fetch {url}: {e}") from e

        soup = BeautifulSoup(response.text, "html.parser")
        for element in soup(["script", "style", "noscript"]):
            element.decompose()
        text = soup.get_text(separator=" ", strip=True)

        page = Page(page_number=1, text=text, token_count=self.token_counter.count(text))
        pages = self._drop_blank_pages([page], url)
        logger.info(f"Loaded {url}: {page.token_count} tokens")
        return Document(source=url, pages=pages)

    @staticmethod
    def _drop_blank_pages(pages: List[Page], source: str) -> List[Page]:
        kept = [page for page in pages if page.text.strip()]
        if len(kept) < len(pages):
            logger.warning(f"Skipped {len(pages) - len(kept)} blank pages in {source}")
        return kept
