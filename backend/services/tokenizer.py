"""Token counting backed by tiktoken."""
import logging
from typing import List
import tiktoken

from config import TOKENIZER_ENCODING

logger = logging.getLogger(__name__)


class TokenizationError(Exception):
    """Raised when text cannot be encoded into tokens."""


class TokenCounter:
    """Counts tokens with a tiktoken encoding (cl100k_base by default)."""

    def __init__(self, encoding_name: str = TOKENIZER_ENCODING):
        """
        Initialize the token counter.

        Args:
            encoding_name: tiktoken encoding to load

        Raises:
            TokenizationError: If the encoding cannot be loaded
        """
        self.encoding_name = encoding_name
        try:
            self.encoder = tiktoken.get_encoding(encoding_name)
        except Exception as e:
            raise TokenizationError(f"Failed to load encoding {encoding_name}: {e}") from e
        logger.info(f"Initialized TokenCounter with encoding: {encoding_name}")

    def encode(self, text: str) -> List[int]:
        """Encode text into token ids; special-token markers are treated as plain text."""
        try:
            return self.encoder.encode(text, disallowed_special=())
        except Exception as e:
            raise TokenizationError(f"Failed to tokenize text: {e}") from e

    def count(self, text: str) -> int:
        return len(self.encode(text))
