"""Embedding model integration with Hugging Face Inference API."""
import time
import logging
from typing import Any, List, Optional, Protocol
import httpx
import numpy as np
from config import HUGGINGFACE_API_KEY, EMBEDDING_MODEL, EMBEDDING_API_URL, EMBEDDING_TIMEOUT

logger = logging.getLogger(__name__)

POOLING_STRATEGIES = ("mean", "cls", "max")


class EmbeddingError(RuntimeError):
    """Raised when text cannot be turned into an embedding vector."""


class TextEncoder(Protocol):
    """Anything that maps text to a vector under a pooling strategy."""

    def encode(
        self,
        text: str,
        pooling_strategy: str = "mean",
        timeout: Optional[float] = None
    ) -> List[float]:
        ...


class EmbeddingModel:
    """Wrapper for Hugging Face Inference API feature extraction."""

    def __init__(
        self,
        api_key: str = HUGGINGFACE_API_KEY,
        model_name: str = EMBEDDING_MODEL,
        api_url: Optional[str] = None,
        max_retries: int = 5,
        initial_delay: float = 5.0,
        timeout: float = EMBEDDING_TIMEOUT
    ):
        """
        Initialize the embedding model client.

        Args:
            api_key: Hugging Face API key
            model_name: Model identifier (default: sentence-transformers/all-mpnet-base-v2)
            api_url: Endpoint override; defaults to the model's inference URL
            max_retries: Maximum number of retry attempts for 503 errors
            initial_delay: Initial delay in seconds for exponential backoff
            timeout: Request timeout in seconds
        """
        if not api_key:
            raise ValueError("HUGGINGFACE_API_KEY environment variable is required")

        self.api_key = api_key
        self.model_name = model_name
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.timeout = timeout
        if api_url:
            self.api_url = api_url
        elif model_name == EMBEDDING_MODEL:
            self.api_url = EMBEDDING_API_URL
        else:
            self.api_url = f"https://api-inference.huggingface.co/models/{model_name}"

        logger.info(f"Initialized EmbeddingModel with model: {model_name}")

    def encode(
        self,
        text: str,
        pooling_strategy: str = "mean",
        timeout: Optional[float] = None
    ) -> List[float]:
        """
        Generate an embedding vector for a single text.

        Token-level model outputs are collapsed with `pooling_strategy`;
        outputs the API already pooled pass through unchanged.

        Args:
            text: Text to embed
            pooling_strategy: One of "mean", "cls" or "max"
            timeout: Overall deadline in seconds for this call, retries included

        Returns:
            Embedding vector as list of floats

        Raises:
            ValueError: If text is empty or the pooling strategy is unknown
            EmbeddingError: If the API request fails or the deadline passes
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")
        if pooling_strategy not in POOLING_STRATEGIES:
            raise ValueError(f"Unknown pooling strategy: {pooling_strategy}")

        output = self._embed_with_retry([text], timeout)
        return self._pool(output, pooling_strategy)

    @staticmethod
    def _pool(output: Any, pooling_strategy: str) -> List[float]:
        """Collapse a single-input API response into one vector."""
        try:
            array = np.asarray(output, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise EmbeddingError(f"Unexpected embedding response: {e}") from e

        # [batch, tokens, dim] for token-level models
        while array.ndim > 2:
            array = array[0]

        if array.size == 0 or array.ndim == 0:
            raise EmbeddingError("Embedding response was empty")
        if array.ndim == 1:
            return array.tolist()

        if pooling_strategy == "mean":
            pooled = array.mean(axis=0)
        elif pooling_strategy == "cls":
            pooled = array[0]
        else:
            pooled = array.max(axis=0)
        return pooled.tolist()

    def _embed_with_retry(self, texts: List[str], timeout: Optional[float] = None) -> Any:
        """
        Internal method to call HF API with exponential backoff retry strategy.

        HF free tier models "sleep" and take 15-20s to load on first query.
        This implements aggressive retry with exponential backoff for 503 errors.

        Args:
            texts: List of texts to embed
            timeout: Overall deadline in seconds; None means per-request timeouts only

        Returns:
            Decoded JSON response

        Raises:
            EmbeddingError: If API request fails after all retries or the deadline passes
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        payload = {
            "inputs": texts,
            "options": {
                "wait_for_model": True  # Wait for model to load if sleeping
            }
        }

        deadline = None if timeout is None else time.monotonic() + timeout
        delay = self.initial_delay
        last_error = None

        for attempt in range(self.max_retries):
            request_timeout = self.timeout
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    last_error = f"Deadline of {timeout}s exceeded"
                    break
                request_timeout = min(request_timeout, remaining)

            try:
                start_time = time.time()

                with httpx.Client(timeout=request_timeout) as client:
                    response = client.post(
                        self.api_url,
                        headers=headers,
                        json=payload
                    )

                elapsed = time.time() - start_time

                # Handle 503 Service Unavailable (model loading)
                if response.status_code == 503:
                    error_data = response.json() if response.text else {}
                    estimated_time = error_data.get("estimated_time", delay)

                    logger.warning(
                        f"Model loading (503) on attempt {attempt + 1}/{self.max_retries}. "
                        f"Estimated time: {estimated_time}s. Retrying in {delay}s..."
                    )

                    if attempt < self.max_retries - 1 and self._can_wait(deadline, delay):
                        time.sleep(delay)
                        delay = min(delay * 2, 60.0)  # Exponential backoff, max 60s
                        continue
                    else:
                        last_error = f"Model failed to load after {attempt + 1} attempts"
                        break

                # Handle rate limiting
                if response.status_code == 429:
                    logger.error("Rate limit exceeded for Hugging Face API")
                    raise EmbeddingError("Rate limit exceeded. Please try again later.")

                # Handle authentication errors
                if response.status_code == 401:
                    logger.error("Authentication failed for Hugging Face API")
                    raise EmbeddingError("Invalid API key")

                # Handle other errors
                if response.status_code != 200:
                    error_msg = f"API request failed with status {response.status_code}: {response.text}"
                    logger.error(error_msg)
                    raise EmbeddingError(error_msg)

                embeddings = response.json()

                if elapsed > 10.0:
                    logger.info(
                        f"Model loading delay detected: {elapsed:.1f}s for {len(texts)} texts "
                        f"(attempt {attempt + 1})"
                    )
                else:
                    logger.debug(f"Generated embeddings for {len(texts)} texts in {elapsed:.2f}s")

                return embeddings

            except httpx.TimeoutException:
                last_error = f"Request timeout after {request_timeout}s"
                logger.error(f"{last_error} on attempt {attempt + 1}/{self.max_retries}")

                if attempt < self.max_retries - 1 and self._can_wait(deadline, delay):
                    time.sleep(delay)
                    delay = min(delay * 2, 60.0)
                    continue
                break

            except httpx.RequestError as e:
                last_error = f"Network error: {str(e)}"
                logger.error(f"{last_error} on attempt {attempt + 1}/{self.max_retries}")

                if attempt < self.max_retries - 1 and self._can_wait(deadline, delay):
                    time.sleep(delay)
                    delay = min(delay * 2, 60.0)
                    continue
                break

        # All retries exhausted
        error_msg = f"Failed to generate embeddings after {self.max_retries} attempts. Last error: {last_error}"
        logger.error(error_msg)
        raise EmbeddingError(error_msg)

    @staticmethod
    def _can_wait(deadline: Optional[float], delay: float) -> bool:
        return deadline is None or time.monotonic() + delay < deadline

    def warmup(self) -> bool:
        """
        Warm up the model with a dummy query to avoid cold start delays.

        Returns:
            True if warmup successful, False otherwise
        """
        try:
            logger.info("Warming up embedding model...")
            start_time = time.time()

            self.encode("warmup query")

            elapsed = time.time() - start_time
            logger.info(f"Model warmup completed in {elapsed:.1f}s")
            return True

        except Exception as e:
            logger.error(f"Model warmup failed: {str(e)}")
            return False
