"""Integration tests for EmbeddingModel with real API (optional)."""
import sys
from pathlib import Path
import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from services.embedding_model import EmbeddingModel
from services.similarity import cosine
from config import HUGGINGFACE_API_KEY


@pytest.mark.skipif(
    not HUGGINGFACE_API_KEY,
    reason="HUGGINGFACE_API_KEY not set"
)
class TestEmbeddingIntegration:
    """Integration tests with real Hugging Face API."""

    def test_real_encode(self):
        """Test embedding a single text with real API."""
        model = EmbeddingModel()

        result = model.encode("This is a test sentence.")

        # all-mpnet-base-v2 produces 768-dimensional embeddings
        assert len(result) == 768
        assert all(isinstance(x, float) for x in result)

    def test_related_texts_score_higher(self):
        model = EmbeddingModel()

        query = model.encode("How do I reset my password?")
        related = model.encode("Steps to change a forgotten account password.")
        unrelated = model.encode("The recipe needs two cups of flour.")

        assert cosine(query, related) > cosine(query, unrelated)

    def test_real_warmup(self):
        """Test model warmup with real API."""
        model = EmbeddingModel()

        result = model.warmup()

        assert result is True
