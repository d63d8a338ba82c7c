"""Unit tests for ContextRefiner."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import Mock
from services.context_refiner import ContextRefiner
from services.embedding_model import EmbeddingError


class LetterCountEncoder:
    """Embeds text as [count of "a", count of "b"]."""

    def __init__(self):
        self.calls = []

    def encode(self, text, pooling_strategy="mean", timeout=None):
        self.calls.append(text)
        return [float(text.count("a")), float(text.count("b"))]


class TestContextRefiner:
    """Test suite for ContextRefiner."""

    def test_narrows_to_matching_span(self):
        """The left span wins, then further narrowing stops improving."""
        encoder = LetterCountEncoder()
        refiner = ContextRefiner(encoder, overlap_percentage=55, enabled=True)

        similarity, text, loop_count = refiner.refine([1.0, 0.0], 0.707, "aaaabbbb")

        assert similarity == pytest.approx(1.0)
        assert text == "aaaa"
        assert loop_count == 1
        # "aaaabbbb" -> "aaaa" | "abbbb", then "aaaa" -> "aa" | "aaa"
        assert encoder.calls == ["aaaa", "abbbb", "aa", "aaa"]

    def test_right_span_can_win(self):
        encoder = LetterCountEncoder()
        refiner = ContextRefiner(encoder, overlap_percentage=55, enabled=True)

        similarity, text, loop_count = refiner.refine([0.0, 1.0], 0.5, "aaaabbbb")

        assert similarity == pytest.approx(1.0)
        assert set(text) == {"b"}
        assert loop_count >= 1

    def test_no_improvement_keeps_text(self):
        encoder = LetterCountEncoder()
        refiner = ContextRefiner(encoder, overlap_percentage=55, enabled=True)

        similarity, text, loop_count = refiner.refine([1.0, 0.0], 0.99, "abab")

        assert (similarity, text, loop_count) == (0.99, "abab", 0)
        assert len(encoder.calls) == 2

    def test_never_returns_lower_similarity(self):
        encoder = LetterCountEncoder()
        refiner = ContextRefiner(encoder, enabled=True)

        for text in ["ab", "aabbab", "bbbbaaaa", "abababababab"]:
            similarity, refined, _ = refiner.refine([1.0, 1.0], 0.3, text)
            assert similarity >= 0.3
            assert refined in text

    def test_short_text_is_returned_unchanged(self):
        encoder = Mock()
        refiner = ContextRefiner(encoder, enabled=True)

        assert refiner.refine([1.0], 0.4, "a") == (0.4, "a", 0)
        assert refiner.refine([1.0], 0.4, "") == (0.4, "", 0)
        encoder.encode.assert_not_called()

    def test_loop_count_is_carried(self):
        refiner = ContextRefiner(LetterCountEncoder(), enabled=True)

        assert refiner.refine([1.0, 0.0], 0.2, "x", loop_count=3) == (0.2, "x", 3)

    def test_disabled_refiner_is_identity(self):
        encoder = Mock()
        refiner = ContextRefiner(encoder, enabled=False)

        assert refiner.refine([1.0, 0.0], 0.5, "aaaabbbb") == (0.5, "aaaabbbb", 0)
        encoder.encode.assert_not_called()

    def test_degenerate_spans_are_skipped(self):
        """Spans whose vectors have no magnitude never replace the text."""
        encoder = Mock()
        encoder.encode.return_value = [0.0, 0.0]
        refiner = ContextRefiner(encoder, enabled=True)

        assert refiner.refine([1.0, 0.0], 0.1, "cccccccc") == (0.1, "cccccccc", 0)

    def test_whitespace_spans_are_not_embedded(self):
        encoder = LetterCountEncoder()
        refiner = ContextRefiner(encoder, overlap_percentage=50, enabled=True)

        refiner.refine([1.0, 0.0], 0.1, "    aaaa")

        assert "    " not in encoder.calls

    def test_overlap_override(self):
        encoder = LetterCountEncoder()
        refiner = ContextRefiner(encoder, overlap_percentage=55, enabled=True)

        refiner.refine([1.0, 0.0], 0.99, "abababababab", overlap_percentage=75)

        assert encoder.calls == ["ababababa", "babababab"]

    def test_embedding_failure_propagates(self):
        encoder = Mock()
        encoder.encode.side_effect = EmbeddingError("API down")
        refiner = ContextRefiner(encoder, enabled=True)

        with pytest.raises(EmbeddingError):
            refiner.refine([1.0], 0.1, "some text")

    def test_sub_span_embeddings_honour_timeout(self):
        encoder = Mock()
        encoder.encode.return_value = [1.0, 0.0]
        refiner = ContextRefiner(encoder, enabled=True, pooling_strategy="max", embedding_timeout=3.0)

        refiner.refine([1.0, 0.0], 1.0, "abab")

        assert encoder.encode.call_count == 2
        for call in encoder.encode.call_args_list:
            assert call[0][1] == "max"
            assert call[1]["timeout"] == 3.0

    @pytest.mark.parametrize("percentage", [0, 100, -5])
    def test_rejects_invalid_overlap_override(self, percentage):
        """An explicit override is validated, never swapped for the configured value."""
        encoder = LetterCountEncoder()
        refiner = ContextRefiner(encoder, overlap_percentage=55, enabled=True)

        with pytest.raises(ValueError, match="overlap_percentage"):
            refiner.refine([1.0, 0.0], 0.1, "aaaabbbb", overlap_percentage=percentage)

        assert encoder.calls == []

    @pytest.mark.parametrize("percentage", [0, 100, -5, 150])
    def test_rejects_invalid_overlap(self, percentage):
        with pytest.raises(ValueError, match="overlap_percentage"):
            ContextRefiner(Mock(), overlap_percentage=percentage)
