"""Unit tests for ChunkingEngine."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from models.chunk import Chunk
from services.chunking_engine import ChunkingEngine


def unique_text(length: int) -> str:
    """Text whose characters are all distinct, so a substring has exactly one offset."""
    return "".join(chr(0x4E00 + i) for i in range(length))


def span_of(text: str, sub_text: str):
    start = text.index(sub_text)
    return start, start + len(sub_text)


class TestChunkingEngine:
    """Test suite for ChunkingEngine."""

    @pytest.fixture
    def engine(self):
        return ChunkingEngine(token_budget=128, overlap_percent=10)

    def test_initialization_defaults(self):
        """Default budget and overlap come from config."""
        engine = ChunkingEngine()
        assert engine.token_budget == 128
        assert engine.overlap_percent == 10

    def test_initialization_rejects_bad_values(self):
        with pytest.raises(ValueError, match="token_budget"):
            ChunkingEngine(token_budget=0)

        with pytest.raises(ValueError, match="overlap_percent"):
            ChunkingEngine(overlap_percent=100)

        with pytest.raises(ValueError, match="overlap_percent"):
            ChunkingEngine(overlap_percent=-5)

    def test_within_budget_returns_single_chunk(self, engine):
        """A page within the budget comes back unchanged with page_index 1."""
        chunk = Chunk(document_id="doc1", page_number=4, text="Short page text.", page_index=7, token_count=100)

        result = engine.split(chunk)

        assert result == [chunk]
        assert result[0] is chunk
        assert chunk.text == "Short page text."
        assert chunk.token_count == 100
        assert chunk.page_index == 1

    def test_exactly_at_budget_is_not_split(self, engine):
        chunk = Chunk(document_id="doc1", page_number=1, text=unique_text(128), token_count=128)

        result = engine.split(chunk)

        assert len(result) == 1
        assert chunk.page_index == 1

    def test_three_sections(self, engine):
        """300 tokens at a 128 budget gives 300 // 128 + 1 = 3 chunks."""
        text = unique_text(300)
        chunk = Chunk(document_id="doc1", page_number=2, text=text, token_count=300)

        result = engine.split(chunk)

        assert len(result) == 3
        # The input chunk holds the last section and comes first
        assert result[0] is chunk
        assert [c.page_index for c in result] == [3, 1, 2]
        assert all(c.document_id == "doc1" and c.page_number == 2 for c in result)

    def test_three_sections_bounds(self, engine):
        """Section bounds widen by the overlap percent of their own offsets."""
        text = unique_text(300)
        chunk = Chunk(document_id="doc1", page_number=1, text=text, token_count=300)

        by_index = {c.page_index: c for c in engine.split(chunk)}

        # split length 100: first [0, 110), middle [90, 220), last [180, 300)
        assert span_of(text, by_index[1].text) == (0, 110)
        assert span_of(text, by_index[2].text) == (90, 220)
        assert span_of(text, by_index[3].text) == (180, 300)

    def test_three_sections_token_counts(self, engine):
        """Middle sections inflate the token estimate a second time, carrying into later sections."""
        chunk = Chunk(document_id="doc1", page_number=1, text=unique_text(300), token_count=300)

        by_index = {c.page_index: c for c in engine.split(chunk)}

        # base 300 // 3 = 100 -> 110, middle -> 110 + 11 = 121
        assert by_index[1].token_count == 110
        assert by_index[2].token_count == 121
        assert by_index[3].token_count == 121

    def test_adjacent_chunks_overlap(self, engine):
        text = unique_text(1000)
        chunk = Chunk(document_id="doc1", page_number=1, text=text, token_count=600)

        chunks = sorted(engine.split(chunk), key=lambda c: c.page_index)
        spans = [span_of(text, c.text) for c in chunks]

        for (_, previous_end), (next_start, _) in zip(spans, spans[1:]):
            assert next_start < previous_end

    def test_chunks_cover_every_offset(self, engine):
        """The union of chunk ranges covers the whole page, uneven lengths included."""
        for length, tokens in [(300, 300), (1001, 700), (997, 1300), (50, 129)]:
            text = unique_text(length)
            chunk = Chunk(document_id="doc1", page_number=1, text=text, token_count=tokens)

            covered = set()
            for sub_chunk in engine.split(chunk):
                start, end = span_of(text, sub_chunk.text)
                covered.update(range(start, end))

            assert covered == set(range(length)), f"gap for length={length} tokens={tokens}"

    def test_zero_overlap_partitions_text(self):
        engine = ChunkingEngine(token_budget=100, overlap_percent=0)
        text = unique_text(302)
        chunk = Chunk(document_id="doc1", page_number=1, text=text, token_count=350)

        chunks = sorted(engine.split(chunk), key=lambda c: c.page_index)

        assert len(chunks) == 4
        assert "".join(c.text for c in chunks) == text

    def test_text_shorter_than_section_count(self, engine):
        """Bounds are clamped, so tiny texts never raise."""
        chunk = Chunk(document_id="doc1", page_number=1, text="abc", token_count=1000)

        result = engine.split(chunk)

        assert len(result) == 1000 // 128 + 1
        assert all(c.text in "abc" for c in result)
        assert chunk.text.endswith("c")

    def test_split_overrides(self, engine):
        chunk = Chunk(document_id="doc1", page_number=1, text=unique_text(100), token_count=100)

        result = engine.split(chunk, token_budget=40, overlap_percent=0)

        assert len(result) == 3

    def test_expand_splits_only_original_chunks(self, engine):
        """Sub-chunks appended during expansion are not split again."""
        big = Chunk(document_id="doc1", page_number=1, text=unique_text(2000), token_count=1000)
        small = Chunk(document_id="doc1", page_number=2, text="small page", token_count=20)
        chunks = [big, small]

        result = engine.expand(chunks)

        assert result is chunks
        # 1000 // 128 + 1 = 8 sections for page 1, one chunk for page 2
        assert len(result) == 9
        assert result[0] is big and result[1] is small
        assert sorted(c.page_index for c in result if c.page_number == 1) == list(range(1, 9))
        assert small.page_index == 1
        # Appended sub-chunks exceed the budget but stay whole
        assert any(c.token_count > 128 for c in result[2:])

    def test_expand_keeps_unique_keys(self, engine):
        chunks = [
            Chunk(document_id="doc1", page_number=p, text=unique_text(500), token_count=400)
            for p in (1, 2, 3)
        ]

        engine.expand(chunks)

        keys = [(c.document_id, c.page_number, c.page_index) for c in chunks]
        assert len(keys) == len(set(keys))

    def test_chunk_id_format(self):
        chunk = Chunk(document_id="doc1", page_number=3, text="x", page_index=2)
        assert chunk.chunk_id == "doc1_3_2"
