"""Tests for boundary-aware text chunking."""

import math
import random

import pytest


def _chunker(**kwargs):
    from graphex_kg.ingestion.chunking import TextChunker

    options = {"max_chunk_size": 200, "overlap_size": 20, "min_chunk_size": 50}
    options.update(kwargs)
    return TextChunker(**options)


class TestTextChunker:
    """Tests for TextChunker.chunk."""

    def test_empty_document(self):
        from graphex_kg.errors import EmptyDocumentError

        with pytest.raises(EmptyDocumentError):
            _chunker().chunk("")
        with pytest.raises(EmptyDocumentError):
            _chunker().chunk("   \n\t ")

    def test_small_document_single_chunk(self):
        """Text at or under min_chunk_size stays whole."""
        from graphex_kg.ingestion.chunking import chunk_text

        result = chunk_text("Cells contain DNA.\nDNA encodes proteins.")
        assert len(result.chunks) == 1
        chunk = result.chunks[0]
        assert chunk.overlap_before == 0
        assert chunk.total_count == 1
        assert chunk.estimated_tokens == math.ceil(len(chunk.content) / 4)
        assert result.statistics.quality_score == 100
        assert result.document_meta.title == "Cells contain DNA."

    def test_prefers_heading_boundary(self):
        """A section heading wins over later paragraph and word boundaries."""
        from graphex_kg.types.chunks import SplitMethod

        text = "word " * 30 + "\n## Methods\n" + "word " * 30
        result = _chunker().chunk(text)

        first, second = result.chunks
        assert first.split_method == SplitMethod.SECTION
        assert second.content[second.overlap_before:].startswith("## Methods")
        assert result.document_meta.title == "Methods"

    def test_hard_limit_split(self):
        """Text without separators is cut at max_chunk_size and penalised."""
        from graphex_kg.types.chunks import SplitMethod

        result = _chunker().chunk("x" * 500)

        assert [c.split_method for c in result.chunks] == [
            SplitMethod.HARD_LIMIT,
            SplitMethod.HARD_LIMIT,
            SplitMethod.PARAGRAPH,
        ]
        assert result.statistics.quality_score == 80
        assert any("hard limit" in w for w in result.statistics.warnings)

    def test_overlap_prefix(self):
        """Chunks after the first start with the previous chunk's tail."""
        result = _chunker().chunk("x" * 500)
        second = result.chunks[1]
        assert second.overlap_before == 20
        assert result.chunks[0].overlap_after == 20
        assert result.chunks[-1].overlap_after == 0
        assert second.start_offset == 180

    def test_invalid_sizes(self):
        with pytest.raises(ValueError):
            _chunker(max_chunk_size=50, min_chunk_size=50)

    def test_coverage_random(self):
        """Chunks tile the source exactly once after removing overlap."""
        rng = random.Random(3)
        vocabulary = ["cell", "membrane", "protein.", "\n\n", "# Intro\n", "## Part\n", "DNA"]

        for _ in range(30):
            text = " ".join(rng.choice(vocabulary) for _ in range(rng.randint(1, 400)))
            if not text.strip():
                continue
            result = _chunker().chunk(text)

            rebuilt = "".join(c.content[c.overlap_before:] for c in result.chunks)
            assert rebuilt == text
            assert result.chunks[0].start_offset == 0
            assert result.chunks[-1].end_offset == len(text)
            for chunk in result.chunks:
                assert chunk.content == text[chunk.start_offset:chunk.end_offset]
                assert len(chunk.content) - chunk.overlap_before <= 200
                assert chunk.total_count == len(result.chunks)
