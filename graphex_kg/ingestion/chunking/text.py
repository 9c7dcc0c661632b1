"""
Text Chunker

Boundary-aware chunking with overlap for documents that exceed a single
model call's character budget.

Algorithm:
    1. Documents no longer than min_chunk_size stay whole
    2. Greedily take up to max_chunk_size characters, searching backward for
       the highest-priority separator (h1 > h2 > h3 > blank line > sentence
       end > word boundary) that lies beyond min_chunk_size
    3. With no acceptable separator, hard-cut at max_chunk_size
    4. Prefix every chunk after the first with up to overlap_size trailing
       characters of the previous raw chunk

Overlapping text is not deduplicated here; nodes it produces twice are merged
downstream by the node deduplicator.

Example:
    >>> chunker = TextChunker(max_chunk_size=30000)
    >>> result = chunker.chunk(text, title="Attention Is All You Need")
    >>> print(result.statistics.total_chunks, result.statistics.quality_score)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from graphex_kg.errors import EmptyDocumentError
from graphex_kg.types.chunks import (
    Chunk,
    ChunkingResult,
    ChunkingStatistics,
    DocumentMeta,
    DocumentType,
    SplitMethod,
)
from graphex_kg.utils.token_count import estimate_tokens

if TYPE_CHECKING:
    from graphex_kg.config import KGConfig

logger = logging.getLogger(__name__)

LARGE_DOCUMENT_CHARS = 200_000


@dataclass(frozen=True)
class _Separator:
    """A split boundary candidate, in priority order."""

    text: str
    method: SplitMethod
    heading: bool = False


_SEPARATORS: tuple[_Separator, ...] = (
    _Separator("\n# ", SplitMethod.CHAPTER, heading=True),
    _Separator("\n## ", SplitMethod.SECTION, heading=True),
    _Separator("\n### ", SplitMethod.SECTION, heading=True),
    _Separator("\n\n", SplitMethod.PARAGRAPH),
    _Separator(". ", SplitMethod.SENTENCE),
    _Separator(" ", SplitMethod.WORD),
)


@dataclass
class _RawChunk:
    """A chunk before overlap is applied."""

    content: str
    start: int
    end: int
    method: SplitMethod


# Regex patterns
_HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+)$", re.MULTILINE)
_PARAGRAPH_BREAK = re.compile(r"\n\n+")


class TextChunker:
    """
    Splits document text into overlapping, boundary-aligned chunks.

    Args:
        max_chunk_size: Character budget per chunk (before overlap)
        overlap_size: Trailing characters of the previous chunk to prepend
        min_chunk_size: Separators at or before this offset are ignored
    """

    def __init__(
        self,
        *,
        max_chunk_size: int = 30000,
        overlap_size: int = 1000,
        min_chunk_size: int = 1000,
    ) -> None:
        if max_chunk_size <= min_chunk_size:
            raise ValueError("max_chunk_size must be greater than min_chunk_size")
        self.max_chunk_size = max_chunk_size
        self.overlap_size = overlap_size
        self.min_chunk_size = min_chunk_size

    @classmethod
    def from_config(cls, config: "KGConfig") -> "TextChunker":
        return cls(
            max_chunk_size=config.max_chunk_size,
            overlap_size=config.overlap_size,
            min_chunk_size=config.min_chunk_size,
        )

    def chunk(self, text: str, title: str | None = None) -> ChunkingResult:
        """
        Split a document into chunks.

        Args:
            text: Raw document text
            title: Optional document title

        Returns:
            ChunkingResult with chunks, document metadata and statistics

        Raises:
            EmptyDocumentError: If text is empty or whitespace only
        """
        if not text or not text.strip():
            raise EmptyDocumentError("Document text is empty")

        if len(text) > LARGE_DOCUMENT_CHARS:
            logger.warning(
                f"Document is very large ({len(text)} chars), processing may be expensive"
            )

        meta = self._analyze(text, title)

        if len(text) <= self.min_chunk_size:
            raw = [_RawChunk(text, 0, len(text), SplitMethod.PARAGRAPH)]
        else:
            raw = self._split(text)

        chunks = self._add_overlap(raw)
        statistics = self._statistics(chunks, len(text))

        logger.debug(
            f"Chunked {len(text)} chars into {len(chunks)} chunks "
            f"(quality {statistics.quality_score})"
        )
        return ChunkingResult(chunks=chunks, document_meta=meta, statistics=statistics)

    # -------------------------------------------------------------------------
    # Splitting
    # -------------------------------------------------------------------------

    def _split(self, text: str) -> list[_RawChunk]:
        """Greedy boundary-aware split without overlap."""
        chunks: list[_RawChunk] = []
        position = 0

        while position < len(text):
            remaining = text[position:]

            if len(remaining) <= self.max_chunk_size:
                chunks.append(
                    _RawChunk(remaining, position, len(text), SplitMethod.PARAGRAPH)
                )
                break

            split_at, method = self._find_split_point(remaining)
            chunks.append(
                _RawChunk(
                    remaining[:split_at],
                    position,
                    position + split_at,
                    method,
                )
            )
            position += split_at

        return chunks

    def _find_split_point(self, text: str) -> tuple[int, SplitMethod]:
        """Highest-priority separator beyond min_chunk_size, else a hard cut."""
        window = text[: self.max_chunk_size]

        for separator in _SEPARATORS:
            index = window.rfind(separator.text)
            if index > self.min_chunk_size:
                if separator.heading:
                    # Keep the heading line with the chunk it introduces
                    return index + 1, separator.method
                return index + len(separator.text), separator.method

        logger.warning(
            f"No semantic boundary found, hard split at {self.max_chunk_size} chars"
        )
        return self.max_chunk_size, SplitMethod.HARD_LIMIT

    def _add_overlap(self, raw: list[_RawChunk]) -> list[Chunk]:
        """Prefix each chunk after the first with the previous chunk's tail."""
        total = len(raw)
        chunks: list[Chunk] = []

        for index, current in enumerate(raw):
            overlap_before = 0
            content = current.content

            if index > 0:
                previous = raw[index - 1]
                overlap_before = min(self.overlap_size, len(previous.content))
                if overlap_before:
                    content = previous.content[-overlap_before:] + content

            overlap_after = 0
            if index < total - 1:
                overlap_after = min(self.overlap_size, len(current.content))

            chunks.append(
                Chunk(
                    id=f"chunk_{index}",
                    content=content,
                    start_offset=current.start - overlap_before,
                    end_offset=current.end,
                    index=index,
                    total_count=total,
                    estimated_tokens=estimate_tokens(content),
                    overlap_before=overlap_before,
                    overlap_after=overlap_after,
                    split_method=current.method,
                )
            )

        return chunks

    # -------------------------------------------------------------------------
    # Metadata and Statistics
    # -------------------------------------------------------------------------

    def _analyze(self, text: str, title: str | None) -> DocumentMeta:
        headings = _HEADING_PATTERN.findall(text)
        paragraphs = len(_PARAGRAPH_BREAK.split(text))

        if headings:
            document_type = DocumentType.MARKDOWN
        elif paragraphs > 10:
            document_type = DocumentType.STRUCTURED
        else:
            document_type = DocumentType.PLAIN

        if title is None:
            title = headings[0][1].strip() if headings else text.strip().split("\n")[0]

        return DocumentMeta(
            total_characters=len(text),
            total_words=len(text.split()),
            document_type=document_type,
            title=title or None,
        )

    def _statistics(self, chunks: list[Chunk], total_chars: int) -> ChunkingStatistics:
        sizes = [len(c.content) for c in chunks]
        total_overlap = sum(c.overlap_before for c in chunks)
        warnings: list[str] = []

        hard_splits = sum(1 for c in chunks if c.split_method == SplitMethod.HARD_LIMIT)
        if hard_splits:
            warnings.append(f"{hard_splits} chunks split at hard limit (no semantic boundary)")

        # A whole small document is not penalised for being small
        undersized = 0
        if len(chunks) > 1:
            undersized = sum(1 for size in sizes if size < self.min_chunk_size)
            if undersized:
                warnings.append(f"{undersized} chunks below minimum size")

        quality_score = max(0, 100 - 10 * hard_splits - 5 * undersized)

        return ChunkingStatistics(
            total_chunks=len(chunks),
            average_chunk_size=round(sum(sizes) / len(sizes)),
            min_chunk_size=min(sizes),
            max_chunk_size=max(sizes),
            total_overlap=total_overlap,
            overlap_percentage=(total_overlap / total_chars) * 100 if total_chars else 0.0,
            quality_score=quality_score,
            warnings=warnings,
        )


def chunk_text(
    text: str,
    title: str | None = None,
    *,
    max_chunk_size: int = 30000,
    overlap_size: int = 1000,
    min_chunk_size: int = 1000,
) -> ChunkingResult:
    """Convenience wrapper around TextChunker.chunk."""
    chunker = TextChunker(
        max_chunk_size=max_chunk_size,
        overlap_size=overlap_size,
        min_chunk_size=min_chunk_size,
    )
    return chunker.chunk(text, title)
