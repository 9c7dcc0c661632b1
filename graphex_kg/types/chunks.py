"""
Chunk Types

Output of the text chunker: overlapping, boundary-aligned document segments
plus document-level metadata and chunking statistics.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SplitMethod(str, Enum):
    """Which boundary a chunk was cut on (highest priority first)."""

    CHAPTER = "chapter"
    SECTION = "section"
    PARAGRAPH = "paragraph"
    SENTENCE = "sentence"
    WORD = "word"
    HARD_LIMIT = "hard_limit"


class DocumentType(str, Enum):
    """Coarse structural classification of a document."""

    MARKDOWN = "markdown"
    STRUCTURED = "structured"
    PLAIN = "plain"


class Chunk(BaseModel):
    """
    One segment of a source document.

    Attributes:
        id: Stable id within the document ("chunk_{index}")
        content: Chunk text, including any overlap prefix
        start_offset: Offset of content[0] in the source text
        end_offset: Offset one past the last character in the source text
        index: Position of the chunk (0-based)
        total_count: Number of chunks for the document
        estimated_tokens: ceil(len(content) / 4)
        overlap_before: Characters prepended from the previous chunk
        overlap_after: Characters the next chunk will repeat from this one
        split_method: Boundary this chunk was cut on
    """

    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    start_offset: int
    end_offset: int
    index: int
    total_count: int
    estimated_tokens: int
    overlap_before: int = 0
    overlap_after: int = 0
    split_method: SplitMethod


class DocumentMeta(BaseModel):
    """Document-level facts collected while chunking."""

    total_characters: int
    total_words: int
    document_type: DocumentType
    title: str | None = None


class ChunkingStatistics(BaseModel):
    """Quality and size statistics for one chunking run."""

    total_chunks: int
    average_chunk_size: int
    min_chunk_size: int
    max_chunk_size: int
    total_overlap: int
    overlap_percentage: float
    quality_score: int = Field(ge=0, le=100)
    warnings: list[str] = []


class ChunkingResult(BaseModel):
    """Everything the chunker returns for one document."""

    chunks: list[Chunk]
    document_meta: DocumentMeta
    statistics: ChunkingStatistics
