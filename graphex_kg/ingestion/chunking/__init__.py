"""
Document Chunking

Modules:
    text: Boundary-aware chunking with overlap for plain text and markdown
"""

from graphex_kg.ingestion.chunking.text import TextChunker, chunk_text

__all__ = ["TextChunker", "chunk_text"]
