"""
Ingestion Components

The pieces of the document-to-graph pipeline that work on text and graph
structure without calling a model directly.

Phases:
    Chunking:
        - Boundary-aware, overlapping text chunks

    Resolution (Deduplication):
        - Exact title match, acronym expansion
        - Similarity scoring (lexical or embeddings) + Union-Find
        - Adjudication of uncertain pairs

    Assembly (Merge):
        - Namespace subgraph ids, deduplicate nodes, remap edges
        - Edge dedup, degree-based trimming, integrity pass

Modules:
    chunking/: TextChunker
    resolution/: NodeDeduplicator and its similarity/adjudication collaborators
    assembly/: MergeEngine and Mermaid rendering
"""

from graphex_kg.ingestion.assembly import MergeEngine
from graphex_kg.ingestion.chunking import TextChunker
from graphex_kg.ingestion.resolution import NodeDeduplicator

__all__ = ["MergeEngine", "TextChunker", "NodeDeduplicator"]
