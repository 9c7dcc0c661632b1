"""
Resolution

Modules:
    node_dedup: Four-phase NodeDeduplicator
    similarity: Lexical and embedding similarity matrices
    adjudication: Threshold and LLM decisions for uncertain pairs
"""

from graphex_kg.ingestion.resolution.adjudication import (
    CandidatePair,
    LLMAdjudicator,
    PairAdjudicator,
    ThresholdAdjudicator,
)
from graphex_kg.ingestion.resolution.node_dedup import NodeDeduplicator
from graphex_kg.ingestion.resolution.similarity import (
    EmbeddingSimilarity,
    LexicalSimilarity,
    SimilarityProvider,
)

__all__ = [
    "NodeDeduplicator",
    "SimilarityProvider",
    "LexicalSimilarity",
    "EmbeddingSimilarity",
    "PairAdjudicator",
    "ThresholdAdjudicator",
    "LLMAdjudicator",
    "CandidatePair",
]
