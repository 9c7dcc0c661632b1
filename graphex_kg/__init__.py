"""
GraphexKG - Document-to-Knowledge-Graph Pipeline

Turns a document into a concept graph: chunked, generated under a spending
budget, validated, deduplicated and merged with referential integrity.

Example:
    >>> from graphex_kg import GraphPipeline, KGConfig, GenerateGraphRequest
    >>> async with GraphPipeline.from_config(KGConfig()) as pipeline:
    ...     response = await pipeline.generate(GenerateGraphRequest(
    ...         document_id="doc-1",
    ...         document_text=text,
    ...         document_title="Photosynthesis",
    ...     ))
    >>> print(response.mermaid_code)

Main Classes:
    GraphPipeline: Document in, graph out
    Orchestrator: Budgeted, cached, validated model calls
    CostGuard: Admission control and usage ledger
    NodeDeduplicator / MergeEngine: Graph resolution and assembly
    KGConfig: Configuration management
"""

__version__ = "0.1.0"


# Public API - lazy imports to avoid loading provider SDKs on import
def __getattr__(name: str):
    """Lazy import public API components."""

    if name == "GraphPipeline":
        from graphex_kg.pipeline import GraphPipeline
        return GraphPipeline

    if name == "Orchestrator":
        from graphex_kg.orchestration import Orchestrator
        return Orchestrator

    if name == "CostGuard":
        from graphex_kg.budget import CostGuard
        return CostGuard

    if name in ("NodeDeduplicator", "MergeEngine", "TextChunker"):
        from graphex_kg import ingestion
        return getattr(ingestion, name)

    if name == "KGConfig":
        from graphex_kg.config.settings import KGConfig
        return KGConfig

    # Types
    if name in (
        "GenerateGraphRequest",
        "GenerateGraphResponse",
        "GraphNode",
        "GraphEdge",
        "SubGraph",
        "Chunk",
    ):
        from graphex_kg import types
        return getattr(types, name)

    raise AttributeError(f"module 'graphex_kg' has no attribute {name!r}")


__all__ = [
    # Main classes
    "GraphPipeline",
    "Orchestrator",
    "CostGuard",
    "NodeDeduplicator",
    "MergeEngine",
    "TextChunker",
    "KGConfig",

    # Types
    "GenerateGraphRequest",
    "GenerateGraphResponse",
    "GraphNode",
    "GraphEdge",
    "SubGraph",
    "Chunk",

    # Version
    "__version__",
]
