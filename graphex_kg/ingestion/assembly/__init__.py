"""
Assembly

Modules:
    merge: MergeEngine and Mermaid rendering
"""

from graphex_kg.ingestion.assembly.merge import MergeEngine, render_mermaid

__all__ = ["MergeEngine", "render_mermaid"]
