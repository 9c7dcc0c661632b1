"""
Structural Fallback

Builds a graph from document headings alone when model generation fails.
Headings form a containment tree under a document root node; a document
without headings yields the root node only.
"""

from __future__ import annotations

import re

from graphex_kg.types.graph import GraphEdge, GraphNode

FALLBACK_MODEL = "structure-fallback"
FALLBACK_WARNING = "AI generation failed, using document structure as fallback"
HEADINGS_QUALITY = 60
TITLE_ONLY_QUALITY = 50

_HEADING = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$", re.MULTILINE)


def extract_headings(text: str) -> list[tuple[int, str]]:
    """(level, title) for each Markdown heading, in document order."""
    return [
        (len(match.group(1)), match.group(2).strip())
        for match in _HEADING.finditer(text)
        if match.group(2).strip()
    ]


def build_structural_graph(
    text: str,
    title: str,
    max_nodes: int,
) -> tuple[list[GraphNode], list[GraphEdge], int]:
    """
    Heading tree for a document.

    Returns:
        (nodes, edges, quality_score)
    """
    root = GraphNode(
        id="doc",
        title=title.strip() or "Document",
        node_type="document",
        source_chunk_index=0,
    )
    headings = extract_headings(text)[: max(0, max_nodes - 1)]
    if not headings:
        return [root], [], TITLE_ONLY_QUALITY

    nodes = [root]
    edges: list[GraphEdge] = []
    # (level, node id) of the open headings; the root sits at level 0
    stack: list[tuple[int, str]] = [(0, root.id)]

    for i, (level, heading) in enumerate(headings, start=1):
        node_id = f"h{i}"
        nodes.append(
            GraphNode(id=node_id, title=heading, node_type="section", source_chunk_index=0)
        )
        while stack[-1][0] >= level:
            stack.pop()
        edges.append(GraphEdge(from_id=stack[-1][1], to_id=node_id, relationship="contains"))
        stack.append((level, node_id))

    return nodes, edges, HEADINGS_QUALITY
