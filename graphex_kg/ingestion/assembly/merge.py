"""
Subgraph Merge

Combines per-chunk subgraphs into one graph without leaving edges that point
at nodes which no longer exist.

Operation order:
    1. Namespace ids ("{chunk_index}:{local_id}") so every id is unique
    2. Deduplicate the unioned node set
    3. Remap every edge endpoint through the dedup mapping
    4. Drop repeated (from, to, relationship) edges
    5. Keep the top max_nodes nodes by degree
    6. Integrity pass against the current node set: drop dangling edges and
       self-loops, then score quality

After the integrity pass every edge endpoint is a surviving node id.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from graphex_kg.types.graph import GraphEdge, GraphNode, MergeResult, SubGraph

if TYPE_CHECKING:
    from graphex_kg.ingestion.resolution import NodeDeduplicator

logger = logging.getLogger(__name__)

ISOLATED_NODE_PENALTY = 10
DROPPED_EDGE_PENALTY = 5


def namespaced_id(chunk_index: int, local_id: str) -> str:
    return f"{chunk_index}:{local_id}"


class MergeEngine:
    """
    Merges subgraphs through a node deduplicator.

    Usage:
        engine = MergeEngine(NodeDeduplicator())
        result = await engine.merge(subgraphs, max_nodes=15)
    """

    def __init__(self, deduplicator: "NodeDeduplicator") -> None:
        self.deduplicator = deduplicator

    async def merge(self, subgraphs: list[SubGraph], max_nodes: int) -> MergeResult:
        """
        Merge subgraphs into one graph of at most max_nodes nodes.

        Args:
            subgraphs: Per-chunk subgraphs with chunk-local ids
            max_nodes: Node cap applied after deduplication

        Returns:
            MergeResult with integrity-checked nodes and edges
        """
        if max_nodes < 1:
            raise ValueError("max_nodes must be at least 1")

        # Step 1: namespace
        nodes, edges = self._namespace(subgraphs)
        if not nodes:
            logger.warning("No nodes to merge")
            return MergeResult(
                nodes=[],
                edges=[],
                quality_score=0,
                warnings=["No nodes were extracted"],
            )

        # Step 2: dedup
        dedup = await self.deduplicator.deduplicate(nodes)
        canonical = dedup.deduplicated_nodes

        # Step 3: remap before anything is discarded
        remapped = [
            edge.model_copy(
                update={
                    "from_id": dedup.mapping.get(edge.from_id, edge.from_id),
                    "to_id": dedup.mapping.get(edge.to_id, edge.to_id),
                }
            )
            for edge in edges
        ]

        # Step 4: edge dedup
        unique_edges = self._dedupe_edges(remapped)
        duplicate_edges_removed = len(remapped) - len(unique_edges)

        # Step 5: trim by degree
        warnings: list[str] = []
        if len(canonical) > max_nodes:
            canonical = self._top_by_degree(canonical, unique_edges, max_nodes)
            warnings.append(
                f"Trimmed graph to {max_nodes} nodes by connectivity"
            )

        # Step 6: integrity pass against the current node set
        final_edges, dropped = self._filter_edges(canonical, unique_edges, warnings)

        connected = {e.from_id for e in final_edges} | {e.to_id for e in final_edges}
        isolated = sum(1 for node in canonical if node.id not in connected)
        quality = max(
            0,
            100 - ISOLATED_NODE_PENALTY * isolated - DROPPED_EDGE_PENALTY * dropped,
        )

        logger.info(
            f"Merged {len(subgraphs)} subgraphs: {len(nodes)} -> {len(canonical)} nodes, "
            f"{len(edges)} -> {len(final_edges)} edges, quality={quality}"
        )
        return MergeResult(
            nodes=canonical,
            edges=final_edges,
            merged_node_count=dedup.statistics.merged_count,
            duplicate_edges_removed=duplicate_edges_removed,
            quality_score=quality,
            warnings=warnings,
            dedup_statistics=dedup.statistics,
        )

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    @staticmethod
    def _namespace(subgraphs: list[SubGraph]) -> tuple[list[GraphNode], list[GraphEdge]]:
        nodes: list[GraphNode] = []
        edges: list[GraphEdge] = []
        seen: set[str] = set()

        for subgraph in subgraphs:
            ci = subgraph.chunk_index
            for candidate in subgraph.nodes:
                node_id = namespaced_id(ci, candidate.local_id)
                if node_id in seen or not candidate.title.strip():
                    logger.debug(f"Skipping repeated or untitled node {node_id}")
                    continue
                seen.add(node_id)
                nodes.append(
                    GraphNode(
                        id=node_id,
                        title=candidate.title,
                        description=candidate.description,
                        node_type=candidate.node_type,
                        summary=candidate.summary,
                        source_chunk_index=ci,
                        metadata=candidate.metadata,
                    )
                )
            for candidate_edge in subgraph.edges:
                edges.append(
                    GraphEdge(
                        from_id=namespaced_id(ci, candidate_edge.from_local_id),
                        to_id=namespaced_id(ci, candidate_edge.to_local_id),
                        relationship=candidate_edge.relationship,
                        metadata=candidate_edge.metadata,
                    )
                )
        return nodes, edges

    @staticmethod
    def _dedupe_edges(edges: list[GraphEdge]) -> list[GraphEdge]:
        seen: set[tuple[str, str, str]] = set()
        unique: list[GraphEdge] = []
        for edge in edges:
            if edge.key in seen:
                continue
            seen.add(edge.key)
            unique.append(edge)
        return unique

    @staticmethod
    def _top_by_degree(
        nodes: list[GraphNode],
        edges: list[GraphEdge],
        max_nodes: int,
    ) -> list[GraphNode]:
        node_ids = {node.id for node in nodes}
        degree = {node.id: 0 for node in nodes}
        for edge in edges:
            if edge.from_id == edge.to_id:
                continue
            if edge.from_id in node_ids and edge.to_id in node_ids:
                degree[edge.from_id] += 1
                degree[edge.to_id] += 1

        # sorted() is stable, so equal degrees keep their original order
        ranked = sorted(nodes, key=lambda n: degree[n.id], reverse=True)
        return ranked[:max_nodes]

    @staticmethod
    def _filter_edges(
        nodes: list[GraphNode],
        edges: list[GraphEdge],
        warnings: list[str],
    ) -> tuple[list[GraphEdge], int]:
        current_ids = {node.id for node in nodes}
        kept: list[GraphEdge] = []
        dropped = 0

        for edge in edges:
            if edge.from_id == edge.to_id:
                warnings.append(f"Dropped self-loop on {edge.from_id} ({edge.relationship})")
                dropped += 1
            elif edge.from_id not in current_ids or edge.to_id not in current_ids:
                warnings.append(
                    f"Dropped edge {edge.from_id} -> {edge.to_id}: endpoint not in graph"
                )
                dropped += 1
            else:
                kept.append(edge)

        if dropped:
            logger.warning(f"Integrity pass dropped {dropped} edges")
        return kept, dropped


# -----------------------------------------------------------------------------
# Mermaid rendering
# -----------------------------------------------------------------------------

_UNSAFE = re.compile(r"[\r\n]+")


def escape_label(text: str) -> str:
    """Flatten newlines and escape double quotes for a quoted Mermaid label."""
    return _UNSAFE.sub(" ", text).replace('"', "#quot;").strip()


def render_mermaid(nodes: list[GraphNode], edges: list[GraphEdge]) -> str:
    """
    Render a graph as a Mermaid flowchart.

    Node ids are replaced by positional ids (N1, N2, ...) because graph ids may
    contain characters Mermaid does not accept.
    """
    mermaid_ids = {node.id: f"N{i}" for i, node in enumerate(nodes, start=1)}
    lines = ["flowchart TD"]
    for node in nodes:
        lines.append(f'    {mermaid_ids[node.id]}["{escape_label(node.title)}"]')
    for edge in edges:
        if edge.from_id not in mermaid_ids or edge.to_id not in mermaid_ids:
            continue
        lines.append(
            f'    {mermaid_ids[edge.from_id]} -->|"{escape_label(edge.relationship)}"| '
            f"{mermaid_ids[edge.to_id]}"
        )
    return "\n".join(lines)
