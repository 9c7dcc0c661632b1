"""Tests for subgraph merging and Mermaid rendering."""

import random

import pytest

from graphex_kg.types.graph import CandidateEdge, CandidateNode, SubGraph


def _subgraph(chunk_index, nodes, edges):
    return SubGraph(
        chunk_index=chunk_index,
        nodes=[CandidateNode(local_id=i, title=t) for i, t in nodes],
        edges=[CandidateEdge(from_local_id=a, to_local_id=b, relationship=r) for a, b, r in edges],
    )


def _engine():
    from graphex_kg.ingestion.assembly import MergeEngine
    from graphex_kg.ingestion.resolution import NodeDeduplicator

    return MergeEngine(NodeDeduplicator())


class TestMergeEngine:
    """Tests for MergeEngine.merge."""

    @pytest.mark.asyncio
    async def test_orphan_prevention(self):
        """Edges from duplicate nodes resolve to the canonical node with nothing dropped."""
        subgraphs = [
            _subgraph(0, [("A", "Machine Learning"), ("B", "Supervised Learning")],
                      [("A", "B", "includes")]),
            _subgraph(1, [("A", "Machine Learning"), ("B", "Reinforcement Learning")],
                      [("A", "B", "includes")]),
        ]
        result = await _engine().merge(subgraphs, max_nodes=15)

        ml = [n for n in result.nodes if n.title == "Machine Learning"]
        assert len(ml) == 1
        canonical = ml[0].id
        assert len(result.edges) == 2
        assert all(edge.from_id == canonical for edge in result.edges)
        assert result.merged_node_count == 1
        assert not any("endpoint not in graph" in w for w in result.warnings)
        assert result.quality_score == 100

    @pytest.mark.asyncio
    async def test_ids_are_namespaced(self):
        """Same local ids in different chunks stay distinct."""
        subgraphs = [
            _subgraph(0, [("A", "Photosynthesis"), ("B", "Chlorophyll")], [("A", "B", "uses")]),
            _subgraph(1, [("A", "Respiration"), ("B", "Mitochondria")], [("A", "B", "occurs in")]),
        ]
        result = await _engine().merge(subgraphs, max_nodes=15)
        assert {n.id for n in result.nodes} == {"0:A", "0:B", "1:A", "1:B"}

    @pytest.mark.asyncio
    async def test_duplicate_edges_removed(self):
        """Edges identical after remapping are kept once."""
        subgraphs = [
            _subgraph(0, [("A", "Cells"), ("B", "DNA")], [("A", "B", "contain")]),
            _subgraph(1, [("X", "cells"), ("Y", "dna")], [("X", "Y", "contain")]),
        ]
        result = await _engine().merge(subgraphs, max_nodes=15)
        assert len(result.edges) == 1
        assert result.duplicate_edges_removed == 1

    @pytest.mark.asyncio
    async def test_self_loops_dropped_with_warning(self):
        """An edge collapsed onto one node is dropped and penalised."""
        subgraphs = [
            _subgraph(0, [("A", "Machine Learning"), ("B", "ML"), ("C", "Data")],
                      [("A", "B", "abbreviated as"), ("A", "C", "learns from")]),
        ]
        result = await _engine().merge(subgraphs, max_nodes=15)
        assert len(result.edges) == 1
        assert any("self-loop" in w for w in result.warnings)
        assert result.quality_score == 95

    @pytest.mark.asyncio
    async def test_dangling_edge_dropped(self):
        """Edges to ids that were never nodes are dropped."""
        subgraphs = [
            _subgraph(0, [("A", "Atoms"), ("B", "Electrons")],
                      [("A", "B", "contain"), ("A", "Z", "form")]),
        ]
        result = await _engine().merge(subgraphs, max_nodes=15)
        assert len(result.edges) == 1
        assert result.quality_score == 95

    @pytest.mark.asyncio
    async def test_trim_by_degree_keeps_hub(self):
        """The node cap keeps the best-connected nodes and drops their edges cleanly."""
        nodes = [("H", "Hub")] + [(f"L{i}", f"Leaf {chr(65 + i)}") for i in range(5)]
        edges = [("H", f"L{i}", "links") for i in range(5)]
        result = await _engine().merge([_subgraph(0, nodes, edges)], max_nodes=3)

        ids = {n.id for n in result.nodes}
        assert len(ids) == 3
        assert "0:H" in ids
        assert len(result.edges) == 2
        assert all(e.from_id in ids and e.to_id in ids for e in result.edges)

    @pytest.mark.asyncio
    async def test_empty_subgraphs(self):
        """No nodes gives an empty result, not an error."""
        result = await _engine().merge([SubGraph(chunk_index=0)], max_nodes=15)
        assert result.nodes == []
        assert result.edges == []

    @pytest.mark.asyncio
    async def test_isolated_nodes_penalised(self):
        """Each node without edges costs 10 quality points."""
        result = await _engine().merge(
            [_subgraph(0, [("A", "Alpha"), ("B", "Beta")], [])],
            max_nodes=15,
        )
        assert result.quality_score == 80

    @pytest.mark.asyncio
    async def test_referential_integrity_random(self):
        """Every output edge references an output node, over random overlapping inputs."""
        titles = [
            "Machine Learning", "machine learning", "ML", "Data", "data ",
            "Neural Networks", "Social Networks", "Graph", "Graphs", "Entropy",
        ]
        rng = random.Random(42)
        engine = _engine()

        for _ in range(40):
            subgraphs = []
            for chunk_index in range(rng.randint(1, 4)):
                local_ids = [chr(65 + i) for i in range(rng.randint(1, 6))]
                nodes = [(local_id, rng.choice(titles)) for local_id in local_ids]
                edge_ids = local_ids + ["Q"]
                edges = [
                    (rng.choice(edge_ids), rng.choice(edge_ids), rng.choice(["is-a", "uses"]))
                    for _ in range(rng.randint(0, 8))
                ]
                subgraphs.append(_subgraph(chunk_index, nodes, edges))

            max_nodes = rng.randint(1, 8)
            result = await engine.merge(subgraphs, max_nodes=max_nodes)
            node_ids = {n.id for n in result.nodes}

            assert len(node_ids) <= max_nodes
            for edge in result.edges:
                assert edge.from_id in node_ids
                assert edge.to_id in node_ids
                assert edge.from_id != edge.to_id
            assert 0 <= result.quality_score <= 100


class TestMermaid:
    """Tests for render_mermaid."""

    def test_render(self):
        """Flowchart with quoted labels and labelled edges."""
        from graphex_kg.ingestion.assembly import render_mermaid
        from graphex_kg.types.graph import GraphEdge, GraphNode

        code = render_mermaid(
            [GraphNode(id="0:A", title='Say "hi"'), GraphNode(id="0:B", title="Two\nlines")],
            [GraphEdge(from_id="0:A", to_id="0:B", relationship="leads to")],
        )
        assert code.splitlines() == [
            "flowchart TD",
            '    N1["Say #quot;hi#quot;"]',
            '    N2["Two lines"]',
            '    N1 -->|"leads to"| N2',
        ]

    def test_rendered_graph_passes_mermaid_check(self):
        """Rendered output satisfies the validator's Mermaid rules."""
        from graphex_kg.ingestion.assembly import render_mermaid
        from graphex_kg.types.graph import GraphNode
        from graphex_kg.validation import OutputValidator

        code = render_mermaid([GraphNode(id="x", title="Concept")], [])
        assert OutputValidator()._check_mermaid(code) is None


class TestSubGraphFromArtifact:
    """Tests for SubGraph.from_artifact."""

    def test_edge_field_aliases(self):
        """Both fromNodeId/toNodeId and from/to produce candidate edges."""
        subgraph = SubGraph.from_artifact(
            {
                "mermaid_code": "flowchart TD\n  A[One]",
                "nodes": [{"id": "A", "title": "One"}, {"id": "B", "title": "Two"}],
                "edges": [
                    {"fromNodeId": "A", "toNodeId": "B", "relationship": "feeds"},
                    {"from": "B", "to": "A"},
                    {"from": "A"},
                ],
            },
            chunk_index=2,
        )
        assert [(e.from_local_id, e.to_local_id, e.relationship) for e in subgraph.edges] == [
            ("A", "B", "feeds"),
            ("B", "A", "relates to"),
        ]
        assert subgraph.mermaid_code.startswith("flowchart TD")
        assert {n.source_chunk_index for n in subgraph.nodes} == {2}

    def test_field_coercion(self):
        """Numbers become text; other wrong types are dropped."""
        subgraph = SubGraph.from_artifact(
            {
                "nodes": [
                    {"id": 7, "title": "Seven", "description": 42, "nodeType": True,
                     "summary": {"x": 1}, "metadata": ["tag"]},
                ],
                "edges": [{"fromNodeId": 7, "toNodeId": 7, "relationship": 3, "metadata": "m"}],
            },
            chunk_index=0,
        )
        node = subgraph.nodes[0]
        assert node.local_id == "7"
        assert node.description == "42"
        assert node.node_type is None
        assert node.summary is None
        assert node.metadata == {}
        edge = subgraph.edges[0]
        assert (edge.from_local_id, edge.relationship, edge.metadata) == ("7", "3", {})
