"""
Node Deduplication

Groups graph nodes that name the same concept and collapses each group into
one canonical node.

Algorithm (four phases over one Union-Find):
    1. Exact:        normalized titles are equal
    2. Acronym:      a 2-5 letter uppercase title equals the initials of a
                     multi-word title ("ML" / "Machine Learning")
    3. Similarity:   pairwise score >= auto-merge threshold merges; scores above
                     the auto-separate threshold become uncertain pairs
    4. Adjudication: uncertain pairs (capped) are decided in batches

Each component becomes one node whose attributes come from its most
informative member and whose id is the id of the component root.

Example:
    >>> dedup = NodeDeduplicator(LexicalSimilarity(), ThresholdAdjudicator())
    >>> result = await dedup.deduplicate(nodes)
    >>> result.mapping["n3"]
    'n1'
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from graphex_kg.errors import EmptyInputError, MalformedNodeError
from graphex_kg.ingestion.resolution.adjudication import (
    CandidatePair,
    PairAdjudicator,
    ThresholdAdjudicator,
)
from graphex_kg.ingestion.resolution.similarity import (
    LexicalSimilarity,
    SimilarityProvider,
)
from graphex_kg.types.graph import DedupResult, DedupStatistics, GraphNode
from graphex_kg.utils.clustering import UnionFind

if TYPE_CHECKING:
    from graphex_kg.config import KGConfig

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_ACRONYM = re.compile(r"^[A-Z]{2,5}$")


def normalize_title(title: str) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    return _WHITESPACE.sub(" ", title.strip().lower())


def initials(title: str) -> str:
    """Uppercase first letters of each word."""
    return "".join(word[0] for word in title.split() if word).upper()


def informativeness(node: GraphNode) -> int:
    """Title length plus twice the description length."""
    return len(node.title) + 2 * len(node.description or "")


def node_text(node: GraphNode) -> str:
    """Text used for similarity scoring."""
    return f"{node.title}\n{node.description or ''}".strip()


class NodeDeduplicator:
    """
    Four-phase node deduplicator.

    Args:
        similarity: Pairwise similarity collaborator
        adjudicator: Decides uncertain pairs
        auto_merge_threshold: Similarity at or above which pairs merge outright
        auto_separate_threshold: Similarity at or below which pairs stay apart
        max_adjudications: Cap on uncertain pairs sent to the adjudicator
        adjudication_batch_size: Pairs per adjudicator call
    """

    def __init__(
        self,
        similarity: SimilarityProvider | None = None,
        adjudicator: PairAdjudicator | None = None,
        *,
        auto_merge_threshold: float = 0.95,
        auto_separate_threshold: float = 0.65,
        max_adjudications: int = 50,
        adjudication_batch_size: int = 10,
    ) -> None:
        if auto_separate_threshold > auto_merge_threshold:
            raise ValueError(
                "auto_separate_threshold must not exceed auto_merge_threshold"
            )
        if adjudication_batch_size < 1:
            raise ValueError("adjudication_batch_size must be at least 1")
        self.similarity = similarity or LexicalSimilarity()
        self.adjudicator = adjudicator or ThresholdAdjudicator()
        self.auto_merge_threshold = auto_merge_threshold
        self.auto_separate_threshold = auto_separate_threshold
        self.max_adjudications = max_adjudications
        self.adjudication_batch_size = adjudication_batch_size

    @classmethod
    def from_config(
        cls,
        config: "KGConfig",
        similarity: SimilarityProvider | None = None,
        adjudicator: PairAdjudicator | None = None,
    ) -> "NodeDeduplicator":
        return cls(
            similarity,
            adjudicator or ThresholdAdjudicator(config.heuristic_merge_threshold),
            auto_merge_threshold=config.auto_merge_threshold,
            auto_separate_threshold=config.auto_separate_threshold,
            max_adjudications=config.max_adjudications,
            adjudication_batch_size=config.adjudication_batch_size,
        )

    async def deduplicate(self, nodes: list[GraphNode]) -> DedupResult:
        """
        Collapse duplicate nodes.

        Args:
            nodes: Nodes with unique, non-empty ids and non-empty titles

        Returns:
            DedupResult whose mapping covers every input id

        Raises:
            EmptyInputError: nodes is empty
            MalformedNodeError: a node lacks an id or title, or ids repeat
        """
        self._validate(nodes)
        n = len(nodes)
        uf = UnionFind(n)
        merges = {"exact": 0, "acronym": 0, "similarity": 0, "adjudication": 0}

        merges["exact"] = self._merge_exact(nodes, uf)
        merges["acronym"] = self._merge_acronyms(nodes, uf)

        uncertain: list[CandidatePair] = []
        if n > 1:
            merges["similarity"], uncertain = await self._merge_similar(nodes, uf)

        skipped = max(0, len(uncertain) - self.max_adjudications)
        if skipped:
            logger.warning(
                f"{len(uncertain)} uncertain pairs exceed the adjudication cap of "
                f"{self.max_adjudications}; {skipped} left separate"
            )
        merges["adjudication"] = await self._adjudicate(
            uncertain[: self.max_adjudications], uf
        )

        deduplicated, mapping = self._build_canonical_nodes(nodes, uf)
        statistics = DedupStatistics(
            original_count=n,
            final_count=len(deduplicated),
            merged_count=n - len(deduplicated),
            merges_by_phase=merges,
            uncertain_pairs=len(uncertain),
            skipped_adjudications=skipped,
        )
        logger.info(
            f"Deduplicated {n} nodes to {len(deduplicated)} "
            f"(exact={merges['exact']}, acronym={merges['acronym']}, "
            f"similarity={merges['similarity']}, adjudication={merges['adjudication']})"
        )
        return DedupResult(
            deduplicated_nodes=deduplicated,
            mapping=mapping,
            statistics=statistics,
        )

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    @staticmethod
    def _validate(nodes: list[GraphNode]) -> None:
        if not nodes:
            raise EmptyInputError("Cannot deduplicate an empty node list")

        seen: set[str] = set()
        for node in nodes:
            if not node.id:
                raise MalformedNodeError("Node is missing an id", node)
            if not node.title or not node.title.strip():
                raise MalformedNodeError(f"Node {node.id} is missing a title", node)
            if node.id in seen:
                raise MalformedNodeError(f"Duplicate node id: {node.id}", node)
            seen.add(node.id)

    @staticmethod
    def _merge_exact(nodes: list[GraphNode], uf: UnionFind) -> int:
        first_by_title: dict[str, int] = {}
        merged = 0
        for i, node in enumerate(nodes):
            key = normalize_title(node.title)
            if key in first_by_title:
                merged += uf.union(first_by_title[key], i)
            else:
                first_by_title[key] = i
        return merged

    @staticmethod
    def _merge_acronyms(nodes: list[GraphNode], uf: UnionFind) -> int:
        merged = 0
        for i, node in enumerate(nodes):
            title = node.title.strip()
            if not _ACRONYM.match(title):
                continue
            for j, other in enumerate(nodes):
                if i == j or len(other.title.split()) < 2:
                    continue
                if initials(other.title) == title:
                    merged += uf.union(i, j)
                    break
        return merged

    async def _merge_similar(
        self,
        nodes: list[GraphNode],
        uf: UnionFind,
    ) -> tuple[int, list[CandidatePair]]:
        matrix = await self.similarity.similarity_matrix([node_text(n) for n in nodes])
        merged = 0
        uncertain: list[CandidatePair] = []

        for i in range(len(nodes)):
            for j in range(i + 1, len(nodes)):
                if uf.connected(i, j):
                    continue
                score = float(matrix[i, j])
                if score >= self.auto_merge_threshold:
                    merged += uf.union(i, j)
                elif score > self.auto_separate_threshold:
                    uncertain.append(CandidatePair(i, j, nodes[i], nodes[j], score))

        return merged, uncertain

    async def _adjudicate(self, pairs: list[CandidatePair], uf: UnionFind) -> int:
        merged = 0
        size = self.adjudication_batch_size
        for start in range(0, len(pairs), size):
            batch = pairs[start:start + size]
            decisions = await self.adjudicator.decide(batch)
            for pair, same in zip(batch, decisions):
                if same:
                    merged += uf.union(pair.left_index, pair.right_index)
        return merged

    # -------------------------------------------------------------------------
    # Canonical nodes
    # -------------------------------------------------------------------------

    @staticmethod
    def _build_canonical_nodes(
        nodes: list[GraphNode],
        uf: UnionFind,
    ) -> tuple[list[GraphNode], dict[str, str]]:
        deduplicated: list[GraphNode] = []
        mapping: dict[str, str] = {}

        for members in uf.get_components():
            root = uf.find(members[0])
            canonical_id = nodes[root].id

            # max() keeps the first member on ties
            best = max(members, key=lambda idx: informativeness(nodes[idx]))
            representative = nodes[best]

            chunk_indices = [
                nodes[idx].source_chunk_index
                for idx in members
                if nodes[idx].source_chunk_index is not None
            ]
            metadata = dict(representative.metadata)
            if len(members) > 1:
                metadata["merged_ids"] = [nodes[idx].id for idx in members]

            deduplicated.append(
                representative.model_copy(
                    update={
                        "id": canonical_id,
                        "source_chunk_index": min(chunk_indices) if chunk_indices else None,
                        "metadata": metadata,
                    }
                )
            )
            for idx in members:
                mapping[nodes[idx].id] = canonical_id

        return deduplicated, mapping
