"""
Graph Types

Candidate subgraphs produced per chunk, canonical graph types produced by the
merge, and the request/response/progress models of the graph pipeline.

Candidate Models (ids scoped to one chunk):
    - CandidateNode / CandidateEdge / SubGraph

Canonical Models (ids unique across the document):
    - GraphNode / GraphEdge
    - DedupResult: Node deduplication output with the id mapping
    - MergeResult: Output of the merge engine

Pipeline Models:
    - GenerateGraphRequest / GenerateGraphResponse
    - GraphStatistics / GraphMetadata
    - GenerationProgress / GenerationStage
    - CostEstimate
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

# -----------------------------------------------------------------------------
# Artifact Field Helpers
# -----------------------------------------------------------------------------

# Wire names first, short aliases second
EDGE_SOURCE_FIELDS = ("fromNodeId", "from")
EDGE_TARGET_FIELDS = ("toNodeId", "to")


def edge_endpoints(raw: Any) -> tuple[str | None, str | None]:
    """
    Source and target ids of an artifact edge.

    Both the validator and the merge read edges through this function so an
    edge that passes validation is never dropped when building a SubGraph.
    """
    if not isinstance(raw, dict):
        return None, None
    source = next((raw[f] for f in EDGE_SOURCE_FIELDS if raw.get(f) not in (None, "")), None)
    target = next((raw[f] for f in EDGE_TARGET_FIELDS if raw.get(f) not in (None, "")), None)
    return (
        str(source) if source is not None else None,
        str(target) if target is not None else None,
    )


def optional_text(value: Any) -> str | None:
    """Strings pass through, numbers are stringified, anything else is dropped."""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def mapping_or_empty(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


# -----------------------------------------------------------------------------
# Candidate Models
# -----------------------------------------------------------------------------


class CandidateNode(BaseModel):
    """A node as emitted by the model for one chunk."""

    local_id: str
    title: str
    description: str | None = None
    node_type: str | None = Field(default=None, description="concept, fact, argument, ...")
    summary: str | None = None
    source_chunk_index: int = 0
    metadata: dict[str, Any] = {}


class CandidateEdge(BaseModel):
    """An edge between two local ids of the same subgraph."""

    from_local_id: str
    to_local_id: str
    relationship: str = "relates to"
    metadata: dict[str, Any] = {}


class SubGraph(BaseModel):
    """Candidate nodes and edges generated for one chunk."""

    chunk_index: int
    nodes: list[CandidateNode] = []
    edges: list[CandidateEdge] = []
    mermaid_code: str = ""

    @classmethod
    def from_artifact(cls, data: dict[str, Any], chunk_index: int) -> "SubGraph":
        """
        Build a subgraph from a validated graph-generation artifact.

        Accepts the wire field names (``fromNodeId``, ``toNodeId``,
        ``nodeType``, ``mermaidCode``) and the aliases the validator accepts
        (``from``, ``to``, ``mermaid_code``). Nodes without an id are skipped.
        Numeric text fields are stringified; other wrongly typed optional
        fields are dropped rather than failing the merge.
        """
        nodes: list[CandidateNode] = []
        for raw in data.get("nodes") or []:
            if not isinstance(raw, dict) or raw.get("id") in (None, ""):
                continue
            nodes.append(
                CandidateNode(
                    local_id=str(raw["id"]),
                    title=optional_text(raw.get("title")) or "",
                    description=optional_text(raw.get("description")),
                    node_type=optional_text(raw.get("nodeType")),
                    summary=optional_text(raw.get("summary")),
                    source_chunk_index=chunk_index,
                    metadata=mapping_or_empty(raw.get("metadata")),
                )
            )

        edges: list[CandidateEdge] = []
        for raw in data.get("edges") or []:
            from_id, to_id = edge_endpoints(raw)
            if from_id is None or to_id is None:
                continue
            edges.append(
                CandidateEdge(
                    from_local_id=from_id,
                    to_local_id=to_id,
                    relationship=optional_text(raw.get("relationship")) or "relates to",
                    metadata=mapping_or_empty(raw.get("metadata")),
                )
            )

        mermaid = data.get("mermaidCode", data.get("mermaid_code"))
        return cls(
            chunk_index=chunk_index,
            nodes=nodes,
            edges=edges,
            mermaid_code=mermaid if isinstance(mermaid, str) else "",
        )


# -----------------------------------------------------------------------------
# Canonical Models
# -----------------------------------------------------------------------------


class GraphNode(BaseModel):
    """A node whose id is unique across the whole document."""

    id: str
    title: str
    description: str | None = None
    node_type: str | None = None
    summary: str | None = None
    source_chunk_index: int | None = None
    metadata: dict[str, Any] = {}


class GraphEdge(BaseModel):
    """A directed, labelled edge between two GraphNode ids."""

    from_id: str
    to_id: str
    relationship: str
    metadata: dict[str, Any] = {}

    @property
    def key(self) -> tuple[str, str, str]:
        """Identity used for edge deduplication."""
        return (self.from_id, self.to_id, self.relationship)


class DedupStatistics(BaseModel):
    """Counts reported by the node deduplicator."""

    original_count: int
    final_count: int
    merged_count: int
    merges_by_phase: dict[str, int] = Field(
        default_factory=lambda: {"exact": 0, "acronym": 0, "similarity": 0, "adjudication": 0}
    )
    uncertain_pairs: int = 0
    skipped_adjudications: int = 0


class DedupResult(BaseModel):
    """
    Output of node deduplication.

    Attributes:
        deduplicated_nodes: One node per component, keyed by the root id
        mapping: Every original id -> its component's root id
        statistics: Counts per phase
    """

    deduplicated_nodes: list[GraphNode]
    mapping: dict[str, str]
    statistics: DedupStatistics


class MergeResult(BaseModel):
    """Output of the merge engine."""

    nodes: list[GraphNode]
    edges: list[GraphEdge]
    merged_node_count: int = 0
    duplicate_edges_removed: int = 0
    quality_score: int = Field(default=100, ge=0, le=100)
    warnings: list[str] = []
    dedup_statistics: DedupStatistics | None = None


# -----------------------------------------------------------------------------
# Pipeline Models
# -----------------------------------------------------------------------------


class GenerationStage(str, Enum):
    """Stages reported to progress consumers."""

    CHUNKING = "chunking"
    GENERATING = "generating"
    MERGING = "merging"
    VALIDATING = "validating"
    COMPLETE = "complete"


class GenerationProgress(BaseModel):
    """One progress update."""

    stage: GenerationStage
    chunks_processed: int = 0
    total_chunks: int = 0
    percent_complete: int = Field(default=0, ge=0, le=100)
    message: str = ""


class GenerateGraphRequest(BaseModel):
    """Request to build a graph for one document."""

    document_id: str
    document_text: str
    document_title: str
    user_id: str | None = None
    max_nodes: int = 15
    skip_cache: bool = False


class GraphStatistics(BaseModel):
    """Statistics about one generation run."""

    chunks_processed: int = 0
    total_nodes: int = 0
    total_edges: int = 0
    merged_nodes: int = 0
    duplicate_edges_removed: int = 0
    quality_score: int = 0
    total_cost: float = 0.0
    processing_time_ms: int = 0


class GraphMetadata(BaseModel):
    """How a graph was produced."""

    models: list[str] = []
    cache_hit: bool = False
    fallback_used: bool = False
    warnings: list[str] = []


class GenerateGraphResponse(BaseModel):
    """Final graph plus statistics and metadata."""

    nodes: list[GraphNode]
    edges: list[GraphEdge]
    mermaid_code: str
    statistics: GraphStatistics
    metadata: GraphMetadata


class BudgetAvailability(BaseModel):
    """Budget verdict attached to a cost estimate."""

    within_budget: bool
    available: float
    reason: str | None = None
    reset_at: datetime | None = None


class CostEstimate(BaseModel):
    """Pre-flight estimate for processing a whole document."""

    estimated_chunks: int
    estimated_tokens: int
    estimated_cost: float
    budget_check: BudgetAvailability
