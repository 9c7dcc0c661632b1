"""
Type Definitions

Pydantic models for all data structures.

Chunking Models:
    - Chunk, ChunkingResult, DocumentMeta, ChunkingStatistics
    - SplitMethod, DocumentType

Graph Models:
    - CandidateNode, CandidateEdge, SubGraph - Per-chunk model output
    - GraphNode, GraphEdge - Canonical graph
    - DedupResult, DedupStatistics, MergeResult - Merge outputs
    - GenerateGraphRequest, GenerateGraphResponse, GenerationProgress

Validation Models:
    - Issue, Severity, ValidationResult, ValidationMode, QualityScore

Usage Models:
    - UsageRecord, CurrentUsage, BudgetCheckResult, BudgetWarning
    - UsageSummary, OperationCost
    - ProviderCallRecord, CostReport - Request-scoped telemetry

Model Call Models:
    - CallOptions, TokenUsage, ModelResponse
    - OrchestratorConfig, OrchestratorResponse

All types are:
    - Pydantic BaseModel subclasses (or str Enums)
    - Serializable to/from JSON
"""

# Chunking Models
from graphex_kg.types.chunks import (
    Chunk,
    ChunkingResult,
    ChunkingStatistics,
    DocumentMeta,
    DocumentType,
    SplitMethod,
)

# Graph Models
from graphex_kg.types.graph import (
    BudgetAvailability,
    CandidateEdge,
    CandidateNode,
    CostEstimate,
    DedupResult,
    DedupStatistics,
    GenerateGraphRequest,
    GenerateGraphResponse,
    GenerationProgress,
    GenerationStage,
    GraphEdge,
    GraphMetadata,
    GraphNode,
    GraphStatistics,
    MergeResult,
    SubGraph,
)

# Validation Models
from graphex_kg.types.validation import (
    SEVERITY_PENALTIES,
    Issue,
    QualityScore,
    Severity,
    ValidationMode,
    ValidationResult,
)

# Usage Models
from graphex_kg.types.usage import (
    BudgetCheckResult,
    BudgetWarning,
    CostReport,
    CurrentUsage,
    OperationCost,
    ProviderCallRecord,
    StageCostBreakdown,
    UsageRecord,
    UsageSummary,
)

# Model Call Models
from graphex_kg.types.ai import (
    CallOptions,
    ModelResponse,
    OrchestratorConfig,
    OrchestratorResponse,
    QualityInfo,
    ResponseMetadata,
    TokenUsage,
)

__all__ = [
    # Chunking
    "Chunk",
    "ChunkingResult",
    "ChunkingStatistics",
    "DocumentMeta",
    "DocumentType",
    "SplitMethod",
    # Graph
    "BudgetAvailability",
    "CandidateEdge",
    "CandidateNode",
    "CostEstimate",
    "DedupResult",
    "DedupStatistics",
    "GenerateGraphRequest",
    "GenerateGraphResponse",
    "GenerationProgress",
    "GenerationStage",
    "GraphEdge",
    "GraphMetadata",
    "GraphNode",
    "GraphStatistics",
    "MergeResult",
    "SubGraph",
    # Validation
    "SEVERITY_PENALTIES",
    "Issue",
    "QualityScore",
    "Severity",
    "ValidationMode",
    "ValidationResult",
    # Usage
    "BudgetCheckResult",
    "BudgetWarning",
    "CostReport",
    "CurrentUsage",
    "OperationCost",
    "ProviderCallRecord",
    "StageCostBreakdown",
    "UsageRecord",
    "UsageSummary",
    # Model calls
    "CallOptions",
    "ModelResponse",
    "OrchestratorConfig",
    "OrchestratorResponse",
    "QualityInfo",
    "ResponseMetadata",
    "TokenUsage",
]
