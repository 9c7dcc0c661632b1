"""
Usage and Budget Types

Ledger Models:
    - UsageRecord: One completed orchestration (append-only)
    - CurrentUsage: Running totals for a user
    - UsageSummary / OperationCost: Aggregates for dashboards

Admission Models:
    - BudgetCheckResult: Verdict of an admission check
    - BudgetWarning: Informational threshold event

Telemetry Models (request-scoped, see utils.cost_telemetry):
    - ProviderCallRecord: One provider call
    - StageCostBreakdown / CostReport: Aggregates per stage
"""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

# -----------------------------------------------------------------------------
# Ledger Models
# -----------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UsageRecord(BaseModel):
    """
    One completed orchestration attempt sequence.

    Written exactly once, whether the sequence succeeded or was exhausted.
    Validation happens in CostGuard.record_usage so that invalid records
    surface as InvalidUsageDataError with every problem listed.
    """

    user_id: str | None = None
    operation: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    quality_score: int | None = None
    attempts: int = 1
    success: bool = True
    target_id: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class CurrentUsage(BaseModel):
    """Running totals (USD) for the current UTC day and month."""

    today: float = 0.0
    this_month: float = 0.0


class UsageSummary(BaseModel):
    """Aggregate usage for one user over a period."""

    total_cost: float = 0.0
    total_tokens: int = 0
    operation_count: int = 0
    average_cost_per_operation: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0


class OperationCost(BaseModel):
    """Spend attributed to one operation kind."""

    operation: str
    total_cost: float
    count: int
    average_cost: float
    percentage: float


# -----------------------------------------------------------------------------
# Admission Models
# -----------------------------------------------------------------------------


BudgetReason = Literal[
    "document-limit-exceeded",
    "daily-limit-exceeded",
    "monthly-limit-exceeded",
]


class BudgetCheckResult(BaseModel):
    """
    Verdict of an admission check.

    Attributes:
        allowed: Whether the operation may proceed
        reason: Which ceiling refused it (None when allowed)
        estimated_cost: Estimated USD cost of the operation
        current_usage: Usage totals the decision was based on
        reset_at: When the refusing window resets (daily/monthly only)
    """

    allowed: bool
    reason: BudgetReason | None = None
    estimated_cost: float = 0.0
    current_usage: CurrentUsage = Field(default_factory=CurrentUsage)
    reset_at: datetime | None = None


class BudgetWarning(BaseModel):
    """Usage crossed a warning ratio of a ceiling. Never blocks a call."""

    user_id: str
    window: Literal["day", "month"]
    usage: float
    limit: float
    ratio: float


# -----------------------------------------------------------------------------
# Telemetry Models
# -----------------------------------------------------------------------------


class ProviderCallRecord(BaseModel):
    """One provider call as seen by the model gateway."""

    provider: str
    model: str
    stage: str = "unknown"
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0
    latency_ms: int = 0
    estimated: bool = False
    metadata: dict[str, Any] = {}


class StageCostBreakdown(BaseModel):
    """Aggregated calls for one telemetry stage."""

    stage: str
    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0
    total_latency_ms: int = 0


class CostReport(BaseModel):
    """Aggregate of every provider call made within one request."""

    pricing_version: str
    total_calls: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_tokens: int = 0
    total_cost_usd: float = 0.0
    total_latency_ms: int = 0
    by_stage: list[StageCostBreakdown] = []
    warnings: list[str] = []
