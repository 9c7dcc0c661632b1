"""
Validation Types

Issues, results and scores produced by the output validator.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """Issue severity, ordered from most to least severe."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


SEVERITY_PENALTIES: dict[Severity, int] = {
    Severity.CRITICAL: 40,
    Severity.HIGH: 20,
    Severity.MEDIUM: 10,
    Severity.LOW: 5,
}


class ValidationMode(str, Enum):
    """quick runs structural checks; full adds source grounding."""

    QUICK = "quick"
    FULL = "full"


class Issue(BaseModel):
    """
    One problem found in a generated artifact.

    Attributes:
        severity: How much the issue costs in score
        kind: Machine-readable issue type (e.g. "too-few-nodes")
        message: Human-readable description
        fix: Instruction the model can act on when retrying
        metadata: Extra details (e.g. grounding percentage)
    """

    severity: Severity
    kind: str
    message: str
    fix: str | None = None
    metadata: dict[str, Any] = {}


class ValidationResult(BaseModel):
    """Outcome of validating one artifact."""

    passed: bool
    score: int = Field(ge=0, le=100)
    issues: list[Issue] = []
    warnings: list[str] = []


class QualityScore(BaseModel):
    """Score plus issue counts per severity."""

    score: int = Field(ge=0, le=100)
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
