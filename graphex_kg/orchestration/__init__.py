"""
Orchestration

Modules:
    prompts: Versioned prompt templates and model recommendation
    orchestrator: Budget, cache, retry and validation around model calls
"""

from graphex_kg.orchestration.orchestrator import (
    AttemptSuccess,
    FatalFailure,
    Orchestrator,
    RetryableFailure,
)
from graphex_kg.orchestration.prompts import build_prompt, recommended_model

__all__ = [
    "Orchestrator",
    "AttemptSuccess",
    "RetryableFailure",
    "FatalFailure",
    "build_prompt",
    "recommended_model",
]
