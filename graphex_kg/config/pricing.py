"""
Model registry and pricing metadata.

All prices are USD per 1M tokens and may change over time. Model ids used
throughout the package are the short ids below; ``api_model`` is what the
provider SDK receives.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from graphex_kg.errors import CostCalculationError, UnknownModelError

PRICING_VERSION = "2024-11-estimate-v1"


@dataclass(frozen=True)
class ModelConfig:
    """Static description of one callable chat model."""

    model_id: str
    provider: str
    api_model: str
    input_per_million: float
    output_per_million: float
    max_tokens: int = 4096
    temperature: float = 0.7


@dataclass(frozen=True)
class TokenEstimate:
    """Conservative input/output token estimate for one operation."""

    input_tokens: int
    output_tokens: int


MODEL_CONFIGS: dict[str, ModelConfig] = {
    "claude-sonnet-4": ModelConfig(
        model_id="claude-sonnet-4",
        provider="anthropic",
        api_model="claude-sonnet-4-20250514",
        input_per_million=3.0,
        output_per_million=15.0,
    ),
    "claude-haiku": ModelConfig(
        model_id="claude-haiku",
        provider="anthropic",
        api_model="claude-3-5-haiku-20241022",
        input_per_million=0.25,
        output_per_million=1.25,
    ),
    "gpt-4-turbo": ModelConfig(
        model_id="gpt-4-turbo",
        provider="openai",
        api_model="gpt-4-turbo-preview",
        input_per_million=10.0,
        output_per_million=30.0,
    ),
}

# Model assumed when estimating spend before a call is made
ESTIMATION_MODEL = "claude-sonnet-4"

OPERATION_TOKEN_ESTIMATES: dict[str, TokenEstimate] = {
    "graph-generation": TokenEstimate(input_tokens=12000, output_tokens=3000),
    "connection-explanation": TokenEstimate(input_tokens=2400, output_tokens=600),
    "quiz-generation": TokenEstimate(input_tokens=4000, output_tokens=1000),
    "image-description": TokenEstimate(input_tokens=800, output_tokens=200),
    "node-description": TokenEstimate(input_tokens=1600, output_tokens=400),
}


def get_model_config(model_id: str) -> ModelConfig:
    """Look up a registered model, raising UnknownModelError otherwise."""
    config = MODEL_CONFIGS.get(model_id)
    if config is None:
        raise UnknownModelError(model_id)
    return config


def calculate_cost(input_tokens: int, output_tokens: int, model_id: str) -> float:
    """
    Price actual token usage for a registered model.

    Raises:
        UnknownModelError: If the model id is not registered.
    """
    config = get_model_config(model_id)
    return (
        (input_tokens / 1_000_000.0) * config.input_per_million
        + (output_tokens / 1_000_000.0) * config.output_per_million
    )


def estimate_operation_tokens(
    operation: str,
    estimated_tokens: int | None = None,
) -> TokenEstimate:
    """
    Token estimate for an operation before it runs.

    A caller-supplied total is split 80/20 between input and output;
    otherwise the fixed per-operation table applies.

    Raises:
        CostCalculationError: If the operation is unknown and no total is given.
    """
    if estimated_tokens:
        return TokenEstimate(
            input_tokens=math.ceil(estimated_tokens * 8 / 10),
            output_tokens=math.ceil(estimated_tokens * 2 / 10),
        )

    estimate = OPERATION_TOKEN_ESTIMATES.get(operation)
    if estimate is None:
        raise CostCalculationError(f"Unknown operation type: {operation}")
    return estimate
