"""
Model Call and Orchestration Types

Gateway Models:
    - CallOptions: Per-call generation settings
    - TokenUsage / ModelResponse: Normalised provider response

Orchestrator Models:
    - OrchestratorConfig: Retry/quality/budget settings for one execute()
    - OrchestratorResponse: Accepted artifact plus quality and cost metadata
"""

from typing import Any

from pydantic import BaseModel, Field

# -----------------------------------------------------------------------------
# Gateway Models
# -----------------------------------------------------------------------------


class CallOptions(BaseModel):
    """Generation settings for one model call."""

    max_tokens: int = 4096
    temperature: float = 0.7
    timeout_ms: int = 30000


class TokenUsage(BaseModel):
    """Token counts for one call."""

    input: int = 0
    output: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output


class ModelResponse(BaseModel):
    """
    Provider-independent response of a model call.

    Attributes:
        content: Raw text returned by the model
        usage: Token counts (estimated when the provider omits them)
        finish_reason: Provider stop reason ("stop", "end_turn", "length", ...)
        processing_time_ms: Wall-clock time of the call
        model: Short model id that served the call
    """

    content: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    finish_reason: str = "stop"
    processing_time_ms: int = 0
    model: str


# -----------------------------------------------------------------------------
# Orchestrator Models
# -----------------------------------------------------------------------------


class OrchestratorConfig(BaseModel):
    """Settings for one Orchestrator.execute call."""

    max_retries: int = Field(default=3, ge=1)
    quality_threshold: int = Field(default=60, ge=0, le=100)
    preferred_model: str | None = None
    timeout_ms: int = 30000
    user_id: str | None = None
    target_id: str | None = None
    prompt_version: str = "production"
    skip_cache: bool = False


class QualityInfo(BaseModel):
    """Quality outcome of an accepted artifact."""

    score: int
    attempts: int
    validation_passed: bool
    warnings: list[str] = []


class ResponseMetadata(BaseModel):
    """Cost and provenance of an accepted artifact."""

    cached: bool = False
    cost: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    processing_time_ms: int = 0
    prompt_version: str = "production"
    models_tried: list[str] = []


class OrchestratorResponse(BaseModel):
    """Accepted artifact returned by the orchestrator."""

    data: dict[str, Any]
    model: str
    quality: QualityInfo
    metadata: ResponseMetadata
