"""
Exception Hierarchy

Every error raised by GraphexKG derives from GraphexError so callers can catch
the package as a whole, while the pipeline distinguishes the classes that
matter for control flow:

    Admission (never retried, never replaced by a fallback graph):
        BudgetExceededError

    Transient provider errors (retried within the attempt budget):
        RateLimitError, ModelTimeoutError, ModelUnavailableError(retryable=True)

    Non-retryable provider errors (propagate immediately):
        ModelUnavailableError(retryable=False), ModelProviderError,
        UnknownModelError

    Output errors (retried with corrective feedback, then aggregated):
        ResponseParseError, ValidationExhaustedError
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any


class GraphexError(Exception):
    """Base class for all GraphexKG errors."""


# -----------------------------------------------------------------------------
# Document / Input Errors
# -----------------------------------------------------------------------------


class EmptyDocumentError(GraphexError):
    """Raised when a document has no usable text."""

    def __init__(self, message: str = "Document is empty") -> None:
        super().__init__(message)


class EmptyInputError(GraphexError):
    """Raised when deduplication receives no nodes."""


class MalformedNodeError(GraphexError):
    """Raised when a node lacks an id or a title."""

    def __init__(self, message: str, node: Any = None) -> None:
        super().__init__(message)
        self.node = node


class PromptTemplateError(GraphexError):
    """Raised for an unknown prompt kind/version or missing context fields."""


# -----------------------------------------------------------------------------
# Budget Errors
# -----------------------------------------------------------------------------


class BudgetExceededError(GraphexError):
    """Raised when admission control refuses an operation."""

    def __init__(
        self,
        reason: str,
        *,
        estimated_cost: float = 0.0,
        current_usage: dict[str, float] | None = None,
        reset_at: datetime | None = None,
    ) -> None:
        message = f"Budget exceeded: {reason}"
        if reset_at is not None:
            message += f" (resets at {reset_at.isoformat()})"
        super().__init__(message)
        self.reason = reason
        self.estimated_cost = estimated_cost
        self.current_usage = current_usage or {}
        self.reset_at = reset_at


class InvalidUsageDataError(GraphexError):
    """Raised when a usage record fails validation."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__(f"Invalid usage data: {'; '.join(errors)}")
        self.errors = errors


class CostTrackingError(GraphexError):
    """Raised when the usage ledger cannot be read or written."""

    def __init__(self, message: str, operation: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.operation = operation
        self.cause = cause


class CostCalculationError(GraphexError):
    """Raised when a cost cannot be computed."""


class UnknownModelError(CostCalculationError):
    """Raised for a model id missing from the registry."""

    def __init__(self, model_id: str) -> None:
        super().__init__(f"Unknown model: {model_id}")
        self.model_id = model_id


# -----------------------------------------------------------------------------
# Model Errors
# -----------------------------------------------------------------------------


class ModelError(GraphexError):
    """Base class for failures on the model-call path."""

    def __init__(self, message: str, *, model: str | None = None) -> None:
        super().__init__(message)
        self.model = model


class RateLimitError(ModelError):
    """Provider rejected the call for rate limiting."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        model: str | None = None,
        retry_after_ms: int | None = None,
    ) -> None:
        super().__init__(message, model=model)
        self.retry_after_ms = retry_after_ms


class ModelTimeoutError(ModelError):
    """Provider call did not finish within the timeout."""

    def __init__(self, timeout_ms: int, *, model: str | None = None) -> None:
        super().__init__(f"Model call timed out after {timeout_ms}ms", model=model)
        self.timeout_ms = timeout_ms


class ModelUnavailableError(ModelError):
    """Provider is down, overloaded, or refused the request."""

    def __init__(
        self,
        message: str = "Model unavailable",
        *,
        model: str | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message, model=model)
        self.retryable = retryable


class ModelProviderError(ModelError):
    """Unclassified provider failure; never retried."""

    def __init__(
        self,
        message: str,
        *,
        model: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, model=model)
        self.cause = cause


class ResponseParseError(ModelError):
    """Model output could not be decoded into the expected structure."""

    def __init__(self, message: str, *, raw_content: str = "", model: str | None = None) -> None:
        super().__init__(message, model=model)
        self.raw_content = raw_content


class ValidationExhaustedError(ModelError):
    """All attempts ran without producing an artifact that passed validation."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        feedback: list[list[str]],
        last_error: str | None = None,
        quality_scores: list[int] | None = None,
        model: str | None = None,
    ) -> None:
        super().__init__(message, model=model)
        self.attempts = attempts
        self.feedback = feedback
        self.last_error = last_error
        self.quality_scores = quality_scores or []


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

_MAX_BACKOFF_MS = 8000


def is_retryable_error(error: BaseException) -> bool:
    """Whether an error may be retried within the attempt budget."""
    if isinstance(error, (RateLimitError, ModelTimeoutError, ResponseParseError)):
        return True
    if isinstance(error, ModelUnavailableError):
        return error.retryable
    return False


def get_retry_delay_ms(error: BaseException | None, attempt: int) -> int:
    """Provider-suggested delay, else exponential backoff capped at 8s."""
    if isinstance(error, RateLimitError) and error.retry_after_ms is not None:
        return error.retry_after_ms
    return min(1000 * 2 ** max(attempt - 1, 0), _MAX_BACKOFF_MS)


def format_error_for_user(error: BaseException) -> str:
    """Short, non-technical message for an error."""
    if isinstance(error, BudgetExceededError):
        if error.reason == "daily-limit-exceeded":
            return "You've reached today's AI usage limit. Please try again tomorrow."
        if error.reason == "monthly-limit-exceeded":
            return "You've reached this month's AI usage limit."
        if error.reason == "document-limit-exceeded":
            return "This document is too large to process within the cost limit."
        return "This request exceeds the available budget."
    if isinstance(error, RateLimitError):
        seconds = math.ceil((error.retry_after_ms or 0) / 1000)
        if seconds:
            return f"The AI service is busy. Please retry in {seconds} seconds."
        return "The AI service is busy. Please retry shortly."
    if isinstance(error, ModelTimeoutError):
        return "The AI service took too long to respond. Please try again."
    if isinstance(error, ModelUnavailableError):
        return "The AI service is temporarily unavailable. Please try again later."
    if isinstance(error, ValidationExhaustedError):
        return "We couldn't generate a good enough result. Please try again."
    if isinstance(error, EmptyDocumentError):
        return "The document contains no text to process."
    return "An unexpected error occurred."
