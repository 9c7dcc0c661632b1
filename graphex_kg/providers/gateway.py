"""
Model Gateway

Uniform call contract over heterogeneous chat-model providers.

Responsibilities:
    - Resolve a short model id to its provider and provider model name
    - Race every call against a timeout (ModelTimeoutError)
    - Normalise provider failures into RateLimitError, ModelUnavailableError
      or ModelProviderError
    - Price actual token usage and emit a telemetry record per call

Example:
    >>> gateway = ModelGateway.from_config(KGConfig())
    >>> response = await gateway.call(
    ...     "You extract knowledge graphs.", "Text: ...", "claude-haiku",
    ...     CallOptions(timeout_ms=30000),
    ... )
    >>> print(response.usage.total, gateway.calculate_cost(response.usage, "claude-haiku"))
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any

from graphex_kg.config.pricing import calculate_cost, get_model_config
from graphex_kg.errors import (
    GraphexError,
    ModelError,
    ModelProviderError,
    ModelTimeoutError,
    ModelUnavailableError,
    RateLimitError,
)
from graphex_kg.providers.base import LLMProvider
from graphex_kg.types.ai import CallOptions, ModelResponse, TokenUsage
from graphex_kg.types.usage import ProviderCallRecord
from graphex_kg.utils.cost_telemetry import current_stage, record_call

if TYPE_CHECKING:
    from graphex_kg.config import KGConfig

logger = logging.getLogger(__name__)

_UNAVAILABLE_STATUS = {500, 502, 503, 504, 529}
_BAD_REQUEST_STATUS = {400, 404}


# -----------------------------------------------------------------------------
# Error classification
# -----------------------------------------------------------------------------


def _status_code(error: BaseException) -> int | None:
    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(getattr(error, "response", None), "status_code", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def parse_retry_after(value: Any, now: datetime | None = None) -> int | None:
    """
    Convert a Retry-After value (seconds or HTTP date) to milliseconds.

    Returns None when the value is absent or unparseable.
    """
    if value is None:
        return None
    try:
        return max(0, int(float(value) * 1000))
    except (TypeError, ValueError):
        pass

    try:
        retry_at = parsedate_to_datetime(str(value))
    except (TypeError, ValueError, IndexError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0, int((retry_at - now).total_seconds() * 1000))


def _retry_after_ms(error: BaseException) -> int | None:
    headers = getattr(getattr(error, "response", None), "headers", None)
    value = None
    if headers is not None:
        try:
            value = headers.get("retry-after") or headers.get("Retry-After")
        except AttributeError:
            value = None
    if value is None:
        value = getattr(error, "retry_after", None)
    return parse_retry_after(value)


def classify_provider_error(error: BaseException, model: str) -> ModelError:
    """Map an arbitrary provider exception onto the model error taxonomy."""
    if isinstance(error, ModelError):
        return error

    status = _status_code(error)
    text = f"{type(error).__name__} {error}".lower()

    if status == 429 or "rate_limit" in text or "ratelimit" in text:
        return RateLimitError(str(error), model=model, retry_after_ms=_retry_after_ms(error))

    if status in _BAD_REQUEST_STATUS or "model_not_found" in text or "invalid_request" in text:
        return ModelUnavailableError(str(error), model=model, retryable=False)

    if (
        status in _UNAVAILABLE_STATUS
        or "overloaded" in text
        or "api_error" in text
        or isinstance(error, ConnectionError)
        or "connection" in type(error).__name__.lower()
    ):
        return ModelUnavailableError(str(error), model=model, retryable=True)

    return ModelProviderError(str(error), model=model, cause=error)


# -----------------------------------------------------------------------------
# Gateway
# -----------------------------------------------------------------------------


class ModelGateway:
    """
    Routes calls to registered providers by short model id.

    Args:
        providers: Providers keyed by provider name ("anthropic", "openai")
    """

    def __init__(self, providers: dict[str, LLMProvider]) -> None:
        self._providers = dict(providers)

    @classmethod
    def from_config(cls, config: "KGConfig") -> "ModelGateway":
        from graphex_kg.providers.llm import LangChainChatProvider

        return cls({
            "anthropic": LangChainChatProvider("anthropic", config.anthropic_api_key),
            "openai": LangChainChatProvider("openai", config.openai_api_key),
        })

    @staticmethod
    def calculate_cost(usage: TokenUsage, model_id: str) -> float:
        """
        USD cost of a call's token usage.

        Raises:
            UnknownModelError: If the model id is not registered.
        """
        return calculate_cost(usage.input, usage.output, model_id)

    async def call(
        self,
        system_prompt: str,
        user_prompt: str,
        model_id: str,
        options: CallOptions | None = None,
    ) -> ModelResponse:
        """
        Call a model and return its normalised response.

        Raises:
            UnknownModelError: Model id not registered
            ModelTimeoutError: Call exceeded options.timeout_ms
            RateLimitError: Provider rate limit
            ModelUnavailableError: Provider down or request rejected
            ModelProviderError: Any other provider failure
        """
        options = options or CallOptions()
        config = get_model_config(model_id)

        provider = self._providers.get(config.provider)
        if provider is None:
            # Retryable so the cascade can move to a configured provider
            raise ModelUnavailableError(
                f"No provider configured for {config.provider}",
                model=model_id,
                retryable=True,
            )

        start = time.perf_counter_ns()
        try:
            completion = await asyncio.wait_for(
                provider.generate(
                    user_prompt,
                    system=system_prompt,
                    model=config.api_model,
                    temperature=options.temperature,
                    max_tokens=options.max_tokens,
                ),
                timeout=options.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            logger.warning(f"{model_id} timed out after {options.timeout_ms}ms")
            raise ModelTimeoutError(options.timeout_ms, model=model_id)
        except GraphexError:
            raise
        except Exception as e:
            error = classify_provider_error(e, model_id)
            logger.warning(f"{model_id} call failed ({type(error).__name__}): {e}")
            raise error from e

        elapsed_ms = (time.perf_counter_ns() - start) // 1_000_000
        usage = TokenUsage(
            input=completion.input_tokens or 0,
            output=completion.output_tokens or 0,
        )
        cost = self.calculate_cost(usage, model_id)

        record_call(
            ProviderCallRecord(
                provider=config.provider,
                model=model_id,
                stage=current_stage(),
                input_tokens=usage.input,
                output_tokens=usage.output,
                total_tokens=usage.total,
                cost_usd=cost,
                latency_ms=int(elapsed_ms),
                estimated=completion.estimated,
                metadata={
                    "api_model": config.api_model,
                    "finish_reason": completion.finish_reason,
                    "temperature": options.temperature,
                    "max_tokens": options.max_tokens,
                },
            )
        )

        logger.debug(
            f"{model_id}: {usage.input}+{usage.output} tokens in {elapsed_ms}ms "
            f"(${cost:.6f}, finish={completion.finish_reason})"
        )

        return ModelResponse(
            content=completion.content,
            usage=usage,
            finish_reason=completion.finish_reason,
            processing_time_ms=int(elapsed_ms),
            model=model_id,
        )
