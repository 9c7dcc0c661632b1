"""
Orchestrator

Turns one prompt kind plus context into a validated artifact, or fails.

Flow:
    1. Admission check (BudgetExceededError when refused)
    2. Cache lookup (zero-cost hit)
    3. Build prompt, pick the starting model
    4. Attempt loop, at most max_retries attempts:
        - call the model gateway
        - decode JSON (direct, then first fenced block)
        - quick validation
       Each attempt resolves to an outcome:
        - AttemptSuccess: accept the artifact
        - RetryableFailure: back off, switch model, or re-prompt with feedback
        - FatalFailure: re-raise immediately
    5. Cache the result, record usage, return

The attempt counter increments at the start of every attempt, so rate-limit
waits and model switches consume attempts too.

Example:
    >>> orchestrator = Orchestrator(gateway, OutputValidator(), guard, cache)
    >>> response = await orchestrator.execute(
    ...     "graph-generation",
    ...     {"documentTitle": "Notes", "documentText": text},
    ...     OrchestratorConfig(user_id="user-1"),
    ... )
    >>> print(response.model, response.quality.score, response.metadata.cost)
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import math
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Union

from graphex_kg.budget.cache import CacheStore
from graphex_kg.budget.cost_guard import CostGuard
from graphex_kg.errors import (
    BudgetExceededError,
    GraphexError,
    ModelTimeoutError,
    ModelUnavailableError,
    RateLimitError,
    ResponseParseError,
    ValidationExhaustedError,
    get_retry_delay_ms,
)
from graphex_kg.orchestration.prompts import (
    DEFAULT_MODEL,
    STRONG_MODEL,
    BuiltPrompt,
    build_prompt,
    recommended_model,
)
from graphex_kg.providers.gateway import ModelGateway
from graphex_kg.types.ai import (
    CallOptions,
    ModelResponse,
    OrchestratorConfig,
    OrchestratorResponse,
    QualityInfo,
    ResponseMetadata,
)
from graphex_kg.types.usage import UsageRecord
from graphex_kg.types.validation import ValidationMode, ValidationResult
from graphex_kg.validation.output_validator import OutputValidator

logger = logging.getLogger(__name__)

FALLBACK_CASCADE: tuple[str, ...] = ("claude-haiku", "claude-sonnet-4", "gpt-4-turbo")

CACHE_TTL_SECONDS: dict[str, int] = {
    "graph-generation": 3600,
    "connection-explanation": 3600,
    "quiz-generation": 1800,
    "image-description": 86400,
}
DEFAULT_CACHE_TTL_SECONDS = 3600

QUALITY_RECOVERY_ATTEMPT = 2

PARSE_FAILURE_FEEDBACK = [
    "The previous response had invalid format.",
    "Please ensure output is valid JSON matching the expected structure.",
]

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*\n(.*?)\n```", re.DOTALL)


# -----------------------------------------------------------------------------
# Attempt outcomes
# -----------------------------------------------------------------------------

RetryReason = Literal[
    "rate-limited",
    "timeout",
    "model-unavailable",
    "parse-failed",
    "validation-failed",
]


@dataclass
class AttemptSuccess:
    """Artifact decoded and passed validation."""

    data: dict[str, Any]
    response: ModelResponse
    validation: ValidationResult


@dataclass
class RetryableFailure:
    """Attempt failed in a way another attempt may fix."""

    reason: RetryReason
    feedback: list[str] | None = None
    delay_ms: int = 0
    score: int | None = None
    response: ModelResponse | None = None
    error: BaseException | None = None


@dataclass
class FatalFailure:
    """Attempt failed in a way no retry can fix."""

    error: BaseException


AttemptOutcome = Union[AttemptSuccess, RetryableFailure, FatalFailure]


@dataclass
class _RunState:
    """Mutable bookkeeping for one execute() loop."""

    model: str
    attempts: int = 0
    feedback: list[str] = field(default_factory=list)
    feedback_history: list[list[str]] = field(default_factory=list)
    quality_scores: list[int] = field(default_factory=list)
    models_tried: list[str] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    last_error: BaseException | None = None


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def parse_json_response(content: str) -> dict[str, Any]:
    """
    Decode model output as a JSON object.

    Tries the whole text first, then the first fenced code block.

    Raises:
        ResponseParseError: If neither decodes to a JSON object
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        match = _FENCED_BLOCK.search(content)
        if match is None:
            raise ResponseParseError(
                f"Response is not valid JSON: {e}",
                raw_content=content[:500],
            )
        try:
            data = json.loads(match.group(1))
        except json.JSONDecodeError as inner:
            raise ResponseParseError(
                f"Failed to parse JSON from code block: {inner}",
                raw_content=content[:500],
            )

    if not isinstance(data, dict):
        raise ResponseParseError(
            f"Expected a JSON object, got {type(data).__name__}",
            raw_content=content[:500],
        )
    return data


def with_feedback(prompt: str, feedback: list[str]) -> str:
    """Prepend numbered corrective feedback to a user prompt."""
    if not feedback:
        return prompt
    items = "\n".join(f"{index}. {item}" for index, item in enumerate(feedback, start=1))
    return (
        "\n\n---\nIMPORTANT: Previous attempt had issues. Please fix:\n"
        + items
        + "\n---\n\n"
        + prompt
    )


def next_fallback_model(model: str) -> str:
    """
    Next model in the cascade.

    Raises:
        ModelUnavailableError: (retryable=False) when the cascade is exhausted
    """
    if model not in FALLBACK_CASCADE:
        return FALLBACK_CASCADE[0]
    index = FALLBACK_CASCADE.index(model)
    if index + 1 >= len(FALLBACK_CASCADE):
        raise ModelUnavailableError(
            "All fallback models exhausted",
            model=model,
            retryable=False,
        )
    return FALLBACK_CASCADE[index + 1]


def build_cache_key(kind: str, context: dict[str, Any], model: str, version: str) -> str:
    """ai:{kind}:{version}:{model}:{hash of canonical context}"""
    canonical = json.dumps(context, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]
    return f"ai:{kind}:{version}:{model}:{digest}"


# -----------------------------------------------------------------------------
# Orchestrator
# -----------------------------------------------------------------------------


class Orchestrator:
    """
    Budgeted, cached, validated model calls.

    Args:
        gateway: Model gateway used for every attempt
        validator: Output validator (quick mode per attempt)
        cost_guard: Admission control and usage ledger
        cache: Result cache
        call_options: max_tokens/temperature for every call (timeout comes from config)
        sleep: Awaitable sleep used for backoff (injectable for tests)
    """

    def __init__(
        self,
        gateway: ModelGateway,
        validator: OutputValidator,
        cost_guard: CostGuard,
        cache: CacheStore,
        *,
        call_options: CallOptions | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self.validator = validator
        self.cost_guard = cost_guard
        self.cache = cache
        self.call_options = call_options or CallOptions()
        self._sleep = sleep

    async def execute(
        self,
        kind: str,
        context: dict[str, Any],
        config: OrchestratorConfig | None = None,
    ) -> OrchestratorResponse:
        """
        Produce a validated artifact for a prompt kind.

        Raises:
            BudgetExceededError: Admission refused
            PromptTemplateError: Unknown kind or missing context
            ValidationExhaustedError: No attempt produced a passing artifact
            ModelError: Non-retryable provider failure or exhausted cascade
        """
        config = config or OrchestratorConfig()
        start = time.perf_counter()

        await self._admit(kind, context, config)

        cache_key = build_cache_key(
            kind,
            context,
            config.preferred_model or DEFAULT_MODEL,
            config.prompt_version,
        )
        if not config.skip_cache:
            cached = await self._read_cache(cache_key, config, start)
            if cached is not None:
                logger.info(f"Cache hit for {kind}")
                return cached

        prompt = build_prompt(kind, context, config.prompt_version)
        state = _RunState(model=config.preferred_model or recommended_model(kind, context))

        while state.attempts < config.max_retries:
            state.attempts += 1
            if state.model not in state.models_tried:
                state.models_tried.append(state.model)

            logger.debug(
                f"{kind} attempt {state.attempts}/{config.max_retries} on {state.model}"
                + (" with feedback" if state.feedback else "")
            )

            outcome = await self._attempt(prompt, kind, state, config)
            self._account(state, outcome)

            if isinstance(outcome, AttemptSuccess):
                response = self._build_response(outcome, state, config, start)
                await self._write_cache(cache_key, kind, response)
                await self._record_usage(kind, state, config, response.quality.score, True)
                logger.info(
                    f"{kind} succeeded on {state.model} after {state.attempts} attempt(s): "
                    f"score={response.quality.score}, cost=${state.cost:.6f}"
                )
                return response

            if isinstance(outcome, FatalFailure):
                logger.error(f"{kind} failed on {state.model}: {outcome.error}")
                raise outcome.error

            await self._handle_retry(outcome, state, kind)

        await self._record_usage(
            kind,
            state,
            config,
            state.quality_scores[-1] if state.quality_scores else None,
            False,
        )
        last_feedback = state.feedback_history[-1] if state.feedback_history else []
        logger.error(
            f"{kind} exhausted {state.attempts} attempts (scores {state.quality_scores})"
        )
        raise ValidationExhaustedError(
            f"Failed to generate valid output after {state.attempts} attempts. "
            f"Quality issues: {', '.join(last_feedback)}",
            attempts=state.attempts,
            feedback=state.feedback_history,
            last_error=str(state.last_error) if state.last_error else None,
            quality_scores=state.quality_scores,
            model=state.model,
        )

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def _admit(
        self,
        kind: str,
        context: dict[str, Any],
        config: OrchestratorConfig,
    ) -> None:
        estimated_tokens = math.ceil(
            len(json.dumps(context, default=str, ensure_ascii=False)) / 4
        )
        check = await self.cost_guard.check_budget(
            config.user_id,
            kind,
            estimated_tokens=estimated_tokens,
            target_id=config.target_id,
        )
        if not check.allowed:
            logger.warning(f"{kind} refused: {check.reason}")
            raise BudgetExceededError(
                check.reason or "budget-exceeded",
                estimated_cost=check.estimated_cost,
                current_usage=check.current_usage.model_dump(),
                reset_at=check.reset_at,
            )

    async def _attempt(
        self,
        prompt: BuiltPrompt,
        kind: str,
        state: _RunState,
        config: OrchestratorConfig,
    ) -> AttemptOutcome:
        options = self.call_options.model_copy(update={"timeout_ms": config.timeout_ms})
        try:
            response = await self.gateway.call(
                prompt.system_prompt,
                with_feedback(prompt.user_prompt, state.feedback),
                state.model,
                options,
            )
        except RateLimitError as e:
            return RetryableFailure(
                "rate-limited",
                delay_ms=get_retry_delay_ms(e, state.attempts),
                error=e,
            )
        except ModelTimeoutError as e:
            return RetryableFailure(
                "timeout",
                delay_ms=get_retry_delay_ms(None, state.attempts),
                error=e,
            )
        except ModelUnavailableError as e:
            if e.retryable:
                return RetryableFailure("model-unavailable", error=e)
            return FatalFailure(e)
        except GraphexError as e:
            return FatalFailure(e)

        try:
            data = parse_json_response(response.content)
        except ResponseParseError as e:
            return RetryableFailure(
                "parse-failed",
                feedback=[*PARSE_FAILURE_FEEDBACK, str(e)],
                response=response,
                error=e,
            )

        validation = self.validator.validate(
            data,
            kind,
            mode=ValidationMode.QUICK,
            threshold=config.quality_threshold,
        )
        if validation.passed:
            return AttemptSuccess(data=data, response=response, validation=validation)

        return RetryableFailure(
            "validation-failed",
            feedback=[f"{issue.kind}: {issue.fix}" for issue in validation.issues if issue.fix],
            score=validation.score,
            response=response,
        )

    def _account(self, state: _RunState, outcome: AttemptOutcome) -> None:
        """Add the tokens and cost of any call that returned."""
        response = getattr(outcome, "response", None)
        if response is None:
            return
        state.input_tokens += response.usage.input
        state.output_tokens += response.usage.output
        state.cost += self.gateway.calculate_cost(response.usage, response.model)

    async def _handle_retry(self, outcome: RetryableFailure, state: _RunState, kind: str) -> None:
        state.last_error = outcome.error or state.last_error

        if outcome.reason in ("rate-limited", "timeout"):
            logger.warning(
                f"{kind} {outcome.reason} on {state.model}, waiting {outcome.delay_ms}ms"
            )
            await self._sleep(outcome.delay_ms / 1000)
            return

        if outcome.reason == "model-unavailable":
            previous = state.model
            state.model = next_fallback_model(previous)
            logger.warning(f"{previous} unavailable, switching to {state.model}")
            return

        state.feedback = outcome.feedback or []
        state.feedback_history.append(state.feedback)

        if outcome.reason == "parse-failed":
            logger.warning(f"{kind} output from {state.model} was not valid JSON")
            return

        if outcome.score is not None:
            state.quality_scores.append(outcome.score)
        logger.warning(
            f"{kind} validation failed on {state.model} "
            f"(attempt {state.attempts}, score {outcome.score}): {state.feedback}"
        )
        if state.model == DEFAULT_MODEL and state.attempts == QUALITY_RECOVERY_ATTEMPT:
            logger.info(f"Quality recovery: upgrading {state.model} to {STRONG_MODEL}")
            state.model = STRONG_MODEL

    def _build_response(
        self,
        outcome: AttemptSuccess,
        state: _RunState,
        config: OrchestratorConfig,
        start: float,
    ) -> OrchestratorResponse:
        state.quality_scores.append(outcome.validation.score)
        return OrchestratorResponse(
            data=outcome.data,
            model=outcome.response.model,
            quality=QualityInfo(
                score=outcome.validation.score,
                attempts=state.attempts,
                validation_passed=True,
                warnings=outcome.validation.warnings,
            ),
            metadata=ResponseMetadata(
                cached=False,
                cost=state.cost,
                input_tokens=state.input_tokens,
                output_tokens=state.output_tokens,
                total_tokens=state.input_tokens + state.output_tokens,
                processing_time_ms=int((time.perf_counter() - start) * 1000),
                prompt_version=config.prompt_version,
                models_tried=list(state.models_tried),
            ),
        )

    # -------------------------------------------------------------------------
    # Cache and usage (failures here never fail the request)
    # -------------------------------------------------------------------------

    async def _read_cache(
        self,
        key: str,
        config: OrchestratorConfig,
        start: float,
    ) -> OrchestratorResponse | None:
        try:
            raw = await self.cache.get(key)
            if raw is None:
                return None
            cached = json.loads(raw) if isinstance(raw, str) else raw
            return OrchestratorResponse(
                data=cached["data"],
                model=cached["model"],
                quality=QualityInfo(
                    score=cached["quality_score"],
                    attempts=1,
                    validation_passed=True,
                ),
                metadata=ResponseMetadata(
                    cached=True,
                    cost=0.0,
                    processing_time_ms=int((time.perf_counter() - start) * 1000),
                    prompt_version=config.prompt_version,
                    models_tried=[cached["model"]],
                ),
            )
        except Exception as e:
            # Unreadable or unavailable cache is a miss
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

    async def _write_cache(self, key: str, kind: str, response: OrchestratorResponse) -> None:
        payload = json.dumps({
            "data": response.data,
            "model": response.model,
            "quality_score": response.quality.score,
            "cached_at": datetime.now(timezone.utc).isoformat(),
        })
        ttl = CACHE_TTL_SECONDS.get(kind, DEFAULT_CACHE_TTL_SECONDS)
        try:
            await self.cache.set_with_ttl(key, payload, ttl)
        except Exception as e:
            # Result is still returned uncached
            logger.warning(f"Cache write failed for {key}: {e}")

    async def _record_usage(
        self,
        kind: str,
        state: _RunState,
        config: OrchestratorConfig,
        quality_score: int | None,
        success: bool,
    ) -> None:
        record = UsageRecord(
            user_id=config.user_id,
            operation=kind,
            model=state.model,
            input_tokens=state.input_tokens,
            output_tokens=state.output_tokens,
            cost=state.cost,
            quality_score=quality_score,
            attempts=max(state.attempts, 1),
            success=success,
            target_id=config.target_id,
        )
        try:
            await self.cost_guard.record_usage(record)
        except Exception as e:
            # Metrics must never break the user-visible result
            logger.warning(f"Failed to record usage for {kind}: {e}")
