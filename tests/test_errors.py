"""Tests for the error taxonomy helpers."""

from datetime import datetime, timezone

import pytest

from graphex_kg.errors import (
    BudgetExceededError,
    EmptyDocumentError,
    GraphexError,
    ModelError,
    ModelProviderError,
    ModelTimeoutError,
    ModelUnavailableError,
    RateLimitError,
    ResponseParseError,
    UnknownModelError,
    ValidationExhaustedError,
    format_error_for_user,
    get_retry_delay_ms,
    is_retryable_error,
)


class TestRetryability:
    """Tests for is_retryable_error."""

    @pytest.mark.parametrize(
        "error",
        [
            RateLimitError(),
            ModelTimeoutError(1000),
            ModelUnavailableError(retryable=True),
            ResponseParseError("bad json"),
        ],
    )
    def test_transient(self, error):
        assert is_retryable_error(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            ModelUnavailableError(retryable=False),
            ModelProviderError("boom"),
            BudgetExceededError("daily-limit-exceeded"),
            ValidationExhaustedError("done", attempts=3, feedback=[]),
            ValueError("other"),
        ],
    )
    def test_permanent(self, error):
        assert is_retryable_error(error) is False


class TestRetryDelay:
    """Tests for get_retry_delay_ms."""

    def test_retry_after_wins(self):
        assert get_retry_delay_ms(RateLimitError(retry_after_ms=2500), 3) == 2500

    def test_exponential_backoff_capped(self):
        assert [get_retry_delay_ms(None, a) for a in (1, 2, 3, 4, 5, 6)] == [
            1000, 2000, 4000, 8000, 8000, 8000,
        ]


class TestFormatting:
    """Tests for messages and user-facing text."""

    def test_budget_message_includes_reset(self):
        reset = datetime(2026, 3, 15, tzinfo=timezone.utc)
        error = BudgetExceededError("daily-limit-exceeded", reset_at=reset)
        assert "2026-03-15" in str(error)
        assert "today" in format_error_for_user(error)

    def test_rate_limit_seconds(self):
        assert "3 seconds" in format_error_for_user(RateLimitError(retry_after_ms=2100))

    def test_generic(self):
        assert format_error_for_user(RuntimeError("x")) == "An unexpected error occurred."
        assert "no text" in format_error_for_user(EmptyDocumentError())

    def test_hierarchy(self):
        assert issubclass(UnknownModelError, GraphexError)
        assert UnknownModelError("gpt-17").model_id == "gpt-17"
        assert issubclass(ValidationExhaustedError, ModelError)
