"""Tests for the orchestrator state machine."""

import json
from unittest.mock import AsyncMock

import pytest

from tests.conftest import FakeHTTPError, ScriptedLLM, make_graph_artifact

CONTEXT = {"documentTitle": "Deep Learning", "documentText": "Neural networks learn from data."}
BROKEN_GRAPH = json.dumps({"nodes": []})


def _orchestrator(providers, store, **guard_kwargs):
    from graphex_kg.budget import CostGuard, InMemoryCacheStore
    from graphex_kg.orchestration import Orchestrator
    from graphex_kg.providers import ModelGateway
    from graphex_kg.validation import OutputValidator

    return Orchestrator(
        ModelGateway(providers),
        OutputValidator(),
        CostGuard(InMemoryCacheStore(), store, **guard_kwargs),
        InMemoryCacheStore(),
        sleep=AsyncMock(),
    )


class TestHelpers:
    """Tests for the module-level helpers."""

    def test_parse_direct_json(self):
        from graphex_kg.orchestration.orchestrator import parse_json_response

        assert parse_json_response('{"a": 1}') == {"a": 1}

    def test_parse_fenced_block(self):
        from graphex_kg.orchestration.orchestrator import parse_json_response

        content = 'Here is the graph:\n```json\n{"a": 1}\n```\nDone.'
        assert parse_json_response(content) == {"a": 1}

    def test_parse_rejects_non_objects(self):
        from graphex_kg.errors import ResponseParseError
        from graphex_kg.orchestration.orchestrator import parse_json_response

        with pytest.raises(ResponseParseError):
            parse_json_response("[1, 2]")
        with pytest.raises(ResponseParseError):
            parse_json_response("no json here")

    def test_with_feedback(self):
        from graphex_kg.orchestration.orchestrator import with_feedback

        assert with_feedback("prompt", []) == "prompt"
        text = with_feedback("prompt", ["fix a", "fix b"])
        assert "1. fix a\n2. fix b" in text
        assert text.endswith("prompt")

    def test_fallback_cascade(self):
        from graphex_kg.errors import ModelUnavailableError
        from graphex_kg.orchestration.orchestrator import next_fallback_model

        assert next_fallback_model("claude-haiku") == "claude-sonnet-4"
        assert next_fallback_model("claude-sonnet-4") == "gpt-4-turbo"
        assert next_fallback_model("something-else") == "claude-haiku"
        with pytest.raises(ModelUnavailableError) as exc:
            next_fallback_model("gpt-4-turbo")
        assert exc.value.retryable is False

    def test_cache_key_ignores_key_order(self):
        from graphex_kg.orchestration.orchestrator import build_cache_key

        first = build_cache_key("graph-generation", {"a": 1, "b": 2}, "claude-haiku", "production")
        second = build_cache_key("graph-generation", {"b": 2, "a": 1}, "claude-haiku", "production")
        assert first == second
        assert first.startswith("ai:graph-generation:production:claude-haiku:")


class TestExecute:
    """Tests for Orchestrator.execute."""

    @pytest.mark.asyncio
    async def test_first_attempt_success(self, memory_store, valid_graph_json):
        """A valid artifact is accepted, priced and recorded once."""
        llm = ScriptedLLM([valid_graph_json])
        orchestrator = _orchestrator({"anthropic": llm}, memory_store)

        response = await orchestrator.execute("graph-generation", CONTEXT)

        assert response.model == "claude-haiku"
        assert response.quality.attempts == 1
        assert response.quality.score == 100
        assert response.metadata.cached is False
        assert response.metadata.cost == pytest.approx(0.0005)
        assert len(response.data["nodes"]) == 5
        assert len(memory_store.records) == 1
        assert memory_store.records[0].success is True

    @pytest.mark.asyncio
    async def test_retry_exhaustion(self, memory_store):
        """Unparseable output exhausts exactly max_retries attempts with feedback each time."""
        from graphex_kg.errors import ValidationExhaustedError
        from graphex_kg.orchestration.orchestrator import PARSE_FAILURE_FEEDBACK
        from graphex_kg.types.ai import OrchestratorConfig

        llm = ScriptedLLM(["not json"])
        orchestrator = _orchestrator({"anthropic": llm}, memory_store)

        with pytest.raises(ValidationExhaustedError) as exc:
            await orchestrator.execute("graph-generation", CONTEXT, OrchestratorConfig(max_retries=3))

        assert exc.value.attempts == 3
        assert len(llm.calls) == 3
        assert len(exc.value.feedback) == 3
        for feedback in exc.value.feedback:
            assert feedback[:2] == PARSE_FAILURE_FEEDBACK
        assert "IMPORTANT: Previous attempt had issues" not in llm.calls[0]["prompt"]
        assert "IMPORTANT: Previous attempt had issues" in llm.calls[1]["prompt"]

        record = memory_store.records[-1]
        assert record.success is False
        assert record.attempts == 3
        assert record.cost == pytest.approx(3 * 0.0005)

    @pytest.mark.asyncio
    async def test_quality_recovery_upgrades_model(self, memory_store, valid_graph_json):
        """Two failed validations on the cheap tier move to the strong tier."""
        llm = ScriptedLLM([BROKEN_GRAPH, BROKEN_GRAPH, valid_graph_json])
        orchestrator = _orchestrator({"anthropic": llm}, memory_store)

        response = await orchestrator.execute("graph-generation", CONTEXT)

        assert [call["model"] for call in llm.calls] == [
            "claude-3-5-haiku-20241022",
            "claude-3-5-haiku-20241022",
            "claude-sonnet-4-20250514",
        ]
        assert response.model == "claude-sonnet-4"
        assert response.quality.attempts == 3
        assert response.metadata.models_tried == ["claude-haiku", "claude-sonnet-4"]
        assert "too-few-nodes" in llm.calls[1]["prompt"]

    @pytest.mark.asyncio
    async def test_cascade_on_unavailable(self, memory_store, valid_graph_json):
        """Retryable unavailability walks the fallback cascade."""
        anthropic = ScriptedLLM([FakeHTTPError("overloaded", 503)])
        openai = ScriptedLLM([valid_graph_json], provider="openai")
        orchestrator = _orchestrator({"anthropic": anthropic, "openai": openai}, memory_store)

        response = await orchestrator.execute("graph-generation", CONTEXT)

        assert response.model == "gpt-4-turbo"
        assert response.metadata.models_tried == ["claude-haiku", "claude-sonnet-4", "gpt-4-turbo"]
        assert len(anthropic.calls) == 2
        assert len(openai.calls) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_waits_retry_after(self, memory_store, valid_graph_json):
        """Rate limits sleep for the provider-suggested delay."""
        llm = ScriptedLLM([FakeHTTPError("slow down", 429, {"retry-after": "2"}), valid_graph_json])
        orchestrator = _orchestrator({"anthropic": llm}, memory_store)

        response = await orchestrator.execute("graph-generation", CONTEXT)

        orchestrator._sleep.assert_awaited_once_with(2.0)
        assert response.quality.attempts == 2
        assert response.model == "claude-haiku"

    @pytest.mark.asyncio
    async def test_timeout_backs_off(self, memory_store, valid_graph_json):
        """Timeouts use exponential backoff."""
        from graphex_kg.errors import ModelTimeoutError

        llm = ScriptedLLM([ModelTimeoutError(30000), valid_graph_json])
        orchestrator = _orchestrator({"anthropic": llm}, memory_store)

        await orchestrator.execute("graph-generation", CONTEXT)

        orchestrator._sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_fatal_error_is_not_retried(self, memory_store):
        """Unclassified provider failures propagate after one call."""
        from graphex_kg.errors import ModelProviderError

        llm = ScriptedLLM([ValueError("malformed request body")])
        orchestrator = _orchestrator({"anthropic": llm}, memory_store)

        with pytest.raises(ModelProviderError):
            await orchestrator.execute("graph-generation", CONTEXT)
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_budget_refusal_makes_no_call(self, memory_store):
        """Refused admission raises before any provider call."""
        from graphex_kg.errors import BudgetExceededError
        from graphex_kg.types.ai import OrchestratorConfig

        llm = ScriptedLLM(["{}"])
        orchestrator = _orchestrator({"anthropic": llm}, memory_store, per_document=0.00001)

        with pytest.raises(BudgetExceededError) as exc:
            await orchestrator.execute(
                "graph-generation", CONTEXT, OrchestratorConfig(target_id="doc-1")
            )
        assert exc.value.reason == "document-limit-exceeded"
        assert llm.calls == []
        assert memory_store.records == []

    @pytest.mark.asyncio
    async def test_cache_hit_is_free(self, memory_store, valid_graph_json):
        """An identical second request is served from cache."""
        from graphex_kg.types.ai import OrchestratorConfig

        llm = ScriptedLLM([valid_graph_json])
        orchestrator = _orchestrator({"anthropic": llm}, memory_store)

        first = await orchestrator.execute("graph-generation", CONTEXT)
        second = await orchestrator.execute("graph-generation", CONTEXT)
        assert second.metadata.cached is True
        assert second.metadata.cost == 0.0
        assert second.data == first.data
        assert len(llm.calls) == 1

        await orchestrator.execute("graph-generation", CONTEXT, OrchestratorConfig(skip_cache=True))
        assert len(llm.calls) == 2

    @pytest.mark.asyncio
    async def test_missing_context(self, memory_store):
        """Required template fields must be supplied."""
        from graphex_kg.errors import PromptTemplateError

        orchestrator = _orchestrator({"anthropic": ScriptedLLM(["{}"])}, memory_store)
        with pytest.raises(PromptTemplateError):
            await orchestrator.execute("graph-generation", {"documentTitle": "x"})

    @pytest.mark.asyncio
    async def test_quiz_generation(self, memory_store):
        """Other prompt kinds validate against their own rules."""
        quiz = {
            "questions": [
                {
                    "questionText": "What do neural networks learn from?",
                    "options": ["Data", "Magic", "Noise", "Nothing"],
                    "correctAnswerIndex": 0,
                    "explanation": "The text says they learn from data.",
                    "difficulty": "easy",
                }
            ]
        }
        orchestrator = _orchestrator({"anthropic": ScriptedLLM([json.dumps(quiz)])}, memory_store)
        graph = make_graph_artifact(["Neural Networks", "Data"])

        response = await orchestrator.execute("quiz-generation", {"graphData": graph})
        assert response.quality.score == 100
        assert response.data["questions"][0]["correctAnswerIndex"] == 0
