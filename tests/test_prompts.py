"""Tests for prompt templates."""

import pytest


class TestRenderTemplate:
    """Tests for render_template."""

    def test_variables_and_nested_lookup(self):
        from graphex_kg.orchestration.prompts import render_template

        text = render_template(
            "{{title}} / {{node.title}} / {{missing}}",
            {"title": "Cells", "node": {"title": "DNA"}},
        )
        assert text == "Cells / DNA / "

    def test_conditionals(self):
        from graphex_kg.orchestration.prompts import render_template

        template = "start{{#if flag}} on {{flag}}{{/if}} end"
        assert render_template(template, {"flag": "yes"}) == "start on yes end"
        assert render_template(template, {"flag": ""}) == "start end"

    def test_structured_values_render_as_json(self):
        from graphex_kg.orchestration.prompts import render_template

        assert render_template("{{data}}", {"data": {"a": 1}}) == '{\n  "a": 1\n}'


class TestBuildPrompt:
    """Tests for build_prompt."""

    def test_graph_prompt(self):
        from graphex_kg.orchestration.prompts import build_prompt

        prompt = build_prompt(
            "graph-generation",
            {"documentTitle": "Cells", "documentText": "Cells contain DNA.", "maxNodes": 7},
        )
        assert "Title: Cells" in prompt.user_prompt
        assert "Cells contain DNA." in prompt.user_prompt
        assert "at most 7 concepts" in prompt.user_prompt
        assert prompt.system_prompt

    def test_graph_prompt_without_limit(self):
        from graphex_kg.orchestration.prompts import build_prompt

        prompt = build_prompt("graph-generation", {"documentTitle": "T", "documentText": "x"})
        assert "at most" not in prompt.user_prompt

    def test_unknown_kind(self):
        from graphex_kg.errors import PromptTemplateError
        from graphex_kg.orchestration.prompts import build_prompt

        with pytest.raises(PromptTemplateError):
            build_prompt("poetry", {})
        with pytest.raises(PromptTemplateError):
            build_prompt("graph-generation", {"documentTitle": "T", "documentText": "x"}, "beta")

    def test_missing_fields_listed(self):
        from graphex_kg.errors import PromptTemplateError
        from graphex_kg.orchestration.prompts import build_prompt

        with pytest.raises(PromptTemplateError, match="nodeA, nodeB, relationship"):
            build_prompt("connection-explanation", {})


class TestRecommendedModel:
    """Tests for recommended_model."""

    def test_large_documents_use_strong_tier(self):
        from graphex_kg.orchestration.prompts import recommended_model

        assert recommended_model("graph-generation", {"documentText": "x" * 40_001}) == "claude-sonnet-4"
        assert recommended_model("graph-generation", {"documentText": "x" * 100}) == "claude-haiku"
        assert recommended_model("quiz-generation", {"documentText": "x" * 50_000}) == "claude-haiku"
