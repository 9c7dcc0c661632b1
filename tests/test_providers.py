"""Tests for the LangChain chat and OpenAI embedding providers."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest


def _response(content, usage=None, metadata=None):
    return SimpleNamespace(
        content=content,
        usage_metadata=usage,
        response_metadata=metadata or {},
    )


class TestLangChainChatProvider:
    """Tests for LangChainChatProvider."""

    def test_unsupported_provider(self):
        from graphex_kg.providers.llm import LangChainChatProvider

        with pytest.raises(ValueError):
            LangChainChatProvider("cohere")

    @pytest.mark.asyncio
    async def test_reads_usage_metadata(self):
        from graphex_kg.providers.llm import LangChainChatProvider

        client = MagicMock()
        client.ainvoke = AsyncMock(
            return_value=_response(
                '{"nodes": []}',
                usage={"input_tokens": 120, "output_tokens": 30},
                metadata={"stop_reason": "end_turn"},
            )
        )
        provider = LangChainChatProvider("anthropic", api_key="sk-ant-test")

        with patch(
            "graphex_kg.providers.llm.langchain_chat._get_chat_model",
            return_value=client,
        ) as factory:
            completion = await provider.generate(
                "Extract concepts", system="You build graphs.", model="claude-3-5-haiku-20241022"
            )

        assert completion.content == '{"nodes": []}'
        assert (completion.input_tokens, completion.output_tokens) == (120, 30)
        assert completion.finish_reason == "end_turn"
        assert completion.estimated is False
        assert factory.call_args.kwargs["model"] == "claude-3-5-haiku-20241022"

        messages = client.ainvoke.call_args.args[0]
        assert [m.content for m in messages] == ["You build graphs.", "Extract concepts"]

    @pytest.mark.asyncio
    async def test_raw_openai_usage_and_content_blocks(self):
        from graphex_kg.providers.llm import LangChainChatProvider

        client = MagicMock()
        client.ainvoke = AsyncMock(
            return_value=_response(
                [{"type": "text", "text": "part one "}, {"type": "text", "text": "part two"}],
                metadata={
                    "token_usage": {"prompt_tokens": 50, "completion_tokens": 8},
                    "finish_reason": "length",
                },
            )
        )
        provider = LangChainChatProvider("openai")

        with patch(
            "graphex_kg.providers.llm.langchain_chat._get_chat_model",
            return_value=client,
        ):
            completion = await provider.generate("Hi", model="gpt-4-turbo")

        assert completion.content == "part one part two"
        assert (completion.input_tokens, completion.output_tokens) == (50, 8)
        assert completion.finish_reason == "length"
        assert len(client.ainvoke.call_args.args[0]) == 1

    @pytest.mark.asyncio
    async def test_missing_usage_is_estimated(self):
        """Without reported usage, counts come from the local tokenizer."""
        from graphex_kg.providers.llm import LangChainChatProvider

        client = MagicMock()
        client.ainvoke = AsyncMock(return_value=_response("answer"))
        provider = LangChainChatProvider("anthropic")

        with patch(
            "graphex_kg.providers.llm.langchain_chat._get_chat_model",
            return_value=client,
        ), patch(
            "graphex_kg.providers.llm.langchain_chat.count_chat_tokens", return_value=42
        ), patch(
            "graphex_kg.providers.llm.langchain_chat.count_text_tokens", return_value=3
        ):
            completion = await provider.generate("question", model="claude-sonnet-4-20250514")

        assert (completion.input_tokens, completion.output_tokens) == (42, 3)
        assert completion.estimated is True
        assert completion.finish_reason == "stop"


class TestOpenAIEmbeddingProvider:
    """Tests for OpenAIEmbeddingProvider."""

    @pytest.mark.asyncio
    async def test_empty_input(self):
        from graphex_kg.providers.embedding import OpenAIEmbeddingProvider

        provider = OpenAIEmbeddingProvider(api_key="sk-test")
        with patch(
            "graphex_kg.providers.embedding.openai._get_openai_embeddings"
        ) as factory:
            assert await provider.embed([]) == []
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_batches_preserve_order(self):
        from graphex_kg.providers.embedding import OpenAIEmbeddingProvider

        client = MagicMock()
        client.embed_documents.side_effect = lambda batch: [[float(len(t))] for t in batch]
        provider = OpenAIEmbeddingProvider(api_key="sk-test", batch_size=2)

        with patch(
            "graphex_kg.providers.embedding.openai._get_openai_embeddings",
            return_value=client,
        ) as factory:
            vectors = await provider.embed(["a", "bb", "ccc", "dddd", "eeeee"])

        assert vectors == [[1.0], [2.0], [3.0], [4.0], [5.0]]
        assert client.embed_documents.call_count == 3
        factory.assert_called_once_with("sk-test", "text-embedding-3-small")

    def test_dimensions(self):
        from graphex_kg.providers.embedding import OpenAIEmbeddingProvider

        assert OpenAIEmbeddingProvider(model="text-embedding-3-large").dimensions == 3072
        assert OpenAIEmbeddingProvider(model="custom").dimensions == 1536
