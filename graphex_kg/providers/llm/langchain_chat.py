"""
LangChain Chat Provider

Implements LLMProvider over LangChain chat models:

    - anthropic: ChatAnthropic (langchain-anthropic)
    - openai: ChatOpenAI (langchain-openai)

The provider model name is chosen per call, so one instance serves every
model of its provider in the fallback cascade.

Example:
    >>> provider = LangChainChatProvider("anthropic")
    >>> completion = await provider.generate(
    ...     "Summarise this text", system="You are terse.",
    ...     model="claude-3-5-haiku-20241022",
    ... )
    >>> print(completion.content, completion.input_tokens)
"""

from __future__ import annotations

from typing import Any

from graphex_kg.providers.base import LLMCompletion, LLMProvider
from graphex_kg.utils.token_count import count_chat_tokens, count_text_tokens

SUPPORTED_PROVIDERS = ("anthropic", "openai")


def _as_int(value: Any) -> int | None:
    """Best-effort int coercion."""
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _extract_token_usage(response: Any) -> tuple[int | None, int | None]:
    """
    Read (input_tokens, output_tokens) from LangChain response metadata.

    Checks the normalised usage_metadata first, then the raw provider
    payload in response_metadata.
    """
    if response is None:
        return None, None

    usage = getattr(response, "usage_metadata", None)
    if isinstance(usage, dict):
        input_tokens = _as_int(usage.get("input_tokens"))
        output_tokens = _as_int(usage.get("output_tokens"))
        if input_tokens is not None or output_tokens is not None:
            return input_tokens, output_tokens

    metadata = getattr(response, "response_metadata", None)
    if isinstance(metadata, dict):
        token_usage = metadata.get("usage") or metadata.get("token_usage")
        if isinstance(token_usage, dict):
            input_tokens = _as_int(
                token_usage.get("input_tokens") or token_usage.get("prompt_tokens")
            )
            output_tokens = _as_int(
                token_usage.get("output_tokens") or token_usage.get("completion_tokens")
            )
            return input_tokens, output_tokens

    return None, None


def _extract_finish_reason(response: Any) -> str:
    metadata = getattr(response, "response_metadata", None)
    if isinstance(metadata, dict):
        reason = metadata.get("stop_reason") or metadata.get("finish_reason")
        if reason:
            return str(reason)
    return "stop"


def _get_chat_model(
    provider: str,
    *,
    api_key: str | None,
    model: str,
    temperature: float,
    max_tokens: int,
) -> Any:
    """
    Build a LangChain chat model for a provider.

    Uses lazy imports so only the installed provider package is required.

    Raises:
        ImportError: If the provider's LangChain package is not installed
        ValueError: If the provider is not supported
    """
    if provider == "anthropic":
        try:
            from langchain_anthropic import ChatAnthropic
        except ImportError:
            raise ImportError(
                "Anthropic provider requires the 'langchain-anthropic' package. "
                "Install with: pip install langchain-anthropic"
            )
        kwargs: dict[str, Any] = {
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if api_key:
            kwargs["api_key"] = api_key
        return ChatAnthropic(**kwargs)

    if provider == "openai":
        try:
            from langchain_openai import ChatOpenAI
        except ImportError:
            raise ImportError(
                "OpenAI provider requires the 'langchain-openai' package. "
                "Install with: pip install langchain-openai"
            )
        kwargs = {"model": model, "temperature": temperature, "max_tokens": max_tokens}
        if api_key:
            kwargs["api_key"] = api_key
        return ChatOpenAI(**kwargs)

    raise ValueError(f"Unsupported provider: {provider}")


class LangChainChatProvider(LLMProvider):
    """
    Chat provider backed by a LangChain chat model.

    Args:
        provider: "anthropic" or "openai"
        api_key: API key. If None, the LangChain client reads its env var.
    """

    def __init__(self, provider: str, api_key: str | None = None) -> None:
        if provider not in SUPPORTED_PROVIDERS:
            raise ValueError(f"Unsupported provider: {provider}")
        self._provider = provider
        self._api_key = api_key

    @property
    def provider_name(self) -> str:
        return self._provider

    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> LLMCompletion:
        from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

        client = _get_chat_model(
            self._provider,
            api_key=self._api_key,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
        )

        messages: list[BaseMessage] = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))

        response = await client.ainvoke(messages)
        content = response.content
        if isinstance(content, list):
            # Anthropic may return content blocks
            content = "".join(
                block.get("text", "") if isinstance(block, dict) else str(block)
                for block in content
            )
        output_text = str(content)

        input_tokens, output_tokens = _extract_token_usage(response)
        estimated = False

        if input_tokens is None:
            input_tokens = count_chat_tokens([m for m in (system, prompt) if m], model)
            estimated = True
        if output_tokens is None:
            output_tokens = count_text_tokens(output_text, model)
            estimated = True

        return LLMCompletion(
            content=output_text,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            finish_reason=_extract_finish_reason(response),
            estimated=estimated,
        )
