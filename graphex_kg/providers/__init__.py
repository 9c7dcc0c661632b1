"""
LLM and Embedding Providers

Provider-agnostic interfaces plus the model gateway that drives them.

Modules:
    base: Abstract provider interfaces
    gateway: Timeout, error normalisation, pricing and telemetry per call
    llm/: Chat providers (Anthropic and OpenAI via LangChain)
    embedding/: Embedding providers (OpenAI via LangChain)

Design:
    - All providers implement abstract interfaces (LLMProvider, EmbeddingProvider)
    - Lazy import to avoid requiring every provider package

Example:
    >>> from graphex_kg.providers import ModelGateway
    >>> from graphex_kg.providers.llm import LangChainChatProvider
    >>> gateway = ModelGateway({"anthropic": LangChainChatProvider("anthropic")})
"""

from graphex_kg.providers.base import EmbeddingProvider, LLMCompletion, LLMProvider
from graphex_kg.providers.gateway import ModelGateway, classify_provider_error

__all__ = [
    "LLMProvider",
    "LLMCompletion",
    "EmbeddingProvider",
    "ModelGateway",
    "classify_provider_error",
]
