"""
Abstract Provider Interfaces

Base classes for chat-model and embedding providers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class LLMCompletion:
    """
    One chat completion as returned by a provider.

    Token counts are None when the provider did not report usage.
    """

    content: str
    input_tokens: int | None = None
    output_tokens: int | None = None
    finish_reason: str = "stop"
    estimated: bool = False


class LLMProvider(ABC):
    """Abstract interface for chat-model providers."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> LLMCompletion:
        """Generate a completion with the given provider model name."""
        ...

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider key used by the model registry ("anthropic", "openai")."""
        ...


class EmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for texts."""
        ...

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        ...

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Embedding dimensions."""
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Current model name."""
        ...
