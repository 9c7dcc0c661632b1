"""
OpenAI Embedding Provider (LangChain-based)

Implements EmbeddingProvider using LangChain's OpenAIEmbeddings. Used by the
node deduplicator's embedding similarity to compare node titles and
descriptions.

Models:
    - text-embedding-3-small: 1536 dimensions (default, cheap)
    - text-embedding-3-large: 3072 dimensions
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from graphex_kg.providers.base import EmbeddingProvider

if TYPE_CHECKING:
    from langchain_openai import OpenAIEmbeddings

MODEL_DIMENSIONS = {
    "text-embedding-3-large": 3072,
    "text-embedding-3-small": 1536,
    "text-embedding-ada-002": 1536,
}

DEFAULT_MODEL = "text-embedding-3-small"


def _get_openai_embeddings(api_key: str | None, model: str) -> "OpenAIEmbeddings":
    """
    Build an OpenAIEmbeddings client (lazy import).

    Raises:
        ImportError: If langchain-openai package is not installed
    """
    try:
        from langchain_openai import OpenAIEmbeddings
    except ImportError:
        raise ImportError(
            "OpenAI embedding provider requires the 'langchain-openai' package. "
            "Install with: pip install langchain-openai"
        )

    if api_key:
        from pydantic import SecretStr
        return OpenAIEmbeddings(model=model, api_key=SecretStr(api_key))
    return OpenAIEmbeddings(model=model)


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    Embeds text with OpenAI embedding models.

    Args:
        api_key: OpenAI API key. If None, uses OPENAI_API_KEY.
        model: Embedding model name
        batch_size: Texts per embedding request
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        batch_size: int = 100,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._batch_size = batch_size
        self._client: OpenAIEmbeddings | None = None

    def _get_client(self) -> "OpenAIEmbeddings":
        if self._client is None:
            self._client = _get_openai_embeddings(self._api_key, self._model)
        return self._client

    @property
    def dimensions(self) -> int:
        return MODEL_DIMENSIONS.get(self._model, 1536)

    @property
    def model_name(self) -> str:
        return self._model

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in request-sized batches, preserving order."""
        if not texts:
            return []

        client = self._get_client()
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = texts[start:start + self._batch_size]
            # embed_documents is synchronous
            vectors.extend(await asyncio.to_thread(client.embed_documents, batch))
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        client = self._get_client()
        return await asyncio.to_thread(client.embed_query, text)
