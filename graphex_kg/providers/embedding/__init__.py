"""Embedding provider implementations."""

from graphex_kg.providers.embedding.openai import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
