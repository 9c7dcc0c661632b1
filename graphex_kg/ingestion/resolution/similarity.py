"""
Pairwise Similarity

Similarity collaborators for the node deduplicator. Each returns an n x n
matrix in [0, 1] for a list of node texts.

    - LexicalSimilarity: word-set Jaccard, no external calls
    - EmbeddingSimilarity: cosine over provider embeddings (scipy cdist)
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np
from scipy.spatial.distance import cdist

if TYPE_CHECKING:
    from graphex_kg.providers.base import EmbeddingProvider

_WORD = re.compile(r"[a-z0-9]+")


class SimilarityProvider(ABC):
    """Abstract interface for pairwise similarity."""

    @abstractmethod
    async def similarity_matrix(self, texts: list[str]) -> np.ndarray:
        """n x n matrix with S[i, j] in [0, 1] and a diagonal of 1."""
        ...


def _compute_similarity_matrix(vectors: list[list[float]]) -> np.ndarray:
    """
    Pairwise cosine similarity, clipped to [0, 1].

    Zero vectors have undefined cosine and are treated as dissimilar.
    """
    arr = np.array(vectors, dtype=np.float64)
    # cdist returns distance (1 - similarity)
    similarity = 1 - cdist(arr, arr, metric="cosine")
    similarity = np.nan_to_num(similarity, nan=0.0)
    similarity = np.clip(similarity, 0.0, 1.0)
    np.fill_diagonal(similarity, 1.0)
    return similarity


class LexicalSimilarity(SimilarityProvider):
    """Jaccard overlap of lowercase word sets."""

    async def similarity_matrix(self, texts: list[str]) -> np.ndarray:
        word_sets = [set(_WORD.findall(text.lower())) for text in texts]
        n = len(texts)
        matrix = np.eye(n, dtype=np.float64)

        for i in range(n):
            for j in range(i + 1, n):
                a, b = word_sets[i], word_sets[j]
                union = a | b
                score = len(a & b) / len(union) if union else 0.0
                matrix[i, j] = matrix[j, i] = score
        return matrix


class EmbeddingSimilarity(SimilarityProvider):
    """
    Cosine similarity of embeddings.

    Args:
        embeddings: Provider used to embed every text in one request batch
    """

    def __init__(self, embeddings: "EmbeddingProvider") -> None:
        self.embeddings = embeddings

    async def similarity_matrix(self, texts: list[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, 0), dtype=np.float64)
        vectors = await self.embeddings.embed(texts)
        return _compute_similarity_matrix(vectors)
