"""
Uncertain-Pair Adjudication

Decides whether node pairs in the deduplicator's uncertain similarity band
refer to the same concept.

    - ThresholdAdjudicator: merge when similarity >= 0.85 (default)
    - LLMAdjudicator: asks a chat model through the model gateway
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from graphex_kg.errors import ModelError
from graphex_kg.types.ai import CallOptions
from graphex_kg.types.graph import GraphNode

if TYPE_CHECKING:
    from graphex_kg.providers.gateway import ModelGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidatePair:
    """Two nodes whose similarity fell between the merge and separate thresholds."""

    left_index: int
    right_index: int
    left: GraphNode
    right: GraphNode
    similarity: float


class PairAdjudicator(ABC):
    """Abstract interface for merge decisions on uncertain pairs."""

    @abstractmethod
    async def decide(self, pairs: list[CandidatePair]) -> list[bool]:
        """One decision per pair, in order. True means merge."""
        ...


class ThresholdAdjudicator(PairAdjudicator):
    """Conservative similarity cut-off."""

    def __init__(self, threshold: float = 0.85) -> None:
        self.threshold = threshold

    async def decide(self, pairs: list[CandidatePair]) -> list[bool]:
        return [pair.similarity >= self.threshold for pair in pairs]


# -----------------------------------------------------------------------------
# LLM Prompts
# -----------------------------------------------------------------------------

_ADJUDICATION_SYSTEM_PROMPT = """\
You are deduplicating concepts in a knowledge graph.

For each numbered pair, decide whether both entries name the SAME concept and
should become one node.

## MERGE - same concept, different wording:
- Abbreviation and full form: "NLP" = "Natural Language Processing"
- Singular and plural, or reordered phrasing of one idea

## DO NOT MERGE - related but distinct:
- A concept and its part or instance: "Neural Network" != "Neuron"
- Siblings sharing a word: "Neural Networks" != "Social Networks"

Answer with a JSON array of booleans, one per pair, in order. Nothing else."""


def _format_pair(number: int, pair: CandidatePair) -> str:
    def _describe(node: GraphNode) -> str:
        if node.description:
            return f'"{node.title}" ({node.description})'
        return f'"{node.title}"'

    return f"{number}. {_describe(pair.left)} vs {_describe(pair.right)}"


class LLMAdjudicator(PairAdjudicator):
    """
    Model-backed adjudication.

    Any answer that is not a JSON array of booleans with one entry per pair
    keeps every pair in the batch separate.

    Args:
        gateway: Model gateway used for the decision call
        model_id: Registered model id
    """

    def __init__(
        self,
        gateway: "ModelGateway",
        model_id: str = "claude-haiku",
        options: CallOptions | None = None,
    ) -> None:
        self.gateway = gateway
        self.model_id = model_id
        self.options = options or CallOptions(max_tokens=512, temperature=0.0)

    async def decide(self, pairs: list[CandidatePair]) -> list[bool]:
        if not pairs:
            return []

        prompt = "PAIRS:\n" + "\n".join(
            _format_pair(number, pair) for number, pair in enumerate(pairs, start=1)
        )
        try:
            response = await self.gateway.call(
                _ADJUDICATION_SYSTEM_PROMPT,
                prompt,
                self.model_id,
                self.options,
            )
        except ModelError as e:
            logger.warning(f"Adjudication call failed, keeping {len(pairs)} pairs separate: {e}")
            return [False] * len(pairs)

        try:
            decisions = json.loads(response.content.strip())
        except json.JSONDecodeError:
            logger.warning("Adjudication answer was not JSON, keeping pairs separate")
            return [False] * len(pairs)

        if (
            not isinstance(decisions, list)
            or len(decisions) != len(pairs)
            or not all(isinstance(d, bool) for d in decisions)
        ):
            logger.warning(
                f"Adjudication answer had the wrong shape for {len(pairs)} pairs, "
                "keeping pairs separate"
            )
            return [False] * len(pairs)

        return decisions
