"""Shared fakes for GraphexKG tests."""

from __future__ import annotations

import json
from datetime import datetime
from types import SimpleNamespace
from typing import Any, Callable

import pytest

from graphex_kg.budget.usage_store import UsageStore
from graphex_kg.providers.base import LLMCompletion, LLMProvider
from graphex_kg.types.usage import UsageRecord, UsageSummary

Reply = str | BaseException | Callable[[str], str]


class ScriptedLLM(LLMProvider):
    """Returns scripted replies in order; the last reply repeats."""

    def __init__(self, replies: list[Reply], provider: str = "anthropic") -> None:
        self.replies = list(replies)
        self._provider = provider
        self.calls: list[dict[str, Any]] = []

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
        self.calls.append({"prompt": prompt, "system": system, "model": model})
        index = min(len(self.calls) - 1, len(self.replies) - 1)
        reply = self.replies[index]
        if isinstance(reply, BaseException):
            raise reply
        content = reply(prompt) if callable(reply) else reply
        return LLMCompletion(content=content, input_tokens=1000, output_tokens=200)


class FakeHTTPError(Exception):
    """Provider SDK style exception carrying a status code."""

    def __init__(self, message: str, status_code: int | None = None, headers: dict | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = SimpleNamespace(status_code=status_code, headers=headers or {})


class MemoryUsageStore(UsageStore):
    """List-backed usage ledger."""

    def __init__(self) -> None:
        self.records: list[UsageRecord] = []

    async def append(self, record: UsageRecord) -> None:
        self.records.append(record)

    async def aggregate(self, user_id: str, since: datetime) -> UsageSummary:
        rows = [r for r in self.records if r.user_id == user_id and r.timestamp >= since]
        total = sum(r.cost for r in rows)
        return UsageSummary(
            total_cost=total,
            total_tokens=sum(r.total_tokens for r in rows),
            operation_count=len(rows),
            average_cost_per_operation=total / (len(rows) or 1),
            input_tokens=sum(r.input_tokens for r in rows),
            output_tokens=sum(r.output_tokens for r in rows),
        )

    async def group_by_operation(
        self,
        user_id: str,
        since: datetime,
    ) -> list[tuple[str, float, int]]:
        grouped: dict[str, tuple[float, int]] = {}
        for r in self.records:
            if r.user_id == user_id and r.timestamp >= since:
                cost, count = grouped.get(r.operation, (0.0, 0))
                grouped[r.operation] = (cost + r.cost, count + 1)
        return sorted(
            ((op, cost, count) for op, (cost, count) in grouped.items()),
            key=lambda row: (-row[1], row[0]),
        )


def make_graph_artifact(titles: list[str], relationship: str = "enables") -> dict[str, Any]:
    """A graph-generation artifact that passes quick validation."""
    ids = [chr(ord("A") + i) for i in range(len(titles))]
    nodes = [
        {"id": node_id, "title": title, "description": f"About {title}"}
        for node_id, title in zip(ids, titles)
    ]
    edges = [
        {"fromNodeId": ids[i], "toNodeId": ids[i + 1], "relationship": relationship}
        for i in range(len(ids) - 1)
    ]
    mermaid = "flowchart TD\n" + "\n".join(
        f"  {node_id}[{title}]" for node_id, title in zip(ids, titles)
    )
    return {"mermaidCode": mermaid, "nodes": nodes, "edges": edges}


@pytest.fixture
def memory_store() -> MemoryUsageStore:
    return MemoryUsageStore()


@pytest.fixture
def valid_graph_json() -> str:
    return json.dumps(
        make_graph_artifact(
            ["Machine Learning", "Neural Networks", "Backpropagation", "Gradient Descent", "Loss Function"]
        )
    )
