"""
Request-scoped cost telemetry helpers.

Telemetry is enabled by attaching a CostCollector via contextvars.
The model gateway reads the active collector/stage and emits one
ProviderCallRecord per call. The graph pipeline attaches a collector per
document, so concurrently processed chunks report into the same request
while labelling their own stage.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar

from graphex_kg.config.pricing import PRICING_VERSION
from graphex_kg.types.usage import CostReport, ProviderCallRecord, StageCostBreakdown

_COLLECTOR: ContextVar[CostCollector | None] = ContextVar(
    "graphex_cost_collector",
    default=None,
)
_STAGE: ContextVar[str] = ContextVar("graphex_cost_stage", default="unknown")


class CostCollector:
    """Accumulates provider call records for one request."""

    def __init__(self, *, warn_threshold_usd: float | None = None) -> None:
        self._records: list[ProviderCallRecord] = []
        self._warn_threshold_usd = warn_threshold_usd

    def add(self, record: ProviderCallRecord) -> None:
        """Add one call record."""
        self._records.append(record)

    @property
    def total_cost_usd(self) -> float:
        """Sum of cost over all records so far."""
        return sum(record.cost_usd for record in self._records)

    @property
    def models(self) -> list[str]:
        """Distinct models used, in first-use order."""
        return list(dict.fromkeys(record.model for record in self._records))

    def summary(self) -> CostReport:
        """Build aggregate report across all records."""
        by_stage: dict[str, StageCostBreakdown] = {}
        warnings: list[str] = []
        report = CostReport(pricing_version=PRICING_VERSION)

        for record in self._records:
            report.total_calls += 1
            report.total_input_tokens += record.input_tokens
            report.total_output_tokens += record.output_tokens
            report.total_tokens += record.total_tokens
            report.total_cost_usd += record.cost_usd
            report.total_latency_ms += record.latency_ms

            stage = by_stage.setdefault(record.stage, StageCostBreakdown(stage=record.stage))
            stage.calls += 1
            stage.input_tokens += record.input_tokens
            stage.output_tokens += record.output_tokens
            stage.total_tokens += record.total_tokens
            stage.cost_usd += record.cost_usd
            stage.total_latency_ms += record.latency_ms

            if record.estimated:
                warnings.append(
                    f"Token usage for model '{record.model}' in stage '{record.stage}' "
                    "was estimated locally."
                )

        if (
            self._warn_threshold_usd is not None
            and report.total_cost_usd >= self._warn_threshold_usd
        ):
            warnings.append(
                f"Request cost ${report.total_cost_usd:.6f} exceeded threshold "
                f"${self._warn_threshold_usd:.6f}."
            )

        report.by_stage = sorted(by_stage.values(), key=lambda s: s.cost_usd, reverse=True)
        report.warnings = sorted(set(warnings))
        return report


@contextmanager
def telemetry_collector(collector: CostCollector | None):
    """Set active request collector for gateway instrumentation."""
    token = _COLLECTOR.set(collector)
    try:
        yield collector
    finally:
        _COLLECTOR.reset(token)


@contextmanager
def telemetry_stage(stage: str):
    """Set pipeline stage label for gateway instrumentation."""
    token = _STAGE.set(stage)
    try:
        yield
    finally:
        _STAGE.reset(token)


def current_stage() -> str:
    """Return currently active telemetry stage label."""
    return _STAGE.get()


def record_call(record: ProviderCallRecord) -> None:
    """Add record to active collector if telemetry is enabled."""
    collector = _COLLECTOR.get()
    if collector is not None:
        collector.add(record)
