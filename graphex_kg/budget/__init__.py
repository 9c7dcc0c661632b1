"""
Budget

Admission control and usage accounting for model calls.

Modules:
    cache: Running-total and result cache
    usage_store: DuckDB-backed usage ledger
    cost_guard: Admission checks, usage recording and reports
"""

from graphex_kg.budget.cache import CacheStore, DiskCacheStore, InMemoryCacheStore
from graphex_kg.budget.cost_guard import CostGuard
from graphex_kg.budget.usage_store import DuckDBUsageStore, UsageStore

__all__ = [
    "CacheStore",
    "InMemoryCacheStore",
    "DiskCacheStore",
    "CostGuard",
    "DuckDBUsageStore",
    "UsageStore",
]
