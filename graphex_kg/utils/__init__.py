"""
Utilities

Modules:
    clustering: Union-Find over dense indices
    cost_telemetry: Request-scoped provider call accounting
    token_count: Token estimates and tokenizer-backed counts
"""

from graphex_kg.utils.clustering import UnionFind, union_find_components
from graphex_kg.utils.token_count import estimate_tokens

__all__ = ["UnionFind", "union_find_components", "estimate_tokens"]
