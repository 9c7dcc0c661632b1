"""
Configuration System

Manages configuration for GraphexKG with a layered approach.

Configuration Priority (highest to lowest):
    1. Programmatic (passed to KGConfig())
    2. Environment variables (GRAPHEX_* prefix)
    3. Config file (KGConfig.from_file)
    4. Built-in defaults

Modules:
    settings: KGConfig class
    pricing: Model registry, per-operation token table, cost helpers
"""

from graphex_kg.config.settings import KGConfig

__all__ = ["KGConfig"]
