"""
KGConfig - Configuration Management

Sensible defaults with full override capability.

Example:
    >>> # Use defaults (reads from environment)
    >>> pipeline = GraphPipeline.from_config(KGConfig())

    >>> # Explicit configuration
    >>> config = KGConfig(
    ...     per_user_per_day=25.0,
    ...     max_retries=5,
    ... )

    >>> # From config file
    >>> config = KGConfig.from_file("./graphex.toml")

Environment Variables:
    GRAPHEX_MAX_CHUNK_SIZE - Character budget per chunk
    GRAPHEX_DAILY_LIMIT_USD - Per-user daily spending ceiling
    GRAPHEX_MONTHLY_LIMIT_USD - Per-user monthly spending ceiling
    GRAPHEX_DOCUMENT_LIMIT_USD - Per-document spending ceiling
    GRAPHEX_MAX_RETRIES - Attempts per orchestrated call
    GRAPHEX_TIMEOUT_MS - Per-call model timeout
    GRAPHEX_PREFERRED_MODEL - Force a model for every call
    GRAPHEX_BATCH_SIZE - Concurrent chunk calls per batch
    GRAPHEX_USAGE_DB - DuckDB file for the usage ledger
    GRAPHEX_CACHE_DIR - diskcache directory
    GRAPHEX_DEDUP_SIMILARITY - "lexical" or "embedding"
    GRAPHEX_DEDUP_ADJUDICATOR - "threshold" or "llm"
    OPENAI_API_KEY - OpenAI API key (standard name)
    ANTHROPIC_API_KEY - Anthropic API key
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, cast

# TOML support: tomllib is built-in for Python 3.11+, use tomli for 3.10
try:
    import tomllib

    def _load_toml(path: Path) -> dict[str, Any]:
        with open(path, "rb") as f:
            return cast(dict[str, Any], tomllib.load(f))

except ImportError:
    try:
        import tomli

        def _load_toml(path: Path) -> dict[str, Any]:
            with open(path, "rb") as f:
                return cast(dict[str, Any], tomli.load(f))

    except ImportError:
        def _load_toml(path: Path) -> dict[str, Any]:
            raise ImportError(
                "TOML parsing requires 'tomli' on Python 3.10. "
                "Install with: pip install tomli"
            )


# Section name -> key prefix used when flattening TOML files
_SECTION_MAPPING: dict[str, str] = {
    "chunking": "",
    "budget": "",
    "models": "",
    "orchestrator": "",
    "dedup": "",
    "pipeline": "",
    "storage": "",
    "api_keys": "",
}


class KGConfig:
    """Configuration for GraphexKG."""

    # === Chunking ===

    max_chunk_size: int = 30000
    """Character budget per chunk"""

    overlap_size: int = 1000
    """Trailing characters of the previous chunk prepended to the next"""

    min_chunk_size: int = 1000
    """Separators before this offset are ignored; smaller documents stay whole"""

    # === Budget ===

    per_document: float = 5.0
    """Ceiling (USD) for a single operation estimate against one target"""

    per_user_per_day: float = 10.0
    """Daily ceiling (USD) per user, resets at UTC midnight"""

    per_user_per_month: float = 50.0
    """Monthly ceiling (USD) per user, resets on the 1st (UTC)"""

    daily_warning_ratio: float = 0.8
    """Emit a warning once daily usage reaches this share of the ceiling"""

    monthly_warning_ratio: float = 0.9
    """Emit a warning once monthly usage reaches this share of the ceiling"""

    usage_cache_ttl_seconds: int = 3600
    """TTL for cached running totals"""

    # === Models ===

    preferred_model: str | None = None
    """Force a model id instead of the per-kind recommendation"""

    max_tokens: int = 4096
    """Completion token cap per call"""

    temperature: float = 0.7
    """Sampling temperature per call"""

    # === Orchestrator ===

    max_retries: int = 3
    """Attempts per orchestrated call (rate-limit waits count as attempts)"""

    quality_threshold: int = 60
    """Minimum validator score for an artifact to be accepted"""

    prompt_version: str = "production"
    """Prompt template version"""

    timeout_ms: int = 30000
    """Per-call model timeout"""

    # === Dedup ===

    auto_merge_threshold: float = 0.95
    """Similarity at or above which nodes merge without adjudication"""

    auto_separate_threshold: float = 0.65
    """Similarity at or below which nodes stay separate"""

    max_adjudications: int = 50
    """Cap on uncertain pairs sent to the adjudicator"""

    adjudication_batch_size: int = 10
    """Uncertain pairs per adjudicator call"""

    heuristic_merge_threshold: float = 0.85
    """Merge threshold for the default threshold adjudicator"""

    dedup_similarity: str = "lexical"
    """Similarity scorer: "lexical" (word overlap) or "embedding" (OpenAI embeddings)"""

    embedding_model: str = "text-embedding-3-small"
    """Embedding model when dedup_similarity is embedding"""

    dedup_adjudicator: str = "threshold"
    """Uncertain-pair judge: threshold or llm"""

    adjudication_model: str = "claude-haiku"
    """Model id used when dedup_adjudicator is llm"""

    # === Pipeline ===

    batch_size: int = 2
    """Concurrent chunk calls per batch"""

    max_nodes: int = 15
    """Node budget for the final merged graph"""

    subgraph_max_nodes: int = 10
    """Node budget requested for each chunk's subgraph"""

    progress_buffer: int = 64
    """Bounded size of the progress channel"""

    # === Storage ===

    usage_db_path: str = ":memory:"
    """DuckDB database for the usage ledger (":memory:" for ephemeral)"""

    cache_dir: str | None = None
    """diskcache directory for running totals and results (None keeps them in memory)"""

    # === API Keys ===

    openai_api_key: str | None = None
    anthropic_api_key: str | None = None

    def __init__(self, **kwargs: Any) -> None:
        """
        Initialize configuration.

        Args:
            **kwargs: Override any configuration option
        """
        # Load from environment first
        self._load_from_env()

        # Apply explicit overrides
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
            else:
                raise ValueError(f"Unknown configuration option: {key}")

    def _load_from_env(self) -> None:
        """Load configuration from environment variables."""
        import os

        self.openai_api_key = os.getenv("OPENAI_API_KEY")
        self.anthropic_api_key = os.getenv("ANTHROPIC_API_KEY")

        if size := os.getenv("GRAPHEX_MAX_CHUNK_SIZE"):
            self.max_chunk_size = int(size)
        if limit := os.getenv("GRAPHEX_DAILY_LIMIT_USD"):
            self.per_user_per_day = float(limit)
        if limit := os.getenv("GRAPHEX_MONTHLY_LIMIT_USD"):
            self.per_user_per_month = float(limit)
        if limit := os.getenv("GRAPHEX_DOCUMENT_LIMIT_USD"):
            self.per_document = float(limit)
        if retries := os.getenv("GRAPHEX_MAX_RETRIES"):
            self.max_retries = int(retries)
        if timeout := os.getenv("GRAPHEX_TIMEOUT_MS"):
            self.timeout_ms = int(timeout)
        if model := os.getenv("GRAPHEX_PREFERRED_MODEL"):
            self.preferred_model = model
        if batch := os.getenv("GRAPHEX_BATCH_SIZE"):
            self.batch_size = int(batch)
        if db_path := os.getenv("GRAPHEX_USAGE_DB"):
            self.usage_db_path = db_path
        if cache_dir := os.getenv("GRAPHEX_CACHE_DIR"):
            self.cache_dir = cache_dir
        if similarity := os.getenv("GRAPHEX_DEDUP_SIMILARITY"):
            self.dedup_similarity = similarity
        if adjudicator := os.getenv("GRAPHEX_DEDUP_ADJUDICATOR"):
            self.dedup_adjudicator = adjudicator

    @classmethod
    def from_file(cls, path: str | Path) -> "KGConfig":
        """
        Load configuration from TOML file.

        Sections are flattened: every key inside a known section maps to the
        option of the same name. API keys live under ``[api_keys]``.

        Example TOML:
            [budget]
            per_user_per_day = 20.0

            [orchestrator]
            max_retries = 4

            [api_keys]
            anthropic = "sk-ant-..."

        Raises:
            FileNotFoundError: If config file doesn't exist
            ImportError: If tomli not installed on Python 3.10
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        data = _load_toml(path)
        flat_config: dict[str, Any] = {}

        for section, prefix in _SECTION_MAPPING.items():
            if section in data:
                for key, value in data[section].items():
                    if section == "api_keys":
                        flat_config[f"{key}_api_key"] = value
                    else:
                        flat_config[f"{prefix}{key}"] = value

        # Also support flat top-level keys
        for key, value in data.items():
            if key not in _SECTION_MAPPING and not isinstance(value, dict):
                flat_config[key] = value

        return cls(**flat_config)

    @classmethod
    def from_env(cls) -> "KGConfig":
        """Load configuration from environment variables only."""
        return cls()

    def to_file(self, path: str | Path) -> None:
        """
        Save configuration to TOML file.

        API keys are never written.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        sections: dict[str, dict[str, str | int | float | bool | None]] = {
            "chunking": {
                "max_chunk_size": self.max_chunk_size,
                "overlap_size": self.overlap_size,
                "min_chunk_size": self.min_chunk_size,
            },
            "budget": {
                "per_document": self.per_document,
                "per_user_per_day": self.per_user_per_day,
                "per_user_per_month": self.per_user_per_month,
                "daily_warning_ratio": self.daily_warning_ratio,
                "monthly_warning_ratio": self.monthly_warning_ratio,
                "usage_cache_ttl_seconds": self.usage_cache_ttl_seconds,
            },
            "models": {
                "preferred_model": self.preferred_model,
                "max_tokens": self.max_tokens,
                "temperature": self.temperature,
            },
            "orchestrator": {
                "max_retries": self.max_retries,
                "quality_threshold": self.quality_threshold,
                "prompt_version": self.prompt_version,
                "timeout_ms": self.timeout_ms,
            },
            "dedup": {
                "auto_merge_threshold": self.auto_merge_threshold,
                "auto_separate_threshold": self.auto_separate_threshold,
                "max_adjudications": self.max_adjudications,
                "adjudication_batch_size": self.adjudication_batch_size,
                "heuristic_merge_threshold": self.heuristic_merge_threshold,
                "dedup_similarity": self.dedup_similarity,
                "embedding_model": self.embedding_model,
                "dedup_adjudicator": self.dedup_adjudicator,
                "adjudication_model": self.adjudication_model,
            },
            "pipeline": {
                "batch_size": self.batch_size,
                "max_nodes": self.max_nodes,
                "subgraph_max_nodes": self.subgraph_max_nodes,
                "progress_buffer": self.progress_buffer,
            },
            "storage": {
                "usage_db_path": self.usage_db_path,
                "cache_dir": self.cache_dir,
            },
        }

        # Build TOML string manually (avoids extra dependency)
        lines = ["# GraphexKG Configuration", ""]

        for section_name, section_values in sections.items():
            lines.append(f"[{section_name}]")
            for key, value in section_values.items():
                if isinstance(value, str):
                    lines.append(f'{key} = "{value}"')
                elif isinstance(value, bool):
                    lines.append(f"{key} = {str(value).lower()}")
                elif isinstance(value, (int, float)):
                    lines.append(f"{key} = {value}")
            lines.append("")

        lines.extend([
            "# API keys should be set via environment variables:",
            "# OPENAI_API_KEY, ANTHROPIC_API_KEY",
            "",
        ])

        path.write_text("\n".join(lines))

    def with_overrides(self, **kwargs: Any) -> "KGConfig":
        """Return new config with specified overrides."""
        new_config = KGConfig.__new__(KGConfig)
        for key in dir(self):
            if not key.startswith("_") and not callable(getattr(self, key)):
                setattr(new_config, key, getattr(self, key))
        for key, value in kwargs.items():
            if not hasattr(new_config, key):
                raise ValueError(f"Unknown configuration option: {key}")
            setattr(new_config, key, value)
        return new_config
