"""
DuckDB Usage Ledger

Durable, append-only storage of usage records with the aggregates the cost
guard needs: sums per user over a time window and a group-by on operation.

Thread safety:
    One DuckDB connection per store; each worker thread used by
    asyncio.to_thread() gets its own cursor, since DuckDB connections are
    not safe to share across threads.
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path

import duckdb

from graphex_kg.types.usage import UsageRecord, UsageSummary

_CREATE_TABLE = """
    CREATE TABLE IF NOT EXISTS ai_usage (
        id VARCHAR PRIMARY KEY,
        user_id VARCHAR,
        operation VARCHAR NOT NULL,
        model VARCHAR NOT NULL,
        input_tokens BIGINT NOT NULL,
        output_tokens BIGINT NOT NULL,
        total_tokens BIGINT NOT NULL,
        cost DOUBLE NOT NULL,
        quality_score INTEGER,
        attempts INTEGER NOT NULL,
        success BOOLEAN NOT NULL,
        target_id VARCHAR,
        timestamp TIMESTAMP NOT NULL
    )
"""


def _to_naive_utc(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class UsageStore(ABC):
    """Abstract interface for the durable usage ledger."""

    @abstractmethod
    async def append(self, record: UsageRecord) -> None:
        """Persist one usage record."""
        ...

    @abstractmethod
    async def aggregate(self, user_id: str, since: datetime) -> UsageSummary:
        """Sum cost and tokens for a user since a point in time."""
        ...

    @abstractmethod
    async def group_by_operation(
        self,
        user_id: str,
        since: datetime,
    ) -> list[tuple[str, float, int]]:
        """(operation, total_cost, count) for a user since a point in time."""
        ...


class DuckDBUsageStore(UsageStore):
    """
    Usage ledger backed by DuckDB.

    Args:
        db_path: Database file, or ":memory:" for an ephemeral ledger
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self.db_path = str(db_path)
        self._conn: duckdb.DuckDBPyConnection | None = None
        self._local = threading.local()

    async def initialize(self) -> None:
        """Open the database and create the usage table."""
        def _open() -> None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = duckdb.connect(self.db_path)
            conn.execute(_CREATE_TABLE)
            self._conn = conn

        await asyncio.to_thread(_open)

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
        self._local = threading.local()

    def _get_cursor(self) -> duckdb.DuckDBPyConnection:
        """Get thread-local cursor, creating if needed."""
        if self._conn is None:
            raise RuntimeError("Usage store not initialized. Call initialize() first.")

        cursor = getattr(self._local, "cursor", None)
        if cursor is None:
            cursor = self._conn.cursor()
            self._local.cursor = cursor
        return cursor

    async def append(self, record: UsageRecord) -> None:
        def _insert() -> None:
            self._get_cursor().execute(
                """
                INSERT INTO ai_usage (
                    id, user_id, operation, model, input_tokens, output_tokens,
                    total_tokens, cost, quality_score, attempts, success,
                    target_id, timestamp
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    str(uuid.uuid4()),
                    record.user_id,
                    record.operation,
                    record.model,
                    record.input_tokens,
                    record.output_tokens,
                    record.total_tokens,
                    record.cost,
                    record.quality_score,
                    record.attempts,
                    record.success,
                    record.target_id,
                    _to_naive_utc(record.timestamp),
                ],
            )

        await asyncio.to_thread(_insert)

    async def aggregate(self, user_id: str, since: datetime) -> UsageSummary:
        def _query() -> UsageSummary:
            row = self._get_cursor().execute(
                """
                SELECT
                    COALESCE(SUM(cost), 0.0),
                    COALESCE(SUM(total_tokens), 0),
                    COALESCE(SUM(input_tokens), 0),
                    COALESCE(SUM(output_tokens), 0),
                    COUNT(*)
                FROM ai_usage
                WHERE user_id = ? AND timestamp >= ?
                """,
                [user_id, _to_naive_utc(since)],
            ).fetchone()

            total_cost, total_tokens, input_tokens, output_tokens, count = row or (0.0, 0, 0, 0, 0)
            return UsageSummary(
                total_cost=float(total_cost),
                total_tokens=int(total_tokens),
                operation_count=int(count),
                average_cost_per_operation=float(total_cost) / (count or 1),
                input_tokens=int(input_tokens),
                output_tokens=int(output_tokens),
            )

        return await asyncio.to_thread(_query)

    async def group_by_operation(
        self,
        user_id: str,
        since: datetime,
    ) -> list[tuple[str, float, int]]:
        def _query() -> list[tuple[str, float, int]]:
            rows = self._get_cursor().execute(
                """
                SELECT operation, SUM(cost) AS total_cost, COUNT(*) AS count
                FROM ai_usage
                WHERE user_id = ? AND timestamp >= ?
                GROUP BY operation
                ORDER BY total_cost DESC, operation
                """,
                [user_id, _to_naive_utc(since)],
            ).fetchall()
            return [(str(op), float(cost), int(count)) for op, cost, count in rows]

        return await asyncio.to_thread(_query)

    async def count(self) -> int:
        """Total number of stored records."""
        def _query() -> int:
            row = self._get_cursor().execute("SELECT COUNT(*) FROM ai_usage").fetchone()
            return int(row[0]) if row else 0

        return await asyncio.to_thread(_query)
