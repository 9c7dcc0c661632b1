"""Tests for the DuckDB usage ledger and the in-memory cache."""

from datetime import datetime, timedelta, timezone

import pytest

from graphex_kg.types.usage import UsageRecord

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def store():
    from graphex_kg.budget import DuckDBUsageStore

    store = DuckDBUsageStore(":memory:")
    await store.initialize()
    yield store
    await store.close()


def _record(user_id="u1", operation="graph-generation", cost=0.1, when=NOW, **kwargs):
    return UsageRecord(
        user_id=user_id,
        operation=operation,
        model="claude-haiku",
        input_tokens=1000,
        output_tokens=200,
        cost=cost,
        timestamp=when,
        **kwargs,
    )


class TestDuckDBUsageStore:
    """Tests for DuckDBUsageStore."""

    @pytest.mark.asyncio
    async def test_append_and_count(self, store):
        """Records are appended, never merged."""
        await store.append(_record())
        await store.append(_record())
        assert await store.count() == 2

    @pytest.mark.asyncio
    async def test_aggregate_window(self, store):
        """Only records at or after `since` for the user are summed."""
        await store.append(_record(cost=0.5, when=NOW - timedelta(days=2)))
        await store.append(_record(cost=0.25))
        await store.append(_record(cost=0.25, when=NOW + timedelta(hours=1)))
        await store.append(_record(user_id="u2", cost=9.0))

        summary = await store.aggregate("u1", NOW - timedelta(hours=1))
        assert summary.total_cost == pytest.approx(0.5)
        assert summary.operation_count == 2
        assert summary.total_tokens == 2400
        assert summary.average_cost_per_operation == pytest.approx(0.25)

    @pytest.mark.asyncio
    async def test_aggregate_empty(self, store):
        """An unknown user has a zero summary."""
        summary = await store.aggregate("nobody", NOW)
        assert summary.total_cost == 0.0
        assert summary.operation_count == 0

    @pytest.mark.asyncio
    async def test_group_by_operation(self, store):
        """Groups are ordered by spend."""
        await store.append(_record(operation="quiz-generation", cost=0.1))
        await store.append(_record(operation="graph-generation", cost=0.3))
        await store.append(_record(operation="graph-generation", cost=0.3))

        rows = await store.group_by_operation("u1", NOW - timedelta(days=1))
        assert [(op, count) for op, _, count in rows] == [
            ("graph-generation", 2),
            ("quiz-generation", 1),
        ]
        assert rows[0][1] == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_not_initialized(self):
        """Using the store before initialize() is an error."""
        from graphex_kg.budget import DuckDBUsageStore

        with pytest.raises(RuntimeError):
            await DuckDBUsageStore().append(_record())

    @pytest.mark.asyncio
    async def test_file_backed(self, tmp_path):
        """A file-backed ledger survives reopening."""
        from graphex_kg.budget import DuckDBUsageStore

        path = tmp_path / "nested" / "usage.duckdb"
        first = DuckDBUsageStore(path)
        await first.initialize()
        await first.append(_record(cost=1.5))
        await first.close()

        second = DuckDBUsageStore(path)
        await second.initialize()
        summary = await second.aggregate("u1", NOW - timedelta(days=1))
        await second.close()
        assert summary.total_cost == pytest.approx(1.5)


class TestInMemoryCacheStore:
    """Tests for InMemoryCacheStore."""

    @pytest.mark.asyncio
    async def test_ttl_expiry(self):
        """Entries expire on the injected clock."""
        from graphex_kg.budget import InMemoryCacheStore

        now = [100.0]
        cache = InMemoryCacheStore(clock=lambda: now[0])
        await cache.set_with_ttl("k", 1.0, 10)
        assert await cache.get("k") == 1.0
        now[0] = 110.0
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_increment_keeps_expiry(self):
        """Increments add to the value without extending its TTL."""
        from graphex_kg.budget import InMemoryCacheStore

        now = [0.0]
        cache = InMemoryCacheStore(clock=lambda: now[0])
        await cache.set_with_ttl("k", 1.0, 10)
        assert await cache.increment_float("k", 0.5) == pytest.approx(1.5)
        now[0] = 10.0
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_increment_missing_key(self):
        """A missing key starts at zero."""
        from graphex_kg.budget import InMemoryCacheStore

        cache = InMemoryCacheStore()
        assert await cache.increment_float("fresh", 0.25) == pytest.approx(0.25)
        assert len(cache) == 1


class TestDiskCacheStore:
    """Tests for DiskCacheStore."""

    @pytest.mark.asyncio
    async def test_values_survive_reopen(self, tmp_path):
        """A second store on the same directory sees earlier writes."""
        from graphex_kg.budget import DiskCacheStore

        cache = DiskCacheStore(tmp_path / "cache")
        await cache.set_with_ttl("usage:u1:2026-03-14", 1.0, 3600)
        await cache.set_with_ttl("ai:graph", {"nodes": []}, 3600)
        cache.close()

        reopened = DiskCacheStore(tmp_path / "cache")
        assert await reopened.get("usage:u1:2026-03-14") == 1.0
        assert await reopened.get("ai:graph") == {"nodes": []}
        assert await reopened.get("missing") is None
        reopened.close()

    @pytest.mark.asyncio
    async def test_increment(self, tmp_path):
        """Increments add to existing values and start missing keys at zero."""
        from graphex_kg.budget import DiskCacheStore

        cache = DiskCacheStore(tmp_path / "cache")
        await cache.set_with_ttl("k", 1.0, 3600)
        assert await cache.increment_float("k", 0.5) == pytest.approx(1.5)
        assert await cache.increment_float("fresh", 0.25) == pytest.approx(0.25)
        assert await cache.get("k") == pytest.approx(1.5)
        assert len(cache) == 2
        cache.close()
