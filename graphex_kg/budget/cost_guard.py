"""
Cost Guard

Admission control and usage ledger for metered model calls.

Admission (check_budget), in order, first refusal wins:
    1. Estimate the operation's cost from the per-operation token table
    2. Per-target ceiling: the estimate alone must fit
    3. Daily ceiling: today's total + estimate must fit
    4. Monthly ceiling: this month's total + estimate must fit

Usage totals are read cache-first and rebuilt from the durable store on a
miss. The store is the source of truth; cache problems are logged and never
fail a call.

Example:
    >>> guard = CostGuard(InMemoryCacheStore(), store)
    >>> result = await guard.check_budget("user-1", "graph-generation")
    >>> if not result.allowed:
    ...     print(result.reason, result.reset_at)
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Literal

from graphex_kg.budget.cache import CacheStore
from graphex_kg.budget.usage_store import UsageStore
from graphex_kg.config.pricing import (
    ESTIMATION_MODEL,
    calculate_cost,
    estimate_operation_tokens,
)
from graphex_kg.errors import CostTrackingError, InvalidUsageDataError
from graphex_kg.types.usage import (
    BudgetCheckResult,
    BudgetWarning,
    CurrentUsage,
    OperationCost,
    UsageRecord,
    UsageSummary,
)

if TYPE_CHECKING:
    from graphex_kg.config import KGConfig

logger = logging.getLogger(__name__)

Period = Literal["day", "month"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -----------------------------------------------------------------------------
# Window helpers (UTC)
# -----------------------------------------------------------------------------


def start_of_day(now: datetime) -> datetime:
    now = now.astimezone(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_month(now: datetime) -> datetime:
    return start_of_day(now).replace(day=1)


def next_day_reset(now: datetime) -> datetime:
    """Next UTC midnight."""
    return start_of_day(now) + timedelta(days=1)


def next_month_reset(now: datetime) -> datetime:
    """First instant of the next UTC month."""
    first = start_of_month(now)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def daily_key(user_id: str, now: datetime) -> str:
    return f"usage:{user_id}:{now.astimezone(timezone.utc):%Y-%m-%d}"


def monthly_key(user_id: str, now: datetime) -> str:
    return f"usage:{user_id}:{now.astimezone(timezone.utc):%Y-%m}"


class CostGuard:
    """
    Budget admission and usage recording.

    Args:
        cache: Fast running-total cache (best effort)
        store: Durable usage ledger (authoritative)
        per_document: Ceiling for a single operation on one target (USD)
        per_user_per_day: Daily ceiling per user (USD)
        per_user_per_month: Monthly ceiling per user (USD)
        daily_warning_ratio: Fraction of the daily ceiling that emits a warning
        monthly_warning_ratio: Fraction of the monthly ceiling that emits a warning
        usage_cache_ttl_seconds: TTL of cached running totals
        warning_sink: Optional receiver of BudgetWarning events
        clock: Returns the current UTC time (injectable for tests)
    """

    def __init__(
        self,
        cache: CacheStore,
        store: UsageStore,
        *,
        per_document: float = 5.0,
        per_user_per_day: float = 10.0,
        per_user_per_month: float = 50.0,
        daily_warning_ratio: float = 0.8,
        monthly_warning_ratio: float = 0.9,
        usage_cache_ttl_seconds: int = 3600,
        warning_sink: Callable[[BudgetWarning], None] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.cache = cache
        self.store = store
        self.per_document = per_document
        self.per_user_per_day = per_user_per_day
        self.per_user_per_month = per_user_per_month
        self.daily_warning_ratio = daily_warning_ratio
        self.monthly_warning_ratio = monthly_warning_ratio
        self.usage_cache_ttl_seconds = usage_cache_ttl_seconds
        self.warning_sink = warning_sink
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        config: "KGConfig",
        cache: CacheStore,
        store: UsageStore,
        warning_sink: Callable[[BudgetWarning], None] | None = None,
    ) -> "CostGuard":
        return cls(
            cache,
            store,
            per_document=config.per_document,
            per_user_per_day=config.per_user_per_day,
            per_user_per_month=config.per_user_per_month,
            daily_warning_ratio=config.daily_warning_ratio,
            monthly_warning_ratio=config.monthly_warning_ratio,
            usage_cache_ttl_seconds=config.usage_cache_ttl_seconds,
            warning_sink=warning_sink,
        )

    # -------------------------------------------------------------------------
    # Admission
    # -------------------------------------------------------------------------

    @staticmethod
    def estimate_cost(operation: str, estimated_tokens: int | None = None) -> float:
        """
        Estimated USD cost of an operation before it runs.

        Raises:
            CostCalculationError: If the operation is unknown and no total is given.
        """
        estimate = estimate_operation_tokens(operation, estimated_tokens)
        return calculate_cost(estimate.input_tokens, estimate.output_tokens, ESTIMATION_MODEL)

    async def check_budget(
        self,
        user_id: str | None = None,
        operation: str = "graph-generation",
        estimated_tokens: int | None = None,
        target_id: str | None = None,
    ) -> BudgetCheckResult:
        """
        Decide whether an operation may proceed.

        Never raises for budget conditions. A usage read failure is logged and
        treated as zero usage so an outage does not block legitimate work.
        """
        estimated_cost = self.estimate_cost(operation, estimated_tokens)

        if target_id and estimated_cost > self.per_document:
            logger.info(
                f"Refused {operation} for target {target_id}: estimate "
                f"${estimated_cost:.4f} exceeds per-target limit ${self.per_document:.2f}"
            )
            return BudgetCheckResult(
                allowed=False,
                reason="document-limit-exceeded",
                estimated_cost=estimated_cost,
            )

        if not user_id:
            # Anonymous callers are not tracked against daily/monthly ceilings.
            # TODO: add a shared anonymous ceiling before exposing this to untrusted traffic.
            return BudgetCheckResult(allowed=True, estimated_cost=estimated_cost)

        try:
            usage = await self.get_current_usage(user_id)
        except CostTrackingError as e:
            logger.warning(f"Budget check failed open for {user_id}: {e}")
            return BudgetCheckResult(allowed=True, estimated_cost=estimated_cost)

        now = self._clock()

        if usage.today + estimated_cost > self.per_user_per_day:
            logger.info(
                f"Refused {operation} for {user_id}: daily usage ${usage.today:.4f} "
                f"+ ${estimated_cost:.4f} > ${self.per_user_per_day:.2f}"
            )
            return BudgetCheckResult(
                allowed=False,
                reason="daily-limit-exceeded",
                estimated_cost=estimated_cost,
                current_usage=usage,
                reset_at=next_day_reset(now),
            )

        if usage.this_month + estimated_cost > self.per_user_per_month:
            logger.info(
                f"Refused {operation} for {user_id}: monthly usage "
                f"${usage.this_month:.4f} + ${estimated_cost:.4f} > "
                f"${self.per_user_per_month:.2f}"
            )
            return BudgetCheckResult(
                allowed=False,
                reason="monthly-limit-exceeded",
                estimated_cost=estimated_cost,
                current_usage=usage,
                reset_at=next_month_reset(now),
            )

        return BudgetCheckResult(
            allowed=True,
            estimated_cost=estimated_cost,
            current_usage=usage,
        )

    # -------------------------------------------------------------------------
    # Running totals
    # -------------------------------------------------------------------------

    async def get_current_usage(self, user_id: str | None) -> CurrentUsage:
        """
        Today's and this month's spend for a user.

        Raises:
            CostTrackingError: If the cache missed and the store could not be read.
        """
        if not user_id:
            return CurrentUsage()

        now = self._clock()
        day_key = daily_key(user_id, now)
        month_key = monthly_key(user_id, now)

        try:
            today = await self.cache.get(day_key)
            this_month = await self.cache.get(month_key)
        except Exception as e:
            # Cache outage degrades to a miss
            logger.warning(f"Usage cache read failed for {user_id}: {e}")
            today = this_month = None

        if today is not None and this_month is not None:
            return CurrentUsage(today=float(today), this_month=float(this_month))

        try:
            day_summary = await self.store.aggregate(user_id, start_of_day(now))
            month_summary = await self.store.aggregate(user_id, start_of_month(now))
        except Exception as e:
            logger.error(f"Usage store read failed for {user_id}: {e}")
            raise CostTrackingError("Failed to read usage totals", "get-usage", e) from e

        usage = CurrentUsage(
            today=day_summary.total_cost,
            this_month=month_summary.total_cost,
        )

        try:
            await self.cache.set_with_ttl(day_key, usage.today, self.usage_cache_ttl_seconds)
            await self.cache.set_with_ttl(month_key, usage.this_month, self.usage_cache_ttl_seconds)
        except Exception as e:
            # Next read rebuilds from the store
            logger.warning(f"Usage cache write failed for {user_id}: {e}")

        return usage

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    @staticmethod
    def validate_usage_record(record: UsageRecord) -> None:
        """Raise InvalidUsageDataError listing every problem with a record."""
        errors: list[str] = []
        if not math.isfinite(record.cost) or record.cost < 0:
            errors.append("cost must be a non-negative number")
        if record.input_tokens < 0:
            errors.append("input_tokens must be non-negative")
        if record.output_tokens < 0:
            errors.append("output_tokens must be non-negative")
        if not record.operation or not record.operation.strip():
            errors.append("operation is required")
        if not record.model or not record.model.strip():
            errors.append("model is required")
        if record.attempts < 1:
            errors.append("attempts must be at least 1")
        if errors:
            raise InvalidUsageDataError(errors)

    async def record_usage(self, record: UsageRecord) -> None:
        """
        Validate and persist a usage record, then update running totals.

        Raises:
            InvalidUsageDataError: If the record fails validation
            CostTrackingError: If the durable store write fails
        """
        self.validate_usage_record(record)

        try:
            await self.store.append(record)
        except Exception as e:
            logger.error(f"Failed to record usage for {record.operation}: {e}")
            raise CostTrackingError("Failed to record usage", "record-usage", e) from e

        logger.debug(
            f"Recorded {record.operation} on {record.model}: "
            f"{record.total_tokens} tokens, ${record.cost:.6f}"
        )

        if not record.user_id:
            return

        await self._increment_running_totals(record.user_id, record)
        await self._check_thresholds(record.user_id, record)

    async def _increment_running_totals(self, user_id: str, record: UsageRecord) -> None:
        """Bump cached totals that exist; absent keys are rebuilt on next read."""
        for key in (
            daily_key(user_id, record.timestamp),
            monthly_key(user_id, record.timestamp),
        ):
            try:
                if await self.cache.get(key) is not None:
                    await self.cache.increment_float(key, record.cost)
            except Exception as e:
                # Store already holds the record
                logger.warning(f"Usage cache update failed for {key}: {e}")

    async def _check_thresholds(self, user_id: str, record: UsageRecord) -> None:
        """Warn once per window, when this record pushes usage across the ratio."""
        try:
            usage = await self.get_current_usage(user_id)
        except CostTrackingError as e:
            logger.warning(f"Skipping budget warning check for {user_id}: {e}")
            return

        now = self._clock()
        windows = (
            (
                "day",
                usage.today,
                self.per_user_per_day,
                self.daily_warning_ratio,
                daily_key(user_id, record.timestamp) == daily_key(user_id, now),
            ),
            (
                "month",
                usage.this_month,
                self.per_user_per_month,
                self.monthly_warning_ratio,
                monthly_key(user_id, record.timestamp) == monthly_key(user_id, now),
            ),
        )
        for window, after, limit, ratio, in_window in windows:
            if limit <= 0:
                continue
            # Records from an earlier window did not move the current total
            before = after - record.cost if in_window else after
            threshold = limit * ratio
            if before < threshold <= after:
                self._emit_warning(
                    BudgetWarning(
                        user_id=user_id,
                        window=window,
                        usage=after,
                        limit=limit,
                        ratio=after / limit,
                    )
                )

    def _emit_warning(self, warning: BudgetWarning) -> None:
        logger.warning(
            f"User {warning.user_id} at {warning.ratio:.0%} of {warning.window} "
            f"budget (${warning.usage:.2f} / ${warning.limit:.2f})"
        )
        if self.warning_sink is None:
            return
        try:
            self.warning_sink(warning)
        except Exception as e:
            # Warnings are informational only
            logger.error(f"Budget warning sink failed: {e}")

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def _period_start(self, period: Period) -> datetime:
        now = self._clock()
        if period == "day":
            return start_of_day(now)
        if period == "month":
            return start_of_month(now)
        raise ValueError(f"Unknown period: {period}")

    async def get_user_summary(self, user_id: str, period: Period = "day") -> UsageSummary:
        """Aggregate spend for a user over the current day or month."""
        since = self._period_start(period)
        try:
            return await self.store.aggregate(user_id, since)
        except Exception as e:
            raise CostTrackingError("Failed to read usage summary", "get-summary", e) from e

    async def get_cost_breakdown(
        self,
        user_id: str,
        period: Period = "month",
    ) -> list[OperationCost]:
        """Spend per operation kind, most expensive first."""
        since = self._period_start(period)
        try:
            rows = await self.store.group_by_operation(user_id, since)
        except Exception as e:
            raise CostTrackingError("Failed to read cost breakdown", "get-breakdown", e) from e

        total = sum(cost for _, cost, _ in rows)
        return [
            OperationCost(
                operation=operation,
                total_cost=cost,
                count=count,
                average_cost=cost / count if count else 0.0,
                percentage=(cost / total) * 100 if total else 0.0,
            )
            for operation, cost, count in rows
        ]
