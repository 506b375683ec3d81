"""Metric aggregators over a set of course IDs.

Each aggregator is a stateless coroutine over (store, scope, filters).
An empty scope returns the zero value without touching the store, so an
instructor with no courses never produces an unscoped query.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Collection
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation

from instructor_analytics.core.clock import as_utc
from instructor_analytics.models.analytics import (
    EngagementSplit,
    QuizScoreSummary,
    RatingCount,
    RevenuePoint,
    TrendPoint,
)
from instructor_analytics.repos.analytics_repo import AnalyticsStore, RawNumber
from instructor_analytics.services.errors import InvalidArgumentError

logger = logging.getLogger(__name__)


def coerce_float(value: RawNumber) -> float:
    """Convert a store-reported number to float.

    Missing, unparseable, NaN or infinite values become 0.0.
    """
    if value is None:
        return 0.0
    try:
        result = float(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        logger.warning("Unparseable numeric value from store: %r", value)
        return 0.0
    # numeric columns can hold NaN; results never carry NaN or infinity
    if not math.isfinite(result):
        logger.warning("Non-finite numeric value from store: %r", value)
        return 0.0
    return result


def ratio(part: int, whole: int) -> float:
    """part / whole as a 0-100 percentage; 0.0 when whole is 0."""
    if whole <= 0:
        return 0.0
    return part / whole * 100


def require_limit(limit: int) -> int:
    if limit <= 0:
        raise InvalidArgumentError(f"limit must be positive (got {limit})")
    return limit


@dataclass(frozen=True, slots=True)
class DateWindow:
    """Inclusive time range; either bound may be open.  Naive bounds are UTC."""

    start: datetime | None = None
    end: datetime | None = None

    def __post_init__(self) -> None:
        if self.start is not None:
            object.__setattr__(self, "start", as_utc(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", as_utc(self.end))
        if self.start is not None and self.end is not None and self.start > self.end:
            raise InvalidArgumentError("window start must not be after end")


# --- counts ---


async def count_students(store: AnalyticsStore, scope: Collection[int]) -> int:
    if not scope:
        return 0
    return await store.count_enrollments(scope)


async def count_active_students(
    store: AnalyticsStore, scope: Collection[int], since: datetime
) -> int:
    if not scope:
        return 0
    return await store.count_enrollments(scope, accessed_since=since)


async def count_pending_submissions(store: AnalyticsStore, scope: Collection[int]) -> int:
    if not scope:
        return 0
    return await store.count_pending_submissions(scope)


# --- sums and averages ---


async def total_revenue(store: AnalyticsStore, scope: Collection[int]) -> float:
    if not scope:
        return 0.0
    return coerce_float(await store.sum_amount_paid(scope))


async def average_rating(store: AnalyticsStore, scope: Collection[int]) -> float:
    if not scope:
        return 0.0
    return coerce_float(await store.average_rating(scope))


async def completion_rate(store: AnalyticsStore, scope: Collection[int]) -> float:
    if not scope:
        return 0.0
    total, completed = await asyncio.gather(
        store.count_enrollments(scope),
        store.count_enrollments(scope, completed_only=True),
    )
    return ratio(completed, total)


# --- trends and distributions ---


async def enrollment_trend(
    store: AnalyticsStore,
    scope: Collection[int],
    *,
    start: datetime,
    end: datetime | None = None,
) -> tuple[TrendPoint, ...]:
    if not scope:
        return ()
    buckets = await store.enrollment_buckets(scope, start=start, end=end)
    return tuple(TrendPoint(bucket=b, count=n) for b, n in buckets)


async def revenue_trend(
    store: AnalyticsStore,
    scope: Collection[int],
    *,
    start: datetime,
    end: datetime | None = None,
) -> tuple[RevenuePoint, ...]:
    if not scope:
        return ()
    buckets = await store.revenue_buckets(scope, start=start, end=end)
    return tuple(RevenuePoint(bucket=b, value=coerce_float(v)) for b, v in buckets)


async def rating_distribution(
    store: AnalyticsStore, scope: Collection[int]
) -> tuple[RatingCount, ...]:
    if not scope:
        return ()
    return tuple(
        RatingCount(value=v, count=n) for v, n in await store.rating_counts(scope)
    )


async def engagement_split(
    store: AnalyticsStore, scope: Collection[int], since: datetime
) -> EngagementSplit:
    if not scope:
        return EngagementSplit()
    total, active = await store.engagement_counts(scope, since)
    # inactive is derived so the two always sum to the total
    return EngagementSplit(active=active, inactive=total - active)


async def quiz_score_averages(
    store: AnalyticsStore, scope: Collection[int]
) -> tuple[QuizScoreSummary, ...]:
    if not scope:
        return ()
    return tuple(
        QuizScoreSummary(
            quiz_id=row.quiz_id,
            quiz_title=row.quiz_title,
            attempt_count=row.attempt_count,
            average_score=coerce_float(row.average_score),
            pass_rate=ratio(row.passed_count, row.attempt_count),
        )
        for row in await store.quiz_score_rows(scope)
    )
