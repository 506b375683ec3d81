"""Instructor analytics: composes aggregator results into report records.

Every report follows the same shape: resolve scope (or check ownership
of one course), fan out the independent aggregators concurrently, then
assemble a fully-defaulted record.  Nothing is cached; each call
recomputes from the store.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta

from instructor_analytics.core.clock import months_ago, utcnow
from instructor_analytics.core.config import SETTINGS, Settings
from instructor_analytics.core.metrics import REPORT_DURATION
from instructor_analytics.models.analytics import (
    CourseAnalytics,
    CourseStats,
    DashboardSummary,
    PendingSubmission,
    QuizAttemptSummary,
    SessionSummary,
    StudentProgress,
)
from instructor_analytics.models.course import Course
from instructor_analytics.repos.analytics_repo import AnalyticsStore
from instructor_analytics.services import aggregators as agg
from instructor_analytics.services.aggregators import DateWindow, coerce_float, require_limit
from instructor_analytics.services.ownership import assert_ownership, get_owned_course_ids

logger = logging.getLogger(__name__)

DASHBOARD_UPCOMING_SESSIONS = 5
TOP_COURSES = 5


@contextmanager
def _report(name: str, actor_id: int) -> Iterator[None]:
    started = time.perf_counter()
    outcome = "error"  # flipped only when the report body completes
    try:
        yield
        outcome = "ok"
    finally:
        elapsed = time.perf_counter() - started
        REPORT_DURATION.labels(report=name, outcome=outcome).observe(elapsed)
        extra = {
            "report": name,
            "actor_id": actor_id,
            "outcome": outcome,
            "duration_ms": round(elapsed * 1000, 2),
        }
        if outcome == "ok":
            logger.info("Composed %s report for actor_id=%d", name, actor_id, extra=extra)
        else:
            logger.warning(
                "Failed %s report for actor_id=%d", name, actor_id, extra=extra
            )


class InstructorAnalyticsService:
    def __init__(
        self,
        store: AnalyticsStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        settings: Settings = SETTINGS,
    ) -> None:
        self._store = store
        self._clock = clock
        self._settings = settings

    # --- helpers ---

    def _active_since(self, now: datetime) -> datetime:
        return now - timedelta(days=self._settings.activity_window_days)

    def _trend_window(self, now: datetime, window: DateWindow | None) -> DateWindow:
        lookback = self._settings.trend_lookback_months
        if window is None:
            return DateWindow(start=months_ago(now, lookback))
        if window.start is not None:
            return window
        # an end-only window looks back from its own end, not from now
        return DateWindow(start=months_ago(window.end or now, lookback), end=window.end)

    async def _course_stats(self, course: Course, since: datetime) -> CourseStats:
        scope = (course.id,)
        enrolled, completion, rating, revenue, active = await asyncio.gather(
            agg.count_students(self._store, scope),
            agg.completion_rate(self._store, scope),
            agg.average_rating(self._store, scope),
            agg.total_revenue(self._store, scope),
            agg.count_active_students(self._store, scope, since),
        )
        return CourseStats(
            course_id=course.id,
            title=course.title,
            slug=course.slug,
            thumbnail_url=course.thumbnail_url,
            enrollment_count=enrolled,
            completion_rate=completion,
            average_rating=rating,
            revenue=revenue,
            active_students=active,
            is_featured=course.is_featured,
            view_count=course.view_count,
            created_at=course.created_at,
        )

    async def _all_course_stats(self, actor_id: int) -> list[CourseStats]:
        courses = await self._store.list_courses(actor_id)
        since = self._active_since(self._clock())
        return list(await asyncio.gather(*(self._course_stats(c, since) for c in courses)))

    async def _top_courses(self, actor_id: int, limit: int) -> tuple[CourseStats, ...]:
        stats = await self._all_course_stats(actor_id)
        # stable sort: equal revenue keeps newest-first order
        ranked = sorted(stats, key=lambda s: s.revenue, reverse=True)
        return tuple(ranked[:limit])

    async def _sessions(
        self,
        scope: frozenset[int],
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> tuple[SessionSummary, ...]:
        if not scope:
            return ()
        return tuple(
            await self._store.list_sessions(scope, start=start, end=end, limit=limit)
        )

    # --- reports ---

    async def aggregate_dashboard(self, actor_id: int) -> DashboardSummary:
        with _report("dashboard", actor_id):
            scope = await get_owned_course_ids(self._store, actor_id)
            now = self._clock()
            trend = self._trend_window(now, None)
            (
                students,
                revenue,
                rating,
                pending,
                upcoming,
                revenue_trend,
                enrollment_trend,
                top_courses,
            ) = await asyncio.gather(
                agg.count_students(self._store, scope),
                agg.total_revenue(self._store, scope),
                agg.average_rating(self._store, scope),
                agg.count_pending_submissions(self._store, scope),
                self._sessions(scope, start=now, limit=DASHBOARD_UPCOMING_SESSIONS),
                agg.revenue_trend(self._store, scope, start=trend.start, end=trend.end),
                agg.enrollment_trend(self._store, scope, start=trend.start, end=trend.end),
                self._top_courses(actor_id, TOP_COURSES),
            )
            return DashboardSummary(
                total_courses=len(scope),
                total_students=students,
                total_revenue=revenue,
                average_rating=rating,
                pending_assignments=pending,
                upcoming_sessions=upcoming,
                recent_activity=(),
                revenue_trend=revenue_trend,
                enrollment_trend=enrollment_trend,
                top_courses=top_courses,
            )

    async def aggregate_course_analytics(
        self, actor_id: int, course_id: int, window: DateWindow | None = None
    ) -> CourseAnalytics:
        with _report("course_analytics", actor_id):
            await assert_ownership(self._store, actor_id, course_id)
            now = self._clock()
            trend = self._trend_window(now, window)
            scope = (course_id,)
            (
                enrollment_trend,
                completion,
                distribution,
                engagement,
                quiz_scores,
                revenue_trend,
            ) = await asyncio.gather(
                agg.enrollment_trend(self._store, scope, start=trend.start, end=trend.end),
                agg.completion_rate(self._store, scope),
                agg.rating_distribution(self._store, scope),
                agg.engagement_split(self._store, scope, self._active_since(now)),
                agg.quiz_score_averages(self._store, scope),
                agg.revenue_trend(self._store, scope, start=trend.start, end=trend.end),
            )
            return CourseAnalytics(
                course_id=course_id,
                enrollment_trend=enrollment_trend,
                completion_rate=completion,
                rating_distribution=distribution,
                student_engagement=engagement,
                average_quiz_scores=quiz_scores,
                revenue_trend=revenue_trend,
            )

    async def list_instructor_courses(self, actor_id: int) -> list[CourseStats]:
        with _report("course_list", actor_id):
            return await self._all_course_stats(actor_id)

    async def top_performing_courses(
        self, actor_id: int, limit: int = TOP_COURSES
    ) -> list[CourseStats]:
        require_limit(limit)
        with _report("top_courses", actor_id):
            return list(await self._top_courses(actor_id, limit))

    async def get_course_students(
        self, actor_id: int, course_id: int
    ) -> list[StudentProgress]:
        with _report("course_students", actor_id):
            await assert_ownership(self._store, actor_id, course_id)
            students, total_lessons = await asyncio.gather(
                self._store.list_students(course_id),
                self._store.count_lessons(course_id),
            )
            completed: dict[int, int] = {}
            if students:
                completed = await self._store.completed_lesson_counts(
                    [s.enrollment_id for s in students]
                )
            return [
                StudentProgress(
                    user_id=s.user_id,
                    username=s.username,
                    email=s.email,
                    enrollment_id=s.enrollment_id,
                    enrolled_at=s.enrolled_at,
                    progress_percentage=coerce_float(s.progress_percentage),
                    last_accessed_at=s.last_accessed_at,
                    completed_lessons=completed.get(s.enrollment_id, 0),
                    total_lessons=total_lessons,
                )
                for s in students
            ]

    async def get_upcoming_sessions(
        self, actor_id: int, limit: int = 20
    ) -> list[SessionSummary]:
        require_limit(limit)
        with _report("upcoming_sessions", actor_id):
            scope = await get_owned_course_ids(self._store, actor_id)
            return list(await self._sessions(scope, start=self._clock(), limit=limit))

    async def get_calendar_sessions(
        self, actor_id: int, window: DateWindow | None = None
    ) -> list[SessionSummary]:
        window = window or DateWindow()
        with _report("calendar_sessions", actor_id):
            scope = await get_owned_course_ids(self._store, actor_id)
            return list(await self._sessions(scope, start=window.start, end=window.end))

    async def get_pending_submissions(
        self, actor_id: int, limit: int = 50
    ) -> list[PendingSubmission]:
        require_limit(limit)
        with _report("pending_submissions", actor_id):
            scope = await get_owned_course_ids(self._store, actor_id)
            if not scope:
                return []
            return await self._store.list_pending_submissions(scope, limit=limit)

    async def get_quiz_attempts(
        self, actor_id: int, limit: int = 50
    ) -> list[QuizAttemptSummary]:
        require_limit(limit)
        with _report("quiz_attempts", actor_id):
            scope = await get_owned_course_ids(self._store, actor_id)
            if not scope:
                return []
            rows = await self._store.list_quiz_attempts(scope, limit=limit)
            return [
                QuizAttemptSummary(
                    id=r.id,
                    quiz_id=r.quiz_id,
                    quiz_title=r.quiz_title,
                    course_id=r.course_id,
                    user_id=r.user_id,
                    attempt_number=r.attempt_number,
                    score=coerce_float(r.score),
                    max_score=coerce_float(r.max_score),
                    is_passed=r.is_passed,
                    completed_at=r.completed_at,
                )
                for r in rows
            ]
