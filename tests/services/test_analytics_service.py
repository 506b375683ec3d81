from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

import pytest
from prometheus_client import REGISTRY

from instructor_analytics.models.course import Course
from instructor_analytics.repos.analytics_repo import InMemoryAnalyticsStore
from instructor_analytics.services.aggregators import DateWindow
from instructor_analytics.services.analytics_service import InstructorAnalyticsService
from instructor_analytics.services.errors import (
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
    StorageError,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)


class RecordingStore:
    """Wraps a store and records every query method called."""

    def __init__(self, inner: InMemoryAnalyticsStore) -> None:
        self._inner = inner
        self.calls: list[str] = []

    def __getattr__(self, name: str):
        method = getattr(self._inner, name)

        async def _recorded(*args, **kwargs):
            self.calls.append(name)
            return await method(*args, **kwargs)

        return _recorded


class BrokenEnrollmentStore(RecordingStore):
    async def count_enrollments(self, *args, **kwargs):
        raise StorageError("count_enrollments")


def _month(m: int) -> datetime:
    return datetime(2024, m, 1, tzinfo=UTC)


# ---- dashboard ----


def test_dashboard_totals(service: InstructorAnalyticsService) -> None:
    d = asyncio.run(service.aggregate_dashboard(10))
    assert d.total_courses == 2
    assert d.total_students == 3
    assert d.total_revenue == pytest.approx(199.98)
    assert d.average_rating == pytest.approx(14 / 3)
    assert d.pending_assignments == 2
    assert d.recent_activity == ()


def test_dashboard_upcoming_sessions_are_future_and_owned(
    service: InstructorAnalyticsService,
) -> None:
    d = asyncio.run(service.aggregate_dashboard(10))
    assert [s.id for s in d.upcoming_sessions] == [1, 3]
    assert d.upcoming_sessions[0].course_title == "Python 101"
    assert d.upcoming_sessions[1].lesson_title == "Coroutines"


def test_dashboard_trends_are_sparse_monthly(service: InstructorAnalyticsService) -> None:
    d = asyncio.run(service.aggregate_dashboard(10))
    assert [(p.bucket, p.count) for p in d.enrollment_trend] == [
        (_month(1), 1),
        (_month(3), 2),
    ]
    assert [p.bucket for p in d.revenue_trend] == [_month(1), _month(3)]
    assert d.revenue_trend[1].value == pytest.approx(149.99)


def test_dashboard_top_courses_by_revenue(service: InstructorAnalyticsService) -> None:
    d = asyncio.run(service.aggregate_dashboard(10))
    assert [c.course_id for c in d.top_courses] == [2, 1]


def test_dashboard_for_instructor_without_courses_is_zeroed(
    store: InMemoryAnalyticsStore,
) -> None:
    recording = RecordingStore(store)
    service = InstructorAnalyticsService(recording, clock=lambda: NOW)
    d = asyncio.run(service.aggregate_dashboard(999))
    assert d.total_courses == 0
    assert d.total_students == 0
    assert d.total_revenue == 0.0
    assert d.average_rating == 0.0
    assert d.pending_assignments == 0
    assert d.upcoming_sessions == ()
    assert d.enrollment_trend == ()
    assert d.revenue_trend == ()
    assert d.top_courses == ()
    # only the scope lookups ran; no scoped aggregate was issued
    assert set(recording.calls) == {"list_courses"}


def test_dashboard_is_idempotent(service: InstructorAnalyticsService) -> None:
    assert asyncio.run(service.aggregate_dashboard(10)) == asyncio.run(
        service.aggregate_dashboard(10)
    )


def test_dashboard_storage_failure_propagates(store: InMemoryAnalyticsStore) -> None:
    service = InstructorAnalyticsService(BrokenEnrollmentStore(store), clock=lambda: NOW)
    with pytest.raises(StorageError):
        asyncio.run(service.aggregate_dashboard(10))


def test_dashboard_records_report_duration(service: InstructorAnalyticsService) -> None:
    labels = {"report": "dashboard", "outcome": "ok"}
    before = REGISTRY.get_sample_value("analytics_report_duration_seconds_count", labels) or 0.0
    asyncio.run(service.aggregate_dashboard(10))
    after = REGISTRY.get_sample_value("analytics_report_duration_seconds_count", labels)
    assert after - before == 1


def test_failed_report_records_error_outcome(
    store: InMemoryAnalyticsStore, caplog: pytest.LogCaptureFixture
) -> None:
    service = InstructorAnalyticsService(BrokenEnrollmentStore(store), clock=lambda: NOW)
    labels = {"report": "dashboard", "outcome": "error"}
    before = REGISTRY.get_sample_value("analytics_report_duration_seconds_count", labels) or 0.0
    with caplog.at_level(logging.WARNING, logger="instructor_analytics.services.analytics_service"):
        with pytest.raises(StorageError):
            asyncio.run(service.aggregate_dashboard(10))
    after = REGISTRY.get_sample_value("analytics_report_duration_seconds_count", labels)
    assert after - before == 1
    (record,) = [r for r in caplog.records if getattr(r, "report", None) == "dashboard"]
    assert record.levelno == logging.WARNING
    assert record.outcome == "error"


def test_dashboard_logs_completion(
    service: InstructorAnalyticsService, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="instructor_analytics.services.analytics_service"):
        asyncio.run(service.aggregate_dashboard(10))
    records = [r for r in caplog.records if getattr(r, "report", None) == "dashboard"]
    assert len(records) == 1
    assert records[0].actor_id == 10


# ---- course analytics ----


def test_course_analytics(service: InstructorAnalyticsService) -> None:
    a = asyncio.run(service.aggregate_course_analytics(10, 1))
    assert a.course_id == 1
    assert [(p.bucket, p.count) for p in a.enrollment_trend] == [
        (_month(1), 1),
        (_month(3), 1),
    ]
    assert a.completion_rate == 50.0
    assert [(r.value, r.count) for r in a.rating_distribution] == [(4, 1), (5, 1)]
    assert (a.student_engagement.active, a.student_engagement.inactive) == (1, 1)
    assert [q.quiz_id for q in a.average_quiz_scores] == [1]
    assert [p.value for p in a.revenue_trend] == [
        pytest.approx(49.99),
        pytest.approx(49.99),
    ]


def test_course_analytics_window_narrows_trends(service: InstructorAnalyticsService) -> None:
    window = DateWindow(start=_month(3), end=datetime(2024, 3, 31, tzinfo=UTC))
    a = asyncio.run(service.aggregate_course_analytics(10, 1, window))
    assert [p.bucket for p in a.enrollment_trend] == [_month(3)]
    # completion and engagement are not windowed
    assert a.completion_rate == 50.0


def test_course_analytics_end_only_window_looks_back_from_end(
    service: InstructorAnalyticsService,
) -> None:
    # end is older than the lookback measured from now
    old = asyncio.run(
        service.aggregate_course_analytics(10, 1, DateWindow(end=datetime(2023, 3, 1, tzinfo=UTC)))
    )
    assert old.enrollment_trend == ()
    assert old.revenue_trend == ()

    recent = asyncio.run(
        service.aggregate_course_analytics(10, 1, DateWindow(end=datetime(2024, 2, 15, tzinfo=UTC)))
    )
    assert [(p.bucket, p.count) for p in recent.enrollment_trend] == [(_month(1), 1)]


def test_course_analytics_for_course_without_activity(store: InMemoryAnalyticsStore) -> None:
    store.add(Course(id=9, instructor_id=10, title="Empty", slug="empty"))
    service = InstructorAnalyticsService(store, clock=lambda: NOW)
    a = asyncio.run(service.aggregate_course_analytics(10, 9))
    assert a.enrollment_trend == ()
    assert a.completion_rate == 0.0
    assert a.rating_distribution == ()
    assert a.student_engagement.total == 0
    assert a.average_quiz_scores == ()


def test_course_analytics_foreign_course_is_forbidden(
    store: InMemoryAnalyticsStore,
) -> None:
    recording = RecordingStore(store)
    service = InstructorAnalyticsService(recording, clock=lambda: NOW)
    with pytest.raises(ForbiddenError):
        asyncio.run(service.aggregate_course_analytics(10, 3))
    assert recording.calls == ["get_course"]


def test_course_analytics_missing_course(service: InstructorAnalyticsService) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(service.aggregate_course_analytics(10, 12345))


# ---- course listings ----


def test_list_courses_newest_first_with_stats(service: InstructorAnalyticsService) -> None:
    courses = asyncio.run(service.list_instructor_courses(10))
    assert [c.course_id for c in courses] == [2, 1]
    python = courses[1]
    assert python.enrollment_count == 2
    assert python.completion_rate == 50.0
    assert python.average_rating == pytest.approx(4.5)
    assert python.revenue == pytest.approx(99.98)
    assert python.active_students == 1
    assert courses[0].is_featured is True
    assert courses[0].view_count == 7


def test_top_courses_limit(service: InstructorAnalyticsService) -> None:
    top = asyncio.run(service.top_performing_courses(10, limit=1))
    assert [c.course_id for c in top] == [2]


def test_top_courses_rejects_bad_limit(service: InstructorAnalyticsService) -> None:
    with pytest.raises(InvalidArgumentError):
        asyncio.run(service.top_performing_courses(10, limit=0))


# ---- students ----


def test_course_students(service: InstructorAnalyticsService) -> None:
    students = asyncio.run(service.get_course_students(10, 1))
    assert [s.username for s in students] == ["bo", "ada"]
    bo, ada = students
    assert bo.progress_percentage == 50.5
    assert bo.completed_lessons == 1
    assert ada.completed_lessons == 2
    assert ada.total_lessons == 2  # the soft-deleted lesson is excluded


def test_course_students_requires_ownership(service: InstructorAnalyticsService) -> None:
    with pytest.raises(ForbiddenError):
        asyncio.run(service.get_course_students(20, 1))


# ---- sessions, grading, quizzes ----


def test_upcoming_sessions(service: InstructorAnalyticsService) -> None:
    sessions = asyncio.run(service.get_upcoming_sessions(10))
    assert [s.id for s in sessions] == [1, 3]
    assert sessions[1].meeting_url == "https://meet.example.com/oh"


def test_upcoming_sessions_limit(service: InstructorAnalyticsService) -> None:
    assert [s.id for s in asyncio.run(service.get_upcoming_sessions(10, limit=1))] == [1]


def test_calendar_sessions_unbounded(service: InstructorAnalyticsService) -> None:
    sessions = asyncio.run(service.get_calendar_sessions(10))
    assert [s.id for s in sessions] == [2, 1, 3]


def test_calendar_sessions_window(service: InstructorAnalyticsService) -> None:
    window = DateWindow(start=_month(6), end=datetime(2024, 6, 30, tzinfo=UTC))
    sessions = asyncio.run(service.get_calendar_sessions(10, window))
    assert [s.id for s in sessions] == [2, 1]


def test_pending_submissions_newest_first(service: InstructorAnalyticsService) -> None:
    pending = asyncio.run(service.get_pending_submissions(10))
    assert [p.id for p in pending] == [2, 1]
    assert pending[0].assignment_title == "Homework 1"
    assert pending[0].course_id == 1


def test_pending_submissions_scoped_to_actor(service: InstructorAnalyticsService) -> None:
    assert [p.id for p in asyncio.run(service.get_pending_submissions(20))] == [5]


def test_quiz_attempts_latest_first(service: InstructorAnalyticsService) -> None:
    attempts = asyncio.run(service.get_quiz_attempts(10))
    assert [a.id for a in attempts] == [2, 1, 3]
    assert attempts[1].score == 80.0
    assert attempts[1].is_passed is True
    assert attempts[2].score == 0.0  # unscored


@pytest.mark.parametrize(
    "call",
    [
        lambda s: s.get_upcoming_sessions(10, limit=0),
        lambda s: s.get_pending_submissions(10, limit=-5),
        lambda s: s.get_quiz_attempts(10, limit=0),
    ],
)
def test_non_positive_limits_rejected(service: InstructorAnalyticsService, call) -> None:
    with pytest.raises(InvalidArgumentError):
        asyncio.run(call(service))


def test_listings_empty_without_courses(service: InstructorAnalyticsService) -> None:
    assert asyncio.run(service.get_pending_submissions(999)) == []
    assert asyncio.run(service.get_quiz_attempts(999)) == []
    assert asyncio.run(service.get_upcoming_sessions(999)) == []
    assert asyncio.run(service.list_instructor_courses(999)) == []
