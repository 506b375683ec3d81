"""Instructor analytics endpoints.

Every route is scoped to the calling instructor (the numeric JWT subject).
A course the caller does not own answers 404 exactly like a missing one,
so course IDs belonging to other instructors cannot be probed.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict

from instructor_analytics.api.dependencies import require_instructor
from instructor_analytics.db.engine import async_session_factory
from instructor_analytics.repos.analytics_repo import InMemoryAnalyticsStore
from instructor_analytics.repos.pg_analytics_repo import PgAnalyticsStore
from instructor_analytics.services.aggregators import DateWindow
from instructor_analytics.services.analytics_service import InstructorAnalyticsService
from instructor_analytics.services.errors import (
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
    StorageError,
)

router = APIRouter(prefix="/v1/instructor", tags=["instructor"])


# --- Response models ---


class _Out(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class TrendPointOut(_Out):
    bucket: datetime
    count: int


class RevenuePointOut(_Out):
    bucket: datetime
    value: float


class RatingCountOut(_Out):
    value: int
    count: int


class EngagementOut(_Out):
    active: int
    inactive: int


class QuizScoreOut(_Out):
    quiz_id: int
    quiz_title: str
    attempt_count: int
    average_score: float
    pass_rate: float


class SessionOut(_Out):
    id: int
    title: str
    start_time: datetime
    end_time: datetime
    lesson_id: int
    lesson_title: str
    course_id: int
    course_title: str
    timezone: str
    meeting_url: str | None
    attendance_count: int
    max_attendees: int | None


class CourseStatsOut(_Out):
    course_id: int
    title: str
    slug: str
    thumbnail_url: str | None
    enrollment_count: int
    completion_rate: float
    average_rating: float
    revenue: float
    active_students: int
    is_featured: bool
    view_count: int
    created_at: datetime | None


class DashboardOut(_Out):
    total_courses: int
    total_students: int
    total_revenue: float
    average_rating: float
    pending_assignments: int
    upcoming_sessions: list[SessionOut]
    recent_activity: list[dict]
    revenue_trend: list[RevenuePointOut]
    enrollment_trend: list[TrendPointOut]
    top_courses: list[CourseStatsOut]


class CourseAnalyticsOut(_Out):
    course_id: int
    enrollment_trend: list[TrendPointOut]
    completion_rate: float
    rating_distribution: list[RatingCountOut]
    student_engagement: EngagementOut
    average_quiz_scores: list[QuizScoreOut]
    revenue_trend: list[RevenuePointOut]


class StudentOut(_Out):
    user_id: int
    username: str
    email: str
    enrollment_id: int
    enrolled_at: datetime
    progress_percentage: float
    last_accessed_at: datetime | None
    completed_lessons: int
    total_lessons: int


class PendingSubmissionOut(_Out):
    id: int
    assignment_id: int
    assignment_title: str
    course_id: int
    user_id: int
    submitted_at: datetime | None


class QuizAttemptOut(_Out):
    id: int
    quiz_id: int
    quiz_title: str
    course_id: int
    user_id: int
    attempt_number: int
    score: float
    max_score: float
    is_passed: bool
    completed_at: datetime | None


# --- Store wiring ---
# Postgres when DATABASE_URL is configured, otherwise an in-memory store
# (empty until seeded; tests seed it directly).

if async_session_factory is not None:
    analytics_store: PgAnalyticsStore | InMemoryAnalyticsStore = PgAnalyticsStore(
        async_session_factory
    )
else:
    analytics_store = InMemoryAnalyticsStore()


def get_analytics_service() -> InstructorAnalyticsService:
    return InstructorAnalyticsService(analytics_store)


Actor = Annotated[int, Depends(require_instructor)]
Service = Annotated[InstructorAnalyticsService, Depends(get_analytics_service)]


@contextmanager
def _service_errors() -> Iterator[None]:
    try:
        yield
    except (NotFoundError, ForbiddenError):
        # ForbiddenError is already logged by the ownership check
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="course not found"
        ) from None
    except InvalidArgumentError as e:
        raise HTTPException(status_code=422, detail=str(e)) from None
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="analytics store unavailable",
        ) from None


# --- Routes ---


@router.get("/dashboard", response_model=DashboardOut)
async def dashboard(actor_id: Actor, service: Service) -> DashboardOut:
    with _service_errors():
        summary = await service.aggregate_dashboard(actor_id)
    return DashboardOut.model_validate(summary)


@router.get("/courses", response_model=list[CourseStatsOut])
async def list_courses(actor_id: Actor, service: Service) -> list[CourseStatsOut]:
    with _service_errors():
        courses = await service.list_instructor_courses(actor_id)
    return [CourseStatsOut.model_validate(c) for c in courses]


@router.get("/courses/top", response_model=list[CourseStatsOut])
async def top_courses(
    actor_id: Actor, service: Service, limit: int = 5
) -> list[CourseStatsOut]:
    with _service_errors():
        courses = await service.top_performing_courses(actor_id, limit)
    return [CourseStatsOut.model_validate(c) for c in courses]


@router.get("/courses/{course_id}/students", response_model=list[StudentOut])
async def course_students(
    course_id: int, actor_id: Actor, service: Service
) -> list[StudentOut]:
    with _service_errors():
        students = await service.get_course_students(actor_id, course_id)
    return [StudentOut.model_validate(s) for s in students]


@router.get("/courses/{course_id}/analytics", response_model=CourseAnalyticsOut)
async def course_analytics(
    course_id: int,
    actor_id: Actor,
    service: Service,
    start: datetime | None = None,
    end: datetime | None = None,
) -> CourseAnalyticsOut:
    with _service_errors():
        window = DateWindow(start=start, end=end) if start or end else None
        analytics = await service.aggregate_course_analytics(actor_id, course_id, window)
    return CourseAnalyticsOut.model_validate(analytics)


@router.get("/sessions/upcoming", response_model=list[SessionOut])
async def upcoming_sessions(
    actor_id: Actor, service: Service, limit: int = 20
) -> list[SessionOut]:
    with _service_errors():
        sessions = await service.get_upcoming_sessions(actor_id, limit)
    return [SessionOut.model_validate(s) for s in sessions]


@router.get("/sessions/calendar", response_model=list[SessionOut])
async def calendar_sessions(
    actor_id: Actor,
    service: Service,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[SessionOut]:
    with _service_errors():
        sessions = await service.get_calendar_sessions(
            actor_id, DateWindow(start=start, end=end)
        )
    return [SessionOut.model_validate(s) for s in sessions]


@router.get("/assignments/pending", response_model=list[PendingSubmissionOut])
async def pending_submissions(
    actor_id: Actor, service: Service, limit: int = 50
) -> list[PendingSubmissionOut]:
    with _service_errors():
        submissions = await service.get_pending_submissions(actor_id, limit)
    return [PendingSubmissionOut.model_validate(s) for s in submissions]


@router.get("/quizzes/attempts", response_model=list[QuizAttemptOut])
async def quiz_attempts(
    actor_id: Actor, service: Service, limit: int = 50
) -> list[QuizAttemptOut]:
    with _service_errors():
        attempts = await service.get_quiz_attempts(actor_id, limit)
    return [QuizAttemptOut.model_validate(a) for a in attempts]
