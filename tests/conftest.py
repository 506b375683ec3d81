from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from instructor_analytics.api.instructor import analytics_store, get_analytics_service
from instructor_analytics.main import app
from instructor_analytics.models.assessment import (
    Assignment,
    AssignmentSubmission,
    Quiz,
    QuizAttempt,
)
from instructor_analytics.models.course import (
    Course,
    CourseSection,
    Lesson,
    LessonProgress,
    LessonSession,
)
from instructor_analytics.models.enrollment import CourseReview, Enrollment
from instructor_analytics.models.user import User
from instructor_analytics.repos.analytics_repo import InMemoryAnalyticsStore
from instructor_analytics.services import token_service
from instructor_analytics.services.analytics_service import InstructorAnalyticsService

# Fixed "now" for every time-dependent assertion.
NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)

INSTRUCTOR = 10
OTHER_INSTRUCTOR = 20


def _dt(month: int, day: int, year: int = 2024) -> datetime:
    return datetime(year, month, day, 9, 0, tzinfo=UTC)


def populate(store: InMemoryAnalyticsStore) -> None:
    """Seed a small platform.

    Instructor 10 teaches courses 1 and 2 (course 4 is soft-deleted);
    instructor 20 teaches course 3.  Soft-deleted rows are sprinkled in
    so every query has something it must ignore.
    """
    store.add(
        User(id=101, username="ada", email="ada@example.com"),
        User(id=102, username="bo", email="bo@example.com"),
        User(id=103, username="cy", email="cy@example.com"),
        User(id=104, username="di", email="di@example.com"),
        Course(id=1, instructor_id=INSTRUCTOR, title="Python 101", slug="python-101",
               price="49.99", created_at=_dt(1, 1)),
        Course(id=2, instructor_id=INSTRUCTOR, title="Async IO", slug="async-io",
               price="100.00", is_featured=True, view_count=7, created_at=_dt(3, 1)),
        Course(id=3, instructor_id=OTHER_INSTRUCTOR, title="Rust", slug="rust",
               created_at=_dt(2, 1)),
        Course(id=4, instructor_id=INSTRUCTOR, title="Retired", slug="retired",
               created_at=_dt(5, 1), is_deleted=True),
        CourseSection(id=11, course_id=1, title="Basics"),
        CourseSection(id=21, course_id=2, title="Event loop"),
        CourseSection(id=31, course_id=3, title="Ownership"),
        Lesson(id=111, section_id=11, title="Variables"),
        Lesson(id=112, section_id=11, title="Functions"),
        Lesson(id=113, section_id=11, title="Old lesson", is_deleted=True),
        Lesson(id=211, section_id=21, title="Coroutines"),
        Lesson(id=311, section_id=31, title="Borrowing"),
    )
    store.add(
        Enrollment(id=1, user_id=101, course_id=1, enrolled_at=_dt(1, 10),
                   amount_paid="49.99", completed_at=_dt(2, 1),
                   last_accessed_at=_dt(6, 10), progress_percentage="100.00"),
        Enrollment(id=2, user_id=102, course_id=1, enrolled_at=_dt(3, 5),
                   amount_paid="49.99", last_accessed_at=_dt(4, 1),
                   progress_percentage="50.50"),
        Enrollment(id=3, user_id=103, course_id=2, enrolled_at=_dt(3, 20),
                   amount_paid="100.00", last_accessed_at=_dt(6, 14)),
        Enrollment(id=4, user_id=104, course_id=1, enrolled_at=_dt(3, 25),
                   amount_paid="999.00", is_deleted=True),
        Enrollment(id=5, user_id=101, course_id=3, enrolled_at=_dt(2, 2),
                   amount_paid="500.00", last_accessed_at=_dt(6, 1)),
        LessonProgress(id=1, enrollment_id=1, lesson_id=111, is_completed=True),
        LessonProgress(id=2, enrollment_id=1, lesson_id=112, is_completed=True),
        LessonProgress(id=3, enrollment_id=2, lesson_id=111, is_completed=True),
        LessonProgress(id=4, enrollment_id=2, lesson_id=112, is_completed=False),
        CourseReview(id=1, course_id=1, user_id=101, rating=5),
        CourseReview(id=2, course_id=1, user_id=102, rating=4),
        CourseReview(id=3, course_id=2, user_id=103, rating=5),
        CourseReview(id=4, course_id=1, user_id=104, rating=1, is_deleted=True),
        CourseReview(id=5, course_id=3, user_id=101, rating=2),
    )
    store.add(
        LessonSession(id=1, lesson_id=111, title="Live Q&A",
                      start_time=_dt(6, 20), end_time=_dt(6, 20).replace(hour=10)),
        LessonSession(id=2, lesson_id=111, title="Kickoff",
                      start_time=_dt(6, 1), end_time=_dt(6, 1).replace(hour=10)),
        LessonSession(id=3, lesson_id=211, title="Office hours",
                      start_time=_dt(7, 1), end_time=_dt(7, 1).replace(hour=10),
                      meeting_url="https://meet.example.com/oh"),
        LessonSession(id=4, lesson_id=311, title="Other course",
                      start_time=_dt(6, 18), end_time=_dt(6, 18).replace(hour=10)),
        LessonSession(id=5, lesson_id=111, title="Cancelled",
                      start_time=_dt(6, 17), end_time=_dt(6, 17).replace(hour=10),
                      is_deleted=True),
        Assignment(id=1, section_id=11, title="Homework 1"),
        Assignment(id=3, section_id=31, title="Rust homework"),
        AssignmentSubmission(id=1, assignment_id=1, user_id=101, submitted_at=_dt(6, 10)),
        AssignmentSubmission(id=2, assignment_id=1, user_id=102, submitted_at=_dt(6, 12)),
        AssignmentSubmission(id=3, assignment_id=1, user_id=103, submitted_at=_dt(6, 1),
                             score="90", graded_by=INSTRUCTOR, graded_at=_dt(6, 2)),
        AssignmentSubmission(id=4, assignment_id=1, user_id=104, submitted_at=_dt(6, 13),
                             is_deleted=True),
        AssignmentSubmission(id=5, assignment_id=3, user_id=101, submitted_at=_dt(6, 11)),
        Quiz(id=1, section_id=11, title="Basics quiz"),
        Quiz(id=3, section_id=31, title="Rust quiz"),
        QuizAttempt(id=1, quiz_id=1, user_id=101, score="80", max_score="100",
                    is_passed=True, completed_at=_dt(6, 1)),
        QuizAttempt(id=2, quiz_id=1, user_id=102, score="40", max_score="100",
                    completed_at=_dt(6, 5)),
        QuizAttempt(id=3, quiz_id=1, user_id=102, attempt_number=2),
        QuizAttempt(id=4, quiz_id=3, user_id=101, score="10", completed_at=_dt(6, 7)),
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store() -> InMemoryAnalyticsStore:
    """A fresh, populated store independent of the app's."""
    s = InMemoryAnalyticsStore()
    populate(s)
    return s


@pytest.fixture
def service(store: InMemoryAnalyticsStore) -> InstructorAnalyticsService:
    return InstructorAnalyticsService(store, clock=lambda: NOW)


@pytest.fixture(autouse=True)
def reset_analytics_store() -> Iterator[None]:
    """Clear the app's in-memory store and service override between tests."""
    if isinstance(analytics_store, InMemoryAnalyticsStore):
        analytics_store.clear()
    yield
    app.dependency_overrides.pop(get_analytics_service, None)


@pytest.fixture
def seeded() -> InMemoryAnalyticsStore:
    """Populate the app's store and pin the service clock to NOW."""
    assert isinstance(analytics_store, InMemoryAnalyticsStore)
    populate(analytics_store)
    app.dependency_overrides[get_analytics_service] = lambda: InstructorAnalyticsService(
        analytics_store, clock=lambda: NOW
    )
    return analytics_store


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def mint_token() -> Callable[..., str]:
    """Factory for valid ES256 JWTs signed with the test key."""

    def _mint(sub: str = str(INSTRUCTOR), roles: list[str] | None = None) -> str:
        return token_service.create_access_token(sub=sub, roles=roles)

    return _mint


@pytest.fixture
def auth_headers(mint_token: Callable[..., str]) -> dict[str, str]:
    """Bearer header for instructor 10."""
    return {"Authorization": f"Bearer {mint_token()}"}
