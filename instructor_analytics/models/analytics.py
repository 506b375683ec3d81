"""Report records produced by the analytics service.

Every field is populated: numeric fields default to zero and list fields
to empty tuples, so an instructor with no courses still gets a complete
record.  Monetary, rating and score fields are already floats.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True, slots=True)
class TrendPoint:
    bucket: datetime  # first instant of the calendar month, UTC
    count: int


@dataclass(frozen=True, slots=True)
class RevenuePoint:
    bucket: datetime
    value: float


@dataclass(frozen=True, slots=True)
class RatingCount:
    value: int
    count: int


@dataclass(frozen=True, slots=True)
class EngagementSplit:
    active: int = 0
    inactive: int = 0

    @property
    def total(self) -> int:
        return self.active + self.inactive


@dataclass(frozen=True, slots=True)
class QuizScoreSummary:
    quiz_id: int
    quiz_title: str
    attempt_count: int = 0
    average_score: float = 0.0
    pass_rate: float = 0.0


@dataclass(frozen=True, slots=True)
class SessionSummary:
    id: int
    title: str
    start_time: datetime
    end_time: datetime
    lesson_id: int
    lesson_title: str
    course_id: int
    course_title: str
    timezone: str = "UTC"
    meeting_url: str | None = None
    attendance_count: int = 0
    max_attendees: int | None = None


@dataclass(frozen=True, slots=True)
class PendingSubmission:
    id: int
    assignment_id: int
    assignment_title: str
    course_id: int
    user_id: int
    submitted_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class QuizAttemptSummary:
    id: int
    quiz_id: int
    quiz_title: str
    course_id: int
    user_id: int
    attempt_number: int
    score: float = 0.0
    max_score: float = 0.0
    is_passed: bool = False
    completed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class StudentProgress:
    user_id: int
    username: str
    email: str
    enrollment_id: int
    enrolled_at: datetime
    progress_percentage: float = 0.0
    last_accessed_at: datetime | None = None
    completed_lessons: int = 0
    total_lessons: int = 0


@dataclass(frozen=True, slots=True)
class CourseStats:
    course_id: int
    title: str
    slug: str
    thumbnail_url: str | None = None
    enrollment_count: int = 0
    completion_rate: float = 0.0
    average_rating: float = 0.0
    revenue: float = 0.0
    active_students: int = 0
    is_featured: bool = False
    view_count: int = 0
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class DashboardSummary:
    total_courses: int = 0
    total_students: int = 0
    total_revenue: float = 0.0
    average_rating: float = 0.0
    pending_assignments: int = 0
    upcoming_sessions: tuple[SessionSummary, ...] = ()
    # Activity tracking is not recorded anywhere yet; always empty.
    recent_activity: tuple[dict, ...] = ()
    revenue_trend: tuple[RevenuePoint, ...] = ()
    enrollment_trend: tuple[TrendPoint, ...] = ()
    top_courses: tuple[CourseStats, ...] = ()


@dataclass(frozen=True, slots=True)
class CourseAnalytics:
    course_id: int
    enrollment_trend: tuple[TrendPoint, ...] = ()
    completion_rate: float = 0.0
    rating_distribution: tuple[RatingCount, ...] = ()
    student_engagement: EngagementSplit = field(default_factory=EngagementSplit)
    average_quiz_scores: tuple[QuizScoreSummary, ...] = ()
    revenue_trend: tuple[RevenuePoint, ...] = ()
