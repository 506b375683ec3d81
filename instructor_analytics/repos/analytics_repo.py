"""Read-side store for instructor analytics.

AnalyticsStore is the seam between the analytics core and the relational
database.  Every method is a single read over active rows (soft-deleted
rows never count) restricted to the given course IDs.  Aggregate values
come back exactly as the database reports them (RawNumber): Decimal,
string, or None when no rows matched.  Coercion to float is the
service's job, not the store's.

Callers must not pass an empty course-ID collection; the aggregators
short-circuit before reaching the store.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Collection, Iterator
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from math import fsum
from typing import Protocol, TypeVar

from instructor_analytics.core.clock import as_utc, month_start
from instructor_analytics.models.analytics import PendingSubmission, SessionSummary
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

RawNumber = Decimal | str | int | float | None


@dataclass(frozen=True, slots=True)
class StudentRecord:
    user_id: int
    username: str
    email: str
    enrollment_id: int
    enrolled_at: datetime
    progress_percentage: RawNumber
    last_accessed_at: datetime | None


@dataclass(frozen=True, slots=True)
class QuizAttemptRecord:
    id: int
    quiz_id: int
    quiz_title: str
    course_id: int
    user_id: int
    attempt_number: int
    score: RawNumber
    max_score: RawNumber
    is_passed: bool
    completed_at: datetime | None


@dataclass(frozen=True, slots=True)
class QuizScoreRecord:
    quiz_id: int
    quiz_title: str
    attempt_count: int
    passed_count: int
    average_score: RawNumber


class AnalyticsStore(Protocol):
    async def get_course(self, course_id: int) -> Course | None: ...
    async def list_courses(self, instructor_id: int) -> list[Course]: ...
    async def count_enrollments(
        self,
        course_ids: Collection[int],
        *,
        completed_only: bool = False,
        accessed_since: datetime | None = None,
    ) -> int: ...
    async def engagement_counts(
        self, course_ids: Collection[int], since: datetime
    ) -> tuple[int, int]: ...
    async def sum_amount_paid(self, course_ids: Collection[int]) -> RawNumber: ...
    async def average_rating(self, course_ids: Collection[int]) -> RawNumber: ...
    async def enrollment_buckets(
        self,
        course_ids: Collection[int],
        *,
        start: datetime,
        end: datetime | None = None,
    ) -> list[tuple[datetime, int]]: ...
    async def revenue_buckets(
        self,
        course_ids: Collection[int],
        *,
        start: datetime,
        end: datetime | None = None,
    ) -> list[tuple[datetime, RawNumber]]: ...
    async def rating_counts(
        self, course_ids: Collection[int]
    ) -> list[tuple[int, int]]: ...
    async def count_pending_submissions(self, course_ids: Collection[int]) -> int: ...
    async def list_pending_submissions(
        self, course_ids: Collection[int], *, limit: int
    ) -> list[PendingSubmission]: ...
    async def list_sessions(
        self,
        course_ids: Collection[int],
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[SessionSummary]: ...
    async def list_quiz_attempts(
        self, course_ids: Collection[int], *, limit: int
    ) -> list[QuizAttemptRecord]: ...
    async def quiz_score_rows(
        self, course_ids: Collection[int]
    ) -> list[QuizScoreRecord]: ...
    async def list_students(self, course_id: int) -> list[StudentRecord]: ...
    async def count_lessons(self, course_id: int) -> int: ...
    async def completed_lesson_counts(
        self, enrollment_ids: Collection[int]
    ) -> dict[int, int]: ...


_T = TypeVar("_T")


def _newest_first(value: datetime | None) -> tuple[bool, float]:
    # sort key: rows without a timestamp go last
    if value is None:
        return (True, 0.0)
    return (False, -as_utc(value).timestamp())


class InMemoryAnalyticsStore:
    """Dict-backed store for development and tests.

    Rows are added with add() and kept as frozen dataclasses; queries
    mirror the SQL in PgAnalyticsStore, including the soft-delete filter
    and the joins used to resolve a course.
    """

    def __init__(self) -> None:
        self._rows: dict[type, dict[int, object]] = {}

    def add(self, *rows: object) -> None:
        for row in rows:
            self._rows.setdefault(type(row), {})[row.id] = row  # type: ignore[attr-defined]

    def clear(self) -> None:
        self._rows.clear()

    # --- helpers ---

    def _active(self, model: type[_T]) -> Iterator[_T]:
        for row in self._rows.get(model, {}).values():
            if not getattr(row, "is_deleted", False):
                yield row  # type: ignore[misc]

    def _get(self, model: type[_T], row_id: int) -> _T | None:
        row = self._rows.get(model, {}).get(row_id)
        if row is None or getattr(row, "is_deleted", False):
            return None
        return row  # type: ignore[return-value]

    def _section_course(self, section_id: int) -> int | None:
        section = self._get(CourseSection, section_id)
        return section.course_id if section else None

    def _lesson_course(self, lesson_id: int) -> int | None:
        lesson = self._get(Lesson, lesson_id)
        return self._section_course(lesson.section_id) if lesson else None

    def _enrollments(
        self, course_ids: Collection[int], start: datetime | None = None,
        end: datetime | None = None,
    ) -> Iterator[Enrollment]:
        ids = set(course_ids)
        for e in self._active(Enrollment):
            if e.course_id not in ids:
                continue
            enrolled = as_utc(e.enrolled_at)
            if start is not None and enrolled < as_utc(start):
                continue
            if end is not None and enrolled > as_utc(end):
                continue
            yield e

    # --- courses ---

    async def get_course(self, course_id: int) -> Course | None:
        return self._get(Course, course_id)

    async def list_courses(self, instructor_id: int) -> list[Course]:
        owned = [c for c in self._active(Course) if c.instructor_id == instructor_id]
        return sorted(owned, key=lambda c: _newest_first(c.created_at))

    # --- enrollments and reviews ---

    async def count_enrollments(
        self,
        course_ids: Collection[int],
        *,
        completed_only: bool = False,
        accessed_since: datetime | None = None,
    ) -> int:
        count = 0
        for e in self._enrollments(course_ids):
            if completed_only and e.completed_at is None:
                continue
            if accessed_since is not None and (
                e.last_accessed_at is None
                or as_utc(e.last_accessed_at) < as_utc(accessed_since)
            ):
                continue
            count += 1
        return count

    async def engagement_counts(
        self, course_ids: Collection[int], since: datetime
    ) -> tuple[int, int]:
        enrollments = list(self._enrollments(course_ids))
        active = sum(
            1
            for e in enrollments
            if e.last_accessed_at is not None
            and as_utc(e.last_accessed_at) >= as_utc(since)
        )
        return len(enrollments), active

    async def sum_amount_paid(self, course_ids: Collection[int]) -> RawNumber:
        paid = [
            Decimal(e.amount_paid)
            for e in self._enrollments(course_ids)
            if e.amount_paid is not None
        ]
        if not paid:
            return None
        return str(sum(paid, Decimal(0)))

    async def average_rating(self, course_ids: Collection[int]) -> RawNumber:
        ids = set(course_ids)
        ratings = [r.rating for r in self._active(CourseReview) if r.course_id in ids]
        if not ratings:
            return None
        return fsum(ratings) / len(ratings)

    async def enrollment_buckets(
        self,
        course_ids: Collection[int],
        *,
        start: datetime,
        end: datetime | None = None,
    ) -> list[tuple[datetime, int]]:
        counts: dict[datetime, int] = defaultdict(int)
        for e in self._enrollments(course_ids, start, end):
            counts[month_start(e.enrolled_at)] += 1
        return sorted(counts.items())

    async def revenue_buckets(
        self,
        course_ids: Collection[int],
        *,
        start: datetime,
        end: datetime | None = None,
    ) -> list[tuple[datetime, RawNumber]]:
        totals: dict[datetime, Decimal | None] = {}
        for e in self._enrollments(course_ids, start, end):
            bucket = month_start(e.enrolled_at)
            current = totals.get(bucket)
            if e.amount_paid is None:
                totals.setdefault(bucket, None)
            else:
                totals[bucket] = (current or Decimal(0)) + Decimal(e.amount_paid)
        return [
            (bucket, None if total is None else str(total))
            for bucket, total in sorted(totals.items())
        ]

    async def rating_counts(self, course_ids: Collection[int]) -> list[tuple[int, int]]:
        ids = set(course_ids)
        counts: dict[int, int] = defaultdict(int)
        for r in self._active(CourseReview):
            if r.course_id in ids:
                counts[r.rating] += 1
        return sorted(counts.items())

    # --- grading ---

    def _pending(
        self, course_ids: Collection[int]
    ) -> Iterator[tuple[AssignmentSubmission, Assignment, int]]:
        ids = set(course_ids)
        for s in self._active(AssignmentSubmission):
            if s.graded_at is not None:
                continue
            assignment = self._get(Assignment, s.assignment_id)
            if assignment is None:
                continue
            course_id = self._section_course(assignment.section_id)
            if course_id in ids:
                yield s, assignment, course_id  # type: ignore[misc]

    async def count_pending_submissions(self, course_ids: Collection[int]) -> int:
        return sum(1 for _ in self._pending(course_ids))

    async def list_pending_submissions(
        self, course_ids: Collection[int], *, limit: int
    ) -> list[PendingSubmission]:
        rows = sorted(
            self._pending(course_ids), key=lambda r: _newest_first(r[0].submitted_at)
        )
        return [
            PendingSubmission(
                id=s.id,
                assignment_id=a.id,
                assignment_title=a.title,
                course_id=course_id,
                user_id=s.user_id,
                submitted_at=s.submitted_at,
            )
            for s, a, course_id in rows[:limit]
        ]

    # --- live sessions ---

    async def list_sessions(
        self,
        course_ids: Collection[int],
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[SessionSummary]:
        ids = set(course_ids)
        found: list[SessionSummary] = []
        for s in self._active(LessonSession):
            begins = as_utc(s.start_time)
            if start is not None and begins < as_utc(start):
                continue
            if end is not None and begins > as_utc(end):
                continue
            lesson = self._get(Lesson, s.lesson_id)
            course_id = self._lesson_course(s.lesson_id)
            if lesson is None or course_id not in ids:
                continue
            course = self._get(Course, course_id)  # type: ignore[arg-type]
            if course is None:
                continue
            found.append(
                SessionSummary(
                    id=s.id,
                    title=s.title,
                    start_time=s.start_time,
                    end_time=s.end_time,
                    lesson_id=lesson.id,
                    lesson_title=lesson.title,
                    course_id=course.id,
                    course_title=course.title,
                    timezone=s.timezone,
                    meeting_url=s.meeting_url,
                    attendance_count=s.attendance_count,
                    max_attendees=s.max_attendees,
                )
            )
        found.sort(key=lambda s: as_utc(s.start_time))
        return found if limit is None else found[:limit]

    # --- quizzes ---

    def _attempts(
        self, course_ids: Collection[int]
    ) -> Iterator[tuple[QuizAttempt, Quiz, int]]:
        ids = set(course_ids)
        for attempt in self._active(QuizAttempt):
            quiz = self._get(Quiz, attempt.quiz_id)
            if quiz is None:
                continue
            course_id = self._section_course(quiz.section_id)
            if course_id in ids:
                yield attempt, quiz, course_id  # type: ignore[misc]

    async def list_quiz_attempts(
        self, course_ids: Collection[int], *, limit: int
    ) -> list[QuizAttemptRecord]:
        rows = sorted(
            self._attempts(course_ids), key=lambda r: _newest_first(r[0].completed_at)
        )
        return [
            QuizAttemptRecord(
                id=a.id,
                quiz_id=q.id,
                quiz_title=q.title,
                course_id=course_id,
                user_id=a.user_id,
                attempt_number=a.attempt_number,
                score=a.score,
                max_score=a.max_score,
                is_passed=a.is_passed,
                completed_at=a.completed_at,
            )
            for a, q, course_id in rows[:limit]
        ]

    async def quiz_score_rows(self, course_ids: Collection[int]) -> list[QuizScoreRecord]:
        grouped: dict[int, list[QuizAttempt]] = defaultdict(list)
        quizzes: dict[int, Quiz] = {}
        for attempt, quiz, _course_id in self._attempts(course_ids):
            grouped[quiz.id].append(attempt)
            quizzes[quiz.id] = quiz

        rows = []
        for quiz_id in sorted(grouped):
            attempts = grouped[quiz_id]
            scores = [Decimal(a.score) for a in attempts if a.score is not None]
            rows.append(
                QuizScoreRecord(
                    quiz_id=quiz_id,
                    quiz_title=quizzes[quiz_id].title,
                    attempt_count=len(attempts),
                    passed_count=sum(1 for a in attempts if a.is_passed),
                    average_score=(
                        str(sum(scores, Decimal(0)) / len(scores)) if scores else None
                    ),
                )
            )
        return rows

    # --- students ---

    async def list_students(self, course_id: int) -> list[StudentRecord]:
        rows = []
        for e in self._active(Enrollment):
            if e.course_id != course_id:
                continue
            # mirrors the inner join on users in PgAnalyticsStore.list_students
            user = self._get(User, e.user_id)
            if user is None:
                continue
            rows.append(
                StudentRecord(
                    user_id=user.id,
                    username=user.username,
                    email=user.email,
                    enrollment_id=e.id,
                    enrolled_at=e.enrolled_at,
                    progress_percentage=e.progress_percentage,
                    last_accessed_at=e.last_accessed_at,
                )
            )
        return sorted(rows, key=lambda r: _newest_first(r.enrolled_at))

    async def count_lessons(self, course_id: int) -> int:
        return sum(
            1
            for lesson in self._active(Lesson)
            if self._section_course(lesson.section_id) == course_id
        )

    async def completed_lesson_counts(
        self, enrollment_ids: Collection[int]
    ) -> dict[int, int]:
        ids = set(enrollment_ids)
        counts: dict[int, int] = defaultdict(int)
        for p in self._active(LessonProgress):
            if p.is_completed and p.enrollment_id in ids:
                counts[p.enrollment_id] += 1
        return dict(counts)
