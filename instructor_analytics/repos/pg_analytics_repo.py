"""PostgreSQL implementation of AnalyticsStore."""

from __future__ import annotations

import logging
from collections.abc import Collection
from datetime import datetime
from typing import Any

from sqlalchemy import Select, and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from instructor_analytics.core.clock import as_utc
from instructor_analytics.core.metrics import STORAGE_ERRORS
from instructor_analytics.db.tables import (
    AssignmentRow,
    AssignmentSubmissionRow,
    CourseReviewRow,
    CourseRow,
    CourseSectionRow,
    EnrollmentRow,
    LessonProgressRow,
    LessonRow,
    LessonSessionRow,
    QuizAttemptRow,
    QuizRow,
    UserRow,
)
from instructor_analytics.models.analytics import PendingSubmission, SessionSummary
from instructor_analytics.models.course import Course
from instructor_analytics.repos.analytics_repo import (
    QuizAttemptRecord,
    QuizScoreRecord,
    RawNumber,
    StudentRecord,
)
from instructor_analytics.services.errors import StorageError

logger = logging.getLogger(__name__)


def _active(table: Any):
    return table.is_deleted.is_(False)


def _month(column: Any):
    # bucket on the UTC calendar month regardless of the session time zone
    return func.date_trunc("month", func.timezone("UTC", column))


class PgAnalyticsStore:
    """Satisfies the AnalyticsStore Protocol using PostgreSQL via SQLAlchemy.

    Each query runs in its own short-lived session so the service can run
    sibling aggregates concurrently.  Any SQLAlchemy failure is logged,
    counted, and re-raised as StorageError naming the operation.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _execute(self, operation: str, stmt: Select):
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.all()
        except SQLAlchemyError as exc:
            logger.exception("Store query failed", extra={"operation": operation})
            STORAGE_ERRORS.labels(operation=operation).inc()
            raise StorageError(operation) from exc

    async def _scalar(self, operation: str, stmt: Select):
        rows = await self._execute(operation, stmt)
        return rows[0][0] if rows else None

    # --- courses ---

    async def get_course(self, course_id: int) -> Course | None:
        stmt = select(CourseRow).where(CourseRow.id == course_id, _active(CourseRow))
        rows = await self._execute("get_course", stmt)
        if not rows:
            return None
        return _row_to_course(rows[0][0])

    async def list_courses(self, instructor_id: int) -> list[Course]:
        stmt = (
            select(CourseRow)
            .where(CourseRow.instructor_id == instructor_id, _active(CourseRow))
            .order_by(CourseRow.created_at.desc().nulls_last(), CourseRow.id.desc())
        )
        rows = await self._execute("list_courses", stmt)
        return [_row_to_course(r[0]) for r in rows]

    # --- enrollments and reviews ---

    async def count_enrollments(
        self,
        course_ids: Collection[int],
        *,
        completed_only: bool = False,
        accessed_since: datetime | None = None,
    ) -> int:
        conditions = [EnrollmentRow.course_id.in_(course_ids), _active(EnrollmentRow)]
        if completed_only:
            conditions.append(EnrollmentRow.completed_at.is_not(None))
        if accessed_since is not None:
            conditions.append(EnrollmentRow.last_accessed_at >= as_utc(accessed_since))
        stmt = select(func.count(EnrollmentRow.id)).where(*conditions)
        return int(await self._scalar("count_enrollments", stmt) or 0)

    async def engagement_counts(
        self, course_ids: Collection[int], since: datetime
    ) -> tuple[int, int]:
        # total and active come from one snapshot
        active = func.count(EnrollmentRow.id).filter(
            EnrollmentRow.last_accessed_at >= as_utc(since)
        )
        stmt = select(func.count(EnrollmentRow.id), active).where(
            EnrollmentRow.course_id.in_(course_ids), _active(EnrollmentRow)
        )
        rows = await self._execute("engagement_counts", stmt)
        if not rows:
            return 0, 0
        total, n_active = rows[0]
        return int(total or 0), int(n_active or 0)

    async def sum_amount_paid(self, course_ids: Collection[int]) -> RawNumber:
        stmt = select(func.sum(EnrollmentRow.amount_paid)).where(
            EnrollmentRow.course_id.in_(course_ids), _active(EnrollmentRow)
        )
        return await self._scalar("sum_amount_paid", stmt)

    async def average_rating(self, course_ids: Collection[int]) -> RawNumber:
        stmt = select(func.avg(CourseReviewRow.rating)).where(
            CourseReviewRow.course_id.in_(course_ids), _active(CourseReviewRow)
        )
        return await self._scalar("average_rating", stmt)

    def _enrollment_window(
        self, course_ids: Collection[int], start: datetime, end: datetime | None
    ) -> list:
        conditions = [
            EnrollmentRow.course_id.in_(course_ids),
            _active(EnrollmentRow),
            EnrollmentRow.enrolled_at >= as_utc(start),
        ]
        if end is not None:
            conditions.append(EnrollmentRow.enrolled_at <= as_utc(end))
        return conditions

    async def enrollment_buckets(
        self,
        course_ids: Collection[int],
        *,
        start: datetime,
        end: datetime | None = None,
    ) -> list[tuple[datetime, int]]:
        bucket = _month(EnrollmentRow.enrolled_at)
        stmt = (
            select(bucket, func.count(EnrollmentRow.id))
            .where(*self._enrollment_window(course_ids, start, end))
            .group_by(bucket)
            .order_by(bucket)
        )
        rows = await self._execute("enrollment_buckets", stmt)
        return [(as_utc(b), int(n)) for b, n in rows]

    async def revenue_buckets(
        self,
        course_ids: Collection[int],
        *,
        start: datetime,
        end: datetime | None = None,
    ) -> list[tuple[datetime, RawNumber]]:
        bucket = _month(EnrollmentRow.enrolled_at)
        stmt = (
            select(bucket, func.sum(EnrollmentRow.amount_paid))
            .where(*self._enrollment_window(course_ids, start, end))
            .group_by(bucket)
            .order_by(bucket)
        )
        rows = await self._execute("revenue_buckets", stmt)
        return [(as_utc(b), total) for b, total in rows]

    async def rating_counts(self, course_ids: Collection[int]) -> list[tuple[int, int]]:
        stmt = (
            select(CourseReviewRow.rating, func.count(CourseReviewRow.id))
            .where(CourseReviewRow.course_id.in_(course_ids), _active(CourseReviewRow))
            .group_by(CourseReviewRow.rating)
            .order_by(CourseReviewRow.rating)
        )
        rows = await self._execute("rating_counts", stmt)
        return [(int(rating), int(n)) for rating, n in rows]

    # --- grading ---

    def _pending_query(self, course_ids: Collection[int], *columns: Any) -> Select:
        return (
            select(*columns)
            .select_from(AssignmentSubmissionRow)
            .join(AssignmentRow, AssignmentRow.id == AssignmentSubmissionRow.assignment_id)
            .join(CourseSectionRow, CourseSectionRow.id == AssignmentRow.section_id)
            .where(
                CourseSectionRow.course_id.in_(course_ids),
                AssignmentSubmissionRow.graded_at.is_(None),
                _active(AssignmentSubmissionRow),
                _active(AssignmentRow),
                _active(CourseSectionRow),
            )
        )

    async def count_pending_submissions(self, course_ids: Collection[int]) -> int:
        stmt = self._pending_query(course_ids, func.count(AssignmentSubmissionRow.id))
        return int(await self._scalar("count_pending_submissions", stmt) or 0)

    async def list_pending_submissions(
        self, course_ids: Collection[int], *, limit: int
    ) -> list[PendingSubmission]:
        stmt = (
            self._pending_query(
                course_ids,
                AssignmentSubmissionRow.id,
                AssignmentRow.id,
                AssignmentRow.title,
                CourseSectionRow.course_id,
                AssignmentSubmissionRow.user_id,
                AssignmentSubmissionRow.submitted_at,
            )
            .order_by(AssignmentSubmissionRow.submitted_at.desc().nulls_last())
            .limit(limit)
        )
        rows = await self._execute("list_pending_submissions", stmt)
        return [
            PendingSubmission(
                id=sid,
                assignment_id=aid,
                assignment_title=title,
                course_id=course_id,
                user_id=user_id,
                submitted_at=submitted_at,
            )
            for sid, aid, title, course_id, user_id, submitted_at in rows
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
        conditions = [
            CourseRow.id.in_(course_ids),
            _active(LessonSessionRow),
            _active(LessonRow),
            _active(CourseSectionRow),
            _active(CourseRow),
        ]
        if start is not None:
            conditions.append(LessonSessionRow.start_time >= as_utc(start))
        if end is not None:
            conditions.append(LessonSessionRow.start_time <= as_utc(end))
        stmt = (
            select(LessonSessionRow, LessonRow.title, CourseRow.id, CourseRow.title)
            .select_from(LessonSessionRow)
            .join(LessonRow, LessonRow.id == LessonSessionRow.lesson_id)
            .join(CourseSectionRow, CourseSectionRow.id == LessonRow.section_id)
            .join(CourseRow, CourseRow.id == CourseSectionRow.course_id)
            .where(*conditions)
            .order_by(LessonSessionRow.start_time)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = await self._execute("list_sessions", stmt)
        return [
            _row_to_session(row, lesson_title, course_id, course_title)
            for row, lesson_title, course_id, course_title in rows
        ]

    # --- quizzes ---

    def _attempt_scope(self, course_ids: Collection[int]) -> list:
        return [
            CourseSectionRow.course_id.in_(course_ids),
            _active(QuizAttemptRow),
            _active(QuizRow),
            _active(CourseSectionRow),
        ]

    async def list_quiz_attempts(
        self, course_ids: Collection[int], *, limit: int
    ) -> list[QuizAttemptRecord]:
        stmt = (
            select(QuizAttemptRow, QuizRow.title, CourseSectionRow.course_id)
            .select_from(QuizAttemptRow)
            .join(QuizRow, QuizRow.id == QuizAttemptRow.quiz_id)
            .join(CourseSectionRow, CourseSectionRow.id == QuizRow.section_id)
            .where(*self._attempt_scope(course_ids))
            .order_by(QuizAttemptRow.completed_at.desc().nulls_last())
            .limit(limit)
        )
        rows = await self._execute("list_quiz_attempts", stmt)
        return [
            QuizAttemptRecord(
                id=a.id,
                quiz_id=a.quiz_id,
                quiz_title=title,
                course_id=course_id,
                user_id=a.user_id,
                attempt_number=a.attempt_number,
                score=a.score,
                max_score=a.max_score,
                is_passed=a.is_passed,
                completed_at=a.completed_at,
            )
            for a, title, course_id in rows
        ]

    async def quiz_score_rows(self, course_ids: Collection[int]) -> list[QuizScoreRecord]:
        passed = func.count(QuizAttemptRow.id).filter(QuizAttemptRow.is_passed.is_(True))
        stmt = (
            select(
                QuizRow.id,
                QuizRow.title,
                func.count(QuizAttemptRow.id),
                passed,
                func.avg(QuizAttemptRow.score),
            )
            .select_from(QuizAttemptRow)
            .join(QuizRow, QuizRow.id == QuizAttemptRow.quiz_id)
            .join(CourseSectionRow, CourseSectionRow.id == QuizRow.section_id)
            .where(*self._attempt_scope(course_ids))
            .group_by(QuizRow.id, QuizRow.title)
            .order_by(QuizRow.id)
        )
        rows = await self._execute("quiz_score_rows", stmt)
        return [
            QuizScoreRecord(
                quiz_id=quiz_id,
                quiz_title=title,
                attempt_count=int(attempts),
                passed_count=int(n_passed),
                average_score=average,
            )
            for quiz_id, title, attempts, n_passed, average in rows
        ]

    # --- students ---

    async def list_students(self, course_id: int) -> list[StudentRecord]:
        stmt = (
            select(
                UserRow.id,
                UserRow.username,
                UserRow.email,
                EnrollmentRow.id,
                EnrollmentRow.enrolled_at,
                EnrollmentRow.progress_percentage,
                EnrollmentRow.last_accessed_at,
            )
            .select_from(EnrollmentRow)
            .join(UserRow, UserRow.id == EnrollmentRow.user_id)
            .where(EnrollmentRow.course_id == course_id, _active(EnrollmentRow))
            .order_by(EnrollmentRow.enrolled_at.desc())
        )
        rows = await self._execute("list_students", stmt)
        return [StudentRecord(*row) for row in rows]

    async def count_lessons(self, course_id: int) -> int:
        stmt = (
            select(func.count(LessonRow.id))
            .join(CourseSectionRow, CourseSectionRow.id == LessonRow.section_id)
            .where(
                CourseSectionRow.course_id == course_id,
                _active(LessonRow),
                _active(CourseSectionRow),
            )
        )
        return int(await self._scalar("count_lessons", stmt) or 0)

    async def completed_lesson_counts(
        self, enrollment_ids: Collection[int]
    ) -> dict[int, int]:
        stmt = (
            select(LessonProgressRow.enrollment_id, func.count(LessonProgressRow.id))
            .where(
                and_(
                    LessonProgressRow.enrollment_id.in_(enrollment_ids),
                    LessonProgressRow.is_completed.is_(True),
                    _active(LessonProgressRow),
                )
            )
            .group_by(LessonProgressRow.enrollment_id)
        )
        rows = await self._execute("completed_lesson_counts", stmt)
        return {int(eid): int(n) for eid, n in rows}


def _row_to_course(row: CourseRow) -> Course:
    return Course(
        id=row.id,
        instructor_id=row.instructor_id,
        title=row.title,
        slug=row.slug,
        thumbnail_url=row.thumbnail_url,
        price=None if row.price is None else str(row.price),
        is_featured=row.is_featured,
        view_count=row.view_count or 0,
        created_at=row.created_at,
        is_deleted=row.is_deleted,
    )


def _row_to_session(
    row: LessonSessionRow, lesson_title: str, course_id: int, course_title: str
) -> SessionSummary:
    return SessionSummary(
        id=row.id,
        title=row.title,
        start_time=row.start_time,
        end_time=row.end_time,
        lesson_id=row.lesson_id,
        lesson_title=lesson_title,
        course_id=course_id,
        course_title=course_title,
        timezone=row.timezone or "UTC",
        meeting_url=row.meeting_url,
        attendance_count=row.attendance_count or 0,
        max_attendees=row.max_attendees,
    )
