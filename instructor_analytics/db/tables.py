"""SQLAlchemy table definitions for the LMS tables this service reads.

The schema is owned and migrated by the LMS backend; these mappings only
declare the columns the analytics queries touch.  Column names follow
the existing database, including its camelCase soft-delete and user
columns ("isDeleted", "userId", "createdAt").
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from instructor_analytics.db.engine import Base


class SoftDeleteMixin:
    is_deleted: Mapped[bool] = mapped_column(
        "isDeleted", Boolean, nullable=False, default=False
    )


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)


# --- Catalogue ---


class CourseRow(SoftDeleteMixin, Base):
    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    instructor_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False
    )
    title: Mapped[str] = mapped_column("title_en", String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    thumbnail_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    view_count: Mapped[int | None] = mapped_column(Integer, nullable=True, default=0)
    created_at: Mapped[datetime] = mapped_column(
        "createdAt", DateTime(timezone=True), nullable=False
    )


class CourseSectionRow(SoftDeleteMixin, Base):
    __tablename__ = "course_sections"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    course_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("courses.id"), nullable=False
    )
    title: Mapped[str] = mapped_column("title_en", String(255), nullable=False)


class LessonRow(SoftDeleteMixin, Base):
    __tablename__ = "lessons"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    section_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("course_sections.id"), nullable=False
    )
    title: Mapped[str] = mapped_column("title_en", String(255), nullable=False)


class LessonSessionRow(SoftDeleteMixin, Base):
    __tablename__ = "lesson_sessions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    lesson_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("lessons.id"), nullable=False
    )
    title: Mapped[str] = mapped_column("title_en", String(255), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    timezone: Mapped[str | None] = mapped_column(String(100), nullable=True)
    meeting_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    max_attendees: Mapped[int | None] = mapped_column(Integer, nullable=True)
    attendance_count: Mapped[int | None] = mapped_column(Integer, nullable=True)


# --- Enrollment and feedback ---


class EnrollmentRow(SoftDeleteMixin, Base):
    __tablename__ = "enrollments"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        "userId", BigInteger, ForeignKey("users.id"), nullable=False
    )
    course_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("courses.id"), nullable=False
    )
    amount_paid: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    enrolled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    progress_percentage: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 2), nullable=True
    )
    last_accessed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class LessonProgressRow(SoftDeleteMixin, Base):
    __tablename__ = "lesson_progress"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    enrollment_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("enrollments.id"), nullable=False
    )
    lesson_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("lessons.id"), nullable=False
    )
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class CourseReviewRow(SoftDeleteMixin, Base):
    __tablename__ = "course_reviews"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    course_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("courses.id"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        "userId", BigInteger, ForeignKey("users.id"), nullable=False
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)


# --- Assessments ---


class AssignmentRow(SoftDeleteMixin, Base):
    __tablename__ = "assignments"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    section_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("course_sections.id"), nullable=False
    )
    title: Mapped[str] = mapped_column("title_en", String(255), nullable=False)
    max_points: Mapped[int | None] = mapped_column(Integer, nullable=True)


class AssignmentSubmissionRow(SoftDeleteMixin, Base):
    __tablename__ = "assignment_submissions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    assignment_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("assignments.id"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        "userId", BigInteger, ForeignKey("users.id"), nullable=False
    )
    score: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    max_points: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    graded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    graded_by: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=True
    )


class QuizRow(SoftDeleteMixin, Base):
    __tablename__ = "quizzes"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    section_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("course_sections.id"), nullable=False
    )
    title: Mapped[str] = mapped_column("title_en", String(255), nullable=False)
    passing_score: Mapped[int | None] = mapped_column(Integer, nullable=True)


class QuizAttemptRow(SoftDeleteMixin, Base):
    __tablename__ = "quiz_attempts"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    quiz_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("quizzes.id"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        "userId", BigInteger, ForeignKey("users.id"), nullable=False
    )
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
    score: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    max_score: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    is_passed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
