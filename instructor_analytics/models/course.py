from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Course:
    id: int
    instructor_id: int
    title: str
    slug: str
    thumbnail_url: str | None = None
    price: str | None = None  # decimal as the store reports it
    is_featured: bool = False
    view_count: int = 0
    created_at: datetime | None = None
    is_deleted: bool = False


@dataclass(frozen=True, slots=True)
class CourseSection:
    id: int
    course_id: int
    title: str
    is_deleted: bool = False


@dataclass(frozen=True, slots=True)
class Lesson:
    id: int
    section_id: int
    title: str
    is_deleted: bool = False


@dataclass(frozen=True, slots=True)
class LessonSession:
    """A scheduled live meeting for a lesson."""

    id: int
    lesson_id: int
    title: str
    start_time: datetime
    end_time: datetime
    timezone: str = "UTC"
    meeting_url: str | None = None
    max_attendees: int | None = None
    attendance_count: int = 0
    is_deleted: bool = False


@dataclass(frozen=True, slots=True)
class LessonProgress:
    id: int
    enrollment_id: int
    lesson_id: int
    is_completed: bool = False
    is_deleted: bool = False
