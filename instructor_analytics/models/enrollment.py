from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Enrollment:
    id: int
    user_id: int
    course_id: int
    enrolled_at: datetime
    amount_paid: str | None = None  # decimal as the store reports it
    completed_at: datetime | None = None
    last_accessed_at: datetime | None = None
    progress_percentage: str = "0"
    is_deleted: bool = False


@dataclass(frozen=True, slots=True)
class CourseReview:
    id: int
    course_id: int
    user_id: int
    rating: int  # 1..5
    is_deleted: bool = False
