from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Assignment:
    id: int
    section_id: int
    title: str
    max_points: int = 100
    is_deleted: bool = False


@dataclass(frozen=True, slots=True)
class AssignmentSubmission:
    """A learner's submission.  Pending until graded_at is set."""

    id: int
    assignment_id: int
    user_id: int
    submitted_at: datetime | None = None
    score: str | None = None
    max_points: str | None = None
    feedback: str | None = None
    graded_by: int | None = None
    graded_at: datetime | None = None
    is_deleted: bool = False


@dataclass(frozen=True, slots=True)
class Quiz:
    id: int
    section_id: int
    title: str
    passing_score: int = 60
    is_deleted: bool = False


@dataclass(frozen=True, slots=True)
class QuizAttempt:
    id: int
    quiz_id: int
    user_id: int
    attempt_number: int = 1
    score: str | None = None
    max_score: str | None = None
    is_passed: bool = False
    started_at: datetime | None = None
    completed_at: datetime | None = None
    is_deleted: bool = False
