"""Ownership checks: which courses an instructor may report on."""

from __future__ import annotations

import logging

from instructor_analytics.repos.analytics_repo import AnalyticsStore
from instructor_analytics.services.errors import ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)


async def assert_ownership(store: AnalyticsStore, actor_id: int, course_id: int) -> None:
    """Raise unless `course_id` is an active course taught by `actor_id`."""
    course = await store.get_course(course_id)
    if course is None:
        raise NotFoundError(f"course {course_id} not found")
    if course.instructor_id != actor_id:
        logger.warning(
            "Denied course access actor_id=%d course_id=%d",
            actor_id,
            course_id,
            extra={"actor_id": actor_id, "course_id": course_id},
        )
        raise ForbiddenError(f"course {course_id} is not owned by {actor_id}")


async def get_owned_course_ids(store: AnalyticsStore, actor_id: int) -> frozenset[int]:
    courses = await store.list_courses(actor_id)
    return frozenset(c.id for c in courses)
