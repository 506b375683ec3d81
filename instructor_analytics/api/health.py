"""Health and readiness endpoints.

  /health (liveness): is the process alive?  Always 200; the body
    reports per-dependency status so a degraded database shows up
    without triggering a container restart.

  /ready (readiness): can this instance serve reports right now?  503
    when a database is configured but unreachable, so the load balancer
    stops routing here until it recovers.  Without DATABASE_URL the
    in-memory store is always ready.
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from instructor_analytics.db.engine import ping_database

router = APIRouter(tags=["health"])


def _database_check(result: bool | None) -> str:
    if result is None:
        return "not_configured"
    return "ok" if result else "degraded"


@router.get("/health")
async def health() -> dict:
    database = _database_check(await ping_database())
    return {
        "status": "degraded" if database == "degraded" else "ok",
        "checks": {"database": database},
    }


@router.get("/ready")
async def ready() -> Response:
    if await ping_database() is False:
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
