"""Prometheus scrape endpoint.

Returns the text exposition format (not JSON).  Report timings appear as
analytics_report_duration_seconds{report="dashboard",outcome="ok"} and friends.
Restrict /metrics to the Prometheus server at the network layer.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
