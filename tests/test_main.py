from __future__ import annotations

from fastapi.testclient import TestClient

from instructor_analytics.main import app


def test_app_title() -> None:
    assert app.title == "instructor-analytics"


def test_openapi_lists_instructor_routes(client: TestClient) -> None:
    paths = client.get("/openapi.json").json()["paths"]
    for path in (
        "/v1/instructor/dashboard",
        "/v1/instructor/courses",
        "/v1/instructor/courses/top",
        "/v1/instructor/courses/{course_id}/students",
        "/v1/instructor/courses/{course_id}/analytics",
        "/v1/instructor/sessions/upcoming",
        "/v1/instructor/sessions/calendar",
        "/v1/instructor/assignments/pending",
        "/v1/instructor/quizzes/attempts",
    ):
        assert path in paths
        assert list(paths[path]) == ["get"]


def test_instructor_routes_are_read_only(client: TestClient, auth_headers: dict[str, str]) -> None:
    resp = client.post("/v1/instructor/dashboard", headers=auth_headers)
    assert resp.status_code == 405


def test_unknown_path_is_404(client: TestClient) -> None:
    assert client.get("/auth/token").status_code == 404
