from unittest.mock import MagicMock

import pytest
from flask import Blueprint, g, jsonify, request

from models.usage_limit import UsageLimit
from security.quota_guard import enforce_usage_limit
from security.usage_limit import UsageLimiter


@pytest.fixture()
def client(app):
    bp = Blueprint("lessons", __name__)

    @bp.before_request
    def load_user():
        # stands in for the JWT layer
        user_id = request.headers.get("X-User-Id")
        if user_id:
            g.user = {"id": user_id, "role": request.headers.get("X-User-Role", "student")}

    @bp.post("/lesson-plans")
    @enforce_usage_limit("lesson_plan")
    def create_lesson_plan():
        if request.args.get("fail"):
            return jsonify(error="generator unavailable"), 502
        return jsonify(ok=True), 201

    app.register_blueprint(bp)
    return app.test_client()


def _post(client, user_id="u1", role="teacher", **query):
    return client.post(
        "/lesson-plans",
        query_string=query,
        headers={"X-User-Id": user_id, "X-User-Role": role},
    )


def test_requests_within_quota_are_counted(client, limiter):
    for _ in range(3):
        assert _post(client).status_code == 201

    assert limiter.check_limit({"id": "u1", "role": "teacher"}, "lesson_plan").current_usage == 3


def test_quota_exhausted_returns_429_with_limit_info(client):
    for _ in range(3):
        _post(client)

    resp = _post(client)
    assert resp.status_code == 429
    body = resp.get_json()
    assert body["code"] == "USAGE_LIMIT_REACHED"
    assert body["limitInfo"]["currentUsage"] == 3
    assert body["limitInfo"]["limit"] == 3
    assert body["limitInfo"]["remaining"] == 0
    assert body["limitInfo"]["allowed"] is False

    # refused calls are not counted
    assert UsageLimit.query.one().usage_count == 3


def test_failed_view_is_not_counted(client):
    assert _post(client, fail="1").status_code == 502
    assert UsageLimit.query.count() == 0
    assert _post(client).status_code == 201
    assert UsageLimit.query.one().usage_count == 1


def test_missing_user_is_rejected(client):
    resp = client.post("/lesson-plans")
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "AUTH_REQUIRED"


def test_quota_is_per_user(client):
    for _ in range(3):
        _post(client, user_id="u1")
    assert _post(client, user_id="u1").status_code == 429
    assert _post(client, user_id="u2").status_code == 201


@pytest.mark.parametrize("role", ["admin", "service"])
def test_exempt_roles_pass_through(client, role):
    for _ in range(6):
        assert _post(client, user_id="staff", role=role).status_code == 201
    assert UsageLimit.query.count() == 0


def test_recording_failure_does_not_fail_the_view(app, client):
    session = MagicMock()
    session.get_bind.return_value.dialect.name = "mysql"
    session.execute.return_value.scalar_one_or_none.return_value = 0
    app.extensions["usage_limiter"] = UsageLimiter(session, limits={"lesson_plan": 3})

    resp = _post(client)
    assert resp.status_code == 201
    assert resp.get_json() == {"ok": True}
