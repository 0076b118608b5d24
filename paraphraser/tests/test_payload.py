"""Tests for the usage payload builder."""

import pydantic
import pytest
from starlette.responses import JSONResponse, Response

from paraphraser.core.auth import UserIdentity
from paraphraser.features.analytics import logbuffer
from paraphraser.features.analytics.payload import build_usage_payload, now_ms
from paraphraser.tests.mocks import make_request


def test_client_ip_prefers_forwarded_for():
    request = make_request([("x-forwarded-for", "203.0.113.7"), ("x-real-ip", "10.0.0.1")])
    payload = build_usage_payload(request, JSONResponse({}), now_ms())
    assert payload.request.ip == "203.0.113.7"


def test_client_ip_falls_back_to_real_ip_then_unknown():
    real = build_usage_payload(make_request([("x-real-ip", "10.0.0.1")]), JSONResponse({}), now_ms())
    assert real.request.ip == "10.0.0.1"

    unknown = build_usage_payload(make_request(), JSONResponse({}), now_ms())
    assert unknown.request.ip == "unknown"


def test_anonymous_defaults_when_identity_missing():
    payload = build_usage_payload(make_request(), JSONResponse({}), now_ms())

    assert payload.user_id == "anonymous"
    assert payload.user_agent == "unknown"
    details = payload.user_details
    assert details.id == "anonymous"
    assert details.email == "unknown@example.com"
    assert details.name == "Anonymous User"
    assert details.role == "user"
    assert details.subscription.plan == "free"
    assert details.subscription.expires_at is None
    assert details.permissions == []


@pytest.mark.parametrize(
    "identity, expected",
    [
        (UserIdentity(id="user_1", full_name="Ada Lovelace"), "Ada Lovelace"),
        (UserIdentity(id="user_1", first_name="Ada", last_name="Lovelace"), "Ada Lovelace"),
        (UserIdentity(id="user_1", first_name="Ada"), "Ada"),
        (UserIdentity(id="user_1"), "Anonymous User"),
    ],
)
def test_user_name_derivation(identity, expected):
    payload = build_usage_payload(make_request(), JSONResponse({}), now_ms(), user=identity)
    assert payload.user_id == "user_1"
    assert payload.user_details.name == expected


def test_request_and_response_snapshots():
    request = make_request(
        [("user-agent", "pytest"), ("accept", "text/plain"), ("accept", "application/json"), ("cookie", "theme=dark")],
        query=b"draft=1",
    )
    response = Response("ok", status_code=201, media_type="text/plain")
    response.set_cookie("seen", "yes")

    payload = build_usage_payload(request, response, now_ms() - 25, {"text": "hi"}, {"message": "Non-JSON response"})

    assert payload.method == "POST"
    assert payload.url == "http://testserver/api/paraphrase?draft=1"
    assert payload.status == 201
    assert payload.duration_ms >= 25
    assert payload.product == "tabs-editor-tool"
    assert payload.user_agent == "pytest"
    assert payload.request.headers["accept"] == "text/plain, application/json"
    assert payload.request.query == {"draft": "1"}
    assert payload.request.cookies == {"theme": "dark"}
    assert payload.request.body == {"text": "hi"}
    assert payload.response.headers["content-type"].startswith("text/plain")
    assert payload.response.cookies == {"seen": "yes"}
    assert payload.response.body == {"message": "Non-JSON response"}


def test_payload_ids_are_unique():
    request = make_request()
    ids = {build_usage_payload(request, JSONResponse({}), now_ms()).id for _ in range(20)}
    assert len(ids) == 20
    assert all(i.startswith("req_") for i in ids)


def test_builder_drains_current_log_buffer():
    logbuffer.log_info("paraphrase.request", {"tone": "formal"})

    payload = build_usage_payload(make_request(), JSONResponse({}), now_ms())

    assert [e.message for e in payload.server_logs] == ["paraphrase.request"]
    assert logbuffer.drain_logs() == []


def test_explicit_logs_leave_buffer_alone():
    logbuffer.log_info("kept")
    payload = build_usage_payload(make_request(), JSONResponse({}), now_ms(), logs=[])
    assert payload.server_logs == []
    assert [e.message for e in logbuffer.drain_logs()] == ["kept"]


def test_wire_format_uses_camel_case():
    wire = build_usage_payload(make_request(), JSONResponse({}), now_ms()).to_wire()

    for key in ("id", "createdAt", "durationMs", "userAgent", "userId", "serverLogs", "userDetails"):
        assert key in wire
    assert "lastLogin" in wire["userDetails"]
    assert "expiresAt" in wire["userDetails"]["subscription"]
    assert wire["userDetails"]["preferences"]["notifications"] == {"email": False, "push": False, "sms": False}


def test_inputs_are_not_mutated_and_payload_is_frozen():
    request = make_request([("x-real-ip", "10.0.0.1")])
    response = JSONResponse({"result": "x"})
    before = list(response.raw_headers)
    body = {"text": "hello"}

    payload = build_usage_payload(request, response, now_ms(), body, {"result": "x"})

    assert response.raw_headers == before
    assert body == {"text": "hello"}
    with pytest.raises(pydantic.ValidationError):
        payload.status = 500
