import inspect
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from theunoia.functions.email_verification import CORS_HEADERS, create_app

from conftest import FakeClient, api_error

NOW = datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)
AUTH = {"Authorization": "Bearer user-jwt"}


class FakeAuth:
    def __init__(self, user_id="u1"):
        self.user_id = user_id
        self.tokens = []

    def get_user(self, token):
        self.tokens.append(token)
        if self.user_id is None:
            raise RuntimeError("invalid JWT")
        return SimpleNamespace(user=SimpleNamespace(id=self.user_id))


class FakeMailer:
    def __init__(self):
        self.sent = []

    def send(self, to, subject, html):
        self.sent.append((to, subject, html))
        return {"id": "email-1"}


@pytest.fixture
def backend():
    client = FakeClient()
    client.auth = FakeAuth()
    return client


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def http(backend, mailer):
    app = create_app(
        client_factory=lambda header: backend,
        mailer=mailer,
        clock=lambda: NOW,
        code_factory=lambda: "482913",
    )
    return TestClient(app)


def test_preflight_returns_cors_headers(http):
    response = http.options("/send-email-verification")
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == CORS_HEADERS["Access-Control-Allow-Origin"]


def test_send_requires_authorization(http):
    response = http.post("/send-email-verification", json={"email": "a@mit.edu"})
    assert response.status_code == 401
    assert response.json() == {"error": "Missing authorization header"}


def test_send_rejects_unknown_user(http, backend):
    backend.auth.user_id = None
    response = http.post("/send-email-verification", json={"email": "a@mit.edu"}, headers=AUTH)
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


@pytest.mark.parametrize(
    "body, message",
    [
        ({}, "Email is required"),
        ({"email": "ana@gmail.com"}, "Only educational emails (.edu or .ac domain) are allowed"),
    ],
)
def test_send_validates_email(http, body, message):
    response = http.post("/send-email-verification", json=body, headers=AUTH)
    assert response.status_code == 400
    assert response.json()["error"] == message


def test_send_stores_code_and_mails_it(http, backend, mailer):
    response = http.post("/send-email-verification", json={"email": " Ana@IITB.ac.in "}, headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Verification code sent"}
    assert backend.auth.tokens == ["user-jwt"]
    stored = backend.calls_to("email_verification_codes", "insert")[0].payload()
    assert stored["email"] == "ana@iitb.ac.in"
    assert stored["code"] == "482913"
    assert stored["expires_at"] == (NOW + timedelta(minutes=10)).isoformat()
    to, subject, html = mailer.sent[0]
    assert to == "ana@iitb.ac.in"
    assert "482913" in html and "10 minutes" in html


def test_send_rate_limited_after_three_codes(http, backend, mailer):
    backend.queue("email_verification_codes", [{"id": 1}, {"id": 2}, {"id": 3}])
    response = http.post("/send-email-verification", json={"email": "ana@mit.edu"}, headers=AUTH)
    assert response.status_code == 429
    assert mailer.sent == []
    window = backend.calls_to("email_verification_codes", "select")[0].op("gte")[0]
    assert window == ("created_at", (NOW - timedelta(hours=1)).isoformat())


def test_send_reports_insert_failure(http, backend):
    backend.queue("email_verification_codes", [], api_error("rls"))
    response = http.post("/send-email-verification", json={"email": "ana@mit.edu"}, headers=AUTH)
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to generate verification code"}


def _code_row(**extra):
    return {"id": "c1", "expires_at": (NOW + timedelta(minutes=5)).isoformat(), "verified_at": None, **extra}


def test_verify_marks_code_used(http, backend):
    backend.queue("email_verification_codes", [_code_row()])
    response = http.post("/verify-email-code", json={"email": "ana@mit.edu", "code": "482913"}, headers=AUTH)
    assert response.status_code == 200
    assert response.json() == {"success": True, "verified": True}
    update = backend.calls_to("email_verification_codes", "update")[0]
    assert update.payload() == {"verified_at": NOW.isoformat()}
    assert update.filters() == {"id": "c1"}


@pytest.mark.parametrize(
    "rows, message",
    [
        ([], "Invalid verification code"),
        ([_code_row(verified_at="2026-10-19T05:00:00+00:00")], "This code has already been used"),
        ([_code_row(expires_at="2026-10-19T05:59:00+00:00")], "Verification code has expired"),
    ],
)
def test_verify_rejects_bad_codes(http, backend, rows, message):
    backend.queue("email_verification_codes", rows)
    response = http.post("/verify-email-code", json={"email": "ana@mit.edu", "code": "000000"}, headers=AUTH)
    assert response.status_code == 400
    assert response.json()["error"] == message


def test_verify_needs_email_and_code(http):
    response = http.post("/verify-email-code", json={"email": "ana@mit.edu"}, headers=AUTH)
    assert response.status_code == 400


def test_malformed_body_is_a_400_with_cors(http):
    response = http.post(
        "/send-email-verification",
        content="not json",
        headers={**AUTH, "Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request body"}
    assert response.headers["access-control-allow-origin"] == "*"


def test_handlers_run_in_threadpool():
    app = create_app(client_factory=lambda header: FakeClient(), mailer=FakeMailer())
    endpoints = {route.path: route.endpoint for route in app.routes if hasattr(route, "methods")}
    for path in ("/send-email-verification", "/verify-email-code"):
        assert not inspect.iscoroutinefunction(endpoints[path])
