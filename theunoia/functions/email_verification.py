"""HTTP functions for student e-mail verification.

``POST /send-email-verification`` stores a one-time 6 digit code for the
signed-in user and mails it through Resend. ``POST /verify-email-code``
checks a code and marks it used. Both run with the caller's own JWT so
row-level security on ``email_verification_codes`` still applies.

Run locally with::

    python -m theunoia.functions.email_verification
"""

from __future__ import annotations

import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from postgrest.exceptions import APIError
from pydantic import BaseModel
from supabase import Client

from theunoia import config, db_tables
from theunoia.time_utils import parse_iso
from theunoia.utils.supa import user_client
from theunoia.validation import is_edu_email

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

RESEND_URL = "https://api.resend.com/emails"
DEFAULT_SENDER = "TheUnoia <noreply@theunoia.com>"
SUBJECT = "Your Student Verification Code - TheUnoia"

EMAIL_TEMPLATE = """<!DOCTYPE html>
<html>
<body style="font-family: -apple-system, 'Segoe UI', Roboto, Arial, sans-serif; background-color: #f4f4f5; padding: 20px;">
  <div style="max-width: 480px; margin: 0 auto; background-color: #ffffff; border-radius: 12px; padding: 40px;">
    <h1 style="color: #18181b; font-size: 24px; margin: 0 0 8px 0;">Verify Your Email</h1>
    <p style="color: #71717a; font-size: 14px; margin: 0 0 32px 0;">Use the code below to verify your student email address.</p>
    <div style="background-color: #f4f4f5; border-radius: 8px; padding: 24px; text-align: center; margin-bottom: 24px;">
      <span style="font-family: monospace; font-size: 32px; font-weight: 700; letter-spacing: 8px;">{code}</span>
    </div>
    <p style="color: #71717a; font-size: 14px;">This code will expire in <strong>{minutes} minutes</strong>.</p>
    <p style="color: #a1a1aa; font-size: 12px;">If you didn't request this code, you can safely ignore this email.</p>
  </div>
</body>
</html>
"""


class ResendMailer:
    """Minimal Resend client over httpx."""

    def __init__(self, api_key: Optional[str], sender: str = DEFAULT_SENDER, timeout: float = 10.0):
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    def send(self, to: str, subject: str, html: str) -> Dict[str, Any]:
        if not self.api_key:
            raise RuntimeError("RESEND_API_KEY is not configured")
        response = httpx.post(
            RESEND_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={"from": self.sender, "to": [to], "subject": subject, "html": html},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()


def _env_mailer() -> ResendMailer:
    return ResendMailer(
        os.getenv("RESEND_API_KEY") or os.getenv("Resend_API"),
        os.getenv("VERIFICATION_EMAIL_FROM") or DEFAULT_SENDER,
    )


class SendCodeBody(BaseModel):
    email: Optional[str] = None


class VerifyCodeBody(BaseModel):
    email: Optional[str] = None
    code: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_code() -> str:
    return str(100000 + secrets.randbelow(900000))


def _json(status: int, body: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status, content=body, headers=CORS_HEADERS)


def _bearer(auth_header: str) -> str:
    return auth_header.split(" ", 1)[1] if auth_header.lower().startswith("bearer ") else auth_header


def _user_id(client: Client, auth_header: str) -> Optional[str]:
    try:
        response = client.auth.get_user(_bearer(auth_header))
    except Exception as exc:
        print(f"[email_verification] user lookup failed: {exc}")
        return None
    user = getattr(response, "user", None)
    return getattr(user, "id", None) if user is not None else None


def create_app(
    *,
    client_factory: Callable[[str], Client] = user_client,
    mailer: Optional[ResendMailer] = None,
    clock: Callable[[], datetime] = _utcnow,
    code_factory: Callable[[], str] = _new_code,
) -> FastAPI:
    app = FastAPI(title="THEUNOiA functions", docs_url=None, redoc_url=None)
    mail = mailer

    def _auth(request: Request):
        auth_header = request.headers.get("authorization")
        if not auth_header:
            return None, None, _json(401, {"error": "Missing authorization header"})
        client = client_factory(auth_header)
        user_id = _user_id(client, auth_header)
        if not user_id:
            return None, None, _json(401, {"error": "Unauthorized"})
        return client, user_id, None

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _json(400, {"error": "Invalid request body"})

    @app.options("/{path:path}")
    async def preflight(path: str) -> Response:
        return Response(status_code=200, headers=CORS_HEADERS)

    @app.post("/" + db_tables.FN_SEND_EMAIL_CODE)
    def send_email_verification(request: Request, body: SendCodeBody) -> JSONResponse:
        nonlocal mail
        try:
            client, user_id, denied = _auth(request)
            if denied is not None:
                return denied

            email = body.email
            if not email or not email.strip():
                return _json(400, {"error": "Email is required"})
            email = email.strip().lower()
            if not is_edu_email(email):
                return _json(400, {"error": "Only educational emails (.edu or .ac domain) are allowed"})

            now = clock()
            since = (now - timedelta(hours=1)).isoformat()
            try:
                recent = (
                    client.table(db_tables.EMAIL_CODES)
                    .select("id")
                    .eq("user_id", user_id)
                    .eq("email", email)
                    .gte("created_at", since)
                    .execute()
                )
            except APIError as exc:
                print(f"[email_verification] rate limit query failed: {exc}")
                return _json(500, {"error": "Failed to check rate limit"})
            if len(recent.data or []) >= config.OTP_MAX_PER_HOUR:
                return _json(429, {"error": "Too many verification attempts. Please try again later."})

            code = code_factory()
            expires_at = now + timedelta(minutes=config.OTP_TTL_MINUTES)
            try:
                client.table(db_tables.EMAIL_CODES).insert(
                    {
                        "user_id": user_id,
                        "email": email,
                        "code": code,
                        "expires_at": expires_at.isoformat(),
                    }
                ).execute()
            except APIError as exc:
                print(f"[email_verification] code insert failed: {exc}")
                return _json(500, {"error": "Failed to generate verification code"})

            if mail is None:
                mail = _env_mailer()
            result = mail.send(
                email,
                SUBJECT,
                EMAIL_TEMPLATE.format(code=code, minutes=config.OTP_TTL_MINUTES),
            )
            print(f"[email_verification] code sent to {email}: {result}")
            return _json(200, {"success": True, "message": "Verification code sent"})
        except Exception as exc:
            print(f"[email_verification] send-email-verification failed: {exc}")
            return _json(500, {"error": str(exc) or "Internal server error"})

    @app.post("/" + db_tables.FN_VERIFY_EMAIL_CODE)
    def verify_email_code(request: Request, body: VerifyCodeBody) -> JSONResponse:
        try:
            client, user_id, denied = _auth(request)
            if denied is not None:
                return denied

            email = (body.email or "").strip().lower()
            code = (body.code or "").strip()
            if not email or not code:
                return _json(400, {"error": "Email and code are required"})

            try:
                found = (
                    client.table(db_tables.EMAIL_CODES)
                    .select("id, expires_at, verified_at")
                    .eq("user_id", user_id)
                    .eq("email", email)
                    .eq("code", code)
                    .order("created_at", desc=True)
                    .limit(1)
                    .execute()
                )
            except APIError as exc:
                print(f"[email_verification] code lookup failed: {exc}")
                return _json(500, {"error": "Failed to verify code"})
            rows = found.data or []
            if not rows:
                return _json(400, {"error": "Invalid verification code"})
            row = rows[0]
            if row.get("verified_at"):
                return _json(400, {"error": "This code has already been used"})
            expires = parse_iso(row.get("expires_at"))
            now = clock()
            if expires is None or expires <= now:
                return _json(400, {"error": "Verification code has expired"})

            try:
                client.table(db_tables.EMAIL_CODES).update({"verified_at": now.isoformat()}).eq(
                    "id", row["id"]
                ).execute()
            except APIError as exc:
                print(f"[email_verification] code update failed: {exc}")
                return _json(500, {"error": "Failed to verify code"})
            return _json(200, {"success": True, "verified": True})
        except Exception as exc:
            print(f"[email_verification] verify-email-code failed: {exc}")
            return _json(500, {"error": str(exc) or "Internal server error"})

    return app


app = create_app()

__all__ = ["create_app", "app", "ResendMailer", "CORS_HEADERS"]


if __name__ == "__main__":  # pragma: no cover - local dev server
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=int(os.getenv("PORT", "54321")))
