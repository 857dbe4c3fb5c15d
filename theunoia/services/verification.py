"""Student verification: college e-mail OTP, ID card upload and admin review."""
from __future__ import annotations

import json
import time
from typing import Any, Dict, Iterable, List, Optional

from postgrest.exceptions import APIError

from theunoia import config, db_tables
from theunoia.errors import ServiceError, ValidationFailed, format_api_error
from theunoia.supabase_client import get_client
from theunoia.utils.supa import first_row
from theunoia.time_utils import now_utc, utc_iso
from theunoia.validation import is_edu_email

__all__ = [
    "get_verification",
    "has_freelancer_access",
    "validate_id_card",
    "upload_id_card",
    "send_verification_code",
    "verify_code",
    "submit_verification",
    "list_verifications",
    "status_counts",
    "approve_verification",
    "reject_verification",
    "id_card_signed_url",
    "list_colleges",
    "list_college_states",
]

_NO_ROWS = "PGRST116"
_EXTENSIONS = {"image/jpeg": "jpg", "image/jpg": "jpg", "image/png": "png", "image/webp": "webp"}


def _client():
    client = get_client()
    if client is None:  # pragma: no cover
        raise ServiceError("Supabase client not configured")
    return client


def get_verification(user_id: str) -> Optional[Dict[str, Any]]:
    try:
        response = (
            _client()
            .table(db_tables.STUDENT_VERIFICATIONS)
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("get_verification", exc)) from exc
    return first_row(response)


def has_freelancer_access(user_id: str) -> bool:
    """``freelancer_access.has_access`` for the user; a missing row means no access."""
    if not user_id:
        return False
    try:
        response = (
            _client()
            .table(db_tables.FREELANCER_ACCESS)
            .select("has_access")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
    except APIError as exc:
        if getattr(exc, "code", None) == _NO_ROWS:
            return False
        raise ServiceError(format_api_error("has_freelancer_access", exc)) from exc
    rows = response.data or []
    return bool(rows and rows[0].get("has_access"))


def validate_id_card(filename: str, content_type: str, size: int) -> str:
    """Return the storage extension or raise :class:`ValidationFailed`."""
    kind = (content_type or "").lower()
    if kind not in config.ID_CARD_TYPES:
        raise ValidationFailed("Please upload a JPG, PNG or WEBP image of your ID card")
    if size >= config.ID_CARD_MAX_BYTES:
        raise ValidationFailed("ID card image must be smaller than 5MB")
    return _EXTENSIONS.get(kind) or filename.rsplit(".", 1)[-1].lower()


def upload_id_card(user_id: str, filename: str, data: bytes, content_type: str) -> str:
    """Upload to ``student-id-cards/{user_id}/{timestamp}.{ext}`` and return the path."""
    ext = validate_id_card(filename, content_type, len(data))
    path = f"{user_id}/{int(time.time() * 1000)}.{ext}"
    try:
        _client().storage.from_(db_tables.BUCKET_ID_CARDS).upload(
            path, data, {"content-type": content_type}
        )
    except Exception as exc:
        print(f"[verification] id card upload failed: {exc}")
        raise ServiceError(f"Failed to upload ID card: {exc}") from exc
    return path


def _invoke(function_name: str, body: Dict[str, Any]) -> Dict[str, Any]:
    try:
        raw = _client().functions.invoke(function_name, invoke_options={"body": body})
    except Exception as exc:
        print(f"[verification] {function_name} failed: {exc}")
        raise ServiceError(_function_error(exc)) from exc
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8") or "{}"
    data = json.loads(raw) if isinstance(raw, str) else (raw or {})
    if isinstance(data, dict) and data.get("error"):
        raise ServiceError(str(data["error"]))
    return data if isinstance(data, dict) else {}


def _function_error(exc: Exception) -> str:
    message = getattr(exc, "message", None) or str(exc)
    try:
        parsed = json.loads(message)
    except (TypeError, ValueError):
        return message
    return parsed.get("error", message) if isinstance(parsed, dict) else message


def send_verification_code(email: str) -> Dict[str, Any]:
    email = (email or "").strip().lower()
    if not is_edu_email(email):
        raise ValidationFailed("Only educational emails (.edu or .ac domain) are allowed")
    return _invoke(db_tables.FN_SEND_EMAIL_CODE, {"email": email})


def verify_code(email: str, code: str) -> bool:
    code = (code or "").strip()
    if len(code) != config.OTP_LENGTH or not code.isdigit():
        raise ValidationFailed(f"Enter the {config.OTP_LENGTH}-digit code from your email")
    data = _invoke(db_tables.FN_VERIFY_EMAIL_CODE, {"email": email.strip().lower(), "code": code})
    return bool(data.get("success") or data.get("verified"))


def submit_verification(
    user_id: str,
    *,
    college_id: Optional[str],
    enrollment_id: Optional[str] = None,
    institute_email: Optional[str] = None,
    email_verified: bool = False,
    id_card_url: Optional[str] = None,
) -> Dict[str, Any]:
    if not college_id:
        raise ValidationFailed("Please select your college")
    if not email_verified and not id_card_url:
        raise ValidationFailed("Verify your college email or upload your ID card")
    payload = {
        "user_id": user_id,
        "college_id": college_id,
        "enrollment_id": (enrollment_id or "").strip() or None,
        "institute_email": (institute_email or "").strip().lower() or None,
        "id_card_url": id_card_url,
        "verification_method": "email" if email_verified else "id_card",
        "email_verified": bool(email_verified),
        "email_verified_at": utc_iso(now_utc()) if email_verified else None,
        "verification_status": "pending",
        "rejection_reason": None,
    }
    try:
        response = (
            _client()
            .table(db_tables.STUDENT_VERIFICATIONS)
            .upsert(payload, on_conflict="user_id")
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("submit_verification", exc)) from exc
    rows = response.data or []
    return rows[0] if rows else payload


def list_verifications(status: Optional[str] = None) -> List[Dict[str, Any]]:
    query = (
        _client()
        .table(db_tables.STUDENT_VERIFICATIONS)
        .select("*, colleges(name, state, city), user_profiles(first_name, last_name, email)")
        .order("created_at", desc=True)
    )
    if status:
        query = query.eq("verification_status", status)
    try:
        response = query.execute()
    except APIError as exc:
        raise ServiceError(format_api_error("list_verifications", exc)) from exc
    return response.data or []


def status_counts(rows: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    counts = {"pending": 0, "approved": 0, "rejected": 0}
    for row in rows:
        status = row.get("verification_status")
        if status in counts:
            counts[status] += 1
    return counts


def _review(verification_id: str, patch: Dict[str, Any], context: str) -> Dict[str, Any]:
    try:
        response = (
            _client()
            .table(db_tables.STUDENT_VERIFICATIONS)
            .update(patch)
            .eq("id", verification_id)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error(context, exc)) from exc
    rows = response.data or []
    if not rows:
        raise ServiceError("Verification not found")
    return rows[0]


def approve_verification(verification_id: str) -> Dict[str, Any]:
    return _review(
        verification_id,
        {
            "verification_status": "approved",
            "verified_at": utc_iso(now_utc()),
            "rejection_reason": None,
        },
        "approve_verification",
    )


def reject_verification(verification_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
    return _review(
        verification_id,
        {"verification_status": "rejected", "rejection_reason": (reason or "").strip() or None},
        "reject_verification",
    )


def id_card_signed_url(path: str, expires_in: int = 3600) -> Optional[str]:
    if not path:
        return None
    try:
        result = _client().storage.from_(db_tables.BUCKET_ID_CARDS).create_signed_url(path, expires_in)
    except Exception as exc:
        print(f"[verification] signed url failed for {path}: {exc}")
        return None
    return (result.get("signedURL") or result.get("signedUrl")) if isinstance(result, dict) else None


def list_colleges(query: str = "", state: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
    request = (
        _client()
        .table(db_tables.COLLEGES)
        .select("id, name, state, city")
        .eq("is_active", True)
        .order("name")
        .limit(limit)
    )
    if state:
        request = request.eq("state", state)
    term = (query or "").strip()
    if term:
        request = request.ilike("name", f"%{term}%")
    try:
        response = request.execute()
    except APIError as exc:
        raise ServiceError(format_api_error("list_colleges", exc)) from exc
    return response.data or []


def list_college_states() -> List[str]:
    try:
        response = _client().rpc(db_tables.RPC_COLLEGE_STATES, {}).execute()
    except APIError as exc:
        raise ServiceError(format_api_error("list_college_states", exc)) from exc
    states = []
    for row in response.data or []:
        value = row.get("state") if isinstance(row, dict) else row
        if value:
            states.append(str(value))
    return sorted(set(states))
