"""User profiles, skills and roles."""
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError

from theunoia import db_tables
from theunoia.errors import ServiceError, ValidationFailed, format_api_error
from theunoia.supabase_client import get_client
from theunoia.utils.supa import first_row

__all__ = [
    "get_profile",
    "update_profile",
    "list_users",
    "list_skills",
    "add_skill",
    "remove_skill",
    "upload_profile_picture",
    "is_admin",
    "display_name",
    "profile_completion",
]

_EDITABLE = {"first_name", "last_name", "bio", "phone", "city", "profile_picture_url"}
_COMPLETION_FIELDS = ("first_name", "last_name", "bio", "phone", "city", "profile_picture_url")


def _client():
    client = get_client()
    if client is None:  # pragma: no cover
        raise ServiceError("Supabase client not configured")
    return client


def get_profile(user_id: str) -> Optional[Dict[str, Any]]:
    try:
        response = (
            _client().table(db_tables.PROFILES).select("*").eq("user_id", user_id).limit(1).execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("get_profile", exc)) from exc
    return first_row(response)


def update_profile(user_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
    clean = {}
    for key, value in patch.items():
        if key not in _EDITABLE:
            continue
        clean[key] = value.strip() if isinstance(value, str) else value
    if not clean:
        raise ValidationFailed("Nothing to update")
    try:
        response = (
            _client().table(db_tables.PROFILES).update(clean).eq("user_id", user_id).execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("update_profile", exc)) from exc
    rows = response.data or []
    if not rows:
        raise ServiceError("Profile not found")
    return rows[0]


def list_users(limit: int = 500) -> List[Dict[str, Any]]:
    try:
        response = (
            _client()
            .table(db_tables.PROFILES)
            .select("user_id, first_name, last_name, email, user_type, created_at")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("list_users", exc)) from exc
    return response.data or []


def list_skills(user_id: str) -> List[str]:
    try:
        response = (
            _client().table(db_tables.USER_SKILLS).select("skill_name").eq("user_id", user_id).execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("list_skills", exc)) from exc
    return [row["skill_name"] for row in response.data or [] if row.get("skill_name")]


def add_skill(user_id: str, skill: str) -> None:
    name = (skill or "").strip()
    if not name:
        raise ValidationFailed("Skill cannot be empty")
    if name.lower() in {s.lower() for s in list_skills(user_id)}:
        raise ValidationFailed(f"{name} is already in your skills")
    try:
        _client().table(db_tables.USER_SKILLS).insert({"user_id": user_id, "skill_name": name}).execute()
    except APIError as exc:
        raise ServiceError(format_api_error("add_skill", exc)) from exc


def remove_skill(user_id: str, skill: str) -> None:
    try:
        (
            _client()
            .table(db_tables.USER_SKILLS)
            .delete()
            .eq("user_id", user_id)
            .eq("skill_name", skill)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("remove_skill", exc)) from exc


def upload_profile_picture(user_id: str, filename: str, data: bytes, content_type: str) -> str:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "png"
    path = f"{user_id}/{int(time.time() * 1000)}.{ext}"
    storage = _client().storage.from_(db_tables.BUCKET_PROFILE_PICTURES)
    try:
        storage.upload(path, data, {"content-type": content_type, "upsert": "true"})
    except Exception as exc:
        print(f"[profiles] picture upload failed: {exc}")
        raise ServiceError(f"Failed to upload picture: {exc}") from exc
    url = storage.get_public_url(path)
    update_profile(user_id, {"profile_picture_url": url})
    return url


def is_admin(user_id: Optional[str]) -> bool:
    if not user_id:
        return False
    try:
        response = (
            _client()
            .table(db_tables.USER_ROLES)
            .select("role")
            .eq("user_id", user_id)
            .eq("role", "admin")
            .limit(1)
            .execute()
        )
    except APIError as exc:
        print(f"[profiles] role lookup failed: {exc}")
        return False
    return bool(response.data)


def display_name(profile: Optional[Dict[str, Any]], fallback: str = "User") -> str:
    if not profile:
        return fallback
    name = " ".join(p for p in (profile.get("first_name"), profile.get("last_name")) if p)
    return name or profile.get("email") or fallback


def profile_completion(profile: Optional[Dict[str, Any]], skills: List[str]) -> int:
    """Percent of profile fields filled in (skills count as one field)."""
    if not profile:
        return 0
    filled = sum(1 for key in _COMPLETION_FIELDS if profile.get(key))
    filled += 1 if skills else 0
    return round(filled * 100 / (len(_COMPLETION_FIELDS) + 1))
