"""Client/freelancer conversations and messages."""
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Sequence

from postgrest.exceptions import APIError

from theunoia import db_tables
from theunoia.errors import ServiceError, ValidationFailed, api_error_code, format_api_error
from theunoia.supabase_client import get_client
from theunoia.time_utils import now_utc, utc_iso
from theunoia.utils.supa import first_row

__all__ = [
    "ensure_conversation",
    "list_conversations",
    "list_messages",
    "send_message",
    "mark_read",
    "upload_attachment",
    "unread_count",
]

_DUPLICATE_KEY = "23505"


def _client():
    client = get_client()
    if client is None:  # pragma: no cover
        raise ServiceError("Supabase client not configured")
    return client


def ensure_conversation(
    project_id: Optional[str],
    client_id: str,
    freelancer_id: str,
    *,
    client=None,
) -> Optional[str]:
    """Id of the conversation for this project pair, creating it when missing.

    Failures are logged and yield ``None``; a missing conversation never blocks
    the caller.
    """
    client = client or _client()
    payload = {"project_id": project_id, "client_id": client_id, "freelancer_id": freelancer_id}
    try:
        response = client.table(db_tables.CONVERSATIONS).insert(payload).execute()
    except APIError as exc:
        if api_error_code(exc) != _DUPLICATE_KEY:
            print(f"[messages] conversation for project {project_id} not created: {exc}")
            return None
        try:
            response = (
                client.table(db_tables.CONVERSATIONS)
                .select("id")
                .eq("project_id", project_id)
                .eq("client_id", client_id)
                .eq("freelancer_id", freelancer_id)
                .limit(1)
                .execute()
            )
        except APIError as lookup_exc:
            print(f"[messages] existing conversation lookup failed: {lookup_exc}")
            return None
    row = first_row(response)
    return row.get("id") if row else None


def list_conversations(user_id: str) -> List[Dict[str, Any]]:
    """Conversations the user takes part in, most recently active first."""
    client = _client()
    try:
        response = (
            client.table(db_tables.CONVERSATIONS)
            .select("id, project_id, client_id, freelancer_id, last_message_at, created_at")
            .or_(f"client_id.eq.{user_id},freelancer_id.eq.{user_id}")
            .order("last_message_at", desc=True)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("list_conversations", exc)) from exc
    rows = response.data or []
    if not rows:
        return []

    other_ids = sorted(
        {row["freelancer_id"] if row.get("client_id") == user_id else row["client_id"] for row in rows}
    )
    project_ids = sorted({row["project_id"] for row in rows if row.get("project_id")})
    try:
        profiles = (
            client.table(db_tables.PROFILES)
            .select("user_id, first_name, last_name, profile_picture_url")
            .in_("user_id", other_ids)
            .execute()
        )
        projects = (
            client.table(db_tables.PROJECTS).select("id, title").in_("id", project_ids).execute()
            if project_ids
            else None
        )
        recent = (
            client.table(db_tables.MESSAGES)
            .select("conversation_id, sender_id, content, is_read, created_at")
            .in_("conversation_id", [row["id"] for row in rows])
            .order("created_at", desc=True)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("list_conversations", exc)) from exc
    names = {
        p["user_id"]: " ".join(x for x in (p.get("first_name"), p.get("last_name")) if x) or "User"
        for p in profiles.data or []
    }
    titles = {p["id"]: p.get("title") for p in (projects.data if projects else []) or []}
    by_conversation: Dict[str, List[Dict[str, Any]]] = {}
    for message in recent.data or []:
        by_conversation.setdefault(message["conversation_id"], []).append(message)

    result = []
    for row in rows:
        other = row["freelancer_id"] if row.get("client_id") == user_id else row["client_id"]
        thread = by_conversation.get(row["id"], [])
        result.append(
            {
                **row,
                "other_user_id": other,
                "other_name": names.get(other, "User"),
                "project_title": titles.get(row.get("project_id")),
                "last_message": thread[0].get("content") if thread else None,
                "unread": unread_count(thread, user_id),
            }
        )
    return result


def list_messages(conversation_id: str) -> List[Dict[str, Any]]:
    try:
        response = (
            _client()
            .table(db_tables.MESSAGES)
            .select("id, conversation_id, sender_id, content, attachments, is_read, created_at")
            .eq("conversation_id", conversation_id)
            .order("created_at")
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("list_messages", exc)) from exc
    return response.data or []


def unread_count(messages: Sequence[Dict[str, Any]], user_id: str) -> int:
    return sum(1 for m in messages if not m.get("is_read") and m.get("sender_id") != user_id)


def send_message(
    conversation_id: str,
    sender_id: str,
    content: str,
    attachments: Optional[Sequence[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    text = (content or "").strip()
    if not text and not attachments:
        raise ValidationFailed("Message cannot be empty")
    payload = {
        "conversation_id": conversation_id,
        "sender_id": sender_id,
        "content": text,
        "attachments": list(attachments or []),
        "is_read": False,
    }
    client = _client()
    try:
        response = client.table(db_tables.MESSAGES).insert(payload).execute()
        client.table(db_tables.CONVERSATIONS).update(
            {"last_message_at": utc_iso(now_utc())}
        ).eq("id", conversation_id).execute()
    except APIError as exc:
        raise ServiceError(format_api_error("send_message", exc)) from exc
    rows = response.data or []
    return rows[0] if rows else payload


def mark_read(conversation_id: str, reader_id: str) -> None:
    try:
        (
            _client()
            .table(db_tables.MESSAGES)
            .update({"is_read": True})
            .eq("conversation_id", conversation_id)
            .neq("sender_id", reader_id)
            .eq("is_read", False)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("mark_read", exc)) from exc


def upload_attachment(conversation_id: str, filename: str, data: bytes, content_type: str) -> Dict[str, Any]:
    path = f"{conversation_id}/{int(time.time() * 1000)}-{filename}"
    storage = _client().storage.from_(db_tables.BUCKET_MESSAGE_ATTACHMENTS)
    try:
        storage.upload(path, data, {"content-type": content_type})
    except Exception as exc:
        print(f"[messages] attachment upload failed: {exc}")
        raise ServiceError(f"Failed to upload attachment: {exc}") from exc
    return {"name": filename, "path": path, "url": storage.get_public_url(path), "type": content_type}
