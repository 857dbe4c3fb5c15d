"""Supabase auth/session helpers for the THEUNOiA Streamlit app."""

from __future__ import annotations

from typing import Any, Dict, Optional

import streamlit as st
from supabase import AuthError

from theunoia.utils.supa import SupabaseConfigError, get_client as _get_cached_client

__all__ = [
    "get_client",
    "sign_in",
    "sign_up",
    "sign_out",
    "session_value",
    "current_user",
    "current_user_id",
    "is_authenticated",
]

_AUTH_STATE_KEY = "auth"
_SESSION_STATE_KEY = "supabase_session"
_EXPIRED_MSG = "Your session expired. Please sign in again."


def session_value(session: Any, key: str) -> Any:
    """Read ``key`` from a Supabase session object or a plain dict."""

    if session is None:
        return None
    if hasattr(session, key):
        return getattr(session, key)
    if isinstance(session, dict):
        return session.get(key)
    return None


def _auth_state() -> Dict[str, Any]:
    auth = st.session_state.setdefault(_AUTH_STATE_KEY, {})
    auth.setdefault("authenticated", False)
    auth.setdefault("user", None)
    return auth


def _serialize_user(user: Any) -> Optional[Dict[str, Any]]:
    """Convert Supabase user models to plain dictionaries."""
    if user is None:
        return None
    if isinstance(user, dict):
        return user
    dump = getattr(user, "model_dump", None)
    if callable(dump):
        data = dump()
        if isinstance(data, dict):
            return data
    snapshot: Dict[str, Any] = {}
    for attr in ("id", "email", "user_metadata", "created_at"):
        value = getattr(user, attr, None)
        if value is not None:
            snapshot[attr] = value
    return snapshot or None


def _store_session(session: Any, user: Any | None = None) -> None:
    access_token = session_value(session, "access_token")
    refresh_token = session_value(session, "refresh_token")
    if access_token and refresh_token:
        st.session_state[_SESSION_STATE_KEY] = {
            "access_token": access_token,
            "refresh_token": refresh_token,
        }
    auth = _auth_state()
    auth["authenticated"] = True
    auth["user"] = _serialize_user(user or session_value(session, "user"))
    auth.pop("last_error", None)


def _clear_session_state(reason: Optional[str] = None) -> None:
    had_tokens = st.session_state.pop(_SESSION_STATE_KEY, None) is not None
    auth = _auth_state()
    auth["authenticated"] = False
    auth["user"] = None
    if reason and had_tokens:
        auth["last_error"] = reason
    else:
        auth.pop("last_error", None)


def _apply_saved_session(client) -> None:
    """Restore the signed-in session on the shared client for this browser tab."""
    stored = st.session_state.get(_SESSION_STATE_KEY)
    if not stored:
        return
    try:
        current = client.auth.get_session()
    except AuthError as exc:  # pragma: no cover - network error path
        print(f"[auth] get_session failed: {exc}")
        current = None
    if session_value(current, "access_token") == stored.get("access_token"):
        return
    try:
        response = client.auth.set_session(stored["access_token"], stored["refresh_token"])
    except AuthError as exc:
        print(f"[auth] set_session failed: {exc}")
        _clear_session_state(_EXPIRED_MSG)
        return
    session = getattr(response, "session", None)
    if session and session_value(session, "access_token"):
        _store_session(session, getattr(response, "user", None))
    else:
        _clear_session_state(_EXPIRED_MSG)


def get_client():
    """Return the shared Supabase client, restoring saved auth when present."""
    try:
        client = _get_cached_client()
    except SupabaseConfigError as exc:
        st.error(str(exc))
        st.stop()
        raise
    _apply_saved_session(client)
    return client


def sign_in(email: str, password: str):
    """Authenticate with email/password and cache the session tokens."""
    response = get_client().auth.sign_in_with_password({"email": email, "password": password})
    session = getattr(response, "session", None)
    if session and session_value(session, "access_token"):
        _store_session(session, getattr(response, "user", None))
    else:
        _clear_session_state()
    return response


def sign_up(email: str, password: str, first_name: str, last_name: str, user_type: str):
    """Create an account; profile metadata is copied into ``user_profiles`` by a trigger."""
    response = get_client().auth.sign_up(
        {
            "email": email,
            "password": password,
            "options": {
                "data": {
                    "first_name": first_name,
                    "last_name": last_name,
                    "user_type": user_type,
                }
            },
        }
    )
    session = getattr(response, "session", None)
    if session and session_value(session, "access_token"):
        _store_session(session, getattr(response, "user", None))
    return response


def sign_out() -> None:
    """Sign out from Supabase and clear cached session tokens."""
    client = get_client()
    try:
        client.auth.sign_out()
    finally:
        _clear_session_state()


def is_authenticated() -> bool:
    return bool(_auth_state().get("authenticated"))


def current_user() -> Optional[Dict[str, Any]]:
    return _auth_state().get("user")


def current_user_id() -> Optional[str]:
    user = current_user() or {}
    value = user.get("id")
    return str(value) if value else None
