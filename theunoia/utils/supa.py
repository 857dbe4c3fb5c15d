"""Supabase client construction for the app, the HTTP functions and scripts.

Credentials come from Streamlit secrets first::

    [supabase]
    url = "https://<project>.supabase.co"
    anon_key = "..."
    service_role_key = "..."   # scripts only

and fall back to ``SUPABASE_URL`` / ``SUPABASE_ANON_KEY`` /
``SUPABASE_SERVICE_ROLE_KEY``.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional

import httpx

try:
    import streamlit as st
except Exception:  # pragma: no cover - allow headless usage (tests / CLI)
    st = None

from supabase import Client, ClientOptions, SupabaseException, create_client


class SupabaseConfigError(RuntimeError):
    """Raised when Supabase credentials are missing from secrets or env."""


class SupabaseConnectionError(RuntimeError):
    """Raised when the client cannot reach Supabase within the timeout window."""


_MISSING_CONFIG_MSG = (
    "Supabase secrets missing. Add `[supabase].url` and `[supabase].anon_key` to "
    "`.streamlit/secrets.toml` or set SUPABASE_URL and SUPABASE_ANON_KEY environment "
    "variables."
)
_MISSING_SERVICE_MSG = "Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY to run admin scripts."

_ENV_KEYS = {
    "url": "SUPABASE_URL",
    "anon_key": "SUPABASE_ANON_KEY",
    "service_role_key": "SUPABASE_SERVICE_ROLE_KEY",
}


@dataclass(frozen=True)
class SupabaseSettings:
    url: str
    anon_key: Optional[str] = None
    service_role_key: Optional[str] = None


def _secret(name: str) -> Optional[str]:
    if st is None:
        return None
    try:
        value = st.secrets["supabase"][name]
    except Exception:
        return None
    return str(value) if value else None


def read_settings() -> SupabaseSettings:
    values: Dict[str, Optional[str]] = {
        name: _secret(name) or os.getenv(env) for name, env in _ENV_KEYS.items()
    }
    if not values["url"]:
        raise SupabaseConfigError(_MISSING_CONFIG_MSG)
    return SupabaseSettings(**values)


def build_client_options(headers: Optional[Dict[str, str]] = None) -> ClientOptions:
    """Client options with tighter HTTP timeouts and optional extra headers."""

    timeout = httpx.Timeout(10.0, connect=5.0)
    options = ClientOptions(
        httpx_client=httpx.Client(timeout=timeout),
        postgrest_client_timeout=timeout,
        storage_client_timeout=timeout,
        function_client_timeout=timeout,
    )
    if headers:
        options.headers.update(headers)
    return options


def _close_quietly(options: ClientOptions) -> None:
    client = options.httpx_client
    if client is not None:
        client.close()


def create_supabase_client(url: str, key: str, *, headers: Optional[Dict[str, str]] = None) -> Client:
    """Create a client for ``url``/``key``, mapping transport failures to config errors."""
    options = build_client_options(headers)
    try:
        return create_client(url, key, options=options)
    except SupabaseException as exc:
        _close_quietly(options)
        raise SupabaseConfigError(str(exc) or _MISSING_CONFIG_MSG) from exc
    except httpx.HTTPStatusError as exc:
        _close_quietly(options)
        status = exc.response.status_code if exc.response is not None else "unknown"
        body = exc.response.text if exc.response is not None else ""
        if body:
            preview = body.strip().replace("\n", " ")[:200]
            print(f"[supa] client HTTP error: {status} -> {preview}")
        else:
            print(f"[supa] client HTTP error: {status} -> {exc}")
        raise SupabaseConfigError(
            "Supabase responded with HTTP "
            f"{status}. Verify the Supabase URL/anon key in your Streamlit secrets or environment."
        ) from exc
    except httpx.HTTPError as exc:
        _close_quietly(options)
        print(f"[supa] client connection failed: {exc}")
        raise SupabaseConnectionError(
            "Unable to reach Supabase right now. Check your internet connection and try again."
        ) from exc


def _anon_client() -> Client:
    settings = read_settings()
    if not settings.anon_key:
        raise SupabaseConfigError(_MISSING_CONFIG_MSG)
    return create_supabase_client(settings.url, settings.anon_key)


def user_client(auth_header: str) -> Client:
    """Anon client that forwards the caller's JWT so row-level security applies."""
    settings = read_settings()
    if not settings.anon_key:
        raise SupabaseConfigError(_MISSING_CONFIG_MSG)
    return create_supabase_client(settings.url, settings.anon_key, headers={"Authorization": auth_header})


def service_client() -> Client:
    """Service-role client for trusted scripts; never used by the Streamlit pages."""
    try:
        settings = read_settings()
    except SupabaseConfigError as exc:
        raise SupabaseConfigError(_MISSING_SERVICE_MSG) from exc
    if not settings.service_role_key:
        raise SupabaseConfigError(_MISSING_SERVICE_MSG)
    return create_supabase_client(settings.url, settings.service_role_key)


def first_row(response: Any) -> Optional[Dict[str, Any]]:
    """First dict row of a PostgREST response (or a raw list), else ``None``."""
    if response is None:
        return None
    rows = getattr(response, "data", response)
    if isinstance(rows, list) and rows:
        return rows[0] if isinstance(rows[0], dict) else None
    if isinstance(rows, dict):
        return rows
    return None


if st is not None:

    @st.cache_resource  # type: ignore[misc]
    def get_client() -> Client:
        """Return a cached Supabase client bound to anon key."""
        return _anon_client()

else:

    @lru_cache(maxsize=1)
    def get_client() -> Client:
        """Fallback cached client when Streamlit is unavailable."""
        return _anon_client()


__all__ = [
    "get_client",
    "user_client",
    "service_client",
    "create_supabase_client",
    "read_settings",
    "first_row",
    "SupabaseSettings",
    "SupabaseConfigError",
    "SupabaseConnectionError",
]
