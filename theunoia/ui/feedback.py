"""Toast queue shared by pages; survives the rerun that follows a mutation."""

from __future__ import annotations

import streamlit as st

from theunoia.errors import ServiceError, TransitionNotAllowed, ValidationFailed

_TOAST_KEY = "_toast"
TOAST_ICONS = {"success": "✅", "warning": "⚠️", "error": "❌", "info": "ℹ️"}


def set_toast(message: str, kind: str = "success") -> None:
    """Queue a toast for the next render tick."""
    st.session_state[_TOAST_KEY] = {"type": kind, "msg": message}


def pop_toast() -> None:
    toast = st.session_state.pop(_TOAST_KEY, None)
    if toast and toast.get("msg"):
        st.toast(toast["msg"], icon=TOAST_ICONS.get(toast.get("type"), "ℹ️"))


def show_error(exc: Exception) -> None:
    """User-facing message for errors raised by the service layer."""
    if isinstance(exc, (ValidationFailed, TransitionNotAllowed)):
        st.warning(str(exc))
    elif isinstance(exc, ServiceError):
        st.error(str(exc))
    else:
        print(f"[ui] unexpected error: {exc!r}")
        st.error(f"Something went wrong: {exc}")
