"""Streamlit authentication gate backed by Supabase email/password auth."""

from __future__ import annotations

import streamlit as st
from supabase import AuthApiError, AuthError

from theunoia import query_cache
from theunoia.supabase_client import (
    get_client,
    is_authenticated,
    sign_in as supabase_sign_in,
    sign_out as supabase_sign_out,
    sign_up as supabase_sign_up,
)

_LAST_EMAIL_KEY = "login__last_email"
_MODE_KEY = "login__mode"
USER_TYPES = {"Student freelancer": "student", "Client / business": "client"}


def _render_sign_in() -> None:
    with st.form("login_form", clear_on_submit=False):
        email = st.text_input("Email", value=st.session_state.get(_LAST_EMAIL_KEY, ""))
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign in", type="primary", use_container_width=True)
    if not submitted:
        return
    email = email.strip()
    if not email or not password:
        st.warning("Enter your email and password.")
        return
    st.session_state[_LAST_EMAIL_KEY] = email
    try:
        supabase_sign_in(email, password)
    except (AuthApiError, AuthError) as exc:
        print(f"[login] sign in failed for {email}: {exc}")
        st.error("Invalid email or password.")
        return
    if is_authenticated():
        query_cache.clear()
        st.rerun()
    st.error("Sign in did not return a session. Confirm your email first.")


def _render_sign_up() -> None:
    with st.form("signup_form"):
        c1, c2 = st.columns(2)
        first = c1.text_input("First name")
        last = c2.text_input("Last name")
        email = st.text_input("Email")
        password = st.text_input("Password", type="password", help="At least 8 characters")
        role = st.radio("I am a", list(USER_TYPES), horizontal=True)
        submitted = st.form_submit_button("Create account", type="primary", use_container_width=True)
    if not submitted:
        return
    if not first.strip() or not email.strip():
        st.warning("Name and email are required.")
        return
    if len(password) < 8:
        st.warning("Password must be at least 8 characters.")
        return
    try:
        supabase_sign_up(email.strip(), password, first.strip(), last.strip(), USER_TYPES[role])
    except (AuthApiError, AuthError) as exc:
        print(f"[login] sign up failed for {email}: {exc}")
        st.error(getattr(exc, "message", None) or str(exc))
        return
    if is_authenticated():
        st.rerun()
    st.success("Account created. Check your inbox to confirm your email, then sign in.")


def login() -> None:
    """Render the sign-in screen and stop the script until a session exists."""
    get_client()
    if is_authenticated():
        return

    st.title("THEUNOiA")
    st.caption("Hire verified student freelancers. Get paid for what you learn.")
    last_error = st.session_state.get("auth", {}).get("last_error")
    if last_error:
        st.info(last_error)

    mode = st.segmented_control(
        "Account",
        ["Sign in", "Create account"],
        key=_MODE_KEY,
        default="Sign in",
        label_visibility="collapsed",
    )
    if mode == "Create account":
        _render_sign_up()
    else:
        _render_sign_in()
    st.stop()


def logout() -> None:
    supabase_sign_out()
    query_cache.clear()
    st.session_state.pop("current_page", None)
