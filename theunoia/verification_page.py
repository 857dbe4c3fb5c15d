"""Student verification: pick a college, confirm a college e-mail or upload an ID card."""
from __future__ import annotations

import time

import streamlit as st

from theunoia import config, data
from theunoia.errors import ServiceError, ValidationFailed
from theunoia.services import verification as svc
from theunoia.supabase_client import current_user_id
from theunoia.time_utils import format_date
from theunoia.ui import pop_toast, set_toast, show_error

PAGE_KEY_PREFIX = "vf_"
_SENT_AT = PAGE_KEY_PREFIX + "code_sent_at"
_VERIFIED_EMAIL = PAGE_KEY_PREFIX + "verified_email"
STATUS_MESSAGES = {
    "pending": ("info", "Your verification is being reviewed. This usually takes 1-2 days."),
    "approved": ("success", "You're verified. Start bidding on tasks!"),
    "rejected": ("error", "Your verification was rejected."),
}


def k(suffix: str) -> str:
    return PAGE_KEY_PREFIX + suffix


def _cooldown_left() -> int:
    sent_at = st.session_state.get(_SENT_AT)
    if not sent_at:
        return 0
    return max(0, int(config.OTP_RESEND_COOLDOWN_SECONDS - (time.time() - sent_at)))


def _render_status(row) -> None:
    if not row:
        return
    kind, message = STATUS_MESSAGES.get(row.get("verification_status"), ("info", "Verification submitted."))
    getattr(st, kind)(message)
    if row.get("verification_status") == "rejected" and row.get("rejection_reason"):
        st.caption(f"Reason: {row['rejection_reason']}")
    st.caption(f"Submitted {format_date(row.get('created_at'))}")


def _pick_college():
    states = data.college_states()
    c1, c2 = st.columns([1, 2])
    state = c1.selectbox("State", ["All"] + states, key=k("state"))
    query = c2.text_input("Search college", key=k("college_q"))
    rows = data.colleges(query.strip(), None if state == "All" else state)
    if not rows:
        st.caption("No colleges match. Try another search.")
        return None
    options = {row["id"]: f"{row['name']} ({row.get('city') or row.get('state') or ''})" for row in rows}
    return st.selectbox("College", list(options), format_func=options.get, key=k("college"))


def _render_email_otp() -> bool:
    """Send / confirm the code; returns True once this session verified the address."""
    email = st.text_input("College email", key=k("email"), placeholder="you@college.ac.in")
    verified = st.session_state.get(_VERIFIED_EMAIL)
    if verified and verified == email.strip().lower():
        st.success("Email verified ✅")
        return True

    wait = _cooldown_left()
    c1, c2 = st.columns([1, 2])
    label = f"Resend in {wait}s" if wait else "Send code"
    if c1.button(label, key=k("send"), disabled=bool(wait)):
        try:
            svc.send_verification_code(email)
        except (ValidationFailed, ServiceError) as exc:
            show_error(exc)
        else:
            st.session_state[_SENT_AT] = time.time()
            st.toast(f"Code sent to {email.strip()}. It expires in {config.OTP_TTL_MINUTES} minutes.")

    if st.session_state.get(_SENT_AT):
        code = c2.text_input("Verification code", max_chars=config.OTP_LENGTH, key=k("code"))
        if st.button("Verify code", key=k("verify")):
            try:
                ok = svc.verify_code(email, code)
            except (ValidationFailed, ServiceError) as exc:
                show_error(exc)
                return False
            if ok:
                st.session_state[_VERIFIED_EMAIL] = email.strip().lower()
                st.rerun()
            st.error("Invalid or expired code")
    return False


def show_verification_page() -> None:
    pop_toast()
    user_id = current_user_id()
    st.header("Student verification")
    if data.has_access(user_id):
        st.success("You're verified. Start bidding on tasks!")
        return

    current = data.my_verification(user_id)
    _render_status(current)
    if current and current.get("verification_status") == "pending":
        return

    st.write("Verify that you're a student to start bidding. Use your college email or upload your student ID.")
    college_id = _pick_college()
    enrollment = st.text_input("Enrollment / roll number (optional)", key=k("enrollment"))
    method = st.radio("Verify with", ["College email", "Student ID card"], horizontal=True, key=k("method"))

    email_verified = False
    card = None
    if method == "College email":
        email_verified = _render_email_otp()
    else:
        card = st.file_uploader(
            "Student ID card",
            type=["jpg", "jpeg", "png", "webp"],
            key=k("card"),
            help="JPG, PNG or WEBP, under 5MB",
        )

    if not st.button("Submit for review", type="primary", key=k("submit")):
        return
    try:
        card_path = None
        if card is not None:
            card_path = svc.upload_id_card(user_id, card.name, card.getvalue(), card.type or "")
        svc.submit_verification(
            user_id,
            college_id=college_id,
            enrollment_id=enrollment,
            institute_email=st.session_state.get(_VERIFIED_EMAIL) if email_verified else None,
            email_verified=email_verified,
            id_card_url=card_path,
        )
    except (ValidationFailed, ServiceError) as exc:
        show_error(exc)
        return
    data.mutated("submit_verification")
    set_toast("Verification submitted. We'll review it shortly.")
    st.rerun()


__all__ = ["show_verification_page"]
