"""The signed-in user's profile, skills and ratings."""
from __future__ import annotations

import streamlit as st

from theunoia import data
from theunoia.errors import ServiceError, ValidationFailed
from theunoia.services import profiles as svc
from theunoia.services.ratings import average_rating
from theunoia.streak import current_streak, get_streak
from theunoia.supabase_client import current_user_id
from theunoia.time_utils import format_date, now_utc
from theunoia.ui import pop_toast, set_toast, show_error

PAGE_KEY_PREFIX = "pf_"


def k(suffix: str) -> str:
    return PAGE_KEY_PREFIX + suffix


def _render_summary(user_id: str, profile) -> None:
    skills = data.skills(user_id)
    ratings = data.freelancer_ratings(user_id)
    avg = average_rating(ratings)
    cols = st.columns([1, 3])
    with cols[0]:
        if profile and profile.get("profile_picture_url"):
            st.image(profile["profile_picture_url"], width=140)
        upload = st.file_uploader("Photo", type=["png", "jpg", "jpeg", "webp"], key=k("photo"))
        if upload is not None and st.button("Upload photo", key=k("photo_save")):
            try:
                svc.upload_profile_picture(user_id, upload.name, upload.getvalue(), upload.type or "image/png")
            except (ValidationFailed, ServiceError) as exc:
                show_error(exc)
            else:
                data.mutated("update_profile")
                set_toast("Photo updated.")
                st.rerun()
    with cols[1]:
        st.subheader(svc.display_name(profile))
        st.caption((profile or {}).get("email") or "")
        m = st.columns(3)
        m[0].metric("Profile", f"{svc.profile_completion(profile, skills)}%")
        m[1].metric("Rating", f"{avg:.1f} ★" if avg is not None else "—", f"{len(ratings)} review(s)")
        m[2].metric("Streak", f"🔥 {current_streak(get_streak(user_id), now_utc())}")


def _render_details(user_id: str, profile) -> None:
    profile = profile or {}
    with st.form(k("details")):
        c1, c2 = st.columns(2)
        first = c1.text_input("First name", value=profile.get("first_name") or "")
        last = c2.text_input("Last name", value=profile.get("last_name") or "")
        c3, c4 = st.columns(2)
        phone = c3.text_input("Phone", value=profile.get("phone") or "")
        city = c4.text_input("City", value=profile.get("city") or "")
        bio = st.text_area("Bio", value=profile.get("bio") or "", max_chars=1000)
        submitted = st.form_submit_button("Save", type="primary")
    if not submitted:
        return
    try:
        svc.update_profile(user_id, {"first_name": first, "last_name": last, "phone": phone, "city": city, "bio": bio})
    except (ValidationFailed, ServiceError) as exc:
        show_error(exc)
        return
    data.mutated("update_profile")
    set_toast("Profile saved.")
    st.rerun()


def _render_skills(user_id: str) -> None:
    skills = data.skills(user_id)
    if skills:
        for skill in skills:
            c1, c2 = st.columns([5, 1])
            c1.write(skill)
            if c2.button("✕", key=k(f"rm_{skill}")):
                try:
                    svc.remove_skill(user_id, skill)
                except ServiceError as exc:
                    show_error(exc)
                    return
                data.mutated("update_profile")
                st.rerun()
    else:
        st.caption("No skills yet. Skills power your task recommendations.")
    with st.form(k("skill_form"), clear_on_submit=True):
        skill = st.text_input("Add a skill")
        if st.form_submit_button("Add"):
            try:
                svc.add_skill(user_id, skill)
            except (ValidationFailed, ServiceError) as exc:
                show_error(exc)
                return
            data.mutated("update_profile")
            st.rerun()


def _render_ratings(user_id: str) -> None:
    rows = data.freelancer_ratings(user_id)
    if not rows:
        st.caption("No ratings yet.")
        return
    for row in rows:
        with st.container(border=True):
            st.markdown("★" * int(row.get("rating") or 0))
            if row.get("feedback"):
                st.write(row["feedback"])
            st.caption(format_date(row.get("created_at")))


def show_profile_page() -> None:
    pop_toast()
    user_id = current_user_id()
    st.header("Profile")
    profile = data.profile(user_id)
    _render_summary(user_id, profile)
    tabs = st.tabs(["Details", "Skills", "Ratings"])
    with tabs[0]:
        _render_details(user_id, profile)
    with tabs[1]:
        _render_skills(user_id)
    with tabs[2]:
        _render_ratings(user_id)


__all__ = ["show_profile_page"]
