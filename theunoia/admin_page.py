"""Admin console: platform stats, credit adjustments, verification review."""
from __future__ import annotations

import pandas as pd
import streamlit as st

from theunoia import config, data
from theunoia.errors import ServiceError, ValidationFailed
from theunoia.services import credits as credit_svc
from theunoia.services import verification as verification_svc
from theunoia.supabase_client import current_user_id
from theunoia.time_utils import format_date
from theunoia.ui import open_project, pop_toast, set_toast, show_error
from theunoia.validation import CreditAdjustmentForm, parse_form

PAGE_KEY_PREFIX = "ad_"


def k(suffix: str) -> str:
    return PAGE_KEY_PREFIX + suffix


def _render_stats() -> None:
    users = data.users()
    projects = data.open_projects()
    reviews = verification_svc.status_counts(data.verifications())
    cols = st.columns(4)
    cols[0].metric("Users", len(users))
    cols[1].metric("Tasks", len(projects))
    cols[2].metric("Open tasks", sum(1 for p in projects if p.get("status") == "open"))
    cols[3].metric("Pending verifications", reviews["pending"])


def _render_credit_adjust() -> None:
    rows = data.balances()
    query = st.text_input("Search users", key=k("credit_q"), placeholder="Name or email")
    rows = credit_svc.filter_balances(rows, query)
    if not rows:
        st.info("No users match.")
        return
    frame = pd.DataFrame(rows)
    st.dataframe(frame[["name", "email", "balance"]], hide_index=True, use_container_width=True)

    options = {row["user_id"]: f"{row['name']} · {row['email']} ({row['balance']})" for row in rows}
    with st.form(k("credit_form"), clear_on_submit=True):
        target = st.selectbox("User", list(options), format_func=options.get)
        c1, c2 = st.columns(2)
        direction = c1.radio("Action", ["add", "deduct"], horizontal=True, format_func=str.title)
        amount = c2.number_input("Credits", min_value=0, step=10)
        notes = st.text_input("Notes", placeholder="Why is this adjustment made?")
        submitted = st.form_submit_button("Apply", type="primary")
    if not submitted:
        return
    try:
        form = parse_form(CreditAdjustmentForm, credits=int(amount), notes=notes, direction=direction)
        credit_svc.admin_modify_credits(target, form)
    except (ValidationFailed, ServiceError) as exc:
        show_error(exc)
        return
    data.mutated("modify_credits")
    verb = "Added" if form.direction == "add" else "Deducted"
    set_toast(f"{verb} {form.credits} credits.")
    st.rerun()


def _render_transactions() -> None:
    rows = data.all_transactions(config.ADMIN_TRANSACTIONS_LIMIT)
    if not rows:
        st.info("No transactions yet.")
        return
    names = {row["user_id"]: row["name"] for row in data.balances()}
    frame = pd.DataFrame(rows)
    frame["user"] = frame["user_id"].map(lambda uid: names.get(uid, uid))
    frame["type"] = frame["transaction_type"].map(lambda t: credit_svc.transaction_badge(t).label)
    frame["date"] = frame["created_at"].map(format_date)
    st.dataframe(
        frame[["date", "user", "type", "amount", "balance_after", "notes"]],
        hide_index=True,
        use_container_width=True,
    )


def _verification_card(row) -> None:
    profile = row.get("user_profiles") or {}
    college = row.get("colleges") or {}
    name = " ".join(p for p in (profile.get("first_name"), profile.get("last_name")) if p) or "Student"
    with st.container(border=True):
        st.markdown(f"**{name}** · {profile.get('email') or ''}")
        st.caption(f"{college.get('name') or 'Unknown college'} · {college.get('state') or ''}")
        details = [f"Method: {row.get('verification_method') or '—'}"]
        if row.get("institute_email"):
            details.append(f"Email: {row['institute_email']} {'✅' if row.get('email_verified') else ''}")
        if row.get("enrollment_id"):
            details.append(f"Enrollment: {row['enrollment_id']}")
        details.append(f"Submitted {format_date(row.get('created_at'))}")
        st.caption(" · ".join(details))
        if row.get("id_card_url"):
            url = verification_svc.id_card_signed_url(row["id_card_url"])
            if url:
                st.image(url, width=320)
        if row.get("verification_status") != "pending":
            if row.get("rejection_reason"):
                st.caption(f"Reason: {row['rejection_reason']}")
            return
        reason = st.text_input("Rejection reason", key=k(f"reason_{row['id']}"))
        c1, c2, _ = st.columns([1, 1, 4])
        if c1.button("Approve", key=k(f"approve_{row['id']}"), type="primary"):
            _review(lambda: verification_svc.approve_verification(row["id"]), "Verification approved.")
        if c2.button("Reject", key=k(f"reject_{row['id']}")):
            _review(lambda: verification_svc.reject_verification(row["id"], reason), "Verification rejected.")


def _review(action, message: str) -> None:
    try:
        action()
    except ServiceError as exc:
        show_error(exc)
        return
    data.mutated("review_verification")
    set_toast(message)
    st.rerun()


def _render_verifications() -> None:
    rows = data.verifications()
    counts = verification_svc.status_counts(rows)
    tabs = st.tabs([f"{status.title()} ({count})" for status, count in counts.items()])
    for tab, status in zip(tabs, counts):
        with tab:
            subset = [r for r in rows if r.get("verification_status") == status]
            if not subset:
                st.caption("Nothing here.")
            for row in subset:
                _verification_card(row)


def _render_projects() -> None:
    rows = data.open_projects()
    if not rows:
        st.info("No tasks yet.")
        return
    for project in rows:
        cols = st.columns([4, 2, 2, 1])
        cols[0].write(project.get("title") or "Untitled")
        cols[1].caption((project.get("status") or "").replace("_", " "))
        cols[2].caption(format_date(project.get("created_at")))
        if cols[3].button("Open", key=k(f"project_{project['id']}")):
            open_project(project["id"])


def _render_users() -> None:
    rows = data.users()
    if not rows:
        st.info("No users yet.")
        return
    frame = pd.DataFrame(rows)
    frame["joined"] = frame["created_at"].map(format_date)
    st.dataframe(
        frame[["first_name", "last_name", "email", "user_type", "joined"]],
        hide_index=True,
        use_container_width=True,
    )


def show_admin_page() -> None:
    pop_toast()
    if not data.is_admin(current_user_id()):
        st.error("Admins only.")
        return
    st.header("Admin")
    _render_stats()
    tabs = st.tabs(["Credits", "Transactions", "Verifications", "Tasks", "Users"])
    with tabs[0]:
        _render_credit_adjust()
    with tabs[1]:
        _render_transactions()
    with tabs[2]:
        _render_verifications()
    with tabs[3]:
        _render_projects()
    with tabs[4]:
        _render_users()


__all__ = ["show_admin_page"]
