"""Single project view: details, bidding, bid review, completion and tracking."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import streamlit as st

from theunoia import config, data
from theunoia.errors import BidRejected, InsufficientCredits, ServiceError, ValidationFailed
from theunoia.services import bids as bid_svc
from theunoia.services import profiles
from theunoia.services import projects as project_svc
from theunoia.services import ratings
from theunoia.supabase_client import current_user_id
from theunoia.time_utils import format_date, time_ago
from theunoia.tracking_page import show_tracking_board
from theunoia.ui import go, pop_toast, set_toast, show_error
from theunoia.validation import RATING_LABELS, RatingForm, minimum_bid, parse_form

PAGE_KEY_PREFIX = "pd_"


def k(suffix: str) -> str:
    return PAGE_KEY_PREFIX + suffix


def _accepted_bid(rows: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    return next((b for b in rows if b.get("status") == "accepted"), None)


def _render_header(project: Dict[str, Any]) -> None:
    if project.get("cover_image_url"):
        st.image(project["cover_image_url"], use_container_width=True)
    st.header(project.get("title") or "Untitled task")
    cols = st.columns(4)
    cols[0].metric("Budget", f"{config.CURRENCY}{float(project.get('budget') or 0):,.0f}")
    cols[1].metric("Timeline", project.get("timeline") or "—")
    cols[2].metric("Status", (project.get("status") or "").replace("_", " ").title())
    cols[3].metric("Bidding", project_svc.deadline_label(project))
    st.caption(
        " · ".join(
            part
            for part in (project.get("category"), project.get("subcategory"), f"Posted {time_ago(project.get('created_at'))}")
            if part
        )
    )
    st.write(project.get("description") or "")
    skills = project.get("skills_required") or []
    if skills:
        st.markdown(" ".join(f"`{s}`" for s in skills))
    files = project.get("attached_files") or []
    if files:
        st.markdown("**Attachments**")
        for f in files:
            st.markdown(f"- [{f.get('name')}]({f.get('url')})")


def _render_bid_form(project: Dict[str, Any], rows: List[Dict[str, Any]], user_id: str) -> None:
    balance = data.balance(user_id)
    already = any(b.get("freelancer_id") == user_id for b in rows) or any(
        b.get("project_id") == project["id"] for b in data.my_bids(user_id)
    )
    allowed, reason = bid_svc.can_open_bid_form(
        balance,
        project,
        user_id=user_id,
        already_bid=already,
        has_access=data.has_access(user_id),
        bids=rows,
    )
    st.subheader("Place a bid")
    if not allowed:
        st.info(reason)
        if reason and "Verify" in reason and st.button("Verify now", key=k("verify")):
            go("Verification")
        if reason and "credits" in reason and st.button("Buy credits", key=k("buy")):
            go("Credits")
        return

    st.caption(
        f"{bid_svc.minimum_bid_message(project.get('budget'))}. "
        f"Bidding costs {config.BID_CREDIT_COST} credits; you have {balance}."
    )
    with st.form(k("bid_form")):
        amount = st.number_input(
            f"Your bid ({config.CURRENCY})",
            min_value=0.0,
            value=float(minimum_bid(project.get("budget")) or 0),
            step=100.0,
        )
        proposal = st.text_area(
            "Proposal",
            height=180,
            max_chars=config.PROPOSAL_MAX,
            help=f"{config.PROPOSAL_MIN}–{config.PROPOSAL_MAX} characters",
        )
        submitted = st.form_submit_button("Submit bid", type="primary")
    if not submitted:
        return
    try:
        bid_svc.place_bid(user_id, project, amount, proposal, balance)
    except (ValidationFailed, InsufficientCredits, BidRejected, ServiceError) as exc:
        show_error(exc)
        return
    data.mutated("place_bid")
    set_toast(f"Bid submitted. {config.BID_CREDIT_COST} credits deducted.")
    st.rerun()


def _freelancer_name(bid: Dict[str, Any]) -> str:
    return profiles.display_name(bid.get("freelancer"), fallback="Freelancer")


def _render_bid_list(project: Dict[str, Any], rows: List[Dict[str, Any]], user_id: str) -> None:
    st.subheader(f"Bids ({len(rows)})")
    if not rows:
        st.info("No bids yet.")
        return
    can_accept = project.get("status") == "open"
    for bid in rows:
        badge = bid_svc.bid_status_badge(bid.get("status"))
        with st.container(border=True):
            top = st.columns([4, 2, 2])
            top[0].markdown(f"**{_freelancer_name(bid)}** {badge.markdown()}")
            top[1].markdown(f"{config.CURRENCY}{float(bid.get('amount') or 0):,.0f}")
            top[2].caption(time_ago(bid.get("created_at")))
            st.write(bid.get("proposal") or "")
            if bid.get("status") != "pending" or not can_accept:
                continue
            c1, c2, _ = st.columns([1, 1, 4])
            if c1.button("Accept", key=k(f"accept_{bid['id']}"), type="primary"):
                try:
                    result = bid_svc.accept_bid(bid["id"], client_id=user_id)
                except (BidRejected, ServiceError) as exc:
                    show_error(exc)
                    data.mutated("accept_bid")
                    return
                data.mutated("accept_bid")
                note = "Bid accepted. The project is now in progress."
                if result.rejected_bid_ids:
                    note += f" {len(result.rejected_bid_ids)} other bid(s) were declined."
                set_toast(note)
                st.rerun()
            if c2.button("Reject", key=k(f"reject_{bid['id']}")):
                try:
                    bid_svc.reject_bid(bid["id"])
                except (BidRejected, ServiceError) as exc:
                    show_error(exc)
                    return
                data.mutated("reject_bid")
                set_toast("Bid rejected.", kind="info")
                st.rerun()


def _render_completion(project: Dict[str, Any], user_id: str) -> None:
    st.subheader("Complete project")
    st.caption("Rate the freelancer to close the project.")
    with st.form(k("complete_form")):
        stars = st.select_slider(
            "Rating",
            options=list(RATING_LABELS),
            value=5,
            format_func=lambda n: f"{'★' * n} {RATING_LABELS[n]}",
        )
        feedback = st.text_area("Feedback (optional)")
        submitted = st.form_submit_button("Mark complete", type="primary")
    if not submitted:
        return
    try:
        form = parse_form(RatingForm, rating=stars, feedback=feedback)
        ratings.complete_project_with_rating(project["id"], user_id, form)
    except (ValidationFailed, ServiceError) as exc:
        show_error(exc)
        return
    data.mutated("complete_project")
    set_toast("Project marked complete. Thanks for the rating!")
    st.rerun()


def _open_conversation_button(project_id: str, user_id: str) -> None:
    conv = next((c for c in data.conversations(user_id) if c.get("project_id") == project_id), None)
    if conv and st.button("💬 Open conversation", key=k("chat")):
        st.session_state["selected_conversation_id"] = conv["id"]
        go("Messages")


def _render_owner_actions(project: Dict[str, Any]) -> None:
    if project.get("status") != "open":
        return
    with st.expander("Manage task"):
        if st.button("Delete task", key=k("delete")):
            st.session_state[k("confirm_delete")] = True
        if st.session_state.get(k("confirm_delete")):
            st.warning("Delete this task and all its bids?")
            c1, c2 = st.columns(2)
            if c1.button("Yes, delete", key=k("delete_yes"), type="primary"):
                try:
                    project_svc.delete_project(project["id"])
                except ServiceError as exc:
                    show_error(exc)
                    return
                st.session_state.pop(k("confirm_delete"), None)
                data.mutated("delete_project")
                set_toast("Task deleted.")
                go("Projects")
            if c2.button("Cancel", key=k("delete_no")):
                st.session_state.pop(k("confirm_delete"), None)
                st.rerun()


def show_project_page() -> None:
    pop_toast()
    user_id = current_user_id()
    project_id = st.session_state.get("selected_project_id")
    if st.button("← Back to tasks", key=k("back")):
        go("Projects")
    if not project_id:
        st.info("Pick a task from the task list.")
        return
    try:
        project = data.project(project_id)
        rows = data.project_bids(project_id) if project else []
    except ServiceError as exc:
        show_error(exc)
        return
    if project is None:
        st.warning("This task no longer exists.")
        return

    _render_header(project)
    is_owner = project.get("user_id") == user_id
    accepted = _accepted_bid(rows)
    is_freelancer = bool(accepted and accepted.get("freelancer_id") == user_id)

    if is_owner or is_freelancer:
        if accepted:
            st.success(f"Working with **{_freelancer_name(accepted)}** for {config.CURRENCY}{float(accepted.get('amount') or 0):,.0f}")
            _open_conversation_button(project_id, user_id)
        tabs = st.tabs(["Bids" if is_owner else "Overview", "Tracking"])
        with tabs[0]:
            if is_owner:
                _render_bid_list(project, rows, user_id)
                _render_owner_actions(project)
                if project.get("status") == "in_progress":
                    _render_completion(project, user_id)
            else:
                st.info("Your bid was accepted. Use the tracking board to plan and deliver the work.")
        with tabs[1]:
            if project.get("status") == "open":
                st.info("Tracking starts once a bid is accepted.")
            else:
                show_tracking_board(project, "client" if is_owner else "freelancer", user_id)
        return

    _render_bid_form(project, rows, user_id)
    mine = next((b for b in rows if b.get("freelancer_id") == user_id), None)
    if mine:
        badge = bid_svc.bid_status_badge(mine.get("status"))
        st.markdown(
            f"Your bid: {config.CURRENCY}{float(mine.get('amount') or 0):,.0f} {badge.markdown()} "
            f"· placed {format_date(mine.get('created_at'))}"
        )


__all__ = ["show_project_page"]
