"""Browse, search and post tasks.

UI concerns only; data is handled in :mod:`theunoia.services.projects`.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, List

import streamlit as st

from theunoia import config, data, db_tables
from theunoia.errors import InsufficientCredits, ServiceError, ValidationFailed
from theunoia.phase_lock import PHASE_MAPPING
from theunoia.services import projects as svc
from theunoia.supabase_client import current_user_id
from theunoia.time_utils import format_date, time_ago
from theunoia.ui import open_project, pop_toast, set_toast, show_error
from theunoia.validation import PortfolioProjectForm, WorkRequirementForm, parse_form

PAGE_KEY_PREFIX = "pr_"
CATEGORIES = list(PHASE_MAPPING)
STATUS_LABELS = {"open": "🟢 Open", "in_progress": "🟡 In progress", "completed": "⚪ Completed"}


def k(suffix: str) -> str:
    return PAGE_KEY_PREFIX + suffix


def _project_card(project: Dict[str, Any], *, key_prefix: str) -> None:
    with st.container(border=True):
        top = st.columns([4, 1])
        top[0].markdown(f"**{project.get('title') or 'Untitled task'}**")
        top[1].caption(STATUS_LABELS.get(project.get("status"), project.get("status") or ""))
        description = project.get("description") or ""
        st.write(description[:220] + ("…" if len(description) > 220 else ""))
        skills = project.get("skills_required") or []
        if skills:
            st.caption(" · ".join(skills[:6]))
        meta = st.columns(3)
        meta[0].caption(f"Budget: {config.CURRENCY}{float(project.get('budget') or 0):,.0f}")
        meta[1].caption(svc.deadline_label(project))
        meta[2].caption(f"Posted {time_ago(project.get('created_at'))}")
        if st.button("View details", key=f"{key_prefix}_{project['id']}"):
            open_project(project["id"])


def _render_grid(rows: List[Dict[str, Any]], key_prefix: str, empty: str) -> None:
    if not rows:
        st.info(empty)
        return
    cols = st.columns(2)
    for index, project in enumerate(rows):
        with cols[index % 2]:
            _project_card(project, key_prefix=key_prefix)


def _render_browse(user_id: str) -> None:
    rows = data.open_projects()
    c1, c2, c3 = st.columns([3, 2, 2])
    query = c1.text_input("Search", key=k("q"), placeholder="Title, skill or category")
    category = c2.selectbox("Category", ["All"] + CATEGORIES, key=k("category"))
    status = c3.selectbox("Status", ["open", "in_progress", "completed", "all"], key=k("status"))
    subcategory = st.text_input("Subcategory", key=k("subcategory"))

    rows = svc.search_projects(rows, query)
    rows = svc.filter_projects(
        rows,
        category=None if category == "All" else category,
        subcategory=subcategory.strip() or None,
        status=None if status == "all" else status,
    )
    st.caption(f"{len(rows)} task(s)")
    _render_grid(rows, k("browse"), "No tasks match your filters.")


def _render_recommended(user_id: str) -> None:
    skills = data.skills(user_id)
    if not skills:
        st.info("Add skills to your profile to get recommendations.")
        return
    picks = svc.recommend_projects(data.open_projects(), skills, exclude_user_id=user_id)
    _render_grid(picks, k("rec"), "No open tasks match your skills right now.")


def _render_post_form(user_id: str) -> None:
    balance = data.balance(user_id)
    st.caption(
        f"Posting a task costs {config.PROJECT_POST_CREDIT_COST} credits. You have {balance}."
    )
    with st.form(k("post_form"), clear_on_submit=False):
        title = st.text_input("Title")
        description = st.text_area("Description", height=160)
        c1, c2 = st.columns(2)
        budget = c1.number_input(f"Budget ({config.CURRENCY})", min_value=0.0, step=100.0)
        timeline = c2.text_input("Timeline", placeholder="e.g. 2 weeks")
        c3, c4 = st.columns(2)
        category = c3.selectbox("Category", CATEGORIES)
        subcategory = c4.text_input("Subcategory")
        skills = st.text_input("Skills required", placeholder="Comma separated, e.g. Figma, Branding")
        deadline = st.date_input("Bidding deadline", value=date.today() + timedelta(days=7))
        cover = st.file_uploader("Cover image", type=["png", "jpg", "jpeg", "webp"])
        files = st.file_uploader("Attachments", accept_multiple_files=True)
        submitted = st.form_submit_button("Post task", type="primary")

    if not submitted:
        return
    try:
        form = parse_form(
            WorkRequirementForm,
            title=title,
            description=description,
            budget=budget,
            timeline=timeline,
            skills_required=skills,
            category=category,
            subcategory=subcategory or None,
            bidding_deadline=deadline,
        )
        cover_url = None
        if cover is not None:
            cover_url = svc.upload_project_file(
                user_id, cover.name, cover.getvalue(), cover.type, bucket=db_tables.BUCKET_PROJECT_IMAGES
            )["url"]
        attachments = [
            svc.upload_project_file(user_id, f.name, f.getvalue(), f.type or "application/octet-stream")
            for f in files or []
        ]
        created = svc.create_work_requirement(
            user_id, form, balance, cover_image_url=cover_url, attached_files=attachments
        )
    except (ValidationFailed, InsufficientCredits, ServiceError) as exc:
        show_error(exc)
        return
    data.mutated("create_project")
    set_toast("Task posted! Freelancers can now bid on it.")
    open_project(created["id"])


def _render_mine(user_id: str) -> None:
    rows = [p for p in data.my_projects(user_id) if p.get("project_type") != "portfolio_project"]
    if not rows:
        st.info("You haven't posted any tasks yet.")
        return
    for project in rows:
        with st.container(border=True):
            c1, c2, c3 = st.columns([4, 2, 1])
            c1.markdown(f"**{project.get('title')}**")
            c2.caption(STATUS_LABELS.get(project.get("status"), project.get("status")))
            if c3.button("Open", key=k(f"mine_{project['id']}")):
                open_project(project["id"])
            st.caption(f"Posted {format_date(project.get('created_at'))} · {svc.deadline_label(project)}")


def _render_portfolio(user_id: str) -> None:
    rows = [p for p in data.my_projects(user_id) if p.get("project_type") == "portfolio_project"]
    for project in rows:
        with st.container(border=True):
            st.markdown(f"**{project.get('title')}**")
            st.write(project.get("description"))
            if project.get("client_feedback"):
                st.caption(f"“{project['client_feedback']}”")

    with st.expander("Add portfolio project", expanded=not rows):
        with st.form(k("portfolio_form")):
            title = st.text_input("Title")
            description = st.text_area("Description")
            category = st.selectbox("Category", CATEGORIES)
            skills = st.text_input("Skills", placeholder="Comma separated")
            feedback = st.text_area("Client feedback (optional)", max_chars=500)
            rating = st.slider("Client rating", 0.0, 5.0, 5.0, 0.5)
            completed = st.date_input("Completed on", value=date.today())
            submitted = st.form_submit_button("Add to portfolio")
        if submitted:
            try:
                form = parse_form(
                    PortfolioProjectForm,
                    title=title,
                    description=description,
                    category=category,
                    skills_required=skills,
                    client_feedback=feedback,
                    rating=rating,
                    completed_at=completed,
                )
                svc.add_portfolio_project(user_id, form)
            except (ValidationFailed, ServiceError) as exc:
                show_error(exc)
                return
            data.mutated("create_project")
            set_toast("Portfolio project added.")
            st.rerun()


def show_projects_page() -> None:
    pop_toast()
    user_id = current_user_id()
    st.header("Tasks")
    tabs = st.tabs(["Browse", "Recommended", "Post a task", "My tasks", "Portfolio"])
    with tabs[0]:
        _render_browse(user_id)
    with tabs[1]:
        _render_recommended(user_id)
    with tabs[2]:
        _render_post_form(user_id)
    with tabs[3]:
        _render_mine(user_id)
    with tabs[4]:
        _render_portfolio(user_id)


__all__ = ["show_projects_page"]
