"""Project tracking board: phases, tasks and the dual-approval lock flow."""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

import pandas as pd
import streamlit as st

from theunoia import data
from theunoia import phase_lock as pl
from theunoia.errors import PhaseConflict, ServiceError, TransitionNotAllowed
from theunoia.services import tracking
from theunoia.supabase_client import current_user_id
from theunoia.time_utils import format_date, time_ago
from theunoia.ui import go, pop_toast, set_toast, show_error

PAGE_KEY_PREFIX = "tr_"
STATUS_LABELS = {"to-do": "To do", "in-progress": "In progress", "done": "Done"}
PRIORITY_ICONS = {"high": "🔴", "medium": "🟠", "low": "🟢"}


def k(suffix: str) -> str:
    return PAGE_KEY_PREFIX + suffix


def _after_write(message: str) -> None:
    data.mutated("phase_change")
    set_toast(message)
    st.rerun()


def _render_metrics(board: pl.BoardSnapshot) -> None:
    metrics = pl.task_metrics(board.tasks, date.today())
    cols = st.columns(4)
    cols[0].metric("Tasks", metrics["total"])
    cols[1].metric("In progress", metrics["in_progress"])
    cols[2].metric("Completed", metrics["completed"])
    cols[3].metric("Overdue", metrics["overdue"])


def _render_setup(board: pl.BoardSnapshot, project_id: str, user_id: str) -> None:
    st.info(
        "Plan the work first: add at least one task to every phase, then lock the plan. "
        "Phase 1 becomes active and the rest wait their turn."
    )
    check = pl.can_lock_all(board.phases, board.tasks)
    if st.button("Lock all phases", key=k("lock_all"), type="primary", disabled=not check):
        try:
            _, message = tracking.lock_all(board, project_id, user_id)
        except (TransitionNotAllowed, PhaseConflict, ServiceError) as exc:
            show_error(exc)
            return
        _after_write(message)
    if not check:
        st.caption(check.reason)


def _render_lock_controls(board: pl.BoardSnapshot, phase: str, project_id: str, role: str, user_id: str) -> None:
    state = board.state_for(phase)
    if state is None or state.status != pl.PhaseStatus.ACTIVE:
        return
    if state.freelancer_approved and not state.client_approved:
        st.caption("⏳ Lock requested, waiting for client approval.")
    if role == "freelancer":
        check = pl.can_request_lock(phase, board.tasks, board.states)
        if st.button("Request lock", key=k(f"req_{phase}"), disabled=not check):
            try:
                _, message = tracking.request_lock(board, project_id, phase, user_id)
            except (TransitionNotAllowed, PhaseConflict, ServiceError) as exc:
                show_error(exc)
                return
            _after_write(message)
        if not check and check.reason:
            st.caption(check.reason)
    elif role == "client":
        check = pl.can_approve_lock(phase, board.states)
        if st.button("Approve & lock", key=k(f"approve_{phase}"), type="primary", disabled=not check):
            try:
                _, message = tracking.approve_lock(board, project_id, phase, user_id)
            except (TransitionNotAllowed, PhaseConflict, ServiceError) as exc:
                show_error(exc)
                return
            _after_write(message)


def _render_task(board: pl.BoardSnapshot, task: pl.Task, user_id: str) -> None:
    today = date.today()
    allowed = pl.can_change_task_status(task, board.active, board.states)
    with st.container(border=True):
        head = st.columns([5, 2])
        overdue = " · ⚠️ overdue" if pl.is_overdue(task, today) else ""
        head[0].markdown(f"{PRIORITY_ICONS.get(task.priority, '')} **{task.title}**{overdue}")
        status = head[1].selectbox(
            "Status",
            pl.TASK_STATUSES,
            index=pl.TASK_STATUSES.index(task.status) if task.status in pl.TASK_STATUSES else 0,
            format_func=lambda s: STATUS_LABELS.get(s, s),
            key=k(f"status_{task.id}"),
            disabled=not allowed,
            label_visibility="collapsed",
        )
        if task.description:
            st.caption(task.description)
        meta = []
        if task.assignee:
            meta.append(f"👤 {task.assignee}")
        if task.deadline:
            meta.append(f"📅 {format_date(task.deadline)}")
        if meta:
            st.caption(" · ".join(meta))
        if status != task.status:
            try:
                tracking.update_task_status(board, task.id, status, user_id)
            except (TransitionNotAllowed, ServiceError) as exc:
                show_error(exc)
                return
            _after_write(f"Moved “{task.title}” to {STATUS_LABELS[status]}")
        if allowed and st.button("Delete", key=k(f"del_{task.id}")):
            try:
                tracking.delete_task(board, task.id, user_id)
            except (TransitionNotAllowed, ServiceError) as exc:
                show_error(exc)
                return
            _after_write("Task deleted")


def _render_add_task(board: pl.BoardSnapshot, phase: str, project_id: str, user_id: str) -> None:
    check = pl.can_add_task_to_phase(phase, board.active, board.states, board.setup_complete)
    if not check:
        return
    with st.expander("➕ Add task"):
        with st.form(k(f"add_{phase}"), clear_on_submit=True):
            title = st.text_input("Title")
            description = st.text_area("Description")
            c1, c2, c3 = st.columns(3)
            assignee = c1.text_input("Assignee")
            priority = c2.selectbox("Priority", pl.TASK_PRIORITIES, index=1)
            deadline = c3.date_input("Deadline", value=None)
            submitted = st.form_submit_button("Add")
        if submitted:
            task = pl.Task(
                title=title.strip(),
                phase=phase,
                description=description.strip(),
                assignee=assignee.strip(),
                priority=priority,
                deadline=deadline.isoformat() if deadline else None,
                project_id=project_id,
            )
            try:
                tracking.add_task(board, task, user_id)
            except (TransitionNotAllowed, ServiceError) as exc:
                show_error(exc)
                return
            _after_write(f"Added “{task.title}” to {phase}")


def _render_phase(board: pl.BoardSnapshot, index: int, phase: str, project_id: str, role: str, user_id: str) -> None:
    state = board.state_for(phase)
    badge = pl.phase_status_badge(state.status if state else pl.PhaseStatus.UNLOCKED)
    progress = pl.phase_progress(phase, board.tasks)
    st.markdown(f"#### {index + 1}. {phase} {badge.markdown()}")
    st.progress(progress.percent / 100, text=f"{progress.done}/{progress.total} tasks done")
    if state is not None and state.status == pl.PhaseStatus.LOCKED and state.locked_at:
        st.caption(f"🔒 Locked {format_date(state.locked_at)}")
    for task in sorted(board.tasks_for(phase), key=pl.sort_key_deadline):
        _render_task(board, task, user_id)
    _render_add_task(board, phase, project_id, user_id)
    if board.setup_complete:
        _render_lock_controls(board, phase, project_id, role, user_id)


def _render_activity(project_id: str) -> None:
    rows = data.activity(project_id)
    if not rows:
        st.caption("No activity yet.")
        return
    frame = pd.DataFrame(rows)
    frame["when"] = frame["created_at"].map(time_ago)
    st.dataframe(frame[["when", "message"]], hide_index=True, use_container_width=True)


def show_tracking_board(project: Dict[str, Any], role: str, user_id: Optional[str] = None) -> None:
    """Render the board for ``project``; ``role`` is ``client`` or ``freelancer``."""
    user_id = user_id or current_user_id()
    project_id = project["id"]
    try:
        board = data.board(project)
    except ServiceError as exc:
        show_error(exc)
        return

    _render_metrics(board)
    if not board.setup_complete:
        _render_setup(board, project_id, user_id)
    elif board.active:
        st.success(f"Current phase: **{board.active}**")
    else:
        st.success("All phases are locked. 🎉")

    for index, phase in enumerate(board.phases):
        _render_phase(board, index, phase, project_id, role, user_id)
        st.divider()

    with st.expander("Activity"):
        _render_activity(project_id)


def _tracked_projects(user_id: str):
    """Projects in progress or done where the user is the client or the accepted freelancer."""
    rows = {}
    for project in data.my_projects(user_id):
        if project.get("status") in ("in_progress", "completed"):
            rows[project["id"]] = (project, "client")
    for bid in data.my_bids(user_id):
        project = bid.get("project") or {}
        if bid.get("status") == "accepted" and project.get("id"):
            rows.setdefault(project["id"], (project, "freelancer"))
    return list(rows.values())


def show_tracking_page() -> None:
    pop_toast()
    user_id = current_user_id()
    st.header("Project tracking")
    tracked = _tracked_projects(user_id)
    if not tracked:
        st.info("Tracking starts once a bid is accepted.")
        if st.button("Browse tasks", key=k("browse")):
            go("Projects")
        return
    labels = {p["id"]: f"{p.get('title') or 'Untitled'} ({role})" for p, role in tracked}
    selected = st.selectbox(
        "Project",
        list(labels),
        format_func=labels.get,
        key=k("project"),
    )
    project, role = next((p, r) for p, r in tracked if p["id"] == selected)
    full = data.project(project["id"]) or project
    show_tracking_board(full, role, user_id)


__all__ = ["show_tracking_page", "show_tracking_board"]
