"""Persistence for project tracking boards (phase states, tasks, activity).

Phase rows carry an integer ``version``. Every write is conditioned on the
version that was read and bumps it, so a client and a freelancer approving
from two browsers cannot overwrite each other: the slower write matches no
row and raises :class:`~theunoia.errors.PhaseConflict`.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

from postgrest.exceptions import APIError

from theunoia import config, db_tables
from theunoia import phase_lock as pl
from theunoia.errors import PhaseConflict, ServiceError, TransitionNotAllowed, format_api_error
from theunoia.supabase_client import get_client
from theunoia.time_utils import now_utc, utc_iso

__all__ = [
    "load_board",
    "save_phase",
    "lock_all",
    "request_lock",
    "approve_lock",
    "add_task",
    "update_task_status",
    "delete_task",
    "list_activity",
]

_CONFLICT_MSG = "This phase was updated by someone else. Reload the board and try again."


def _client():
    client = get_client()
    if client is None:  # pragma: no cover
        raise ServiceError("Supabase client not configured")
    return client


def _load_states(client, project_id: str) -> List[pl.PhaseState]:
    response = (
        client.table(db_tables.PHASE_STATES)
        .select("*")
        .eq("project_id", project_id)
        .order("phase_order")
        .execute()
    )
    return [pl.PhaseState.from_row(row) for row in response.data or []]


def _create_states(client, project_id: str, phases: List[str]) -> List[pl.PhaseState]:
    rows = []
    for state in pl.initial_phase_states(project_id, phases):
        rows.append({**state.to_row(), "version": 0})
    response = client.table(db_tables.PHASE_STATES).insert(rows).execute()
    return pl.ordered(pl.PhaseState.from_row(row) for row in response.data or [])


def load_board(project: Dict[str, Any]) -> pl.BoardSnapshot:
    """Phases for the project's category with their stored states and tasks.

    Phase rows are created (all ``unlocked``) the first time a board is opened.
    """
    client = _client()
    project_id = project["id"]
    phases = pl.phases_for_category(project.get("category"))
    try:
        states = _load_states(client, project_id)
        if not states:
            states = _create_states(client, project_id, phases)
        tasks = (
            client.table(db_tables.TASKS)
            .select("*")
            .eq("project_id", project_id)
            .order("created_at")
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("load_board", exc)) from exc
    return pl.BoardSnapshot(
        phases=phases,
        states=states,
        tasks=[pl.Task.from_row(row) for row in tasks.data or []],
    )


def save_phase(state: pl.PhaseState) -> pl.PhaseState:
    """Write ``state`` if its row is still at ``state.version``; returns the stored row."""
    if not state.id:
        raise ValueError("phase state has no id")
    patch = {**state.to_row(), "version": state.version + 1, "updated_at": utc_iso(now_utc())}
    try:
        response = (
            _client()
            .table(db_tables.PHASE_STATES)
            .update(patch)
            .eq("id", state.id)
            .eq("version", state.version)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("save_phase", exc)) from exc
    rows = response.data or []
    if not rows:
        print(f"[tracking] version conflict on phase {state.phase_name} (v{state.version})")
        raise PhaseConflict(_CONFLICT_MSG)
    return pl.PhaseState.from_row(rows[0])


def _save_all(states: Iterable[pl.PhaseState], changed: Iterable[pl.PhaseState]) -> List[pl.PhaseState]:
    """Save ``changed`` in order; when one write fails, put back the rows already written."""
    originals = {state.id: state for state in states}
    saved: List[pl.PhaseState] = []
    try:
        for state in changed:
            saved.append(save_phase(state))
    except ServiceError:
        for row in reversed(saved):
            original = originals.get(row.id)
            if original is None:
                continue
            try:
                save_phase(replace(original, version=row.version))
            except ServiceError as exc:
                print(f"[tracking] could not restore phase {row.phase_name}: {exc}")
        raise
    return saved


def log_activity(project_id: str, actor_id: Optional[str], message: str) -> None:
    try:
        _client().table(db_tables.TASK_ACTIVITY).insert(
            {"project_id": project_id, "user_id": actor_id, "message": message}
        ).execute()
    except APIError as exc:
        print(f"[tracking] activity not recorded: {exc}")


def list_activity(project_id: str, limit: int = config.TASK_ACTIVITY_LIMIT) -> List[Dict[str, Any]]:
    try:
        response = (
            _client()
            .table(db_tables.TASK_ACTIVITY)
            .select("id, user_id, message, created_at")
            .eq("project_id", project_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("list_activity", exc)) from exc
    return response.data or []


def lock_all(board: pl.BoardSnapshot, project_id: str, actor_id: str) -> Tuple[List[pl.PhaseState], str]:
    changed = pl.lock_all_phases(board.phases, board.states, board.tasks)
    saved = _save_all(board.states, changed)
    message = "Initial setup complete. Phase 1 is now active."
    log_activity(project_id, actor_id, message)
    return pl.merge(board.states, saved), message


def request_lock(
    board: pl.BoardSnapshot, project_id: str, phase: str, actor_id: str
) -> Tuple[List[pl.PhaseState], str]:
    saved = save_phase(pl.request_lock(phase, board.tasks, board.states))
    message = f"Lock requested for {phase}. Waiting for client approval."
    log_activity(project_id, actor_id, message)
    return pl.merge(board.states, [saved]), message


def approve_lock(
    board: pl.BoardSnapshot, project_id: str, phase: str, actor_id: str
) -> Tuple[List[pl.PhaseState], str]:
    changed = pl.approve_lock(phase, board.states, approved_by=actor_id, now=now_utc())
    saved = _save_all(board.states, changed)
    if len(saved) > 1:
        message = f"{phase} locked. {saved[1].phase_name} is now active."
    elif saved and saved[0].status == pl.PhaseStatus.LOCKED:
        message = f"{phase} locked. All phases are complete."
    else:
        message = f"{phase} approved."
    log_activity(project_id, actor_id, message)
    return pl.merge(board.states, saved), message


def add_task(board: pl.BoardSnapshot, task: pl.Task, actor_id: str) -> pl.Task:
    pl.can_add_task_to_phase(task.phase, board.active, board.states, board.setup_complete).require()
    if not task.title.strip():
        raise TransitionNotAllowed("Task title is required")
    if task.priority not in pl.TASK_PRIORITIES:
        raise TransitionNotAllowed(f"Unknown priority: {task.priority}")
    try:
        response = _client().table(db_tables.TASKS).insert(task.to_row()).execute()
    except APIError as exc:
        raise ServiceError(format_api_error("add_task", exc)) from exc
    rows = response.data or []
    if not rows:
        raise ServiceError("Supabase did not return the created task")
    log_activity(task.project_id, actor_id, f"Added task “{task.title}” to {task.phase}")
    return pl.Task.from_row(rows[0])


def _find_task(board: pl.BoardSnapshot, task_id: str) -> pl.Task:
    for task in board.tasks:
        if task.id == task_id:
            return task
    raise ServiceError("Task not found")


def update_task_status(board: pl.BoardSnapshot, task_id: str, status: str, actor_id: str) -> pl.Task:
    task = _find_task(board, task_id)
    moved = pl.change_task_status(task, status, board.active, board.states)
    try:
        response = (
            _client()
            .table(db_tables.TASKS)
            .update({"status": moved.status, "updated_at": utc_iso(now_utc())})
            .eq("id", task_id)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("update_task_status", exc)) from exc
    log_activity(task.project_id, actor_id, f"Moved “{task.title}” to {status}")
    rows = response.data or []
    return pl.Task.from_row(rows[0]) if rows else moved


def delete_task(board: pl.BoardSnapshot, task_id: str, actor_id: str) -> None:
    task = _find_task(board, task_id)
    pl.can_change_task_status(task, board.active, board.states).require()
    try:
        _client().table(db_tables.TASKS).delete().eq("id", task_id).execute()
    except APIError as exc:
        raise ServiceError(format_api_error("delete_task", exc)) from exc
    log_activity(task.project_id, actor_id, f"Deleted task “{task.title}”")


def refresh_task(board: pl.BoardSnapshot, task: pl.Task) -> pl.BoardSnapshot:
    tasks = [task if t.id == task.id else t for t in board.tasks]
    if all(t.id != task.id for t in board.tasks):
        tasks.append(task)
    return replace(board, tasks=tasks)
