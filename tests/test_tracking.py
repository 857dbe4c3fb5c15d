import pytest

from theunoia import phase_lock as pl
from theunoia.errors import PhaseConflict, ServiceError, TransitionNotAllowed
from theunoia.services import tracking

from conftest import api_error

PROJECT = {"id": "p1", "category": "Design & Creative"}


def _state_row(name, order, status="unlocked", version=0, **extra):
    return {
        "id": f"s{order}",
        "project_id": "p1",
        "phase_name": name,
        "phase_order": order,
        "status": status,
        "version": version,
        **extra,
    }


def test_load_board_creates_unlocked_states(use_client):
    client = use_client(tracking)

    def phase_rows(query):
        if query.action == "insert":
            return [{**row, "id": f"s{row['phase_order']}"} for row in query.payload()]
        return []

    client.handle("project_phase_states", phase_rows)
    client.queue("project_tasks", [{"id": "t1", "title": "Moodboard", "phase": "Drafting"}])

    board = tracking.load_board(PROJECT)

    assert board.phases == ["Drafting", "Refinement", "Finalization"]
    assert [s.status for s in board.states] == [pl.PhaseStatus.UNLOCKED] * 3
    assert board.tasks[0].title == "Moodboard"
    inserted = client.calls_to("project_phase_states", "insert")[0].payload()
    assert {row["version"] for row in inserted} == {0}


def test_load_board_uses_existing_states(use_client):
    client = use_client(tracking)
    client.queue(
        "project_phase_states",
        [_state_row("Drafting", 0, "active", 3), _state_row("Refinement", 1, "pending")],
    )
    board = tracking.load_board(PROJECT)
    assert board.active == "Drafting"
    assert board.state_for("Drafting").version == 3
    assert client.calls_to("project_phase_states", "insert") == []


def test_save_phase_bumps_version(use_client):
    client = use_client(tracking)
    client.queue("project_phase_states", [_state_row("Drafting", 0, "active", 2, freelancer_approved=True)])
    state = pl.PhaseState.from_row(_state_row("Drafting", 0, "active", 1))

    saved = tracking.save_phase(pl.PhaseState(**{**state.__dict__, "freelancer_approved": True}))

    update = client.calls_to("project_phase_states", "update")[0]
    assert update.filters() == {"id": "s0", "version": 1}
    assert update.payload()["version"] == 2
    assert saved.version == 2 and saved.freelancer_approved


def test_save_phase_conflict(use_client):
    client = use_client(tracking)
    client.queue("project_phase_states", [])
    state = pl.PhaseState.from_row(_state_row("Drafting", 0, "active", 4))
    with pytest.raises(PhaseConflict):
        tracking.save_phase(state)


def test_save_phase_needs_id():
    with pytest.raises(ValueError):
        tracking.save_phase(pl.PhaseState(phase_name="Drafting", phase_order=0))


def _board(*rows, tasks=()):
    return pl.BoardSnapshot(
        phases=["Drafting", "Refinement", "Finalization"],
        states=[pl.PhaseState.from_row(r) for r in rows],
        tasks=list(tasks),
    )


def _echo_update(query):
    if query.action == "update":
        row = {**query.payload(), "id": query.filters()["id"]}
        return [row]
    return []


def test_approve_lock_saves_both_phases_and_logs(use_client):
    client = use_client(tracking)
    client.handle("project_phase_states", _echo_update)
    board = _board(
        _state_row("Drafting", 0, "active", 1, freelancer_approved=True),
        _state_row("Refinement", 1, "pending", 0),
        _state_row("Finalization", 2, "pending", 0),
    )

    states, message = tracking.approve_lock(board, "p1", "Drafting", "client-1")

    assert message == "Drafting locked. Refinement is now active."
    assert pl.active_phase(board.phases, states) == "Refinement"
    assert len(client.calls_to("project_phase_states", "update")) == 2
    activity = client.calls_to("project_task_activity", "insert")[0].payload()
    assert activity == {"project_id": "p1", "user_id": "client-1", "message": message}


def test_request_lock_refused_with_open_tasks(use_client):
    client = use_client(tracking)
    board = _board(
        _state_row("Drafting", 0, "active", 1),
        tasks=[pl.Task(title="Sketch", phase="Drafting", status="in-progress", id="t1")],
    )
    with pytest.raises(TransitionNotAllowed, match="must be completed"):
        tracking.request_lock(board, "p1", "Drafting", "free-1")
    assert client.executed == []


def test_activity_failure_does_not_break_write(use_client):
    client = use_client(tracking)
    client.handle("project_phase_states", _echo_update)
    client.queue("project_task_activity", api_error("rls"))
    board = _board(
        _state_row("Drafting", 0, "active", 1),
        tasks=[pl.Task(title="Sketch", phase="Drafting", status="done", id="t1")],
    )
    states, _ = tracking.request_lock(board, "p1", "Drafting", "free-1")
    assert states[0].freelancer_approved


def test_add_task_only_in_active_phase(use_client):
    client = use_client(tracking)
    board = _board(_state_row("Drafting", 0, "active", 1), _state_row("Refinement", 1, "pending"))
    with pytest.raises(TransitionNotAllowed, match="pending"):
        tracking.add_task(board, pl.Task(title="Later", phase="Refinement", project_id="p1"), "free-1")

    client.queue("project_tasks", [{"id": "t9", "title": "Now", "phase": "Drafting"}])
    created = tracking.add_task(board, pl.Task(title="Now", phase="Drafting", project_id="p1"), "free-1")
    assert created.id == "t9"


def test_list_activity_wraps_errors(use_client):
    client = use_client(tracking)
    client.queue("project_task_activity", api_error("down"))
    with pytest.raises(ServiceError):
        tracking.list_activity("p1")


class PhaseStore:
    """Phase rows keyed by id; updates honour the ``version`` filter."""

    def __init__(self, *rows, refuse=()):
        self.rows = {row["id"]: dict(row) for row in rows}
        self.refuse = set(refuse)

    def __call__(self, query):
        if query.action != "update":
            return []
        filters = query.filters()
        row = self.rows.get(filters["id"])
        if row is None or row["id"] in self.refuse or row["version"] != filters["version"]:
            return []
        row.update(query.payload())
        return [dict(row)]


def test_approve_lock_restores_first_phase_when_next_conflicts(use_client):
    client = use_client(tracking)
    store = PhaseStore(
        _state_row("Drafting", 0, "active", 1, freelancer_approved=True),
        _state_row("Refinement", 1, "pending", 0),
        refuse={"s1"},
    )
    client.handle("project_phase_states", store)
    board = _board(*store.rows.values())

    with pytest.raises(PhaseConflict):
        tracking.approve_lock(board, "p1", "Drafting", "client-1")

    first = store.rows["s0"]
    assert first["status"] == "active"
    assert first["client_approved"] is False
    assert first["freelancer_approved"] is True
    assert first["version"] == 3
    assert client.calls_to("project_task_activity") == []


def test_lock_all_restores_saved_phases_on_conflict(use_client):
    client = use_client(tracking)
    store = PhaseStore(
        _state_row("Drafting", 0, "unlocked", 0),
        _state_row("Refinement", 1, "unlocked", 0),
        _state_row("Finalization", 2, "unlocked", 0),
        refuse={"s2"},
    )
    client.handle("project_phase_states", store)
    board = _board(
        *store.rows.values(),
        tasks=[pl.Task(title=f"Task {name}", phase=name) for name in ("Drafting", "Refinement", "Finalization")],
    )

    with pytest.raises(PhaseConflict):
        tracking.lock_all(board, "p1", "free-1")

    assert {row["status"] for row in store.rows.values()} == {"unlocked"}
    assert store.rows["s0"]["version"] == 2
    assert store.rows["s2"]["version"] == 0
