"""Sequential phase locking for project tracking boards.

Every project is split into ordered phases (see :data:`PHASE_MAPPING`). The
board starts with all phases ``unlocked`` so both sides can plan tasks. Once
every phase has a task the client or freelancer locks the plan: the first
phase becomes ``active`` and the rest ``pending``. From then on a phase is
closed by dual approval: the freelancer requests the lock after finishing
its tasks, the client approves, and only when both flags are set does the
phase become ``locked`` and the next phase ``active``.

The functions here are pure: they take the current rows and return updated
copies. :mod:`theunoia.services.tracking` persists the result.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from theunoia.errors import TransitionNotAllowed
from theunoia.models import Badge
from theunoia.time_utils import UTC, local_date, now_utc, parse_iso, utc_iso


class PhaseStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


TASK_STATUSES = ("to-do", "in-progress", "done")
TASK_PRIORITIES = ("high", "medium", "low")

_THREE = ["Drafting", "Refinement", "Finalization"]
_FOUR = ["Discovery", "Drafting", "Refinement", "Finalization"]
_FIVE = ["Discovery", "Drafting", "Refinement", "Finalization", "Support"]
_BUILD = ["Discovery", "Design", "Development", "Testing", "Finalization", "Support"]
_TESTED = ["Discovery", "Drafting", "Refinement", "Testing", "Finalization", "Support"]

PHASE_MAPPING: Dict[str, List[str]] = {
    "Writing & Content": _THREE,
    "Design & Creative": _THREE,
    "Web, Tech & Development": _BUILD,
    "Social Media & Digital Marketing": _FIVE,
    "Video, Audio & Multimedia": _FIVE,
    "Virtual Assistance & Admin": _FOUR,
    "Education & Tutoring": _FIVE,
    "AI & Automation": _TESTED,
    "Music, Audio & Performing Arts": _FIVE,
    "Art & Illustration": _THREE,
    "E-commerce & Online Business": _FIVE,
    "Student-Friendly Services": _FOUR,
    "Beginner Tech & STEM Freelancing": _BUILD,
    "Medical Writing & Editing": _TESTED,
    "Medical Research & Analytics": _TESTED,
    "Clinical Services": _FIVE,
}

DEFAULT_PHASES = list(_FOUR)


def phases_for_category(category: Optional[str]) -> List[str]:
    if not category:
        return list(DEFAULT_PHASES)
    return list(PHASE_MAPPING.get(category, DEFAULT_PHASES))


@dataclass
class PhaseState:
    phase_name: str
    phase_order: int
    status: PhaseStatus = PhaseStatus.UNLOCKED
    freelancer_approved: bool = False
    client_approved: bool = False
    locked_at: Optional[str] = None
    locked_by: Optional[str] = None
    id: Optional[str] = None
    project_id: Optional[str] = None
    version: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PhaseState":
        return cls(
            id=row.get("id"),
            project_id=row.get("project_id"),
            phase_name=row["phase_name"],
            phase_order=int(row.get("phase_order") or 0),
            status=PhaseStatus(row.get("status") or PhaseStatus.UNLOCKED.value),
            freelancer_approved=bool(row.get("freelancer_approved")),
            client_approved=bool(row.get("client_approved")),
            locked_at=row.get("locked_at"),
            locked_by=row.get("locked_by"),
            version=int(row.get("version") or 0),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_row(self) -> Dict[str, Any]:
        """Mutable columns only; id/version/timestamps are managed by the store."""
        return {
            "project_id": self.project_id,
            "phase_name": self.phase_name,
            "phase_order": self.phase_order,
            "status": self.status.value,
            "freelancer_approved": self.freelancer_approved,
            "client_approved": self.client_approved,
            "locked_at": self.locked_at,
            "locked_by": self.locked_by,
        }


@dataclass
class Task:
    title: str
    phase: str
    status: str = "to-do"
    priority: str = "medium"
    description: str = ""
    assignee: str = ""
    deadline: Optional[str] = None
    id: Optional[str] = None
    project_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Task":
        return cls(
            id=row.get("id"),
            project_id=row.get("project_id"),
            title=row.get("title") or "",
            description=row.get("description") or "",
            assignee=row.get("assignee") or "",
            deadline=row.get("deadline"),
            priority=row.get("priority") or "medium",
            status=row.get("status") or "to-do",
            phase=row.get("phase") or "",
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "assignee": self.assignee,
            "deadline": self.deadline,
            "priority": self.priority,
            "status": self.status,
            "phase": self.phase,
        }


@dataclass(frozen=True)
class Check:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed

    def require(self) -> None:
        if not self.allowed:
            raise TransitionNotAllowed(self.reason or "Not allowed")


ALLOWED = Check(True)


_PHASE_BADGES = {
    PhaseStatus.ACTIVE: Badge("Active", "green"),
    PhaseStatus.PENDING: Badge("Pending", "yellow"),
    PhaseStatus.LOCKED: Badge("Locked", "gray"),
    PhaseStatus.UNLOCKED: Badge("Unlocked", "blue"),
}


def initial_phase_states(project_id: Optional[str], phases: Sequence[str]) -> List[PhaseState]:
    return [
        PhaseState(project_id=project_id, phase_name=name, phase_order=index)
        for index, name in enumerate(phases)
    ]


def _find(states: Iterable[PhaseState], phase: str) -> Optional[PhaseState]:
    for state in states:
        if state.phase_name == phase:
            return state
    return None


def ordered(states: Iterable[PhaseState]) -> List[PhaseState]:
    return sorted(states, key=lambda s: s.phase_order)


def active_phase(phases: Sequence[str], states: Sequence[PhaseState]) -> Optional[str]:
    """First phase (in board order) whose state is ``active``."""
    for phase in phases:
        state = _find(states, phase)
        if state is not None and state.status == PhaseStatus.ACTIVE:
            return phase
    return None


def initial_setup_complete(states: Sequence[PhaseState]) -> bool:
    return bool(states) and all(s.status != PhaseStatus.UNLOCKED for s in states)


def needs_initial_lock(states: Sequence[PhaseState]) -> bool:
    return not initial_setup_complete(states)


def can_change_task_status(task: Task, active: Optional[str], states: Sequence[PhaseState]) -> Check:
    state = _find(states, task.phase)
    if state is not None and state.status == PhaseStatus.LOCKED:
        return Check(False, "This phase is locked and cannot be modified")
    if active and task.phase != active:
        return Check(False, f"You can only modify tasks in the current active phase: {active}")
    return ALLOWED


def can_add_task_to_phase(
    phase: str,
    active: Optional[str],
    states: Sequence[PhaseState],
    setup_complete: bool,
) -> Check:
    state = _find(states, phase)
    if state is None:
        return ALLOWED
    if state.status == PhaseStatus.LOCKED:
        return Check(False, "This phase is locked and cannot be modified")
    if state.status == PhaseStatus.PENDING:
        return Check(False, "This phase is pending and cannot be modified")
    if not setup_complete and state.status == PhaseStatus.UNLOCKED:
        return ALLOWED
    if setup_complete:
        if not active:
            return Check(False, "No active phase. All phases are locked.")
        if phase != active:
            return Check(False, f"You can only add tasks to the current active phase: {active}")
    return ALLOWED


def can_request_lock(phase: str, tasks: Sequence[Task], states: Sequence[PhaseState]) -> Check:
    state = _find(states, phase)
    if state is not None and state.status == PhaseStatus.LOCKED:
        return Check(False, "Phase is already locked")
    if state is None or state.status != PhaseStatus.ACTIVE:
        return Check(False, "Only active phases can be locked")
    if state.freelancer_approved:
        return Check(False, "You have already requested lock. Waiting for client approval.")
    phase_tasks = [t for t in tasks if t.phase == phase]
    if not phase_tasks:
        return Check(False, "Phase must have at least one task before locking")
    if not all(t.status == "done" for t in phase_tasks):
        return Check(False, "All tasks in this phase must be completed before locking")
    return ALLOWED


def can_approve_lock(phase: str, states: Sequence[PhaseState]) -> Check:
    state = _find(states, phase)
    if state is None:
        return Check(False, "Phase state not found")
    if state.status == PhaseStatus.LOCKED:
        return Check(False, "Phase is already locked")
    if not state.freelancer_approved:
        return Check(False, "Freelancer must request lock first")
    if state.client_approved:
        return Check(False, "You have already approved. Phase will be locked.")
    return ALLOWED


def should_lock(state: PhaseState) -> bool:
    return state.freelancer_approved and state.client_approved and state.status != PhaseStatus.LOCKED


def can_lock_all(phases: Sequence[str], tasks: Sequence[Task]) -> Check:
    for phase in phases:
        if not any(t.phase == phase for t in tasks):
            return Check(False, f'Phase "{phase}" must have at least one task before locking all phases')
    return ALLOWED


def phase_status_badge(status) -> Badge:
    try:
        return _PHASE_BADGES[PhaseStatus(status)]
    except ValueError:
        return Badge("Unknown", "gray")


def next_phase(current: str, phases: Sequence[str]) -> Optional[str]:
    if current not in phases:
        return None
    index = list(phases).index(current)
    if index == len(phases) - 1:
        return None
    return phases[index + 1]


# ---------------------------------------------------------------- transitions


def lock_all_phases(phases: Sequence[str], states: Sequence[PhaseState], tasks: Sequence[Task]) -> List[PhaseState]:
    """Finish initial planning: first phase active, every other phase pending."""
    if initial_setup_complete(states):
        raise TransitionNotAllowed("Phases are already locked")
    can_lock_all(phases, tasks).require()
    updated: List[PhaseState] = []
    for index, phase in enumerate(phases):
        state = _find(states, phase) or PhaseState(phase_name=phase, phase_order=index)
        status = PhaseStatus.ACTIVE if index == 0 else PhaseStatus.PENDING
        updated.append(
            replace(state, phase_order=index, status=status, freelancer_approved=False, client_approved=False)
        )
    return updated


def request_lock(phase: str, tasks: Sequence[Task], states: Sequence[PhaseState]) -> PhaseState:
    """Freelancer side of the dual approval."""
    can_request_lock(phase, tasks, states).require()
    return replace(_find(states, phase), freelancer_approved=True)


def approve_lock(
    phase: str,
    states: Sequence[PhaseState],
    *,
    approved_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[PhaseState]:
    """Client side of the dual approval.

    Returns the approved phase, now ``locked``, followed by the phase right
    after it in board order (if any) switched to ``active`` with both approval
    flags cleared.
    """
    can_approve_lock(phase, states).require()
    current = replace(_find(states, phase), client_approved=True)
    if not should_lock(current):
        return [current]

    stamp = utc_iso(now or now_utc())
    locked = replace(current, status=PhaseStatus.LOCKED, locked_at=stamp, locked_by=approved_by)
    changed = [locked]

    names = [s.phase_name for s in ordered(states)]
    upcoming = next_phase(phase, names)
    if upcoming is not None:
        following = _find(states, upcoming)
        if following.status != PhaseStatus.LOCKED:
            changed.append(
                replace(
                    following,
                    status=PhaseStatus.ACTIVE,
                    freelancer_approved=False,
                    client_approved=False,
                )
            )
    return changed


def change_task_status(
    task: Task,
    status: str,
    active: Optional[str],
    states: Sequence[PhaseState],
) -> Task:
    if status not in TASK_STATUSES:
        raise TransitionNotAllowed(f"Unknown task status: {status}")
    can_change_task_status(task, active, states).require()
    return replace(task, status=status)


def merge(states: Sequence[PhaseState], changed: Iterable[PhaseState]) -> List[PhaseState]:
    by_name = {s.phase_name: s for s in changed}
    return [by_name.get(s.phase_name, s) for s in states]


# ---------------------------------------------------------------- metrics


@dataclass
class PhaseProgress:
    done: int = 0
    total: int = 0

    @property
    def percent(self) -> int:
        return round(self.done * 100 / self.total) if self.total else 0


def phase_progress(phase: str, tasks: Sequence[Task]) -> PhaseProgress:
    phase_tasks = [t for t in tasks if t.phase == phase]
    return PhaseProgress(done=sum(1 for t in phase_tasks if t.status == "done"), total=len(phase_tasks))


def is_overdue(task: Task, today: date) -> bool:
    due = local_date(task.deadline) if task.deadline else None
    return due is not None and due < today and task.status != "done"


def task_metrics(tasks: Sequence[Task], today: Optional[date] = None) -> Dict[str, int]:
    today = today or date.today()
    return {
        "total": len(tasks),
        "in_progress": sum(1 for t in tasks if t.status == "in-progress"),
        "completed": sum(1 for t in tasks if t.status == "done"),
        "overdue": sum(1 for t in tasks if is_overdue(t, today)),
    }


@dataclass
class BoardSnapshot:
    """Everything the tracking page needs to render one project board."""

    phases: List[str]
    states: List[PhaseState] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)

    @property
    def active(self) -> Optional[str]:
        return active_phase(self.phases, self.states)

    @property
    def setup_complete(self) -> bool:
        return initial_setup_complete(self.states)

    def state_for(self, phase: str) -> Optional[PhaseState]:
        return _find(self.states, phase)

    def tasks_for(self, phase: str) -> List[Task]:
        return [t for t in self.tasks if t.phase == phase]


def sort_key_deadline(task: Task):
    return parse_iso(task.deadline) or datetime.max.replace(tzinfo=UTC)


__all__ = [
    "PhaseStatus",
    "PhaseState",
    "Task",
    "Check",
    "Badge",
    "BoardSnapshot",
    "PHASE_MAPPING",
    "DEFAULT_PHASES",
    "TASK_STATUSES",
    "TASK_PRIORITIES",
    "phases_for_category",
    "initial_phase_states",
    "active_phase",
    "initial_setup_complete",
    "needs_initial_lock",
    "can_change_task_status",
    "can_add_task_to_phase",
    "can_request_lock",
    "can_approve_lock",
    "should_lock",
    "can_lock_all",
    "phase_status_badge",
    "next_phase",
    "lock_all_phases",
    "request_lock",
    "approve_lock",
    "change_task_status",
    "merge",
    "phase_progress",
    "task_metrics",
]
