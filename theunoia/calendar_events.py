"""Calendar events derived from a user's bids and posted projects."""

from __future__ import annotations

import calendar as _calendar
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from theunoia.time_utils import DEFAULT_TZ, local_date, to_tz, utc_iso

EVENT_COLORS = {
    "bid_made": "#3b82f6",  # blue
    "bidding_deadline": "#ef4444",  # red
    "project_created": "#22c55e",  # green
}
EVENT_LABELS = {
    "bid_made": "Bid placed",
    "bidding_deadline": "Bidding deadline",
    "project_created": "Task posted",
}


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    type: str
    title: str
    day: date
    at: Optional[str] = None
    project_id: Optional[str] = None

    @property
    def color(self) -> str:
        return EVENT_COLORS.get(self.type, "#6b7280")

    @property
    def label(self) -> str:
        return EVENT_LABELS.get(self.type, self.type)


def _event(kind: str, key: str, title: str, when: Any, project_id: Optional[str], tz: str) -> Optional[CalendarEvent]:
    day = local_date(when, tz)
    if day is None:
        return None
    return CalendarEvent(
        id=f"{kind}:{key}",
        type=kind,
        title=title,
        day=day,
        at=utc_iso(to_tz(when, tz)),
        project_id=project_id,
    )


def build_events(
    bids: Iterable[Dict[str, Any]],
    projects: Iterable[Dict[str, Any]],
    tz: str = DEFAULT_TZ,
) -> List[CalendarEvent]:
    """Bid, posting and deadline events; one deadline event per project."""
    events: List[CalendarEvent] = []
    deadlines: Dict[str, CalendarEvent] = {}

    for bid in bids:
        project = bid.get("project") or {}
        title = project.get("title") or "Untitled task"
        ev = _event("bid_made", str(bid.get("id")), f"Bid on {title}", bid.get("created_at"), bid.get("project_id"), tz)
        if ev:
            events.append(ev)
        pid = str(project.get("id") or bid.get("project_id") or "")
        if pid and pid not in deadlines:
            dl = _event("bidding_deadline", pid, f"Deadline: {title}", project.get("bidding_deadline"), pid, tz)
            if dl:
                deadlines[pid] = dl

    for project in projects:
        pid = str(project.get("id"))
        title = project.get("title") or "Untitled task"
        ev = _event("project_created", pid, f"Posted {title}", project.get("created_at"), pid, tz)
        if ev:
            events.append(ev)
        if pid not in deadlines:
            dl = _event("bidding_deadline", pid, f"Deadline: {title}", project.get("bidding_deadline"), pid, tz)
            if dl:
                deadlines[pid] = dl

    events.extend(deadlines.values())
    events.sort(key=lambda e: (e.day, e.at or ""))
    return events


def events_by_day(events: Iterable[CalendarEvent]) -> Dict[date, List[CalendarEvent]]:
    grouped: Dict[date, List[CalendarEvent]] = defaultdict(list)
    for ev in events:
        grouped[ev.day].append(ev)
    return dict(grouped)


def month_grid(year: int, month: int) -> List[List[Optional[date]]]:
    """Weeks of the month starting on Sunday, padded with ``None``."""
    cal = _calendar.Calendar(firstweekday=_calendar.SUNDAY)
    weeks = []
    for week in cal.monthdatescalendar(year, month):
        weeks.append([d if d.month == month else None for d in week])
    return weeks


def upcoming_deadlines(events: Iterable[CalendarEvent], today: date, limit: int = 5) -> List[CalendarEvent]:
    future = [e for e in events if e.type == "bidding_deadline" and e.day >= today]
    return sorted(future, key=lambda e: e.day)[:limit]


def to_fullcalendar(events: Iterable[CalendarEvent]) -> List[Dict[str, Any]]:
    return [
        {
            "id": ev.id,
            "title": ev.title,
            "start": ev.day.isoformat(),
            "allDay": True,
            "backgroundColor": ev.color,
            "borderColor": ev.color,
            "extendedProps": {"type": ev.type, "project_id": ev.project_id},
        }
        for ev in events
    ]


__all__ = [
    "CalendarEvent",
    "EVENT_COLORS",
    "build_events",
    "events_by_day",
    "month_grid",
    "upcoming_deadlines",
    "to_fullcalendar",
]
