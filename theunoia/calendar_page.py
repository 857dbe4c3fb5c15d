"""Calendar of bids placed, tasks posted and bidding deadlines."""
from __future__ import annotations

from datetime import date
from typing import Any, List, Optional

import streamlit as st
from streamlit_calendar import calendar as fullcalendar

from theunoia import calendar_events as ce
from theunoia import data
from theunoia.supabase_client import current_user_id
from theunoia.ui import open_project, pop_toast

PAGE_KEY_PREFIX = "cal_"
WEEKDAYS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
DOT_COLORS = {"bid_made": "blue", "bidding_deadline": "red", "project_created": "green"}
CALENDAR_OPTIONS = {
    "initialView": "dayGridMonth",
    "headerToolbar": {"start": "title", "center": "", "end": "today prev,next dayGridMonth,listMonth"},
    "height": "auto",
    "firstDay": 0,
}


def k(suffix: str) -> str:
    return PAGE_KEY_PREFIX + suffix


def _selected_project(state: Any) -> Optional[str]:
    if not isinstance(state, dict):
        return None
    event = state.get("eventClick", {}).get("event") if isinstance(state.get("eventClick"), dict) else None
    if not isinstance(event, dict):
        return None
    return (event.get("extendedProps") or {}).get("project_id")


def _render_month_grid(events: List[ce.CalendarEvent], today: date) -> None:
    c1, c2 = st.columns(2)
    year = c1.number_input("Year", min_value=2020, max_value=2100, value=today.year, key=k("year"))
    month = c2.selectbox("Month", list(range(1, 13)), index=today.month - 1, key=k("month"))
    by_day = ce.events_by_day(events)
    header = st.columns(7)
    for col, name in zip(header, WEEKDAYS):
        col.markdown(f"**{name}**")
    for week in ce.month_grid(int(year), int(month)):
        cols = st.columns(7)
        for col, day in zip(cols, week):
            if day is None:
                col.write("")
                continue
            marker = "**" if day == today else ""
            lines = [f"{marker}{day.day}{marker}"]
            for ev in by_day.get(day, []):
                lines.append(f":{DOT_COLORS.get(ev.type, 'gray')}[●] {ev.title[:18]}")
            col.markdown("  \n".join(lines))


def show_calendar_page() -> None:
    pop_toast()
    user_id = current_user_id()
    st.header("📅 Calendar")
    events = data.calendar_events(user_id)
    today = date.today()

    legend = st.columns(len(ce.EVENT_LABELS))
    for col, (kind, label) in zip(legend, ce.EVENT_LABELS.items()):
        col.markdown(
            f"<span style='color:{ce.EVENT_COLORS[kind]}'>●</span> {label}",
            unsafe_allow_html=True,
        )

    tabs = st.tabs(["Calendar", "Month grid", "Upcoming deadlines"])
    with tabs[0]:
        state = fullcalendar(events=ce.to_fullcalendar(events), options=CALENDAR_OPTIONS, key=k("fc"))
        project_id = _selected_project(state)
        if project_id and st.button("Open task", key=k("open_selected")):
            open_project(project_id)
    with tabs[1]:
        _render_month_grid(events, today)
    with tabs[2]:
        upcoming = ce.upcoming_deadlines(events, today)
        if not upcoming:
            st.info("No upcoming deadlines.")
        for ev in upcoming:
            days = (ev.day - today).days
            cols = st.columns([4, 2, 1])
            cols[0].write(ev.title)
            cols[1].caption("today" if days == 0 else f"in {days} day{'s' if days != 1 else ''}")
            if ev.project_id and cols[2].button("Open", key=k(f"open_{ev.id}")):
                open_project(ev.project_id)


__all__ = ["show_calendar_page"]
