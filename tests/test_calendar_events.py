from datetime import date

from theunoia import calendar_events as ce

BIDS = [
    {
        "id": "b1",
        "project_id": "p1",
        "created_at": "2026-10-18T20:00:00Z",
        "project": {"id": "p1", "title": "Poster design", "bidding_deadline": "2026-10-25T10:00:00Z"},
    },
    {
        "id": "b2",
        "project_id": "p1",
        "created_at": "2026-10-19T08:00:00Z",
        "project": {"id": "p1", "title": "Poster design", "bidding_deadline": "2026-10-25T10:00:00Z"},
    },
]
PROJECTS = [
    {"id": "p7", "title": "Exam notes", "created_at": "2026-10-02T09:00:00Z", "bidding_deadline": None},
    {"id": "p1", "title": "Poster design", "created_at": "2026-10-01T09:00:00Z"},
]


def test_build_events_dedupes_deadlines():
    events = ce.build_events(BIDS, PROJECTS)
    kinds = [e.type for e in events]
    assert kinds.count("bidding_deadline") == 1
    assert kinds.count("bid_made") == 2
    assert kinds.count("project_created") == 2
    assert events == sorted(events, key=lambda e: (e.day, e.at or ""))


def test_events_use_local_day():
    events = ce.build_events(BIDS[:1], [])
    bid = next(e for e in events if e.type == "bid_made")
    # 20:00 UTC is past midnight in Kolkata
    assert bid.day == date(2026, 10, 19)
    assert bid.title == "Bid on Poster design"
    assert bid.color == ce.EVENT_COLORS["bid_made"]


def test_events_by_day_and_upcoming():
    events = ce.build_events(BIDS, PROJECTS)
    grouped = ce.events_by_day(events)
    assert len(grouped[date(2026, 10, 19)]) == 2
    upcoming = ce.upcoming_deadlines(events, date(2026, 10, 20))
    assert [e.project_id for e in upcoming] == ["p1"]
    assert ce.upcoming_deadlines(events, date(2026, 11, 1)) == []


def test_month_grid_starts_on_sunday():
    weeks = ce.month_grid(2026, 10)
    assert weeks[0][:4] == [None, None, None, None]
    assert weeks[0][4] == date(2026, 10, 1)
    assert all(len(week) == 7 for week in weeks)


def test_to_fullcalendar_payload():
    event = ce.build_events([], PROJECTS[:1])[0]
    payload = ce.to_fullcalendar([event])[0]
    assert payload["start"] == "2026-10-02"
    assert payload["allDay"] is True
    assert payload["extendedProps"] == {"type": "project_created", "project_id": "p7"}
