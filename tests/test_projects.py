from datetime import date, datetime, timedelta, timezone

import pytest

from theunoia.errors import InsufficientCredits, ServiceError
from theunoia.services import projects, ratings
from theunoia.validation import RatingForm, WorkRequirementForm, parse_form

from conftest import api_error

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

CATALOGUE = [
    {
        "id": "p1",
        "user_id": "c1",
        "title": "Landing page in React",
        "description": "Single page for a fest",
        "category": "Web, Tech & Development",
        "skills_required": ["React", "Tailwind"],
        "status": "open",
    },
    {
        "id": "p2",
        "user_id": "c2",
        "title": "Logo design",
        "description": "Minimal logo",
        "category": "Design & Creative",
        "skills_required": ["Figma"],
        "status": "open",
    },
    {
        "id": "p3",
        "user_id": "c3",
        "title": "Data cleaning",
        "description": "Clean survey sheets with pandas",
        "category": "AI & Automation",
        "skills_required": ["Python"],
        "status": "in_progress",
    },
]


def _form(**overrides):
    values = dict(
        title="Logo for a campus cafe",
        description="Need a modern logo and two colour variants for print.",
        budget=2500,
        timeline="2 weeks",
        skills_required="Figma, Branding",
        category="Design & Creative",
        bidding_deadline=date(2026, 11, 1),
    )
    values.update(overrides)
    return parse_form(WorkRequirementForm, **values)


def test_search_matches_skills_and_text():
    assert [p["id"] for p in projects.search_projects(CATALOGUE, "react")] == ["p1"]
    assert [p["id"] for p in projects.search_projects(CATALOGUE, "PANDAS")] == ["p3"]
    assert projects.search_projects(CATALOGUE, "  ") == CATALOGUE


def test_filter_projects():
    assert projects.filter_projects(CATALOGUE, category="Design & Creative") == [CATALOGUE[1]]
    assert projects.filter_projects(CATALOGUE, status="in_progress") == [CATALOGUE[2]]


def test_recommendations_use_open_projects_of_others():
    picked = projects.recommend_projects(CATALOGUE, ["react.js", "python"], exclude_user_id="c2")
    assert [p["id"] for p in picked] == ["p1"]
    assert projects.recommend_projects(CATALOGUE, []) == []
    assert projects.recommend_projects(CATALOGUE, ["figma"], exclude_user_id="c2") == []


def test_bidding_closed():
    open_project = {"status": "open", "bidding_deadline": (NOW + timedelta(days=2)).isoformat()}
    assert not projects.bidding_closed(open_project, now=NOW)
    assert projects.bidding_closed(open_project, [{"status": "accepted"}], now=NOW)
    assert projects.bidding_closed({"status": "in_progress"}, now=NOW)
    expired = {"status": "open", "bidding_deadline": (NOW - timedelta(minutes=1)).isoformat()}
    assert projects.bidding_closed(expired, now=NOW)
    assert not projects.is_open_for_bids({"status": "cancelled"}, now=NOW)


def test_deadline_label():
    assert projects.deadline_label({}, NOW) == "No deadline"
    assert projects.deadline_label({"bidding_deadline": (NOW + timedelta(days=3, hours=1)).isoformat()}, NOW) == (
        "3 days left"
    )
    assert projects.deadline_label({"bidding_deadline": (NOW + timedelta(hours=5)).isoformat()}, NOW) == "5h left"
    assert projects.deadline_label({"bidding_deadline": NOW.isoformat()}, NOW) == "Bidding closed"


def test_create_work_requirement_payload(use_client):
    client = use_client(projects)
    client.queue("user_projects", [{"id": "p9", "status": "open"}])
    row = projects.create_work_requirement("c1", _form(), balance=30)
    assert row["id"] == "p9"
    payload = client.calls_to("user_projects", "insert")[0].payload()
    assert payload["project_type"] == "work_requirement"
    assert payload["status"] == "open"
    assert payload["skills_required"] == ["Figma", "Branding"]
    assert payload["bidding_deadline"] == "2026-11-01"


def test_create_work_requirement_credit_checks(use_client):
    client = use_client(projects)
    with pytest.raises(InsufficientCredits):
        projects.create_work_requirement("c1", _form(), balance=5)
    assert client.executed == []

    client.queue("user_projects", api_error("Insufficient credits to post", "P0001"))
    with pytest.raises(InsufficientCredits, match="costs 10 credits"):
        projects.create_work_requirement("c1", _form(), balance=50)


def test_update_project_whitelists_columns(use_client):
    client = use_client(projects)
    client.queue("user_projects", [{"id": "p1", "title": "New"}])
    projects.update_project("p1", {"title": "New", "status": "completed", "user_id": "x"})
    assert client.calls_to("user_projects", "update")[0].payload() == {"title": "New"}
    with pytest.raises(ValueError):
        projects.update_project("p1", {"status": "completed"})


def test_upload_project_file_record(use_client):
    client = use_client(projects)
    record = projects.upload_project_file("c1", "brief v2.pdf", b"%PDF", "application/pdf")
    assert record["name"] == "brief v2.pdf"
    assert record["path"].startswith("c1/") and record["path"].endswith("-brief_v2.pdf")
    assert record["url"] == f"https://cdn.example/project-files/{record['path']}"
    assert client.storage.uploads[0][0] == "project-files"


def test_complete_project_with_rating(use_client):
    client = use_client(ratings)
    client.queue("bids", [{"id": "b1", "freelancer_id": "f1"}])
    client.queue("user_projects", [{"id": "p1", "status": "completed"}])
    result = ratings.complete_project_with_rating("p1", "c1", parse_form(RatingForm, rating=4, feedback="Quick"))
    assert result["freelancer_id"] == "f1"
    assert result["project"]["status"] == "completed"
    stored = client.calls_to("freelancer_ratings", "insert")[0].payload()
    assert stored == {"project_id": "p1", "freelancer_id": "f1", "client_id": "c1", "rating": 4, "feedback": "Quick"}


def test_complete_project_requires_in_progress(use_client):
    client = use_client(ratings)
    client.queue("bids", [{"id": "b1", "freelancer_id": "f1"}])
    client.queue("user_projects", [])
    with pytest.raises(ServiceError, match="in progress"):
        ratings.complete_project_with_rating("p1", "c1", parse_form(RatingForm, rating=5))
    assert client.calls_to("freelancer_ratings") == []


def test_complete_project_without_accepted_bid(use_client):
    use_client(ratings)
    with pytest.raises(ServiceError, match="No accepted bid"):
        ratings.complete_project_with_rating("p1", "c1", parse_form(RatingForm, rating=5))


def test_average_rating():
    assert ratings.average_rating([{"rating": 5}, {"rating": 4}, {"rating": None}]) == 4.5
    assert ratings.average_rating([]) is None
