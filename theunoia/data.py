"""Cached reads for pages.

Every page reads through these helpers and calls :func:`mutated` after a
write, which clears exactly the cached reads that write affects.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from theunoia import calendar_events as calendar_module
from theunoia import query_cache
from theunoia.query_cache import cached
from theunoia.services import bids, credits, messages, profiles, projects, ratings, tracking, verification


def mutated(mutation: str) -> None:
    query_cache.after(mutation)


@cached("credits")
def balance(user_id: str) -> int:
    return credits.get_balance(user_id)


@cached("transactions")
def transactions(user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
    return credits.list_transactions(user_id, limit)


@cached("transactions")
def all_transactions(limit: int = 50) -> List[Dict[str, Any]]:
    return credits.list_all_transactions(limit)


@cached("balances")
def balances() -> List[Dict[str, Any]]:
    return credits.list_balances()


@cached("projects")
def open_projects() -> List[Dict[str, Any]]:
    return projects.list_projects()


@cached("project")
def project(project_id: str) -> Optional[Dict[str, Any]]:
    return projects.get_project(project_id)


@cached("my_projects")
def my_projects(user_id: str) -> List[Dict[str, Any]]:
    return projects.list_my_projects(user_id)


@cached("bids")
def project_bids(project_id: str) -> List[Dict[str, Any]]:
    return bids.list_project_bids(project_id)


@cached("my_bids")
def my_bids(user_id: str) -> List[Dict[str, Any]]:
    return bids.list_my_bids(user_id)


@cached("verification")
def has_access(user_id: str) -> bool:
    return verification.has_freelancer_access(user_id)


@cached("verification")
def my_verification(user_id: str) -> Optional[Dict[str, Any]]:
    return verification.get_verification(user_id)


@cached("verifications")
def verifications() -> List[Dict[str, Any]]:
    return verification.list_verifications()


@cached("profile")
def profile(user_id: str) -> Optional[Dict[str, Any]]:
    return profiles.get_profile(user_id)


@cached("skills")
def skills(user_id: str) -> List[str]:
    return profiles.list_skills(user_id)


@cached("profile")
def _is_admin(user_id: str) -> bool:
    return profiles.is_admin(user_id)


def is_admin(user_id: Optional[str]) -> bool:
    if not user_id:
        return False
    return _is_admin(user_id)


@cached("profile")
def users() -> List[Dict[str, Any]]:
    return profiles.list_users()


@cached("ratings")
def freelancer_ratings(freelancer_id: str) -> List[Dict[str, Any]]:
    return ratings.list_ratings(freelancer_id)


@cached("conversations")
def conversations(user_id: str) -> List[Dict[str, Any]]:
    return messages.list_conversations(user_id)


@cached("messages")
def conversation_messages(conversation_id: str) -> List[Dict[str, Any]]:
    return messages.list_messages(conversation_id)


@cached("phases")
def _board(project_id: str, category: Optional[str]):
    return tracking.load_board({"id": project_id, "category": category})


def board(project: Dict[str, Any]):
    return _board(project["id"], project.get("category"))


@cached("activity")
def activity(project_id: str) -> List[Dict[str, Any]]:
    return tracking.list_activity(project_id)


@cached("colleges")
def colleges(query: str = "", state: Optional[str] = None) -> List[Dict[str, Any]]:
    return verification.list_colleges(query, state)


@cached("colleges")
def college_states() -> List[str]:
    return verification.list_college_states()


@cached("calendar")
def calendar_events(user_id: str):
    posted = [p for p in projects.list_my_projects(user_id) if p.get("project_type") != "portfolio_project"]
    return calendar_module.build_events(bids.list_my_bids(user_id), posted)
