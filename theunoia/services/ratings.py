"""Project completion and freelancer ratings."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError

from theunoia import db_tables
from theunoia.errors import ServiceError, format_api_error
from theunoia.supabase_client import get_client
from theunoia.time_utils import now_utc, utc_iso
from theunoia.validation import RatingForm

__all__ = ["complete_project_with_rating", "list_ratings", "average_rating"]


def _client():
    client = get_client()
    if client is None:  # pragma: no cover
        raise ServiceError("Supabase client not configured")
    return client


def complete_project_with_rating(project_id: str, client_id: str, form: RatingForm) -> Dict[str, Any]:
    """Rate the accepted freelancer and mark the project ``completed``."""
    client = _client()
    try:
        response = (
            client.table(db_tables.BIDS)
            .select("id, freelancer_id")
            .eq("project_id", project_id)
            .eq("status", "accepted")
            .limit(1)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("complete_project", exc)) from exc
    rows = response.data or []
    if not rows:
        raise ServiceError("No accepted bid found for this project")
    freelancer_id = rows[0]["freelancer_id"]

    rating = {
        "project_id": project_id,
        "freelancer_id": freelancer_id,
        "client_id": client_id,
        "rating": form.rating,
        "feedback": form.feedback,
    }
    try:
        updated = (
            client.table(db_tables.PROJECTS)
            .update({"status": "completed", "completed_at": utc_iso(now_utc())})
            .eq("id", project_id)
            .eq("status", "in_progress")
            .execute()
        )
        if not updated.data:
            raise ServiceError("Only projects in progress can be marked complete")
        client.table(db_tables.RATINGS).insert(rating).execute()
    except APIError as exc:
        raise ServiceError(format_api_error("complete_project", exc)) from exc
    print(f"[ratings] project {project_id} completed, {form.rating}★ for {freelancer_id}")
    return {**rating, "project": updated.data[0]}


def list_ratings(freelancer_id: str) -> List[Dict[str, Any]]:
    try:
        response = (
            _client()
            .table(db_tables.RATINGS)
            .select("id, project_id, client_id, rating, feedback, created_at")
            .eq("freelancer_id", freelancer_id)
            .order("created_at", desc=True)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("list_ratings", exc)) from exc
    return response.data or []


def average_rating(ratings: List[Dict[str, Any]]) -> Optional[float]:
    values = [float(r["rating"]) for r in ratings if r.get("rating") is not None]
    if not values:
        return None
    return round(sum(values) / len(values), 1)
