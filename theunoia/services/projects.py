"""Project (``user_projects``) reads, writes and in-memory search helpers."""
from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from postgrest.exceptions import APIError

from theunoia import config, db_tables
from theunoia.errors import InsufficientCredits, ServiceError, format_api_error
from theunoia.supabase_client import get_client
from theunoia.utils.supa import first_row
from theunoia.time_utils import now_utc, parse_iso
from theunoia.validation import PortfolioProjectForm, WorkRequirementForm

__all__ = [
    "list_projects",
    "get_project",
    "list_my_projects",
    "create_work_requirement",
    "add_portfolio_project",
    "update_project",
    "delete_project",
    "upload_project_file",
    "search_projects",
    "filter_projects",
    "recommend_projects",
    "bidding_closed",
    "is_open_for_bids",
    "deadline_label",
]

_PROJECT_COLUMNS = (
    "id, user_id, title, description, budget, timeline, category, subcategory, "
    "skills_required, status, project_type, bidding_deadline, cover_image_url, "
    "additional_images, attached_files, client_feedback, rating, completed_at, created_at"
)
_SEARCH_FIELDS = ("title", "description", "category", "subcategory")


def _client():
    client = get_client()
    if client is None:  # pragma: no cover
        raise ServiceError("Supabase client not configured")
    return client


def list_projects(limit: int = 200, project_type: str = "work_requirement") -> List[Dict[str, Any]]:
    """Newest projects of ``project_type`` across all users."""
    try:
        response = (
            _client()
            .table(db_tables.PROJECTS)
            .select(_PROJECT_COLUMNS)
            .eq("project_type", project_type)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("list_projects", exc)) from exc
    return response.data or []


def get_project(project_id: str) -> Optional[Dict[str, Any]]:
    if not project_id:
        return None
    try:
        response = (
            _client()
            .table(db_tables.PROJECTS)
            .select(_PROJECT_COLUMNS)
            .eq("id", project_id)
            .limit(1)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("get_project", exc)) from exc
    return first_row(response)


def list_my_projects(user_id: str, project_type: Optional[str] = None) -> List[Dict[str, Any]]:
    query = (
        _client()
        .table(db_tables.PROJECTS)
        .select(_PROJECT_COLUMNS)
        .eq("user_id", user_id)
        .order("created_at", desc=True)
    )
    if project_type:
        query = query.eq("project_type", project_type)
    try:
        response = query.execute()
    except APIError as exc:
        raise ServiceError(format_api_error("list_my_projects", exc)) from exc
    return response.data or []


def create_work_requirement(
    user_id: str,
    form: WorkRequirementForm,
    balance: int,
    *,
    cover_image_url: Optional[str] = None,
    attached_files: Sequence[Dict[str, Any]] = (),
) -> Dict[str, Any]:
    """Post a new open project. The backend trigger deducts the posting credits."""
    if balance < config.PROJECT_POST_CREDIT_COST:
        raise InsufficientCredits(
            f"You need at least {config.PROJECT_POST_CREDIT_COST} credits to post a task."
        )
    payload = {
        "user_id": user_id,
        "title": form.title,
        "description": form.description,
        "budget": form.budget,
        "timeline": form.timeline,
        "skills_required": form.skills_required,
        "category": form.category,
        "subcategory": form.subcategory,
        "bidding_deadline": form.bidding_deadline.isoformat() if form.bidding_deadline else None,
        "cover_image_url": cover_image_url,
        "attached_files": list(attached_files),
        "project_type": "work_requirement",
        "status": "open",
    }
    try:
        response = _client().table(db_tables.PROJECTS).insert(payload).execute()
    except APIError as exc:
        message = getattr(exc, "message", "") or str(exc)
        if "Insufficient credits" in message:
            raise InsufficientCredits(
                f"Insufficient credits. Posting a task costs {config.PROJECT_POST_CREDIT_COST} credits."
            ) from exc
        raise ServiceError(format_api_error("create_work_requirement", exc)) from exc
    rows = response.data or []
    if not rows:
        raise ServiceError("Supabase did not return the created project")
    return rows[0]


def add_portfolio_project(user_id: str, form: PortfolioProjectForm) -> Dict[str, Any]:
    payload = {
        "user_id": user_id,
        "title": form.title,
        "description": form.description,
        "category": form.category,
        "skills_required": form.skills_required,
        "client_feedback": form.client_feedback,
        "rating": form.rating,
        "completed_at": form.completed_at.isoformat() if form.completed_at else None,
        "project_type": "portfolio_project",
        "status": "completed",
    }
    try:
        response = _client().table(db_tables.PROJECTS).insert(payload).execute()
    except APIError as exc:
        raise ServiceError(format_api_error("add_portfolio_project", exc)) from exc
    rows = response.data or []
    if not rows:
        raise ServiceError("Supabase did not return the created project")
    return rows[0]


def update_project(project_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
    if not project_id:
        raise ValueError("project_id is required")
    allowed = {
        "title",
        "description",
        "budget",
        "timeline",
        "category",
        "subcategory",
        "skills_required",
        "bidding_deadline",
        "cover_image_url",
        "additional_images",
        "attached_files",
    }
    clean = {key: value for key, value in patch.items() if key in allowed}
    if not clean:
        raise ValueError("Nothing to update")
    try:
        response = (
            _client().table(db_tables.PROJECTS).update(clean).eq("id", project_id).execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("update_project", exc)) from exc
    rows = response.data or []
    if not rows:
        raise ServiceError("Project not found for update")
    return rows[0]


def delete_project(project_id: str) -> None:
    if not project_id:
        raise ValueError("project_id is required")
    try:
        _client().table(db_tables.PROJECTS).delete().eq("id", project_id).execute()
    except APIError as exc:
        raise ServiceError(format_api_error("delete_project", exc)) from exc


def upload_project_file(
    user_id: str,
    filename: str,
    data: bytes,
    content_type: str,
    *,
    bucket: str = db_tables.BUCKET_PROJECT_FILES,
) -> Dict[str, Any]:
    """Upload into ``{user_id}/{timestamp}-{name}`` and return the attachment record."""
    safe_name = "".join(ch if ch.isalnum() or ch in "._-" else "_" for ch in filename)
    path = f"{user_id}/{int(time.time() * 1000)}-{safe_name}"
    storage = _client().storage.from_(bucket)
    try:
        storage.upload(path, data, {"content-type": content_type})
    except Exception as exc:
        print(f"[projects] upload failed for {path}: {exc}")
        raise ServiceError(f"Upload failed: {exc}") from exc
    return {
        "name": filename,
        "path": path,
        "url": storage.get_public_url(path),
        "type": content_type,
        "size": len(data),
    }


# ------------------------------------------------------------- pure helpers


def _haystack(project: Dict[str, Any]) -> Iterable[str]:
    for key in _SEARCH_FIELDS:
        value = project.get(key)
        if value:
            yield str(value)
    for skill in project.get("skills_required") or []:
        yield str(skill)


def search_projects(projects: Iterable[Dict[str, Any]], query: str) -> List[Dict[str, Any]]:
    """Case-insensitive substring match over title, description, skills and categories."""
    term = (query or "").strip().lower()
    rows = list(projects)
    if not term:
        return rows
    return [p for p in rows if any(term in text.lower() for text in _haystack(p))]


def filter_projects(
    projects: Iterable[Dict[str, Any]],
    *,
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    status: Optional[str] = None,
) -> List[Dict[str, Any]]:
    rows = list(projects)
    if category:
        rows = [p for p in rows if p.get("category") == category]
    if subcategory:
        rows = [p for p in rows if p.get("subcategory") == subcategory]
    if status:
        rows = [p for p in rows if p.get("status") == status]
    return rows


def recommend_projects(
    projects: Iterable[Dict[str, Any]],
    user_skills: Iterable[str],
    *,
    exclude_user_id: Optional[str] = None,
    limit: int = config.RECOMMENDED_PROJECTS_LIMIT,
) -> List[Dict[str, Any]]:
    """Open projects whose skills overlap the user's (substring either way)."""
    skills = [s.strip().lower() for s in user_skills if s and s.strip()]
    if not skills:
        return []
    picked: List[Dict[str, Any]] = []
    for project in projects:
        if project.get("status") != "open" or project.get("user_id") == exclude_user_id:
            continue
        wanted = [str(s).lower() for s in project.get("skills_required") or []]
        if any(us in ws or ws in us for us in skills for ws in wanted):
            picked.append(project)
        if len(picked) >= limit:
            break
    return picked


def bidding_closed(
    project: Dict[str, Any],
    bids: Iterable[Dict[str, Any]] = (),
    now: Optional[datetime] = None,
) -> bool:
    """True once the project left ``open``, a bid was accepted, or the deadline passed."""
    if project.get("status") in ("in_progress", "completed"):
        return True
    if any(b.get("status") == "accepted" for b in bids):
        return True
    deadline = parse_iso(project.get("bidding_deadline"))
    if deadline is not None and deadline < (now or now_utc()):
        return True
    return False


def is_open_for_bids(project: Dict[str, Any], bids: Iterable[Dict[str, Any]] = (), now=None) -> bool:
    return project.get("status") == "open" and not bidding_closed(project, bids, now)


def deadline_label(project: Dict[str, Any], now: Optional[datetime] = None) -> str:
    deadline = parse_iso(project.get("bidding_deadline"))
    if deadline is None:
        return "No deadline"
    remaining = deadline - (now or now_utc())
    if remaining.total_seconds() <= 0:
        return "Bidding closed"
    days = remaining.days
    if days >= 1:
        return f"{days} day{'s' if days != 1 else ''} left"
    return f"{int(remaining.total_seconds() // 3600)}h left"
