"""Bid placement, listing and the accept / reject transitions.

``accept_bid`` is the only code path that moves a bid to ``accepted``; every
page (project detail, the bids inbox, admin) goes through it.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from postgrest.exceptions import APIError

from theunoia import config, db_tables
from theunoia.config import SiblingBidPolicy
from theunoia.errors import (
    BidRejected,
    InsufficientCredits,
    ServiceError,
    ValidationFailed,
    api_error_code,
    format_api_error,
)
from theunoia.models import AcceptResult, Badge
from theunoia.services import messages
from theunoia.services.projects import bidding_closed
from theunoia.supabase_client import get_client
from theunoia.validation import BidForm, minimum_bid, parse_form

__all__ = [
    "place_bid",
    "can_open_bid_form",
    "list_project_bids",
    "list_my_bids",
    "has_bid",
    "accept_bid",
    "reject_bid",
    "bid_status_badge",
    "minimum_bid_message",
]

_DUPLICATE_KEY = "23505"
_PROFILE_FIELDS = ("first_name", "last_name", "email", "profile_picture_url")


def _client():
    client = get_client()
    if client is None:  # pragma: no cover
        raise ServiceError("Supabase client not configured")
    return client


def minimum_bid_message(budget) -> str:
    return f"Minimum bid is {config.CURRENCY}{minimum_bid(budget):.0f} (80% of project budget)"


def can_open_bid_form(
    balance: int,
    project: Dict[str, Any],
    *,
    user_id: Optional[str],
    already_bid: bool = False,
    has_access: bool = True,
    bids: Iterable[Dict[str, Any]] = (),
) -> Tuple[bool, Optional[str]]:
    """Whether the "Place bid" action is offered, and why not when it isn't."""
    if user_id and project.get("user_id") == user_id:
        return False, "This is your own project"
    if bidding_closed(project, bids):
        return False, "Bidding is closed for this project"
    if already_bid:
        return False, "You have already placed a bid on this project"
    if not has_access:
        return False, "Verify your student status to start bidding"
    if (balance or 0) < config.BID_CREDIT_COST:
        return False, (
            f"You need at least {config.BID_CREDIT_COST} credits to place a bid "
            f"(current balance: {balance or 0})"
        )
    return True, None


def has_bid(project_id: str, user_id: str) -> bool:
    try:
        response = (
            _client()
            .table(db_tables.BIDS)
            .select("id")
            .eq("project_id", project_id)
            .eq("freelancer_id", user_id)
            .limit(1)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("has_bid", exc)) from exc
    return bool(response.data)


def place_bid(
    user_id: str,
    project: Dict[str, Any],
    amount: Any,
    proposal: str,
    balance: int,
) -> Dict[str, Any]:
    """Validate and insert a ``pending`` bid; credits are deducted by the backend trigger."""
    form = parse_form(BidForm, amount=amount, proposal=proposal)
    budget = project.get("budget")
    if budget and form.amount < minimum_bid(budget):
        raise ValidationFailed(minimum_bid_message(budget))

    if (balance or 0) < config.BID_CREDIT_COST:
        raise InsufficientCredits(
            f"You need at least {config.BID_CREDIT_COST} credits to place a bid."
        )
    if project.get("user_id") == user_id:
        raise BidRejected("You cannot bid on your own project")
    if bidding_closed(project):
        raise BidRejected("Bidding is closed for this project")
    if has_bid(project["id"], user_id):
        raise BidRejected("You have already placed a bid on this project")

    payload = {
        "project_id": project["id"],
        "freelancer_id": user_id,
        "amount": form.amount,
        "proposal": form.proposal,
        "status": "pending",
    }
    try:
        response = _client().table(db_tables.BIDS).insert(payload).execute()
    except APIError as exc:
        message = getattr(exc, "message", "") or str(exc)
        if "Insufficient credits" in message:
            raise InsufficientCredits("Insufficient credits to place this bid.") from exc
        if api_error_code(exc) == _DUPLICATE_KEY:
            raise BidRejected("You have already placed a bid on this project") from exc
        raise ServiceError(format_api_error("place_bid", exc)) from exc
    rows = response.data or []
    if not rows:
        raise ServiceError("Supabase did not return the created bid")
    print(f"[bids] bid {rows[0].get('id')} placed on project {project['id']}")
    return rows[0]


def _with_freelancer(row: Dict[str, Any]) -> Dict[str, Any]:
    if "freelancer" in row:
        return row
    profile = {key: row.get(key) for key in _PROFILE_FIELDS if row.get(key) is not None}
    return {**row, "freelancer": profile or None}


def list_project_bids(project_id: str) -> List[Dict[str, Any]]:
    """Bids on a project with freelancer profile data, newest first.

    Falls back to a plain ``bids`` select (no profile data) when the RPC is
    unavailable to the caller.
    """
    client = _client()
    try:
        response = client.rpc(db_tables.RPC_BIDS_WITH_PROFILE, {"_project_id": project_id}).execute()
        return [_with_freelancer(row) for row in response.data or []]
    except APIError as exc:
        print(f"[bids] {db_tables.RPC_BIDS_WITH_PROFILE} failed, falling back: {exc}")

    try:
        response = (
            client.table(db_tables.BIDS)
            .select("*")
            .eq("project_id", project_id)
            .order("created_at", desc=True)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("list_project_bids", exc)) from exc
    return [{**row, "freelancer": None} for row in response.data or []]


def list_my_bids(user_id: str) -> List[Dict[str, Any]]:
    try:
        response = (
            _client()
            .table(db_tables.BIDS)
            .select(
                "id, project_id, amount, proposal, status, created_at, updated_at, "
                "user_projects(id, title, budget, status, bidding_deadline, user_id, category)"
            )
            .eq("freelancer_id", user_id)
            .order("created_at", desc=True)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("list_my_bids", exc)) from exc
    rows = []
    for row in response.data or []:
        project = row.pop(db_tables.PROJECTS, None) or {}
        rows.append({**row, "project": project})
    return rows


def _get_bid(client, bid_id: str) -> Dict[str, Any]:
    try:
        response = (
            client.table(db_tables.BIDS)
            .select("id, project_id, freelancer_id, amount, status")
            .eq("id", bid_id)
            .limit(1)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("accept_bid", exc)) from exc
    rows = response.data or []
    if not rows:
        raise ServiceError("Bid not found")
    return rows[0]


def _set_bid_status(client, bid_id: str, status: str, *, expected: str) -> List[Dict[str, Any]]:
    response = (
        client.table(db_tables.BIDS)
        .update({"status": status})
        .eq("id", bid_id)
        .eq("status", expected)
        .execute()
    )
    return response.data or []


def _release_bid(client, bid_id: str) -> None:
    """Put an ``accepted`` bid back to ``pending`` after a failed acceptance."""
    try:
        _set_bid_status(client, bid_id, "pending", expected="accepted")
    except APIError as exc:
        print(f"[bids] could not roll back bid {bid_id}: {exc}")


def accept_bid(
    bid_id: str,
    *,
    client_id: str,
    policy: Optional[SiblingBidPolicy] = None,
) -> AcceptResult:
    """Accept a pending bid on an open project owned by ``client_id``.

    Both writes are conditional (bid still ``pending``, project still
    ``open``) so two concurrent acceptances cannot both succeed; the loser's
    bid is put back to ``pending``. Other bids on the project are left alone
    or rejected depending on ``policy`` (default from
    :func:`theunoia.config.sibling_bid_policy`).
    """
    policy = policy or config.sibling_bid_policy()
    client = _client()
    bid = _get_bid(client, bid_id)
    if bid.get("status") != "pending":
        raise BidRejected("Only pending bids can be accepted")

    project_id = bid["project_id"]
    try:
        response = (
            client.table(db_tables.PROJECTS)
            .select("id, user_id, status")
            .eq("id", project_id)
            .limit(1)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("accept_bid", exc)) from exc
    project = (response.data or [None])[0]
    if project is None:
        raise ServiceError("Project not found")
    if project.get("user_id") != client_id:
        raise BidRejected("Only the project owner can accept bids")
    if project.get("status") != "open":
        raise BidRejected("This project already has an accepted bid")

    try:
        if not _set_bid_status(client, bid_id, "accepted", expected="pending"):
            raise BidRejected("This bid was already processed")
    except APIError as exc:
        raise ServiceError(format_api_error("accept_bid", exc)) from exc
    try:
        updated = (
            client.table(db_tables.PROJECTS)
            .update({"status": "in_progress"})
            .eq("id", project_id)
            .eq("status", "open")
            .execute()
        )
    except APIError as exc:
        _release_bid(client, bid_id)
        raise ServiceError(format_api_error("accept_bid", exc)) from exc

    if not updated.data:
        # another bid won the race; undo ours
        _release_bid(client, bid_id)
        raise BidRejected("This project already has an accepted bid")

    rejected: List[str] = []
    if policy == SiblingBidPolicy.REJECT:
        try:
            response = (
                client.table(db_tables.BIDS)
                .update({"status": "rejected"})
                .eq("project_id", project_id)
                .neq("id", bid_id)
                .eq("status", "pending")
                .execute()
            )
            rejected = [row.get("id") for row in response.data or []]
        except APIError as exc:
            print(f"[bids] rejecting other bids on {project_id} failed: {exc}")

    conversation_id = messages.ensure_conversation(
        project_id, client_id, bid["freelancer_id"], client=client
    )
    print(f"[bids] bid {bid_id} accepted; project {project_id} in progress ({policy.value})")
    return AcceptResult(
        bid={**bid, "status": "accepted"},
        project={**project, "status": "in_progress"},
        conversation_id=conversation_id,
        rejected_bid_ids=rejected,
    )


def reject_bid(bid_id: str) -> Dict[str, Any]:
    try:
        rows = _set_bid_status(_client(), bid_id, "rejected", expected="pending")
    except APIError as exc:
        raise ServiceError(format_api_error("reject_bid", exc)) from exc
    if not rows:
        raise BidRejected("Only pending bids can be rejected")
    return rows[0]


_BID_BADGES = {
    "accepted": Badge("Accepted", "green"),
    "rejected": Badge("Rejected", "red"),
}


def bid_status_badge(status: Optional[str]) -> Badge:
    return _BID_BADGES.get((status or "").lower(), Badge("Pending", "yellow"))
