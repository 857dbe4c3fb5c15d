"""Credit balances, the transaction ledger and credit policies."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from postgrest.exceptions import APIError

from theunoia import config, db_tables
from theunoia.errors import ServiceError, format_api_error
from theunoia.models import Badge, TokenBalances
from theunoia.supabase_client import get_client
from theunoia.validation import CreditAdjustmentForm

__all__ = [
    "get_balance",
    "list_transactions",
    "list_all_transactions",
    "list_balances",
    "filter_balances",
    "admin_modify_credits",
    "token_balances",
    "transaction_badge",
    "CREDIT_PACKAGES",
    "CreditPackage",
    "get_package",
    "checkout_summary",
    "FREE_TOKEN_POLICY",
    "free_token_status",
    "refund_eligibility",
]

SIGNUP_BONUS_CAP = 100


def _client():
    client = get_client()
    if client is None:  # pragma: no cover
        raise ServiceError("Supabase client not configured")
    return client


def get_balance(user_id: str) -> int:
    """Current credit balance from ``get_freelancer_credit_balance``."""
    if not user_id:
        return 0
    try:
        response = _client().rpc(db_tables.RPC_CREDIT_BALANCE, {"_user_id": user_id}).execute()
    except APIError as exc:
        raise ServiceError(format_api_error("get_balance", exc)) from exc
    data = response.data
    if isinstance(data, list):
        data = data[0] if data else 0
    if isinstance(data, dict):
        data = next(iter(data.values()), 0)
    try:
        return int(data or 0)
    except (TypeError, ValueError):
        return 0


def list_transactions(user_id: str, limit: int = config.RECENT_TRANSACTIONS_LIMIT) -> List[Dict[str, Any]]:
    try:
        response = (
            _client()
            .table(db_tables.CREDIT_TRANSACTIONS)
            .select("id, amount, balance_after, transaction_type, notes, created_at")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("list_transactions", exc)) from exc
    return response.data or []


def list_all_transactions(limit: int = config.ADMIN_TRANSACTIONS_LIMIT) -> List[Dict[str, Any]]:
    try:
        response = (
            _client()
            .table(db_tables.CREDIT_TRANSACTIONS)
            .select("id, user_id, amount, balance_after, transaction_type, notes, created_at")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
    except APIError as exc:
        raise ServiceError(format_api_error("list_all_transactions", exc)) from exc
    return response.data or []


def list_balances() -> List[Dict[str, Any]]:
    """Every user's balance joined with name/email, highest balance first."""
    client = _client()
    try:
        credits = (
            client.table(db_tables.FREELANCER_CREDITS)
            .select("user_id, balance, updated_at")
            .order("balance", desc=True)
            .execute()
        )
        ids = [row["user_id"] for row in credits.data or []]
        profiles = (
            client.table(db_tables.PROFILES)
            .select("user_id, first_name, last_name, email")
            .in_("user_id", ids)
            .execute()
            if ids
            else None
        )
    except APIError as exc:
        raise ServiceError(format_api_error("list_balances", exc)) from exc

    by_user = {row["user_id"]: row for row in (profiles.data if profiles else []) or []}
    rows = []
    for row in credits.data or []:
        profile = by_user.get(row["user_id"], {})
        name = " ".join(p for p in (profile.get("first_name"), profile.get("last_name")) if p)
        rows.append(
            {
                **row,
                "name": name or "Unknown user",
                "email": profile.get("email") or "",
            }
        )
    return rows


def filter_balances(rows: Iterable[Dict[str, Any]], query: str) -> List[Dict[str, Any]]:
    term = (query or "").strip().lower()
    rows = list(rows)
    if not term:
        return rows
    return [r for r in rows if term in (r.get("name") or "").lower() or term in (r.get("email") or "").lower()]


def admin_modify_credits(target_user_id: str, form: CreditAdjustmentForm) -> Any:
    """Grant or deduct credits through ``admin_modify_credits`` (admin role enforced server-side)."""
    if not target_user_id:
        raise ValueError("target_user_id is required")
    params = {
        "_target_user_id": target_user_id,
        "_amount": form.signed_amount,
        "_notes": form.notes,
    }
    try:
        response = _client().rpc(db_tables.RPC_MODIFY_CREDITS, params).execute()
    except APIError as exc:
        raise ServiceError(format_api_error("admin_modify_credits", exc)) from exc
    print(f"[credits] {form.direction} {form.credits} credits for {target_user_id}")
    return response.data


def token_balances(total: int, transactions: Iterable[Dict[str, Any]]) -> TokenBalances:
    """Split ``total`` into free (signup bonus, capped at 100) and paid credits."""
    total = max(int(total or 0), 0)
    bonus = sum(
        int(tx.get("amount") or 0)
        for tx in transactions
        if tx.get("transaction_type") == "signup_bonus" and (tx.get("amount") or 0) > 0
    )
    free = min(total, min(bonus, SIGNUP_BONUS_CAP))
    return TokenBalances(total=total, free=free, paid=total - free)


_TRANSACTION_BADGES = {
    "admin_grant": Badge("Admin Grant", "green"),
    "admin_deduct": Badge("Admin Deduct", "red"),
    "bid_placed": Badge("Bid Placed", "blue"),
    "project_posted": Badge("Task Posted", "orange"),
    "signup_bonus": Badge("Signup Bonus", "purple"),
    "refund": Badge("Refund", "yellow"),
}


def transaction_badge(transaction_type: Optional[str]) -> Badge:
    known = _TRANSACTION_BADGES.get(transaction_type or "")
    if known is not None:
        return known
    return Badge(transaction_type or "unknown", "gray")


@dataclass(frozen=True)
class CreditPackage:
    key: str
    name: str
    credits: int
    price: int
    popular: bool = False

    @property
    def price_per_credit(self) -> float:
        return self.price / self.credits

    @property
    def savings_percent(self) -> int:
        return round((1 - self.price_per_credit) * 100)


CREDIT_PACKAGES = (
    CreditPackage("starter", "Starter", 50, 50),
    CreditPackage("basic", "Basic", 100, 95),
    CreditPackage("professional", "Professional", 250, 225, popular=True),
    CreditPackage("enterprise", "Enterprise", 500, 425),
)


def get_package(key: str) -> Optional[CreditPackage]:
    for package in CREDIT_PACKAGES:
        if package.key == key:
            return package
    return None


def checkout_summary(package: CreditPackage, balance: int) -> Dict[str, Any]:
    """Numbers shown on the checkout page; payment collection itself is not wired up."""
    return {
        "package": package.name,
        "credits": package.credits,
        "price": package.price,
        "currency": config.CURRENCY,
        "balance_after": (balance or 0) + package.credits,
        "bids_covered": ((balance or 0) + package.credits) // config.BID_CREDIT_COST,
    }


FREE_TOKEN_POLICY = {
    "signup": 100,
    "profile_completion": 20,
    "first_five_bids": 20,
    "weekly": 50,
}


def free_token_status(
    transactions: Iterable[Dict[str, Any]],
    *,
    profile_complete: bool,
    bids_placed: int,
) -> List[Dict[str, Any]]:
    """Checklist of free-token rewards and whether each was earned."""
    types = {tx.get("transaction_type") for tx in transactions}
    return [
        {"label": "Signup bonus", "tokens": FREE_TOKEN_POLICY["signup"], "earned": "signup_bonus" in types},
        {
            "label": "Complete your profile",
            "tokens": FREE_TOKEN_POLICY["profile_completion"],
            "earned": profile_complete,
        },
        {
            "label": "Place your first 5 bids",
            "tokens": FREE_TOKEN_POLICY["first_five_bids"],
            "earned": bids_placed >= 5,
        },
        {"label": "Weekly active bonus", "tokens": FREE_TOKEN_POLICY["weekly"], "earned": False},
    ]


def refund_eligibility(bid: Dict[str, Any], project: Dict[str, Any]) -> str:
    """``eligible`` when the client cancelled, ``not_eligible`` when the freelancer lost, else ``other``."""
    if project.get("status") == "cancelled":
        return "eligible"
    if bid.get("status") == "rejected" or (
        project.get("status") in ("in_progress", "completed") and bid.get("status") != "accepted"
    ):
        return "not_eligible"
    return "other"
