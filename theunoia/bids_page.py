"""The freelancer's bid inbox."""
from __future__ import annotations

import streamlit as st

from theunoia import config, data
from theunoia.services import bids as bid_svc
from theunoia.services.credits import refund_eligibility, transaction_badge
from theunoia.supabase_client import current_user_id
from theunoia.time_utils import format_date
from theunoia.ui import go, open_project, pop_toast

PAGE_KEY_PREFIX = "bd_"
FILTERS = ["all", "pending", "accepted", "rejected"]
REFUND_NOTES = {
    "eligible": "Credits refundable: the client cancelled this task.",
    "not_eligible": "Credits are not refunded for bids that were not selected.",
}


def k(suffix: str) -> str:
    return PAGE_KEY_PREFIX + suffix


def _render_credit_card(user_id: str) -> None:
    balance = data.balance(user_id)
    with st.container(border=True):
        c1, c2 = st.columns([2, 1])
        c1.metric("Credits", balance, help=f"Each bid costs {config.BID_CREDIT_COST} credits")
        if c2.button("Buy credits", key=k("buy")):
            go("Credits")
        recent = data.transactions(user_id, config.RECENT_TRANSACTIONS_LIMIT)
        for tx in recent[:5]:
            badge = transaction_badge(tx.get("transaction_type"))
            amount = tx.get("amount") or 0
            st.caption(f"{badge.markdown()} {'+' if amount > 0 else ''}{amount} · {format_date(tx.get('created_at'))}")


def show_bids_page() -> None:
    pop_toast()
    user_id = current_user_id()
    st.header("My bids")
    _render_credit_card(user_id)
    rows = data.my_bids(user_id)
    if not rows:
        st.info("You haven't placed any bids yet.")
        if st.button("Find tasks", key=k("find")):
            go("Projects")
        return

    counts = {status: sum(1 for b in rows if b.get("status") == status) for status in FILTERS[1:]}
    cols = st.columns(4)
    cols[0].metric("Total", len(rows))
    cols[1].metric("Pending", counts["pending"])
    cols[2].metric("Accepted", counts["accepted"])
    cols[3].metric("Rejected", counts["rejected"])

    status = st.segmented_control("Show", FILTERS, default="all", key=k("filter"))
    if status and status != "all":
        rows = [b for b in rows if b.get("status") == status]

    for bid in rows:
        project = bid.get("project") or {}
        badge = bid_svc.bid_status_badge(bid.get("status"))
        with st.container(border=True):
            top = st.columns([4, 2, 1])
            top[0].markdown(f"**{project.get('title') or 'Untitled task'}** {badge.markdown()}")
            top[1].markdown(
                f"{config.CURRENCY}{float(bid.get('amount') or 0):,.0f}"
                f" / {config.CURRENCY}{float(project.get('budget') or 0):,.0f}"
            )
            if project.get("id") and top[2].button("Open", key=k(f"open_{bid['id']}")):
                open_project(project["id"])
            st.caption(f"Placed {format_date(bid.get('created_at'))}")
            proposal = bid.get("proposal") or ""
            st.write(proposal[:300] + ("…" if len(proposal) > 300 else ""))
            note = REFUND_NOTES.get(refund_eligibility(bid, project))
            if note:
                st.caption(note)


__all__ = ["show_bids_page"]
