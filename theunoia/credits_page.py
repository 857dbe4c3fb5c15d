"""Credit balance, packages, token policy and the transaction history."""
from __future__ import annotations

import pandas as pd
import streamlit as st

from theunoia import config, data
from theunoia.services import credits as svc
from theunoia.services.profiles import profile_completion
from theunoia.supabase_client import current_user_id
from theunoia.time_utils import format_date
from theunoia.ui import pop_toast

PAGE_KEY_PREFIX = "cr_"
_CHECKOUT_KEY = PAGE_KEY_PREFIX + "checkout"


def k(suffix: str) -> str:
    return PAGE_KEY_PREFIX + suffix


def _render_balance(user_id: str) -> None:
    total = data.balance(user_id)
    history = data.transactions(user_id, config.ADMIN_TRANSACTIONS_LIMIT)
    split = svc.token_balances(total, history)
    cols = st.columns(3)
    cols[0].metric("Total credits", split.total)
    cols[1].metric("Free tokens", split.free)
    cols[2].metric("Paid tokens", split.paid)
    st.caption(
        f"Placing a bid costs {config.BID_CREDIT_COST} credits. "
        f"Posting a task costs {config.PROJECT_POST_CREDIT_COST}. "
        f"You can place {split.total // config.BID_CREDIT_COST} more bid(s)."
    )


def _render_packages(user_id: str) -> None:
    cols = st.columns(len(svc.CREDIT_PACKAGES))
    for col, package in zip(cols, svc.CREDIT_PACKAGES):
        with col.container(border=True):
            if package.popular:
                st.caption("⭐ Most popular")
            st.markdown(f"### {package.name}")
            st.markdown(f"**{package.credits} credits**")
            st.markdown(f"{config.CURRENCY}{package.price}")
            if package.savings_percent > 0:
                st.caption(f"Save {package.savings_percent}%")
            if st.button("Buy", key=k(f"buy_{package.key}"), use_container_width=True):
                st.session_state[_CHECKOUT_KEY] = package.key

    selected = svc.get_package(st.session_state.get(_CHECKOUT_KEY) or "")
    if selected is None:
        return
    summary = svc.checkout_summary(selected, data.balance(user_id))
    with st.container(border=True):
        st.markdown(f"#### Checkout: {summary['package']}")
        st.write(f"{summary['credits']} credits for {summary['currency']}{summary['price']}")
        st.write(f"Balance after purchase: **{summary['balance_after']}** ({summary['bids_covered']} bids)")
        st.info("Online payments are coming soon. Contact support to top up your credits.")
        if st.button("Cancel", key=k("checkout_cancel")):
            st.session_state.pop(_CHECKOUT_KEY, None)
            st.rerun()


def _render_policy(user_id: str) -> None:
    history = data.transactions(user_id, config.ADMIN_TRANSACTIONS_LIMIT)
    complete = profile_completion(data.profile(user_id), data.skills(user_id)) == 100
    rows = svc.free_token_status(history, profile_complete=complete, bids_placed=len(data.my_bids(user_id)))
    st.markdown("#### Free tokens")
    for row in rows:
        mark = "✅" if row["earned"] else "⬜"
        st.write(f"{mark} {row['label']}: +{row['tokens']}")
    st.markdown("#### Refunds")
    st.write(
        "Credits spent on a bid are refunded when the client cancels the task. "
        "Bids that are not selected are not refunded."
    )


def _render_history(user_id: str) -> None:
    rows = data.transactions(user_id, config.RECENT_TRANSACTIONS_LIMIT)
    if not rows:
        st.info("No transactions yet.")
        return
    frame = pd.DataFrame(rows)
    frame["date"] = frame["created_at"].map(format_date)
    frame["type"] = frame["transaction_type"].map(lambda t: svc.transaction_badge(t).label)
    frame["amount"] = frame["amount"].map(lambda a: f"{'+' if (a or 0) > 0 else ''}{a}")
    columns = [c for c in ("date", "type", "amount", "balance_after", "notes") if c in frame]
    st.dataframe(frame[columns], hide_index=True, use_container_width=True)


def show_credits_page() -> None:
    pop_toast()
    user_id = current_user_id()
    st.header("Credits")
    _render_balance(user_id)
    tabs = st.tabs(["Buy credits", "Token policy", "History"])
    with tabs[0]:
        _render_packages(user_id)
    with tabs[1]:
        _render_policy(user_id)
    with tabs[2]:
        _render_history(user_id)


__all__ = ["show_credits_page"]
