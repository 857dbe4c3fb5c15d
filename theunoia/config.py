"""Marketplace business settings shared by services and pages."""

from __future__ import annotations

import os
from enum import Enum

try:
    import streamlit as st
except Exception:  # pragma: no cover - allow headless usage (tests / CLI)
    st = None

BID_CREDIT_COST = 10
PROJECT_POST_CREDIT_COST = 10
MIN_BID_RATIO = 0.8

PROPOSAL_MIN = 20
PROPOSAL_MAX = 3000

ID_CARD_MAX_BYTES = 5 * 1024 * 1024
ID_CARD_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")
EDU_EMAIL_MARKERS = (".edu", ".ac.")

OTP_LENGTH = 6
OTP_TTL_MINUTES = 10
OTP_MAX_PER_HOUR = 3
OTP_RESEND_COOLDOWN_SECONDS = 60

RECENT_TRANSACTIONS_LIMIT = 10
ADMIN_TRANSACTIONS_LIMIT = 50
RECOMMENDED_PROJECTS_LIMIT = 4
TASK_ACTIVITY_LIMIT = 50

CURRENCY = "₹"

_POLICY_KEY = "THEUNOIA_SIBLING_BID_POLICY"


class SiblingBidPolicy(str, Enum):
    """What happens to the other bids on a project when one is accepted."""

    LEAVE_PENDING = "leave_pending"
    REJECT = "reject"


def _setting(key: str) -> str | None:
    if st is not None:
        try:
            value = st.secrets.get(key)
        except Exception:
            value = None
        if value:
            return str(value)
    return os.getenv(key)


def sibling_bid_policy() -> SiblingBidPolicy:
    raw = (_setting(_POLICY_KEY) or "").strip().lower()
    try:
        return SiblingBidPolicy(raw)
    except ValueError:
        if raw:
            print(f"[config] unknown {_POLICY_KEY}={raw!r}, using leave_pending")
        return SiblingBidPolicy.LEAVE_PENDING


__all__ = [
    "BID_CREDIT_COST",
    "PROJECT_POST_CREDIT_COST",
    "MIN_BID_RATIO",
    "SiblingBidPolicy",
    "sibling_bid_policy",
]
