"""Cached reads grouped into families and cleared after writes.

Loaders in :mod:`theunoia.data` are ``st.cache_data`` functions registered
under a family name with :func:`cached`. Pages report writes with
``after("<mutation>")``; the mutation table below decides which families are
cleared. Nothing else in the app re-fetches after a write.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Tuple

import streamlit as st

DEFAULT_TTL = 60

MUTATION_INVALIDATES: Dict[str, Tuple[str, ...]] = {
    "place_bid": ("bids", "my_bids", "credits", "transactions", "calendar"),
    "accept_bid": ("bids", "my_bids", "projects", "project", "my_projects", "conversations", "calendar"),
    "reject_bid": ("bids", "my_bids"),
    "create_project": ("projects", "my_projects", "credits", "transactions", "calendar"),
    "update_project": ("projects", "project", "my_projects", "calendar"),
    "delete_project": ("projects", "project", "my_projects", "calendar"),
    "complete_project": ("projects", "project", "my_projects", "ratings"),
    "modify_credits": ("credits", "transactions", "balances"),
    "submit_verification": ("verification",),
    "review_verification": ("verification", "verifications"),
    "send_message": ("messages", "conversations"),
    "update_profile": ("profile", "skills"),
    "phase_change": ("phases", "activity"),
}

_FAMILIES: Dict[str, List[Any]] = {}


def cached(family: str, *, ttl: int = DEFAULT_TTL) -> Callable[[Callable[..., Any]], Any]:
    """``st.cache_data`` a loader and file it under ``family`` for invalidation."""

    def decorate(fn: Callable[..., Any]) -> Any:
        loader = st.cache_data(ttl=ttl, show_spinner=False)(fn)
        _FAMILIES.setdefault(family, []).append(loader)
        return loader

    return decorate


def invalidate(*families: str) -> int:
    """Clear every loader in ``families``; returns how many were cleared."""
    count = 0
    for family in families:
        for loader in _FAMILIES.get(family, ()):
            loader.clear()
            count += 1
    return count


def after(mutation: str) -> int:
    families = MUTATION_INVALIDATES.get(mutation, ())
    if not families:
        print(f"[query_cache] unknown mutation {mutation!r}; clearing everything")
        return clear()
    return invalidate(*families)


def clear() -> int:
    return invalidate(*list(_FAMILIES))


def families() -> List[str]:
    return sorted(_FAMILIES)


__all__ = ["MUTATION_INVALIDATES", "cached", "invalidate", "after", "clear", "families"]
