"""Sidebar navigation; the only place that writes to ``st.sidebar``."""

from __future__ import annotations

from typing import Callable, Dict, Iterable, Optional

import streamlit as st


def build_sidebar(
    *,
    current: str,
    nav_keys: Iterable[str],
    nav_labels: Dict[str, str],
    nav_icons: Dict[str, str],
    app_title: str,
    app_tagline: str,
    app_version: str,
    go: Callable[[str], None],
    logout: Callable[[], None],
    credits: Optional[int] = None,
    streak: Optional[int] = None,
) -> None:
    with st.sidebar:
        st.markdown(f"## {app_title}")
        st.caption(app_tagline)

        for key in nav_keys:
            label = f"{nav_icons.get(key, '')} {nav_labels.get(key, key)}".strip()
            if st.button(
                label,
                key=f"nav__{key}",
                type="primary" if key == current else "secondary",
                use_container_width=True,
            ):
                if key != current:
                    go(key)

        st.divider()
        auth = st.session_state.get("auth", {})
        user = auth.get("user") or {}
        if auth.get("authenticated"):
            st.caption(user.get("email") or "")
            cols = st.columns(2)
            if credits is not None:
                cols[0].metric("Credits", credits)
            if streak is not None:
                cols[1].metric("Streak", f"🔥 {streak}")
            st.button(
                "Sign out",
                on_click=logout,
                type="secondary",
                key="sidebar-signout",
                use_container_width=True,
            )
        st.caption(f"{app_title} v{app_version}")
