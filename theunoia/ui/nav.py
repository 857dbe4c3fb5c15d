"""Tiny navigation helper for THEUNOiA pages."""

import streamlit as st


def go(page: str) -> None:
    """Switch to the given page by updating session state and forcing a rerun."""
    st.session_state["current_page"] = page
    st.rerun()


def open_project(project_id: str) -> None:
    st.session_state["selected_project_id"] = project_id
    go("Project")


__all__ = ["go", "open_project"]
