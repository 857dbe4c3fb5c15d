# file: theunoia/app.py
from __future__ import annotations

import sys
import traceback
from pathlib import Path

import streamlit as st

PROJECT_ROOT = Path(__file__).resolve().parents[1]
# ``streamlit run theunoia/app.py`` puts only theunoia/ on sys.path
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from theunoia import __version__, data  # noqa: E402
from theunoia.login import login, logout  # noqa: E402
from theunoia.perf import render_perf, track  # noqa: E402
from theunoia.streak import record_activity  # noqa: E402
from theunoia.supabase_client import current_user_id  # noqa: E402
from theunoia.time_utils import now_utc  # noqa: E402
from theunoia.ui import build_sidebar, go  # noqa: E402

st.set_page_config(page_title="THEUNOiA", page_icon="🎓", layout="wide", initial_sidebar_state="expanded")


def _safe_import(what: str, mod: str, attr: str):
    """Import a page function, surfacing the failure on screen."""
    try:
        module = __import__(mod, fromlist=[attr])
        return getattr(module, attr)
    except Exception as e:  # surface the exact failure to the UI
        st.error(f"ImportError while importing {what} from {mod}.{attr}: {e}")
        st.code("".join(traceback.format_exception(type(e), e, e.__traceback__)))
        st.stop()


show_projects_page = _safe_import("projects", "theunoia.projects_page", "show_projects_page")
show_project_page = _safe_import("project", "theunoia.project_detail_page", "show_project_page")
show_bids_page = _safe_import("bids", "theunoia.bids_page", "show_bids_page")
show_credits_page = _safe_import("credits", "theunoia.credits_page", "show_credits_page")
show_verification_page = _safe_import("verification", "theunoia.verification_page", "show_verification_page")
show_tracking_page = _safe_import("tracking", "theunoia.tracking_page", "show_tracking_page")
show_calendar_page = _safe_import("calendar", "theunoia.calendar_page", "show_calendar_page")
show_messages_page = _safe_import("messages", "theunoia.messages_page", "show_messages_page")
show_profile_page = _safe_import("profile", "theunoia.profile_page", "show_profile_page")
show_admin_page = _safe_import("admin", "theunoia.admin_page", "show_admin_page")

APP_TITLE = "THEUNOiA"
APP_TAGLINE = "Student freelance marketplace"
APP_VERSION = __version__

# --------- Nav
NAV_KEYS = [
    "Projects",
    "Project",
    "Bids",
    "Credits",
    "Verification",
    "Tracking",
    "Calendar",
    "Messages",
    "Profile",
    "Admin",
]
NAV_LABELS = {
    "Projects": "Tasks",
    "Project": "Task details",
    "Bids": "My bids",
    "Credits": "Credits",
    "Verification": "Verification",
    "Tracking": "Tracking",
    "Calendar": "Calendar",
    "Messages": "Messages",
    "Profile": "Profile",
    "Admin": "Admin",
}
NAV_ICONS = {
    "Projects": "🗂️",
    "Project": "📄",
    "Bids": "💼",
    "Credits": "🪙",
    "Verification": "🎓",
    "Tracking": "📈",
    "Calendar": "📅",
    "Messages": "💬",
    "Profile": "👤",
    "Admin": "🛡️",
}
LEGACY_REMAP = {
    "projects": "Projects",
    "browse": "Projects",
    "project": "Project",
    "freelancer-bids": "Bids",
    "client-bids": "Bids",
    "buy-credits": "Credits",
    "checkout": "Credits",
    "verify": "Verification",
    "admin": "Admin",
}
PAGE_FUNCS = {
    "Projects": show_projects_page,
    "Project": show_project_page,
    "Bids": show_bids_page,
    "Credits": show_credits_page,
    "Verification": show_verification_page,
    "Tracking": show_tracking_page,
    "Calendar": show_calendar_page,
    "Messages": show_messages_page,
    "Profile": show_profile_page,
    "Admin": show_admin_page,
}
# reachable by navigation only
HIDDEN_KEYS = {"Project"}


def _visible_keys(user_id: str) -> list[str]:
    keys = [key for key in NAV_KEYS if key not in HIDDEN_KEYS]
    if not data.is_admin(user_id):
        keys.remove("Admin")
    return keys


def main() -> None:
    login()
    user_id = current_user_id()

    if "current_page" not in st.session_state:
        p = st.query_params.get("p", None)
        p = LEGACY_REMAP.get(p, p)
        st.session_state["current_page"] = p if p in NAV_KEYS else NAV_KEYS[0]

    current = st.session_state.get("current_page", NAV_KEYS[0])

    streak = None
    try:
        streak = record_activity(user_id, now_utc())["current_streak"]
    except OSError as exc:
        print(f"[app] streak not recorded: {exc}")

    build_sidebar(
        current=current,
        nav_keys=_visible_keys(user_id),
        nav_labels=NAV_LABELS,
        nav_icons=NAV_ICONS,
        app_title=APP_TITLE,
        app_tagline=APP_TAGLINE,
        app_version=APP_VERSION,
        go=go,
        logout=logout,
        credits=data.balance(user_id),
        streak=streak,
    )

    page_func = PAGE_FUNCS.get(current, lambda: st.error("Page not found."))
    with track(f"page:{current}"):
        page_func()
    render_perf()


if __name__ == "__main__":
    main()
