"""Daily activity streak kept in a small JSON file per machine."""

from __future__ import annotations

import json
import os
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from theunoia.time_utils import DEFAULT_TZ, parse_iso, to_tz, utc_iso

APP_FOLDER_NAME = "THEUNOiA"
STREAK_FILE = "daily_streak.json"
STREAK_WINDOW = timedelta(hours=24)


def _app_dir() -> str:
    """Return the directory for storing local app data and ensure it exists."""

    override = os.getenv("THEUNOIA_DATA_DIR")
    if override:
        base = override
    elif os.name == "nt" and os.getenv("APPDATA"):
        base = os.path.join(os.getenv("APPDATA"), APP_FOLDER_NAME)
    else:
        base = os.path.join(os.path.expanduser("~"), ".theunoia")
    os.makedirs(base, exist_ok=True)
    return base


def _file_path() -> str:
    return os.path.join(_app_dir(), STREAK_FILE)


def _read_all() -> Dict[str, Dict[str, Any]]:
    fp = _file_path()
    if not os.path.exists(fp):
        return {}
    try:
        with open(fp, "r", encoding="utf-8") as f:
            data = json.load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, ValueError) as exc:
        print(f"[streak] unreadable streak file, starting over: {exc}")
        bak = fp + f".bak.{int(datetime.now().timestamp())}"
        try:
            os.replace(fp, bak)
        except OSError:
            pass
        return {}


def _write_all(rows: Dict[str, Dict[str, Any]]) -> None:
    fp = _file_path()
    tmp = fp + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(rows, f, ensure_ascii=False, indent=2)
    os.replace(tmp, fp)


def get_streak(user_id: str) -> Optional[Dict[str, Any]]:
    return _read_all().get(user_id)


def _days_between(last: datetime, now: datetime, tz: str) -> int:
    return (to_tz(now, tz).date() - to_tz(last, tz).date()).days


def next_streak(data: Optional[Dict[str, Any]], now: datetime, tz: str = DEFAULT_TZ) -> Dict[str, Any]:
    """Streak record after an activity at ``now``.

    Same local day keeps the count, the next local day within 24 hours adds
    one, anything else restarts at 1. The longest streak is never lowered.
    """
    stamp = utc_iso(now)
    if not data:
        return {"current_streak": 1, "longest_streak": 1, "last_activity": stamp}

    last = parse_iso(data.get("last_activity"))
    current = int(data.get("current_streak") or 0)
    longest = int(data.get("longest_streak") or 0)
    if last is None:
        return {"current_streak": 1, "longest_streak": max(longest, 1), "last_activity": stamp}

    days = _days_between(last, now, tz)
    if days == 0:
        return {**data, "last_activity": stamp}
    if days == 1 and now - last < STREAK_WINDOW:
        current += 1
        return {"current_streak": current, "longest_streak": max(longest, current), "last_activity": stamp}
    return {"current_streak": 1, "longest_streak": max(longest, 1), "last_activity": stamp}


def current_streak(data: Optional[Dict[str, Any]], now: datetime, tz: str = DEFAULT_TZ) -> int:
    """Displayed streak; 0 once the last activity is outside the window."""
    if not data:
        return 0
    last = parse_iso(data.get("last_activity"))
    if last is None or now - last >= STREAK_WINDOW:
        return 0
    if _days_between(last, now, tz) in (0, 1):
        return int(data.get("current_streak") or 0)
    return 0


def record_activity(user_id: str, now: datetime, tz: str = DEFAULT_TZ) -> Dict[str, Any]:
    rows = _read_all()
    rows[user_id] = next_streak(rows.get(user_id), now, tz)
    _write_all(rows)
    return rows[user_id]


def clear_streak(user_id: str) -> bool:
    rows = _read_all()
    if rows.pop(user_id, None) is None:
        return False
    _write_all(rows)
    return True


__all__ = [
    "get_streak",
    "next_streak",
    "current_streak",
    "record_activity",
    "clear_streak",
]
