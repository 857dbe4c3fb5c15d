"""Public exports for the :mod:`theunoia.ui` package."""

from __future__ import annotations

from .feedback import pop_toast, set_toast, show_error
from .nav import go, open_project
from .sidebar import build_sidebar

__all__ = ["build_sidebar", "go", "open_project", "pop_toast", "set_toast", "show_error"]
