"""Sidebar navigation constants in ``theunoia/app.py`` stay in step."""

from __future__ import annotations

import ast
from pathlib import Path

import pytest

APP_MODULE = Path(__file__).resolve().parents[1] / "theunoia" / "app.py"


@pytest.fixture(scope="module")
def nav():
    """Top-level nav assignments; literals are evaluated, PAGE_FUNCS keeps its keys."""
    tree = ast.parse(APP_MODULE.read_text(encoding="utf-8"))
    found = {}
    for node in tree.body:
        if not isinstance(node, ast.Assign) or not isinstance(node.targets[0], ast.Name):
            continue
        name = node.targets[0].id
        if name == "PAGE_FUNCS":
            found[name] = [key.value for key in node.value.keys]
        elif name in {"NAV_KEYS", "NAV_LABELS", "NAV_ICONS", "LEGACY_REMAP", "HIDDEN_KEYS"}:
            found[name] = ast.literal_eval(node.value)
    return found


def test_every_page_has_label_icon_and_renderer(nav):
    keys = nav["NAV_KEYS"]
    assert len(keys) == len(set(keys))
    assert set(nav["NAV_LABELS"]) == set(keys)
    assert set(nav["NAV_ICONS"]) == set(keys)
    assert set(nav["PAGE_FUNCS"]) == set(keys)


def test_default_page_is_projects_and_admin_is_removable(nav):
    # the sidebar drops "Admin" for non-admins and falls back to the first key
    assert nav["NAV_KEYS"][0] == "Projects"
    assert "Admin" in nav["NAV_KEYS"]


def test_legacy_links_land_on_known_pages(nav):
    assert set(nav["LEGACY_REMAP"].values()) <= set(nav["NAV_KEYS"])


def test_hidden_pages_are_known(nav):
    hidden = set(nav["HIDDEN_KEYS"])
    assert hidden <= set(nav["NAV_KEYS"])
    assert "Projects" not in hidden
