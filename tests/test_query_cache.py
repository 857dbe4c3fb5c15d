import pytest

from theunoia import data, query_cache
from theunoia.query_cache import MUTATION_INVALIDATES


class Loader:
    def __init__(self):
        self.cleared = 0

    def clear(self):
        self.cleared += 1


@pytest.fixture
def families(monkeypatch):
    registry = {name: [Loader()] for name in ("bids", "credits", "profile", "phases", "activity")}
    monkeypatch.setattr(query_cache, "_FAMILIES", registry)
    return registry


def test_cached_loader_is_reused_until_cleared():
    calls = []

    @query_cache.cached("test_family")
    def load(user_id):
        calls.append(user_id)
        return len(calls)

    assert load("u1") == 1
    assert load("u1") == 1
    assert load("u2") == 2
    assert query_cache.invalidate("test_family") == 1
    assert load("u1") == 3


def test_mutation_clears_related_families(families):
    assert query_cache.after("place_bid") == 2
    assert families["bids"][0].cleared == 1
    assert families["credits"][0].cleared == 1
    assert families["profile"][0].cleared == 0


def test_phase_change_clears_board(families):
    assert query_cache.after("phase_change") == 2
    assert families["phases"][0].cleared == 1
    assert families["activity"][0].cleared == 1


def test_unknown_mutation_clears_everything(families):
    assert query_cache.after("something_new") == 5
    assert all(loader.cleared == 1 for group in families.values() for loader in group)


def test_data_loaders_register_their_families():
    registered = set(query_cache.families())
    assert {"bids", "credits", "phases", "calendar", "verification", "conversations"} <= registered
    assert data.balance in query_cache._FAMILIES["credits"]


def test_every_mutation_names_known_families():
    registered = set(query_cache.families())
    for mutation, targets in MUTATION_INVALIDATES.items():
        assert set(targets) <= registered, mutation
