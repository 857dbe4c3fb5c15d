"""Shared fakes for the Supabase client used across the service tests."""

from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class FakeQuery:
    """Chainable stand-in for a PostgREST request builder."""

    _CHAIN = (
        "select", "insert", "update", "upsert", "delete",
        "eq", "neq", "gte", "in_", "or_", "order", "limit", "ilike", "single", "maybe_single",
    )

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.ops = []

    def __getattr__(self, name):
        if name not in self._CHAIN:
            raise AttributeError(name)

        def _record(*args, **kwargs):
            self.ops.append((name, args, kwargs))
            return self

        return _record

    def op(self, name):
        for op_name, args, kwargs in self.ops:
            if op_name == name:
                return args, kwargs
        return None

    def filters(self):
        return {args[0]: args[1] for name, args, _ in self.ops if name == "eq"}

    @property
    def action(self):
        for name, _, _ in self.ops:
            if name in ("select", "insert", "update", "upsert", "delete"):
                return name
        return "rpc" if self.table.startswith("rpc:") else None

    def payload(self):
        for name, args, _ in self.ops:
            if name in ("insert", "update", "upsert"):
                return args[0]
        return None

    def execute(self):
        self.client.executed.append(self)
        result = self.client.respond(self)
        if isinstance(result, Exception):
            raise result
        return SimpleNamespace(data=result)


class FakeBucket:
    def __init__(self, storage, name):
        self.storage = storage
        self.name = name

    def upload(self, path, data, options=None):
        self.storage.uploads.append((self.name, path, data, options))
        if self.storage.fail_upload:
            raise RuntimeError("upload refused")
        return {"Key": f"{self.name}/{path}"}

    def get_public_url(self, path):
        return f"https://cdn.example/{self.name}/{path}"

    def create_signed_url(self, path, expires_in):
        return {"signedURL": f"https://cdn.example/signed/{self.name}/{path}?e={expires_in}"}


class FakeStorage:
    def __init__(self):
        self.uploads = []
        self.fail_upload = False

    def from_(self, bucket):
        return FakeBucket(self, bucket)


class FakeFunctions:
    def __init__(self):
        self.calls = []
        self.reply = b'{"success": true}'

    def invoke(self, name, invoke_options=None):
        self.calls.append((name, invoke_options))
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


class FakeClient:
    """Answers each executed query from per-table queues or a handler.

    ``queue(table, *results)`` appends results (row lists or exceptions) that
    are served in order; ``handle(table, fn)`` answers with ``fn(query)``.
    Anything unconfigured returns ``[]``.
    """

    def __init__(self):
        self.executed = []
        self._queues = {}
        self._handlers = {}
        self.storage = FakeStorage()
        self.functions = FakeFunctions()

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params=None):
        query = FakeQuery(self, f"rpc:{name}")
        query.ops.append(("rpc", (name, params or {}), {}))
        return query

    def queue(self, table, *results):
        self._queues.setdefault(table, []).extend(results)
        return self

    def handle(self, table, fn):
        self._handlers[table] = fn
        return self

    def respond(self, query):
        if query.table in self._handlers:
            return self._handlers[query.table](query)
        pending = self._queues.get(query.table)
        if pending:
            return pending.pop(0)
        return []

    def calls_to(self, table, action=None):
        return [q for q in self.executed if q.table == table and (action is None or q.action == action)]


def api_error(message="boom", code="XX000"):
    from postgrest.exceptions import APIError

    return APIError({"message": message, "code": code, "details": None, "hint": None})


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def use_client(monkeypatch, fake_client):
    """Patch ``get_client`` in the given service modules to return ``fake_client``."""

    def _use(*modules):
        for module in modules:
            monkeypatch.setattr(module, "get_client", lambda: fake_client)
        return fake_client

    return _use


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("THEUNOIA_DATA_DIR", str(tmp_path))
    return tmp_path
