from types import SimpleNamespace

import httpx
import pytest

from theunoia.utils import supa
from theunoia.utils.supa import SupabaseConfigError, SupabaseConnectionError


@pytest.fixture
def no_secrets(monkeypatch):
    monkeypatch.setattr(supa, "_secret", lambda name: None)
    for env in ("SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_SERVICE_ROLE_KEY"):
        monkeypatch.delenv(env, raising=False)


def test_read_settings_from_env(no_secrets, monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    settings = supa.read_settings()
    assert settings.url == "https://example.supabase.co"
    assert settings.anon_key == "anon-key"
    assert settings.service_role_key is None


def test_read_settings_requires_url(no_secrets):
    with pytest.raises(SupabaseConfigError, match="Supabase secrets missing"):
        supa.read_settings()


def test_service_client_requires_service_key(no_secrets, monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    with pytest.raises(SupabaseConfigError, match="SUPABASE_SERVICE_ROLE_KEY"):
        supa.service_client()


def test_user_client_forwards_jwt(no_secrets, monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    seen = {}

    def _create(url, key, options=None):
        seen.update(url=url, key=key, auth=options.headers.get("Authorization"))
        return object()

    monkeypatch.setattr(supa, "create_client", _create)
    supa.user_client("Bearer user-jwt")
    assert seen == {"url": "https://example.supabase.co", "key": "anon-key", "auth": "Bearer user-jwt"}


def test_create_supabase_client_http_status_error(monkeypatch):
    request = httpx.Request("GET", "https://example.supabase.co")
    response = httpx.Response(404, request=request, text="Not Found")

    def _raise_http_status(*args, **kwargs):  # pragma: no cover - helper for test
        raise httpx.HTTPStatusError("not found", request=request, response=response)

    monkeypatch.setattr(supa, "create_client", _raise_http_status)

    with pytest.raises(SupabaseConfigError) as excinfo:
        supa.create_supabase_client("https://example.supabase.co", "anon-key")

    assert "HTTP 404" in str(excinfo.value)


def test_create_supabase_client_connection_error(monkeypatch):
    def _raise_connect(*args, **kwargs):  # pragma: no cover - helper for test
        raise httpx.ConnectError("offline")

    monkeypatch.setattr(supa, "create_client", _raise_connect)

    with pytest.raises(SupabaseConnectionError):
        supa.create_supabase_client("https://example.supabase.co", "anon-key")


def test_first_row_shapes():
    assert supa.first_row(SimpleNamespace(data=[{"id": 1}, {"id": 2}])) == {"id": 1}
    assert supa.first_row(SimpleNamespace(data={"id": 3})) == {"id": 3}
    assert supa.first_row(SimpleNamespace(data=[])) is None
    assert supa.first_row([{"id": 4}]) == {"id": 4}
    assert supa.first_row(None) is None
