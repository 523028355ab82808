from __future__ import annotations

import importlib
import os

import pytest
from fastapi.testclient import TestClient


_ENV_KEYS = [
    "APP_ENV",
    "AUTH_MODE",
    "API_KEYS_JSON",
    "API_KEYS",
    "API_KEY",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "RATE_LIMIT_ENABLED",
]


@pytest.fixture(autouse=True)
def _restore_env_after_test():
    before = {k: os.environ.get(k) for k in _ENV_KEYS}
    yield
    for key, value in before.items():
        if value is None:
            os.environ.pop(key, None)
            continue
        os.environ[key] = value


def _reload_app(
    *,
    auth_mode: str = "api_key",
    api_keys_json: str | None = '{"staff-key":"staff","admin-key":"admin"}',
    api_keys: str | None = None,
    api_key: str | None = None,
) -> object:
    env_overrides = {
        "APP_ENV": "test",
        "AUTH_MODE": auth_mode,
        "API_KEYS_JSON": api_keys_json,
        "API_KEYS": api_keys,
        "API_KEY": api_key,
        "SUPABASE_URL": "https://example.supabase.co",
        "SUPABASE_SERVICE_ROLE_KEY": "service-role-key",
        "RATE_LIMIT_ENABLED": "0",
    }
    for key, value in env_overrides.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value

    import waitlist_admin.auth as auth
    import waitlist_admin.config as config
    import waitlist_admin.main as main
    import waitlist_admin.sheets as sheets

    importlib.reload(config)
    importlib.reload(auth)
    importlib.reload(sheets)
    importlib.reload(main)
    return main


def _with_store(main, store) -> TestClient:
    main.app.dependency_overrides[main.get_store] = lambda: store
    return TestClient(main.app)


def test_api_key_missing_returns_401(store_factory):
    main = _reload_app()
    client = _with_store(main, store_factory())

    r = client.get("/api/waitlist/reports")
    assert r.status_code == 401
    assert r.json()["detail"] == "Missing API key"


def test_api_key_invalid_returns_401(store_factory):
    main = _reload_app()
    client = _with_store(main, store_factory())

    r = client.get("/api/waitlist/reports", headers={"x-api-key": "nope"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid API key"


def test_staff_key_reads_reports_but_not_user_admin(store_factory):
    main = _reload_app()
    client = _with_store(main, store_factory())

    reports = client.get("/api/waitlist/reports", headers={"x-api-key": "staff-key"})
    assert reports.status_code == 200, reports.text

    users = client.get("/api/admin/users", headers={"x-api-key": "staff-key"})
    assert users.status_code == 403
    assert users.json()["detail"] == "admin role required"


def test_admin_key_reaches_user_admin(store_factory):
    main = _reload_app()
    client = _with_store(main, store_factory())

    r = client.get("/api/admin/users", headers={"x-api-key": "admin-key"})
    assert r.status_code == 200
    assert r.json() == {"success": True, "users": []}


def test_open_paths_skip_api_key():
    main = _reload_app()
    client = TestClient(main.app)

    assert client.get("/health").status_code == 200
    assert client.get("/ready").status_code == 200


def test_api_key_mode_without_keys_is_a_server_error(store_factory):
    main = _reload_app(api_keys_json=None)
    client = _with_store(main, store_factory())

    r = client.get("/api/waitlist/reports", headers={"x-api-key": "anything"})
    assert r.status_code == 500
    assert "API_KEYS_JSON" in r.json()["detail"]


def test_api_keys_list_and_single_key_fallbacks(store_factory):
    main = _reload_app(api_keys_json=None, api_keys="k1:admin,k2")
    client = _with_store(main, store_factory())
    assert client.get("/api/admin/users", headers={"x-api-key": "k1"}).status_code == 200
    assert client.get("/api/admin/users", headers={"x-api-key": "k2"}).status_code == 403

    main = _reload_app(api_keys_json=None, api_key="solo")
    client = _with_store(main, store_factory())
    assert client.get("/api/admin/users", headers={"x-api-key": "solo"}).status_code == 200


def test_none_mode_allows_everything(store_factory):
    main = _reload_app(auth_mode="none")
    client = _with_store(main, store_factory())

    assert client.get("/api/admin/users").status_code == 200
    assert client.get("/api/waitlist/reports").status_code == 200
