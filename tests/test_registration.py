from __future__ import annotations

import importlib
import os
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from waitlist_admin.registration import RegistrationError, RegistrationRequest, register_account


_ENV_KEYS = [
    "APP_ENV",
    "AUTH_MODE",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_ANON_KEY",
    "RATE_LIMIT_ENABLED",
    "RATE_LIMIT_MAX_REQUESTS",
    "RATE_LIMIT_WINDOW_S",
]

NOW = datetime(2025, 1, 8, 12, 0)


@pytest.fixture(autouse=True)
def _restore_env_after_test():
    before = {k: os.environ.get(k) for k in _ENV_KEYS}
    yield
    for key, value in before.items():
        if value is None:
            os.environ.pop(key, None)
            continue
        os.environ[key] = value


def _reload_app(*, service_key: str | None = "service-role-key", rate_limit: bool = False) -> object:
    os.environ["APP_ENV"] = "test"
    os.environ["AUTH_MODE"] = "api_key"
    os.environ["SUPABASE_URL"] = "https://example.supabase.co"
    os.environ["SUPABASE_ANON_KEY"] = "anon-key"
    if service_key is None:
        os.environ.pop("SUPABASE_SERVICE_ROLE_KEY", None)
    else:
        os.environ["SUPABASE_SERVICE_ROLE_KEY"] = service_key
    os.environ["RATE_LIMIT_ENABLED"] = "1" if rate_limit else "0"
    os.environ["RATE_LIMIT_MAX_REQUESTS"] = "2"
    os.environ["RATE_LIMIT_WINDOW_S"] = "60"

    import waitlist_admin.auth as auth
    import waitlist_admin.config as config
    import waitlist_admin.main as main
    import waitlist_admin.sheets as sheets

    importlib.reload(config)
    importlib.reload(auth)
    importlib.reload(sheets)
    importlib.reload(main)
    return main


def _invites() -> list[dict]:
    return [
        {"id": "inv-ok", "email": "new@example.com", "used": False, "expires_at": "2025-02-01T00:00:00"},
        {"id": "inv-used", "email": "x@example.com", "used": True, "expires_at": "2025-02-01T00:00:00"},
        {"id": "inv-expired", "email": "y@example.com", "used": False, "expires_at": "2025-01-01T00:00:00"},
        {"id": "inv-used-expired", "email": "z@example.com", "used": True, "expires_at": "2024-01-01T00:00:00"},
        {"id": "inv-no-expiry", "email": "n@example.com", "used": False, "expires_at": None},
        {"id": "inv-bad-expiry", "email": "b@example.com", "used": False, "expires_at": "next week"},
    ]


def _req(invite_id: str = "inv-ok", **overrides) -> RegistrationRequest:
    fields = {"email": "new@example.com", "password": "s3cret!", "full_name": "New Agent", "invite_id": invite_id}
    fields.update(overrides)
    return RegistrationRequest(**fields)


def test_register_creates_account_profile_and_consumes_invite(store_factory) -> None:
    store = store_factory(invites=_invites())
    user_id = register_account(store, _req(), now=NOW)

    assert user_id == "user-1"
    assert store.profiles == [{"id": "user-1", "email": "new@example.com", "full_name": "New Agent", "is_admin": False}]
    assert store.invites["inv-ok"]["used"] is True


@pytest.mark.parametrize(
    "invite_id,detail",
    [
        ("missing", "Invite not found"),
        ("inv-used", "This invite has already been used"),
        ("inv-expired", "This invite has expired"),
        # "used" is checked before "expired".
        ("inv-used-expired", "This invite has already been used"),
        ("inv-no-expiry", "This invite has expired"),
        ("inv-bad-expiry", "This invite has expired"),
    ],
)
def test_register_invite_checks(store_factory, invite_id: str, detail: str) -> None:
    store = store_factory(invites=_invites())
    with pytest.raises(RegistrationError) as ei:
        register_account(store, _req(invite_id), now=NOW)
    assert ei.value.status_code == 400
    assert ei.value.detail == detail
    assert "create_auth_user" not in store.call_names()


def test_register_missing_fields_checked_before_invite(store_factory) -> None:
    store = store_factory(invites=_invites())
    with pytest.raises(RegistrationError) as ei:
        register_account(store, _req("missing", password=""), now=NOW)
    assert ei.value.detail == "Missing required fields"
    assert store.calls == []


def test_register_replaces_stale_account_with_same_email(store_factory) -> None:
    store = store_factory(
        invites=_invites(),
        auth_users=[{"id": "stale", "email": "NEW@example.com"}],
        profiles=[{"id": "stale", "email": "new@example.com", "full_name": "Stale", "is_admin": False}],
    )
    register_account(store, _req(), now=NOW)

    names = store.call_names()
    assert names.index("delete_auth_user") < names.index("create_auth_user")
    assert ("delete_auth_user", "stale") in store.calls
    assert [p["full_name"] for p in store.profiles] == ["New Agent"]


def test_register_create_failure_is_400(store_factory) -> None:
    store = store_factory(invites=_invites(), fail_on={"create_auth_user"})
    with pytest.raises(RegistrationError) as ei:
        register_account(store, _req(), now=NOW)
    assert ei.value.status_code == 400
    assert ei.value.detail.startswith("Failed to create account")
    assert store.invites["inv-ok"]["used"] is False


def test_register_profile_failure_still_succeeds(store_factory) -> None:
    store = store_factory(invites=_invites(), fail_on={"insert_profile"})
    assert register_account(store, _req(), now=NOW) == "user-1"
    assert store.invites["inv-ok"]["used"] is True


def test_register_endpoint_is_open_in_api_key_mode(store_factory) -> None:
    main = _reload_app()
    store = store_factory(invites=[{"id": "inv-open", "used": False, "expires_at": "2999-01-01T00:00:00"}])
    main.app.dependency_overrides[main.get_store] = lambda: store
    client = TestClient(main.app)

    r = client.post(
        "/api/register",
        json={"email": "a@example.com", "password": "pw", "full_name": "A", "invite_id": "inv-open"},
    )
    assert r.status_code == 200, r.text
    assert r.json() == {"success": True, "message": "Account created successfully"}


def test_register_endpoint_missing_fields_is_400(store_factory) -> None:
    main = _reload_app()
    main.app.dependency_overrides[main.get_store] = lambda: store_factory()
    client = TestClient(main.app)

    r = client.post("/api/register", json={"email": "a@example.com"})
    assert r.status_code == 400
    assert r.json() == {"error": "Missing required fields"}


def test_register_endpoint_requires_service_role_key(store_factory) -> None:
    main = _reload_app(service_key=None)
    main.app.dependency_overrides[main.get_store] = lambda: store_factory()
    client = TestClient(main.app)

    r = client.post(
        "/api/register",
        json={"email": "a@example.com", "password": "pw", "full_name": "A", "invite_id": "x"},
    )
    assert r.status_code == 500
    assert r.json() == {"error": "Server configuration error: Missing service role key"}


def test_register_endpoint_rate_limited(store_factory) -> None:
    main = _reload_app(rate_limit=True)
    main.app.dependency_overrides[main.get_store] = lambda: store_factory()
    client = TestClient(main.app)

    responses = [client.post("/api/register", json={}) for _ in range(3)]
    assert [r.status_code for r in responses] == [400, 400, 429]
    assert responses[2].json() == {"error": "Too many registration attempts"}
    assert 1 <= int(responses[2].headers["Retry-After"]) <= 60
