"""Minimal Supabase client (PostgREST + GoTrue admin) over httpx.

Only the handful of calls this service makes are covered:

- table reads with ``eq`` / ``in`` filters and ordering
- insert / update / delete with the same filters
- auth admin: list, create and delete users

Every non-2xx response or transport failure raises :class:`StoreError` so
callers have exactly one exception type to handle.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

import httpx


class StoreError(RuntimeError):
    """Failure talking to the external store (Supabase)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _quote_value(value: object) -> str:
    s = str(value)
    # PostgREST reserved characters in list values need double quotes.
    if any(ch in s for ch in ',()".:\\ '):
        s = s.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{s}"'
    return s


def eq(value: object) -> str:
    if isinstance(value, bool):
        return f"eq.{'true' if value else 'false'}"
    return f"eq.{value}"


def in_(values: Iterable[object]) -> str:
    return "in.(" + ",".join(_quote_value(v) for v in values) + ")"


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or resp.reason_phrase
    if isinstance(body, dict):
        for key in ("message", "msg", "error_description", "error"):
            val = body.get(key)
            if isinstance(val, str) and val.strip():
                return val.strip()
    return resp.text[:200]


class SupabaseClient:
    def __init__(
        self,
        url: str,
        key: str,
        *,
        timeout_s: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.url = url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.url,
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout_s, connect=min(timeout_s, 10.0)),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "SupabaseClient":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        try:
            resp = self._client.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {type(e).__name__}: {e}") from e

        if resp.status_code >= 400:
            raise StoreError(_error_message(resp), status_code=resp.status_code)
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise StoreError(f"{method} {path} returned invalid JSON") from e

    # ---- PostgREST ----
    def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Mapping[str, str] | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, str] = {"select": columns}
        params.update(filters or {})
        if order:
            params["order"] = order
        rows = self._request("GET", f"/rest/v1/{table}", params=params)
        return list(rows or [])

    def insert(self, table: str, rows: dict[str, Any] | list[dict[str, Any]]) -> None:
        self._request("POST", f"/rest/v1/{table}", json=rows, headers={"Prefer": "return=minimal"})

    def update(self, table: str, values: Mapping[str, Any], *, filters: Mapping[str, str]) -> None:
        if not filters:
            raise ValueError("update requires at least one filter")
        self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=dict(filters),
            json=dict(values),
            headers={"Prefer": "return=minimal"},
        )

    def delete(self, table: str, *, filters: Mapping[str, str]) -> None:
        # PostgREST refuses unfiltered deletes too, but fail before the round trip.
        if not filters:
            raise ValueError("delete requires at least one filter")
        self._request("DELETE", f"/rest/v1/{table}", params=dict(filters), headers={"Prefer": "return=minimal"})

    # ---- GoTrue admin ----
    def list_auth_users(self, *, per_page: int = 1000) -> list[dict[str, Any]]:
        body = self._request("GET", "/auth/v1/admin/users", params={"per_page": str(per_page)})
        if isinstance(body, dict):
            return list(body.get("users") or [])
        return list(body or [])

    def create_auth_user(
        self,
        *,
        email: str,
        password: str,
        email_confirm: bool = True,
        user_metadata: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        body = self._request(
            "POST",
            "/auth/v1/admin/users",
            json={
                "email": email,
                "password": password,
                "email_confirm": email_confirm,
                "user_metadata": dict(user_metadata or {}),
            },
        )
        if isinstance(body, dict) and isinstance(body.get("user"), dict):
            return body["user"]
        return body or {}

    def delete_auth_user(self, user_id: str) -> None:
        self._request("DELETE", f"/auth/v1/admin/users/{user_id}")
