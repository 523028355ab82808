from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from typing import Callable, Literal

from fastapi import HTTPException, Request

from . import config

Role = Literal["staff", "admin"]
AuthMode = Literal["none", "api_key"]

_ROLE_RANK: dict[Role, int] = {
    "staff": 1,
    "admin": 2,
}

# Health probes, invite registration and the cron relay (bearer-checked on its own)
# must work without an API key.
_OPEN_PATHS = {"/health", "/ready", "/api/register", "/api/cron/match-alerts"}


@dataclass(frozen=True)
class AuthContext:
    principal: str
    role: Role
    mode: AuthMode
    authenticated: bool


@dataclass(frozen=True)
class AuthError(Exception):
    status_code: int
    detail: str


def _normalize_role(value: str | None, default: Role = "staff") -> Role:
    if value is None:
        return default
    raw = value.strip().lower()
    if raw in _ROLE_RANK:
        return raw  # type: ignore[return-value]
    return default


def _mask_key(api_key: str) -> str:
    if len(api_key) <= 8:
        return "***"
    digest = hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:8]
    return f"{api_key[:4]}...{digest}"


def _parse_api_keys_json(raw: str) -> dict[str, Role]:
    try:
        data = json.loads(raw)
    except ValueError:
        return {}
    if not isinstance(data, dict):
        return {}

    out: dict[str, Role] = {}
    for key, role in data.items():
        k = str(key).strip()
        if k:
            out[k] = _normalize_role(str(role))
    return out


def _parse_api_keys(raw: str) -> dict[str, Role]:
    out: dict[str, Role] = {}
    for token in raw.split(","):
        t = token.strip()
        if not t:
            continue
        key, sep, role = t.partition(":")
        k = key.strip()
        if not k:
            continue
        out[k] = _normalize_role(role) if sep else "staff"
    return out


def _api_key_roles() -> dict[str, Role]:
    # Priority:
    # 1) API_KEYS_JSON ({"key": "admin"|"staff"})
    # 2) API_KEYS (comma-separated; optional key:role)
    # 3) API_KEY (single key; admin)
    mapped = _parse_api_keys_json(os.getenv("API_KEYS_JSON", ""))
    if mapped:
        return mapped

    mapped = _parse_api_keys(os.getenv("API_KEYS", ""))
    if mapped:
        return mapped

    single = (os.getenv("API_KEY") or "").strip()
    if not single:
        return {}
    return {single: "admin"}


def effective_auth_mode() -> AuthMode:
    mode = config.settings.auth_mode
    return "api_key" if mode == "api_key" else "none"


def resolve_auth_context(request: Request) -> AuthContext:
    mode = effective_auth_mode()

    if mode == "none":
        return AuthContext(principal="anonymous", role="admin", mode="none", authenticated=False)

    if request.url.path in _OPEN_PATHS:
        return AuthContext(principal="anonymous", role="staff", mode=mode, authenticated=False)

    key = (request.headers.get("x-api-key") or "").strip()
    if not key:
        raise AuthError(status_code=401, detail="Missing API key")

    roles = _api_key_roles()
    if not roles:
        raise AuthError(status_code=500, detail="AUTH_MODE=api_key requires API_KEYS_JSON, API_KEYS, or API_KEY")

    role = roles.get(key)
    if role is None:
        raise AuthError(status_code=401, detail="Invalid API key")

    return AuthContext(
        principal=f"api_key:{_mask_key(key)}",
        role=role,
        mode="api_key",
        authenticated=True,
    )


def _ensure_ctx(request: Request) -> AuthContext:
    existing = getattr(request.state, "auth_context", None)
    if isinstance(existing, AuthContext):
        return existing
    ctx = resolve_auth_context(request)
    request.state.auth_context = ctx
    return ctx


def require_role(required: Role) -> Callable[[Request], AuthContext]:
    def _dep(request: Request) -> AuthContext:
        try:
            ctx = _ensure_ctx(request)
        except AuthError as e:
            request.state.auth_denied_reason = e.detail
            raise HTTPException(status_code=e.status_code, detail=e.detail) from e

        if _ROLE_RANK.get(ctx.role, 0) < _ROLE_RANK[required]:
            detail = f"{required} role required"
            request.state.auth_denied_reason = detail
            raise HTTPException(status_code=403, detail=detail)
        return ctx

    return _dep
