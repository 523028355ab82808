from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Iterator

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .auth import AuthContext, AuthError, effective_auth_mode, require_role, resolve_auth_context
from .config import settings
from .cron import cron_authorized, trigger_match_alerts
from .maintenance import run_expiry
from .observability import (
    Timer,
    configure_logging,
    log_event,
    log_http_request,
    request_id_from_headers,
)
from .ratelimit import AttemptLimiter
from .registration import RegistrationError, RegistrationRequest, register_account
from .reports import build_report
from .sheets import SheetsError, fetch_available_units, fetch_directory, fetch_properties
from .storage import SupabaseRepository, get_repository
from .supabase_client import StoreError
from .users import delete_user, list_users, set_user_role

app = FastAPI(
    title="Waitlist Admin",
    version=settings.version,
    docs_url="/api/swagger",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# Configure JSON logging early so hosted log collectors parse fields.
configure_logging(settings.log_level)

logger = logging.getLogger("waitlist")

_register_limiter = AttemptLimiter(
    window_s=settings.rate_limit_window_s,
    max_attempts=settings.rate_limit_max_requests,
)


# ---- Dependencies (overridden in tests) ----
def get_store() -> Iterator[SupabaseRepository]:
    repo = get_repository(settings, privileged=True)
    try:
        yield repo
    finally:
        repo.close()


def get_sheets_client() -> Iterator[httpx.Client]:
    with httpx.Client(timeout=settings.sheets_timeout_s, follow_redirects=True) as client:
        yield client


def get_notify_client() -> Iterator[httpx.Client]:
    with httpx.Client(timeout=settings.notify_timeout_s) as client:
        yield client


class ServiceConfigError(RuntimeError):
    """A required secret is missing for the requested operation."""


def _require_service_role_key() -> None:
    if not settings.supabase_service_role_key:
        raise ServiceConfigError("Missing service role key")


def _error(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    content: dict[str, Any] = {"error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _remote_ip(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    return (xff.split(",")[0].strip() if xff else None) or (request.client.host if request.client else "unknown")


def _log_auth_denied(*, request_id: str, path: str, status: int, reason: str) -> None:
    log_event(
        "auth.denied",
        severity="WARNING",
        request_id=request_id,
        path=path,
        status=int(status),
        reason=reason,
        auth_mode=effective_auth_mode(),
    )


@app.middleware("http")
async def _request_middleware(request: Request, call_next):
    """Attach request ID, resolve auth, rate limit registration, emit structured logs."""

    timer = Timer()
    rid = request_id_from_headers({k.lower(): v for k, v in request.headers.items()})
    request.state.request_id = rid
    remote_ip = _remote_ip(request)
    user_agent = request.headers.get("user-agent", "")
    path = request.url.path

    def _log(status: int, *, severity: str = "INFO", error_type: str | None = None, limited: bool = False) -> None:
        log_http_request(
            request_id=rid,
            method=request.method,
            url=str(request.url),
            path=path,
            status=status,
            latency_ms=timer.ms(),
            remote_ip=remote_ip,
            user_agent=user_agent,
            limited=limited,
            error_type=error_type,
            severity=severity,
        )

    try:
        request.state.auth_context = resolve_auth_context(request)
    except AuthError as ae:
        _log_auth_denied(request_id=rid, path=path, status=ae.status_code, reason=ae.detail)
        _log(ae.status_code, severity="WARNING", error_type="AuthError")
        return JSONResponse(status_code=ae.status_code, content={"detail": ae.detail}, headers={"X-Request-Id": rid})

    if settings.rate_limit_enabled and path == "/api/register" and request.method == "POST":
        wait_s = _register_limiter.retry_after(remote_ip)
        if wait_s:
            _log(429, severity="WARNING", limited=True)
            return JSONResponse(
                status_code=429,
                content={"error": "Too many registration attempts"},
                headers={"X-Request-Id": rid, "Retry-After": str(wait_s)},
            )

    try:
        response = await call_next(request)
    except Exception as e:
        _log(500, severity="ERROR", error_type=type(e).__name__)
        raise

    response.headers["X-Request-Id"] = rid
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    if path.startswith("/api/") or path in ("/health", "/ready"):
        response.headers.setdefault("Cache-Control", "no-store")

    status_code = int(response.status_code)
    if status_code in {401, 403}:
        reason = getattr(request.state, "auth_denied_reason", None) or ("Unauthorized" if status_code == 401 else "Forbidden")
        _log_auth_denied(request_id=rid, path=path, status=status_code, reason=str(reason))
    _log(status_code, severity="INFO" if status_code < 500 else "ERROR")
    return response


def _correlation_headers(request: Request) -> dict[str, str]:
    headers = {"X-Content-Type-Options": "nosniff"}
    rid = getattr(request.state, "request_id", None)
    if rid:
        headers["X-Request-Id"] = rid
    if request.url.path.startswith("/api/"):
        headers["Cache-Control"] = "no-store"
    return headers


@app.exception_handler(HTTPException)
async def _http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=_correlation_headers(request))


@app.exception_handler(ServiceConfigError)
async def _config_exception_handler(request: Request, exc: ServiceConfigError):
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"error": f"Server configuration error: {exc}"},
        headers=_correlation_headers(request),
    )


@app.exception_handler(StoreError)
async def _store_exception_handler(request: Request, exc: StoreError):
    """Store unavailable before an endpoint could handle it (e.g. missing credentials)."""
    log_event("store.unavailable", severity="ERROR", path=request.url.path, detail=str(exc))
    return JSONResponse(
        status_code=500,
        content={"error": "Database unavailable", "details": str(exc)},
        headers=_correlation_headers(request),
    )


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    """Safe JSON 500 that keeps request correlation."""
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"}, headers=_correlation_headers(request))


# ---- API models ----
class UpdateRoleRequest(BaseModel):
    userId: str = Field(..., description="user_profiles.id")
    role: str = Field(..., description="Admin|General")


class DeleteUserRequest(BaseModel):
    userId: str = Field(..., description="user_profiles.id")


class RegisterRequest(BaseModel):
    # Optional so missing fields produce the 400 contract instead of a 422.
    email: str | None = None
    password: str | None = None
    full_name: str | None = None
    invite_id: str | None = None


# ---- Health ----
@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/ready")
def ready() -> JSONResponse:
    """Readiness: the store must at least be configured."""
    body = {"ready": settings.store_configured, "version": app.version, "store_configured": settings.store_configured}
    return JSONResponse(status_code=200 if settings.store_configured else 503, content=body)


# ---- Retention cleanup ----
@app.get("/api/cleanup")
def cleanup(
    _auth: AuthContext = Depends(require_role("admin")),
    store: SupabaseRepository = Depends(get_store),
) -> JSONResponse:
    """Delete expired prospect entries (1 month standard / 1 year extended retention)."""
    result = run_expiry(store, entry_type=settings.prospect_entry_type)
    return JSONResponse(status_code=result.status_code, content=result.to_payload())


# ---- User administration ----
@app.get("/api/admin/users")
def admin_users(
    _auth: AuthContext = Depends(require_role("admin")),
    store: SupabaseRepository = Depends(get_store),
) -> Any:
    try:
        users = list_users(store)
    except StoreError as e:
        logger.error("Error fetching users: %s", e)
        return _error(500, "Failed to fetch users")
    return {"success": True, "users": users}


@app.put("/api/admin/users")
def admin_update_role(
    req: UpdateRoleRequest,
    _auth: AuthContext = Depends(require_role("admin")),
    store: SupabaseRepository = Depends(get_store),
) -> Any:
    try:
        set_user_role(store, req.userId, req.role)
    except StoreError as e:
        logger.error("Error updating user role: %s", e)
        return _error(500, "Failed to update role")
    log_event("users.role_updated", user_id=req.userId, role=req.role)
    return {"success": True}


@app.delete("/api/admin/users")
def admin_delete_user(
    req: DeleteUserRequest,
    _auth: AuthContext = Depends(require_role("admin")),
    store: SupabaseRepository = Depends(get_store),
) -> Any:
    try:
        delete_user(store, req.userId)
    except StoreError as e:
        logger.error("Error deleting user: %s", e)
        return _error(500, "Failed to delete user")
    log_event("users.deleted", user_id=req.userId)
    return {"success": True}


# ---- Registration ----
@app.post("/api/register")
def register(
    req: RegisterRequest,
    _cfg: None = Depends(_require_service_role_key),
    store: SupabaseRepository = Depends(get_store),
) -> Any:
    try:
        register_account(
            store,
            RegistrationRequest(
                email=req.email or "",
                password=req.password or "",
                full_name=req.full_name or "",
                invite_id=req.invite_id or "",
            ),
        )
    except RegistrationError as e:
        return _error(e.status_code, e.detail)
    return {"success": True, "message": "Account created successfully"}


# ---- Reports ----
@app.get("/api/waitlist/reports")
def waitlist_reports(
    _auth: AuthContext = Depends(require_role("staff")),
    store: SupabaseRepository = Depends(get_store),
) -> Any:
    try:
        entries = store.list_all_entries()
    except StoreError as e:
        logger.error("Error fetching entries: %s", e)
        return _error(500, "Failed to fetch entries")
    return build_report(entries)


# ---- Spreadsheet readers ----
@app.get("/api/directory")
def directory(
    _auth: AuthContext = Depends(require_role("staff")),
    client: httpx.Client = Depends(get_sheets_client),
) -> Any:
    try:
        entries = fetch_directory(client=client)
    except SheetsError as e:
        logger.error("Error fetching directory: %s", e)
        return _error(500, "Failed to fetch directory")
    properties = sorted({e.property for e in entries if e.property})
    return {"directory": [e.to_dict() for e in entries], "properties": properties, "count": len(entries)}


@app.get("/api/sync-sheets")
def sync_sheets(
    _auth: AuthContext = Depends(require_role("staff")),
    client: httpx.Client = Depends(get_sheets_client),
) -> Any:
    try:
        units = fetch_available_units(client=client)
    except SheetsError as e:
        logger.error("Error fetching spreadsheet: %s", e)
        return _error(500, "Failed to fetch spreadsheet data")
    return {
        "success": True,
        "count": len(units),
        "units": [asdict(u) for u in units],
        "lastUpdated": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/api/properties")
def properties(
    _auth: AuthContext = Depends(require_role("staff")),
    client: httpx.Client = Depends(get_sheets_client),
) -> Any:
    all_properties = fetch_properties(client=client)
    return {
        "success": True,
        "properties": [asdict(p) for p in all_properties if p.isActive],
        "allProperties": [asdict(p) for p in all_properties],
    }


# ---- Cron relay ----
@app.get("/api/cron/match-alerts")
def cron_match_alerts(request: Request, client: httpx.Client = Depends(get_notify_client)) -> Any:
    if not cron_authorized(request.headers.get("authorization"), settings):
        request.state.auth_denied_reason = "Invalid cron bearer token"
        return _error(401, "Unauthorized")

    try:
        payload = trigger_match_alerts(settings, client=client)
    except (httpx.HTTPError, ValueError) as e:
        logger.error("Cron match-alerts error: %s", e)
        return _error(500, "Failed to trigger match alerts", str(e))
    log_event("cron.triggered", target=settings.notify_path)
    return payload
