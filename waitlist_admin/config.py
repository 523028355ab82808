from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .version import get_version

# Load a local .env for developer convenience.
# - Does NOT override already-set environment variables (deployment env wins)
# - No-op when the file doesn't exist
_REPO_ROOT = Path(__file__).resolve().parents[1]
_ENV_PATH = _REPO_ROOT / ".env"
if _ENV_PATH.exists():
    load_dotenv(dotenv_path=_ENV_PATH, override=False)


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return v if v is not None and v.strip() != "" else default


def _env_opt(*names: str) -> str | None:
    """First non-empty value among several env names (new name first, legacy after)."""
    for name in names:
        v = os.getenv(name)
        if v is not None and v.strip():
            return v.strip()
    return None


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return default
    try:
        return int(v.strip())
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None:
        return default
    try:
        return float(v.strip())
    except Exception:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


_ALLOWED_APP_ENVS = {"development", "production", "test"}
_ALLOWED_AUTH_MODES = {"none", "api_key"}

# Spreadsheets shared with the leasing team.
_DEFAULT_DIRECTORY_SPREADSHEET_ID = "1w78XH8yuyuoZm_l1PtHIFzXygwEjS56lV0rZwEQvNwM"
_DEFAULT_DASHBOARD_SPREADSHEET_ID = "1OTm2nalt3DUBPzM_kQ4ZmiO0cs0dLUC2o72DYgoRA0U"


@dataclass(frozen=True)
class Settings:
    """Central configuration, read once from the environment.

    Secrets (Supabase keys, cron secret, Google API key) are optional at load
    time so the app can boot for health checks; the code paths that need them
    fail with an explicit configuration error instead.
    """

    # ---- Build / runtime ----
    version: str
    app_env: str  # development | production | test
    log_level: str

    # ---- Auth ----
    auth_mode: str  # none | api_key

    # ---- Supabase ----
    supabase_url: str | None
    supabase_anon_key: str | None
    supabase_service_role_key: str | None
    supabase_timeout_s: float
    waitlist_table: str
    prospect_entry_type: str

    # ---- Cron relay ----
    cron_secret: str | None
    app_url: str
    notify_path: str
    notify_timeout_s: float

    # ---- Google Sheets ----
    directory_spreadsheet_id: str
    dashboard_spreadsheet_id: str
    google_api_key: str | None
    sheets_timeout_s: float

    # ---- Registration rate limiting ----
    rate_limit_enabled: bool
    rate_limit_window_s: int
    rate_limit_max_requests: int

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def store_configured(self) -> bool:
        return bool(self.supabase_url and (self.supabase_service_role_key or self.supabase_anon_key))

    def store_key(self, *, privileged: bool = True) -> str | None:
        """Service-role key for privileged callers, anon key otherwise (or as fallback)."""
        if privileged and self.supabase_service_role_key:
            return self.supabase_service_role_key
        return self.supabase_anon_key


def load_settings() -> Settings:
    app_env = _env_str("APP_ENV", "development").lower().strip()
    if app_env not in _ALLOWED_APP_ENVS:
        app_env = "development"

    auth_mode = _env_str("AUTH_MODE", "none").lower().strip()
    if auth_mode not in _ALLOWED_AUTH_MODES:
        auth_mode = "none"

    supabase_url = _env_opt("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL")
    if supabase_url:
        supabase_url = supabase_url.rstrip("/")

    app_url = _env_opt("APP_URL", "NEXT_PUBLIC_APP_URL") or "http://localhost:8080"

    notify_path = _env_str("NOTIFY_PATH", "/api/auto-notify")
    if not notify_path.startswith("/"):
        notify_path = "/" + notify_path

    return Settings(
        version=_env_str("APP_VERSION", get_version()),
        app_env=app_env,
        log_level=_env_str("LOG_LEVEL", "INFO").upper().strip(),
        auth_mode=auth_mode,
        supabase_url=supabase_url,
        supabase_anon_key=_env_opt("SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"),
        supabase_service_role_key=_env_opt("SUPABASE_SERVICE_ROLE_KEY"),
        supabase_timeout_s=_env_float("SUPABASE_TIMEOUT_S", 15.0),
        waitlist_table=_env_str("WAITLIST_TABLE", "waitlist_entries"),
        prospect_entry_type=_env_str("PROSPECT_ENTRY_TYPE", "Prospect"),
        cron_secret=_env_opt("CRON_SECRET"),
        app_url=app_url.rstrip("/"),
        notify_path=notify_path,
        notify_timeout_s=_env_float("NOTIFY_TIMEOUT_S", 60.0),
        directory_spreadsheet_id=_env_str("DIRECTORY_SPREADSHEET_ID", _DEFAULT_DIRECTORY_SPREADSHEET_ID),
        dashboard_spreadsheet_id=_env_str("DASHBOARD_SPREADSHEET_ID", _DEFAULT_DASHBOARD_SPREADSHEET_ID),
        google_api_key=_env_opt("GOOGLE_API_KEY"),
        sheets_timeout_s=_env_float("SHEETS_TIMEOUT_S", 20.0),
        rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", False),
        rate_limit_window_s=_env_int("RATE_LIMIT_WINDOW_S", 60),
        rate_limit_max_requests=_env_int("RATE_LIMIT_MAX_REQUESTS", 10),
    )


settings = load_settings()
