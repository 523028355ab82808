"""Invite-based staff registration.

Accounts are created through the auth admin API (email pre-confirmed), so a
service-role key is required. Checks run in a fixed order and the first one
that fails decides the response:

1. all fields present
2. invite exists
3. invite not used
4. invite not expired

A stale account with the same email (typically an unconfirmed signup) is
removed before the new one is created.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from .dates import parse_datetime
from .observability import log_event
from .storage import RegistrationStore
from .supabase_client import StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrationError(Exception):
    status_code: int
    detail: str


@dataclass(frozen=True)
class RegistrationRequest:
    email: str
    password: str
    full_name: str
    invite_id: str

    def missing_fields(self) -> list[str]:
        return [name for name in ("email", "password", "full_name", "invite_id") if not str(getattr(self, name) or "").strip()]


def _invite_expired(invite: dict, now: datetime) -> bool:
    """An invite without a readable expiry counts as expired."""
    expires_at = parse_datetime(invite.get("expires_at"))
    if expires_at is None:
        return True
    return expires_at < now


def register_account(
    store: RegistrationStore,
    req: RegistrationRequest,
    *,
    now: datetime | None = None,
) -> str:
    """Create the account for a valid invite; returns the new user id.

    Raises RegistrationError for anything the caller should see as a 4xx/5xx.
    """

    if req.missing_fields():
        log_event("register.rejected", severity="WARNING", reason="missing_fields", fields=req.missing_fields())
        raise RegistrationError(status_code=400, detail="Missing required fields")

    now_local = datetime.now() if now is None else now

    try:
        invite = store.get_invite(req.invite_id)
    except StoreError as e:
        raise RegistrationError(status_code=400, detail=f"Invalid invite: {e}") from e
    if not invite:
        raise RegistrationError(status_code=400, detail="Invite not found")
    if invite.get("used"):
        raise RegistrationError(status_code=400, detail="This invite has already been used")
    if _invite_expired(invite, now_local):
        raise RegistrationError(status_code=400, detail="This invite has expired")

    email = req.email.strip()
    try:
        existing = store.find_auth_user_by_email(email)
        if existing and existing.get("id"):
            log_event("register.replacing_stale_account", severity="WARNING", user_id=str(existing["id"]))
            store.delete_auth_user(str(existing["id"]))
            store.delete_profile_by_email(email)
    except StoreError as e:
        raise RegistrationError(status_code=500, detail=f"Failed to check existing accounts: {e}") from e

    try:
        user = store.create_auth_user(email=email, password=req.password, full_name=req.full_name)
    except StoreError as e:
        raise RegistrationError(status_code=400, detail=f"Failed to create account: {e}") from e

    user_id = str(user.get("id") or "")
    if not user_id:
        raise RegistrationError(status_code=500, detail="Account creation returned no user id")

    try:
        store.insert_profile(user_id=user_id, email=email, full_name=req.full_name, is_admin=False)
    except StoreError as e:
        # Registration still succeeds without the profile row.
        logger.error("Profile creation failed for user_id=%s: %s", user_id, e)

    try:
        store.mark_invite_used(req.invite_id)
    except StoreError as e:
        logger.error("Marking invite_id=%s as used failed: %s", req.invite_id, e)

    log_event("register.completed", user_id=user_id, invite_id=req.invite_id)
    return user_id
