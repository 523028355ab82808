from __future__ import annotations

from typing import Any, Protocol

from .config import Settings
from .supabase_client import StoreError, SupabaseClient, eq, in_

RETENTION_COLUMNS = "id, full_name, move_in_date, move_in_date_end, entry_type, extended_retention"

USER_PROFILES_TABLE = "user_profiles"
USER_INVITES_TABLE = "user_invites"


class WaitlistStore(Protocol):
    """Waitlist reads/deletes used by the cleanup and reporting flows."""

    def list_entries_by_type(self, entry_type: str) -> list[dict[str, Any]]: ...

    def delete_entries(self, ids: list[str]) -> None: ...

    def list_all_entries(self) -> list[dict[str, Any]]: ...


class UserStore(Protocol):
    def list_profiles(self) -> list[dict[str, Any]]: ...

    def set_admin(self, user_id: str, is_admin: bool) -> None: ...

    def delete_profile(self, user_id: str) -> None: ...


class RegistrationStore(Protocol):
    """Invites, profiles and auth-admin calls used by account registration."""

    def get_invite(self, invite_id: str) -> dict[str, Any] | None: ...

    def mark_invite_used(self, invite_id: str) -> None: ...

    def find_auth_user_by_email(self, email: str) -> dict[str, Any] | None: ...

    def delete_auth_user(self, user_id: str) -> None: ...

    def create_auth_user(self, *, email: str, password: str, full_name: str) -> dict[str, Any]: ...

    def insert_profile(self, *, user_id: str, email: str, full_name: str, is_admin: bool = False) -> None: ...

    def delete_profile_by_email(self, email: str) -> None: ...


class SupabaseRepository:
    """Supabase-backed implementation of every store protocol above."""

    def __init__(self, client: SupabaseClient, *, waitlist_table: str = "waitlist_entries") -> None:
        self.client = client
        self.waitlist_table = waitlist_table

    def close(self) -> None:
        self.client.close()

    # ---- waitlist ----
    def list_entries_by_type(self, entry_type: str) -> list[dict[str, Any]]:
        return self.client.select(
            self.waitlist_table,
            columns=RETENTION_COLUMNS,
            filters={"entry_type": eq(entry_type)},
        )

    def delete_entries(self, ids: list[str]) -> None:
        if not ids:
            return
        self.client.delete(self.waitlist_table, filters={"id": in_(ids)})

    def list_all_entries(self) -> list[dict[str, Any]]:
        return self.client.select(self.waitlist_table, order="created_at.desc")

    # ---- user profiles ----
    def list_profiles(self) -> list[dict[str, Any]]:
        return self.client.select(USER_PROFILES_TABLE, order="created_at.desc")

    def set_admin(self, user_id: str, is_admin: bool) -> None:
        self.client.update(USER_PROFILES_TABLE, {"is_admin": bool(is_admin)}, filters={"id": eq(user_id)})

    def delete_profile(self, user_id: str) -> None:
        self.client.delete(USER_PROFILES_TABLE, filters={"id": eq(user_id)})

    def delete_profile_by_email(self, email: str) -> None:
        self.client.delete(USER_PROFILES_TABLE, filters={"email": eq(email)})

    def insert_profile(self, *, user_id: str, email: str, full_name: str, is_admin: bool = False) -> None:
        self.client.insert(
            USER_PROFILES_TABLE,
            {"id": user_id, "email": email, "full_name": full_name, "is_admin": bool(is_admin)},
        )

    # ---- invites ----
    def get_invite(self, invite_id: str) -> dict[str, Any] | None:
        rows = self.client.select(USER_INVITES_TABLE, filters={"id": eq(invite_id)})
        return rows[0] if rows else None

    def mark_invite_used(self, invite_id: str) -> None:
        self.client.update(USER_INVITES_TABLE, {"used": True}, filters={"id": eq(invite_id)})

    # ---- auth admin ----
    def find_auth_user_by_email(self, email: str) -> dict[str, Any] | None:
        wanted = email.strip().lower()
        for user in self.client.list_auth_users():
            if str(user.get("email") or "").strip().lower() == wanted:
                return user
        return None

    def delete_auth_user(self, user_id: str) -> None:
        self.client.delete_auth_user(user_id)

    def create_auth_user(self, *, email: str, password: str, full_name: str) -> dict[str, Any]:
        return self.client.create_auth_user(
            email=email,
            password=password,
            email_confirm=True,
            user_metadata={"full_name": full_name},
        )


def get_repository(settings: Settings, *, privileged: bool = True) -> SupabaseRepository:
    key = settings.store_key(privileged=privileged)
    if not settings.supabase_url or not key:
        raise StoreError("Supabase is not configured (SUPABASE_URL and an API key are required)")
    client = SupabaseClient(settings.supabase_url, key, timeout_s=settings.supabase_timeout_s)
    return SupabaseRepository(client, waitlist_table=settings.waitlist_table)
