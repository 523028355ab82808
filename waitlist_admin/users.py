from __future__ import annotations

from typing import Any

from .storage import UserStore

ADMIN_ROLE = "Admin"
GENERAL_ROLE = "General"


def profile_to_user(profile: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": profile.get("id"),
        "email": profile.get("email"),
        "full_name": profile.get("full_name"),
        "role": ADMIN_ROLE if profile.get("is_admin") else GENERAL_ROLE,
        "created_at": profile.get("created_at"),
    }


def list_users(store: UserStore) -> list[dict[str, Any]]:
    """Staff accounts, newest first (the store orders by created_at desc)."""
    return [profile_to_user(p) for p in store.list_profiles()]


def set_user_role(store: UserStore, user_id: str, role: str) -> None:
    # Anything other than exactly "Admin" demotes to General.
    store.set_admin(user_id, role == ADMIN_ROLE)


def delete_user(store: UserStore, user_id: str) -> None:
    store.delete_profile(user_id)
