"""pytest configuration.

This repo is usable without installing the package into a virtualenv.

When running `pytest` directly from the repo root, we want `import waitlist_admin`
to resolve to `./waitlist_admin`. Some runners do not add the repo root to
`sys.path`, so we force it here.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


from waitlist_admin.supabase_client import StoreError  # noqa: E402


class InMemoryStore:
    """Dict-backed stand-in for SupabaseRepository.

    Records every call so tests can assert on the number of reads/writes.
    ``fail_on`` names methods that should raise StoreError.
    """

    def __init__(self, entries=None, profiles=None, invites=None, auth_users=None, fail_on=()):
        self.entries = [dict(e) for e in (entries or [])]
        self.profiles = [dict(p) for p in (profiles or [])]
        self.invites = {str(i["id"]): dict(i) for i in (invites or [])}
        self.auth_users = [dict(u) for u in (auth_users or [])]
        self.fail_on = set(fail_on)
        self.calls: list[tuple] = []
        self.closed = False

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise StoreError(f"{name} failed")

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def close(self) -> None:
        self.closed = True

    # ---- waitlist ----
    def list_entries_by_type(self, entry_type):
        self._record("list_entries_by_type", entry_type)
        return [dict(e) for e in self.entries if e.get("entry_type") == entry_type]

    def delete_entries(self, ids):
        self._record("delete_entries", list(ids))
        wanted = set(ids)
        self.entries = [e for e in self.entries if e.get("id") not in wanted]

    def list_all_entries(self):
        self._record("list_all_entries")
        return [dict(e) for e in self.entries]

    # ---- profiles ----
    def list_profiles(self):
        self._record("list_profiles")
        return sorted((dict(p) for p in self.profiles), key=lambda p: p.get("created_at") or "", reverse=True)

    def set_admin(self, user_id, is_admin):
        self._record("set_admin", user_id, is_admin)
        for p in self.profiles:
            if p.get("id") == user_id:
                p["is_admin"] = is_admin

    def delete_profile(self, user_id):
        self._record("delete_profile", user_id)
        self.profiles = [p for p in self.profiles if p.get("id") != user_id]

    def delete_profile_by_email(self, email):
        self._record("delete_profile_by_email", email)
        self.profiles = [p for p in self.profiles if p.get("email") != email]

    def insert_profile(self, *, user_id, email, full_name, is_admin=False):
        self._record("insert_profile", user_id)
        self.profiles.append({"id": user_id, "email": email, "full_name": full_name, "is_admin": is_admin})

    # ---- invites ----
    def get_invite(self, invite_id):
        self._record("get_invite", invite_id)
        return self.invites.get(invite_id)

    def mark_invite_used(self, invite_id):
        self._record("mark_invite_used", invite_id)
        self.invites[invite_id]["used"] = True

    # ---- auth admin ----
    def find_auth_user_by_email(self, email):
        self._record("find_auth_user_by_email", email)
        for u in self.auth_users:
            if str(u.get("email", "")).lower() == email.lower():
                return dict(u)
        return None

    def delete_auth_user(self, user_id):
        self._record("delete_auth_user", user_id)
        self.auth_users = [u for u in self.auth_users if u.get("id") != user_id]

    def create_auth_user(self, *, email, password, full_name):
        self._record("create_auth_user", email)
        user = {"id": f"user-{len(self.auth_users) + 1}", "email": email, "user_metadata": {"full_name": full_name}}
        self.auth_users.append(user)
        return dict(user)


@pytest.fixture
def store_factory():
    return InMemoryStore
