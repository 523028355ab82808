"""Waitlist cleanup (retention enforcement).

Lifecycle logic lives here rather than in the HTTP layer so it can be run by:

- the `/api/cleanup` endpoint (external scheduler or manual trigger)
- the CLI (`python -m waitlist_admin.cli retention-sweep --apply`)

One run does exactly one read of the prospect entries and, only when something
expired, exactly one batched delete keyed by the precomputed id set. A store
failure aborts the run before anything else is attempted; there is no retry
here (the scheduler re-runs the whole thing later).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from .observability import log_event
from .retention import RetentionCutoffs, WaitlistEntry, evaluate
from .storage import WaitlistStore
from .supabase_client import StoreError

PROSPECT_ENTRY_TYPE = "Prospect"

CLEANUP_FAILED = "Failed to cleanup expired entries"


@dataclass(frozen=True)
class ExpiryResult:
    deleted: int = 0
    message: str = ""
    cutoffs: RetentionCutoffs | None = None
    deleted_entries: list[WaitlistEntry] = field(default_factory=list)
    error: str | None = None
    details: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def status_code(self) -> int:
        return 200 if self.success else 500

    def to_payload(self) -> dict[str, Any]:
        if not self.success:
            return {"error": self.error, "details": self.details}

        payload: dict[str, Any] = {
            "success": True,
            "message": self.message,
            "deleted": self.deleted,
        }
        if self.cutoffs is not None:
            payload["standardCutoff"] = self.cutoffs.standard.isoformat()
            payload["extendedCutoff"] = self.cutoffs.extended.isoformat()
        if self.deleted_entries:
            payload["deletedEntries"] = [e.audit_fields() for e in self.deleted_entries]
        return payload


def run_expiry(
    store: WaitlistStore,
    *,
    today: date | None = None,
    entry_type: str = PROSPECT_ENTRY_TYPE,
) -> ExpiryResult:
    """Delete expired prospect entries and report what happened."""

    today_d = date.today() if today is None else today

    try:
        rows = store.list_entries_by_type(entry_type)
    except StoreError as e:
        log_event("cleanup.failed", severity="ERROR", stage="fetch", detail=str(e))
        return ExpiryResult(error=CLEANUP_FAILED, details=str(e))

    if not rows:
        log_event("cleanup.completed", deleted=0, reason="no_entries", entry_type=entry_type)
        return ExpiryResult(deleted=0, message="No prospect entries found")

    entries = [WaitlistEntry.from_row(r) for r in rows]
    decision = evaluate(entries, today_d)
    cutoffs = decision.cutoffs

    if not decision.expired:
        log_event(
            "cleanup.completed",
            deleted=0,
            reason="none_expired",
            scanned=len(entries),
            standard_cutoff=cutoffs.standard.isoformat(),
            extended_cutoff=cutoffs.extended.isoformat(),
        )
        return ExpiryResult(deleted=0, message="No expired entries found", cutoffs=cutoffs)

    ids = [e.id for e in decision.expired]
    try:
        store.delete_entries(ids)
    except StoreError as e:
        log_event("cleanup.failed", severity="ERROR", stage="delete", attempted=len(ids), detail=str(e))
        return ExpiryResult(error=CLEANUP_FAILED, details=str(e))

    deleted = len(decision.expired)
    log_event(
        "cleanup.completed",
        deleted=deleted,
        scanned=len(entries),
        standard_cutoff=cutoffs.standard.isoformat(),
        extended_cutoff=cutoffs.extended.isoformat(),
        deleted_ids=ids,
    )
    return ExpiryResult(
        deleted=deleted,
        message=f"Deleted {deleted} expired prospect(s)",
        cutoffs=cutoffs,
        deleted_entries=list(decision.expired),
    )
