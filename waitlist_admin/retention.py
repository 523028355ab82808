"""Waitlist retention policy.

Prospect entries (applicants who have not signed a lease) are kept for a
limited time after their move-in date:

- standard retention: purge once the effective date is more than 1 month old
- extended retention (``extended_retention = true``): purge after 1 year

The effective date is ``move_in_date_end`` when a move-in window was given,
otherwise ``move_in_date``. An entry without a usable date is never purged.

Everything here is pure: no store access, "today" is passed in.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Mapping

STANDARD_RETENTION_MONTHS = 1
EXTENDED_RETENTION_MONTHS = 12


@dataclass(frozen=True)
class WaitlistEntry:
    id: str
    full_name: str
    entry_type: str | None
    move_in_date: str | None
    move_in_date_end: str | None = None
    extended_retention: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "WaitlistEntry":
        return cls(
            id=str(row.get("id") or ""),
            full_name=str(row.get("full_name") or ""),
            entry_type=_opt_str(row.get("entry_type")),
            move_in_date=_opt_str(row.get("move_in_date")),
            move_in_date_end=_opt_str(row.get("move_in_date_end")),
            extended_retention=_as_bool(row.get("extended_retention")),
        )

    def audit_fields(self) -> dict[str, Any]:
        return {
            "name": self.full_name,
            "move_in_date": self.move_in_date,
            "move_in_date_end": self.move_in_date_end,
            "extended_retention": self.extended_retention,
        }


@dataclass(frozen=True)
class RetentionCutoffs:
    standard: date
    extended: date

    def for_entry(self, entry: WaitlistEntry) -> date:
        return self.extended if entry.extended_retention else self.standard


@dataclass(frozen=True)
class RetentionDecision:
    expired: list[WaitlistEntry]
    cutoffs: RetentionCutoffs


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "t", "yes", "y"}
    return bool(value)


def parse_calendar_date(value: Any) -> date | None:
    """Calendar date as written; None when unusable.

    Timestamps keep their own date part: ``"2023-01-31T23:30:00-06:00"`` is
    2023-01-31 whatever the server time zone.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    try:
        return date.fromisoformat(raw)
    except ValueError:
        pass
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(raw).date()
    except ValueError:
        return None


def effective_date(entry: WaitlistEntry) -> date | None:
    # The window end is trusted as-is; it is not checked against move_in_date.
    raw = entry.move_in_date_end or entry.move_in_date
    return parse_calendar_date(raw)


def subtract_months(day: date, months: int) -> date:
    """Calendar month arithmetic, clamped to the end of the target month.

    2023-03-31 minus 1 month is 2023-02-28; 2024-02-29 minus 12 months is 2023-02-28.
    """
    total = day.year * 12 + (day.month - 1) - months
    year, month0 = divmod(total, 12)
    month = month0 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def compute_cutoffs(today: date) -> RetentionCutoffs:
    return RetentionCutoffs(
        standard=subtract_months(today, STANDARD_RETENTION_MONTHS),
        extended=subtract_months(today, EXTENDED_RETENTION_MONTHS),
    )


def is_expired(entry: WaitlistEntry, cutoffs: RetentionCutoffs) -> bool:
    effective = effective_date(entry)
    if effective is None:
        return False
    # Strict: an entry sitting exactly on the cutoff survives one more run.
    return effective < cutoffs.for_entry(entry)


def evaluate(entries: Iterable[WaitlistEntry], today: date) -> RetentionDecision:
    """Return the expired subset of ``entries`` (input order kept) and the cutoffs used."""
    cutoffs = compute_cutoffs(today)
    expired = [e for e in entries if is_expired(e, cutoffs)]
    return RetentionDecision(expired=expired, cutoffs=cutoffs)
