"""Waitlist activity reports for the weekly leasing meeting.

Metrics are computed in memory from the full entry list: the table is small and
filtering here keeps the period logic in one place (``dates``).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Iterable

from .dates import DateRange, current_week_range, format_date_range, is_in_range, year_to_date_range

OUTCOME_STATUSES = ("matched", "touring", "applied", "leased", "declined", "removed")

_SELF_NOTE_MARKERS = ("self-registered", "self registered", "public form")


@dataclass(frozen=True)
class ReportMetrics:
    totalEntries: int
    agentEntries: int
    selfEntries: int
    matchedCount: int
    toursScheduled: int
    applied: int
    leaseSigned: int


def is_self_added(entry: dict[str, Any]) -> bool:
    """Entry created through the public form rather than by an agent.

    Older rows predate ``entry_source`` and only mention it in the notes.
    """
    if entry.get("entry_source") == "self":
        return True
    notes = str(entry.get("internal_notes") or "").lower()
    return any(marker in notes for marker in _SELF_NOTE_MARKERS)


def calculate_metrics(entries: list[dict[str, Any]], period: DateRange) -> ReportMetrics:
    created = [e for e in entries if is_in_range(e.get("created_at"), period)]
    self_count = sum(1 for e in created if is_self_added(e))
    return ReportMetrics(
        totalEntries=len(created),
        agentEntries=len(created) - self_count,
        selfEntries=self_count,
        matchedCount=sum(1 for e in created if is_in_range(e.get("matched_at"), period)),
        # Pipeline milestones count when they happened, whenever the entry was created.
        toursScheduled=sum(1 for e in entries if is_in_range(e.get("tour_scheduled_at"), period)),
        applied=sum(1 for e in entries if is_in_range(e.get("applied_at"), period)),
        leaseSigned=sum(1 for e in entries if is_in_range(e.get("lease_signed_at"), period)),
    )


def funnel_breakdown(entries: Iterable[dict[str, Any]]) -> dict[str, int]:
    funnel = {"active": 0}
    funnel.update({s: 0 for s in OUTCOME_STATUSES})
    for e in entries:
        status = e.get("outcome_status") or "active"
        if status in funnel:
            funnel[status] += 1
    return funnel


def property_breakdown(entries: Iterable[dict[str, Any]]) -> dict[str, dict[str, int]]:
    out: dict[str, dict[str, int]] = {}
    for e in entries:
        bucket = out.setdefault(str(e.get("property")), {"total": 0, "self": 0, "agent": 0})
        bucket["total"] += 1
        if is_self_added(e):
            bucket["self"] += 1
        else:
            bucket["agent"] += 1
    return out


def build_report(entries: list[dict[str, Any]], *, now: datetime | None = None) -> dict[str, Any]:
    ytd = year_to_date_range(now)
    week = current_week_range(now)
    return {
        "success": True,
        "ytd": {
            "label": f"YTD {ytd.start.year}",
            "range": format_date_range(ytd),
            "metrics": asdict(calculate_metrics(entries, ytd)),
        },
        "week": {
            "label": "This Week",
            "range": format_date_range(week),
            "metrics": asdict(calculate_metrics(entries, week)),
        },
        "funnel": funnel_breakdown(entries),
        "byProperty": property_breakdown(entries),
        "totalEntries": len(entries),
    }
