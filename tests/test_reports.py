from __future__ import annotations

from datetime import datetime

from waitlist_admin.dates import current_week_range
from waitlist_admin.reports import build_report, calculate_metrics, funnel_breakdown, is_self_added, property_breakdown

NOW = datetime(2025, 1, 8, 12, 0)  # Wednesday; week is Jan 3 - Jan 9


def _entries() -> list[dict]:
    return [
        {
            "id": "1",
            "property": "Kedzie",
            "entry_source": "self",
            "created_at": "2025-01-04T10:00:00",
            "matched_at": "2025-01-06T10:00:00",
            "outcome_status": "matched",
        },
        {
            "id": "2",
            "property": "Kedzie",
            "internal_notes": "Self-registered via public form",
            "created_at": "2024-12-01T10:00:00",
            "tour_scheduled_at": "2025-01-07T15:00:00",
            "outcome_status": "touring",
        },
        {
            "id": "3",
            "property": "Broadway",
            "created_at": "2025-01-02T10:00:00",
            "applied_at": "2025-01-05T10:00:00",
            "lease_signed_at": "2025-01-09T18:00:00",
        },
        {"id": "4", "property": "Broadway", "created_at": None, "outcome_status": "unknown"},
    ]


def test_is_self_added_checks_source_then_notes() -> None:
    assert is_self_added({"entry_source": "self"})
    assert is_self_added({"internal_notes": "came in through the PUBLIC FORM"})
    assert not is_self_added({"entry_source": "agent", "internal_notes": "walk-in"})


def test_weekly_metrics_split_created_and_milestones() -> None:
    m = calculate_metrics(_entries(), current_week_range(NOW))
    assert m.totalEntries == 1
    assert m.selfEntries == 1
    assert m.agentEntries == 0
    assert m.matchedCount == 1
    # Milestones count in the week they happened even for older entries.
    assert m.toursScheduled == 1
    assert m.applied == 1
    assert m.leaseSigned == 1


def test_funnel_and_property_breakdowns() -> None:
    funnel = funnel_breakdown(_entries())
    assert funnel["active"] == 1
    assert funnel["matched"] == 1
    assert funnel["touring"] == 1
    assert sum(funnel.values()) == 3  # unknown statuses are not counted

    by_property = property_breakdown(_entries())
    assert by_property["Kedzie"] == {"total": 2, "self": 2, "agent": 0}
    assert by_property["Broadway"] == {"total": 2, "self": 0, "agent": 2}


def test_build_report_shape() -> None:
    report = build_report(_entries(), now=NOW)
    assert report["success"] is True
    assert report["ytd"]["label"] == "YTD 2025"
    assert report["ytd"]["range"] == "Jan 1 - Dec 31"
    assert report["ytd"]["metrics"]["totalEntries"] == 2
    assert report["week"]["label"] == "This Week"
    assert report["week"]["range"] == "Jan 3 - Jan 9"
    assert report["totalEntries"] == 4
