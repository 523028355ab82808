"""Reporting calendar windows.

- YTD: January 1 through December 31 of the current year
- Weekly: Friday through Thursday (the leasing team meets on Fridays)

All ranges are naive datetimes in the process's local time zone and are
inclusive at both ends. Every function takes an optional ``now`` so callers and
tests can pin the clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

_MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_FRIDAY = 5  # Sunday=0 ... Saturday=6
_END_OF_DAY = time(23, 59, 59, 999000)


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime


def _now(now: datetime | None) -> datetime:
    return datetime.now() if now is None else now


def day_of_week(d: date) -> int:
    """Day number with Sunday=0 ... Saturday=6."""
    return (d.weekday() + 1) % 7


def year_to_date_range(now: datetime | None = None) -> DateRange:
    year = _now(now).year
    return DateRange(
        start=datetime(year, 1, 1, 0, 0, 0, 0),
        end=datetime.combine(date(year, 12, 31), _END_OF_DAY),
    )


def current_week_range(now: datetime | None = None) -> DateRange:
    """Most recent Friday 00:00 through the following Thursday 23:59:59.999.

    On a Friday the range starts that same day.
    """
    today = _now(now).date()
    days_since_friday = (day_of_week(today) - _FRIDAY + 7) % 7
    friday = today - timedelta(days=days_since_friday)
    thursday = friday + timedelta(days=6)
    return DateRange(
        start=datetime.combine(friday, time.min),
        end=datetime.combine(thursday, _END_OF_DAY),
    )


def previous_week_range(now: datetime | None = None) -> DateRange:
    # Shift the current window rather than recomputing from "now" so both
    # ranges always agree on the week boundary.
    current = current_week_range(now)
    week = timedelta(days=7)
    return DateRange(start=current.start - week, end=current.end - week)


def parse_datetime(value: object) -> datetime | None:
    """Parse a store/sheet value into a naive local datetime.

    Accepts ``datetime``, ``date`` and ISO-8601 strings. Aware values (``Z`` or
    an explicit offset) are converted to local time. Returns None for anything
    else; never raises.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return datetime.combine(value, time.min)
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def is_in_range(value: object, date_range: DateRange) -> bool:
    """Inclusive containment check; missing or unparseable values are never in range."""
    dt = parse_datetime(value)
    if dt is None:
        return False
    return date_range.start <= dt <= date_range.end


def _month_day(d: date) -> str:
    return f"{_MONTH_ABBR[d.month - 1]} {d.day}"


def format_date_range(date_range: DateRange) -> str:
    """e.g. ``"Jan 3 - Jan 9"``."""
    return f"{_month_day(date_range.start)} - {_month_day(date_range.end)}"


def format_date(value: object) -> str:
    """e.g. ``"Jan 3, 2025"``; ``"-"`` when there is no usable date."""
    dt = parse_datetime(value)
    if dt is None:
        return "-"
    return f"{_month_day(dt)}, {dt.year}"


def range_for_query(date_range: DateRange) -> dict[str, str]:
    """ISO strings for store-side range filters."""
    return {
        "start": date_range.start.isoformat(timespec="milliseconds"),
        "end": date_range.end.isoformat(timespec="milliseconds"),
    }
