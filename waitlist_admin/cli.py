from __future__ import annotations

import argparse
import json
from datetime import date

from .dates import current_week_range, format_date_range, previous_week_range, year_to_date_range
from .retention import WaitlistEntry, effective_date, evaluate


def _parse_today(raw: str | None) -> date:
    if raw is None:
        return date.today()
    try:
        return date.fromisoformat(raw)
    except ValueError as e:
        raise SystemExit(f"--today must be YYYY-MM-DD, got {raw!r}") from e


def cmd_retention_sweep(*, apply: bool, today: date, store=None) -> None:
    """List expired prospect entries and optionally delete them."""
    from .config import settings
    from .maintenance import run_expiry
    from .storage import get_repository
    from .supabase_client import StoreError

    owned = store is None
    if owned:
        try:
            store = get_repository(settings, privileged=True)
        except StoreError as e:
            raise SystemExit(str(e)) from e

    try:
        if apply:
            result = run_expiry(store, today=today, entry_type=settings.prospect_entry_type)
            if not result.success:
                raise SystemExit(f"Retention sweep failed: {result.details}")
            print(f"Retention sweep mode=apply today={today.isoformat()}")
            print(json.dumps(result.to_payload(), indent=2))
            print(f"Deleted {result.deleted} entr{'y' if result.deleted == 1 else 'ies'}.")
            return

        try:
            rows = store.list_entries_by_type(settings.prospect_entry_type)
        except StoreError as e:
            raise SystemExit(f"Retention sweep failed: {e}") from e
    finally:
        if owned:
            store.close()

    entries = [WaitlistEntry.from_row(r) for r in rows]
    decision = evaluate(entries, today)
    print(
        f"Retention sweep mode=dry-run today={today.isoformat()} prospects={len(entries)} "
        f"expired={len(decision.expired)} standard_cutoff={decision.cutoffs.standard.isoformat()} "
        f"extended_cutoff={decision.cutoffs.extended.isoformat()}"
    )
    if not decision.expired:
        print("No expired entries.")
        return

    for e in decision.expired:
        eff = effective_date(e)
        print(
            f"  - id={e.id} name={e.full_name!r} effective={eff.isoformat() if eff else '-'} "
            f"extended_retention={e.extended_retention}"
        )
    print(f"Would delete {len(decision.expired)} entr{'y' if len(decision.expired) == 1 else 'ies'}. Re-run with --apply to delete.")


def cmd_week_range() -> None:
    print(f"YTD:           {format_date_range(year_to_date_range())}")
    print(f"This week:     {format_date_range(current_week_range())}")
    print(f"Previous week: {format_date_range(previous_week_range())}")


def main() -> None:
    parser = argparse.ArgumentParser(prog="waitlist-admin")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_sweep = sub.add_parser("retention-sweep", help="List expired prospect entries and optionally delete them.")
    p_sweep.add_argument("--apply", action="store_true", help="Actually delete expired entries (default: dry-run).")
    p_sweep.add_argument("--today", default=None, help="Override 'today' as YYYY-MM-DD (testing).")

    sub.add_parser("week-range", help="Print the YTD, current and previous reporting windows.")

    args = parser.parse_args()
    if args.cmd == "retention-sweep":
        cmd_retention_sweep(apply=bool(args.apply), today=_parse_today(args.today))
    elif args.cmd == "week-range":
        cmd_week_range()


if __name__ == "__main__":
    main()
