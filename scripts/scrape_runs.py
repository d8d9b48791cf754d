#!/usr/bin/env python3
"""
Backfill the run store from Topaz bulk exports.

Usage:
    python scripts/scrape_runs.py years                   # 6 years back, stop 3 months ago
    python scripts/scrape_runs.py years --years-back 2
    python scripts/scrape_runs.py month 2025 11           # Monthly export for one month
    python scripts/scrape_runs.py days 2025 11            # Daily exports up to yesterday
    python scripts/scrape_runs.py tracks                  # List Topaz track codes
    python scripts/scrape_runs.py days 2025 11 --jurisdiction NSW --jurisdiction VIC
"""

import argparse
import sqlite3
from pathlib import Path

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.topaz import APIError, TopazAPI
from core import config
from core.ingest import scrape_days, scrape_month, scrape_years
from core.logging import get_logger
from core.store import RunStore

logger = get_logger("scrape_runs")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Backfill runs from Topaz bulk exports")
    parser.add_argument("--db", type=str, help="Path to runs database")
    parser.add_argument(
        "--jurisdiction", action="append", choices=config.JURISDICTIONS,
        help="Limit to a jurisdiction (repeatable; default: all)",
    )
    parser.add_argument("--delay", type=float, help="Seconds between requests")

    sub = parser.add_subparsers(dest="mode", required=True)

    years = sub.add_parser("years", help="Monthly exports across the backfill window")
    years.add_argument("--years-back", type=int, default=6)
    years.add_argument("--months-before-current", type=int, default=3)

    for name, help_text in (("month", "One monthly export"), ("days", "Daily exports up to yesterday")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("year", type=int)
        p.add_argument("month", type=int, choices=range(1, 13), metavar="month")

    sub.add_parser("tracks", help="List track codes")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        api = TopazAPI()
    except ValueError as e:
        logger.error(str(e))
        return 1

    if args.mode == "tracks":
        try:
            tracks = api.get_track_codes()
        except APIError as e:
            logger.error(f"Failed to fetch track codes: {e}")
            return 1
        for track in tracks:
            print(f"{track.get('trackCode', '?'):6} {track.get('trackName', '')}")
        return 0

    db_path = Path(args.db) if args.db else None
    try:
        with RunStore(db_path) as store:
            if args.mode == "years":
                summary = scrape_years(
                    api, store,
                    years_back=args.years_back,
                    months_before_current=args.months_before_current,
                    jurisdictions=args.jurisdiction,
                    delay=args.delay,
                )
            elif args.mode == "month":
                summary = scrape_month(
                    api, store, args.year, args.month,
                    jurisdictions=args.jurisdiction, delay=args.delay,
                )
            else:
                summary = scrape_days(
                    api, store, args.year, args.month,
                    jurisdictions=args.jurisdiction, delay=args.delay,
                )
            total = store.count_runs()
    except sqlite3.Error as e:
        logger.error(f"Store error, stopping: {e}")
        return 1

    print(f"\nSummary:")
    print(f"  Requests: {summary.requests}")
    print(f"  Completed: {summary.completed}")
    print(f"  Failed: {summary.failed}")
    print(f"  Runs inserted: {summary.runs_inserted}")
    print(f"  Runs in store: {total}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
