#!/usr/bin/env python3
"""
Compute and store a race day.

Fetches the day's meetings and races from Topaz, merges form statistics from
the local run store onto every runner, and saves the result for the
dashboard. Intended to run once each morning (e.g. from cron).

Usage:
    python scripts/daily_compute.py
    python scripts/daily_compute.py --date 2025-11-24
    python scripts/daily_compute.py --extended  # Include scores, prize money, form
"""

import argparse
import sqlite3
from pathlib import Path

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.topaz import TopazAPI
from core.daily_store import DailyRaceStore
from core.logging import get_logger
from core.pipeline import run_daily_compute
from core.store import RunStore

logger = get_logger("daily_compute")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Compute and store a race day")
    parser.add_argument("--date", type=str, help="Race date YYYY-MM-DD (default: today, Sydney time)")
    parser.add_argument("--extended", action="store_true", help="Include extended statistics")
    parser.add_argument("--runs-db", type=str, help="Path to runs database")
    parser.add_argument("--daily-db", type=str, help="Path to daily races database")
    args = parser.parse_args(argv)

    try:
        api = TopazAPI()
        sink = DailyRaceStore(Path(args.daily_db) if args.daily_db else None)
        with RunStore(Path(args.runs_db) if args.runs_db else None) as store:
            doc = run_daily_compute(api, store, sink, date=args.date, extended=args.extended)
    except (ValueError, sqlite3.Error) as e:
        logger.error(f"Daily compute failed: {e}")
        return 1

    meetings = sum(len(m) for m in doc.data.values())
    print(f"\nSummary:")
    print(f"  Date: {doc.date}")
    print(f"  Meetings: {meetings}")
    print(f"  Runners: {doc.runner_count}")
    print(f"  Computed at: {doc.computed_at}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
