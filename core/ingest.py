"""
Historical run ingestion.

Pulls bulk run exports from Topaz and upserts them into the run store. Calls
are made one at a time with a politeness delay. A failed request is logged
and skipped; a store failure stops the run.

Usage:
    from core.ingest import scrape_years

    with RunStore() as store:
        summary = scrape_years(TopazAPI(), store, today=date.today())
        print(summary.to_dict())
"""

import calendar
import time
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Optional

from api.topaz import APIError, TopazAPI
from core import config
from core.logging import LogContext, get_logger
from core.store import RunStore

logger = get_logger(__name__)

YEARS_BACK = 6
MONTHS_BEFORE_CURRENT = 3


@dataclass
class IngestSummary:
    requests: int = 0
    completed: int = 0
    failed: int = 0
    runs_inserted: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _shift_months(year: int, month: int, months: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def get_date_ranges_to_scrape(
    today: date,
    years_back: int = YEARS_BACK,
    months_before_current: int = MONTHS_BEFORE_CURRENT,
) -> list[tuple[int, int]]:
    """
    Months to backfill: from `years_back` years ago up to and including the
    month `months_before_current` months before today's.

    Returns:
        List of (year, month), oldest first
    """
    start = (today.year - years_back, today.month)
    end = _shift_months(today.year, today.month, -months_before_current)

    ranges = []
    current = start
    while current <= end:
        ranges.append(current)
        current = _shift_months(*current, 1)
    return ranges


def get_days_to_scrape(year: int, month: int, today: date) -> list[int]:
    """Days of the month that have already finished (up to yesterday)."""
    yesterday = today - timedelta(days=1)
    days_in_month = calendar.monthrange(year, month)[1]
    return [
        day for day in range(1, days_in_month + 1)
        if date(year, month, day) <= yesterday
    ]


def _scrape(
    api: TopazAPI,
    store: RunStore,
    requests: list[tuple],
    delay: Optional[float],
) -> IngestSummary:
    """Run (jurisdiction, year, month[, day]) bulk requests in order."""
    delay = config.BULK_FETCH_DELAY if delay is None else delay
    summary = IngestSummary(requests=len(requests))

    for i, request in enumerate(requests, start=1):
        label = "-".join(str(part) for part in request)
        with LogContext(logger, request=label):
            try:
                runs = api.get_bulk_runs(*request)
            except APIError as e:
                summary.failed += 1
                logger.error(f"Error fetching {label}: {e}")
                continue

            # Store errors propagate
            if runs:
                inserted = store.upsert_runs(runs)
                summary.runs_inserted += inserted
                logger.info(f"Inserted {inserted} runs")
            else:
                logger.info("No data found")

        summary.completed += 1
        logger.info(
            f"Progress: {i}/{summary.requests} ({round(i / summary.requests * 100)}%)"
        )

        if delay:
            time.sleep(delay)

    logger.info(
        f"New runs inserted: {summary.runs_inserted}",
        extra={"completed": summary.completed, "failed": summary.failed},
    )
    return summary


def scrape_month(
    api: TopazAPI,
    store: RunStore,
    year: int,
    month: int,
    jurisdictions: Optional[list[str]] = None,
    delay: Optional[float] = None,
) -> IngestSummary:
    """One monthly bulk export per jurisdiction."""
    jurisdictions = jurisdictions or config.JURISDICTIONS
    logger.info(f"Scraping {year}-{month:02d} (one month only)")
    return _scrape(api, store, [(jur, year, month) for jur in jurisdictions], delay)


def scrape_days(
    api: TopazAPI,
    store: RunStore,
    year: int,
    month: int,
    today: Optional[date] = None,
    jurisdictions: Optional[list[str]] = None,
    delay: Optional[float] = None,
) -> IngestSummary:
    """Daily bulk exports for each finished day of the month, per jurisdiction."""
    jurisdictions = jurisdictions or config.JURISDICTIONS
    today = today or config.now_local().date()
    days = get_days_to_scrape(year, month, today)

    logger.info(
        f"Scraping {year}-{month:02d} by day",
        extra={"days": len(days), "jurisdictions": len(jurisdictions)},
    )
    requests = [(jur, year, month, day) for jur in jurisdictions for day in days]
    return _scrape(api, store, requests, delay)


def scrape_years(
    api: TopazAPI,
    store: RunStore,
    today: Optional[date] = None,
    years_back: int = YEARS_BACK,
    months_before_current: int = MONTHS_BEFORE_CURRENT,
    jurisdictions: Optional[list[str]] = None,
    delay: Optional[float] = None,
) -> IngestSummary:
    """Monthly bulk exports across the whole backfill window, per jurisdiction."""
    jurisdictions = jurisdictions or config.JURISDICTIONS
    today = today or config.now_local().date()
    ranges = get_date_ranges_to_scrape(today, years_back, months_before_current)

    logger.info(
        f"Scraping {years_back} years back, stopping {months_before_current} "
        f"months before current date",
        extra={"months": len(ranges), "jurisdictions": len(jurisdictions)},
    )
    requests = [(jur, year, month) for jur in jurisdictions for year, month in ranges]
    return _scrape(api, store, requests, delay)
