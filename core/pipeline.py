"""
Daily compute pipeline.

Pulls today's meetings and races from Topaz, computes every statistic family
from the run store, merges them onto each runner and (optionally) saves the
result for the dashboard.

Steps:
1. Fetch meetings for every jurisdiction (parallel)
2. Fetch races for every meeting (parallel, with a politeness delay)
3. Compute statistics from the run store
4. Merge statistics onto runners
5. Save the document

Usage:
    from api.topaz import TopazAPI
    from core.daily_store import DailyRaceStore
    from core.pipeline import run_daily_compute
    from core.store import RunStore

    with RunStore() as store:
        doc = run_daily_compute(TopazAPI(), store, DailyRaceStore())
"""

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Optional

from api.topaz import APIError, TopazAPI
from core import config
from core.aggregates import compute_all
from core.daily_store import DailyRaceStore
from core.enrichment import AggregateIndex, enrich_meetings
from core.logging import get_logger, log_fetch_failure, log_stage
from core.models import Meeting, Race
from core.results import STATUS_MESSAGES, FetchResult, FetchStatus
from core.store import RunStore

logger = get_logger(__name__)

TOTAL_STEPS = 5

# Marker left on a meeting whose races could not be loaded
RACES_FAILED = STATUS_MESSAGES[FetchStatus.API_ERROR]


@dataclass
class DailyDocument:
    """One computed race day."""
    date: str
    computed_at: str
    data: dict  # jurisdiction -> list of meeting dicts
    runner_count: int = 0

    def to_dict(self) -> dict:
        return {"date": self.date, "computedAt": self.computed_at, "data": self.data}


# =============================================================================
# FAN-OUT
# =============================================================================

def _fetch_jurisdiction(api: TopazAPI, date: str, jurisdiction: str) -> FetchResult:
    try:
        return FetchResult.success(jurisdiction, api.get_meetings(date, date, jurisdiction))
    except APIError as e:
        return FetchResult.api_error(jurisdiction, str(e))
    except Exception as e:
        return FetchResult.unknown_error(jurisdiction, str(e))


def fetch_meetings(
    api: TopazAPI,
    date: str,
    jurisdictions: Optional[list[str]] = None,
    max_workers: Optional[int] = None,
) -> dict[str, FetchResult]:
    """
    Fetch the day's meetings for each jurisdiction in parallel.

    A jurisdiction that fails is logged and comes back as a failed
    FetchResult with empty data; the others are unaffected.

    Returns:
        Dict of jurisdiction -> FetchResult (data is a list of meeting dicts)
    """
    jurisdictions = jurisdictions or config.JURISDICTIONS
    results: dict[str, FetchResult] = {}

    with ThreadPoolExecutor(max_workers=max_workers or config.MAX_WORKERS) as executor:
        futures = {
            executor.submit(_fetch_jurisdiction, api, date, jur): jur
            for jur in jurisdictions
        }
        for future in as_completed(futures):
            jur = futures[future]
            result = future.result()
            if not result.ok:
                log_fetch_failure(logger, "meetings", jur, result.error)
            results[jur] = result

    # Keep the configured jurisdiction order
    return {jur: results[jur] for jur in jurisdictions}


def _fetch_meeting_races(api: TopazAPI, meeting_id, delay: float) -> FetchResult:
    try:
        return FetchResult.success(meeting_id, api.get_races(meeting_id))
    except APIError as e:
        return FetchResult.api_error(meeting_id, str(e))
    except Exception as e:
        return FetchResult.unknown_error(meeting_id, str(e))
    finally:
        if delay:
            time.sleep(delay)


def fetch_races(
    api: TopazAPI,
    meetings: list[Meeting],
    delay: Optional[float] = None,
    max_workers: Optional[int] = None,
) -> dict:
    """
    Fetch races for every meeting in parallel.

    Each branch sleeps `delay` seconds after its call. A meeting whose races
    fail is logged and comes back as a failed FetchResult with no races.

    Returns:
        Dict of meetingId -> FetchResult (data is a list of race dicts)
    """
    delay = config.RACE_FETCH_DELAY if delay is None else delay
    results = {}
    if not meetings:
        return results

    with ThreadPoolExecutor(max_workers=max_workers or config.MAX_WORKERS) as executor:
        futures = {
            executor.submit(_fetch_meeting_races, api, m.meeting_id, delay): m.meeting_id
            for m in meetings
        }
        for future in as_completed(futures):
            meeting_id = futures[future]
            result = future.result()
            if not result.ok:
                log_fetch_failure(logger, "races", meeting_id, result.error)
            results[meeting_id] = result

    return results


def build_race_tree(
    meeting_results: dict[str, FetchResult],
    race_results: dict,
) -> dict[str, list[Meeting]]:
    """
    Assemble jurisdiction -> meetings -> races -> runners.

    Every jurisdiction asked for is present (possibly empty). Meetings whose
    races failed keep an empty race list and the error marker.
    """
    tree: dict[str, list[Meeting]] = {}

    for jur, meeting_result in meeting_results.items():
        meetings = []
        for raw in meeting_result.data:
            meeting = Meeting.from_api(raw, jurisdiction=jur)
            race_result = race_results.get(meeting.meeting_id)
            if race_result is not None and race_result.ok:
                meeting.races = [Race.from_api(r) for r in race_result.data]
            else:
                meeting.error = RACES_FAILED
            meetings.append(meeting)
        tree[jur] = meetings

    return tree


# =============================================================================
# DAILY COMPUTE
# =============================================================================

def compute_daily(
    api: TopazAPI,
    store: RunStore,
    date: Optional[str] = None,
    extended: bool = False,
    jurisdictions: Optional[list[str]] = None,
    delay: Optional[float] = None,
) -> DailyDocument:
    """
    Compute the enriched race tree for a date without saving it.

    Args:
        api: Topaz client
        store: Open run store
        date: YYYY-MM-DD (default: today in the racing timezone)
        extended: Include the extended statistic families
        jurisdictions: Override the configured jurisdictions
        delay: Override the per-call race fetch delay

    Returns:
        DailyDocument with the serialized tree
    """
    date = date or config.today_str()
    started = time.monotonic()

    log_stage(logger, 1, TOTAL_STEPS, "Fetching meetings", date=date)
    meeting_results = fetch_meetings(api, date, jurisdictions)
    all_meetings = [
        Meeting.from_api(raw, jurisdiction=jur)
        for jur, result in meeting_results.items()
        for raw in result.data
    ]
    logger.info(f"Found {len(all_meetings)} meetings")

    log_stage(logger, 2, TOTAL_STEPS, "Fetching races", meetings=len(all_meetings))
    race_results = fetch_races(api, all_meetings, delay)
    tree = build_race_tree(meeting_results, race_results)

    log_stage(logger, 3, TOTAL_STEPS, "Computing statistics", extended=extended)
    index = AggregateIndex.build(compute_all(store, extended=extended))

    log_stage(logger, 4, TOTAL_STEPS, "Merging statistics onto runners")
    enriched, runner_count = enrich_meetings(tree, index, extended=extended)

    data = {
        jur: [meeting.to_dict() for meeting in meetings]
        for jur, meetings in enriched.items()
    }

    logger.info(
        f"Computed {date} in {time.monotonic() - started:.1f}s",
        extra={"meetings": len(all_meetings), "runners": runner_count},
    )
    return DailyDocument(
        date=date,
        computed_at=config.now_local().isoformat(),
        data=data,
        runner_count=runner_count,
    )


def run_daily_compute(
    api: TopazAPI,
    store: RunStore,
    sink: DailyRaceStore,
    date: Optional[str] = None,
    extended: bool = False,
) -> DailyDocument:
    """Compute a date and save it to the daily races store."""
    doc = compute_daily(api, store, date=date, extended=extended)

    log_stage(logger, 5, TOTAL_STEPS, "Saving results", date=doc.date)
    sink.save_daily_races(doc.date, doc.data, computed_at=doc.computed_at)
    return doc
