"""
Aggregate statistics over the runs table.

Each get_* function computes one statistic family from scratch over the whole
store and returns typed records keyed by their natural key. Nothing here is
persisted; callers index the records (see core.enrichment) before merging
them onto today's runners.

Rules shared by every family:
- Scratched runs never count (scratched = 0 or NULL).
- Sentinel zeros are excluded from time/position averages only
  (resultTime > 0, firstSplitTime > 0, firstSplitPosition > 0, place > 0),
  not from start/win/place counts.
- "Most recent" means meetingDate DESC, then raceNumber DESC and runId DESC
  so ties always resolve the same way.

Usage:
    from core.aggregates import compute_all

    aggregates = compute_all(store)
    print(len(aggregates.dog_stats))
"""

import math
import time
from dataclasses import dataclass, field
from typing import Optional

from core.logging import get_logger
from core.store import RunStore

logger = get_logger(__name__)

NOT_SCRATCHED = "(scratched = 0 OR scratched IS NULL)"
MOST_RECENT = "meetingDate DESC, raceNumber DESC, runId DESC"

# Minimum sample sizes
MIN_CONSISTENCY_RUNS = 5
MIN_TRACK_STARTS = 3
MIN_DISTANCE_STARTS = 2
MIN_BOX_GROUP_STARTS = 2

# Weighted form: weights for the five most recent runs, divisor fixed
FORM_WEIGHTS = (5, 4, 3, 2, 1)
FORM_DIVISOR = 15

BOX_GROUP_SQL = """
    CASE
        WHEN boxNumber IN (1, 2) THEN 'inside'
        WHEN boxNumber IN (3, 4, 5) THEN 'middle'
        ELSE 'outside'
    END
"""


def box_group(box_number: Optional[int]) -> Optional[str]:
    """
    Partition a starting box into inside / middle / outside.

    Examples:
        >>> box_group(2)
        'inside'
        >>> box_group(5)
        'middle'
        >>> box_group(8)
        'outside'
        >>> box_group(None) is None
        True
    """
    if not box_number or box_number <= 0:
        return None
    if box_number <= 2:
        return "inside"
    if box_number <= 5:
        return "middle"
    return "outside"


# =============================================================================
# RECORDS
# =============================================================================

@dataclass
class DogStat:
    dog_id: int
    total_starts: int
    wins: int
    places: int


@dataclass
class TrainerStat:
    trainer_id: int
    total_starts: int
    wins: int


@dataclass
class BoxBiasStat:
    track_code: str
    box_number: int
    total_starts: int
    wins: int


@dataclass
class RecentPerformanceStat:
    """Last-5 averages at one track and distance. Either average may be missing."""
    dog_id: int
    track_code: str
    distance: int
    avg_time_last5: Optional[float] = None
    avg_split_last5: Optional[float] = None
    runs_at_track_dist: int = 0


@dataclass
class LastRaceGrade:
    dog_id: int
    last_grade: str


@dataclass
class PerformanceRating:
    dog_id: int
    career_score: Optional[float]
    last5_score: Optional[float]


@dataclass
class CareerPrizeMoney:
    dog_id: int
    amount: float


@dataclass
class ConsistencyScore:
    dog_id: int
    score: float
    timed_runs: int


@dataclass
class EarlySpeedRating:
    dog_id: int
    last5_rating: Optional[float]


@dataclass
class RunningStyleStat:
    dog_id: int
    avg_first_split_position: Optional[float]
    avg_first_split_position_l5: Optional[float]
    lead_at_first_bend_rate: Optional[float]


@dataclass
class TrackSpecificStat:
    dog_id: int
    track_code: str
    starts: int
    win_rate: float
    place_rate: float


@dataclass
class DistanceSpecificStat:
    dog_id: int
    distance: int
    starts: int
    win_rate: float
    place_rate: float
    avg_time: Optional[float]


@dataclass
class BoxPerformanceStat:
    dog_id: int
    box_group: str
    starts: int
    win_rate: float
    avg_time: Optional[float]

    def to_dict(self) -> dict:
        return {
            "boxGroup": self.box_group,
            "starts": self.starts,
            "winRate": self.win_rate,
            "avgTime": self.avg_time,
        }


@dataclass
class WeightedRecentForm:
    dog_id: int
    weighted_avg_place: Optional[float]
    recent_improvement: Optional[float]


@dataclass
class AggregateSet:
    """Every statistic family computed in one pass over the store."""
    dog_stats: list[DogStat] = field(default_factory=list)
    trainer_stats: list[TrainerStat] = field(default_factory=list)
    box_bias_stats: list[BoxBiasStat] = field(default_factory=list)
    recent_performance: list[RecentPerformanceStat] = field(default_factory=list)
    last_race_grades: list[LastRaceGrade] = field(default_factory=list)
    running_style: list[RunningStyleStat] = field(default_factory=list)
    track_specific: list[TrackSpecificStat] = field(default_factory=list)
    distance_specific: list[DistanceSpecificStat] = field(default_factory=list)
    box_performance: list[BoxPerformanceStat] = field(default_factory=list)

    # Extended families (career scores, prize money, form trend)
    performance_ratings: list[PerformanceRating] = field(default_factory=list)
    prize_money: list[CareerPrizeMoney] = field(default_factory=list)
    consistency: list[ConsistencyScore] = field(default_factory=list)
    early_speed: list[EarlySpeedRating] = field(default_factory=list)
    weighted_form: list[WeightedRecentForm] = field(default_factory=list)


# =============================================================================
# TOTALS
# =============================================================================

def get_dog_stats(store: RunStore) -> list[DogStat]:
    """Career starts, wins and places (1st-3rd) per dog."""
    rows = store.query(f"""
        SELECT dogId,
            COUNT(*) AS totalStarts,
            SUM(CASE WHEN place = 1 THEN 1 ELSE 0 END) AS wins,
            SUM(CASE WHEN place IN (1, 2, 3) THEN 1 ELSE 0 END) AS places
        FROM runs
        WHERE {NOT_SCRATCHED} AND dogId IS NOT NULL
        GROUP BY dogId
    """)
    return [
        DogStat(r["dogId"], r["totalStarts"], r["wins"], r["places"])
        for r in rows
    ]


def get_trainer_stats(store: RunStore) -> list[TrainerStat]:
    """Starts and wins per trainer."""
    rows = store.query(f"""
        SELECT trainerId,
            COUNT(*) AS totalStarts,
            SUM(CASE WHEN place = 1 THEN 1 ELSE 0 END) AS wins
        FROM runs
        WHERE {NOT_SCRATCHED} AND trainerId IS NOT NULL
        GROUP BY trainerId
    """)
    return [TrainerStat(r["trainerId"], r["totalStarts"], r["wins"]) for r in rows]


def get_box_bias_stats(store: RunStore) -> list[BoxBiasStat]:
    """Starts and wins from each box at each track."""
    rows = store.query(f"""
        SELECT trackCode, boxNumber,
            COUNT(*) AS totalStarts,
            SUM(CASE WHEN place = 1 THEN 1 ELSE 0 END) AS wins
        FROM runs
        WHERE {NOT_SCRATCHED}
            AND trackCode IS NOT NULL
            AND boxNumber IS NOT NULL
            AND boxNumber > 0
        GROUP BY trackCode, boxNumber
    """)
    return [
        BoxBiasStat(r["trackCode"], r["boxNumber"], r["totalStarts"], r["wins"])
        for r in rows
    ]


# =============================================================================
# RECENT FORM AT TRACK + DISTANCE
# =============================================================================

def _recent_average(store: RunStore, column: str) -> dict[tuple, dict]:
    """Average of `column` over each dog's last 5 valid runs per track/distance."""
    rows = store.query(f"""
        WITH RankedRuns AS (
            SELECT dogId, trackCode, distanceInMetres, {column} AS value,
                ROW_NUMBER() OVER (
                    PARTITION BY dogId, trackCode, distanceInMetres
                    ORDER BY {MOST_RECENT}
                ) AS rn
            FROM runs
            WHERE {NOT_SCRATCHED} AND {column} > 0
        )
        SELECT dogId, trackCode, distanceInMetres,
            AVG(value) AS average,
            COUNT(*) AS runs
        FROM RankedRuns
        WHERE rn <= 5
        GROUP BY dogId, trackCode, distanceInMetres
    """)
    return {
        (r["dogId"], r["trackCode"], r["distanceInMetres"]): r
        for r in rows
    }


def get_recent_performance_stats(store: RunStore) -> list[RecentPerformanceStat]:
    """
    Last-5 average time and last-5 average first split per (dog, track, distance).

    Times and splits are ranked independently: a run with a time but no split
    still counts towards the time average. The two results are merged over
    the union of their keys.
    """
    times = _recent_average(store, "resultTime")
    splits = _recent_average(store, "firstSplitTime")

    merged = []
    for key in times.keys() | splits.keys():
        dog_id, track_code, distance = key
        time_row = times.get(key)
        split_row = splits.get(key)
        merged.append(RecentPerformanceStat(
            dog_id=dog_id,
            track_code=track_code,
            distance=distance,
            avg_time_last5=time_row["average"] if time_row else None,
            avg_split_last5=split_row["average"] if split_row else None,
            runs_at_track_dist=time_row["runs"] if time_row else 0,
        ))
    return merged


# =============================================================================
# GRADE, SCORES, PRIZE MONEY
# =============================================================================

def get_last_race_grades(store: RunStore) -> list[LastRaceGrade]:
    """Outgoing grade of each dog's most recent run."""
    rows = store.query(f"""
        WITH LastRun AS (
            SELECT dogId, outgoingGrade,
                ROW_NUMBER() OVER (PARTITION BY dogId ORDER BY {MOST_RECENT}) AS rn
            FROM runs
            WHERE {NOT_SCRATCHED} AND outgoingGrade IS NOT NULL
        )
        SELECT dogId, outgoingGrade FROM LastRun WHERE rn = 1
    """)
    return [LastRaceGrade(r["dogId"], r["outgoingGrade"]) for r in rows]


def get_performance_ratings(store: RunStore) -> list[PerformanceRating]:
    """
    Benchmark-normalised time score, career and last 5.

    A run scores (fastest time at its track+distance / its time) * 100,
    so 100 means it equalled the fastest run on record.
    """
    rows = store.query(f"""
        WITH Benchmarks AS (
            SELECT trackCode, distanceInMetres, MIN(resultTime) AS benchmarkTime
            FROM runs
            WHERE resultTime > 0 AND {NOT_SCRATCHED}
            GROUP BY trackCode, distanceInMetres
        ),
        RunScores AS (
            SELECT r.dogId,
                (b.benchmarkTime / r.resultTime) * 100 AS score,
                ROW_NUMBER() OVER (
                    PARTITION BY r.dogId
                    ORDER BY r.meetingDate DESC, r.raceNumber DESC, r.runId DESC
                ) AS rn
            FROM runs r
            JOIN Benchmarks b
                ON r.trackCode = b.trackCode AND r.distanceInMetres = b.distanceInMetres
            WHERE r.resultTime > 0 AND (r.scratched = 0 OR r.scratched IS NULL)
        )
        SELECT dogId,
            AVG(score) AS careerScore,
            AVG(CASE WHEN rn <= 5 THEN score END) AS last5Score
        FROM RunScores
        GROUP BY dogId
    """)
    return [
        PerformanceRating(r["dogId"], r["careerScore"], r["last5Score"])
        for r in rows
    ]


def get_career_prize_money(store: RunStore) -> list[CareerPrizeMoney]:
    """Latest recorded career prize money (a running total) per dog."""
    rows = store.query(f"""
        WITH LatestRun AS (
            SELECT dogId, careerPrizeMoney,
                ROW_NUMBER() OVER (PARTITION BY dogId ORDER BY {MOST_RECENT}) AS rn
            FROM runs
            WHERE {NOT_SCRATCHED}
                AND careerPrizeMoney IS NOT NULL
                AND careerPrizeMoney > 0
        )
        SELECT dogId, careerPrizeMoney FROM LatestRun WHERE rn = 1
    """)
    return [CareerPrizeMoney(r["dogId"], r["careerPrizeMoney"]) for r in rows]


def get_consistency_scores(store: RunStore) -> list[ConsistencyScore]:
    """
    Time consistency per dog: (1 - stdev / mean) * 100.

    Uses the sample standard deviation (n - 1) over all timed runs; dogs with
    fewer than MIN_CONSISTENCY_RUNS timed runs are left out. SQLite has no
    portable SQRT, so SQL returns the sums and the root is taken here.
    """
    rows = store.query(f"""
        SELECT dogId,
            COUNT(resultTime) AS n,
            SUM(resultTime) AS total,
            SUM(resultTime * resultTime) AS totalSquares
        FROM runs
        WHERE resultTime > 0 AND {NOT_SCRATCHED}
        GROUP BY dogId
        HAVING COUNT(resultTime) >= ?
    """, (MIN_CONSISTENCY_RUNS,))

    scores = []
    for r in rows:
        n = r["n"]
        mean = r["total"] / n
        variance = (r["totalSquares"] - r["total"] ** 2 / n) / (n - 1)
        stdev = math.sqrt(max(variance, 0.0))
        scores.append(ConsistencyScore(r["dogId"], (1 - stdev / mean) * 100, n))
    return scores


def get_early_speed_ratings(store: RunStore) -> list[EarlySpeedRating]:
    """First-split score over the last 5 runs, normalised by the track's fastest split."""
    rows = store.query(f"""
        WITH SplitBenchmarks AS (
            SELECT trackCode, MIN(firstSplitTime) AS benchmarkSplit
            FROM runs
            WHERE firstSplitTime > 0 AND {NOT_SCRATCHED}
            GROUP BY trackCode
        ),
        SplitScores AS (
            SELECT r.dogId,
                (b.benchmarkSplit / r.firstSplitTime) * 100 AS score,
                ROW_NUMBER() OVER (
                    PARTITION BY r.dogId
                    ORDER BY r.meetingDate DESC, r.raceNumber DESC, r.runId DESC
                ) AS rn
            FROM runs r
            JOIN SplitBenchmarks b ON r.trackCode = b.trackCode
            WHERE r.firstSplitTime > 0 AND (r.scratched = 0 OR r.scratched IS NULL)
        )
        SELECT dogId, AVG(CASE WHEN rn <= 5 THEN score END) AS last5Rating
        FROM SplitScores
        GROUP BY dogId
    """)
    return [EarlySpeedRating(r["dogId"], r["last5Rating"]) for r in rows]


# =============================================================================
# RUNNING STYLE, TRACK / DISTANCE / BOX SPLITS
# =============================================================================

def get_running_style_stats(store: RunStore) -> list[RunningStyleStat]:
    """
    First-split position signals over each dog's last 10 runs with a position.

    avg_first_split_position covers all 10, the L5 variant the latest 5;
    lead rate is the share of those 10 led at the first split.
    """
    rows = store.query(f"""
        WITH RecentRuns AS (
            SELECT dogId, firstSplitPosition,
                ROW_NUMBER() OVER (PARTITION BY dogId ORDER BY {MOST_RECENT}) AS rn
            FROM runs
            WHERE {NOT_SCRATCHED}
                AND firstSplitPosition IS NOT NULL
                AND firstSplitPosition > 0
        )
        SELECT dogId,
            AVG(firstSplitPosition) AS avgPosition,
            AVG(CASE WHEN rn <= 5 THEN firstSplitPosition END) AS avgPositionL5,
            SUM(CASE WHEN firstSplitPosition = 1 THEN 1 ELSE 0 END) * 1.0 / COUNT(*) AS leadRate
        FROM RecentRuns
        WHERE rn <= 10
        GROUP BY dogId
    """)
    return [
        RunningStyleStat(r["dogId"], r["avgPosition"], r["avgPositionL5"], r["leadRate"])
        for r in rows
    ]


def get_track_specific_stats(store: RunStore) -> list[TrackSpecificStat]:
    """Win and place rate per dog at each track (min 3 starts)."""
    rows = store.query(f"""
        SELECT dogId, trackCode,
            COUNT(*) AS starts,
            SUM(CASE WHEN place = 1 THEN 1 ELSE 0 END) * 1.0 / COUNT(*) AS winRate,
            SUM(CASE WHEN place IN (1, 2, 3) THEN 1 ELSE 0 END) * 1.0 / COUNT(*) AS placeRate
        FROM runs
        WHERE {NOT_SCRATCHED} AND dogId IS NOT NULL AND trackCode IS NOT NULL
        GROUP BY dogId, trackCode
        HAVING COUNT(*) >= ?
    """, (MIN_TRACK_STARTS,))
    return [
        TrackSpecificStat(r["dogId"], r["trackCode"], r["starts"], r["winRate"], r["placeRate"])
        for r in rows
    ]


def get_distance_specific_stats(store: RunStore) -> list[DistanceSpecificStat]:
    """Win rate, place rate and average time per dog at each distance (min 2 starts)."""
    rows = store.query(f"""
        SELECT dogId, distanceInMetres,
            COUNT(*) AS starts,
            SUM(CASE WHEN place = 1 THEN 1 ELSE 0 END) * 1.0 / COUNT(*) AS winRate,
            SUM(CASE WHEN place IN (1, 2, 3) THEN 1 ELSE 0 END) * 1.0 / COUNT(*) AS placeRate,
            AVG(CASE WHEN resultTime > 0 THEN resultTime END) AS avgTime
        FROM runs
        WHERE {NOT_SCRATCHED} AND dogId IS NOT NULL AND distanceInMetres IS NOT NULL
        GROUP BY dogId, distanceInMetres
        HAVING COUNT(*) >= ?
    """, (MIN_DISTANCE_STARTS,))
    return [
        DistanceSpecificStat(
            r["dogId"], r["distanceInMetres"], r["starts"],
            r["winRate"], r["placeRate"], r["avgTime"],
        )
        for r in rows
    ]


def get_box_performance_by_dog(store: RunStore) -> list[BoxPerformanceStat]:
    """Starts, win rate and average time per dog from each box group (min 2 starts)."""
    rows = store.query(f"""
        SELECT dogId,
            {BOX_GROUP_SQL} AS boxGroup,
            COUNT(*) AS starts,
            SUM(CASE WHEN place = 1 THEN 1 ELSE 0 END) * 1.0 / COUNT(*) AS winRate,
            AVG(CASE WHEN resultTime > 0 THEN resultTime END) AS avgTime
        FROM runs
        WHERE {NOT_SCRATCHED} AND dogId IS NOT NULL AND boxNumber > 0
        GROUP BY dogId, boxGroup
        HAVING COUNT(*) >= ?
        ORDER BY dogId, boxGroup
    """, (MIN_BOX_GROUP_STARTS,))
    return [
        BoxPerformanceStat(r["dogId"], r["boxGroup"], r["starts"], r["winRate"], r["avgTime"])
        for r in rows
    ]


def get_weighted_recent_form(store: RunStore) -> list[WeightedRecentForm]:
    """
    Recency-weighted average finishing place and short-term trend.

    weighted_avg_place = sum(place * weight) / 15 over the last five timed
    runs (weights 5..1). recent_improvement = avg place of runs 1-3 minus
    avg place of runs 4-6; negative means the dog is finishing closer up.
    """
    weight_cases = "\n".join(
        f"WHEN rn = {rank} THEN place * {weight}"
        for rank, weight in enumerate(FORM_WEIGHTS, start=1)
    )
    rows = store.query(f"""
        WITH RankedRuns AS (
            SELECT dogId, place,
                ROW_NUMBER() OVER (PARTITION BY dogId ORDER BY {MOST_RECENT}) AS rn
            FROM runs
            WHERE {NOT_SCRATCHED} AND resultTime > 0
        )
        SELECT dogId,
            SUM(CASE {weight_cases} ELSE 0 END) * 1.0 / {FORM_DIVISOR} AS weightedAvgPlace,
            AVG(CASE WHEN rn <= 3 THEN place END)
                - AVG(CASE WHEN rn BETWEEN 4 AND 6 THEN place END) AS recentImprovement
        FROM RankedRuns
        WHERE rn <= 6
        GROUP BY dogId
    """)
    return [
        WeightedRecentForm(r["dogId"], r["weightedAvgPlace"], r["recentImprovement"])
        for r in rows
    ]


# =============================================================================
# ALL FAMILIES
# =============================================================================

def compute_all(store: RunStore, extended: bool = True) -> AggregateSet:
    """
    Compute every statistic family against one store handle.

    Args:
        store: Open run store
        extended: Also compute performance scores, prize money, consistency,
            early speed and weighted form

    Returns:
        AggregateSet with one list per family
    """
    started = time.monotonic()

    aggregates = AggregateSet(
        dog_stats=get_dog_stats(store),
        trainer_stats=get_trainer_stats(store),
        box_bias_stats=get_box_bias_stats(store),
        recent_performance=get_recent_performance_stats(store),
        last_race_grades=get_last_race_grades(store),
        running_style=get_running_style_stats(store),
        track_specific=get_track_specific_stats(store),
        distance_specific=get_distance_specific_stats(store),
        box_performance=get_box_performance_by_dog(store),
    )

    if extended:
        aggregates.performance_ratings = get_performance_ratings(store)
        aggregates.prize_money = get_career_prize_money(store)
        aggregates.consistency = get_consistency_scores(store)
        aggregates.early_speed = get_early_speed_ratings(store)
        aggregates.weighted_form = get_weighted_recent_form(store)

    logger.info(
        f"Computed all statistics in {time.monotonic() - started:.1f}s",
        extra={"dogs": len(aggregates.dog_stats), "extended": extended},
    )
    return aggregates
