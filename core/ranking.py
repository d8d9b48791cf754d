"""
Race rankings and summary tags for display.

Given one enriched race, ranks the active field on each key statistic
(top 3 get a badge), computes each runner's time and split against the field
average, and picks up to three summary tags per runner.

This is a pure function of the race: calling it again with the same race and
the same manual scratches gives the same answer, which is what lets the
dashboard re-rank after a manual scratch without refetching.

Usage:
    from core.ranking import process_race

    view = process_race(race_dict, manually_scratched={12345})
    for runner in view.runners:
        print(runner.dog_id, runner.rankings, [t.text for t in runner.summary])
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

# (statistic, higher_is_better)
RANKED_STATS = [
    ("winRateAtTrack", True),
    ("placeRateAtTrack", True),
    ("winRateAtDistance", True),
    ("placeRateAtDistance", True),
    ("leadAtFirstBendRate", True),
    ("winRate", True),
    ("placeRate", True),
    ("trainerStrikeRate", True),
    ("boxWinPercentage", True),
    ("avgTimeLast5TrackDist", False),
    ("avgSplitLast5TrackDist", False),
]

BADGES = 3
MAX_TAGS = 3

# Tag thresholds (percentages, seconds vs field)
WIN_AT_TRACK_PCT = 30
WIN_AT_DISTANCE_PCT = 30
WIN_OVERALL_PCT = 25
MIN_SPECIFIC_STARTS = 3
TRAINER_PCT = 25
FAST_VS_FIELD = -0.15
STARTER_LEAD_PCT = 40
STARTER_SPLIT_VS_FIELD = -0.10
PLACE_PCT = 60


@dataclass
class Tag:
    text: str
    css_class: str
    priority: int

    def to_dict(self) -> dict:
        return {"text": self.text, "class": self.css_class, "priority": self.priority}


@dataclass
class RunnerView:
    dog_id: Any
    active: bool
    rankings: dict[str, int] = field(default_factory=dict)
    summary: list[Tag] = field(default_factory=list)
    avg_td_vs_field: Optional[float] = None
    avg_split_vs_field: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "dogId": self.dog_id,
            "active": self.active,
            "rankings": dict(self.rankings),
            "summary": [t.to_dict() for t in self.summary],
            "avgTdVsField": self.avg_td_vs_field,
            "avgSplitVsField": self.avg_split_vs_field,
        }


@dataclass
class RaceView:
    runners: list[RunnerView]
    field_avg_time: Optional[float] = None
    field_avg_split: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "fieldAvgTime": self.field_avg_time,
            "fieldAvgSplit": self.field_avg_split,
            "runners": [r.to_dict() for r in self.runners],
        }


def is_active(runner: dict, manually_scratched: Iterable = ()) -> bool:
    """Not scratched (officially or by hand) and drawn in a box."""
    if runner.get("scratched") or runner.get("isManuallyScratched"):
        return False
    if runner.get("dogId") in manually_scratched:
        return False
    return bool(runner.get("boxNumber"))


def _mean(values: list[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def field_averages(active: list[dict]) -> tuple[Optional[float], Optional[float]]:
    """Mean last-5 time and split across the active field (None if nobody has one)."""
    times = [r["avgTimeLast5TrackDist"] for r in active if r.get("avgTimeLast5TrackDist") is not None]
    splits = [r["avgSplitLast5TrackDist"] for r in active if r.get("avgSplitLast5TrackDist") is not None]
    return _mean(times), _mean(splits)


def rank_runners(active: list[dict]) -> list[dict[str, int]]:
    """
    Top-3 badge per statistic for each active runner (parallel to `active`).

    Only strictly positive values are eligible. Ties keep field order, so the
    earlier runner takes the better rank.
    """
    rankings: list[dict[str, int]] = [{} for _ in active]

    for stat, higher_is_better in RANKED_STATS:
        eligible = [
            i for i, r in enumerate(active)
            if r.get(stat) is not None and r[stat] > 0
        ]
        sign = -1 if higher_is_better else 1
        ordered = sorted(eligible, key=lambda i: sign * active[i][stat])
        for rank, i in enumerate(ordered[:BADGES], start=1):
            rankings[i][stat] = rank

    return rankings


def _pct(runner: dict, key: str) -> float:
    return (runner.get(key) or 0) * 100


def summary_tags(
    runner: dict,
    avg_td_vs_field: Optional[float],
    avg_split_vs_field: Optional[float],
) -> list[Tag]:
    """Pick up to three display tags for an active runner, highest priority first."""
    tags: list[Tag] = []
    starts_at_track = runner.get("startsAtTrack") or 0
    starts_at_distance = runner.get("startsAtDistance") or 0

    if runner.get("isDownGrade"):
        tags.append(Tag("CLS DROP", "tag-cls-drop", 12))

    if _pct(runner, "winRateAtTrack") >= WIN_AT_TRACK_PCT and starts_at_track >= MIN_SPECIFIC_STARTS:
        tags.append(Tag("WIN TRK", "tag-win-trk", 10))
    elif _pct(runner, "winRateAtDistance") >= WIN_AT_DISTANCE_PCT and starts_at_distance >= MIN_SPECIFIC_STARTS:
        tags.append(Tag("WIN DIST", "tag-win-dist", 9))
    elif _pct(runner, "winRate") >= WIN_OVERALL_PCT:
        tags.append(Tag("WIN", "tag-win-strong", 8))

    if _pct(runner, "trainerStrikeRate") > TRAINER_PCT:
        tags.append(Tag("TRAINER", "tag-trainer", 11))

    if avg_td_vs_field is not None and avg_td_vs_field <= FAST_VS_FIELD:
        tags.append(Tag("FAST", "tag-fast", 7))

    fast_split = avg_split_vs_field is not None and avg_split_vs_field <= STARTER_SPLIT_VS_FIELD
    if _pct(runner, "leadAtFirstBendRate") >= STARTER_LEAD_PCT or fast_split:
        tags.append(Tag("STARTER", "tag-starter", 6))

    # Place tags only fill in for runners without much else going for them
    if len(tags) < 2:
        if _pct(runner, "placeRateAtTrack") >= PLACE_PCT and starts_at_track >= MIN_SPECIFIC_STARTS:
            tags.append(Tag("PLACE TRK", "tag-place-trk", 5))
        elif _pct(runner, "placeRate") >= PLACE_PCT:
            tags.append(Tag("PLACE", "tag-place-dist", 4))

    return sorted(tags, key=lambda t: t.priority, reverse=True)[:MAX_TAGS]


def process_race(race, manually_scratched: Iterable = ()) -> RaceView:
    """
    Rank and tag one race.

    Args:
        race: Enriched race, either a dict with a "runs" list or an object
            with to_dict()
        manually_scratched: Dog IDs withdrawn by the user on top of official
            scratchings

    Returns:
        RaceView with one RunnerView per runner, in race order. Inactive
        runners get no rankings, no tags and no vs-field deltas.
    """
    if hasattr(race, "to_dict"):
        race = race.to_dict()
    runners = race.get("runs") or []
    manually_scratched = set(manually_scratched)

    flags = [is_active(r, manually_scratched) for r in runners]
    active = [r for r, ok in zip(runners, flags) if ok]

    field_time, field_split = field_averages(active)
    active_rankings = iter(rank_runners(active))

    views = []
    for runner, ok in zip(runners, flags):
        if not ok:
            views.append(RunnerView(dog_id=runner.get("dogId"), active=False))
            continue

        avg_time = runner.get("avgTimeLast5TrackDist")
        avg_split = runner.get("avgSplitLast5TrackDist")
        td_vs_field = (
            avg_time - field_time
            if avg_time is not None and field_time is not None else None
        )
        split_vs_field = (
            avg_split - field_split
            if avg_split is not None and field_split is not None else None
        )

        views.append(RunnerView(
            dog_id=runner.get("dogId"),
            active=True,
            rankings=next(active_rankings),
            summary=summary_tags(runner, td_vs_field, split_vs_field),
            avg_td_vs_field=td_vs_field,
            avg_split_vs_field=split_vs_field,
        ))

    return RaceView(runners=views, field_avg_time=field_time, field_avg_split=field_split)
