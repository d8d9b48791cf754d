"""
Runner enrichment.

Indexes the aggregate families by natural key and merges them onto each of
today's runners, deriving class change, running style and box preference
along the way. Enrichment only reads: it builds new EnrichedRunner values and
leaves the source Runner untouched.

Usage:
    from core.aggregates import compute_all
    from core.enrichment import AggregateIndex, enrich_meetings

    index = AggregateIndex.build(compute_all(store))
    enriched, runner_count = enrich_meetings(meetings_by_jurisdiction, index)
"""

from dataclasses import dataclass, field, replace
from typing import Optional

from core.aggregates import AggregateSet, BoxPerformanceStat, box_group
from core.logging import get_logger
from core.models import Meeting, Runner

logger = get_logger(__name__)

# Running style thresholds
EARLY_LEAD_RATE = 0.35
EARLY_MAX_AVG_POSITION = 1.8
MID_MAX_AVG_POSITION = 4.0

# Win-rate gap between best box group and current group that makes a box "Poor"
POOR_BOX_MARGIN = 0.10

UNKNOWN_GRADE_VALUE = 99


# =============================================================================
# DERIVATIONS
# =============================================================================

def rate(count: Optional[int], starts: Optional[int]) -> float:
    """count / starts, or 0 when there are no starts."""
    if not starts or starts <= 0:
        return 0
    return (count or 0) / starts


def get_grade_value(grade: Optional[str]) -> int:
    """
    Map a grade label to an ordinal where lower is a better class.

    Substring checks run in a fixed order and the first match wins, so a
    label like "Maiden 5th Grade" is a 5, not a 6.

    Examples:
        >>> get_grade_value("Group 1")
        1
        >>> get_grade_value("Grade 5")
        5
        >>> get_grade_value("Maiden")
        6
        >>> get_grade_value(None)
        99
    """
    if not grade:
        return UNKNOWN_GRADE_VALUE
    g = grade.lower()
    if "group" in g or "free" in g or "open" in g or "special" in g:
        return 1
    if "1" in g:
        return 1
    if "2" in g:
        return 2
    if "3" in g:
        return 3
    if "4" in g:
        return 4
    if "5" in g:
        return 5
    if "6" in g or "7" in g or "maiden" in g or "m" in g:
        return 6
    return 5


def calculate_class_drop(last_grade: Optional[str], current_grade: Optional[str]) -> bool:
    """True when the dog drops to an easier grade than its last run."""
    if not last_grade or not current_grade:
        return False
    return get_grade_value(last_grade) < get_grade_value(current_grade)


def format_class_change(last_grade: Optional[str], incoming_grade: Optional[str]) -> Optional[str]:
    if incoming_grade and last_grade:
        return f"{last_grade} -> {incoming_grade}"
    if incoming_grade:
        return f"Debut -> {incoming_grade}"
    return None


def determine_running_style(
    avg_first_split_position_l5: Optional[float],
    lead_rate: Optional[float],
) -> str:
    """
    Classify a dog as Early, Mid or Close from its first-split history.

    Early is checked first: a high lead rate makes a dog Early whatever its
    average position.
    """
    if avg_first_split_position_l5 is None or lead_rate is None:
        return "Unknown"
    if lead_rate >= EARLY_LEAD_RATE or avg_first_split_position_l5 <= EARLY_MAX_AVG_POSITION:
        return "Early"
    if avg_first_split_position_l5 <= MID_MAX_AVG_POSITION:
        return "Mid"
    return "Close"


def determine_box_preference(
    box_number: Optional[int],
    groups: Optional[list[BoxPerformanceStat]],
) -> str:
    """
    Rate today's box against the dog's record from each box group.

    Good: today's group is the dog's best group.
    Poor: best group's win rate beats today's group by more than 10 points.
    Neutral: otherwise, or no record from today's group.
    Unknown: no box or no box-group record at all.
    """
    current_group = box_group(box_number)
    if current_group is None or not groups:
        return "Unknown"

    best = None
    for group in groups:
        if best is None or group.win_rate > best.win_rate:
            best = group

    if best.box_group == current_group:
        return "Good"

    current = next((g for g in groups if g.box_group == current_group), None)
    if current is None:
        return "Neutral"

    return "Poor" if best.win_rate - current.win_rate > POOR_BOX_MARGIN else "Neutral"


# =============================================================================
# LOOKUPS
# =============================================================================

@dataclass
class AggregateIndex:
    """Aggregate families keyed by natural key for O(1) lookups per runner."""
    dogs: dict = field(default_factory=dict)  # dogId -> DogStat
    trainers: dict = field(default_factory=dict)  # trainerId -> TrainerStat
    box_bias: dict = field(default_factory=dict)  # (trackCode, box) -> BoxBiasStat
    recent: dict = field(default_factory=dict)  # (dogId, trackCode, distance) -> RecentPerformanceStat
    last_grades: dict = field(default_factory=dict)  # dogId -> grade label
    running_style: dict = field(default_factory=dict)  # dogId -> RunningStyleStat
    track_specific: dict = field(default_factory=dict)  # (dogId, trackCode) -> TrackSpecificStat
    distance_specific: dict = field(default_factory=dict)  # (dogId, distance) -> DistanceSpecificStat
    box_groups: dict = field(default_factory=dict)  # dogId -> [BoxPerformanceStat]
    performance: dict = field(default_factory=dict)
    prize_money: dict = field(default_factory=dict)
    consistency: dict = field(default_factory=dict)
    early_speed: dict = field(default_factory=dict)
    weighted_form: dict = field(default_factory=dict)

    @classmethod
    def build(cls, aggregates: AggregateSet) -> "AggregateIndex":
        index = cls(
            dogs={s.dog_id: s for s in aggregates.dog_stats},
            trainers={s.trainer_id: s for s in aggregates.trainer_stats},
            box_bias={(s.track_code, s.box_number): s for s in aggregates.box_bias_stats},
            recent={
                (s.dog_id, s.track_code, s.distance): s
                for s in aggregates.recent_performance
            },
            last_grades={s.dog_id: s.last_grade for s in aggregates.last_race_grades},
            running_style={s.dog_id: s for s in aggregates.running_style},
            track_specific={(s.dog_id, s.track_code): s for s in aggregates.track_specific},
            distance_specific={(s.dog_id, s.distance): s for s in aggregates.distance_specific},
            performance={s.dog_id: s for s in aggregates.performance_ratings},
            prize_money={s.dog_id: s.amount for s in aggregates.prize_money},
            consistency={s.dog_id: s.score for s in aggregates.consistency},
            early_speed={s.dog_id: s.last5_rating for s in aggregates.early_speed},
            weighted_form={s.dog_id: s for s in aggregates.weighted_form},
        )
        for stat in aggregates.box_performance:
            index.box_groups.setdefault(stat.dog_id, []).append(stat)

        logger.info("Finished creating lookup maps", extra={"dogs": len(index.dogs)})
        return index


# =============================================================================
# ENRICHED RUNNER
# =============================================================================

@dataclass
class EnrichedRunner:
    """
    A runner with every statistic merged on.

    None always means "no data"; a real zero stays zero.
    """
    runner: Runner

    total_starts: Optional[int] = None
    win_rate: Optional[float] = None
    place_rate: Optional[float] = None
    trainer_strike_rate: Optional[float] = None
    box_win_percentage: Optional[float] = None
    avg_time_last5_track_dist: Optional[float] = None
    avg_split_last5_track_dist: Optional[float] = None
    runs_at_track_dist: Optional[int] = None
    last_race_grade: Optional[str] = None
    class_change: Optional[str] = None
    is_down_grade: bool = False
    running_style: str = "Unknown"
    lead_at_first_bend_rate: Optional[float] = None
    avg_first_split_position: Optional[float] = None
    win_rate_at_track: Optional[float] = None
    place_rate_at_track: Optional[float] = None
    starts_at_track: Optional[int] = None
    win_rate_at_distance: Optional[float] = None
    place_rate_at_distance: Optional[float] = None
    starts_at_distance: Optional[int] = None
    box_preference: str = "Unknown"
    box_preference_data: Optional[list[BoxPerformanceStat]] = None

    # Extended
    career_performance_score: Optional[float] = None
    last5_performance_score: Optional[float] = None
    career_prize_money: Optional[float] = None
    consistency_score: Optional[float] = None
    last5_early_speed_rating: Optional[float] = None
    weighted_avg_place: Optional[float] = None
    recent_improvement: Optional[float] = None

    @property
    def dog_id(self):
        return self.runner.dog_id

    @property
    def box_number(self) -> Optional[int]:
        return self.runner.box_number

    def to_dict(self) -> dict:
        return {
            **self.runner.to_dict(),
            "totalStarts": self.total_starts,
            "winRate": self.win_rate,
            "placeRate": self.place_rate,
            "trainerStrikeRate": self.trainer_strike_rate,
            "boxWinPercentage": self.box_win_percentage,
            "avgTimeLast5TrackDist": self.avg_time_last5_track_dist,
            "avgSplitLast5TrackDist": self.avg_split_last5_track_dist,
            "runsAtTrackDist": self.runs_at_track_dist,
            "lastRaceGrade": self.last_race_grade,
            "classChange": self.class_change,
            "isDownGrade": self.is_down_grade,
            "runningStyle": self.running_style,
            "leadAtFirstBendRate": self.lead_at_first_bend_rate,
            "avgFirstSplitPosition": self.avg_first_split_position,
            "winRateAtTrack": self.win_rate_at_track,
            "placeRateAtTrack": self.place_rate_at_track,
            "startsAtTrack": self.starts_at_track,
            "winRateAtDistance": self.win_rate_at_distance,
            "placeRateAtDistance": self.place_rate_at_distance,
            "startsAtDistance": self.starts_at_distance,
            "boxPreference": self.box_preference,
            "boxPreferenceData": (
                [g.to_dict() for g in self.box_preference_data]
                if self.box_preference_data else None
            ),
            "careerPerformanceScore": self.career_performance_score,
            "last5PerformanceScore": self.last5_performance_score,
            "careerPrizeMoney": self.career_prize_money,
            "consistencyScore": self.consistency_score,
            "last5EarlySpeedRating": self.last5_early_speed_rating,
            "weightedAvgPlace": self.weighted_avg_place,
            "recentImprovement": self.recent_improvement,
        }


def enrich_runner(
    runner: Runner,
    track_code: Optional[str],
    distance: Optional[int],
    index: AggregateIndex,
    extended: bool = False,
) -> EnrichedRunner:
    """Merge every aggregate that applies to this runner in this race."""
    dog_id = runner.dog_id

    dog = index.dogs.get(dog_id)
    trainer = index.trainers.get(runner.trainer_id)
    box = index.box_bias.get((track_code, runner.box_number))
    recent = index.recent.get((dog_id, track_code, distance))
    last_grade = index.last_grades.get(dog_id)
    style = index.running_style.get(dog_id)
    at_track = index.track_specific.get((dog_id, track_code))
    at_distance = index.distance_specific.get((dog_id, distance))
    box_groups = index.box_groups.get(dog_id)

    enriched = EnrichedRunner(
        runner=runner,
        total_starts=dog.total_starts if dog else None,
        win_rate=rate(dog.wins, dog.total_starts) if dog else None,
        place_rate=rate(dog.places, dog.total_starts) if dog else None,
        trainer_strike_rate=rate(trainer.wins, trainer.total_starts) if trainer else None,
        box_win_percentage=rate(box.wins, box.total_starts) if box else None,
        avg_time_last5_track_dist=recent.avg_time_last5 if recent else None,
        avg_split_last5_track_dist=recent.avg_split_last5 if recent else None,
        runs_at_track_dist=recent.runs_at_track_dist if recent else None,
        last_race_grade=last_grade,
        class_change=format_class_change(last_grade, runner.incoming_grade),
        is_down_grade=calculate_class_drop(last_grade, runner.incoming_grade),
        running_style=determine_running_style(
            style.avg_first_split_position_l5 if style else None,
            style.lead_at_first_bend_rate if style else None,
        ),
        lead_at_first_bend_rate=style.lead_at_first_bend_rate if style else None,
        avg_first_split_position=style.avg_first_split_position if style else None,
        win_rate_at_track=at_track.win_rate if at_track else None,
        place_rate_at_track=at_track.place_rate if at_track else None,
        starts_at_track=at_track.starts if at_track else None,
        win_rate_at_distance=at_distance.win_rate if at_distance else None,
        place_rate_at_distance=at_distance.place_rate if at_distance else None,
        starts_at_distance=at_distance.starts if at_distance else None,
        box_preference=determine_box_preference(runner.box_number, box_groups),
        box_preference_data=box_groups,
    )

    if extended:
        performance = index.performance.get(dog_id)
        form = index.weighted_form.get(dog_id)
        enriched = replace(
            enriched,
            career_performance_score=performance.career_score if performance else None,
            last5_performance_score=performance.last5_score if performance else None,
            career_prize_money=index.prize_money.get(dog_id),
            consistency_score=index.consistency.get(dog_id),
            last5_early_speed_rating=index.early_speed.get(dog_id),
            weighted_avg_place=form.weighted_avg_place if form else None,
            recent_improvement=form.recent_improvement if form else None,
        )

    return enriched


def enrich_meetings(
    meetings_by_jurisdiction: dict[str, list[Meeting]],
    index: AggregateIndex,
    extended: bool = False,
) -> tuple[dict[str, list[Meeting]], int]:
    """
    Enrich every runner of every race of every meeting.

    Returns:
        (new tree with EnrichedRunner entries, number of runners enriched)
    """
    enriched_tree: dict[str, list[Meeting]] = {}
    total_runners = 0

    for jurisdiction, meetings in meetings_by_jurisdiction.items():
        enriched_meetings = []
        for meeting in meetings:
            races = []
            for race in meeting.races:
                runners = [
                    enrich_runner(runner, meeting.track_code, race.distance, index, extended)
                    for runner in race.runners
                ]
                total_runners += len(runners)
                races.append(replace(race, runners=runners))
            enriched_meetings.append(replace(meeting, races=races))
        enriched_tree[jurisdiction] = enriched_meetings

    logger.info(f"Added {total_runners} runners with statistics")
    return enriched_tree, total_runners
