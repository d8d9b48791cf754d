"""
Tests for aggregate statistic families.

Run with: python -m pytest tests/test_aggregates.py -v
"""

import pytest

from conftest import make_run
from core.aggregates import (
    box_group,
    compute_all,
    get_box_bias_stats,
    get_box_performance_by_dog,
    get_career_prize_money,
    get_consistency_scores,
    get_distance_specific_stats,
    get_dog_stats,
    get_early_speed_ratings,
    get_last_race_grades,
    get_performance_ratings,
    get_recent_performance_stats,
    get_running_style_stats,
    get_track_specific_stats,
    get_trainer_stats,
    get_weighted_recent_form,
)


def _by_dog(records):
    return {r.dog_id: r for r in records}


# =============================================================================
# TOTALS
# =============================================================================

class TestTotals:
    """Tests for dog, trainer and box bias totals."""

    def test_dog_totals_ordering(self, store):
        """Test wins <= places <= starts for every dog."""
        store.upsert_runs([
            make_run(dogId=1, place=1),
            make_run(dogId=1, place=2),
            make_run(dogId=1, place=3),
            make_run(dogId=1, place=6),
            make_run(dogId=2, place=1),
            make_run(dogId=2, place=8),
        ])

        stats = _by_dog(get_dog_stats(store))
        assert (stats[1].total_starts, stats[1].wins, stats[1].places) == (4, 1, 3)
        assert (stats[2].total_starts, stats[2].wins, stats[2].places) == (2, 1, 1)
        for s in stats.values():
            assert s.wins <= s.places <= s.total_starts

    def test_scratched_runs_never_count(self, store):
        """Test a scratched run is invisible to every family."""
        store.upsert_runs([
            make_run(dogId=1, place=4, meetingDate="2025-01-01"),
            make_run(dogId=1, place=1, scratched=True, meetingDate="2025-02-01",
                     resultTime=25.0, firstSplitPosition=1, outgoingGrade="Grade 1",
                     careerPrizeMoney=9999.0),
        ])

        assert get_dog_stats(store)[0].total_starts == 1
        assert get_dog_stats(store)[0].wins == 0
        assert get_trainer_stats(store)[0].wins == 0
        assert get_box_bias_stats(store)[0].total_starts == 1
        recent = get_recent_performance_stats(store)[0]
        assert recent.avg_time_last5 == pytest.approx(30.0)
        assert recent.runs_at_track_dist == 1
        assert get_last_race_grades(store)[0].last_grade == "Grade 5"
        assert get_running_style_stats(store)[0].lead_at_first_bend_rate == 0
        assert get_career_prize_money(store) == []

    def test_null_scratched_counts_as_run(self, store):
        store.upsert_run(make_run(dogId=1, scratched=None))
        assert get_dog_stats(store)[0].total_starts == 1

    def test_upsert_does_not_double_count(self, store):
        """Test totals after re-ingesting a run match a single insert."""
        store.upsert_run(make_run(runId=900, dogId=5, place=3))
        store.upsert_run(make_run(runId=900, dogId=5, place=1))

        stat = get_dog_stats(store)[0]
        assert (stat.total_starts, stat.wins, stat.places) == (1, 1, 1)

    def test_trainer_stats(self, store):
        store.upsert_runs([
            make_run(dogId=1, trainerId=7, place=1),
            make_run(dogId=2, trainerId=7, place=5),
            make_run(dogId=3, trainerId=8, place=1),
        ])

        stats = {s.trainer_id: s for s in get_trainer_stats(store)}
        assert (stats[7].total_starts, stats[7].wins) == (2, 1)
        assert (stats[8].total_starts, stats[8].wins) == (1, 1)

    def test_box_bias_skips_missing_boxes(self, store):
        store.upsert_runs([
            make_run(boxNumber=1, place=1),
            make_run(boxNumber=1, place=2),
            make_run(boxNumber=0, place=1),
            make_run(boxNumber=None, place=1),
        ])

        stats = get_box_bias_stats(store)
        assert len(stats) == 1
        assert (stats[0].track_code, stats[0].box_number) == ("RICH", 1)
        assert (stats[0].total_starts, stats[0].wins) == (2, 1)


# =============================================================================
# RECENT FORM
# =============================================================================

class TestRecentPerformance:
    """Tests for last-5 time and split averages."""

    def test_last_five_times_at_track_distance(self, store):
        """Test the average covers only the five most recent runs."""
        times = [30.1, 30.5, 29.9, 30.3, 30.0, 31.0]  # most recent first
        store.upsert_runs([
            make_run(dogId=42, meetingDate=f"2025-01-{10 - i:02d}", resultTime=t)
            for i, t in enumerate(times)
        ])

        stat = get_recent_performance_stats(store)[0]
        assert (stat.dog_id, stat.track_code, stat.distance) == (42, "RICH", 400)
        assert stat.avg_time_last5 == pytest.approx(30.16, abs=0.01)
        assert stat.runs_at_track_dist == 5

    def test_time_without_splits_still_present(self, store):
        """Test a dog with times but no splits keeps its time average."""
        store.upsert_runs([
            make_run(dogId=42, resultTime=30.0 + i / 10, firstSplitTime=0)
            for i in range(5)
        ])

        stats = get_recent_performance_stats(store)
        assert len(stats) == 1
        assert stats[0].avg_split_last5 is None
        assert stats[0].avg_time_last5 is not None

    def test_splits_without_times_still_present(self, store):
        """Test a key that only has splits appears with no time."""
        store.upsert_runs([
            make_run(dogId=42, resultTime=None, firstSplitTime=5.4),
            make_run(dogId=42, resultTime=0, firstSplitTime=5.6),
        ])

        stat = get_recent_performance_stats(store)[0]
        assert stat.avg_time_last5 is None
        assert stat.avg_split_last5 == pytest.approx(5.5)
        assert stat.runs_at_track_dist == 0

    def test_time_and_split_ranked_independently(self, store):
        """Test an untimed recent run doesn't push a timed run out of the window."""
        runs = [
            make_run(dogId=1, meetingDate=f"2025-03-{d:02d}", resultTime=0, firstSplitTime=5.0)
            for d in range(10, 15)
        ]
        runs.append(make_run(dogId=1, meetingDate="2025-03-01", resultTime=31.0, firstSplitTime=6.0))
        store.upsert_runs(runs)

        stat = get_recent_performance_stats(store)[0]
        assert stat.avg_time_last5 == pytest.approx(31.0)
        assert stat.runs_at_track_dist == 1
        assert stat.avg_split_last5 == pytest.approx(5.0)

    def test_separate_track_distance_keys(self, store):
        store.upsert_runs([
            make_run(dogId=1, trackCode="RICH", distanceInMetres=400, resultTime=23.0),
            make_run(dogId=1, trackCode="RICH", distanceInMetres=520, resultTime=30.0),
            make_run(dogId=1, trackCode="WENT", distanceInMetres=520, resultTime=30.5),
        ])

        keys = {(s.track_code, s.distance) for s in get_recent_performance_stats(store)}
        assert keys == {("RICH", 400), ("RICH", 520), ("WENT", 520)}


# =============================================================================
# GRADE, STYLE, SPLITS
# =============================================================================

class TestLastGradeAndStyle:
    """Tests for last race grade and running style inputs."""

    def test_last_grade_is_most_recent(self, store):
        store.upsert_runs([
            make_run(dogId=1, meetingDate="2025-01-01", outgoingGrade="Grade 5"),
            make_run(dogId=1, meetingDate="2025-02-01", outgoingGrade="Grade 4"),
            make_run(dogId=1, meetingDate="2025-03-01", outgoingGrade=None),
        ])

        assert get_last_race_grades(store)[0].last_grade == "Grade 4"

    def test_blank_last_grade_is_kept(self, store):
        """Test an empty grade on the latest run is not replaced by an older one."""
        store.upsert_runs([
            make_run(dogId=1, meetingDate="2025-02-01", outgoingGrade="Grade 4"),
            make_run(dogId=1, meetingDate="2025-03-01", outgoingGrade=""),
        ])

        assert get_last_race_grades(store)[0].last_grade == ""

    def test_same_day_tie_broken_by_race_number(self, store):
        """Test two runs on one date resolve to the later race."""
        store.upsert_runs([
            make_run(dogId=1, meetingDate="2025-01-01", raceNumber=8, outgoingGrade="Grade 3"),
            make_run(dogId=1, meetingDate="2025-01-01", raceNumber=2, outgoingGrade="Grade 6"),
        ])

        assert get_last_race_grades(store)[0].last_grade == "Grade 3"

    def test_running_style_last_ten(self, store):
        """Test lead rate and average position over the last 10 positioned runs."""
        positions = [1, 1, 2, 3, 1, 4, 5, 6, 2, 1, 8, 8]  # most recent first
        store.upsert_runs([
            make_run(dogId=1, meetingDate=f"2025-01-{20 - i:02d}", firstSplitPosition=p)
            for i, p in enumerate(positions)
        ])
        store.upsert_run(make_run(dogId=1, meetingDate="2025-01-25", firstSplitPosition=0))

        stat = get_running_style_stats(store)[0]
        assert stat.lead_at_first_bend_rate == pytest.approx(0.4)
        assert stat.avg_first_split_position == pytest.approx(2.6)
        assert stat.avg_first_split_position_l5 == pytest.approx(1.6)


class TestTrackDistanceBox:
    """Tests for track, distance and box group splits."""

    def test_track_specific_needs_three_starts(self, store):
        store.upsert_runs([
            make_run(dogId=1, trackCode="RICH", place=1),
            make_run(dogId=1, trackCode="RICH", place=2),
            make_run(dogId=1, trackCode="RICH", place=7),
            make_run(dogId=1, trackCode="WENT", place=1),
            make_run(dogId=1, trackCode="WENT", place=1),
        ])

        stats = get_track_specific_stats(store)
        assert len(stats) == 1
        assert stats[0].track_code == "RICH"
        assert stats[0].starts == 3
        assert stats[0].win_rate == pytest.approx(1 / 3)
        assert stats[0].place_rate == pytest.approx(2 / 3)

    def test_distance_specific_rates_and_time(self, store):
        """Test rates count every start while the time skips untimed runs."""
        store.upsert_runs([
            make_run(dogId=1, distanceInMetres=400, place=1, resultTime=23.0),
            make_run(dogId=1, distanceInMetres=400, place=5, resultTime=0),
            make_run(dogId=1, distanceInMetres=520, place=1, resultTime=30.0),
        ])

        stats = get_distance_specific_stats(store)
        assert len(stats) == 1
        assert stats[0].distance == 400
        assert stats[0].starts == 2
        assert stats[0].win_rate == pytest.approx(0.5)
        assert stats[0].avg_time == pytest.approx(23.0)

    def test_box_performance_groups(self, store):
        store.upsert_runs([
            make_run(dogId=1, boxNumber=1, place=1),
            make_run(dogId=1, boxNumber=2, place=3),
            make_run(dogId=1, boxNumber=4, place=1),
            make_run(dogId=1, boxNumber=5, place=1),
            make_run(dogId=1, boxNumber=8, place=2),
        ])

        groups = {g.box_group: g for g in get_box_performance_by_dog(store)}
        assert set(groups) == {"inside", "middle"}
        assert groups["inside"].win_rate == pytest.approx(0.5)
        assert groups["middle"].win_rate == pytest.approx(1.0)

    @pytest.mark.parametrize("box,expected", [
        (1, "inside"), (2, "inside"), (3, "middle"), (5, "middle"),
        (6, "outside"), (8, "outside"), (10, "outside"), (0, None), (None, None),
    ])
    def test_box_group(self, box, expected):
        assert box_group(box) == expected


# =============================================================================
# EXTENDED
# =============================================================================

class TestExtended:
    """Tests for the extended statistic families."""

    def test_performance_rating_against_benchmark(self, store):
        store.upsert_runs([
            make_run(dogId=1, resultTime=30.0),
            make_run(dogId=2, resultTime=31.0),
        ])

        ratings = _by_dog(get_performance_ratings(store))
        assert ratings[1].career_score == pytest.approx(100.0)
        assert ratings[2].career_score == pytest.approx(30.0 / 31.0 * 100)
        assert ratings[2].last5_score == pytest.approx(ratings[2].career_score)

    def test_prize_money_latest_value(self, store):
        store.upsert_runs([
            make_run(dogId=1, meetingDate="2025-01-01", careerPrizeMoney=1000.0),
            make_run(dogId=1, meetingDate="2025-02-01", careerPrizeMoney=2500.0),
            make_run(dogId=1, meetingDate="2025-03-01", careerPrizeMoney=None),
        ])

        assert get_career_prize_money(store)[0].amount == 2500.0

    def test_consistency_needs_five_timed_runs(self, store):
        store.upsert_runs([make_run(dogId=1, resultTime=30.0) for _ in range(4)])
        assert get_consistency_scores(store) == []

        store.upsert_run(make_run(dogId=1, resultTime=30.0))
        score = get_consistency_scores(store)[0]
        assert score.timed_runs == 5
        assert score.score == pytest.approx(100.0)

    def test_consistency_uses_sample_stdev(self, store):
        times = [29.0, 30.0, 31.0, 30.0, 30.0]
        store.upsert_runs([make_run(dogId=1, resultTime=t) for t in times])

        # sample variance = 2 / 4 = 0.5
        expected = (1 - 0.5 ** 0.5 / 30.0) * 100
        assert get_consistency_scores(store)[0].score == pytest.approx(expected)

    def test_early_speed_against_track_best_split(self, store):
        store.upsert_runs([
            make_run(dogId=1, firstSplitTime=5.0),
            make_run(dogId=2, firstSplitTime=5.5),
        ])

        ratings = {r.dog_id: r.last5_rating for r in get_early_speed_ratings(store)}
        assert ratings[1] == pytest.approx(100.0)
        assert ratings[2] == pytest.approx(5.0 / 5.5 * 100)

    def test_weighted_form(self, store):
        places = [1, 2, 3, 4, 5]  # most recent first
        store.upsert_runs([
            make_run(dogId=1, meetingDate=f"2025-01-{10 - i:02d}", place=p)
            for i, p in enumerate(places)
        ])

        form = get_weighted_recent_form(store)[0]
        assert form.weighted_avg_place == pytest.approx(35 / 15)
        assert form.recent_improvement == pytest.approx(2.0 - 4.5)

    def test_weighted_form_skips_untimed(self, store):
        """Test a placed run without a result time does not count toward form."""
        store.upsert_runs(
            [make_run(dogId=1, meetingDate="2025-01-10", place=1, resultTime=None)]
            + [make_run(dogId=1, meetingDate=f"2025-01-0{day}", place=4) for day in range(1, 6)]
        )

        form = get_weighted_recent_form(store)[0]
        assert form.weighted_avg_place == pytest.approx(4.0)
        assert form.recent_improvement == pytest.approx(0.0)


class TestComputeAll:
    """Tests for computing every family at once."""

    def test_standard_skips_extended(self, store):
        store.upsert_runs([make_run(dogId=1) for _ in range(5)])

        aggregates = compute_all(store, extended=False)
        assert len(aggregates.dog_stats) == 1
        assert aggregates.performance_ratings == []
        assert aggregates.consistency == []

    def test_extended(self, store):
        store.upsert_runs([make_run(dogId=1) for _ in range(5)])

        aggregates = compute_all(store, extended=True)
        assert len(aggregates.performance_ratings) == 1
        assert len(aggregates.consistency) == 1
        assert len(aggregates.weighted_form) == 1

    def test_empty_store(self, store):
        aggregates = compute_all(store)
        assert aggregates.dog_stats == []
        assert aggregates.recent_performance == []
