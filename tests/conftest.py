"""Shared fixtures: throwaway run stores and run payload builders."""

import itertools

import pytest

from core.store import RunStore

_run_ids = itertools.count(1)


def make_run(**overrides) -> dict:
    """A bulk run payload with sensible defaults (a timed, unplaced start)."""
    run = {
        "runId": next(_run_ids),
        "trackCode": "RICH",
        "trackName": "Richmond",
        "distanceInMetres": 400,
        "raceId": 1000,
        "meetingDate": "2025-01-01",
        "raceNumber": 1,
        "dogId": 42,
        "dogName": "Zippy Zoom",
        "trainerId": 7,
        "trainerName": "J. Smith",
        "boxNumber": 1,
        "place": 4,
        "scratched": False,
        "resultTime": 30.0,
        "firstSplitTime": 5.5,
        "firstSplitPosition": 3,
        "outgoingGrade": "Grade 5",
    }
    run.update(overrides)
    return run


@pytest.fixture
def store(tmp_path):
    """Empty run store in a temp directory."""
    with RunStore(tmp_path / "runs.db") as s:
        yield s
