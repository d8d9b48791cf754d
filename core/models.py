"""
Race source records.

Run rows as stored in the `runs` table, and the Meeting -> Race -> Runner
tree pulled fresh from Topaz for the day being computed.

Usage:
    from core.models import Meeting, run_to_row

    meeting = Meeting.from_api(meeting_json, jurisdiction="NSW")
    meeting.races = [Race.from_api(r) for r in races_json]
"""

from dataclasses import dataclass, field
from typing import Any, Optional


# Column order of the runs table; bulk run payloads use the same keys
RUN_COLUMNS = [
    "runId", "trackCode", "trackName", "distanceInMetres", "raceId", "meetingDate",
    "raceTypeCode", "raceType", "dogId", "dogName", "weightInKg", "incomingGrade",
    "outgoingGrade", "gradedTo", "rating", "raceNumber", "boxNumber", "boxDrawnOrder",
    "rugNumber", "startPrice", "place", "abnormalResult", "scratched", "prizeMoney",
    "resultTime", "resultMargin", "resultMarginLengths", "startPaceCode", "jumpCode",
    "runLineCode", "colourCode", "sex", "comment", "ownerId", "trainerId", "ownerName",
    "ownerState", "trainerName", "trainerSuburb", "trainerState", "trainerPostCode",
    "trainerDistrict", "isQuad", "isBestBet", "damId", "damName", "sireId", "sireName",
    "dateWhelped", "isLateScratching", "last5", "firstSecond", "pir", "careerPrizeMoney",
    "averageSpeed", "unplaced", "unplacedCode", "totalFormCount", "bestTime",
    "firstSplitPosition", "firstSplitTime", "secondSplitTime", "bestTimeTrackDistance",
]


def run_to_row(run: dict) -> tuple:
    """
    Convert a bulk run payload to a row tuple in RUN_COLUMNS order.

    Booleans are stored as 0/1 and missing keys as NULL.
    """
    values = []
    for col in RUN_COLUMNS:
        value = run.get(col)
        if isinstance(value, bool):
            value = 1 if value else 0
        values.append(value)
    return tuple(values)


def _as_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class Runner:
    """A dog entered in today's race, as supplied by the race source."""
    dog_id: Optional[int]
    dog_name: Optional[str] = None
    trainer_id: Optional[int] = None
    trainer_name: Optional[str] = None
    box_number: Optional[int] = None
    rug_number: Optional[int] = None
    incoming_grade: Optional[str] = None
    scratched: bool = False
    is_late_scratching: bool = False

    # Remaining source fields (owner, colour, comment, ...) kept for display
    details: dict = field(default_factory=dict)

    _DECLARED = {
        "dogId", "dogName", "trainerId", "trainerName", "boxNumber",
        "rugNumber", "incomingGrade", "scratched", "isLateScratching",
    }

    @classmethod
    def from_api(cls, data: dict) -> "Runner":
        return cls(
            dog_id=data.get("dogId"),
            dog_name=data.get("dogName"),
            trainer_id=data.get("trainerId"),
            trainer_name=data.get("trainerName"),
            box_number=_as_int(data.get("boxNumber")),
            rug_number=_as_int(data.get("rugNumber")),
            incoming_grade=data.get("incomingGrade") or None,
            scratched=bool(data.get("scratched")),
            is_late_scratching=bool(data.get("isLateScratching")),
            details={k: v for k, v in data.items() if k not in cls._DECLARED},
        )

    def to_dict(self) -> dict:
        return {
            **self.details,
            "dogId": self.dog_id,
            "dogName": self.dog_name,
            "trainerId": self.trainer_id,
            "trainerName": self.trainer_name,
            "boxNumber": self.box_number,
            "rugNumber": self.rug_number,
            "incomingGrade": self.incoming_grade,
            "scratched": self.scratched,
            "isLateScratching": self.is_late_scratching,
        }


def _box_order(runner) -> tuple:
    # Boxless runners (reserves) sort after the drawn field
    box = runner.box_number
    return (box is None, box or 0)


@dataclass
class Race:
    """One race at a meeting with its field of runners."""
    race_id: Optional[int]
    race_number: Optional[int]
    distance: Optional[int]
    race_name: Optional[str] = None
    race_start: Optional[str] = None
    runners: list = field(default_factory=list)
    details: dict = field(default_factory=dict)

    _DECLARED = {"raceId", "raceNumber", "distance", "raceName", "raceStart", "runs"}

    @classmethod
    def from_api(cls, data: dict) -> "Race":
        runners = [Runner.from_api(r) for r in data.get("runs") or []]
        return cls(
            race_id=data.get("raceId"),
            race_number=_as_int(data.get("raceNumber")),
            distance=_as_int(data.get("distance")),
            race_name=data.get("raceName"),
            race_start=data.get("raceStart"),
            runners=sorted(runners, key=_box_order),
            details={k: v for k, v in data.items() if k not in cls._DECLARED},
        )

    def to_dict(self) -> dict:
        return {
            **self.details,
            "raceId": self.race_id,
            "raceNumber": self.race_number,
            "raceName": self.race_name,
            "raceStart": self.race_start,
            "distance": self.distance,
            "runs": [r.to_dict() for r in self.runners],
        }


@dataclass
class Meeting:
    """One track's race day."""
    meeting_id: Optional[int]
    track_code: Optional[str]
    track_name: Optional[str] = None
    meeting_date: Optional[str] = None
    jurisdiction: Optional[str] = None
    races: list[Race] = field(default_factory=list)
    error: Optional[str] = None  # Set when the races could not be loaded
    details: dict = field(default_factory=dict)

    _DECLARED = {"meetingId", "trackCode", "trackName", "meetingDate", "races", "error"}

    @classmethod
    def from_api(cls, data: dict, jurisdiction: Optional[str] = None) -> "Meeting":
        return cls(
            meeting_id=data.get("meetingId"),
            track_code=data.get("trackCode"),
            track_name=data.get("trackName"),
            meeting_date=data.get("meetingDate"),
            jurisdiction=jurisdiction or data.get("owningAuthorityCode"),
            details={k: v for k, v in data.items() if k not in cls._DECLARED},
        )

    @property
    def runner_count(self) -> int:
        return sum(len(race.runners) for race in self.races)

    def to_dict(self) -> dict:
        d = {
            **self.details,
            "meetingId": self.meeting_id,
            "trackCode": self.track_code,
            "trackName": self.track_name,
            "meetingDate": self.meeting_date,
            "jurisdiction": self.jurisdiction,
            "races": [r.to_dict() for r in self.races],
        }
        if self.error:
            d["error"] = self.error
        return d
