"""
Fetch results for fan-out branches.

Each concurrent call to the race source returns a FetchResult instead of
raising, so one failing jurisdiction or meeting never aborts its siblings.

Usage:
    from core.results import FetchResult, FetchStatus

    result = FetchResult.success("NSW", meetings)
    result = FetchResult.api_error(12345, "HTTP 503: Service Unavailable")

    if result.ok:
        meetings = result.data
    else:
        print(f"Skipped: {result.message}")
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Hashable, Optional


class FetchStatus(Enum):
    """Outcome of a single fan-out branch."""

    OK = "ok"
    NO_DATA = "no_data"  # Source answered with nothing for this key
    API_ERROR = "api_error"  # Network/HTTP failure or malformed response
    UNKNOWN_ERROR = "unknown_error"


# User-facing messages, rendered when a meeting has no races to show
STATUS_MESSAGES = {
    FetchStatus.OK: "Data loaded",
    FetchStatus.NO_DATA: "No races/meeting data found",
    FetchStatus.API_ERROR: "Failed to load races",
    FetchStatus.UNKNOWN_ERROR: "An unexpected error occurred",
}


@dataclass
class FetchResult:
    """
    Result of one fan-out branch (a jurisdiction's meetings or a meeting's races).

    `data` is always safe to use: failed branches carry an empty list.
    """

    ok: bool
    status: FetchStatus
    key: Hashable
    data: Any = field(default_factory=list)
    message: str = ""
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def success(cls, key: Hashable, data: Any) -> "FetchResult":
        """Create a successful result; an empty payload is NO_DATA but still ok."""
        data = data or []
        status = FetchStatus.OK if data else FetchStatus.NO_DATA
        return cls(
            ok=True,
            status=status,
            key=key,
            data=data,
            message=STATUS_MESSAGES[status],
        )

    @classmethod
    def api_error(cls, key: Hashable, error: str) -> "FetchResult":
        """Create result for an upstream API failure."""
        return cls(
            ok=False,
            status=FetchStatus.API_ERROR,
            key=key,
            message=STATUS_MESSAGES[FetchStatus.API_ERROR],
            error=error,
        )

    @classmethod
    def unknown_error(cls, key: Hashable, error: str) -> "FetchResult":
        """Create result for anything else that went wrong in the branch."""
        return cls(
            ok=False,
            status=FetchStatus.UNKNOWN_ERROR,
            key=key,
            message=STATUS_MESSAGES[FetchStatus.UNKNOWN_ERROR],
            error=error,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "ok": self.ok,
            "status": self.status.value,
            "key": self.key,
            "message": self.message,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }
