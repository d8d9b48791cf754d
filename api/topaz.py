"""
Topaz API Client.

Provides access to greyhound meetings, race fields and bulk historical runs
from the GRV Topaz API.

Usage:
    from api.topaz import TopazAPI

    api = TopazAPI()
    meetings = api.get_meetings("2025-11-08", jurisdiction="NSW")
    races = api.get_races(meetings[0]["meetingId"])
    runs = api.get_bulk_runs("VIC", 2025, 11)
"""

import time
from dataclasses import dataclass
from typing import Any, Optional

import requests

from core import config
from core.logging import get_logger, log_api_call

logger = get_logger(__name__)


@dataclass
class APIError(Exception):
    """Topaz API error."""
    status_code: int
    message: str

    def __str__(self) -> str:
        return self.message


class TopazAPI:
    """
    Topaz API client.

    Handles authentication and error handling, and provides typed methods
    for the endpoints the stats pipeline consumes.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize API client.

        Args:
            api_key: API key (defaults to TOPAZ_API_KEY env var)
            base_url: API root (defaults to TOPAZ_BASE_URL env var)
            timeout: Per-request timeout in seconds
        """
        self.api_key = api_key or config.TOPAZ_API_KEY
        if not self.api_key:
            raise ValueError(
                "API key required. Set TOPAZ_API_KEY env var or pass api_key."
            )
        self.base_url = (base_url or config.TOPAZ_BASE_URL).rstrip("/")
        self.timeout = timeout or config.REQUEST_TIMEOUT
        self.headers = {
            "X-API-Key": self.api_key,
            "Accept": "application/json",
        }

    def _request(self, endpoint: str, params: Optional[dict] = None) -> Any:
        """
        Make API request.

        Args:
            endpoint: API endpoint (e.g., "/meeting")
            params: Query parameters

        Returns:
            Parsed JSON response

        Raises:
            APIError: If the request fails or the body is not JSON
        """
        url = f"{self.base_url}{endpoint}"
        started = time.monotonic()

        try:
            response = requests.get(
                url, headers=self.headers, params=params, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else 0
            error = APIError(status_code=status, message=f"HTTP {status}: {e}")
            log_api_call(logger, endpoint, params, False, error=error.message)
            raise error from e
        except requests.exceptions.RequestException as e:
            log_api_call(logger, endpoint, params, False, error=str(e))
            raise APIError(status_code=0, message=str(e)) from e

        try:
            data = response.json()
        except ValueError as e:
            log_api_call(logger, endpoint, params, False, error="Invalid JSON")
            raise APIError(
                status_code=response.status_code,
                message=f"Malformed response from {endpoint}",
            ) from e

        log_api_call(
            logger, endpoint, params, True,
            duration_ms=(time.monotonic() - started) * 1000,
        )
        return data

    # -------------------------------------------------------------------------
    # Meetings & races
    # -------------------------------------------------------------------------

    def get_meetings(
        self,
        from_date: str,
        to_date: Optional[str] = None,
        jurisdiction: Optional[str] = None,
    ) -> list[dict]:
        """
        Get meetings for a date range.

        Args:
            from_date: Start date in YYYY-MM-DD format
            to_date: End date in YYYY-MM-DD format (optional)
            jurisdiction: Owning authority code, e.g. "NSW" (optional)

        Returns:
            List of meeting dicts with meetingId, trackCode, trackName, etc.
        """
        params = {"from": from_date}
        if to_date:
            params["to"] = to_date
        if jurisdiction:
            params["owningauthoritycode"] = jurisdiction

        return self._request("/meeting", params) or []

    def get_races(self, meeting_id: int) -> list[dict]:
        """
        Get all races for a meeting.

        Each race carries its runners in a "runs" array (dogId, trainerId,
        boxNumber, incomingGrade, scratched, ...).
        """
        return self._request(f"/meeting/{meeting_id}/races") or []

    # -------------------------------------------------------------------------
    # Bulk runs (historical ingestion)
    # -------------------------------------------------------------------------

    def get_bulk_runs(
        self,
        jurisdiction: str,
        year: int,
        month: int,
        day: Optional[int] = None,
    ) -> list[dict]:
        """
        Get every run recorded for a month, or a single day of it.

        Args:
            jurisdiction: Owning authority code (e.g., "VIC")
            year: Year (e.g., 2025)
            month: Month (1-12)
            day: Day of month (optional)

        Returns:
            List of run dicts (one per dog per race, split times included)
        """
        endpoint = f"/bulk/runs/{jurisdiction}/{year}/{month}"
        if day is not None:
            endpoint = f"{endpoint}/{day}"
        return self._request(endpoint) or []

    # -------------------------------------------------------------------------
    # Codes
    # -------------------------------------------------------------------------

    def get_track_codes(self) -> list[dict]:
        """Get all track codes (trackCode, trackName, owning authority)."""
        return self._request("/codes/track") or []
