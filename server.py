"""
FastAPI Server for Greyhound Form Stats.

Serves the computed race days to the dashboard and re-ranks a race when a
runner is scratched by hand.

Run:
    uvicorn server:app --reload --port 8000

Endpoints:
    GET  /health                          - Health check
    GET  /api/daily-races                 - Most recent stored race day
    GET  /api/daily-races/{race_date}     - Stored race day for a date
    GET  /api/races/today/all             - Compute today live (not stored)
    POST /api/races/summary               - Rankings and tags for one race

Summary Example:
    curl -X POST http://localhost:8000/api/races/summary \\
        -H "Content-Type: application/json" \\
        -d '{"race": {"runs": [...]}, "manuallyScratched": [123456]}'
"""

import os
import re
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from api.topaz import TopazAPI
from core.daily_store import DailyRaceStore
from core.logging import get_logger
from core.pipeline import compute_daily
from core.ranking import process_race
from core.store import RunStore

logger = get_logger(__name__)

app = FastAPI(
    title="Greyhound Form Stats",
    description="Daily greyhound race cards with form statistics",
    version="1.0.0"
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("CORS_ORIGINS", "http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_topaz_api() -> TopazAPI:
    return TopazAPI()


def get_daily_store() -> DailyRaceStore:
    return DailyRaceStore()


# =============================================================================
# MODELS
# =============================================================================

DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')


class DailyRacesResponse(BaseModel):
    date: str
    computedAt: str
    data: dict[str, Any]


class RaceSummaryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    race: dict[str, Any]
    manually_scratched: list[int] = Field(default_factory=list, alias="manuallyScratched")


class TagResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    css_class: str = Field(alias="class")
    priority: int


class RunnerSummaryResponse(BaseModel):
    dogId: Optional[int]
    active: bool
    rankings: dict[str, int]
    summary: list[TagResponse]
    avgTdVsField: Optional[float] = None
    avgSplitVsField: Optional[float] = None


class RaceSummaryResponse(BaseModel):
    fieldAvgTime: Optional[float] = None
    fieldAvgSplit: Optional[float] = None
    runners: list[RunnerSummaryResponse]


# =============================================================================
# ENDPOINTS
# =============================================================================

@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "greyhound-form-stats"}


def validate_date(date: str) -> None:
    """Validate date format, raise HTTPException if invalid."""
    if not DATE_PATTERN.match(date):
        raise HTTPException(
            status_code=400,
            detail="Date must be in format YYYY-MM-DD (e.g., 2025-11-24)"
        )


@app.get("/api/daily-races", response_model=DailyRacesResponse)
def get_latest_daily_races(sink: DailyRaceStore = Depends(get_daily_store)):
    """Most recently computed race day."""
    doc = sink.get_latest_daily_races()
    if doc is None:
        raise HTTPException(status_code=404, detail="No race data found")
    return doc


@app.get("/api/daily-races/dates")
def list_daily_race_dates(sink: DailyRaceStore = Depends(get_daily_store)):
    """Dates with a stored race day, newest first."""
    return {"dates": sink.list_dates()}


@app.get("/api/daily-races/{race_date}", response_model=DailyRacesResponse)
def get_daily_races(race_date: str, sink: DailyRaceStore = Depends(get_daily_store)):
    """Stored race day for a specific date."""
    validate_date(race_date)
    doc = sink.get_daily_races(race_date)
    if doc is None:
        raise HTTPException(status_code=404, detail=f"No race data found for {race_date}")
    return doc


@app.get("/api/races/today/all")
def get_all_races_today(
    extended: bool = True,
    date: Optional[str] = None,
    api: TopazAPI = Depends(get_topaz_api),
):
    """
    Compute a race day live from Topaz and the run store (not saved).

    Slow: fetches every meeting's races and runs every statistic query.
    """
    if date is not None:
        validate_date(date)

    try:
        with RunStore() as store:
            doc = compute_daily(api, store, date=date, extended=extended)
        return doc.data
    except Exception as e:
        logger.exception("Live compute failed")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/races/summary", response_model=RaceSummaryResponse)
def get_race_summary(req: RaceSummaryRequest):
    """
    Rankings, vs-field deltas and tags for one enriched race.

    Lets the dashboard re-rank after a manual scratch without refetching.
    """
    if not isinstance(req.race.get("runs"), list):
        raise HTTPException(status_code=400, detail="Race must include a 'runs' list")

    return process_race(req.race, req.manually_scratched).to_dict()


if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
