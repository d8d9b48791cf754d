"""
Runtime configuration for Greyhound Form Stats.

Values come from environment variables (a local .env file is loaded first),
falling back to the defaults below.

Usage:
    from core.config import JURISDICTIONS, RUNS_DB_PATH, today_str

    for jur in JURISDICTIONS:
        ...
"""

import os
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).parent.parent

# Topaz API
TOPAZ_API_KEY = os.environ.get("TOPAZ_API_KEY")
TOPAZ_BASE_URL = os.environ.get("TOPAZ_BASE_URL", "https://topaz.grv.org.au/api")
REQUEST_TIMEOUT = float(os.environ.get("REQUEST_TIMEOUT", "10"))

# Databases
RUNS_DB_PATH = Path(os.environ.get("RUNS_DB_PATH", BASE_DIR / "data" / "runs.db"))
DAILY_DB_PATH = Path(os.environ.get("DAILY_DB_PATH", BASE_DIR / "data" / "daily_races.db"))

# Politeness delays between calls to Topaz (seconds)
RACE_FETCH_DELAY = float(os.environ.get("RACE_FETCH_DELAY", "0.25"))
BULK_FETCH_DELAY = float(os.environ.get("BULK_FETCH_DELAY", "0.5"))

MAX_WORKERS = int(os.environ.get("MAX_WORKERS", "10"))

# Owning authorities queried for meetings and bulk runs
JURISDICTIONS = ["VIC", "NSW", "QLD", "SA", "WA", "TAS", "ACT", "NT", "NZ"]

# All racing dates are Sydney dates
TIMEZONE = "Australia/Sydney"


def now_local() -> datetime:
    """Current time in the racing timezone."""
    return datetime.now(ZoneInfo(TIMEZONE))


def today_str() -> str:
    """Today's racing date as YYYY-MM-DD."""
    return now_local().strftime("%Y-%m-%d")
