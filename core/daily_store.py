"""
Daily Races Store.

Keeps one computed race-day document per date so the dashboard can serve the
morning's numbers without recomputing them. Saving the same date again
replaces the earlier document.

Usage:
    from core.daily_store import DailyRaceStore

    sink = DailyRaceStore()
    sink.save_daily_races("2025-11-24", data)

    latest = sink.get_latest_daily_races()
    # {"date": "2025-11-24", "computedAt": "2025-11-24T06:00:03+11:00", "data": {...}}
"""

import json
import sqlite3
from pathlib import Path
from typing import Optional

from core import config
from core.logging import get_logger

logger = get_logger(__name__)


class DailyRaceStore:
    """Persisted sink for computed daily race documents."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or config.DAILY_DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS daily_races (
                    race_date TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    computed_at TEXT NOT NULL
                )
            """)
            conn.commit()

    def save_daily_races(
        self,
        race_date: str,
        data: dict,
        computed_at: Optional[str] = None,
    ) -> None:
        """
        Store the document for a date, replacing any previous one.

        Args:
            race_date: YYYY-MM-DD
            data: The enriched race tree (JSON-serializable)
            computed_at: ISO timestamp; defaults to now in the racing timezone
        """
        computed_at = computed_at or config.now_local().isoformat()
        payload = json.dumps(data)

        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO daily_races (race_date, data, computed_at)
                VALUES (?, ?, ?)
                ON CONFLICT(race_date) DO UPDATE SET
                    data = excluded.data,
                    computed_at = excluded.computed_at
            """, (race_date, payload, computed_at))
            conn.commit()

        logger.info(
            f"Saved daily races for {race_date}",
            extra={"race_date": race_date, "bytes": len(payload)},
        )

    def _fetch(self, sql: str, params: tuple = ()) -> Optional[dict]:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(sql, params).fetchone()

        if row is None:
            return None
        return {
            "date": row["race_date"],
            "computedAt": row["computed_at"],
            "data": json.loads(row["data"]),
        }

    def get_latest_daily_races(self) -> Optional[dict]:
        """Most recent stored document, or None if nothing has been computed yet."""
        return self._fetch(
            "SELECT * FROM daily_races ORDER BY race_date DESC LIMIT 1"
        )

    def get_daily_races(self, race_date: str) -> Optional[dict]:
        """Stored document for one date, or None."""
        return self._fetch(
            "SELECT * FROM daily_races WHERE race_date = ?", (race_date,)
        )

    def list_dates(self) -> list[str]:
        """All stored dates, newest first."""
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT race_date FROM daily_races ORDER BY race_date DESC"
            ).fetchall()
        return [r[0] for r in rows]
