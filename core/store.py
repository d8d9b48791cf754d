"""
Run Store.

Local SQLite copy of every historical run pulled from Topaz bulk endpoints.
One row per dog per race, keyed by runId; re-ingesting a run replaces it.

Usage:
    from core.store import RunStore

    with RunStore() as store:
        store.upsert_runs(api.get_bulk_runs("VIC", 2025, 11))
        print(store.count_runs())
"""

import sqlite3
from pathlib import Path
from typing import Iterable, Optional

from core import config
from core.logging import get_logger
from core.models import RUN_COLUMNS, run_to_row

logger = get_logger(__name__)

# Column types for the runs table (anything not listed is TEXT)
_INTEGER_COLUMNS = {
    "distanceInMetres", "raceId", "dogId", "rating", "raceNumber", "boxNumber",
    "boxDrawnOrder", "rugNumber", "place", "scratched", "ownerId", "trainerId",
    "isQuad", "isBestBet", "damId", "sireId", "isLateScratching", "totalFormCount",
    "firstSplitPosition",
}
_REAL_COLUMNS = {
    "weightInKg", "startPrice", "prizeMoney", "resultTime", "resultMargin",
    "careerPrizeMoney", "averageSpeed", "firstSplitTime", "secondSplitTime",
    "bestTimeTrackDistance",
}

_INDEXES = {
    "idx_dog_track_dist": "runs (dogId, trackCode, distanceInMetres)",
    "idx_trainer": "runs (trainerId)",
    "idx_track_box": "runs (trackCode, boxNumber)",
    "idx_dog_date": "runs (dogId, meetingDate DESC)",
    "idx_dog_track_split": "runs (dogId, trackCode)",
}


def _column_type(col: str) -> str:
    if col == "runId":
        return "INTEGER PRIMARY KEY"
    if col in _INTEGER_COLUMNS:
        return "INTEGER"
    if col in _REAL_COLUMNS:
        return "REAL"
    return "TEXT"


class RunStore:
    """
    Handle on the runs database.

    Open once per process and pass it to every query and write. Writes are
    sequential on this handle; WAL journaling lets other readers in meanwhile.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or config.RUNS_DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.create_schema()

    def __enter__(self) -> "RunStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    def create_schema(self) -> None:
        """Create the runs table and its lookup indexes."""
        columns = ",\n                ".join(
            f"{col} {_column_type(col)}" for col in RUN_COLUMNS
        )
        self.conn.execute(f"""
            CREATE TABLE IF NOT EXISTS runs (
                {columns}
            )
        """)
        for name, target in _INDEXES.items():
            self.conn.execute(f"CREATE INDEX IF NOT EXISTS {name} ON {target}")
        self.conn.commit()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _insert_sql(self) -> str:
        placeholders = ",".join("?" for _ in RUN_COLUMNS)
        return (
            f"INSERT OR REPLACE INTO runs ({','.join(RUN_COLUMNS)}) "
            f"VALUES ({placeholders})"
        )

    def upsert_run(self, run: dict) -> None:
        """Insert a run, replacing any existing row with the same runId."""
        self.conn.execute(self._insert_sql(), run_to_row(run))
        self.conn.commit()

    def upsert_runs(self, runs: Iterable[dict]) -> int:
        """
        Upsert a batch of runs in one transaction.

        Returns:
            Number of runs written
        """
        sql = self._insert_sql()
        count = 0
        with self.conn:
            for run in runs:
                self.conn.execute(sql, run_to_row(run))
                count += 1
        return count

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def query(self, sql: str, params: tuple = ()) -> list[dict]:
        """Run a read query and return rows as dicts."""
        rows = self.conn.execute(sql, params).fetchall()
        return [dict(row) for row in rows]

    def count_runs(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM runs").fetchone()[0]
