"""Workout history collaborators for threshold estimation.

The estimator only needs a synchronous ``fetch`` returning a fully
materialised list. Two implementations are provided: an in-memory list
(tests, CLI input files) and a read-only DuckDB reader.

DuckDB layout (table ``workouts``)::

    workout_id        VARCHAR
    date              DATE
    distance_m        DOUBLE
    duration_s        DOUBLE
    workout_type      VARCHAR
    avg_heart_rate    DOUBLE   (nullable)
    elevation_gain_m  DOUBLE   (nullable)
    splits            VARCHAR  (nullable JSON list of split objects,
                                paces in the analysis unit)
"""

from __future__ import annotations

import datetime as dt
import json
import logging
from collections.abc import Generator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

import duckdb
from pydantic import ValidationError

from run_analytics.models import Split, WorkoutRecord

logger = logging.getLogger(__name__)

WORKOUTS_DDL = """
CREATE TABLE IF NOT EXISTS workouts (
    workout_id VARCHAR,
    date DATE NOT NULL,
    distance_m DOUBLE NOT NULL,
    duration_s DOUBLE NOT NULL,
    workout_type VARCHAR,
    avg_heart_rate DOUBLE,
    elevation_gain_m DOUBLE,
    splits VARCHAR
)
"""


class WorkoutHistory(Protocol):
    """Source of prior workouts."""

    def fetch(self, until: dt.date | None = None) -> list[WorkoutRecord]:
        """Return workouts dated on or before ``until`` (all when None)."""
        ...


class InMemoryWorkoutHistory:
    """History backed by an in-memory list."""

    def __init__(self, workouts: Sequence[WorkoutRecord] = ()) -> None:
        self._workouts = list(workouts)

    def fetch(self, until: dt.date | None = None) -> list[WorkoutRecord]:
        rows = [w for w in self._workouts if until is None or w.date <= until]
        return sorted(rows, key=lambda w: w.date)


class DuckDBWorkoutHistory:
    """Read-only workout history stored in DuckDB."""

    def __init__(self, db_path: str | Path):
        """Initialize the reader.

        Args:
            db_path: Path to a DuckDB database with a ``workouts`` table.
        """
        self.db_path = Path(db_path)
        if not self.db_path.exists():
            logger.warning(f"Database not found: {self.db_path}")

    @contextmanager
    def _get_connection(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """Get read-only DuckDB connection as context manager."""
        conn = duckdb.connect(str(self.db_path), read_only=True)
        try:
            yield conn
        finally:
            conn.close()

    @staticmethod
    def _parse_splits(raw: str | None, workout_id: str | None) -> list[Split]:
        if not raw:
            return []
        try:
            return [Split.model_validate(item) for item in json.loads(raw)]
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            logger.warning("Skipping malformed splits for workout %s: %s", workout_id, e)
            return []

    def fetch(self, until: dt.date | None = None) -> list[WorkoutRecord]:
        """Fetch workouts ordered by date.

        Args:
            until: Optional inclusive upper date bound.

        Returns:
            List of WorkoutRecord; empty when the database is missing or
            has no readable workouts table.
        """
        if not self.db_path.exists():
            return []

        query = """
            SELECT workout_id, date, distance_m, duration_s, workout_type,
                   avg_heart_rate, elevation_gain_m, splits
            FROM workouts
        """
        params: list[object] = []
        if until is not None:
            query += " WHERE date <= ?"
            params.append(until)
        query += " ORDER BY date, workout_id"

        try:
            with self._get_connection() as conn:
                rows = conn.execute(query, params).fetchall()
        except duckdb.Error as e:
            logger.error(f"Error reading workouts from {self.db_path}: {e}")
            return []

        records = []
        for row in rows:
            workout_id, date, distance_m, duration_s, workout_type, hr, gain, splits = row
            records.append(
                WorkoutRecord(
                    workout_id=workout_id,
                    date=date,
                    distance_m=distance_m,
                    duration_s=duration_s,
                    workout_type=workout_type or "other",
                    avg_heart_rate=hr,
                    elevation_gain_m=gain,
                    splits=self._parse_splits(splits, workout_id),
                )
            )
        logger.debug("Fetched %d workouts from %s", len(records), self.db_path)
        return records


def create_workouts_table(conn: duckdb.DuckDBPyConnection) -> None:
    """Create the ``workouts`` table if it does not exist."""
    conn.execute(WORKOUTS_DDL)


def insert_workouts(
    conn: duckdb.DuckDBPyConnection, workouts: Sequence[WorkoutRecord]
) -> None:
    """Insert workout records into the ``workouts`` table."""
    create_workouts_table(conn)
    for w in workouts:
        splits = json.dumps([s.model_dump() for s in w.splits]) if w.splits else None
        conn.execute(
            "INSERT INTO workouts VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                w.workout_id,
                w.date,
                w.distance_m,
                w.duration_s,
                str(w.workout_type),
                w.avg_heart_rate,
                w.elevation_gain_m,
                splits,
            ],
        )
