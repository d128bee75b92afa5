"""Pytest configuration and shared fixtures.

Streams are synthetic constant-pace runs; histories are lists of
WorkoutRecord built with the factories below.
"""

import datetime as dt
from collections.abc import Callable
from pathlib import Path

import numpy as np
import pytest

from run_analytics.config import MILE_M
from run_analytics.models import Split, Stream, WorkoutRecord, WorkoutType

AS_OF = dt.date(2024, 6, 30)


def constant_pace_stream(
    units: float = 3,
    pace_s: float = 480.0,
    unit_m: float = MILE_M,
    points_per_unit: int = 40,
    heart_rate: float | None = None,
    altitude: list[float] | None = None,
) -> Stream:
    """Stream covering ``units`` units at a constant pace."""
    n = int(round(units * points_per_unit)) + 1
    distance = np.linspace(0.0, units * unit_m, n)
    time = distance / unit_m * pace_s
    hr = [heart_rate] * n if heart_rate is not None else None
    return Stream(
        distance=distance.tolist(),
        time=time.tolist(),
        heartrate=hr,
        altitude=altitude,
    )


def even_splits(
    paces: list[float],
    unit_m: float = MILE_M,
    heart_rates: list[float] | None = None,
) -> list[Split]:
    """Splits with the given per-unit paces."""
    splits = []
    elapsed = 0.0
    for i, pace in enumerate(paces, start=1):
        elapsed += pace
        splits.append(
            Split(
                unit_index=i,
                distance_m=i * unit_m,
                elapsed_s=elapsed,
                avg_pace_s_per_unit=pace,
                avg_heart_rate=heart_rates[i - 1] if heart_rates else None,
            )
        )
    return splits


def workout(
    days_ago: int,
    miles: float,
    pace_s: float,
    workout_type: WorkoutType = WorkoutType.EASY,
    avg_heart_rate: float | None = None,
    with_splits: bool = False,
    workout_id: str | None = None,
) -> WorkoutRecord:
    """WorkoutRecord ``days_ago`` days before AS_OF at a constant pace."""
    splits = even_splits([pace_s] * int(miles)) if with_splits else []
    return WorkoutRecord(
        workout_id=workout_id or f"w{days_ago}",
        date=AS_OF - dt.timedelta(days=days_ago),
        distance_m=miles * MILE_M,
        duration_s=miles * pace_s,
        workout_type=workout_type,
        avg_heart_rate=avg_heart_rate,
        splits=splits,
    )


def training_history(
    tempo_runs: int = 3,
    easy_runs: int = 8,
    with_hr: bool = False,
    with_splits: bool = False,
) -> list[WorkoutRecord]:
    """Easy 5-milers at 540 s/mi plus 4-mile tempo runs at 430 s/mi."""
    records = []
    for i in range(easy_runs):
        records.append(
            workout(
                days_ago=2 + i * 4,
                miles=5,
                pace_s=540.0,
                avg_heart_rate=140.0 if with_hr else None,
            )
        )
    for i in range(tempo_runs):
        records.append(
            workout(
                days_ago=1 + i * 7,
                miles=4,
                pace_s=430.0,
                workout_type=WorkoutType.TEMPO,
                avg_heart_rate=165.0 if with_hr else None,
                with_splits=with_splits,
            )
        )
    return records


@pytest.fixture
def as_of() -> dt.date:
    return AS_OF


@pytest.fixture
def make_stream() -> Callable[..., Stream]:
    """Factory fixture for constant-pace streams.

    Usage:
        def test_something(make_stream):
            stream = make_stream(units=3, pace_s=480.0)
    """
    return constant_pace_stream


@pytest.fixture
def make_history() -> Callable[..., list[WorkoutRecord]]:
    """Factory fixture for training histories."""
    return training_history


@pytest.fixture
def make_workout() -> Callable[..., WorkoutRecord]:
    return workout


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Return a temporary DuckDB database path."""
    return tmp_path / "history.duckdb"


@pytest.fixture
def make_splits() -> Callable[..., list[Split]]:
    return even_splits
