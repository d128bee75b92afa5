"""Analyze one workout from a JSON file.

The input file holds a ``workout`` object and optionally ``settings`` and a
``history`` list of prior workouts. With ``--db`` the history is read from a
DuckDB database instead.

Usage:
    run-analytics activity.json
    run-analytics activity.json --db ~/data/history.duckdb --unit km
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from run_analytics.analyzer import WorkoutAnalyzer
from run_analytics.config import AnalyticsConfig, parse_unit
from run_analytics.history import (
    DuckDBWorkoutHistory,
    InMemoryWorkoutHistory,
    WorkoutHistory,
)
from run_analytics.models import AthleteSettings, WorkoutInput, WorkoutRecord
from run_analytics.utils.formatting import format_duration, format_pace
from run_analytics.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def load_input(
    path: Path,
) -> tuple[WorkoutInput, AthleteSettings | None, list[WorkoutRecord]]:
    """Parse an activity file.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the file is not valid JSON or fails validation.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict) or "workout" not in data:
        raise ValueError("input must be a JSON object with a 'workout' key")

    workout = WorkoutInput.model_validate(data["workout"])
    settings = None
    if data.get("settings") is not None:
        settings = AthleteSettings.model_validate(data["settings"])
    history = [WorkoutRecord.model_validate(w) for w in data.get("history") or []]
    return workout, settings, history


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Analyze a running workout and print the result as JSON"
    )
    parser.add_argument("input", type=Path, help="Activity JSON file")
    parser.add_argument("--db", type=Path, help="DuckDB workout history database")
    parser.add_argument("--unit", help="Split unit: mile, km or metres")
    parser.add_argument("--log-level", help="Logging level (default from env)")
    parser.add_argument("--log-dir", type=Path, help="Directory for a log file")
    parser.add_argument("--output", type=Path, help="Write JSON here, not stdout")
    args = parser.parse_args(argv)

    config = AnalyticsConfig.from_env()
    overrides: dict[str, object] = {}
    if args.unit:
        try:
            overrides["unit_m"] = parse_unit(args.unit)
        except ValueError as e:
            parser.error(str(e))
    if args.db:
        overrides["history_db_path"] = args.db
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    config = dataclasses.replace(config, **overrides)

    setup_logging(config.log_level, args.log_dir)
    for warning in config.validate():
        logger.warning(warning)

    try:
        workout, settings, records = load_input(args.input)
    except (OSError, ValueError, ValidationError) as e:
        logger.error(f"Cannot read {args.input}: {e}")
        sys.exit(1)

    history: WorkoutHistory | None = None
    if config.history_db_path is not None:
        history = DuckDBWorkoutHistory(config.history_db_path)
    elif records:
        history = InMemoryWorkoutHistory(records)

    analysis = WorkoutAnalyzer(config).analyze(workout, settings, history)
    if analysis.effective_pace is not None:
        logger.info(
            "Pace %s, effective %s, VDOT %s",
            format_pace(analysis.effective_pace.raw_pace_s, config.unit_m),
            format_pace(analysis.effective_pace.effective_pace_s, config.unit_m),
            analysis.vdot.adjusted_vdot,
        )
    best = analysis.best_segment
    if best is not None and best.segment is not None:
        logger.info(
            "Best segment %.0fm in %s (VDOT %.1f)",
            best.segment.distance_m,
            format_duration(best.segment.elapsed_s),
            best.segment.adjusted_vdot,
        )
    output = json.dumps(analysis.model_dump(mode="json"), indent=2)

    if args.output:
        args.output.write_text(output + "\n", encoding="utf-8")
        logger.info(f"Wrote analysis to {args.output}")
    else:
        print(output)


if __name__ == "__main__":
    main()
