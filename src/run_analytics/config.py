"""Centralized configuration for the run analytics engine.

Consolidates environment variables, physiological constants and tunable
thresholds used across the analysis components.

Usage:
    from run_analytics.config import get_config

    config = get_config()
    unit_m = config.unit_m
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

MILE_M = 1609.34
KM_M = 1000.0
FEET_PER_METER = 3.28084

# Default values
DEFAULT_UNIT_M = MILE_M
DEFAULT_NEAR_STOP_PACE_S_PER_MILE = 900.0  # 15:00/mi
DEFAULT_MAX_HR = 185
DEFAULT_MIN_SEGMENT_DISTANCE_M = 800.0
DEFAULT_LOG_LEVEL = "INFO"

_UNIT_ALIASES = {
    "mile": MILE_M,
    "mi": MILE_M,
    "km": KM_M,
    "kilometer": KM_M,
}


def parse_unit(value: str) -> float:
    """Resolve a unit name or metre count to a unit distance in metres.

    Args:
        value: "mile", "mi", "km", "kilometer" or a positive number of metres.

    Returns:
        Unit distance in metres.

    Raises:
        ValueError: If the value is neither a known alias nor a positive number.
    """
    key = value.strip().lower()
    if key in _UNIT_ALIASES:
        return _UNIT_ALIASES[key]
    try:
        meters = float(key)
    except ValueError:
        raise ValueError(f"Unknown unit: {value!r}") from None
    if meters <= 0:
        raise ValueError(f"Unit distance must be positive: {value!r}")
    return meters


def per_unit(seconds_per_mile: float, unit_m: float) -> float:
    """Scale a seconds-per-mile constant to seconds per unit distance."""
    return seconds_per_mile * unit_m / MILE_M


@dataclass(frozen=True)
class AnalyticsConfig:
    """Immutable configuration for the analysis engine.

    All settings are resolved at creation time. Use `from_env()` to
    create from environment variables, or construct directly for testing.
    """

    unit_m: float = DEFAULT_UNIT_M
    near_stop_pace_s_per_mile: float = DEFAULT_NEAR_STOP_PACE_S_PER_MILE
    default_max_hr: int = DEFAULT_MAX_HR
    min_segment_distance_m: float = DEFAULT_MIN_SEGMENT_DISTANCE_M
    history_db_path: Path | None = None
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def near_stop_pace_s_per_unit(self) -> float:
        """Near-stopped pace cutoff expressed per unit distance."""
        return per_unit(self.near_stop_pace_s_per_mile, self.unit_m)

    def validate(self) -> list[str]:
        """Validate configuration and return list of warnings.

        Returns:
            List of warning messages (empty if all OK).
        """
        warnings: list[str] = []
        if self.unit_m <= 0:
            warnings.append(f"Invalid unit_m: {self.unit_m}")
        if self.near_stop_pace_s_per_mile <= 0:
            warnings.append(
                f"Invalid near_stop_pace_s_per_mile: {self.near_stop_pace_s_per_mile}"
            )
        if not 100 <= self.default_max_hr <= 230:
            warnings.append(f"Implausible default_max_hr: {self.default_max_hr}")
        if self.min_segment_distance_m <= 0:
            warnings.append(
                f"Invalid min_segment_distance_m: {self.min_segment_distance_m}"
            )
        if self.history_db_path is not None and not self.history_db_path.exists():
            warnings.append(f"History database does not exist: {self.history_db_path}")
        return warnings

    @staticmethod
    def from_env() -> AnalyticsConfig:
        """Create config from environment variables.

        Environment variables:
            RUN_ANALYTICS_UNIT: "mile" (default), "km" or metres
            RUN_ANALYTICS_HISTORY_DB: Path to a DuckDB workout history
            RUN_ANALYTICS_LOG_LEVEL: Log level name (default INFO)
        """
        unit_env = os.getenv("RUN_ANALYTICS_UNIT")
        history_env = os.getenv("RUN_ANALYTICS_HISTORY_DB")

        return AnalyticsConfig(
            unit_m=parse_unit(unit_env) if unit_env else DEFAULT_UNIT_M,
            history_db_path=Path(history_env).expanduser() if history_env else None,
            log_level=os.getenv("RUN_ANALYTICS_LOG_LEVEL", DEFAULT_LOG_LEVEL),
        )


@dataclass(frozen=True)
class ThresholdConfig:
    """Tunable constants for threshold pace estimation.

    Pace-valued fields are expressed in seconds per mile and scaled to the
    analysis unit at use. The values are empirically tuned, not physiological
    law; override per call with `with_overrides()`.
    """

    # Workout eligibility
    min_workouts: int = 3
    max_age_days: int = 180
    min_distance_miles: float = 0.5
    min_duration_s: float = 300.0
    min_pace_s_per_mile: float = 240.0
    max_pace_s_per_mile: float = 900.0

    # Threshold effort identification
    effort_min_duration_s: float = 20 * 60
    effort_max_duration_s: float = 40 * 60
    max_pace_cv: float = 0.06
    min_pace_ratio_vs_easy: float = 0.72
    max_pace_ratio_vs_easy: float = 0.92
    max_gain_ft_per_mile: float = 80.0
    easy_pace_percentile: float = 0.6

    # HR deflection analysis
    pace_bin_width_s_per_mile: float = 15.0
    min_hr_points: int = 5
    min_deflection_bins: int = 4
    deflection_sensitivity: float = 0.5

    # Sustainability boundary
    sustainable_duration_s: float = 20 * 60

    # Fusion
    recency_half_life_days: float = 60.0
    max_efforts_fused: int = 5
    outlier_tolerance_pct: float = 0.08
    agreement_window_s_per_mile: float = 15.0

    # VDOT cross-check
    strong_agreement_pct: float = 0.05
    moderate_agreement_pct: float = 0.12

    # Confidence
    high_confidence_efforts: int = 3
    medium_confidence_efforts: int = 2

    def with_overrides(self, **overrides: float) -> ThresholdConfig:
        """Return a copy with the given fields replaced.

        Raises:
            ValueError: If an override names an unknown field.
        """
        known = {f.name for f in dataclasses.fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown threshold config fields: {sorted(unknown)}")
        return dataclasses.replace(self, **overrides)


@lru_cache(maxsize=1)
def get_config() -> AnalyticsConfig:
    """Get the singleton config instance.

    Returns:
        AnalyticsConfig instance created from environment variables.
    """
    return AnalyticsConfig.from_env()
