"""Condition adjustment model: pace penalties for heat, humidity and climbing.

The model returns seconds per unit distance that conditions added to a run.
Penalties are defined per mile and scaled to the configured unit.

Weather term (per mile):
    - 0 at or below 55°F
    - 0.4 s/°F from 55 to 70°F
    - 1.0 s/°F from 70 to 85°F
    - 1.5 s/°F above 85°F
    - scaled up 1% per humidity point above 60%
    - plus 0.3 s/°F of dew point above 60°F, when known

Elevation term: 12 s/mi per 100 ft of gain per mile.
"""

from __future__ import annotations

import logging
import math

from run_analytics.config import FEET_PER_METER, MILE_M, per_unit
from run_analytics.models import ConditionAdjustment, EffectivePace, Weather, WorkoutType

logger = logging.getLogger(__name__)

COMFORT_TEMP_F = 55.0
WARM_TEMP_F = 70.0
HOT_TEMP_F = 85.0
MILD_RATE = 0.4
WARM_RATE = 1.0
HOT_RATE = 1.5
HUMIDITY_THRESHOLD_PCT = 60.0
HUMIDITY_SCALE_PER_PCT = 0.01
DEW_POINT_THRESHOLD_F = 60.0
DEW_POINT_RATE = 0.3
ELEVATION_S_PER_MILE_PER_100FT = 12.0
MAX_ADJUST_FRACTION = 0.15

# Share of the weather penalty applied to a planned target pace
TARGET_WEATHER_FACTORS: dict[WorkoutType, float] = {
    WorkoutType.EASY: 1.0,
    WorkoutType.LONG: 1.0,
    WorkoutType.RECOVERY: 1.0,
    WorkoutType.OTHER: 1.0,
    WorkoutType.STEADY: 0.85,
    WorkoutType.TEMPO: 0.7,
    WorkoutType.THRESHOLD: 0.7,
    WorkoutType.INTERVAL: 0.5,
    WorkoutType.RACE: 0.5,
    WorkoutType.TIME_TRIAL: 0.5,
}


def heat_index(temperature_f: float, humidity_pct: float) -> float:
    """NWS heat index (°F).

    Uses the simple Steadman estimate, switching to the Rothfusz regression
    with its low/high humidity corrections once the estimate reaches 80°F.
    """
    t = temperature_f
    rh = humidity_pct
    simple = 0.5 * (t + 61.0 + (t - 68.0) * 1.2 + rh * 0.094)
    if (simple + t) / 2.0 < 80.0:
        return round(simple, 1)

    hi = (
        -42.379
        + 2.04901523 * t
        + 10.14333127 * rh
        - 0.22475541 * t * rh
        - 0.00683783 * t * t
        - 0.05481717 * rh * rh
        + 0.00122874 * t * t * rh
        + 0.00085282 * t * rh * rh
        - 0.00000199 * t * t * rh * rh
    )
    if rh < 13 and 80 <= t <= 112:
        hi -= ((13 - rh) / 4) * math.sqrt((17 - abs(t - 95)) / 17)
    elif rh > 85 and 80 <= t <= 87:
        hi += ((rh - 85) / 10) * ((87 - t) / 5)
    return round(hi, 1)


class ConditionModel:
    """Pace penalty from weather and elevation, in seconds per unit."""

    def __init__(self, unit_m: float = MILE_M) -> None:
        if unit_m <= 0:
            raise ValueError(f"unit_m must be positive, got {unit_m}")
        self.unit_m = unit_m

    @staticmethod
    def _temperature_penalty_per_mile(temperature_f: float) -> float:
        if temperature_f <= COMFORT_TEMP_F:
            return 0.0
        penalty = (min(temperature_f, WARM_TEMP_F) - COMFORT_TEMP_F) * MILD_RATE
        if temperature_f > WARM_TEMP_F:
            penalty += (min(temperature_f, HOT_TEMP_F) - WARM_TEMP_F) * WARM_RATE
        if temperature_f > HOT_TEMP_F:
            penalty += (temperature_f - HOT_TEMP_F) * HOT_RATE
        return penalty

    def weather_adjustment(self, weather: Weather | None) -> float:
        """Weather penalty in seconds per unit, rounded to 0.1 s.

        Args:
            weather: Conditions, or None for no weather penalty.

        Returns:
            Non-negative seconds per unit.
        """
        if weather is None:
            return 0.0

        penalty = self._temperature_penalty_per_mile(weather.temperature_f)
        if penalty > 0 and weather.humidity_pct > HUMIDITY_THRESHOLD_PCT:
            excess = weather.humidity_pct - HUMIDITY_THRESHOLD_PCT
            penalty *= 1.0 + HUMIDITY_SCALE_PER_PCT * excess
        if weather.dew_point_f is not None and weather.dew_point_f > DEW_POINT_THRESHOLD_F:
            penalty += (weather.dew_point_f - DEW_POINT_THRESHOLD_F) * DEW_POINT_RATE

        return round(per_unit(penalty, self.unit_m), 1)

    def elevation_adjustment(
        self, elevation_gain_m: float | None, distance_m: float | None
    ) -> float:
        """Climbing penalty in seconds per unit, rounded to 0.1 s.

        Args:
            elevation_gain_m: Total positive gain over the distance.
            distance_m: Distance the gain was accumulated over.

        Returns:
            Non-negative seconds per unit; 0 when either input is missing.
        """
        if elevation_gain_m is None or distance_m is None:
            return 0.0
        if elevation_gain_m <= 0 or distance_m <= 0:
            return 0.0
        gain_ft_per_mile = elevation_gain_m * FEET_PER_METER / (distance_m / MILE_M)
        penalty = gain_ft_per_mile / 100.0 * ELEVATION_S_PER_MILE_PER_100FT
        return round(per_unit(penalty, self.unit_m), 1)

    def adjust(
        self,
        weather: Weather | None = None,
        elevation_gain_m: float | None = None,
        distance_m: float | None = None,
    ) -> ConditionAdjustment:
        """Combine weather and elevation terms into one adjustment."""
        weather_s = self.weather_adjustment(weather)
        elevation_s = self.elevation_adjustment(elevation_gain_m, distance_m)
        adjustment = ConditionAdjustment(
            weather_adjust_s=weather_s,
            elevation_adjust_s=elevation_s,
            total_adjust_s=round(weather_s + elevation_s, 1),
        )
        logger.debug(
            "Condition adjustment weather=%.1fs elevation=%.1fs",
            weather_s,
            elevation_s,
        )
        return adjustment

    @staticmethod
    def effective_pace(
        raw_pace_s: float, adjustment: ConditionAdjustment
    ) -> EffectivePace:
        """Subtract the condition penalty from an observed pace.

        The adjustment is discarded (effective == raw) unless the result is
        positive, faster than raw and the penalty is at most 15% of raw pace.
        """
        effective = raw_pace_s - adjustment.total_adjust_s
        accepted = (
            0 < effective < raw_pace_s
            and adjustment.total_adjust_s <= MAX_ADJUST_FRACTION * raw_pace_s
        )
        if not accepted:
            if adjustment.total_adjust_s > 0:
                logger.debug(
                    "Discarding condition adjustment %.1fs for pace %.1fs",
                    adjustment.total_adjust_s,
                    raw_pace_s,
                )
            return EffectivePace(
                raw_pace_s=raw_pace_s,
                effective_pace_s=raw_pace_s,
                adjustment_applied=False,
            )
        return EffectivePace(
            raw_pace_s=raw_pace_s,
            effective_pace_s=round(effective, 1),
            adjustment_applied=True,
        )

    def adjust_target_pace(
        self,
        target_pace_s: float,
        weather: Weather | None,
        workout_type: WorkoutType = WorkoutType.EASY,
    ) -> float:
        """Slow a planned target pace for the forecast weather.

        Hard sessions absorb only part of the weather penalty.
        """
        factor = TARGET_WEATHER_FACTORS.get(workout_type, 1.0)
        return round(target_pace_s + self.weather_adjustment(weather) * factor, 1)
