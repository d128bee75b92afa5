"""VDOT calculator based on Jack Daniels' Running Formula.

Implements the oxygen cost and %VO2max equations for:
- VDOT estimation from a performance, optionally condition-adjusted
- Pace zone ladders (from VDOT, or from reference paces as a fallback)
- Race time prediction and equivalent race times
"""

from __future__ import annotations

import logging
import math

import numpy as np
from pydantic import ValidationError

from run_analytics.config import MILE_M, per_unit
from run_analytics.models import (
    AnalysisStatus,
    AthleteSettings,
    ConditionAdjustment,
    PaceLadderResult,
    PaceZoneBoundaries,
    VdotResult,
)

logger = logging.getLogger(__name__)

MIN_VDOT = 15.0
MAX_VDOT = 85.0

THRESHOLD_PCT_VO2MAX = 0.88
EASY_PCT_VO2MAX = 0.65
MIN_CORRECTED_TIME_FRACTION = 0.85

# Zone velocities as a fraction of threshold velocity
ZONE_VELOCITY_RATIOS = {
    "interval": 1.082,
    "threshold": 1.0,
    "tempo": 0.972,
    "marathon": 0.907,
    "steady": 0.831,
    "easy": 0.783,
    "recovery": 0.686,
}

# Reference-pace fallback offsets, seconds per mile
MARATHON_FROM_EASY_S = 45.0
TEMPO_FROM_MARATHON_S = 25.0
THRESHOLD_FROM_TEMPO_S = 15.0
INTERVAL_FROM_THRESHOLD_S = 15.0
RECOVERY_FROM_EASY_S = 60.0

RACE_DISTANCES: dict[str, float] = {
    "mile": MILE_M,
    "5k": 5000.0,
    "10k": 10000.0,
    "half_marathon": 21097.5,
    "marathon": 42195.0,
}


def is_plausible_vdot(vdot: float) -> bool:
    return math.isfinite(vdot) and MIN_VDOT <= vdot <= MAX_VDOT


class VDOTCalculator:
    """Calculator for VDOT and derived training paces."""

    @staticmethod
    def _oxygen_cost(velocity_m_per_min: float) -> float:
        """Calculate oxygen cost (ml/kg/min) at a given velocity.

        Args:
            velocity_m_per_min: Running velocity in meters per minute.

        Returns:
            Oxygen cost in ml/kg/min.
        """
        v = velocity_m_per_min
        return -4.60 + 0.182258 * v + 0.000104 * v * v

    @staticmethod
    def _percent_vo2max(time_minutes: float) -> float:
        """Calculate fraction of VO2max sustainable for given duration.

        Args:
            time_minutes: Duration in minutes.

        Returns:
            Fraction of VO2max (0-1 range).
        """
        t = time_minutes
        return (
            0.8
            + 0.1894393 * math.exp(-0.012778 * t)
            + 0.2989558 * math.exp(-0.1932605 * t)
        )

    @staticmethod
    def _velocity_for_vo2(target_vo2: float) -> float:
        """Solve the oxygen cost equation for velocity (m/min)."""
        # 0.000104*v^2 + 0.182258*v + (-4.60 - target_vo2) = 0
        a = 0.000104
        b = 0.182258
        c = -4.60 - target_vo2
        discriminant = max(b * b - 4 * a * c, 0.0)
        v = (-b + math.sqrt(discriminant)) / (2 * a)
        return max(v, 1.0)

    @classmethod
    def vdot_from_race(cls, distance_m: float, time_seconds: float) -> float:
        """Calculate VDOT from a performance.

        Args:
            distance_m: Distance in meters.
            time_seconds: Elapsed time in seconds.

        Returns:
            Unrounded VDOT value.
        """
        time_min = time_seconds / 60.0
        velocity = distance_m / time_min  # m/min

        vo2 = cls._oxygen_cost(velocity)
        pct = cls._percent_vo2max(time_min)

        return vo2 / pct

    @classmethod
    def vdot_from_race_array(
        cls, distance_m: np.ndarray, time_seconds: np.ndarray
    ) -> np.ndarray:
        """Vectorised ``vdot_from_race`` over arrays of performances."""
        time_min = time_seconds / 60.0
        velocity = distance_m / time_min
        vo2 = cls._oxygen_cost(velocity)
        pct = (
            0.8
            + 0.1894393 * np.exp(-0.012778 * time_min)
            + 0.2989558 * np.exp(-0.1932605 * time_min)
        )
        return vo2 / pct

    @classmethod
    def adjusted_vdot(
        cls,
        distance_m: float,
        time_seconds: float,
        total_adjust_s: float,
        unit_m: float = MILE_M,
    ) -> tuple[float, float]:
        """Raw and condition-adjusted VDOT for a performance.

        The per-unit condition penalty is removed from the elapsed time
        before inversion, never shortening it by more than 15%.

        Returns:
            (raw_vdot, adjusted_vdot), unrounded.
        """
        raw = cls.vdot_from_race(distance_m, time_seconds)
        if total_adjust_s <= 0:
            return raw, raw
        corrected = time_seconds - total_adjust_s * (distance_m / unit_m)
        corrected = max(corrected, time_seconds * MIN_CORRECTED_TIME_FRACTION)
        return raw, cls.vdot_from_race(distance_m, corrected)

    @classmethod
    def estimate(
        cls,
        distance_m: float,
        time_seconds: float,
        adjustment: ConditionAdjustment | None = None,
        unit_m: float = MILE_M,
    ) -> VdotResult:
        """Estimate VDOT from a distance/time pair.

        Args:
            distance_m: Distance covered; must be at least one unit.
            time_seconds: Elapsed time.
            adjustment: Optional condition adjustment (seconds per unit).
            unit_m: Unit distance in meters.

        Returns:
            VdotResult. Out-of-range indices are rejected, never clamped.
        """
        if distance_m < unit_m - 1e-6 or time_seconds <= 0:
            return VdotResult(status=AnalysisStatus.INSUFFICIENT_DATA)

        total_adjust = adjustment.total_adjust_s if adjustment is not None else 0.0
        raw, adjusted = cls.adjusted_vdot(distance_m, time_seconds, total_adjust, unit_m)
        if not (is_plausible_vdot(raw) and is_plausible_vdot(adjusted)):
            logger.debug(
                "Rejecting VDOT raw=%.2f adjusted=%.2f for %.0fm in %.0fs",
                raw,
                adjusted,
                distance_m,
                time_seconds,
            )
            return VdotResult(status=AnalysisStatus.INVALID_RANGE)

        return VdotResult(
            status=AnalysisStatus.OK,
            raw_vdot=round(raw, 1),
            adjusted_vdot=round(adjusted, 1),
        )

    @classmethod
    def threshold_pace(cls, vdot: float, unit_m: float = MILE_M) -> float:
        """Threshold pace (seconds per unit) implied by a VDOT."""
        velocity = cls._velocity_for_vo2(THRESHOLD_PCT_VO2MAX * vdot)
        return unit_m / velocity * 60.0

    @classmethod
    def pace_zones(
        cls,
        vdot: float,
        unit_m: float = MILE_M,
        adjust_s: float = 0.0,
    ) -> PaceLadderResult:
        """Calculate the seven-rung pace ladder from VDOT.

        Threshold velocity is solved at 88% of VDOT; the other rungs are
        fixed proportions of it.

        Args:
            vdot: VDOT value.
            unit_m: Unit distance in meters.
            adjust_s: Condition shift added to every rung.

        Returns:
            PaceLadderResult with paces in seconds per unit.
        """
        if not is_plausible_vdot(vdot):
            return PaceLadderResult(status=AnalysisStatus.INVALID_RANGE)

        threshold_v = cls._velocity_for_vo2(THRESHOLD_PCT_VO2MAX * vdot)

        def _pace(ratio: float) -> float:
            return round(unit_m / (threshold_v * ratio) * 60.0 + adjust_s, 1)

        paces = {name: _pace(ratio) for name, ratio in ZONE_VELOCITY_RATIOS.items()}
        return PaceLadderResult(
            status=AnalysisStatus.OK,
            boundaries=PaceZoneBoundaries(**paces, source="vdot", adjust_s=adjust_s),
        )

    @staticmethod
    def pace_zones_from_reference(
        settings: AthleteSettings,
        unit_m: float = MILE_M,
        adjust_s: float = 0.0,
    ) -> PaceLadderResult:
        """Build the pace ladder from explicit reference paces.

        Easy pace is required. Missing rungs are derived with fixed offsets
        from the next slower rung; explicit paces always win.

        Args:
            settings: Athlete settings carrying reference paces (s/unit).
            unit_m: Unit distance in meters.
            adjust_s: Condition shift added to every rung.

        Returns:
            PaceLadderResult; ``insufficient_data`` without an easy pace,
            ``invalid_range`` when the paces do not form an ascending ladder.
        """
        if settings.easy_pace is None:
            return PaceLadderResult(status=AnalysisStatus.INSUFFICIENT_DATA)

        easy = settings.easy_pace
        marathon = settings.marathon_pace or easy - per_unit(MARATHON_FROM_EASY_S, unit_m)
        tempo = settings.tempo_pace or marathon - per_unit(TEMPO_FROM_MARATHON_S, unit_m)
        threshold = settings.threshold_pace or tempo - per_unit(
            THRESHOLD_FROM_TEMPO_S, unit_m
        )
        interval = settings.interval_pace or threshold - per_unit(
            INTERVAL_FROM_THRESHOLD_S, unit_m
        )
        paces = {
            "interval": interval,
            "threshold": threshold,
            "tempo": tempo,
            "marathon": marathon,
            "steady": (easy + marathon) / 2.0,
            "easy": easy,
            "recovery": easy + per_unit(RECOVERY_FROM_EASY_S, unit_m),
        }
        try:
            boundaries = PaceZoneBoundaries(
                **{name: round(p + adjust_s, 1) for name, p in paces.items()},
                source="reference_paces",
                adjust_s=adjust_s,
            )
        except ValidationError as e:
            logger.warning("Reference paces do not form a valid ladder: %s", e)
            return PaceLadderResult(status=AnalysisStatus.INVALID_RANGE)
        return PaceLadderResult(status=AnalysisStatus.OK, boundaries=boundaries)

    @classmethod
    def predict_race_time(cls, vdot: float, distance_m: float) -> int:
        """Predict race time from VDOT value.

        Uses binary search to find the time that produces the given VDOT
        for the specified distance.

        Args:
            vdot: VDOT value.
            distance_m: Target race distance in meters.

        Returns:
            Predicted time in seconds.
        """
        low_sec = 1
        high_sec = 86400  # 24 hours max

        for _ in range(100):  # sufficient iterations for convergence
            mid_sec = (low_sec + high_sec) // 2
            estimated_vdot = cls.vdot_from_race(distance_m, mid_sec)

            if abs(estimated_vdot - vdot) < 0.01:
                return mid_sec
            elif estimated_vdot > vdot:
                # Running faster (less time) gives higher VDOT, need more time
                low_sec = mid_sec
            else:
                high_sec = mid_sec

        return (low_sec + high_sec) // 2

    @classmethod
    def equivalent_race_times(
        cls, vdot: float, unit_m: float = MILE_M
    ) -> dict[str, dict[str, float]]:
        """Predicted time and pace for each standard race distance."""
        results: dict[str, dict[str, float]] = {}
        for name, distance_m in RACE_DISTANCES.items():
            time_s = cls.predict_race_time(vdot, distance_m)
            results[name] = {
                "time_s": time_s,
                "pace_s_per_unit": round(time_s / (distance_m / unit_m), 1),
            }
        return results

    @classmethod
    def vdot_from_easy_pace(
        cls, easy_pace_s: float, unit_m: float = MILE_M
    ) -> float | None:
        """Rough VDOT from an easy pace, taking easy running as 65% of VO2max.

        Returns:
            VDOT rounded to 0.1, or None when outside the plausible range.
        """
        if easy_pace_s <= 0:
            return None
        velocity = unit_m / easy_pace_s * 60.0
        vdot = cls._oxygen_cost(velocity) / EASY_PCT_VO2MAX
        if not is_plausible_vdot(vdot):
            return None
        return round(vdot, 1)
