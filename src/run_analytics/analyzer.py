"""Workout analyzer - orchestrates all components for one workout."""

from __future__ import annotations

import logging

from run_analytics.conditions.model import ConditionModel, heat_index
from run_analytics.config import AnalyticsConfig, ThresholdConfig, get_config
from run_analytics.history import WorkoutHistory
from run_analytics.models import (
    AnalysisStatus,
    AthleteSettings,
    BestSegmentOutcome,
    EffectivePace,
    PaceLadderResult,
    SplitResult,
    ThresholdEstimate,
    VdotResult,
    WorkoutAnalysis,
    WorkoutInput,
    ZoneDistribution,
)
from run_analytics.segments.best_segment import BestSegmentScorer
from run_analytics.streams.interpolation import interpolate_laps, interpolate_splits
from run_analytics.streams.sanitizer import sanitize
from run_analytics.threshold.detector import ThresholdPaceEstimator
from run_analytics.vdot.calculator import VDOTCalculator
from run_analytics.zones.classifier import hr_zone_boundaries
from run_analytics.zones.distribution import ZoneDistributionCalculator

logger = logging.getLogger(__name__)


class WorkoutAnalyzer:
    """Runs every analysis that applies to a single workout."""

    def __init__(
        self,
        config: AnalyticsConfig | None = None,
        threshold_config: ThresholdConfig | None = None,
    ) -> None:
        self.config = config or get_config()
        unit_m = self.config.unit_m
        self.conditions = ConditionModel(unit_m)
        self.zones = ZoneDistributionCalculator(
            unit_m, self.config.near_stop_pace_s_per_mile
        )
        self.segments = BestSegmentScorer(unit_m, self.config.min_segment_distance_m)
        self.threshold = ThresholdPaceEstimator(unit_m, threshold_config)

    def _totals(self, workout: WorkoutInput) -> tuple[float, float, float | None]:
        """Distance, duration and elevation gain, preferring explicit values."""
        distance = workout.distance_m
        duration = workout.duration_s
        gain = workout.elevation_gain_m

        if workout.stream is not None:
            clean = sanitize(workout.stream)
            if len(clean) >= 2:
                distance = distance if distance is not None else clean.total_distance
                duration = duration if duration is not None else clean.total_time
                if gain is None and clean.has_altitude:
                    gain = float(clean.cumulative_gain()[-1])

        if workout.laps:
            if distance is None:
                distance = sum(lap.distance_m for lap in workout.laps)
            if duration is None:
                duration = sum(lap.duration_s for lap in workout.laps)
            if gain is None and any(
                lap.elevation_gain_m is not None for lap in workout.laps
            ):
                gain = sum(lap.elevation_gain_m or 0.0 for lap in workout.laps)

        return distance or 0.0, duration or 0.0, gain

    def _splits(self, workout: WorkoutInput) -> SplitResult:
        unit_m = self.config.unit_m
        if workout.stream is not None:
            result = interpolate_splits(workout.stream, unit_m)
            if result.status == AnalysisStatus.OK or not workout.laps:
                return result
        if workout.laps:
            return interpolate_laps(workout.laps, unit_m)
        return SplitResult(status=AnalysisStatus.INSUFFICIENT_STREAM, unit_m=unit_m)

    def pace_ladder(
        self,
        settings: AthleteSettings | None,
        history_vdot: float | None = None,
        adjust_s: float = 0.0,
    ) -> PaceLadderResult:
        """Pace ladder from known VDOT, history VDOT, then reference paces."""
        unit_m = self.config.unit_m
        vdot = settings.known_vdot if settings is not None else None
        if vdot is None:
            vdot = history_vdot
        if vdot is not None:
            ladder = VDOTCalculator.pace_zones(vdot, unit_m, adjust_s)
            if ladder.status == AnalysisStatus.OK or settings is None:
                return ladder
            logger.warning("VDOT %.1f out of range, trying reference paces", vdot)
        if settings is None:
            return PaceLadderResult(status=AnalysisStatus.INSUFFICIENT_DATA)
        return VDOTCalculator.pace_zones_from_reference(settings, unit_m, adjust_s)

    def _distributions(
        self,
        workout: WorkoutInput,
        ladder: PaceLadderResult,
        settings: AthleteSettings | None,
    ) -> tuple[ZoneDistribution | None, ZoneDistribution | None]:
        stream_ok = workout.stream is not None and len(sanitize(workout.stream)) >= 2

        pace_dist = None
        if ladder.boundaries is not None:
            if stream_ok:
                pace_dist = self.zones.pace_from_stream(
                    workout.stream, ladder.boundaries
                )
            elif workout.laps:
                pace_dist = self.zones.pace_from_laps(workout.laps, ladder.boundaries)

        max_hr = workout.stream.max_hr if workout.stream is not None else None
        if max_hr is None and settings is not None:
            max_hr = settings.max_hr
        hr_zones = hr_zone_boundaries(
            max_hr=max_hr,
            age=settings.age if settings is not None else None,
            default_max_hr=self.config.default_max_hr,
        )

        hr_dist = None
        if stream_ok and workout.stream.has_heart_rate:
            hr_dist = self.zones.hr_from_stream(workout.stream, hr_zones)
        elif workout.laps:
            hr_dist = self.zones.hr_from_laps(workout.laps, hr_zones)
        elif stream_ok:
            hr_dist = self.zones.hr_from_stream(workout.stream, hr_zones)

        return pace_dist, hr_dist

    def analyze(
        self,
        workout: WorkoutInput,
        settings: AthleteSettings | None = None,
        history: WorkoutHistory | None = None,
    ) -> WorkoutAnalysis:
        """Analyze one workout.

        Steps:
        1. Per-unit splits (stream, else laps)
        2. Condition adjustment and effective pace
        3. Condition-adjusted VDOT and equivalent race times
        4. Threshold estimate from history
        5. Pace ladder and zone distributions
        6. Best segment (stream only)
        """
        unit_m = self.config.unit_m
        distance, duration, gain = self._totals(workout)

        # 1. Splits
        splits = self._splits(workout)

        # 2. Conditions
        adjustment = self.conditions.adjust(workout.weather, gain, distance)
        effective: EffectivePace | None = None
        if distance > 0 and duration > 0:
            raw_pace = duration / distance * unit_m
            effective = self.conditions.effective_pace(raw_pace, adjustment)
        heat = None
        if workout.weather is not None:
            heat = heat_index(workout.weather.temperature_f, workout.weather.humidity_pct)

        # 3. VDOT
        vdot: VdotResult = VDOTCalculator.estimate(
            distance, duration, adjustment, unit_m
        )
        race_equivalents = None
        if vdot.adjusted_vdot is not None:
            race_equivalents = VDOTCalculator.equivalent_race_times(
                vdot.adjusted_vdot, unit_m
            )

        # 4. Threshold (history is the only source of prior workouts)
        threshold: ThresholdEstimate | None = None
        history_vdot: float | None = None
        if history is not None:
            records = history.fetch(until=workout.date)
            threshold = self.threshold.estimate(records, settings, as_of=workout.date)
            history_vdot = self.threshold.reference_vdot(records)

        # 5. Zones
        ladder = self.pace_ladder(settings, history_vdot, adjustment.total_adjust_s)
        pace_dist, hr_dist = self._distributions(workout, ladder, settings)

        # 6. Best segment
        best_segment: BestSegmentOutcome | None = None
        if workout.stream is not None:
            best_segment = self.segments.find(workout.stream, weather=workout.weather)

        logger.info(
            "Analyzed workout %s: %d splits, vdot=%s",
            workout.workout_id or "-",
            len(splits.splits),
            vdot.adjusted_vdot,
        )
        return WorkoutAnalysis(
            splits=splits,
            conditions=adjustment,
            effective_pace=effective,
            vdot=vdot,
            pace_zones=ladder,
            pace_distribution=pace_dist,
            hr_distribution=hr_dist,
            best_segment=best_segment,
            threshold=threshold,
            heat_index_f=heat,
            race_equivalents=race_equivalents,
        )
