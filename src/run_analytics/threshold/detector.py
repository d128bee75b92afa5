"""Lactate threshold pace estimation from workout history.

Fuses threshold-effort, HR-deflection and sustainability signals into one
threshold pace with a confidence score, then cross-checks the result
against a VDOT-implied threshold pace.

Pure computation: history is fetched by the caller and passed in fully
materialised. The reference date defaults to the newest workout so that
identical inputs always give identical output.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from run_analytics.config import MILE_M, ThresholdConfig, per_unit
from run_analytics.models import (
    Agreement,
    AnalysisStatus,
    AthleteSettings,
    DateRange,
    EvidenceTier,
    ThresholdEstimate,
    ThresholdEvidence,
    ThresholdMethod,
    VdotValidation,
    WorkoutRecord,
    WorkoutType,
)
from run_analytics.threshold.signals import (
    EXCLUDED_TYPES,
    CandidateFinder,
    ThresholdCandidate,
    collect_pace_hr_points,
    easy_pace_reference,
    find_deflection_point,
    find_sustainability_boundary,
    record_splits,
)
from run_analytics.vdot.calculator import VDOTCalculator, is_plausible_vdot

logger = logging.getLogger(__name__)

# Fusion weights
EFFORT_WEIGHT_HIGH = 0.5
EFFORT_WEIGHT_MEDIUM = 0.35
EFFORT_WEIGHT_LOW = 0.2
DEFLECTION_WEIGHT = 0.3
SUSTAINABILITY_WEIGHT = 0.2

# Confidence terms
BASE_CONFIDENCE = 0.2
TOP_SCORE_WEIGHT = 0.15
EXTRA_SIGNAL_BONUS = 0.1
AGREEING_SIGNAL_BONUS = 0.05
HR_PRESENT_BONUS = 0.05
DEFLECTION_VALIDATED_BONUS = 0.1
VDOT_STRONG_BONUS = 0.1
VDOT_WEAK_PENALTY = 0.1
PACE_OUTLIER_PENALTY = 0.05
MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95

RACE_TYPES = frozenset({WorkoutType.RACE, WorkoutType.TIME_TRIAL})


@dataclass(frozen=True)
class _Signal:
    method: ThresholdMethod
    pace: float
    weight: float
    uses_hr: bool = False


class ThresholdPaceEstimator:
    """Multi-signal threshold pace estimator."""

    def __init__(
        self,
        unit_m: float = MILE_M,
        config: ThresholdConfig | None = None,
    ) -> None:
        if unit_m <= 0:
            raise ValueError(f"unit_m must be positive, got {unit_m}")
        self.unit_m = unit_m
        self.config = config or ThresholdConfig()

    # ------------------------------------------------------------------
    # Workout selection
    # ------------------------------------------------------------------

    def filter_analysable(
        self, workouts: Sequence[WorkoutRecord], as_of: dt.date | None = None
    ) -> list[WorkoutRecord]:
        """Workouts with plausible distance, duration and pace, newest first."""
        cfg = self.config
        if as_of is None and workouts:
            as_of = max(w.date for w in workouts)
        min_pace = per_unit(cfg.min_pace_s_per_mile, self.unit_m)
        max_pace = per_unit(cfg.max_pace_s_per_mile, self.unit_m)
        min_distance = cfg.min_distance_miles * MILE_M

        valid = []
        for w in workouts:
            if w.distance_m < min_distance or w.duration_s < cfg.min_duration_s:
                continue
            pace = w.pace_s_per_unit(self.unit_m)
            if pace is None or not min_pace <= pace <= max_pace:
                continue
            if as_of is not None:
                age = (as_of - w.date).days
                if age < 0 or age > cfg.max_age_days:
                    continue
            valid.append(w)

        valid.sort(key=lambda w: w.date, reverse=True)
        return valid

    def _hard_runs(
        self, workouts: Sequence[WorkoutRecord], easy_pace: float | None
    ) -> list[WorkoutRecord]:
        """Workouts run clearly faster than easy pace."""
        if easy_pace is None:
            return []
        limit = easy_pace * self.config.max_pace_ratio_vs_easy
        hard = []
        for w in workouts:
            if w.workout_type in EXCLUDED_TYPES:
                continue
            pace = w.pace_s_per_unit(self.unit_m)
            if pace is not None and pace <= limit:
                hard.append(w)
        return hard

    # ------------------------------------------------------------------
    # VDOT cross-check
    # ------------------------------------------------------------------

    def reference_vdot(
        self,
        workouts: Sequence[WorkoutRecord],
        settings: AthleteSettings | None = None,
    ) -> float | None:
        """Best race/time-trial VDOT in the history, else the known VDOT."""
        best: float | None = None
        for w in workouts:
            if w.workout_type not in RACE_TYPES:
                continue
            result = VDOTCalculator.estimate(w.distance_m, w.duration_s, unit_m=self.unit_m)
            if result.status != AnalysisStatus.OK or result.adjusted_vdot is None:
                continue
            if best is None or result.adjusted_vdot > best:
                best = result.adjusted_vdot
        if best is not None:
            return best
        if settings is not None and settings.known_vdot is not None:
            if is_plausible_vdot(settings.known_vdot):
                return settings.known_vdot
            logger.warning("Ignoring implausible known VDOT %.1f", settings.known_vdot)
        return None

    def validate_against_vdot(self, estimated_pace: float, vdot: float) -> VdotValidation:
        """Compare an estimated threshold pace with the VDOT-implied one."""
        cfg = self.config
        vdot_pace = round(VDOTCalculator.threshold_pace(vdot, self.unit_m), 1)
        diff = estimated_pace - vdot_pace
        pct = abs(diff) / vdot_pace
        if pct <= cfg.strong_agreement_pct:
            agreement = Agreement.STRONG
        elif pct <= cfg.moderate_agreement_pct:
            agreement = Agreement.MODERATE
        else:
            agreement = Agreement.WEAK
        return VdotValidation(
            vdot_threshold_pace=vdot_pace,
            estimated_threshold_pace=estimated_pace,
            difference_s=round(diff, 1),
            difference_pct=round(pct * 100.0, 1),
            agreement=agreement,
            source_vdot=vdot,
        )

    # ------------------------------------------------------------------
    # Fusion
    # ------------------------------------------------------------------

    def _effort_weight(self, count: int) -> float:
        cfg = self.config
        if count >= cfg.high_confidence_efforts:
            return EFFORT_WEIGHT_HIGH
        if count >= cfg.medium_confidence_efforts:
            return EFFORT_WEIGHT_MEDIUM
        return EFFORT_WEIGHT_LOW

    def _primary_pace(
        self, candidates: Sequence[ThresholdCandidate], as_of: dt.date
    ) -> float:
        """Score- and recency-weighted pace of the top candidates."""
        top = candidates[: self.config.max_efforts_fused]
        half_life = self.config.recency_half_life_days
        weighted = 0.0
        total = 0.0
        for c in top:
            age = max((as_of - c.effort.date).days, 0)
            recency = 0.5 ** (age / half_life)
            weight = max(c.base_score, 1e-3) * recency
            weighted += c.effort.pace * weight
            total += weight
        return weighted / total

    def _confidence(
        self,
        candidates: Sequence[ThresholdCandidate],
        primary: float,
        secondaries: Sequence[_Signal],
        pace_outliers: int,
        has_hr: bool,
        deflection_used: bool,
        validation: VdotValidation | None,
    ) -> float:
        cfg = self.config
        confidence = BASE_CONFIDENCE

        count = len(candidates)
        if count >= cfg.high_confidence_efforts:
            confidence += 0.3
        elif count >= cfg.medium_confidence_efforts:
            confidence += 0.2
        elif count >= 1:
            confidence += 0.1

        top = candidates[:3]
        if top:
            confidence += TOP_SCORE_WEIGHT * sum(c.effort.score for c in top) / len(top)

        window = per_unit(cfg.agreement_window_s_per_mile, self.unit_m)
        for signal in secondaries:
            confidence += EXTRA_SIGNAL_BONUS
            if abs(signal.pace - primary) <= window:
                confidence += AGREEING_SIGNAL_BONUS

        if has_hr:
            confidence += HR_PRESENT_BONUS
        if deflection_used:
            confidence += DEFLECTION_VALIDATED_BONUS

        if validation is not None:
            if validation.agreement == Agreement.STRONG:
                confidence += VDOT_STRONG_BONUS
            elif validation.agreement == Agreement.WEAK:
                confidence -= VDOT_WEAK_PENALTY

        confidence -= PACE_OUTLIER_PENALTY * pace_outliers
        return round(min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, confidence)), 2)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def estimate(
        self,
        workouts: Sequence[WorkoutRecord],
        settings: AthleteSettings | None = None,
        as_of: dt.date | None = None,
    ) -> ThresholdEstimate:
        """Estimate threshold pace from workout history.

        Args:
            workouts: Fully materialised workout history.
            settings: Optional athlete settings (easy pace, known VDOT).
            as_of: Reference date for recency; defaults to the newest workout.

        Returns:
            ThresholdEstimate; method ``insufficient_data`` when there are
            too few analysable workouts or no usable signal.
        """
        cfg = self.config
        analysable = self.filter_analysable(workouts, as_of)
        with_hr = sum(1 for w in analysable if w.has_heart_rate)
        date_range = None
        if analysable:
            date_range = DateRange(start=analysable[-1].date, end=analysable[0].date)

        def insufficient() -> ThresholdEstimate:
            return ThresholdEstimate(
                method=ThresholdMethod.INSUFFICIENT_DATA,
                evidence=ThresholdEvidence(
                    workouts_analyzed=len(analysable),
                    workouts_with_hr=with_hr,
                    date_range=date_range,
                ),
            )

        if len(analysable) < cfg.min_workouts:
            logger.info(
                "Threshold estimate needs %d analysable workouts, found %d",
                cfg.min_workouts,
                len(analysable),
            )
            return insufficient()

        reference_date = as_of or analysable[0].date
        paces = [w.pace_s_per_unit(self.unit_m) for w in analysable]
        easy_pace = easy_pace_reference(
            [p for p in paces if p is not None],
            cfg.easy_pace_percentile,
            settings.easy_pace if settings is not None else None,
        )
        candidates = CandidateFinder(cfg, self.unit_m).find(analysable, easy_pace)

        deflection = None
        if with_hr:
            points = collect_pace_hr_points(analysable, self.unit_m)
            deflection = find_deflection_point(points, cfg, self.unit_m)

        if candidates:
            split_runs = [c.splits for c in candidates]
        else:
            split_runs = [
                record_splits(w, self.unit_m)
                for w in self._hard_runs(analysable, easy_pace)
            ]
        sustainability = find_sustainability_boundary(split_runs, cfg)

        proposed = []
        if sustainability is not None:
            proposed.append(
                _Signal(
                    ThresholdMethod.SUSTAINABILITY_BOUNDARY,
                    sustainability,
                    SUSTAINABILITY_WEIGHT,
                )
            )
        if deflection is not None:
            proposed.append(
                _Signal(ThresholdMethod.HR_DEFLECTION, deflection, DEFLECTION_WEIGHT, True)
            )

        if candidates:
            lead = _Signal(
                ThresholdMethod.THRESHOLD_EFFORTS,
                self._primary_pace(candidates, reference_date),
                self._effort_weight(len(candidates)),
            )
        elif proposed:
            # Pace-only boundary leads so HR data can only add evidence
            lead = proposed.pop(0)
            logger.info("No threshold efforts, leading with %s", lead.method)
        else:
            logger.info("No threshold signal among %d workouts", len(analysable))
            return insufficient()
        primary = lead.pace

        secondaries: list[_Signal] = []
        pace_outliers = 0
        for signal in proposed:
            if abs(signal.pace - primary) / primary > cfg.outlier_tolerance_pct:
                logger.debug(
                    "Excluding %s signal %.1f as outlier to primary %.1f",
                    signal.method,
                    signal.pace,
                    primary,
                )
                if not signal.uses_hr:
                    pace_outliers += 1
                continue
            secondaries.append(signal)

        used = [lead, *secondaries]
        total_weight = sum(s.weight for s in used)
        fused = sum(s.pace * s.weight for s in used) / total_weight
        if any(s.method == ThresholdMethod.SUSTAINABILITY_BOUNDARY for s in used):
            fused = max(fused, sustainability)
        fused = min(
            max(fused, per_unit(cfg.min_pace_s_per_mile, self.unit_m)),
            per_unit(cfg.max_pace_s_per_mile, self.unit_m),
        )
        fused = round(fused, 1)

        vdot = self.reference_vdot(analysable, settings)
        validation = self.validate_against_vdot(fused, vdot) if vdot is not None else None

        uses_deflection = any(s.uses_hr for s in used)
        if uses_deflection:
            tier = EvidenceTier.HR_VALIDATED
        elif with_hr:
            tier = EvidenceTier.HR_ASSISTED
        else:
            tier = EvidenceTier.PACE_ONLY

        method = ThresholdMethod.COMBINED if secondaries else lead.method
        confidence = self._confidence(
            candidates,
            primary,
            secondaries,
            pace_outliers,
            with_hr > 0,
            uses_deflection,
            validation,
        )

        return ThresholdEstimate(
            threshold_pace_s_per_unit=fused,
            confidence=confidence,
            method=method,
            tier=tier,
            evidence=ThresholdEvidence(
                threshold_efforts=[c.effort for c in candidates],
                deflection_pace=deflection,
                sustainability_boundary_pace=sustainability,
                workouts_analyzed=len(analysable),
                workouts_with_hr=with_hr,
                date_range=date_range,
            ),
            vdot_validation=validation,
        )
