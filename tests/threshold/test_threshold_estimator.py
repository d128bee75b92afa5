"""Tests for threshold pace fusion and confidence."""

from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING

import numpy as np
import pytest

from run_analytics.config import MILE_M, ThresholdConfig
from run_analytics.models import (
    Agreement,
    AthleteSettings,
    EvidenceTier,
    ThresholdMethod,
    WorkoutRecord,
    WorkoutType,
)
from run_analytics.threshold.detector import ThresholdPaceEstimator
from run_analytics.vdot.calculator import VDOTCalculator

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


def _vdot_for_threshold(pace: float) -> float:
    """VDOT whose implied threshold pace is closest to ``pace``."""
    candidates = np.arange(30.0, 70.0, 0.1)
    errors = [abs(VDOTCalculator.threshold_pace(v) - pace) for v in candidates]
    return round(float(candidates[int(np.argmin(errors))]), 1)


@pytest.fixture
def estimator() -> ThresholdPaceEstimator:
    return ThresholdPaceEstimator(MILE_M)


@pytest.mark.unit
class TestInsufficientData:
    def test_zero_history(self, estimator):
        result = estimator.estimate([])
        assert result.method == ThresholdMethod.INSUFFICIENT_DATA
        assert result.threshold_pace_s_per_unit is None
        assert result.evidence.workouts_analyzed == 0
        assert result.evidence.date_range is None

    def test_too_few_workouts(self, estimator, make_history):
        result = estimator.estimate(make_history(tempo_runs=1, easy_runs=1))
        assert result.method == ThresholdMethod.INSUFFICIENT_DATA
        assert result.evidence.workouts_analyzed == 2

    def test_no_threshold_efforts(self, estimator, make_history, as_of):
        result = estimator.estimate(make_history(tempo_runs=0))
        assert result.method == ThresholdMethod.INSUFFICIENT_DATA
        assert result.evidence.workouts_analyzed == 8
        assert result.evidence.date_range.end == as_of - dt.timedelta(days=2)

    def test_stale_workouts_ignored(self, estimator, make_history, as_of):
        far_future = as_of + dt.timedelta(days=365)
        result = estimator.estimate(make_history(), as_of=far_future)
        assert result.method == ThresholdMethod.INSUFFICIENT_DATA
        assert result.evidence.workouts_analyzed == 0

    def test_implausible_workouts_filtered(self, estimator, make_workout):
        records = [
            make_workout(1, 0.2, 480.0),  # too short
            make_workout(2, 5, 1000.0),  # slower than walking pace
            make_workout(3, 5, 200.0),  # faster than plausible
        ]
        assert estimator.filter_analysable(records) == []


@pytest.mark.unit
class TestEstimate:
    def test_pace_only_from_efforts(self, estimator, make_history):
        result = estimator.estimate(make_history())

        assert result.threshold_pace_s_per_unit == pytest.approx(430.0)
        assert result.method == ThresholdMethod.THRESHOLD_EFFORTS
        assert result.tier == EvidenceTier.PACE_ONLY
        assert len(result.evidence.threshold_efforts) == 3
        assert result.evidence.workouts_analyzed == 11
        assert result.evidence.workouts_with_hr == 0
        assert result.vdot_validation is None
        assert 0.1 <= result.confidence <= 0.95

    def test_sustainability_from_splits(self, estimator, make_history):
        plain = estimator.estimate(make_history())
        result = estimator.estimate(make_history(with_splits=True))

        assert result.method == ThresholdMethod.COMBINED
        assert result.evidence.sustainability_boundary_pace == pytest.approx(430.0)
        assert result.threshold_pace_s_per_unit >= result.evidence.sustainability_boundary_pace
        assert result.confidence > plain.confidence

    def test_hr_assisted_tier(self, estimator, make_history):
        result = estimator.estimate(make_history(with_hr=True))
        assert result.tier == EvidenceTier.HR_ASSISTED
        assert result.evidence.workouts_with_hr == 11
        assert result.evidence.deflection_pace is None

    def test_heart_rate_never_lowers_confidence(self, estimator, make_history):
        for with_splits in (False, True):
            without = estimator.estimate(make_history(with_splits=with_splits))
            with_hr = estimator.estimate(make_history(with_hr=True, with_splits=with_splits))
            assert with_hr.confidence >= without.confidence
            assert with_hr.threshold_pace_s_per_unit == without.threshold_pace_s_per_unit

    def test_more_efforts_more_confidence(self, estimator, make_history):
        one = estimator.estimate(make_history(tempo_runs=1))
        three = estimator.estimate(make_history(tempo_runs=3))
        assert three.confidence > one.confidence

    def test_explicit_easy_pace(self, estimator, make_history):
        # 430 / 700 is below the threshold pace-ratio window
        result = estimator.estimate(make_history(), AthleteSettings(easy_pace=700))
        assert result.method == ThresholdMethod.INSUFFICIENT_DATA

    def test_config_override(self, make_history):
        strict = ThresholdPaceEstimator(MILE_M, ThresholdConfig(min_workouts=20))
        result = strict.estimate(make_history())
        assert result.method == ThresholdMethod.INSUFFICIENT_DATA

    def test_idempotent(self, estimator, make_history):
        history = make_history(with_hr=True, with_splits=True)
        assert estimator.estimate(history) == estimator.estimate(history)

    def test_race_gives_vdot_validation(self, estimator, make_history, as_of):
        race = WorkoutRecord(
            workout_id="race",
            date=as_of - dt.timedelta(days=10),
            distance_m=5000,
            duration_s=1196,
            workout_type=WorkoutType.RACE,
        )
        result = estimator.estimate([*make_history(), race])
        validation = result.vdot_validation
        assert validation is not None
        assert validation.source_vdot == pytest.approx(50, abs=0.5)
        assert validation.estimated_threshold_pace == result.threshold_pace_s_per_unit


@pytest.mark.unit
class TestConfidenceOrdering:
    def test_rich_evidence_beats_single_effort(
        self, estimator, make_history, mocker: MockerFixture
    ):
        single = estimator.estimate(make_history(tempo_runs=1))

        mocker.patch(
            "run_analytics.threshold.detector.find_deflection_point",
            return_value=432.0,
        )
        settings = AthleteSettings(known_vdot=_vdot_for_threshold(430.8))
        rich = estimator.estimate(make_history(tempo_runs=5, with_hr=True), settings)

        assert rich.tier == EvidenceTier.HR_VALIDATED
        assert rich.method == ThresholdMethod.COMBINED
        assert rich.evidence.deflection_pace == 432.0
        assert rich.vdot_validation.agreement == Agreement.STRONG
        assert rich.confidence > single.confidence
        assert rich.confidence <= 0.95

    def test_deflection_outlier_excluded(
        self, estimator, make_history, mocker: MockerFixture
    ):
        mocker.patch(
            "run_analytics.threshold.detector.find_deflection_point",
            return_value=520.0,
        )
        result = estimator.estimate(make_history(with_hr=True))
        assert result.tier == EvidenceTier.HR_ASSISTED
        assert result.method == ThresholdMethod.THRESHOLD_EFFORTS
        assert result.threshold_pace_s_per_unit == pytest.approx(430.0)


@pytest.mark.unit
class TestVdotValidation:
    def test_agreement_levels(self, estimator):
        implied = round(VDOTCalculator.threshold_pace(50), 1)
        assert estimator.validate_against_vdot(implied, 50).agreement == Agreement.STRONG
        moderate = estimator.validate_against_vdot(implied * 1.08, 50)
        assert moderate.agreement == Agreement.MODERATE
        weak = estimator.validate_against_vdot(implied * 1.2, 50)
        assert weak.agreement == Agreement.WEAK
        assert weak.difference_s > 0
        assert weak.difference_pct == pytest.approx(20.0, abs=0.1)

    def test_known_vdot_fallback(self, estimator, make_history):
        assert estimator.reference_vdot(make_history()) is None
        settings = AthleteSettings(known_vdot=48.0)
        assert estimator.reference_vdot(make_history(), settings) == 48.0

    def test_implausible_known_vdot_ignored(self, estimator):
        assert estimator.reference_vdot([], AthleteSettings(known_vdot=120.0)) is None


def _knee_runs(make_workout, paces, heart_rates, first_day=3):
    """Eight-mile runs with average HR only; too long and split-less to be efforts."""
    return [
        make_workout(
            first_day + 2 * i,
            8,
            pace,
            workout_type=WorkoutType.LONG,
            avg_heart_rate=hr,
            workout_id=f"knee{i}",
        )
        for i, (pace, hr) in enumerate(zip(paces, heart_rates))
    ]


def _fartlek_runs(make_splits, as_of, avg_heart_rate=None):
    """Hard six-milers alternating 520/380 s splits: too unsteady to be efforts."""
    return [
        WorkoutRecord(
            workout_id=f"f{i}",
            date=as_of - dt.timedelta(days=3 + 7 * i),
            distance_m=6 * MILE_M,
            duration_s=2700,
            workout_type=WorkoutType.STEADY,
            avg_heart_rate=avg_heart_rate,
            splits=make_splits([520.0, 380.0] * 3),
        )
        for i in range(3)
    ]


@pytest.mark.unit
class TestWithoutThresholdEfforts:
    """Deflection and sustainability stand on their own when no effort qualifies."""

    def test_deflection_alone(self, estimator, make_workout):
        # HR rises 1 bpm per 15 s/mi faster down to 497.5 s/mi, then 5 bpm per 15 s/mi
        paces = [370.0] + [390.0 + 15 * k for k in range(15)]
        hrs = [187.0 - 5 * k for k in range(8)] + [147.0 - k for k in range(8)]
        result = estimator.estimate(_knee_runs(make_workout, paces, hrs))

        assert result.method == ThresholdMethod.HR_DEFLECTION
        assert result.tier == EvidenceTier.HR_VALIDATED
        assert result.evidence.deflection_pace == pytest.approx(497.5)
        assert result.threshold_pace_s_per_unit == pytest.approx(497.5)
        assert result.evidence.threshold_efforts == []
        assert result.evidence.workouts_with_hr == 16
        assert result.confidence == pytest.approx(0.35)

    def test_sustainability_alone(self, estimator, make_history, make_splits, as_of):
        result = estimator.estimate(
            [*make_history(tempo_runs=0), *_fartlek_runs(make_splits, as_of)]
        )

        assert result.method == ThresholdMethod.SUSTAINABILITY_BOUNDARY
        assert result.tier == EvidenceTier.PACE_ONLY
        assert result.evidence.threshold_efforts == []
        assert result.evidence.sustainability_boundary_pace == pytest.approx(426.7)
        assert result.threshold_pace_s_per_unit == pytest.approx(426.7)

    def test_heart_rate_only_adds_to_boundary_estimate(
        self, estimator, make_history, make_splits, as_of
    ):
        without = estimator.estimate(
            [*make_history(tempo_runs=0), *_fartlek_runs(make_splits, as_of)]
        )
        with_hr = estimator.estimate(
            [
                *make_history(tempo_runs=0, with_hr=True),
                *_fartlek_runs(make_splits, as_of, avg_heart_rate=160.0),
            ]
        )
        assert with_hr.tier == EvidenceTier.HR_ASSISTED
        assert with_hr.confidence >= without.confidence

    def test_easy_runs_only_stay_insufficient(self, estimator, make_splits, as_of):
        easy = [
            WorkoutRecord(
                workout_id=f"e{i}",
                date=as_of - dt.timedelta(days=i + 1),
                distance_m=5 * MILE_M,
                duration_s=2700,
                workout_type=WorkoutType.EASY,
                splits=make_splits([540.0] * 5),
            )
            for i in range(5)
        ]
        result = estimator.estimate(easy)
        assert result.method == ThresholdMethod.INSUFFICIENT_DATA


@pytest.mark.unit
class TestDeflectionEndToEnd:
    def test_real_deflection_validates_efforts(self, estimator, make_history, make_workout):
        # Bins are 15 s wide from 410 s/mi; easy runs (540, 140 bpm) and tempo
        # runs (430, 165 bpm) sit on the same curve, which bends at 447.5
        paces = [600.0, 585.0, 570.0, 555.0, 525.0, 510.0, 495.0, 480.0, 465.0, 450.0, 410.0]
        hrs = [136.0, 137.0, 138.0, 139.0, 141.0, 142.0, 143.0, 144.0, 145.0, 146.0, 175.0]
        history = [*make_history(with_hr=True), *_knee_runs(make_workout, paces, hrs)]

        result = estimator.estimate(history)

        assert result.evidence.deflection_pace == pytest.approx(447.5)
        assert result.tier == EvidenceTier.HR_VALIDATED
        assert result.method == ThresholdMethod.COMBINED
        assert len(result.evidence.threshold_efforts) == 3
        # efforts at 430 (weight 0.5) fused with the deflection (weight 0.3)
        assert result.threshold_pace_s_per_unit == pytest.approx(436.6)
        plain = estimator.estimate(make_history(with_hr=True))
        assert result.confidence > plain.confidence
