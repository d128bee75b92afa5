"""Pydantic models for run analytics inputs and results.

Input models describe what the ingestion and settings collaborators hand to
the engine. Result models are frozen: each is produced by one computation
call and never mutated afterwards.
"""

from __future__ import annotations

import datetime as dt
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator, model_validator

_FROZEN = {"frozen": True}


class AnalysisStatus(StrEnum):
    """Outcome of an analysis call."""

    OK = "ok"
    INSUFFICIENT_STREAM = "insufficient_stream"
    INSUFFICIENT_DATA = "insufficient_data"
    INVALID_RANGE = "invalid_range"


class ThresholdMethod(StrEnum):
    """Signal(s) a threshold estimate was derived from."""

    THRESHOLD_EFFORTS = "threshold_efforts"
    HR_DEFLECTION = "hr_deflection"
    SUSTAINABILITY_BOUNDARY = "sustainability_boundary"
    COMBINED = "combined"
    INSUFFICIENT_DATA = "insufficient_data"


class EvidenceTier(StrEnum):
    """Evidentiary tier of a threshold estimate."""

    PACE_ONLY = "pace_only"
    HR_ASSISTED = "hr_assisted"
    HR_VALIDATED = "hr_validated"


class Agreement(StrEnum):
    """Agreement between empirical and VDOT-implied threshold pace."""

    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"


class ZoneMode(StrEnum):
    PACE = "pace"
    HEART_RATE = "heart_rate"


class Granularity(StrEnum):
    SAMPLE = "sample"
    LAP = "lap"


class WorkoutType(StrEnum):
    """Workout type as reported by the history collaborator."""

    EASY = "easy"
    RECOVERY = "recovery"
    LONG = "long"
    STEADY = "steady"
    TEMPO = "tempo"
    THRESHOLD = "threshold"
    INTERVAL = "interval"
    RACE = "race"
    TIME_TRIAL = "time_trial"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


def _normalize_workout_type(v: object) -> object:
    """Map free-form type labels onto WorkoutType; unknown labels become OTHER."""
    if isinstance(v, str):
        key = v.strip().lower().replace(" ", "_").replace("-", "_")
        try:
            return WorkoutType(key)
        except ValueError:
            return WorkoutType.OTHER
    return v


class RawStreamSample(BaseModel):
    """One recorded sample. Distance and time are cumulative."""

    distance_m: float = Field(description="Cumulative distance (m)")
    elapsed_s: float = Field(description="Cumulative elapsed time (s)")
    heart_rate_bpm: float | None = Field(default=None, description="Heart rate (bpm)")
    altitude_m: float | None = Field(default=None, description="Altitude (m)")


class Stream(BaseModel):
    """Column-oriented activity stream.

    Optional arrays may be longer than the distance/time arrays; the extra
    tail entries are ignored.
    """

    distance: list[float] = Field(description="Cumulative distance (m)")
    time: list[float] = Field(description="Cumulative elapsed time (s)")
    heartrate: list[float | None] | None = Field(default=None)
    altitude: list[float | None] | None = Field(default=None)
    max_hr: int | None = Field(default=None, description="Recorded max HR (bpm)")

    @model_validator(mode="after")
    def compatible_lengths(self) -> Stream:
        if len(self.distance) != len(self.time):
            raise ValueError(
                f"distance and time lengths differ: {len(self.distance)} != {len(self.time)}"
            )
        for name in ("heartrate", "altitude"):
            values = getattr(self, name)
            if values is not None and len(values) < len(self.distance):
                raise ValueError(f"{name} is shorter than distance")
        return self

    @property
    def has_heart_rate(self) -> bool:
        return self.heartrate is not None and any(
            v is not None for v in self.heartrate[: len(self.distance)]
        )

    def to_samples(self) -> list[RawStreamSample]:
        """Convert the column arrays into row samples."""
        samples = []
        for i, (d, t) in enumerate(zip(self.distance, self.time)):
            hr = self.heartrate[i] if self.heartrate is not None else None
            alt = self.altitude[i] if self.altitude is not None else None
            samples.append(
                RawStreamSample(
                    distance_m=d, elapsed_s=t, heart_rate_bpm=hr, altitude_m=alt
                )
            )
        return samples


class Lap(BaseModel):
    """Lap summary used when no stream is available."""

    distance_m: float = Field(gt=0, description="Lap distance (m)")
    duration_s: float = Field(gt=0, description="Lap duration (s)")
    avg_heart_rate: float | None = Field(default=None)
    elevation_gain_m: float | None = Field(default=None, ge=0)

    @property
    def pace_s_per_m(self) -> float:
        return self.duration_s / self.distance_m


class Weather(BaseModel):
    """Conditions during a workout."""

    temperature_f: float = Field(description="Air temperature (°F)")
    humidity_pct: float = Field(ge=0, le=100, description="Relative humidity (%)")
    dew_point_f: float | None = Field(default=None, description="Dew point (°F)")


class AthleteSettings(BaseModel):
    """Athlete-level settings. Reference paces are in seconds per unit."""

    known_vdot: float | None = Field(default=None)
    easy_pace: float | None = Field(default=None, gt=0)
    marathon_pace: float | None = Field(default=None, gt=0)
    tempo_pace: float | None = Field(default=None, gt=0)
    threshold_pace: float | None = Field(default=None, gt=0)
    interval_pace: float | None = Field(default=None, gt=0)
    age: int | None = Field(default=None, gt=0, lt=120)
    max_hr: int | None = Field(default=None, gt=0)


class Split(BaseModel):
    """One full unit-distance split."""

    model_config = _FROZEN

    unit_index: int = Field(ge=1, description="1-based unit index")
    distance_m: float = Field(description="Cumulative distance at split end (m)")
    elapsed_s: float = Field(description="Cumulative elapsed time at split end (s)")
    avg_pace_s_per_unit: float = Field(description="Split pace (s/unit)")
    avg_heart_rate: float | None = Field(default=None)
    elevation_delta_m: float | None = Field(default=None)
    elevation_gain_m: float | None = Field(default=None)


class WorkoutRecord(BaseModel):
    """Historical workout row from the history collaborator."""

    workout_id: str | None = Field(default=None)
    date: dt.date
    distance_m: float = Field(ge=0)
    duration_s: float = Field(ge=0)
    avg_pace_s_per_unit: float | None = Field(default=None)
    workout_type: WorkoutType = WorkoutType.OTHER
    avg_heart_rate: float | None = Field(default=None)
    elevation_gain_m: float | None = Field(default=None)
    splits: list[Split] = Field(default_factory=list)
    stream: Stream | None = Field(default=None)

    @field_validator("workout_type", mode="before")
    @classmethod
    def normalize_type(cls, v: object) -> object:
        return _normalize_workout_type(v)

    @property
    def has_heart_rate(self) -> bool:
        if self.stream is not None and self.stream.has_heart_rate:
            return True
        if any(s.avg_heart_rate is not None for s in self.splits):
            return True
        return self.avg_heart_rate is not None

    def pace_s_per_unit(self, unit_m: float) -> float | None:
        """Average pace, preferring the stored value."""
        if self.avg_pace_s_per_unit is not None:
            return self.avg_pace_s_per_unit
        if self.distance_m <= 0:
            return None
        return self.duration_s / self.distance_m * unit_m


class WorkoutInput(BaseModel):
    """A single workout handed to the analyzer.

    Totals fall back to the stream, then the laps, when not given.
    """

    workout_id: str | None = Field(default=None)
    date: dt.date | None = Field(default=None)
    workout_type: WorkoutType = WorkoutType.OTHER
    stream: Stream | None = Field(default=None)
    laps: list[Lap] = Field(default_factory=list)
    distance_m: float | None = Field(default=None, ge=0)
    duration_s: float | None = Field(default=None, ge=0)
    elevation_gain_m: float | None = Field(default=None, ge=0)
    weather: Weather | None = Field(default=None)

    @field_validator("workout_type", mode="before")
    @classmethod
    def normalize_type(cls, v: object) -> object:
        return _normalize_workout_type(v)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class SplitResult(BaseModel):
    model_config = _FROZEN

    status: AnalysisStatus
    unit_m: float
    splits: list[Split] = Field(default_factory=list)


class ConditionAdjustment(BaseModel):
    """Pace penalty attributable to conditions, in seconds per unit."""

    model_config = _FROZEN

    weather_adjust_s: float = Field(ge=0)
    elevation_adjust_s: float = Field(ge=0)
    total_adjust_s: float = Field(ge=0)

    @classmethod
    def none(cls) -> ConditionAdjustment:
        return cls(weather_adjust_s=0.0, elevation_adjust_s=0.0, total_adjust_s=0.0)


class EffectivePace(BaseModel):
    model_config = _FROZEN

    raw_pace_s: float
    effective_pace_s: float
    adjustment_applied: bool


class VdotResult(BaseModel):
    """VDOT estimate for one performance."""

    model_config = _FROZEN

    status: AnalysisStatus
    raw_vdot: float | None = None
    adjusted_vdot: float | None = None


PACE_ZONE_NAMES = (
    "interval",
    "threshold",
    "tempo",
    "marathon",
    "steady",
    "easy",
    "recovery",
)


class PaceZoneBoundaries(BaseModel):
    """Seven-rung pace ladder in seconds per unit, fastest first."""

    model_config = _FROZEN

    interval: float = Field(gt=0)
    threshold: float = Field(gt=0)
    tempo: float = Field(gt=0)
    marathon: float = Field(gt=0)
    steady: float = Field(gt=0)
    easy: float = Field(gt=0)
    recovery: float = Field(gt=0)
    source: str = Field(description="vdot or reference_paces")
    adjust_s: float = Field(default=0.0, description="Condition shift already applied")

    @model_validator(mode="after")
    def strictly_increasing(self) -> PaceZoneBoundaries:
        ladder = self.as_list()
        if any(b <= a for a, b in zip(ladder, ladder[1:])):
            raise ValueError(f"Pace ladder must be strictly increasing: {ladder}")
        return self

    def as_list(self) -> list[float]:
        return [getattr(self, name) for name in PACE_ZONE_NAMES]

    def lower_bounds(self) -> list[float]:
        """Ascending zone lower bounds, one per name in ``PACE_ZONE_NAMES``.

        Interval is anything faster than the interval rung; Threshold runs
        from the interval rung up to the tempo rung. Each slower zone starts
        at its own rung.
        """
        return [
            0.0,
            self.interval,
            self.tempo,
            self.marathon,
            self.steady,
            self.easy,
            self.recovery,
        ]


class PaceLadderResult(BaseModel):
    model_config = _FROZEN

    status: AnalysisStatus
    boundaries: PaceZoneBoundaries | None = None


class HRZoneBoundaries(BaseModel):
    """Five lower bounds (bpm), ascending."""

    model_config = _FROZEN

    lower_bounds: list[float]
    max_hr: float
    max_hr_source: str = Field(description="provided, age or default")


class ZoneBucket(BaseModel):
    model_config = _FROZEN

    zone: int
    label: str
    seconds: float
    percentage: float


class ZoneDistribution(BaseModel):
    model_config = _FROZEN

    mode: ZoneMode
    granularity: Granularity
    status: AnalysisStatus = AnalysisStatus.OK
    buckets: list[ZoneBucket] = Field(default_factory=list)
    total_seconds: float = 0.0
    excluded_seconds: float = 0.0

    @property
    def dominant_zone(self) -> ZoneBucket | None:
        """Zone with the most seconds, or None when nothing was classified."""
        if not self.buckets or self.total_seconds <= 0:
            return None
        return max(self.buckets, key=lambda b: (b.seconds, -b.zone))


class ThresholdEffort(BaseModel):
    model_config = _FROZEN

    date: dt.date
    pace: float = Field(description="Effort pace (s/unit)")
    duration_s: float
    average_hr: float | None = None
    pace_variability: float = Field(description="Coefficient of variation of split paces")
    score: float = Field(ge=0, le=1)
    elevation_gain_ft_per_unit: float | None = None


class DateRange(BaseModel):
    model_config = _FROZEN

    start: dt.date
    end: dt.date


class ThresholdEvidence(BaseModel):
    model_config = _FROZEN

    threshold_efforts: list[ThresholdEffort] = Field(default_factory=list)
    deflection_pace: float | None = None
    sustainability_boundary_pace: float | None = None
    workouts_analyzed: int = 0
    workouts_with_hr: int = 0
    date_range: DateRange | None = None


class VdotValidation(BaseModel):
    model_config = _FROZEN

    vdot_threshold_pace: float
    estimated_threshold_pace: float
    difference_s: float
    difference_pct: float
    agreement: Agreement
    source_vdot: float


class ThresholdEstimate(BaseModel):
    model_config = _FROZEN

    threshold_pace_s_per_unit: float | None = None
    confidence: float = Field(default=0.0, ge=0, le=1)
    method: ThresholdMethod
    tier: EvidenceTier | None = None
    evidence: ThresholdEvidence = Field(default_factory=ThresholdEvidence)
    vdot_validation: VdotValidation | None = None


class BestSegmentResult(BaseModel):
    model_config = _FROZEN

    start_offset_m: float
    end_offset_m: float
    distance_m: float
    elapsed_s: float
    adjusted_vdot: float
    raw_vdot: float


class BestSegmentOutcome(BaseModel):
    model_config = _FROZEN

    status: AnalysisStatus
    min_distance_m: float
    candidate_count: int = 0
    segment: BestSegmentResult | None = None


class WorkoutAnalysis(BaseModel):
    """Everything derived for one workout."""

    model_config = _FROZEN

    splits: SplitResult
    conditions: ConditionAdjustment
    effective_pace: EffectivePace | None = None
    vdot: VdotResult | None = None
    pace_zones: PaceLadderResult
    pace_distribution: ZoneDistribution | None = None
    hr_distribution: ZoneDistribution | None = None
    best_segment: BestSegmentOutcome | None = None
    threshold: ThresholdEstimate | None = None
    heat_index_f: float | None = None
    race_equivalents: dict[str, dict[str, float]] | None = None
