"""Independent threshold signals extracted from workout history.

Signals:
    1. Threshold efforts: steady, hard 20-40 minute runs (or blocks of
       splits inside longer runs) scored for how threshold-like they are.
    2. HR deflection: the pace where heart rate starts rising
       disproportionately, found by a two-segment fit over pace bins.
    3. Sustainability boundary: the fastest pace held continuously for the
       minimum duration, an upper bound on threshold speed.

All paces are seconds per unit distance.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import numpy as np
from scipy import stats

from run_analytics.config import FEET_PER_METER, MILE_M, ThresholdConfig, per_unit
from run_analytics.models import Split, ThresholdEffort, WorkoutRecord, WorkoutType
from run_analytics.streams.interpolation import interpolate_splits

logger = logging.getLogger(__name__)

EXCLUDED_TYPES = frozenset({WorkoutType.INTERVAL})

IDEAL_PACE_RATIO = 0.80
HARD_EFFORT_HR = 150.0
FLAT_GAIN_FT_PER_MILE = 30.0


@dataclass(frozen=True)
class ThresholdCandidate:
    """A threshold effort plus the data it was derived from."""

    effort: ThresholdEffort
    base_score: float  # score without the HR bonus
    splits: tuple[Split, ...] = field(default_factory=tuple)
    has_heart_rate: bool = False


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Population standard deviation over mean; 0 for fewer than 2 values."""
    if len(values) < 2:
        return 0.0
    arr = np.asarray(values, dtype=float)
    mean = float(arr.mean())
    if mean == 0:
        return 0.0
    return float(arr.std()) / mean


def record_splits(record: WorkoutRecord, unit_m: float) -> list[Split]:
    """Splits for a record, interpolating its stream when none are stored."""
    if record.splits:
        return list(record.splits)
    if record.stream is not None:
        return list(interpolate_splits(record.stream, unit_m).splits)
    return []


def easy_pace_reference(
    paces: Sequence[float], percentile: float, explicit: float | None = None
) -> float | None:
    """Easy-pace reference: the athlete's easy pace, else a slow-side percentile."""
    if explicit is not None:
        return explicit
    if not paces:
        return None
    ordered = sorted(paces)
    index = min(int(math.floor(len(ordered) * percentile)), len(ordered) - 1)
    return ordered[index]


def _gain_ft_per_mile(gain_m: float | None, distance_m: float) -> float | None:
    if gain_m is None or distance_m <= 0:
        return None
    return gain_m * FEET_PER_METER / (distance_m / MILE_M)


def score_effort(
    duration_s: float,
    pace_ratio: float,
    pace_cv: float,
    average_hr: float | None,
    gain_ft_per_mile: float | None,
) -> tuple[float, float]:
    """Score how threshold-like an effort is.

    Returns:
        (score, base_score): both in [0, 1]; ``base_score`` leaves out the
        heart-rate bonus.
    """
    score = 0.0

    # Duration sweet spot: 25-35 min, tapering toward the 20-40 edges
    duration_min = duration_s / 60.0
    if 25 <= duration_min <= 35:
        score += 0.3
    else:
        score += max(0.0, 0.3 - abs(duration_min - 30) * 0.02)

    score += max(0.0, 0.3 - abs(pace_ratio - IDEAL_PACE_RATIO) * 2.5)
    score += max(0.0, 0.2 - pace_cv * 4)

    if gain_ft_per_mile is None:
        score += 0.05
    elif gain_ft_per_mile < FLAT_GAIN_FT_PER_MILE:
        score += 0.1

    base = min(1.0, max(0.0, score))
    if average_hr is not None and average_hr > HARD_EFFORT_HR:
        score += 0.1
    return min(1.0, max(0.0, score)), base


def _weighted_split_hr(splits: Sequence[Split]) -> float | None:
    pairs = [(s.avg_heart_rate, s.avg_pace_s_per_unit) for s in splits]
    pairs = [(hr, w) for hr, w in pairs if hr is not None]
    if not pairs:
        return None
    total = sum(w for _, w in pairs)
    return sum(hr * w for hr, w in pairs) / total


def _block_gain(splits: Sequence[Split]) -> float | None:
    gains = [s.elevation_gain_m for s in splits]
    if any(g is None for g in gains):
        return None
    return float(sum(gains))


class CandidateFinder:
    """Identifies threshold efforts in analysable workouts."""

    def __init__(self, config: ThresholdConfig, unit_m: float = MILE_M) -> None:
        self.config = config
        self.unit_m = unit_m

    def _passes(self, pace_ratio: float, pace_cv: float, gain: float | None) -> bool:
        cfg = self.config
        if not cfg.min_pace_ratio_vs_easy <= pace_ratio <= cfg.max_pace_ratio_vs_easy:
            return False
        if pace_cv > cfg.max_pace_cv:
            return False
        return gain is None or gain <= cfg.max_gain_ft_per_mile

    def _make(
        self,
        record: WorkoutRecord,
        pace: float,
        duration_s: float,
        easy_pace: float,
        splits: Sequence[Split],
        average_hr: float | None,
        gain_ft_per_mile: float | None,
    ) -> ThresholdCandidate | None:
        pace_ratio = pace / easy_pace
        pace_cv = coefficient_of_variation([s.avg_pace_s_per_unit for s in splits])
        if not self._passes(pace_ratio, pace_cv, gain_ft_per_mile):
            return None

        score, base = score_effort(
            duration_s, pace_ratio, pace_cv, average_hr, gain_ft_per_mile
        )
        gain_per_unit = None
        if gain_ft_per_mile is not None:
            gain_per_unit = round(gain_ft_per_mile * self.unit_m / MILE_M, 1)
        effort = ThresholdEffort(
            date=record.date,
            pace=round(pace, 1),
            duration_s=round(duration_s, 1),
            average_hr=round(average_hr, 1) if average_hr is not None else None,
            pace_variability=round(pace_cv, 4),
            score=round(score, 3),
            elevation_gain_ft_per_unit=gain_per_unit,
        )
        return ThresholdCandidate(
            effort=effort,
            base_score=base,
            splits=tuple(splits),
            has_heart_rate=average_hr is not None,
        )

    def _whole_workout(
        self, record: WorkoutRecord, easy_pace: float, splits: list[Split]
    ) -> ThresholdCandidate | None:
        pace = record.pace_s_per_unit(self.unit_m)
        if pace is None:
            return None
        average_hr = record.avg_heart_rate
        if average_hr is None:
            average_hr = _weighted_split_hr(splits)
        gain = _gain_ft_per_mile(record.elevation_gain_m, record.distance_m)
        return self._make(
            record, pace, record.duration_s, easy_pace, splits, average_hr, gain
        )

    def _best_block(
        self, record: WorkoutRecord, easy_pace: float, splits: list[Split]
    ) -> ThresholdCandidate | None:
        """Best contiguous block of splits lasting 20-40 minutes."""
        cfg = self.config
        best: ThresholdCandidate | None = None
        for start in range(len(splits)):
            duration = 0.0
            for end in range(start, len(splits)):
                duration += splits[end].avg_pace_s_per_unit
                if duration > cfg.effort_max_duration_s:
                    break
                if duration < cfg.effort_min_duration_s:
                    continue
                block = splits[start : end + 1]
                pace = duration / len(block)
                distance = len(block) * self.unit_m
                candidate = self._make(
                    record,
                    pace,
                    duration,
                    easy_pace,
                    block,
                    _weighted_split_hr(block),
                    _gain_ft_per_mile(_block_gain(block), distance),
                )
                if candidate is None:
                    continue
                if best is None or (candidate.base_score, -candidate.effort.pace) > (
                    best.base_score,
                    -best.effort.pace,
                ):
                    best = candidate
        return best

    def find(
        self, records: Sequence[WorkoutRecord], easy_pace: float
    ) -> list[ThresholdCandidate]:
        """Extract threshold candidates, best first.

        Ordering uses the HR-independent base score, then recency, so the
        efforts chosen for fusion do not depend on HR availability.
        """
        cfg = self.config
        candidates: list[ThresholdCandidate] = []
        for record in records:
            if record.workout_type in EXCLUDED_TYPES:
                continue
            if record.duration_s < cfg.effort_min_duration_s:
                continue
            splits = record_splits(record, self.unit_m)
            if record.duration_s <= cfg.effort_max_duration_s:
                candidate = self._whole_workout(record, easy_pace, splits)
            elif splits:
                candidate = self._best_block(record, easy_pace, splits)
            else:
                candidate = None
            if candidate is not None:
                candidates.append(candidate)

        logger.debug(
            "Found %d threshold candidates in %d workouts",
            len(candidates),
            len(records),
        )
        candidates.sort(
            key=lambda c: (c.base_score, c.effort.date.toordinal(), -c.effort.pace),
            reverse=True,
        )
        return candidates


def collect_pace_hr_points(
    records: Sequence[WorkoutRecord], unit_m: float = MILE_M
) -> list[tuple[float, float]]:
    """(pace, heart rate) points from HR-bearing splits, else workout averages."""
    points: list[tuple[float, float]] = []
    for record in records:
        split_points = [
            (s.avg_pace_s_per_unit, s.avg_heart_rate)
            for s in record_splits(record, unit_m)
            if s.avg_heart_rate is not None
        ]
        if split_points:
            points.extend(split_points)
            continue
        pace = record.pace_s_per_unit(unit_m)
        if record.avg_heart_rate is not None and pace is not None:
            points.append((pace, record.avg_heart_rate))
    return points


def find_deflection_point(
    points: Sequence[tuple[float, float]],
    config: ThresholdConfig,
    unit_m: float = MILE_M,
) -> float | None:
    """Pace at which heart rate begins rising disproportionately.

    Points are binned by pace; for each split point a linear fit of HR
    against pace on the slow side is compared with one on the fast side.
    The split with the largest fast/slow slope ratio wins if that ratio is
    at least ``1 + deflection_sensitivity``.

    Returns:
        Deflection pace (bin center, s/unit) or None when no clear inflection.
    """
    if len(points) < config.min_hr_points:
        return None

    width = per_unit(config.pace_bin_width_s_per_mile, unit_m)
    paces = np.array([p for p, _ in points], dtype=float)
    hrs = np.array([hr for _, hr in points], dtype=float)
    index = np.floor((paces - paces.min()) / width).astype(int)

    bins = sorted(set(index.tolist()), reverse=True)  # slowest first
    if len(bins) < config.min_deflection_bins:
        return None
    centers = np.array([paces.min() + (b + 0.5) * width for b in bins])
    mean_hr = np.array([hrs[index == b].mean() for b in bins])

    best_ratio = 0.0
    best_at: int | None = None
    for split_at in range(2, len(bins) - 1):
        slow = stats.linregress(centers[: split_at + 1], mean_hr[: split_at + 1])
        fast = stats.linregress(centers[split_at:], mean_hr[split_at:])
        # HR rises as pace (s/unit) falls, so rates are negated slopes
        slow_rate = -float(slow.slope)
        fast_rate = -float(fast.slope)
        if slow_rate <= 0 or fast_rate <= 0:
            continue
        ratio = fast_rate / slow_rate
        if ratio > best_ratio:
            best_ratio = ratio
            best_at = split_at

    if best_at is None or best_ratio < 1.0 + config.deflection_sensitivity:
        logger.debug("No HR deflection (best slope ratio %.2f)", best_ratio)
        return None
    return round(float(centers[best_at]), 1)


def find_sustainability_boundary(
    split_runs: Iterable[Sequence[Split]],
    config: ThresholdConfig,
) -> float | None:
    """Fastest pace held continuously for the minimum sustainable duration.

    Each run is the split sequence of one effort or workout. Only runs with
    at least two splits contribute; a bare workout average says nothing
    about what was held continuously inside it.
    """
    fastest: float | None = None
    for splits in split_runs:
        if len(splits) < 2:
            continue
        durations = [s.avg_pace_s_per_unit for s in splits]
        for start in range(len(durations)):
            total = 0.0
            for end in range(start, len(durations)):
                total += durations[end]
                if total >= config.sustainable_duration_s:
                    pace = total / (end - start + 1)
                    if fastest is None or pace < fastest:
                        fastest = pace
                    break
    return round(fastest, 1) if fastest is not None else None
