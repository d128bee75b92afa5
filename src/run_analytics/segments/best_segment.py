"""Best-segment scorer: the strongest sustained effort hidden inside a run.

Every contiguous window of at least the minimum distance is a candidate time
trial, scored by condition-adjusted VDOT. Scanning all O(n^2) windows is too
slow for marathon-length streams, so windows are restricted to a geometric
ladder of target distances (min x 1.25^k). For each target, the end of the
shortest window reaching it is found for every start with one vectorised
``searchsorted`` pass over the prefix distance array, giving
O(n log n * log(D / min)) overall.

Ties on adjusted VDOT (compared at 0.1 precision) go to the shorter elapsed
time, then to the earlier start.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from run_analytics.conditions.model import (
    ELEVATION_S_PER_MILE_PER_100FT,
    ConditionModel,
)
from run_analytics.config import (
    DEFAULT_MIN_SEGMENT_DISTANCE_M,
    FEET_PER_METER,
    MILE_M,
    per_unit,
)
from run_analytics.models import (
    AnalysisStatus,
    BestSegmentOutcome,
    BestSegmentResult,
    RawStreamSample,
    Stream,
    Weather,
)
from run_analytics.streams.sanitizer import sanitize
from run_analytics.vdot.calculator import (
    MAX_VDOT,
    MIN_CORRECTED_TIME_FRACTION,
    MIN_VDOT,
    VDOTCalculator,
)

logger = logging.getLogger(__name__)

LADDER_RATIO = 1.25
# Plausible whole-window pace, seconds per mile
MIN_SEGMENT_PACE_S_PER_MILE = 180.0
MAX_SEGMENT_PACE_S_PER_MILE = 1200.0


def best_window(score: np.ndarray, elapsed: np.ndarray, start_m: np.ndarray) -> int:
    """Index of the highest score, then the shortest elapsed, then the earliest start."""
    return int(np.lexsort((start_m, elapsed, -score))[0])


class BestSegmentScorer:
    """Finds the contiguous window with the highest adjusted VDOT."""

    def __init__(
        self,
        unit_m: float = MILE_M,
        min_distance_m: float = DEFAULT_MIN_SEGMENT_DISTANCE_M,
    ) -> None:
        if unit_m <= 0:
            raise ValueError(f"unit_m must be positive, got {unit_m}")
        if min_distance_m <= 0:
            raise ValueError(f"min_distance_m must be positive, got {min_distance_m}")
        self.unit_m = unit_m
        self.min_distance_m = min_distance_m
        self.conditions = ConditionModel(unit_m)

    def target_distances(self, min_distance_m: float, limit_m: float) -> list[float]:
        """Geometric ladder of window lengths from the minimum up to the limit."""
        targets = []
        target = min_distance_m
        while target <= limit_m + 1e-9:
            targets.append(target)
            target *= LADDER_RATIO
        return targets

    def _elevation_adjust(
        self, gain_m: np.ndarray, distance_m: np.ndarray
    ) -> np.ndarray:
        gain_ft_per_mile = gain_m * FEET_PER_METER / (distance_m / MILE_M)
        per_mile = gain_ft_per_mile / 100.0 * ELEVATION_S_PER_MILE_PER_100FT
        return np.round(per_unit(per_mile, self.unit_m), 1)

    def find(
        self,
        samples: Sequence[RawStreamSample] | Stream,
        weather: Weather | None = None,
        min_distance_m: float | None = None,
        max_distance_m: float | None = None,
    ) -> BestSegmentOutcome:
        """Find the best segment of a stream.

        Args:
            samples: Raw samples or a Stream.
            weather: Conditions applied uniformly to every window.
            min_distance_m: Minimum window length (defaults to the scorer's).
            max_distance_m: Optional maximum window length.

        Returns:
            BestSegmentOutcome: ``insufficient_stream`` when the stream is
            shorter than the minimum, ``invalid_range`` when no window has a
            plausible pace and VDOT.
        """
        min_distance = min_distance_m or self.min_distance_m
        clean = sanitize(samples)
        if len(clean) < 2 or clean.total_distance < min_distance:
            return BestSegmentOutcome(
                status=AnalysisStatus.INSUFFICIENT_STREAM, min_distance_m=min_distance
            )

        d = clean.distance
        t = clean.time
        gain = clean.cumulative_gain()
        weather_s = self.conditions.weather_adjustment(weather)
        min_pace = per_unit(MIN_SEGMENT_PACE_S_PER_MILE, self.unit_m)
        max_pace = per_unit(MAX_SEGMENT_PACE_S_PER_MILE, self.unit_m)

        limit = clean.total_distance
        if max_distance_m is not None:
            limit = min(limit, max_distance_m)

        best_key: tuple[float, float, float] | None = None
        best: BestSegmentResult | None = None
        candidate_count = 0

        for target in self.target_distances(min_distance, limit):
            start = np.arange(d.size)
            end = np.searchsorted(d, d + target - 1e-9, side="left")
            reachable = end < d.size
            start, end = start[reachable], end[reachable]
            if start.size == 0:
                continue

            distance = d[end] - d[start]
            elapsed = t[end] - t[start]
            moving = elapsed > 0
            start, end, distance, elapsed = (
                start[moving],
                end[moving],
                distance[moving],
                elapsed[moving],
            )
            if start.size == 0:
                continue

            pace = elapsed / distance * self.unit_m
            window_gain = gain[end] - gain[start]
            total_adjust = weather_s + self._elevation_adjust(window_gain, distance)
            corrected = np.maximum(
                elapsed - total_adjust * distance / self.unit_m,
                elapsed * MIN_CORRECTED_TIME_FRACTION,
            )
            raw = VDOTCalculator.vdot_from_race_array(distance, elapsed)
            adjusted = VDOTCalculator.vdot_from_race_array(distance, corrected)

            valid = (
                (pace >= min_pace)
                & (pace <= max_pace)
                & (raw >= MIN_VDOT)
                & (raw <= MAX_VDOT)
                & (adjusted >= MIN_VDOT)
                & (adjusted <= MAX_VDOT)
            )
            count = int(valid.sum())
            candidate_count += count
            if count == 0:
                continue

            s, e, el = start[valid], end[valid], elapsed[valid]
            score = np.round(adjusted[valid], 1)
            k = best_window(score, el, d[s])
            key = (-float(score[k]), float(el[k]), float(d[s[k]]))
            if best_key is None or key < best_key:
                i, j = int(s[k]), int(e[k])
                best_key = key
                best = BestSegmentResult(
                    start_offset_m=round(float(d[i]), 1),
                    end_offset_m=round(float(d[j]), 1),
                    distance_m=round(float(d[j] - d[i]), 1),
                    elapsed_s=round(float(t[j] - t[i]), 1),
                    adjusted_vdot=float(score[k]),
                    raw_vdot=round(float(raw[valid][k]), 1),
                )

        if best is None:
            logger.info("No plausible segment among %d points", len(clean))
            return BestSegmentOutcome(
                status=AnalysisStatus.INVALID_RANGE,
                min_distance_m=min_distance,
                candidate_count=candidate_count,
            )

        return BestSegmentOutcome(
            status=AnalysisStatus.OK,
            min_distance_m=min_distance,
            candidate_count=candidate_count,
            segment=best,
        )
