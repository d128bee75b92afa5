"""Exact per-unit-distance splits from irregular streams or lap summaries.

Watch-recorded laps rarely end exactly on a mile or kilometre, so splits are
rebuilt by walking cumulative distance and interpolating at each unit
boundary. When only lap summaries exist, lap totals are re-cut into units
in proportion to distance.
"""

from __future__ import annotations

import logging
import math
import statistics
from collections.abc import Sequence

from run_analytics.models import (
    AnalysisStatus,
    Lap,
    RawStreamSample,
    Split,
    SplitResult,
    Stream,
)
from run_analytics.streams.sanitizer import CleanStream, sanitize

logger = logging.getLogger(__name__)

_EPS = 1e-6

# Lap data coarser than this cannot be re-cut into meaningful unit splits
_COARSE_MEDIAN_UNITS = 1.25
_FINE_LAP_UNITS = 0.8


def _lerp(a: float, b: float, fraction: float) -> float:
    """Linear interpolation tolerant of a missing (NaN) endpoint."""
    if math.isnan(a):
        return b
    if math.isnan(b):
        return a
    return a + fraction * (b - a)


class _SplitAccumulator:
    """Running totals for the split currently being walked."""

    def __init__(self, start_time: float, start_altitude: float) -> None:
        self.start_time = start_time
        self.start_altitude = start_altitude
        self.hr_area = 0.0
        self.hr_time = 0.0
        self.gain = 0.0
        self.has_altitude = not math.isnan(start_altitude)
        self.last_altitude = start_altitude

    def add_segment(
        self, t0: float, t1: float, hr0: float, hr1: float, alt1: float
    ) -> None:
        dt = t1 - t0
        if dt > 0:
            if not math.isnan(hr0) and not math.isnan(hr1):
                self.hr_area += (hr0 + hr1) / 2.0 * dt
                self.hr_time += dt
            elif not (math.isnan(hr0) and math.isnan(hr1)):
                self.hr_area += (hr1 if math.isnan(hr0) else hr0) * dt
                self.hr_time += dt
        if not math.isnan(alt1):
            self.has_altitude = True
            if not math.isnan(self.last_altitude) and alt1 > self.last_altitude:
                self.gain += alt1 - self.last_altitude
            self.last_altitude = alt1

    def close(
        self, unit_index: int, unit_m: float, end_time: float, end_altitude: float
    ) -> Split:
        avg_hr = self.hr_area / self.hr_time if self.hr_time > 0 else None
        delta = None
        if not math.isnan(end_altitude) and not math.isnan(self.start_altitude):
            delta = end_altitude - self.start_altitude
        return Split(
            unit_index=unit_index,
            distance_m=unit_index * unit_m,
            elapsed_s=end_time,
            avg_pace_s_per_unit=end_time - self.start_time,
            avg_heart_rate=avg_hr,
            elevation_delta_m=delta,
            elevation_gain_m=self.gain if self.has_altitude else None,
        )


def splits_from_clean(clean: CleanStream, unit_m: float) -> list[Split]:
    """Walk a sanitised stream and emit one split per crossed unit boundary."""
    if len(clean) < 2:
        return []

    d = clean.distance
    t = clean.time
    hr = clean.heart_rate
    alt = clean.altitude

    splits: list[Split] = []
    unit_index = 1
    boundary = unit_m
    acc = _SplitAccumulator(float(t[0]), float(alt[0]))

    for i in range(1, len(clean)):
        d0, d1 = float(d[i - 1]), float(d[i])
        t0, t1 = float(t[i - 1]), float(t[i])
        hr0, hr1 = float(hr[i - 1]), float(hr[i])
        alt0, alt1 = float(alt[i - 1]), float(alt[i])

        if d1 - d0 <= _EPS:
            # Stalled GPS: time passes inside the current split
            acc.add_segment(t0, t1, hr0, hr1, alt1)
            continue

        seg_t, seg_hr = t0, hr0
        while boundary <= d1 + _EPS:
            fraction = min(max((boundary - d0) / (d1 - d0), 0.0), 1.0)
            t_b = t0 + fraction * (t1 - t0)
            hr_b = _lerp(hr0, hr1, fraction)
            alt_b = _lerp(alt0, alt1, fraction)

            acc.add_segment(seg_t, t_b, seg_hr, hr_b, alt_b)
            splits.append(acc.close(unit_index, unit_m, t_b, alt_b))

            acc = _SplitAccumulator(t_b, alt_b)
            seg_t, seg_hr = t_b, hr_b
            unit_index += 1
            boundary = unit_index * unit_m

        acc.add_segment(seg_t, t1, seg_hr, hr1, alt1)

    return splits


def interpolate_splits(
    samples: Sequence[RawStreamSample] | Stream,
    unit_m: float,
) -> SplitResult:
    """Convert raw samples into exact per-unit splits.

    Each time cumulative distance crosses a multiple of ``unit_m``, elapsed
    time, heart rate and altitude are linearly interpolated between the
    bracketing samples. The trailing partial unit is dropped.

    Args:
        samples: Raw samples or a Stream.
        unit_m: Unit distance in metres (e.g. 1609.34).

    Returns:
        SplitResult with status ``insufficient_stream`` when fewer than two
        usable samples or no full unit exist.

    Raises:
        ValueError: If unit_m is not positive.
    """
    if unit_m <= 0:
        raise ValueError(f"unit_m must be positive, got {unit_m}")

    clean = sanitize(samples)
    splits = splits_from_clean(clean, unit_m)
    if not splits:
        logger.debug(
            "No full unit in stream (%d points, %.1f m)", len(clean), clean.total_distance
        )
        return SplitResult(status=AnalysisStatus.INSUFFICIENT_STREAM, unit_m=unit_m)

    return SplitResult(status=AnalysisStatus.OK, unit_m=unit_m, splits=splits)


def _is_fine_grained(laps: Sequence[Lap], unit_m: float) -> bool:
    units = sorted(lap.distance_m / unit_m for lap in laps)
    if not units:
        return False
    median = statistics.median(units)
    return median <= _COARSE_MEDIAN_UNITS or units[0] <= _FINE_LAP_UNITS


def interpolate_laps(laps: Sequence[Lap], unit_m: float) -> SplitResult:
    """Re-cut lap summaries into per-unit splits.

    Each lap's duration, elevation gain and (distance-weighted) heart rate
    are allocated to units in proportion to the distance the lap contributes
    to each unit. Coarse lap data (median lap over 1.25 units with no lap of
    0.8 units or less) is rejected.

    Args:
        laps: Lap summaries in recorded order.
        unit_m: Unit distance in metres.

    Returns:
        SplitResult; ``elevation_delta_m`` is never known from laps.
    """
    if unit_m <= 0:
        raise ValueError(f"unit_m must be positive, got {unit_m}")

    if not _is_fine_grained(laps, unit_m):
        logger.debug("Lap data too coarse for unit splits (%d laps)", len(laps))
        return SplitResult(status=AnalysisStatus.INSUFFICIENT_STREAM, unit_m=unit_m)

    has_gain = any(lap.elevation_gain_m is not None for lap in laps)
    splits: list[Split] = []
    unit_index = 1
    elapsed = 0.0
    unit_distance = 0.0
    unit_time = 0.0
    hr_weighted = 0.0
    hr_weight = 0.0
    gain = 0.0

    for lap in laps:
        pace_s_per_m = lap.pace_s_per_m
        remaining = lap.distance_m
        while remaining > _EPS:
            take = min(remaining, max(unit_m - unit_distance, 0.0))
            unit_distance += take
            unit_time += take * pace_s_per_m
            if lap.avg_heart_rate is not None and lap.avg_heart_rate > 0:
                hr_weighted += lap.avg_heart_rate * take
                hr_weight += take
            if lap.elevation_gain_m:
                gain += lap.elevation_gain_m * take / lap.distance_m
            remaining -= take

            if unit_distance >= unit_m - _EPS:
                elapsed += unit_time
                splits.append(
                    Split(
                        unit_index=unit_index,
                        distance_m=unit_index * unit_m,
                        elapsed_s=elapsed,
                        avg_pace_s_per_unit=unit_time,
                        avg_heart_rate=hr_weighted / hr_weight if hr_weight > 0 else None,
                        elevation_gain_m=gain if has_gain else None,
                    )
                )
                unit_index += 1
                unit_distance = unit_time = hr_weighted = hr_weight = gain = 0.0

    if not splits:
        return SplitResult(status=AnalysisStatus.INSUFFICIENT_STREAM, unit_m=unit_m)
    return SplitResult(status=AnalysisStatus.OK, unit_m=unit_m, splits=splits)
