"""Monotonic point extraction from raw activity samples.

Recorded streams routinely contain GPS glitches: distance jumping backwards,
repeated samples, heart-rate dropouts. Everything downstream assumes
non-decreasing distance and time, so samples breaking that are dropped here
rather than raising.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from run_analytics.models import RawStreamSample, Stream

logger = logging.getLogger(__name__)

MIN_VALID_HR = 30.0
MAX_VALID_HR = 250.0
_EPS = 1e-6


@dataclass(frozen=True)
class CleanStream:
    """Sanitised stream as parallel numpy arrays.

    Missing heart rate and altitude values are NaN. Distance and time start
    at zero and never decrease.
    """

    distance: np.ndarray
    time: np.ndarray
    heart_rate: np.ndarray
    altitude: np.ndarray
    dropped: int = 0

    def __len__(self) -> int:
        return int(self.distance.size)

    @property
    def total_distance(self) -> float:
        return float(self.distance[-1]) if len(self) else 0.0

    @property
    def total_time(self) -> float:
        return float(self.time[-1]) if len(self) else 0.0

    @property
    def has_heart_rate(self) -> bool:
        return bool(np.any(~np.isnan(self.heart_rate)))

    @property
    def has_altitude(self) -> bool:
        return bool(np.any(~np.isnan(self.altitude)))

    def cumulative_gain(self) -> np.ndarray:
        """Prefix sums of positive altitude change (m), one per point.

        Missing altitude is forward-filled; a leading gap takes the first
        known value. All zeros when the stream has no altitude.
        """
        if not self.has_altitude:
            return np.zeros_like(self.distance)
        known = ~np.isnan(self.altitude)
        idx = np.where(known, np.arange(self.altitude.size), 0)
        np.maximum.accumulate(idx, out=idx)
        alt = self.altitude[idx]
        first_known = np.flatnonzero(known)[0]
        alt[:first_known] = alt[first_known]
        rises = np.maximum(np.diff(alt), 0.0)
        return np.concatenate(([0.0], np.cumsum(rises)))


def _clean_hr(value: float | None) -> float:
    if value is None or not math.isfinite(value):
        return math.nan
    if not MIN_VALID_HR <= value <= MAX_VALID_HR:
        return math.nan
    return float(value)


def _clean_altitude(value: float | None) -> float:
    if value is None or not math.isfinite(value):
        return math.nan
    return float(value)


def sanitize(samples: Sequence[RawStreamSample] | Stream) -> CleanStream:
    """Extract monotonic points from raw samples.

    Drops samples with non-finite distance or time, samples whose distance
    or time decreases relative to the last kept sample, and exact
    duplicates. Implausible heart rate and non-finite altitude become NaN.
    Offsets are re-based so the first kept sample sits at distance 0 and
    time 0.

    Args:
        samples: Row samples or a column-oriented Stream.

    Returns:
        CleanStream; may hold fewer than two points.
    """
    rows = samples.to_samples() if isinstance(samples, Stream) else samples

    distance: list[float] = []
    time: list[float] = []
    heart_rate: list[float] = []
    altitude: list[float] = []
    dropped = 0

    for sample in rows:
        d = sample.distance_m
        t = sample.elapsed_s
        if not (math.isfinite(d) and math.isfinite(t)):
            dropped += 1
            continue
        if distance:
            last_d = distance[-1]
            last_t = time[-1]
            if d < last_d - _EPS or t < last_t - _EPS:
                dropped += 1
                continue
            if abs(d - last_d) <= _EPS and abs(t - last_t) <= _EPS:
                dropped += 1
                continue
        distance.append(d)
        time.append(t)
        heart_rate.append(_clean_hr(sample.heart_rate_bpm))
        altitude.append(_clean_altitude(sample.altitude_m))

    if dropped:
        logger.debug("Dropped %d non-monotonic or non-finite samples", dropped)

    d_arr = np.asarray(distance, dtype=float)
    t_arr = np.asarray(time, dtype=float)
    if d_arr.size:
        d_arr = np.maximum.accumulate(np.maximum(d_arr - d_arr[0], 0.0))
        t_arr = np.maximum.accumulate(np.maximum(t_arr - t_arr[0], 0.0))

    return CleanStream(
        distance=d_arr,
        time=t_arr,
        heart_rate=np.asarray(heart_rate, dtype=float),
        altitude=np.asarray(altitude, dtype=float),
        dropped=dropped,
    )
