"""Zone distribution calculator: time spent in each pace or heart-rate zone.

One accumulation path serves both modes (pace / heart rate) and both
granularities (sample pairs of a stream / whole laps). Stream mode is
vectorised with numpy over consecutive sample pairs.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from run_analytics.config import DEFAULT_NEAR_STOP_PACE_S_PER_MILE, MILE_M, per_unit
from run_analytics.models import (
    AnalysisStatus,
    Granularity,
    HRZoneBoundaries,
    Lap,
    PaceZoneBoundaries,
    RawStreamSample,
    Stream,
    ZoneBucket,
    ZoneDistribution,
    ZoneMode,
)
from run_analytics.streams.sanitizer import sanitize
from run_analytics.zones.classifier import (
    HR_ZONE_LABELS,
    PACE_ZONE_LABELS,
    classify_many,
)

logger = logging.getLogger(__name__)


def _build(
    mode: ZoneMode,
    granularity: Granularity,
    zones: np.ndarray,
    seconds: np.ndarray,
    labels: Sequence[str],
    excluded_seconds: float,
) -> ZoneDistribution:
    totals = np.bincount(zones.astype(int), weights=seconds, minlength=len(labels))
    grand_total = float(totals.sum())

    buckets = []
    for zone, label in enumerate(labels):
        zone_seconds = float(totals[zone])
        pct = round(zone_seconds / grand_total * 100.0, 1) if grand_total > 0 else 0.0
        buckets.append(
            ZoneBucket(
                zone=zone,
                label=label,
                seconds=round(zone_seconds, 1),
                percentage=pct,
            )
        )

    return ZoneDistribution(
        mode=mode,
        granularity=granularity,
        status=AnalysisStatus.OK,
        buckets=buckets,
        total_seconds=round(grand_total, 1),
        excluded_seconds=round(excluded_seconds, 1),
    )


def _empty(
    mode: ZoneMode, granularity: Granularity, status: AnalysisStatus
) -> ZoneDistribution:
    return ZoneDistribution(mode=mode, granularity=granularity, status=status)


class ZoneDistributionCalculator:
    """Accumulates time-in-zone for pace and heart-rate zones."""

    def __init__(
        self,
        unit_m: float = MILE_M,
        near_stop_pace_s_per_mile: float = DEFAULT_NEAR_STOP_PACE_S_PER_MILE,
    ) -> None:
        if unit_m <= 0:
            raise ValueError(f"unit_m must be positive, got {unit_m}")
        self.unit_m = unit_m
        self.near_stop_pace_s = per_unit(near_stop_pace_s_per_mile, unit_m)

    def pace_from_stream(
        self,
        samples: Sequence[RawStreamSample] | Stream,
        boundaries: PaceZoneBoundaries,
    ) -> ZoneDistribution:
        """Pace zone time from consecutive sample pairs.

        Pairs without forward motion or slower than the near-stop cutoff are
        left out of zone totals and reported as ``excluded_seconds``.
        """
        clean = sanitize(samples)
        if len(clean) < 2:
            return _empty(
                ZoneMode.PACE, Granularity.SAMPLE, AnalysisStatus.INSUFFICIENT_STREAM
            )

        dd = np.diff(clean.distance)
        dt = np.diff(clean.time)
        moving = dd > 0
        pace = np.full(dd.shape, np.inf)
        np.divide(dt * self.unit_m, dd, out=pace, where=moving)
        valid = moving & (pace <= self.near_stop_pace_s)

        excluded = float(dt[~valid].sum())
        if excluded:
            logger.debug("Excluded %.0fs of stopped or near-stopped time", excluded)

        zones = classify_many(pace[valid], boundaries.lower_bounds())
        return _build(
            ZoneMode.PACE,
            Granularity.SAMPLE,
            zones,
            dt[valid],
            PACE_ZONE_LABELS,
            excluded,
        )

    def pace_from_laps(
        self, laps: Sequence[Lap], boundaries: PaceZoneBoundaries
    ) -> ZoneDistribution:
        """Pace zone time with each lap classified once by its average pace."""
        if not laps:
            return _empty(
                ZoneMode.PACE, Granularity.LAP, AnalysisStatus.INSUFFICIENT_DATA
            )

        paces = np.array([lap.pace_s_per_m * self.unit_m for lap in laps])
        seconds = np.array([lap.duration_s for lap in laps])
        zones = classify_many(paces, boundaries.lower_bounds())
        return _build(
            ZoneMode.PACE, Granularity.LAP, zones, seconds, PACE_ZONE_LABELS, 0.0
        )

    def hr_from_stream(
        self,
        samples: Sequence[RawStreamSample] | Stream,
        hr_zones: HRZoneBoundaries,
    ) -> ZoneDistribution:
        """Heart-rate zone time, using the HR at the end of each sample pair."""
        clean = sanitize(samples)
        if len(clean) < 2:
            return _empty(
                ZoneMode.HEART_RATE,
                Granularity.SAMPLE,
                AnalysisStatus.INSUFFICIENT_STREAM,
            )
        if not clean.has_heart_rate:
            return _empty(
                ZoneMode.HEART_RATE,
                Granularity.SAMPLE,
                AnalysisStatus.INSUFFICIENT_DATA,
            )

        dt = np.diff(clean.time)
        hr_end = clean.heart_rate[1:]
        valid = ~np.isnan(hr_end)
        excluded = float(dt[~valid].sum())

        zones = classify_many(hr_end[valid], hr_zones.lower_bounds)
        return _build(
            ZoneMode.HEART_RATE,
            Granularity.SAMPLE,
            zones,
            dt[valid],
            HR_ZONE_LABELS,
            excluded,
        )

    def hr_from_laps(
        self, laps: Sequence[Lap], hr_zones: HRZoneBoundaries
    ) -> ZoneDistribution:
        """Heart-rate zone time with each lap classified by its average HR."""
        with_hr = [lap for lap in laps if lap.avg_heart_rate is not None]
        if not with_hr:
            return _empty(
                ZoneMode.HEART_RATE, Granularity.LAP, AnalysisStatus.INSUFFICIENT_DATA
            )

        excluded = sum(lap.duration_s for lap in laps if lap.avg_heart_rate is None)
        hrs = np.array([lap.avg_heart_rate for lap in with_hr], dtype=float)
        seconds = np.array([lap.duration_s for lap in with_hr])
        zones = classify_many(hrs, hr_zones.lower_bounds)
        return _build(
            ZoneMode.HEART_RATE,
            Granularity.LAP,
            zones,
            seconds,
            HR_ZONE_LABELS,
            excluded,
        )
