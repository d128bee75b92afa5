"""Single zone classification primitive shared by pace and heart-rate zones.

Boundaries are ascending lower bounds. A value belongs to the last zone
whose lower bound it reaches; values below the first bound fall into zone 0.
Pace ladders (seconds per unit, fastest first) are classified against
`PaceZoneBoundaries.lower_bounds()`: Interval is faster than the interval
rung, Threshold spans the interval rung up to the tempo rung, and each
slower zone spans its rung up to the next one.
"""

from __future__ import annotations

import bisect
from collections.abc import Sequence

import numpy as np

from run_analytics.config import DEFAULT_MAX_HR
from run_analytics.models import PACE_ZONE_NAMES, HRZoneBoundaries

HR_ZONE_FRACTIONS = (0.0, 0.6, 0.7, 0.8, 0.9)
HR_ZONE_LABELS = ("Recovery", "Aerobic", "Tempo", "Threshold", "VO2max")
PACE_ZONE_LABELS = tuple(name.capitalize() for name in PACE_ZONE_NAMES)


def classify(value: float, boundaries: Sequence[float]) -> int:
    """Return the zone index of ``value`` against ascending lower bounds."""
    return max(bisect.bisect_right(boundaries, value) - 1, 0)


def classify_many(values: np.ndarray, boundaries: Sequence[float]) -> np.ndarray:
    """Vectorised ``classify`` over an array of values."""
    idx = np.searchsorted(np.asarray(boundaries, dtype=float), values, side="right") - 1
    return np.clip(idx, 0, None)


def hr_zone_boundaries(
    max_hr: float | None = None,
    age: int | None = None,
    default_max_hr: int = DEFAULT_MAX_HR,
) -> HRZoneBoundaries:
    """Five HR zone lower bounds from max HR.

    Max HR comes from the recorded value if present, else 220 - age, else
    the configured default.

    Args:
        max_hr: Recorded or athlete-provided max HR (bpm).
        age: Athlete age in years.
        default_max_hr: Fallback max HR.

    Returns:
        HRZoneBoundaries with ascending lower bounds.
    """
    if max_hr is not None and max_hr > 0:
        resolved, source = float(max_hr), "provided"
    elif age is not None and age > 0:
        resolved, source = float(220 - age), "age"
    else:
        resolved, source = float(default_max_hr), "default"

    return HRZoneBoundaries(
        lower_bounds=[round(resolved * f, 1) for f in HR_ZONE_FRACTIONS],
        max_hr=resolved,
        max_hr_source=source,
    )
