"""Display helpers for paces and durations."""

from __future__ import annotations

from run_analytics.config import KM_M, MILE_M


def unit_label(unit_m: float) -> str:
    """Short label for a unit distance ("mi", "km" or "<n>m")."""
    if abs(unit_m - MILE_M) < 1e-6:
        return "mi"
    if abs(unit_m - KM_M) < 1e-6:
        return "km"
    return f"{unit_m:g}m"


def format_pace(pace_seconds_per_unit: float | None, unit_m: float = MILE_M) -> str:
    """Format pace as M:SS/<unit>.

    Args:
        pace_seconds_per_unit: Pace in seconds per unit distance
        unit_m: Unit distance in metres

    Returns:
        Formatted pace string (e.g., "7:30/mi"), or "-" when missing
    """
    if pace_seconds_per_unit is None:
        return "-"
    total = int(round(pace_seconds_per_unit))
    minutes, seconds = divmod(total, 60)
    return f"{minutes}:{seconds:02d}/{unit_label(unit_m)}"


def format_duration(seconds: float) -> str:
    """Format a duration as H:MM:SS, or M:SS under an hour."""
    total = int(round(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
