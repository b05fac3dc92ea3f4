"""
PR matching and derived metrics.

Pure functions only: no I/O, no clock. Everything here must be deterministic
so scope assignment is reproducible.
"""
from datetime import datetime, timezone
from typing import Optional

from services.pr_types import MetricType, PRDefinition, WorkoutResult


def matches(result: WorkoutResult, definition: PRDefinition) -> bool:
    """
    Does this result qualify for this PR definition?

    Exact equality, no tolerance: erg results are machine-measured, so a 2K
    piece is exactly 2000m and a 30 minute piece is exactly 1800s.
    """
    if result.sport != definition.sport:
        return False

    if definition.metric_type == MetricType.TIME and definition.target_distance is not None:
        return result.distance == definition.target_distance

    if definition.metric_type == MetricType.DISTANCE and definition.target_time is not None:
        return result.time == definition.target_time

    return False


def metric_value(result: WorkoutResult, definition: PRDefinition) -> float:
    if definition.metric_type == MetricType.TIME:
        return result.time
    return result.distance


def partition_timestamp(value: datetime) -> datetime:
    """
    The single timestamp interpretation used for season and year partitions.

    Aware datetimes are converted to UTC; naive ones (Concept2 wall-clock
    strings) are taken as received.
    """
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def season_identifier(value: datetime) -> str:
    """
    Seasons run May through April and are labeled by their end year.

    2024-04-15 -> "2024", 2024-05-01 -> "2025", 2025-01-01 -> "2025"
    """
    ts = partition_timestamp(value)
    # May (5) onwards belongs to the season ending next calendar year
    season_end_year = ts.year if ts.month < 5 else ts.year + 1
    return str(season_end_year)


def partition_year(value: datetime) -> str:
    return str(partition_timestamp(value).year)


def calculate_pace_per_500m(time_seconds: float, distance_meters: float) -> Optional[float]:
    """Pace in seconds per 500m, rounded to a tenth. None for non-positive distance."""
    if not distance_meters or distance_meters <= 0:
        return None
    return round(time_seconds * 500 / distance_meters, 1)
