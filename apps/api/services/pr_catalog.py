"""
PR Catalog

Default PR definitions seeded into a user's catalog the first time PR
processing runs for them. Users may later deactivate or add definitions;
the engine only ever reads the active ones.

Time-based PRs (metric_type="time") are fixed-distance pieces where the
fastest time wins. Distance-based PRs (metric_type="distance") are
fixed-time pieces where the longest distance wins.
"""
from typing import Iterable, List

from services.pr_types import PRDefinition


DEFAULT_PR_DEFINITIONS = [
    # Fixed-distance rowing (time is the metric)
    {"activity_key": "100m_row", "activity_name": "100m Row", "sport": "rower", "metric_type": "time", "target_distance": 100, "target_time": None, "display_order": 1},
    {"activity_key": "500m_row", "activity_name": "500m Row", "sport": "rower", "metric_type": "time", "target_distance": 500, "target_time": None, "display_order": 2},
    {"activity_key": "1k_row", "activity_name": "1K Row", "sport": "rower", "metric_type": "time", "target_distance": 1000, "target_time": None, "display_order": 3},
    {"activity_key": "2k_row", "activity_name": "2K Row", "sport": "rower", "metric_type": "time", "target_distance": 2000, "target_time": None, "display_order": 4},
    {"activity_key": "5k_row", "activity_name": "5K Row", "sport": "rower", "metric_type": "time", "target_distance": 5000, "target_time": None, "display_order": 5},
    {"activity_key": "6k_row", "activity_name": "6K Row", "sport": "rower", "metric_type": "time", "target_distance": 6000, "target_time": None, "display_order": 6},
    {"activity_key": "10k_row", "activity_name": "10K Row", "sport": "rower", "metric_type": "time", "target_distance": 10000, "target_time": None, "display_order": 7},
    {"activity_key": "half_marathon_row", "activity_name": "Half Marathon Row", "sport": "rower", "metric_type": "time", "target_distance": 21097, "target_time": None, "display_order": 8},
    {"activity_key": "marathon_row", "activity_name": "Marathon Row", "sport": "rower", "metric_type": "time", "target_distance": 42195, "target_time": None, "display_order": 9},

    # Fixed-time rowing (distance is the metric), target_time in seconds
    {"activity_key": "1min_row", "activity_name": "1min Row", "sport": "rower", "metric_type": "distance", "target_distance": None, "target_time": 60, "display_order": 10},
    {"activity_key": "4min_row", "activity_name": "4min Row", "sport": "rower", "metric_type": "distance", "target_distance": None, "target_time": 240, "display_order": 11},
    {"activity_key": "30min_row", "activity_name": "30min Row", "sport": "rower", "metric_type": "distance", "target_distance": None, "target_time": 1800, "display_order": 12},
    {"activity_key": "60min_row", "activity_name": "60min Row", "sport": "rower", "metric_type": "distance", "target_distance": None, "target_time": 3600, "display_order": 13},

    # BikeErg
    {"activity_key": "500m_bike", "activity_name": "500m Bike", "sport": "bike", "metric_type": "time", "target_distance": 500, "target_time": None, "display_order": 14},
    {"activity_key": "1k_bike", "activity_name": "1K Bike", "sport": "bike", "metric_type": "time", "target_distance": 1000, "target_time": None, "display_order": 15},
    {"activity_key": "4k_bike", "activity_name": "4K Bike", "sport": "bike", "metric_type": "time", "target_distance": 4000, "target_time": None, "display_order": 16},

    # SkiErg
    {"activity_key": "500m_ski", "activity_name": "500m Ski", "sport": "skierg", "metric_type": "time", "target_distance": 500, "target_time": None, "display_order": 17},
    {"activity_key": "1k_ski", "activity_name": "1K Ski", "sport": "skierg", "metric_type": "time", "target_distance": 1000, "target_time": None, "display_order": 18},
]


def default_definitions() -> List[PRDefinition]:
    """Fresh PRDefinition objects for the default catalog, all active."""
    return [PRDefinition.from_dict({**d, "is_active": True}) for d in DEFAULT_PR_DEFINITIONS]


def active_definitions(definitions: Iterable[PRDefinition]) -> List[PRDefinition]:
    """Active definitions in display order (activity_key breaks display_order ties)."""
    return sorted(
        (d for d in definitions if d.is_active),
        key=lambda d: (d.display_order, d.activity_key),
    )
