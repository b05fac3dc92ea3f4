"""
PR Scope Assignment

Given every PR event of one activity (e.g. all "2k_row" events for a user),
decide which event holds each scope:

- "all-time"            best event overall
- "season-<end year>"   best event per May-April season
- "year-<yyyy>"         best event per calendar year

Scope is a property of the activity's full history, so the input must be ALL
events for the activity, and every event's scope list is rewritten, including
events that lose a scope they previously held.

Tie-break: events are reduced in ascending (achieved_at, results_id) order and
a later candidate only replaces the current best on strict improvement, so the
earliest-achieved event keeps a tied record.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Tuple

from services.pr_matching import partition_timestamp, partition_year
from services.pr_types import MetricType, PREvent, PREventKey

logger = logging.getLogger(__name__)

ALL_TIME_SCOPE = "all-time"


def season_scope(season_id: str) -> str:
    return f"season-{season_id}"


def year_scope(year: str) -> str:
    return f"year-{year}"


def result_id_order(results_id: str) -> Tuple[int, int, str]:
    """Sort key for result ids: numeric ids by value, then any non-numeric ids as text."""
    if results_id.isdigit():
        return (0, int(results_id), "")
    return (1, 0, results_id)


def chronological(events: Iterable[PREvent]) -> List[PREvent]:
    """Explicit reduction order; storage iteration order is never relied on."""
    return sorted(
        events,
        key=lambda e: (partition_timestamp(e.achieved_at), result_id_order(e.results_id)),
    )


def is_better_fn(metric_type: MetricType) -> Callable[[float, float], bool]:
    """Strict improvement test: lower wins for time, higher wins otherwise."""
    if metric_type == MetricType.TIME:
        return lambda candidate, best: candidate < best
    return lambda candidate, best: candidate > best


def best_by_partition(
    events: List[PREvent],
    partition_key: Callable[[PREvent], Hashable],
    is_better: Callable[[float, float], bool],
) -> Dict[Hashable, PREvent]:
    """
    Partition events, then reduce each partition to its best event.

    `events` must already be in reduction order (see chronological()).
    """
    winners: Dict[Hashable, PREvent] = {}
    for event in events:
        key = partition_key(event)
        current = winners.get(key)
        if current is None or is_better(event.metric_value, current.metric_value):
            winners[key] = event
    return winners


def compute_scopes(events: Iterable[PREvent]) -> Dict[PREventKey, List[str]]:
    """
    Scope labels for every event of one activity.

    Returns a mapping covering every input event; events that hold no record
    map to []. Labels are ordered all-time, season, year.
    """
    ordered = chronological(events)
    if not ordered:
        return {}

    activity_keys = {e.activity_key for e in ordered}
    if len(activity_keys) > 1:
        raise ValueError(f"compute_scopes expects one activity, got {sorted(activity_keys)}")

    is_better = is_better_fn(ordered[0].metric_type)

    all_time = best_by_partition(ordered, lambda e: ALL_TIME_SCOPE, is_better)
    seasons = best_by_partition(ordered, lambda e: e.season_identifier, is_better)
    years = best_by_partition(ordered, lambda e: partition_year(e.achieved_at), is_better)

    scopes: Dict[PREventKey, List[str]] = {e.key: [] for e in ordered}
    for winner in all_time.values():
        scopes[winner.key].append(ALL_TIME_SCOPE)
    for season_id, winner in sorted(seasons.items()):
        scopes[winner.key].append(season_scope(season_id))
    for year, winner in sorted(years.items()):
        scopes[winner.key].append(year_scope(year))

    return scopes


def assign_scopes_for_activity(
    repo,
    user_id: str,
    activity_key: str,
    now: Optional[datetime] = None,
) -> int:
    """
    Recompute and persist scopes for every event of one activity.

    Full overwrite in a single batch; safe to re-run after a partial failure.

    Returns:
        Number of events whose scope was written
    """
    events = repo.list_events_by_activity(user_id, activity_key)
    if not events:
        return 0

    scopes = compute_scopes(events)
    repo.overwrite_scopes(user_id, activity_key, scopes, now or datetime.now(timezone.utc))

    holders = sum(1 for labels in scopes.values() if labels)
    logger.info(
        f"Updated scopes for {len(scopes)} events in activity {activity_key} "
        f"for user {user_id} ({holders} hold a record)",
        extra={"extra_fields": {
            "user_id": user_id,
            "activity_key": activity_key,
            "events": len(scopes),
            "record_holders": holders,
        }},
    )
    return len(scopes)


def unscoped_activities(repo, user_id: str, activity_keys: Iterable[str]) -> List[str]:
    """
    Activities that have events but no all-time holder.

    Any activity whose scopes were written has exactly one all-time holder, so
    this finds activities whose events were committed by a run that failed
    before its scope write.
    """
    missing: List[str] = []
    for activity_key in sorted(set(activity_keys)):
        events = repo.list_events_by_activity(user_id, activity_key)
        if events and not any(ALL_TIME_SCOPE in e.pr_scope for e in events):
            missing.append(activity_key)
    return missing
