"""
PR Event synthesis.

Turns (result, definition) matches into PREvent records with empty scope.
Scope is assigned later, per activity, by services.pr_scopes.
"""
import logging
from typing import Iterable, List

from services.pr_matching import (
    calculate_pace_per_500m,
    matches,
    metric_value,
    season_identifier,
)
from services.pr_types import PRDefinition, PREvent, WorkoutResult

logger = logging.getLogger(__name__)


def build_pr_event(user_id: str, result: WorkoutResult, definition: PRDefinition) -> PREvent:
    return PREvent(
        user_id=user_id,
        results_id=result.id,
        activity_key=definition.activity_key,
        sport=definition.sport,
        metric_type=definition.metric_type,
        metric_value=metric_value(result, definition),
        achieved_at=result.date,
        season_identifier=season_identifier(result.date),
        pr_scope=[],
        pace_per_500m=calculate_pace_per_500m(result.time, result.distance),
    )


def synthesize_pr_events(
    user_id: str,
    results: Iterable[WorkoutResult],
    definitions: List[PRDefinition],
) -> List[PREvent]:
    """
    One PREvent per matching (result, definition) pair.

    Non-matching pairs are skipped. Keys are unique within the returned list
    even if the same result appears twice in the input.
    """
    events: List[PREvent] = []
    seen = set()

    for result in results:
        for definition in definitions:
            if not matches(result, definition):
                continue
            event = build_pr_event(user_id, result, definition)
            if event.key in seen:
                continue
            seen.add(event.key)
            events.append(event)

    logger.debug(f"Synthesized {len(events)} PR events for user {user_id}")
    return events
