"""
PR Processing Pipeline

Incremental PR detection for a user's Concept2 results:

1. Load the user's active PR catalog (seeding defaults on first use)
2. Skip results that already have PR events (existence index)
3. Create one PR event per new (result, definition) match
4. Recompute scopes for every activity that gained events, over ALL of
   that activity's events, plus any activity of the batch whose events were
   committed by an earlier run that failed before writing scopes
5. Report counts

Safe to re-run: event creation is keyed deterministically and scope recompute
is a full overwrite per activity, so a failed run can simply be retried.

Entry points:
- process_results_for_prs: a batch the caller already holds
- process_unprocessed_results: every stored result minus already-processed ones
- process_result_ids: just-synced results, looked up by id
- recalculate_all_scopes: scope recompute for every activity, no new events
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from core.config import settings
from core.exceptions import PRContractError
from services.pr_events import synthesize_pr_events
from services.pr_locks import pr_processing_lock
from services.pr_repository import PRRepository
from services.pr_scopes import assign_scopes_for_activity, unscoped_activities
from services.pr_types import PRDefinition, ProcessingSummary, WorkoutResult

logger = logging.getLogger(__name__)


def load_catalog(repo: PRRepository, user_id: str) -> List[PRDefinition]:
    """Active definitions, seeding the default catalog if the user has none."""
    definitions = repo.get_active_definitions(user_id)
    if definitions:
        return definitions

    logger.info(f"No active PR types found for user {user_id}, initializing defaults")
    seeded = repo.seed_defaults(user_id)
    if seeded:
        logger.info(f"Seeded {seeded} default PR types for user {user_id}")

    definitions = repo.get_active_definitions(user_id)
    if not definitions:
        logger.info(f"No PR types available for user {user_id} after initialization")
    return definitions


def _validate_batch(results: List[WorkoutResult]) -> None:
    for result in results:
        if not isinstance(result, WorkoutResult):
            raise PRContractError(
                f"Expected WorkoutResult, got {type(result).__name__}", field="result"
            )


def _run_pipeline(repo: PRRepository, user_id: str, results: List[WorkoutResult]) -> ProcessingSummary:
    summary = ProcessingSummary(results_considered=len(results))
    if not results:
        logger.info(f"No results to process for user {user_id}")
        return summary

    # Everything is validated before the first write
    _validate_batch(results)

    definitions = load_catalog(repo, user_id)
    if not definitions:
        summary.results_skipped = len(results)
        return summary

    processed_ids = repo.list_processed_result_ids(user_id)
    new_results = [r for r in results if r.id not in processed_ids]
    summary.results_skipped = len(results) - len(new_results)
    logger.info(
        f"Found {len(new_results)} new results that need PR processing for user {user_id} "
        f"({summary.results_skipped} already processed)"
    )

    candidates = synthesize_pr_events(user_id, results, definitions)
    created = repo.upsert_events([c for c in candidates if c.results_id not in processed_ids])
    summary.events_created = len(created)

    touched = {event.activity_key for event in created}
    # Activities this batch already had events in, left unscoped by an earlier failed run
    repaired = unscoped_activities(
        repo, user_id, {c.activity_key for c in candidates} - touched
    )
    if repaired:
        logger.warning(f"Repairing scopes left unwritten for user {user_id}: {repaired}")
    touched.update(repaired)

    if not touched:
        logger.info(f"No new PR events created for user {user_id}, no scope recalculation needed")
        return summary

    now = datetime.now(timezone.utc)
    for activity_key in sorted(touched):
        assign_scopes_for_activity(repo, user_id, activity_key, now=now)
    summary.activities_recomputed = len(touched)

    logger.info(
        f"PR processing completed for user {user_id}: {summary.events_created} new PR events "
        f"across {summary.activities_recomputed} activities",
        extra={"extra_fields": {"user_id": user_id, **summary.to_dict()}},
    )
    return summary


def process_results_for_prs(
    repo: PRRepository,
    user_id: str,
    results: Iterable[WorkoutResult],
    lock: Optional[bool] = None,
) -> ProcessingSummary:
    """
    Process a batch of results against the user's current catalog.

    Args:
        repo: Storage backend
        user_id: Owner of the results
        results: Candidate results; already-processed ones are skipped
        lock: Override settings.PR_LOCK_ENABLED for this call

    Returns:
        ProcessingSummary with events_created and activities_recomputed

    Raises:
        PRContractError: malformed input, nothing written
        PRProcessingLocked: another invocation holds this user's lock
    """
    with pr_processing_lock(user_id, enabled=lock):
        return _run_pipeline(repo, user_id, list(results))


def process_unprocessed_results(
    repo: PRRepository,
    user_id: str,
    lock: Optional[bool] = None,
) -> ProcessingSummary:
    """Process every stored result that has no PR event yet."""
    with pr_processing_lock(user_id, enabled=lock):
        results = repo.list_results(user_id)
        logger.info(f"Found {len(results)} total results for user {user_id}")
        return _run_pipeline(repo, user_id, results)


def fetch_results_by_ids(
    repo: PRRepository,
    user_id: str,
    result_ids: Iterable,
    max_workers: Optional[int] = None,
    chunk_size: Optional[int] = None,
) -> List[WorkoutResult]:
    """
    Look up results by id, in chunks fetched concurrently.

    Reads only; any lookup failure propagates. Order follows the input ids.
    """
    ids = list(dict.fromkeys(str(rid) for rid in result_ids))
    if not ids:
        return []

    chunk_size = chunk_size or settings.PR_RESULT_FETCH_CHUNK_SIZE
    max_workers = max_workers or settings.PR_RESULT_FETCH_CONCURRENCY
    chunks = [ids[i:i + chunk_size] for i in range(0, len(ids), chunk_size)]

    with ThreadPoolExecutor(max_workers=min(max_workers, len(chunks))) as pool:
        batches = list(pool.map(lambda chunk: repo.get_results_by_ids(user_id, chunk), chunks))

    by_id = {result.id: result for batch in batches for result in batch}
    missing = [rid for rid in ids if rid not in by_id]
    if missing:
        logger.warning(f"{len(missing)} of {len(ids)} requested results not found for user {user_id}")
    return [by_id[rid] for rid in ids if rid in by_id]


def process_result_ids(
    repo: PRRepository,
    user_id: str,
    result_ids: Iterable,
    lock: Optional[bool] = None,
) -> ProcessingSummary:
    """Process just-synced results, identified by id."""
    with pr_processing_lock(user_id, enabled=lock):
        results = fetch_results_by_ids(repo, user_id, result_ids)
        logger.info(f"Retrieved {len(results)} results to process for PRs for user {user_id}")
        return _run_pipeline(repo, user_id, results)


def recalculate_all_scopes(
    repo: PRRepository,
    user_id: str,
    lock: Optional[bool] = None,
) -> ProcessingSummary:
    """
    Recompute scopes for every activity that has events.

    Repairs scopes left inconsistent by a failed run or by catalog changes.
    Never creates or deletes events.
    """
    with pr_processing_lock(user_id, enabled=lock):
        activity_keys = repo.list_activity_keys(user_id)
        now = datetime.now(timezone.utc)
        for activity_key in activity_keys:
            assign_scopes_for_activity(repo, user_id, activity_key, now=now)
        logger.info(f"Recalculated scopes for {len(activity_keys)} activities for user {user_id}")
        return ProcessingSummary(activities_recomputed=len(activity_keys))
