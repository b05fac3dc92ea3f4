"""
Per-user PR processing lock.

Two invocations for the same user can both see "no event yet" for a result
(harmless: event keys are deterministic) and can both recompute scopes for the
same activity (not harmless: an older computation finishing last overwrites a
newer one). A short Redis lease per user serializes the pipeline.

Fails open: if Redis is unavailable processing proceeds unlocked, which is no
worse than running without the lock.
"""
import logging
import uuid
from contextlib import contextmanager
from typing import Optional

from core.cache import cache_key, get_redis_client
from core.config import settings
from core.exceptions import PRProcessingLocked

logger = logging.getLogger(__name__)

# Returned when Redis is unavailable; release is a no-op for it.
UNLOCKED_TOKEN = "unlocked"

# Delete the key only if it still holds our token, in one server-side step.
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def _lock_key(user_id: str) -> str:
    return cache_key("pr_processing_lock", user_id)


def acquire_pr_lock(user_id: str, ttl_s: Optional[int] = None) -> Optional[str]:
    """
    Try to take the user's lock.

    Returns:
        A token to pass to release_pr_lock, or None if another invocation holds it
    """
    r = get_redis_client()
    if not r:
        return UNLOCKED_TOKEN

    token = uuid.uuid4().hex
    try:
        acquired = r.set(_lock_key(user_id), token, nx=True, ex=ttl_s or settings.PR_LOCK_TTL_S)
    except Exception as e:
        logger.warning(f"PR lock acquire error for {user_id}: {e}")
        return UNLOCKED_TOKEN
    return token if acquired else None


def release_pr_lock(user_id: str, token: str) -> None:
    """Release the lock if we still own it (it may have expired and been re-taken)."""
    if token == UNLOCKED_TOKEN:
        return
    r = get_redis_client()
    if not r:
        return
    try:
        r.eval(RELEASE_SCRIPT, 1, _lock_key(user_id), token)
    except Exception as e:
        logger.warning(f"PR lock release error for {user_id}: {e}")


@contextmanager
def pr_processing_lock(user_id: str, enabled: Optional[bool] = None):
    """Hold the user's lock for the duration of the block, or raise PRProcessingLocked."""
    if enabled is None:
        enabled = settings.PR_LOCK_ENABLED
    if not enabled:
        yield
        return

    token = acquire_pr_lock(user_id)
    if token is None:
        raise PRProcessingLocked(user_id)
    try:
        yield
    finally:
        release_pr_lock(user_id, token)
