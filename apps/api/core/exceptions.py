"""
Custom exception classes for PR processing.

Collaborator errors (database, Redis) are never wrapped; they propagate
unchanged. Only the engine's own failure modes live here.
"""
from typing import Optional


class PRContractError(ValueError):
    """A result or PR definition is malformed (missing or inconsistent fields)."""

    def __init__(self, detail: str, field: Optional[str] = None):
        self.field = field
        self.error_code = f"CONTRACT_VIOLATION_{field.upper()}" if field else "CONTRACT_VIOLATION"
        super().__init__(detail)


class PRProcessingLocked(RuntimeError):
    """Another invocation is already processing PRs for this user."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"PR processing already in progress for user {user_id}")
