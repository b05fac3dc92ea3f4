"""
PR Repository

The PR engine talks to storage only through PRRepository. Two backends:

- InMemoryPRRepository: tests and local experiments
- SqlAlchemyPRRepository: production (Postgres), also runs on sqlite

Write contract shared by every backend:
- upsert_events is create-if-absent by PREventKey; an existing event (and its
  pr_scope) is never modified. Returns only the events actually created.
- overwrite_scopes rewrites pr_scope + updated_at for one activity as one
  all-or-nothing batch.
- Collaborator errors propagate unchanged.
"""
from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import PREventRecord, PRTypeRecord, WorkoutResultRecord
from services.pr_catalog import active_definitions, default_definitions
from services.pr_matching import partition_timestamp
from services.pr_types import (
    MetricType,
    PRDefinition,
    PREvent,
    PREventKey,
    Sport,
    WorkoutResult,
)

logger = logging.getLogger(__name__)

# Rows per INSERT / IN (...) clause; keeps well under bind-parameter limits.
WRITE_CHUNK_SIZE = 200


def _chunks(items: Sequence, size: int):
    for i in range(0, len(items), size):
        yield items[i:i + size]


class PRRepository(ABC):
    """Storage operations the PR engine depends on."""

    @abstractmethod
    def get_active_definitions(self, user_id: str) -> List[PRDefinition]:
        """Active PR definitions for the user, in display order."""

    @abstractmethod
    def seed_defaults(self, user_id: str) -> int:
        """Copy the default catalog to a user with no definitions. Returns rows seeded."""

    @abstractmethod
    def list_processed_result_ids(self, user_id: str) -> Set[str]:
        """Result ids that already have at least one PR event."""

    @abstractmethod
    def list_results(self, user_id: str) -> List[WorkoutResult]:
        """Every stored result for the user."""

    @abstractmethod
    def get_results_by_ids(self, user_id: str, result_ids: Sequence[str]) -> List[WorkoutResult]:
        """Stored results among the given ids; unknown ids are ignored."""

    @abstractmethod
    def upsert_events(self, events: List[PREvent]) -> List[PREvent]:
        """Create events whose key is absent. Returns the created ones."""

    @abstractmethod
    def list_events_by_activity(self, user_id: str, activity_key: str) -> List[PREvent]:
        """All events of one activity."""

    @abstractmethod
    def list_activity_keys(self, user_id: str) -> List[str]:
        """Activities with at least one event."""

    @abstractmethod
    def overwrite_scopes(
        self,
        user_id: str,
        activity_key: str,
        scopes: Dict[PREventKey, List[str]],
        updated_at: datetime,
    ) -> None:
        """Replace pr_scope for the given events of one activity, atomically."""


class InMemoryPRRepository(PRRepository):
    """Dict-backed repository. Returned objects are copies of stored state."""

    def __init__(self):
        self.definitions: Dict[str, Dict[str, PRDefinition]] = {}
        self.results: Dict[str, Dict[str, WorkoutResult]] = {}
        self.events: Dict[str, Dict[PREventKey, PREvent]] = {}
        self._lock = threading.Lock()

    # -- helpers for seeding state -----------------------------------------

    def add_definitions(self, user_id: str, definitions: Iterable[PRDefinition]) -> None:
        catalog = self.definitions.setdefault(user_id, {})
        for definition in definitions:
            catalog[definition.activity_key] = definition

    def add_results(self, user_id: str, results: Iterable[WorkoutResult]) -> None:
        stored = self.results.setdefault(user_id, {})
        for result in results:
            stored[result.id] = result

    # -- PRRepository --------------------------------------------------------

    def get_active_definitions(self, user_id: str) -> List[PRDefinition]:
        return active_definitions(self.definitions.get(user_id, {}).values())

    def seed_defaults(self, user_id: str) -> int:
        if self.definitions.get(user_id):
            logger.info(f"User {user_id} already has PR types, skipping initialization")
            return 0
        defaults = default_definitions()
        self.add_definitions(user_id, defaults)
        return len(defaults)

    def list_processed_result_ids(self, user_id: str) -> Set[str]:
        return {key.results_id for key in self.events.get(user_id, {})}

    def list_results(self, user_id: str) -> List[WorkoutResult]:
        return list(self.results.get(user_id, {}).values())

    def get_results_by_ids(self, user_id: str, result_ids: Sequence[str]) -> List[WorkoutResult]:
        stored = self.results.get(user_id, {})
        return [stored[str(rid)] for rid in result_ids if str(rid) in stored]

    def upsert_events(self, events: List[PREvent]) -> List[PREvent]:
        now = datetime.now(timezone.utc)
        created: List[PREvent] = []
        with self._lock:
            for event in events:
                stored = self.events.setdefault(event.user_id, {})
                if event.key in stored:
                    continue
                new_event = replace(event, pr_scope=[], created_at=now, updated_at=now)
                stored[event.key] = new_event
                created.append(copy.deepcopy(new_event))
        return created

    def list_events_by_activity(self, user_id: str, activity_key: str) -> List[PREvent]:
        return [
            copy.deepcopy(event)
            for key, event in self.events.get(user_id, {}).items()
            if key.activity_key == activity_key
        ]

    def list_activity_keys(self, user_id: str) -> List[str]:
        return sorted({key.activity_key for key in self.events.get(user_id, {})})

    def overwrite_scopes(
        self,
        user_id: str,
        activity_key: str,
        scopes: Dict[PREventKey, List[str]],
        updated_at: datetime,
    ) -> None:
        stored = self.events.get(user_id, {})
        with self._lock:
            # Validate the whole batch before touching anything
            for key in scopes:
                if key.activity_key != activity_key or key not in stored:
                    raise KeyError(f"No PR event {key.doc_id} in activity {activity_key}")
            for key, labels in scopes.items():
                stored[key].pr_scope = list(labels)
                stored[key].updated_at = updated_at


def _definition_from_record(record: PRTypeRecord) -> PRDefinition:
    return PRDefinition(
        activity_key=record.activity_key,
        activity_name=record.activity_name,
        sport=record.sport,
        metric_type=record.metric_type,
        target_distance=record.target_distance,
        target_time=record.target_time,
        is_active=record.is_active,
        display_order=record.display_order,
    )


def _result_from_record(record: WorkoutResultRecord) -> WorkoutResult:
    return WorkoutResult(
        id=record.id,
        sport=record.sport,
        distance=record.distance,
        time=record.time_seconds,
        date=record.date,
    )


def _event_from_record(record: PREventRecord) -> PREvent:
    return PREvent(
        user_id=record.user_id,
        results_id=record.results_id,
        activity_key=record.activity_key,
        sport=Sport.parse(record.sport),
        metric_type=MetricType.parse(record.metric_type),
        metric_value=record.metric_value,
        achieved_at=record.achieved_at,
        season_identifier=record.season_identifier,
        pr_scope=list(record.pr_scope or []),
        pace_per_500m=record.pace_per_500m,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _event_row(event: PREvent, now: datetime) -> Dict:
    return {
        "user_id": event.user_id,
        "results_id": event.results_id,
        "activity_key": event.activity_key,
        "sport": event.sport.value,
        "metric_type": event.metric_type.value,
        "metric_value": event.metric_value,
        "achieved_at": partition_timestamp(event.achieved_at),
        "season_identifier": event.season_identifier,
        "pr_scope": [],
        "pace_per_500m": event.pace_per_500m,
        "created_at": now,
        "updated_at": now,
    }


class SqlAlchemyPRRepository(PRRepository):
    """
    Repository over a SQLAlchemy Session.

    Each write method is one transaction: committed on success, rolled back
    and re-raised on failure.

    Args:
        db: Session used for writes and (by default) reads
        session_factory: Optional sessionmaker. When given, get_results_by_ids
            opens its own short-lived session so lookups can run on worker
            threads; otherwise lookups share `db` under a lock.
    """

    def __init__(self, db: Session, session_factory: Optional[Callable[[], Session]] = None):
        self.db = db
        self._session_factory = session_factory
        self._read_lock = threading.Lock()

    @contextmanager
    def _reader(self):
        if self._session_factory is None:
            with self._read_lock:
                yield self.db
            return
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    @contextmanager
    def _transaction(self, what: str):
        try:
            yield self.db
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"PR repository {what} failed, rolled back: {e}")
            raise

    def get_active_definitions(self, user_id: str) -> List[PRDefinition]:
        records = self.db.execute(
            select(PRTypeRecord)
            .where(PRTypeRecord.user_id == user_id, PRTypeRecord.is_active.is_(True))
            .order_by(PRTypeRecord.display_order.asc(), PRTypeRecord.activity_key.asc())
        ).scalars().all()
        return [_definition_from_record(r) for r in records]

    def seed_defaults(self, user_id: str) -> int:
        existing = self.db.execute(
            select(PRTypeRecord.id).where(PRTypeRecord.user_id == user_id).limit(1)
        ).first()
        if existing:
            logger.info(f"User {user_id} already has PR types, skipping initialization")
            return 0

        defaults = default_definitions()
        with self._transaction("seed_defaults") as db:
            for definition in defaults:
                db.add(PRTypeRecord(user_id=user_id, **definition.to_dict()))
        return len(defaults)

    def list_processed_result_ids(self, user_id: str) -> Set[str]:
        rows = self.db.execute(
            select(PREventRecord.results_id).where(PREventRecord.user_id == user_id).distinct()
        ).scalars().all()
        return set(rows)

    def list_results(self, user_id: str) -> List[WorkoutResult]:
        records = self.db.execute(
            select(WorkoutResultRecord)
            .where(WorkoutResultRecord.user_id == user_id)
            .order_by(WorkoutResultRecord.date.asc(), WorkoutResultRecord.id.asc())
        ).scalars().all()
        return [_result_from_record(r) for r in records]

    def get_results_by_ids(self, user_id: str, result_ids: Sequence[str]) -> List[WorkoutResult]:
        ids = [str(rid) for rid in result_ids]
        if not ids:
            return []
        with self._reader() as session:
            records = session.execute(
                select(WorkoutResultRecord).where(
                    WorkoutResultRecord.user_id == user_id,
                    WorkoutResultRecord.id.in_(ids),
                )
            ).scalars().all()
            return [_result_from_record(r) for r in records]

    def _existing_keys(self, events: List[PREvent]) -> Set[PREventKey]:
        existing: Set[PREventKey] = set()
        ids_by_user: Dict[str, Set[str]] = {}
        for e in events:
            ids_by_user.setdefault(e.user_id, set()).add(e.results_id)

        for user_id, result_ids in ids_by_user.items():
            for chunk in _chunks(sorted(result_ids), WRITE_CHUNK_SIZE):
                rows = self.db.execute(
                    select(PREventRecord.results_id, PREventRecord.activity_key).where(
                        PREventRecord.user_id == user_id,
                        PREventRecord.results_id.in_(chunk),
                    )
                ).all()
                existing.update(PREventKey(r.results_id, r.activity_key) for r in rows)
        return existing

    def _insert_ignoring_conflicts(self, db: Session, rows: List[Dict]) -> Set[PREventKey]:
        """Insert rows, skipping existing keys. Returns the keys actually inserted."""
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            # No ON CONFLICT support: rows were pre-filtered by _existing_keys
            db.add_all(PREventRecord(**row) for row in rows)
            return {PREventKey(row["results_id"], row["activity_key"]) for row in rows}

        inserted: Set[PREventKey] = set()
        for chunk in _chunks(rows, WRITE_CHUNK_SIZE):
            stmt = (
                insert(PREventRecord)
                .values(chunk)
                .on_conflict_do_nothing(index_elements=["user_id", "results_id", "activity_key"])
                .returning(PREventRecord.results_id, PREventRecord.activity_key)
            )
            inserted.update(PREventKey(r.results_id, r.activity_key) for r in db.execute(stmt))
        return inserted

    def upsert_events(self, events: List[PREvent]) -> List[PREvent]:
        if not events:
            return []

        existing = self._existing_keys(events)
        now = datetime.now(timezone.utc)
        to_create = [e for e in events if e.key not in existing]
        if not to_create:
            return []

        with self._transaction("upsert_events") as db:
            # A concurrent writer may create the same key between the lookup and
            # the insert; ON CONFLICT DO NOTHING skips it and RETURNING omits it.
            inserted = self._insert_ignoring_conflicts(db, [_event_row(e, now) for e in to_create])

        return [
            replace(e, pr_scope=[], created_at=now, updated_at=now)
            for e in to_create
            if e.key in inserted
        ]

    def list_events_by_activity(self, user_id: str, activity_key: str) -> List[PREvent]:
        records = self.db.execute(
            select(PREventRecord).where(
                PREventRecord.user_id == user_id,
                PREventRecord.activity_key == activity_key,
            )
        ).scalars().all()
        return [_event_from_record(r) for r in records]

    def list_activity_keys(self, user_id: str) -> List[str]:
        rows = self.db.execute(
            select(PREventRecord.activity_key)
            .where(PREventRecord.user_id == user_id)
            .distinct()
            .order_by(PREventRecord.activity_key.asc())
        ).scalars().all()
        return list(rows)

    def overwrite_scopes(
        self,
        user_id: str,
        activity_key: str,
        scopes: Dict[PREventKey, List[str]],
        updated_at: datetime,
    ) -> None:
        with self._transaction("overwrite_scopes") as db:
            records = db.execute(
                select(PREventRecord).where(
                    PREventRecord.user_id == user_id,
                    PREventRecord.activity_key == activity_key,
                )
            ).scalars().all()
            by_key = {PREventKey(r.results_id, r.activity_key): r for r in records}

            missing = [key.doc_id for key in scopes if key not in by_key]
            if missing:
                raise KeyError(f"No PR events {missing} in activity {activity_key}")

            for key, labels in scopes.items():
                record = by_key[key]
                record.pr_scope = list(labels)
                record.updated_at = updated_at
