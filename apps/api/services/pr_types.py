"""
Value objects for PR tracking.

PRDefinition  - one entry of a user's PR catalog (e.g. "2K Row")
WorkoutResult - one ingested Concept2 logbook result (read-only here)
PREvent       - one (result, definition) match, carrying its scope labels
PREventKey    - deterministic identity of a PREvent

Concept2 quirks handled at this boundary:
- result ids arrive as integers but are compared against string ids elsewhere,
  so they are normalized to str once, here
- `time` is reported in tenths of a second; WorkoutResult stores seconds
- results report "bikeerg" while catalogs use "bike"
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date as date_type, datetime, time as time_type
from enum import Enum
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

from core.exceptions import PRContractError


class Sport(str, Enum):
    ROWER = "rower"
    SKIERG = "skierg"
    BIKE = "bike"

    @classmethod
    def parse(cls, value: Any) -> "Sport":
        if isinstance(value, Sport):
            return value
        if value is None:
            raise PRContractError("sport is required", field="sport")
        normalized = str(value).strip().lower()
        if normalized == "bikeerg":
            return cls.BIKE
        try:
            return cls(normalized)
        except ValueError:
            raise PRContractError(f"Unknown sport: {value!r}", field="sport")


class MetricType(str, Enum):
    TIME = "time"          # fixed distance, lower time wins
    DISTANCE = "distance"  # fixed time, higher distance wins

    @classmethod
    def parse(cls, value: Any) -> "MetricType":
        if isinstance(value, MetricType):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise PRContractError(f"Unknown metric_type: {value!r}", field="metric_type")


def _coerce_datetime(value: Any, field_name: str) -> datetime:
    if value is None or value == "":
        raise PRContractError(f"{field_name} is required", field=field_name)
    if isinstance(value, datetime):
        return value
    if isinstance(value, date_type):
        return datetime.combine(value, time_type.min)
    if isinstance(value, str):
        try:
            return date_parser.parse(value)
        except (ValueError, OverflowError) as e:
            raise PRContractError(f"Unparseable {field_name}: {value!r} ({e})", field=field_name)
    raise PRContractError(f"Unsupported {field_name} type: {type(value).__name__}", field=field_name)


@dataclass(frozen=True)
class PRDefinition:
    activity_key: str
    sport: Sport
    metric_type: MetricType
    target_distance: Optional[int] = None  # meters, set for time-based PRs
    target_time: Optional[float] = None    # seconds, set for distance-based PRs
    activity_name: Optional[str] = None
    is_active: bool = True
    display_order: int = 0

    def __post_init__(self):
        if not self.activity_key:
            raise PRContractError("activity_key is required", field="activity_key")
        object.__setattr__(self, "sport", Sport.parse(self.sport))
        object.__setattr__(self, "metric_type", MetricType.parse(self.metric_type))

        if self.metric_type == MetricType.TIME:
            if self.target_distance is None or self.target_time is not None:
                raise PRContractError(
                    f"{self.activity_key}: time PRs need target_distance and no target_time",
                    field="target_distance",
                )
        else:
            if self.target_time is None or self.target_distance is not None:
                raise PRContractError(
                    f"{self.activity_key}: distance PRs need target_time and no target_distance",
                    field="target_time",
                )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PRDefinition":
        return cls(
            activity_key=data.get("activity_key"),
            sport=data.get("sport"),
            metric_type=data.get("metric_type"),
            target_distance=data.get("target_distance"),
            target_time=data.get("target_time"),
            activity_name=data.get("activity_name"),
            is_active=bool(data.get("is_active", True)),
            display_order=int(data.get("display_order") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activity_key": self.activity_key,
            "activity_name": self.activity_name,
            "sport": self.sport.value,
            "metric_type": self.metric_type.value,
            "target_distance": self.target_distance,
            "target_time": self.target_time,
            "is_active": self.is_active,
            "display_order": self.display_order,
        }


@dataclass(frozen=True)
class WorkoutResult:
    id: str
    sport: Sport
    distance: int    # meters
    time: float      # seconds
    date: datetime

    def __post_init__(self):
        if self.id is None or self.id == "":
            raise PRContractError("result id is required", field="id")
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "sport", Sport.parse(self.sport))
        if self.distance is None:
            raise PRContractError(f"result {self.id}: distance is required", field="distance")
        if self.time is None:
            raise PRContractError(f"result {self.id}: time is required", field="time")
        object.__setattr__(self, "date", _coerce_datetime(self.date, "date"))

    @classmethod
    def from_concept2(cls, payload: Dict[str, Any]) -> "WorkoutResult":
        """
        Build from a raw Concept2 logbook result.

        Concept2 reports `time` in tenths of a second and `date` as a local
        wall-clock string ("2024-01-10 08:15:00").
        """
        raw_time = payload.get("time")
        return cls(
            id=payload.get("id"),
            sport=payload.get("type"),
            distance=payload.get("distance"),
            time=None if raw_time is None else raw_time / 10,
            date=payload.get("date"),
        )


@dataclass(frozen=True, order=True)
class PREventKey:
    """One event per (result, definition); compared structurally, never by string."""
    results_id: str
    activity_key: str

    def __post_init__(self):
        object.__setattr__(self, "results_id", str(self.results_id))

    @property
    def doc_id(self) -> str:
        return f"{self.results_id}_{self.activity_key}"


@dataclass
class PREvent:
    user_id: str
    results_id: str
    activity_key: str
    sport: Sport
    metric_type: MetricType
    metric_value: float
    achieved_at: datetime
    season_identifier: str
    pr_scope: List[str] = field(default_factory=list)
    pace_per_500m: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> PREventKey:
        return PREventKey(self.results_id, self.activity_key)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.key.doc_id,
            "user_id": self.user_id,
            "results_id": self.results_id,
            "activity_key": self.activity_key,
            "sport": self.sport.value,
            "metric_type": self.metric_type.value,
            "metric_value": self.metric_value,
            "achieved_at": self.achieved_at.isoformat(),
            "season_identifier": self.season_identifier,
            "pr_scope": list(self.pr_scope),
            "pace_per_500m": self.pace_per_500m,
        }


@dataclass
class ProcessingSummary:
    events_created: int = 0
    activities_recomputed: int = 0
    results_considered: int = 0
    results_skipped: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "events_created": self.events_created,
            "activities_recomputed": self.activities_recomputed,
            "results_considered": self.results_considered,
            "results_skipped": self.results_skipped,
        }
