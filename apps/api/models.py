from sqlalchemy import Column, Integer, Boolean, CheckConstraint, Float, DateTime, Text, Index, UniqueConstraint, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from core.database import Base

# JSONB on Postgres, plain JSON elsewhere (sqlite in tests / local runs)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class WorkoutResultRecord(Base):
    """
    A Concept2 logbook result, as stored by the sync collaborator.

    Read-only to PR processing. `time_seconds` is already converted from
    Concept2's tenths of a second.
    """
    __tablename__ = "workout_result"

    user_id = Column(Text, primary_key=True)
    id = Column(Text, primary_key=True)  # Concept2 result id, stored as text
    sport = Column(Text, nullable=False)  # 'rower' | 'skierg' | 'bike'
    distance = Column(Integer, nullable=False)  # meters
    time_seconds = Column(Float, nullable=False)
    date = Column(DateTime(timezone=False), nullable=False)  # wall-clock as received
    raw_data = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_workout_result_user_date", "user_id", "date"),
    )


class PRTypeRecord(Base):
    """
    One PR definition in a user's catalog (e.g. "2k_row").

    Exactly one target is set: target_distance for time PRs,
    target_time for distance PRs.
    """
    __tablename__ = "pr_type"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False)
    activity_key = Column(Text, nullable=False)
    activity_name = Column(Text, nullable=True)
    sport = Column(Text, nullable=False)
    metric_type = Column(Text, nullable=False)  # 'time' | 'distance'
    target_distance = Column(Integer, nullable=True)  # meters
    target_time = Column(Float, nullable=True)  # seconds
    is_active = Column(Boolean, default=True, nullable=False)
    display_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "activity_key", name="uq_pr_type_user_activity"),
        CheckConstraint(
            "(metric_type = 'time' AND target_distance IS NOT NULL AND target_time IS NULL) OR "
            "(metric_type = 'distance' AND target_time IS NOT NULL AND target_distance IS NULL)",
            name="ck_pr_type_single_target",
        ),
        Index("ix_pr_type_user_active", "user_id", "is_active"),
    )


class PREventRecord(Base):
    """
    One qualifying (result, PR definition) pair.

    Keyed by (user_id, results_id, activity_key) so re-processing a result is a
    no-op. pr_scope is the only column rewritten after creation.
    """
    __tablename__ = "pr_event"

    user_id = Column(Text, primary_key=True)
    results_id = Column(Text, primary_key=True)
    activity_key = Column(Text, primary_key=True)

    sport = Column(Text, nullable=False)
    metric_type = Column(Text, nullable=False)
    metric_value = Column(Float, nullable=False)  # seconds for time PRs, meters for distance PRs
    achieved_at = Column(DateTime(timezone=False), nullable=False)
    season_identifier = Column(Text, nullable=False)  # end year of the May-April season
    pr_scope = Column(JSONType, nullable=False, default=list)  # ["all-time", "season-2025", "year-2024"]
    pace_per_500m = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_pr_event_user_activity", "user_id", "activity_key"),
        Index("ix_pr_event_user_results", "user_id", "results_id"),
    )
