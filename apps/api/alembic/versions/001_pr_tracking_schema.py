"""pr tracking schema: workout results, pr types, pr events

Revision ID: 001
Revises:
Create Date: 2025-06-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'workout_result',
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('sport', sa.Text(), nullable=False),
        sa.Column('distance', sa.Integer(), nullable=False),
        sa.Column('time_seconds', sa.Float(), nullable=False),
        sa.Column('date', sa.DateTime(timezone=False), nullable=False),
        sa.Column('raw_data', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('user_id', 'id'),
    )
    op.create_index('ix_workout_result_user_date', 'workout_result', ['user_id', 'date'])

    op.create_table(
        'pr_type',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('activity_key', sa.Text(), nullable=False),
        sa.Column('activity_name', sa.Text(), nullable=True),
        sa.Column('sport', sa.Text(), nullable=False),
        sa.Column('metric_type', sa.Text(), nullable=False),
        sa.Column('target_distance', sa.Integer(), nullable=True),
        sa.Column('target_time', sa.Float(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'activity_key', name='uq_pr_type_user_activity'),
        sa.CheckConstraint(
            "(metric_type = 'time' AND target_distance IS NOT NULL AND target_time IS NULL) OR "
            "(metric_type = 'distance' AND target_time IS NOT NULL AND target_distance IS NULL)",
            name='ck_pr_type_single_target',
        ),
    )
    op.create_index('ix_pr_type_user_active', 'pr_type', ['user_id', 'is_active'])

    op.create_table(
        'pr_event',
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('results_id', sa.Text(), nullable=False),
        sa.Column('activity_key', sa.Text(), nullable=False),
        sa.Column('sport', sa.Text(), nullable=False),
        sa.Column('metric_type', sa.Text(), nullable=False),
        sa.Column('metric_value', sa.Float(), nullable=False),
        sa.Column('achieved_at', sa.DateTime(timezone=False), nullable=False),
        sa.Column('season_identifier', sa.Text(), nullable=False),
        sa.Column('pr_scope', postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('pace_per_500m', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('user_id', 'results_id', 'activity_key'),
    )
    op.create_index('ix_pr_event_user_activity', 'pr_event', ['user_id', 'activity_key'])
    op.create_index('ix_pr_event_user_results', 'pr_event', ['user_id', 'results_id'])


def downgrade() -> None:
    op.drop_index('ix_pr_event_user_results', table_name='pr_event')
    op.drop_index('ix_pr_event_user_activity', table_name='pr_event')
    op.drop_table('pr_event')
    op.drop_index('ix_pr_type_user_active', table_name='pr_type')
    op.drop_table('pr_type')
    op.drop_index('ix_workout_result_user_date', table_name='workout_result')
    op.drop_table('workout_result')
