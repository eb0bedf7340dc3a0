"""create gamification tables (points ledger, streaks, achievements, leaderboard, rewards)

Revision ID: a7c1e2d3f4b5
Revises:
Create Date: 2026-10-16 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'a7c1e2d3f4b5'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'user_points',
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('total_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('points_to_next_level', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('user_id'),
        sa.CheckConstraint('total_points >= 0', name='ck_user_points_total_non_negative'),
    )

    op.create_table(
        'point_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('kind', sa.String(16), nullable=False, server_default='EARNED'),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('reason_code', sa.String(64), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('idempotency_key', sa.String(255), nullable=True),
        sa.Column('metadata_json', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'idempotency_key', name='uq_point_transactions_user_key'),
    )
    op.create_index('ix_point_transactions_user_id', 'point_transactions', ['user_id'])
    op.create_index('ix_point_transactions_user_reason', 'point_transactions', ['user_id', 'reason_code'])

    op.create_table(
        'user_streaks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('streak_type', sa.String(64), nullable=False),
        sa.Column('current_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('longest_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_activity_date', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'streak_type', name='uq_user_streaks_user_type'),
    )
    op.create_index('ix_user_streaks_user_id', 'user_streaks', ['user_id'])

    op.create_table(
        'achievements',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('category', sa.String(32), nullable=False),
        sa.Column('rarity', sa.String(16), nullable=False, server_default='COMMON'),
        sa.Column('points_awarded', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('criteria_json', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('metadata_json', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'user_achievements',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('achievement_id', sa.String(64), nullable=False),
        sa.Column('unlocked_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'achievement_id', name='uq_user_achievements_user_achievement'),
    )
    op.create_index('ix_user_achievements_user_id', 'user_achievements', ['user_id'])

    op.create_table(
        'leaderboard_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('category', sa.String(32), nullable=False),
        sa.Column('period', sa.String(16), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rank', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'category', 'period', 'period_start', name='uq_leaderboard_entries_key'),
    )
    op.create_index('ix_leaderboard_entries_user_id', 'leaderboard_entries', ['user_id'])
    op.create_index('ix_leaderboard_entries_board', 'leaderboard_entries', ['category', 'period', 'period_start'])

    op.create_table(
        'user_rewards',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('reward_key', sa.String(64), nullable=False),
        sa.Column('reward_type', sa.String(32), nullable=False),
        sa.Column('value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('milestone', sa.Integer(), nullable=True),
        sa.Column('claimed', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('claimed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('metadata_json', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'reward_key', name='uq_user_rewards_user_key'),
    )
    op.create_index('ix_user_rewards_user_id', 'user_rewards', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_user_rewards_user_id', table_name='user_rewards')
    op.drop_table('user_rewards')
    op.drop_index('ix_leaderboard_entries_board', table_name='leaderboard_entries')
    op.drop_index('ix_leaderboard_entries_user_id', table_name='leaderboard_entries')
    op.drop_table('leaderboard_entries')
    op.drop_index('ix_user_achievements_user_id', table_name='user_achievements')
    op.drop_table('user_achievements')
    op.drop_table('achievements')
    op.drop_index('ix_user_streaks_user_id', table_name='user_streaks')
    op.drop_table('user_streaks')
    op.drop_index('ix_point_transactions_user_reason', table_name='point_transactions')
    op.drop_index('ix_point_transactions_user_id', table_name='point_transactions')
    op.drop_table('point_transactions')
    op.drop_table('user_points')
