"""
SQLAlchemy ORM models (points ledger, streaks, achievements, leaderboard, rewards)
"""
from datetime import date as date_type
from sqlalchemy import String, DateTime, Integer, Text, TIMESTAMP, Date, func, Boolean, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB

from gamification.infrastructure.db.session import Base


TRANSACTION_EARNED = "EARNED"


class UserPoints(Base):
    """Rolling balance and level per user. Created lazily on first award."""
    __tablename__ = "user_points"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    # Span of the current level (points needed to go from level L to L+1)
    points_to_next_level: Mapped[int] = mapped_column(Integer, nullable=False, server_default="100")
    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class PointTransaction(Base):
    """Append-only ledger row. Sum of points per user == UserPoints.total_points."""
    __tablename__ = "point_transactions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, server_default=TRANSACTION_EARNED)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    reason_code: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    metadata_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "idempotency_key", name="uq_point_transactions_user_key"),
        Index("ix_point_transactions_user_reason", "user_id", "reason_code"),
    )


class UserStreak(Base):
    """Consecutive-day counter per (user, activity category)."""
    __tablename__ = "user_streaks"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    streak_type: Mapped[str] = mapped_column(String(64), nullable=False)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    last_activity_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true")
    updated_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "streak_type", name="uq_user_streaks_user_type"),
    )


class Achievement(Base):
    """Achievement catalog (reference data, system rows are created on demand)."""
    __tablename__ = "achievements"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    rarity: Mapped[str] = mapped_column(String(16), nullable=False, server_default="COMMON")
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    criteria_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    metadata_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class UserAchievement(Base):
    """Write-once grant: row presence proves the achievement is unlocked."""
    __tablename__ = "user_achievements"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    achievement_id: Mapped[str] = mapped_column(String(64), nullable=False)
    unlocked_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_user_achievement"),
    )


class LeaderboardEntry(Base):
    """Score snapshot per (user, category, period, period_start). Rank is computed elsewhere."""
    __tablename__ = "leaderboard_entries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    period: Mapped[str] = mapped_column(String(16), nullable=False)
    period_start: Mapped[date_type] = mapped_column(Date, nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    rank: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    updated_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "category", "period", "period_start", name="uq_leaderboard_entries_key"),
        Index("ix_leaderboard_entries_board", "category", "period", "period_start"),
    )


class UserReward(Base):
    """Reward grant marker. (user_id, reward_key) is never issued twice."""
    __tablename__ = "user_rewards"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    reward_key: Mapped[str] = mapped_column(String(64), nullable=False)
    reward_type: Mapped[str] = mapped_column(String(32), nullable=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    milestone: Mapped[int | None] = mapped_column(Integer, nullable=True)
    claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    claimed_at: Mapped[DateTime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    metadata_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "reward_key", name="uq_user_rewards_user_key"),
    )
