"""
StreakTracker - consecutive-day counters per (user, streak_type).

Updates are conditional on the previously read last_activity_date
(UPDATE ... WHERE last_activity_date = <read value>). A writer that lost a
race re-reads and retries STREAK_UPDATE_RETRIES times; after that the stored
state wins. Same-day replays are no-ops, so concurrent same-day calls
converge. Races across a day boundary are best-effort.
"""
import logging
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gamification.config import get_settings
from gamification.domain.events import validate_identifier
from gamification.domain.streak import (
    StreakState,
    next_streak,
    STREAK_STARTED,
    STREAK_UNCHANGED,
)
from gamification.errors import PersistenceError
from gamification.infrastructure.db.models import UserStreak
from gamification.infrastructure.db.upsert import insert_ignore
from gamification.utils import clock

logger = logging.getLogger(__name__)


class StreakTracker:
    def __init__(self, db: Session, retries: Optional[int] = None):
        self.db = db
        self.retries = get_settings().STREAK_UPDATE_RETRIES if retries is None else retries

    def record_activity(
        self,
        user_id: str,
        streak_type: str,
        activity_date: Optional[date] = None,
    ) -> StreakState:
        """
        Count one activity of `streak_type` on `activity_date` (default: today).

        Raises:
            ValidationError: empty user_id / streak_type
            PersistenceError: the store failed
        """
        validate_identifier(user_id, "user_id")
        validate_identifier(streak_type, "streak_type")
        today = activity_date or clock.today()

        try:
            for _attempt in range(self.retries + 1):
                state = self._try_record(user_id, streak_type, today)
                if state is not None:
                    return state
                logger.warning(
                    "Streak %s for user %s changed concurrently, re-reading",
                    streak_type, user_id,
                )
            current = self._read(user_id, streak_type)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update {streak_type} streak for user {user_id}") from exc

        logger.warning(
            "Streak %s for user %s: giving up after %d retries, keeping stored state",
            streak_type, user_id, self.retries,
        )
        return self._to_state(current, STREAK_UNCHANGED)

    def _try_record(self, user_id: str, streak_type: str, today: date) -> Optional[StreakState]:
        """One read + conditional write. Returns None if another writer got there first."""
        row = self._read(user_id, streak_type)

        if row is None:
            created = insert_ignore(
                self.db,
                UserStreak.__table__,
                {
                    "user_id": user_id,
                    "streak_type": streak_type,
                    "current_streak": 1,
                    "longest_streak": 1,
                    "last_activity_date": today,
                    "is_active": True,
                },
                conflict_columns=("user_id", "streak_type"),
            )
            if not created:
                return None
            logger.info("Started %s streak for user %s", streak_type, user_id)
            return StreakState(user_id, streak_type, 1, 1, today, True, STREAK_STARTED)

        current, longest, transition = next_streak(
            row.current_streak, row.longest_streak, row.last_activity_date, today
        )
        if transition == STREAK_UNCHANGED:
            return self._to_state(row, STREAK_UNCHANGED)

        table = UserStreak.__table__
        guard = (
            table.c.last_activity_date.is_(None)
            if row.last_activity_date is None
            else table.c.last_activity_date == row.last_activity_date
        )
        result = self.db.execute(
            update(table)
            .where(table.c.id == row.id, guard)
            .values(
                current_streak=current,
                longest_streak=longest,
                last_activity_date=today,
                is_active=True,
                updated_at=func.now(),
            )
        )
        if result.rowcount != 1:
            return None

        logger.info(
            "Streak %s for user %s: %s %d -> %d",
            streak_type, user_id, transition, row.current_streak, current,
        )
        return StreakState(user_id, streak_type, current, longest, today, True, transition)

    def _read(self, user_id: str, streak_type: str):
        return self.db.execute(
            select(
                UserStreak.id,
                UserStreak.user_id,
                UserStreak.streak_type,
                UserStreak.current_streak,
                UserStreak.longest_streak,
                UserStreak.last_activity_date,
                UserStreak.is_active,
            ).where(
                UserStreak.user_id == user_id,
                UserStreak.streak_type == streak_type,
            )
        ).first()

    @staticmethod
    def _to_state(row, transition: str) -> StreakState:
        return StreakState(
            user_id=row.user_id,
            streak_type=row.streak_type,
            current_streak=row.current_streak,
            longest_streak=row.longest_streak,
            last_activity_date=row.last_activity_date,
            is_active=row.is_active,
            transition=transition,
        )

    def get_streak(self, user_id: str, streak_type: str) -> Optional[StreakState]:
        row = self._read(user_id, streak_type)
        return self._to_state(row, STREAK_UNCHANGED) if row else None

    def get_streaks(self, user_id: str) -> List[StreakState]:
        """All streaks of a user, longest current streak first."""
        rows = self.db.execute(
            select(UserStreak)
            .where(UserStreak.user_id == user_id)
            .order_by(UserStreak.current_streak.desc(), UserStreak.streak_type)
            .execution_options(populate_existing=True)
        ).scalars()
        return [self._to_state(r, STREAK_UNCHANGED) for r in rows]

    def expire_stale(self, today: Optional[date] = None) -> int:
        """
        Mark streaks without activity today or yesterday as inactive.

        Counters are left alone; the next activity resets them.

        Returns:
            Number of streaks deactivated
        """
        today = today or clock.today()
        table = UserStreak.__table__
        try:
            result = self.db.execute(
                update(table)
                .where(
                    table.c.is_active.is_(True),
                    table.c.last_activity_date < today - timedelta(days=1),
                )
                .values(is_active=False, updated_at=func.now())
            )
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to expire stale streaks") from exc
        logger.info("Deactivated %d stale streak(s)", result.rowcount)
        return result.rowcount
