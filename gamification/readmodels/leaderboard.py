"""
LeaderboardMaintainer: keeps per-user leaderboard scores up to date.

Read model: one row per (user, category, period, period_start), written by
idempotent upsert. Rank is a separate projection and is never computed here.

Periods for the POINTS category:
  ALL_TIME  period_start 1970-01-01, score = total points
  WEEKLY    period_start Monday (UTC), score = points earned since then
  MONTHLY   period_start 1st of month, score = points earned since then
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gamification.application.ledger import PointsLedger
from gamification.config import get_settings
from gamification.domain.events import validate_identifier
from gamification.errors import PersistenceError, ValidationError
from gamification.infrastructure.db.models import LeaderboardEntry
from gamification.infrastructure.db.upsert import upsert
from gamification.utils import clock

logger = logging.getLogger(__name__)

CATEGORY_POINTS = "POINTS"

PERIOD_ALL_TIME = "ALL_TIME"
PERIOD_WEEKLY = "WEEKLY"
PERIOD_MONTHLY = "MONTHLY"

ALL_TIME_START = date(1970, 1, 1)


@dataclass(frozen=True)
class LeaderboardScore:
    category: str
    period: str
    period_start: date
    score: int


def period_start_for(period: str, day: date) -> date:
    if period == PERIOD_ALL_TIME:
        return ALL_TIME_START
    if period == PERIOD_WEEKLY:
        return clock.week_start(day)
    if period == PERIOD_MONTHLY:
        return day.replace(day=1)
    raise ValidationError(f"Unknown leaderboard period: {period}")


class LeaderboardMaintainer:
    def __init__(self, db: Session):
        self.db = db
        self.ledger = PointsLedger(db)

    def refresh_entry(
        self,
        user_id: str,
        category: str,
        period: str,
        period_start: date,
        score: int,
    ) -> None:
        """
        Upsert the entry keyed by (user_id, category, period, period_start).

        Raises:
            PersistenceError: the store failed
        """
        validate_identifier(user_id, "user_id")
        validate_identifier(category, "category")
        validate_identifier(period, "period")
        try:
            upsert(
                self.db,
                LeaderboardEntry.__table__,
                {
                    "user_id": user_id,
                    "category": category,
                    "period": period,
                    "period_start": period_start,
                    "score": score,
                    "rank": 0,
                },
                conflict_columns=("user_id", "category", "period", "period_start"),
                update_values=lambda excluded: {
                    "score": excluded.score,
                    "updated_at": func.now(),
                },
            )
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to refresh {category}/{period} leaderboard entry for user {user_id}"
            ) from exc

    def refresh_points(
        self,
        user_id: str,
        today: Optional[date] = None,
        periods: Optional[Iterable[str]] = None,
    ) -> List[LeaderboardScore]:
        """
        Refresh the POINTS entries of a user for each configured period.

        Users without a balance row have nothing to rank and are skipped.
        """
        today = today or clock.today()
        periods = list(periods) if periods is not None else get_settings().LEADERBOARD_PERIODS

        try:
            balance = self.ledger.get_balance(user_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read balance for user {user_id}") from exc
        if balance is None:
            return []

        scores: List[LeaderboardScore] = []
        for period in periods:
            start = period_start_for(period, today)
            if period == PERIOD_ALL_TIME:
                score = balance.total_points
            else:
                since = datetime.combine(
                    start, time.min, tzinfo=ZoneInfo(get_settings().TIMEZONE)
                ).astimezone(timezone.utc)
                try:
                    score = self.ledger.points_since(user_id, since)
                except SQLAlchemyError as exc:
                    raise PersistenceError(f"Failed to sum {period} points for user {user_id}") from exc
            self.refresh_entry(user_id, CATEGORY_POINTS, period, start, score)
            scores.append(LeaderboardScore(CATEGORY_POINTS, period, start, score))

        logger.debug("Refreshed leaderboard entries for user %s: %s", user_id, scores)
        return scores
