"""
AchievementEvaluator - grant milestone achievements after an event.

Steps:
1. Collect the user's aggregate state (balance, level, lesson/event counts).
2. Drop thresholds the user already holds.
3. For each remaining one: ensure the catalog row, insert the user grant
   (ON CONFLICT DO NOTHING), and award its bonus points.

A grant that loses the insert race to a concurrent evaluation is treated
as already granted, and its bonus is not paid again. Bonus awards go straight
to the ledger and never re-enter this evaluator. They can only produce
level badges.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gamification.application.catalog import AchievementCatalog
from gamification.application.ledger import PointsLedger
from gamification.domain.achievement_rules import (
    AchievementCandidate,
    UserStats,
    candidate_achievements,
    level_achievement,
)
from gamification.domain.events import ACHIEVEMENT_KEY_PREFIX, EventType, validate_identifier
from gamification.errors import PersistenceError
from gamification.utils.clock import utcnow

logger = logging.getLogger(__name__)

ACHIEVEMENT_REASON = "ACHIEVEMENT"


@dataclass(frozen=True)
class GrantedAchievement:
    achievement_id: str
    title: str
    category: str
    rarity: str
    points_awarded: int

    @classmethod
    def from_candidate(cls, candidate: AchievementCandidate) -> "GrantedAchievement":
        return cls(
            achievement_id=candidate.achievement_id,
            title=candidate.title,
            category=candidate.category,
            rarity=candidate.rarity,
            points_awarded=candidate.points,
        )


class AchievementEvaluator:
    def __init__(self, db: Session):
        self.db = db
        self.catalog = AchievementCatalog(db)
        self.ledger = PointsLedger(db)

    def evaluate_and_grant(
        self,
        user_id: str,
        event_type: str,
        event_metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> List[GrantedAchievement]:
        """
        Grant every newly reached milestone.

        Returns:
            Achievements granted by this call (level badges unlocked by the
            bonus points included)

        Raises:
            ValidationError: empty user_id / event_type
            PersistenceError: the store failed
        """
        validate_identifier(user_id, "user_id")
        validate_identifier(event_type, "event_type")
        now = now or utcnow()

        try:
            stats = self.collect_stats(user_id, event_type)
            candidates = candidate_achievements(stats, event_type, self.catalog.unlocked_ids(user_id))

            granted: List[GrantedAchievement] = []
            for candidate in candidates:
                if not self.catalog.grant(user_id, candidate, now=now):
                    continue
                granted.append(GrantedAchievement.from_candidate(candidate))
                logger.info(
                    "User %s unlocked %s (%s, +%d points)",
                    user_id, candidate.achievement_id, candidate.rarity, candidate.points,
                )
                if candidate.points > 0:
                    granted.extend(self._award_bonus(user_id, candidate, event_type, now))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to evaluate achievements for user {user_id}") from exc

        return granted

    def collect_stats(self, user_id: str, event_type: str) -> UserStats:
        balance = self.ledger.get_balance(user_id)
        lessons = events = 0
        if event_type == EventType.LESSON_COMPLETED:
            lessons = self.ledger.count_transactions(user_id, EventType.LESSON_COMPLETED)
        elif event_type == EventType.EVENT_PARTICIPATED:
            events = self.ledger.count_transactions(user_id, EventType.EVENT_PARTICIPATED)
        return UserStats(
            total_points=balance.total_points if balance else 0,
            current_level=balance.current_level if balance else 1,
            lessons_completed=lessons,
            events_attended=events,
        )

    def _award_bonus(
        self,
        user_id: str,
        candidate: AchievementCandidate,
        event_type: str,
        now: datetime,
    ) -> List[GrantedAchievement]:
        result = self.ledger.award_points(
            user_id,
            candidate.points,
            ACHIEVEMENT_REASON,
            metadata={
                "achievementId": candidate.achievement_id,
                "reasonLabel": candidate.title,
                "eventType": event_type,
            },
            idempotency_key=f"{ACHIEVEMENT_KEY_PREFIX}{candidate.achievement_id}",
            now=now,
        )
        return [
            GrantedAchievement.from_candidate(level_achievement(level))
            for level in result.badge_levels
        ]

    def granted_ids(self, user_id: str) -> List[str]:
        return sorted(self.catalog.unlocked_ids(user_id))
