"""
AchievementCatalog - catalog rows and write-once user grants.

Used by the ledger (level-up badges) and by the achievement evaluator.
"""
import logging
from datetime import datetime
from typing import Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from gamification.domain.achievement_rules import AchievementCandidate
from gamification.infrastructure.db.models import Achievement, UserAchievement
from gamification.infrastructure.db.upsert import insert_ignore
from gamification.utils.clock import utcnow

logger = logging.getLogger(__name__)


class AchievementCatalog:
    def __init__(self, db: Session):
        self.db = db

    def ensure_achievement(self, candidate: AchievementCandidate) -> bool:
        """Create the catalog row if missing. Returns True if it was created."""
        created = insert_ignore(
            self.db,
            Achievement.__table__,
            {
                "id": candidate.achievement_id,
                "name": candidate.title,
                "description": candidate.description,
                "category": candidate.category,
                "rarity": candidate.rarity,
                "points_awarded": candidate.points,
                "criteria_json": candidate.criteria,
                "metadata_json": {"source": "auto", **candidate.metadata},
            },
            conflict_columns=("id",),
        )
        if created:
            logger.info("Created catalog achievement %s", candidate.achievement_id)
        return created

    def grant(self, user_id: str, candidate: AchievementCandidate, now: datetime | None = None) -> bool:
        """
        Insert the (user, achievement) row unless it already exists.

        Returns:
            True if this call granted it, False if it was already granted
            (including by a concurrent evaluation)
        """
        self.ensure_achievement(candidate)
        return insert_ignore(
            self.db,
            UserAchievement.__table__,
            {
                "user_id": user_id,
                "achievement_id": candidate.achievement_id,
                "unlocked_at": now or utcnow(),
            },
            conflict_columns=("user_id", "achievement_id"),
        )

    def unlocked_ids(self, user_id: str) -> Set[str]:
        rows = self.db.execute(
            select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
        ).scalars()
        return set(rows)
