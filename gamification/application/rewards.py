"""
MilestoneRewardIssuer: one-time bonus points when the balance crosses fixed totals.

Milestones: 1000, 5000, 10000, 25000, 50000 points; bonus = 10% of the milestone.

A user_rewards marker keyed by (user_id, "auto_reward_<m>") is written with
ON CONFLICT DO NOTHING before the bonus is paid, so a milestone is paid at
most once even under concurrent events. Marker and bonus share the caller's
transaction.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gamification.application.ledger import PointsLedger
from gamification.domain.events import AUTO_REWARD_KEY_PREFIX, validate_identifier
from gamification.errors import PersistenceError
from gamification.infrastructure.db.models import UserReward
from gamification.infrastructure.db.upsert import insert_ignore
from gamification.utils.clock import utcnow

logger = logging.getLogger(__name__)

AUTO_REWARD_REASON = "AUTO_REWARD"
REWARD_TYPE_EXTRA_POINTS = "EXTRA_POINTS"

REWARD_MILESTONES = (1000, 5000, 10000, 25000, 50000)
BONUS_RATE_PERCENT = 10


def reward_key(milestone: int) -> str:
    return f"{AUTO_REWARD_KEY_PREFIX}{milestone}"


def milestone_bonus(milestone: int) -> int:
    return milestone * BONUS_RATE_PERCENT // 100


@dataclass(frozen=True)
class IssuedReward:
    reward_key: str
    milestone: int
    bonus_points: int


class MilestoneRewardIssuer:
    def __init__(self, db: Session):
        self.db = db
        self.ledger = PointsLedger(db)

    def issue_automatic_rewards(self, user_id: str, now: Optional[datetime] = None) -> List[IssuedReward]:
        """
        Pay every reached, unclaimed milestone bonus.

        The balance is re-read after each bonus, so a bonus that itself
        crosses the next milestone is paid in the same call.

        Returns:
            Rewards issued by this call (usually empty)

        Raises:
            PersistenceError: the store failed
        """
        validate_identifier(user_id, "user_id")
        now = now or utcnow()
        issued: List[IssuedReward] = []

        try:
            claimed = self.claimed_keys(user_id)
            for milestone in REWARD_MILESTONES:
                key = reward_key(milestone)
                if key in claimed:
                    continue
                balance = self.ledger.get_balance(user_id)
                if balance is None or balance.total_points < milestone:
                    break

                bonus = milestone_bonus(milestone)
                if not self._write_marker(user_id, milestone, bonus, now):
                    # Claimed by a concurrent event
                    continue

                self.ledger.award_points(
                    user_id,
                    bonus,
                    AUTO_REWARD_REASON,
                    metadata={
                        "milestone": milestone,
                        "autoRewardId": key,
                        "reasonLabel": f"Automatic reward: {milestone} points",
                    },
                    idempotency_key=key,
                    now=now,
                )
                issued.append(IssuedReward(reward_key=key, milestone=milestone, bonus_points=bonus))
                logger.info("Issued %s to user %s (+%d points)", key, user_id, bonus)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to issue automatic rewards for user {user_id}") from exc

        return issued

    def _write_marker(self, user_id: str, milestone: int, bonus: int, now: datetime) -> bool:
        key = reward_key(milestone)
        return insert_ignore(
            self.db,
            UserReward.__table__,
            {
                "user_id": user_id,
                "reward_key": key,
                "reward_type": REWARD_TYPE_EXTRA_POINTS,
                "value": bonus,
                "milestone": milestone,
                "claimed": True,
                "claimed_at": now,
                "metadata_json": {"autoRewardId": key, "milestone": milestone},
                "created_at": now,
            },
            conflict_columns=("user_id", "reward_key"),
        )

    def claimed_keys(self, user_id: str) -> set[str]:
        return set(self.db.execute(
            select(UserReward.reward_key).where(UserReward.user_id == user_id)
        ).scalars())
