"""
EventProcessor: entry point that turns one activity event into ledger,
streak, achievement, leaderboard and reward updates.

Stages run in order, each in its own database transaction:
  1. award_points       (PointsLedger)
  2. record_streak      (StreakTracker)
  3. achievements       (AchievementEvaluator)
  4. leaderboard        (LeaderboardMaintainer)
  5. automatic_rewards  (MilestoneRewardIssuer)

A failed stage is rolled back and reported, and the remaining stages
still run against whatever state is committed. Earlier stages are never
undone. Re-submitting the same event with the same idempotency key is
safe: points, grants and markers are all keyed writes.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gamification.application.achievements import AchievementEvaluator, GrantedAchievement
from gamification.application.ledger import AwardResult, PointsLedger
from gamification.application.rewards import IssuedReward, MilestoneRewardIssuer
from gamification.application.streaks import StreakTracker
from gamification.domain.events import ActivityEvent
from gamification.domain.streak import StreakState
from gamification.errors import GamificationError, PersistenceError
from gamification.readmodels.leaderboard import LeaderboardMaintainer, LeaderboardScore
from gamification.utils import clock

logger = logging.getLogger(__name__)

STAGE_AWARD_POINTS = "award_points"
STAGE_STREAK = "record_streak"
STAGE_ACHIEVEMENTS = "achievements"
STAGE_LEADERBOARD = "leaderboard"
STAGE_REWARDS = "automatic_rewards"

STAGES = (
    STAGE_AWARD_POINTS,
    STAGE_STREAK,
    STAGE_ACHIEVEMENTS,
    STAGE_LEADERBOARD,
    STAGE_REWARDS,
)


@dataclass(frozen=True)
class StageOutcome:
    stage: str
    succeeded: bool
    error_kind: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ProcessResult:
    event: ActivityEvent
    stages: List[StageOutcome] = field(default_factory=list)
    award: Optional[AwardResult] = None
    streak: Optional[StreakState] = None
    achievements: List[GrantedAchievement] = field(default_factory=list)
    leaderboard: List[LeaderboardScore] = field(default_factory=list)
    rewards: List[IssuedReward] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(outcome.succeeded for outcome in self.stages)

    @property
    def failed_stages(self) -> List[StageOutcome]:
        return [outcome for outcome in self.stages if not outcome.succeeded]


class EventProcessor:
    """
    Stateless orchestrator over an injected session.

    Usage:
        result = EventProcessor(db).process_event("user-1", "LESSON_COMPLETED", {"lessonId": "l-7"}, 10)
        if not result.success:
            ...  # log result.failed_stages, retry later with the same key
    """

    def __init__(self, db: Session):
        self.db = db
        self.ledger = PointsLedger(db)
        self.streaks = StreakTracker(db)
        self.achievements = AchievementEvaluator(db)
        self.leaderboard = LeaderboardMaintainer(db)
        self.rewards = MilestoneRewardIssuer(db)

    def process_event(
        self,
        user_id: str,
        event_type: str,
        metadata: Optional[Dict[str, Any]] = None,
        points: int = 0,
        idempotency_key: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
    ) -> ProcessResult:
        """
        Process one activity event.

        Args:
            user_id: User ID
            event_type: Activity type (see EventType; unknown types are accepted)
            metadata: Free-form context, stored on the ledger row
            points: Points for the activity (>= 0)
            idempotency_key: Key for retried deliveries (also read from metadata["uniqueKey"])
            occurred_at: Event time (default: now); sets the streak day

        Returns:
            ProcessResult with one StageOutcome per stage

        Raises:
            ValidationError: malformed input (nothing is written)
        """
        event = ActivityEvent.create(user_id, event_type, metadata, points, idempotency_key)
        now = occurred_at or clock.utcnow()
        today = clock.today(now)
        result = ProcessResult(event=event)

        def award():
            result.award = self.ledger.award_points(
                event.user_id,
                event.points,
                event.event_type,
                metadata={**event.metadata, "eventType": event.event_type},
                idempotency_key=event.idempotency_key,
                now=now,
            )

        def streak():
            result.streak = self.streaks.record_activity(event.user_id, event.event_type, today)

        def achievements():
            result.achievements = self.achievements.evaluate_and_grant(
                event.user_id, event.event_type, event.metadata, now=now
            )

        def leaderboard():
            result.leaderboard = self.leaderboard.refresh_points(event.user_id, today=today)

        def rewards():
            result.rewards = self.rewards.issue_automatic_rewards(event.user_id, now=now)

        steps: Dict[str, Callable[[], None]] = {
            STAGE_AWARD_POINTS: award,
            STAGE_STREAK: streak,
            STAGE_ACHIEVEMENTS: achievements,
            STAGE_LEADERBOARD: leaderboard,
            STAGE_REWARDS: rewards,
        }
        for stage in STAGES:
            result.stages.append(self._run_stage(stage, steps[stage], event))

        if result.success:
            logger.info(
                "Processed %s for user %s: +%d points, %d achievement(s), %d reward(s)",
                event.event_type, event.user_id,
                result.award.points if result.award else 0,
                len(result.achievements), len(result.rewards),
            )
        else:
            logger.warning(
                "Processed %s for user %s with failed stages: %s",
                event.event_type, event.user_id,
                ", ".join(outcome.stage for outcome in result.failed_stages),
            )
        return result

    def _run_stage(self, stage: str, step: Callable[[], None], event: ActivityEvent) -> StageOutcome:
        """Run one stage in its own transaction: commit on success, roll back on failure."""
        try:
            step()
            self.db.commit()
        except (GamificationError, SQLAlchemyError) as exc:
            self.db.rollback()
            logger.exception("Stage %s failed for user %s (%s)", stage, event.user_id, event.event_type)
            kind = exc.kind if isinstance(exc, GamificationError) else PersistenceError.kind
            return StageOutcome(stage=stage, succeeded=False, error_kind=kind, error=str(exc))
        return StageOutcome(stage=stage, succeeded=True)
