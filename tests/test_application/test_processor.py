"""
Tests for EventProcessor: end-to-end event handling and stage isolation.
"""
import pytest
from datetime import date, datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from gamification.application.catalog import AchievementCatalog
from gamification.application.ledger import PointsLedger
from gamification.application.processor import (
    EventProcessor,
    STAGES,
    STAGE_LEADERBOARD,
    STAGE_STREAK,
)
from gamification.application.streaks import StreakTracker
from gamification.domain.events import EventType
from gamification.errors import PersistenceError, ValidationError


NOW = datetime(2026, 3, 11, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# end-to-end
# ---------------------------------------------------------------------------

def test_lesson_completed_end_to_end(db_session, sample_user_id):
    result = EventProcessor(db_session).process_event(
        sample_user_id, EventType.LESSON_COMPLETED, {"lessonId": "l-1"}, 10, occurred_at=NOW
    )

    assert result.success
    assert [s.stage for s in result.stages] == list(STAGES)
    assert result.award.points == 10
    assert [a.achievement_id for a in result.achievements] == ["lessons_1"]
    assert result.rewards == []

    balance = PointsLedger(db_session).get_balance(sample_user_id)
    assert balance.total_points == 15
    assert balance.current_level == 1

    streak = StreakTracker(db_session).get_streak(sample_user_id, EventType.LESSON_COMPLETED)
    assert streak.current_streak == 1
    assert streak.last_activity_date == date(2026, 3, 11)

    # Leaderboard runs after achievements, so the bonus is included
    scores = {s.period: s.score for s in result.leaderboard}
    assert scores == {"ALL_TIME": 15, "WEEKLY": 15}


def test_redelivered_event_is_not_counted_twice(db_session, sample_user_id):
    processor = EventProcessor(db_session)
    processor.process_event(
        sample_user_id, EventType.LESSON_COMPLETED, {"uniqueKey": "lesson-1"}, 10, occurred_at=NOW
    )

    result = processor.process_event(
        sample_user_id, EventType.LESSON_COMPLETED, {"uniqueKey": "lesson-1"}, 10, occurred_at=NOW
    )

    assert result.success
    assert result.award.replayed
    assert result.achievements == []
    assert PointsLedger(db_session).get_balance(sample_user_id).total_points == 15
    assert PointsLedger(db_session).reconcile(sample_user_id).consistent


def test_reaching_level_2_grants_level_badge(db_session, sample_user_id):
    processor = EventProcessor(db_session)
    processor.process_event(sample_user_id, EventType.DAILY_LOGIN, points=99, occurred_at=NOW)

    result = processor.process_event(sample_user_id, EventType.DAILY_LOGIN, points=1, occurred_at=NOW)

    assert result.success
    assert result.award.previous_level == 1
    assert result.award.level == 2
    unlocked = AchievementCatalog(db_session).unlocked_ids(sample_user_id)
    assert {"level_2", "points_100"} <= unlocked
    assert PointsLedger(db_session).get_balance(sample_user_id).total_points == 110


def test_milestone_reward_issued_after_achievements(db_session, sample_user_id):
    result = EventProcessor(db_session).process_event(
        sample_user_id, EventType.DAILY_LOGIN, points=1000, occurred_at=NOW
    )

    assert result.success
    assert [r.reward_key for r in result.rewards] == ["auto_reward_1000"]
    # 1000 + points_100/500/1000 bonuses (10 + 50 + 100) + milestone bonus 100
    ledger = PointsLedger(db_session)
    assert ledger.get_balance(sample_user_id).total_points == 1260
    assert ledger.reconcile(sample_user_id).consistent


def test_zero_point_event_still_counts_streak(db_session, sample_user_id):
    result = EventProcessor(db_session).process_event(
        sample_user_id, EventType.DAILY_LOGIN, occurred_at=NOW
    )

    assert result.success
    assert result.award.points == 0
    assert result.streak.current_streak == 1
    assert result.leaderboard == []


def test_unknown_event_type_is_processed(db_session, sample_user_id):
    result = EventProcessor(db_session).process_event(
        sample_user_id, "QUIZ_PASSED", points=20, occurred_at=NOW
    )

    assert result.success
    assert not result.event.is_known_type
    assert result.streak.streak_type == "QUIZ_PASSED"
    assert PointsLedger(db_session).get_balance(sample_user_id).total_points == 20


# ---------------------------------------------------------------------------
# validation and failures
# ---------------------------------------------------------------------------

def test_invalid_event_rejected_before_any_write(db_session, sample_user_id):
    with pytest.raises(ValidationError):
        EventProcessor(db_session).process_event(sample_user_id, EventType.DAILY_LOGIN, points=-5)

    assert PointsLedger(db_session).get_balance(sample_user_id) is None


def test_failed_stage_does_not_block_others(db_session, sample_user_id, monkeypatch):
    processor = EventProcessor(db_session)

    def broken(*args, **kwargs):
        raise PersistenceError("streak store unavailable")

    monkeypatch.setattr(processor.streaks, "record_activity", broken)
    result = processor.process_event(
        sample_user_id, EventType.LESSON_COMPLETED, points=10, occurred_at=NOW
    )

    assert not result.success
    (failed,) = result.failed_stages
    assert failed.stage == STAGE_STREAK
    assert failed.error_kind == "PERSISTENCE_ERROR"
    assert "streak store unavailable" in failed.error
    assert result.streak is None
    # Earlier and later stages still committed
    assert [a.achievement_id for a in result.achievements] == ["lessons_1"]
    assert PointsLedger(db_session).get_balance(sample_user_id).total_points == 15
    assert StreakTracker(db_session).get_streak(sample_user_id, EventType.LESSON_COMPLETED) is None


def test_raw_database_error_reported_as_persistence_error(db_session, sample_user_id, monkeypatch):
    processor = EventProcessor(db_session)

    def broken(*args, **kwargs):
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(processor.leaderboard, "refresh_points", broken)
    result = processor.process_event(sample_user_id, EventType.DAILY_LOGIN, points=5, occurred_at=NOW)

    assert [s.stage for s in result.failed_stages] == [STAGE_LEADERBOARD]
    assert result.failed_stages[0].error_kind == "PERSISTENCE_ERROR"
    assert PointsLedger(db_session).get_balance(sample_user_id).total_points == 5


def test_retry_after_failed_stage_completes_event(db_session, sample_user_id, monkeypatch):
    processor = EventProcessor(db_session)

    def broken(*args, **kwargs):
        raise PersistenceError("streak store unavailable")

    with monkeypatch.context() as patch:
        patch.setattr(processor.streaks, "record_activity", broken)
        processor.process_event(
            sample_user_id, EventType.LESSON_COMPLETED, points=10, idempotency_key="lesson-9", occurred_at=NOW
        )

    result = processor.process_event(
        sample_user_id, EventType.LESSON_COMPLETED, points=10, idempotency_key="lesson-9", occurred_at=NOW
    )

    assert result.success
    assert result.streak.current_streak == 1
    assert PointsLedger(db_session).get_balance(sample_user_id).total_points == 15


def test_caller_cannot_take_milestone_reward_key(db_session, sample_user_id):
    processor = EventProcessor(db_session)
    with pytest.raises(ValidationError):
        processor.process_event(
            sample_user_id, EventType.DAILY_LOGIN, points=5, idempotency_key="auto_reward_1000", occurred_at=NOW
        )

    result = processor.process_event(sample_user_id, EventType.DAILY_LOGIN, points=2000, occurred_at=NOW)

    assert [(r.reward_key, r.bonus_points) for r in result.rewards] == [("auto_reward_1000", 100)]
    # 2000 + points_100/500/1000 bonuses (10 + 50 + 100) + milestone bonus 100
    ledger = PointsLedger(db_session)
    assert ledger.get_balance(sample_user_id).total_points == 2260
    assert ledger.reconcile(sample_user_id).consistent
