"""
Tests for StreakTracker (stored streak transitions).
"""
import pytest
from datetime import date, timedelta

from gamification.application.streaks import StreakTracker
from gamification.domain.streak import (
    STREAK_CONTINUED,
    STREAK_RESET,
    STREAK_STARTED,
    STREAK_UNCHANGED,
)
from gamification.errors import ValidationError


D = date(2026, 3, 10)


def test_first_activity_starts_streak(db_session, sample_user_id):
    state = StreakTracker(db_session).record_activity(sample_user_id, "DAILY_LOGIN", D)

    assert state.current_streak == 1
    assert state.longest_streak == 1
    assert state.last_activity_date == D
    assert state.is_active
    assert state.transition == STREAK_STARTED


def test_same_day_activity_is_noop(db_session, sample_user_id):
    tracker = StreakTracker(db_session)
    tracker.record_activity(sample_user_id, "DAILY_LOGIN", D)

    state = tracker.record_activity(sample_user_id, "DAILY_LOGIN", D)

    assert state.current_streak == 1
    assert state.transition == STREAK_UNCHANGED


def test_next_day_continues_streak(db_session, sample_user_id):
    tracker = StreakTracker(db_session)
    tracker.record_activity(sample_user_id, "DAILY_LOGIN", D)

    state = tracker.record_activity(sample_user_id, "DAILY_LOGIN", D + timedelta(days=1))

    assert state.current_streak == 2
    assert state.longest_streak == 2
    assert state.transition == STREAK_CONTINUED
    stored = tracker.get_streak(sample_user_id, "DAILY_LOGIN")
    assert stored.current_streak == 2
    assert stored.last_activity_date == D + timedelta(days=1)


def test_gap_resets_streak_and_keeps_longest(db_session, sample_user_id):
    tracker = StreakTracker(db_session)
    tracker.record_activity(sample_user_id, "DAILY_LOGIN", D)
    tracker.record_activity(sample_user_id, "DAILY_LOGIN", D + timedelta(days=1))

    state = tracker.record_activity(sample_user_id, "DAILY_LOGIN", D + timedelta(days=4))

    assert state.current_streak == 1
    assert state.longest_streak == 2
    assert state.transition == STREAK_RESET


def test_streak_types_are_independent(db_session, sample_user_id):
    tracker = StreakTracker(db_session)
    tracker.record_activity(sample_user_id, "DAILY_LOGIN", D)
    tracker.record_activity(sample_user_id, "DAILY_LOGIN", D + timedelta(days=1))
    tracker.record_activity(sample_user_id, "LESSON_COMPLETED", D + timedelta(days=1))

    streaks = {s.streak_type: s.current_streak for s in tracker.get_streaks(sample_user_id)}

    assert streaks == {"DAILY_LOGIN": 2, "LESSON_COMPLETED": 1}


def test_get_streak_missing_returns_none(db_session, sample_user_id):
    assert StreakTracker(db_session).get_streak(sample_user_id, "DAILY_LOGIN") is None


def test_empty_streak_type_rejected(db_session, sample_user_id):
    with pytest.raises(ValidationError):
        StreakTracker(db_session).record_activity(sample_user_id, "", D)


def test_lost_race_keeps_stored_state(db_session, sample_user_id, monkeypatch):
    tracker = StreakTracker(db_session, retries=2)
    tracker.record_activity(sample_user_id, "DAILY_LOGIN", D)
    attempts = []

    def always_lose(*args):
        attempts.append(args)
        return None

    monkeypatch.setattr(tracker, "_try_record", always_lose)
    state = tracker.record_activity(sample_user_id, "DAILY_LOGIN", D + timedelta(days=1))

    assert len(attempts) == 3
    assert state.current_streak == 1
    assert state.last_activity_date == D
    assert state.transition == STREAK_UNCHANGED


def test_expire_stale_deactivates_only_broken_streaks(db_session):
    tracker = StreakTracker(db_session)
    tracker.record_activity("user-a", "DAILY_LOGIN", D)
    tracker.record_activity("user-b", "DAILY_LOGIN", D + timedelta(days=1))

    expired = tracker.expire_stale(today=D + timedelta(days=2))

    assert expired == 1
    assert not tracker.get_streak("user-a", "DAILY_LOGIN").is_active
    assert tracker.get_streak("user-b", "DAILY_LOGIN").is_active


def test_activity_after_expiry_reactivates(db_session, sample_user_id):
    tracker = StreakTracker(db_session)
    tracker.record_activity(sample_user_id, "DAILY_LOGIN", D)
    tracker.expire_stale(today=D + timedelta(days=3))

    state = tracker.record_activity(sample_user_id, "DAILY_LOGIN", D + timedelta(days=3))

    assert state.current_streak == 1
    assert state.is_active
    assert state.transition == STREAK_RESET
