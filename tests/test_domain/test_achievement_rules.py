"""
Tests for milestone achievement rules (pure functions).
"""
from gamification.domain.achievement_rules import (
    UserStats,
    candidate_achievements,
    event_achievement,
    lesson_achievement,
    level_achievement,
    level_nominal_points,
    points_achievement,
    RARITY_COMMON,
    RARITY_EPIC,
    RARITY_LEGENDARY,
    RARITY_RARE,
)
from gamification.domain.events import EventType


def _ids(candidates):
    return [c.achievement_id for c in candidates]


# ---------------------------------------------------------------------------
# builders
# ---------------------------------------------------------------------------

def test_points_achievement_bonus_and_rarity():
    assert points_achievement(100).points == 10
    assert points_achievement(100).rarity == RARITY_COMMON
    assert points_achievement(1000).rarity == RARITY_RARE
    assert points_achievement(10000).rarity == RARITY_EPIC
    assert points_achievement(50000).rarity == RARITY_LEGENDARY


def test_lesson_and_event_bonus():
    assert lesson_achievement(1).points == 5
    assert lesson_achievement(25).rarity == RARITY_RARE
    assert event_achievement(3).points == 30
    assert event_achievement(10).rarity == RARITY_RARE


def test_level_achievement_is_badge_only():
    badge = level_achievement(10)
    assert badge.achievement_id == "level_10"
    assert badge.points == 0
    assert badge.rarity == RARITY_RARE
    assert badge.metadata == {"level": 10, "nominalPoints": 20}
    assert badge.criteria == {"type": "LEVEL", "threshold": 10}


# ---------------------------------------------------------------------------
# candidate_achievements
# ---------------------------------------------------------------------------

def test_no_candidates_for_fresh_user():
    assert candidate_achievements(UserStats(), EventType.DAILY_LOGIN) == []


def test_first_lesson_yields_lessons_1():
    stats = UserStats(total_points=10, lessons_completed=1)
    assert _ids(candidate_achievements(stats, EventType.LESSON_COMPLETED)) == ["lessons_1"]


def test_lesson_rules_ignored_for_other_event_types():
    stats = UserStats(total_points=10, lessons_completed=5)
    assert candidate_achievements(stats, EventType.DAILY_LOGIN) == []


def test_event_rules_apply_to_event_participation():
    stats = UserStats(events_attended=3)
    assert _ids(candidate_achievements(stats, EventType.EVENT_PARTICIPATED)) == ["events_1", "events_3"]


def test_points_and_level_candidates():
    stats = UserStats(total_points=500, current_level=3)
    ids = _ids(candidate_achievements(stats, "CUSTOM_EVENT"))
    assert ids == ["points_100", "points_500", "level_2", "level_3"]


def test_already_unlocked_are_skipped():
    stats = UserStats(total_points=500, current_level=3)
    ids = _ids(candidate_achievements(stats, "CUSTOM_EVENT", {"points_100", "level_2"}))
    assert ids == ["points_500", "level_3"]


def test_level_nominal_points_has_floor_of_ten():
    assert level_nominal_points(2) == 10
    assert level_nominal_points(5) == 10
    assert level_nominal_points(30) == 60
