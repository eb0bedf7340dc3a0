"""
Milestone achievement rules.

Every threshold maps to a stable achievement id:
  points_<m>   total points   100 .. 100000      bonus m // 10
  lessons_<m>  lessons done   1 .. 100           bonus m * 5
  events_<m>   events joined  1 .. 20            bonus m * 10
  level_<n>    level reached  every level >= 2   badge only (nominal max(10, 2n) kept in metadata)

Rarity grows with the threshold.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from gamification.domain.events import EventType

RARITY_COMMON = "COMMON"
RARITY_RARE = "RARE"
RARITY_EPIC = "EPIC"
RARITY_LEGENDARY = "LEGENDARY"

CATEGORY_POINTS = "POINTS"
CATEGORY_LESSON = "LESSON"
CATEGORY_EVENT = "EVENT"
CATEGORY_LEVEL = "LEVEL"

POINT_MILESTONES = (100, 500, 1000, 5000, 10000, 25000, 50000, 100000)
LESSON_MILESTONES = (1, 5, 10, 25, 50, 100)
EVENT_MILESTONES = (1, 3, 5, 10, 20)


@dataclass(frozen=True)
class AchievementCandidate:
    achievement_id: str
    title: str
    description: str
    category: str
    rarity: str
    points: int
    threshold: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def criteria(self) -> Dict[str, Any]:
        return {"type": self.category, "threshold": self.threshold}


@dataclass(frozen=True)
class UserStats:
    """Aggregate state the rules are evaluated against."""
    total_points: int = 0
    current_level: int = 1
    lessons_completed: int = 0
    events_attended: int = 0


def points_rarity(milestone: int) -> str:
    if milestone >= 50000:
        return RARITY_LEGENDARY
    if milestone >= 10000:
        return RARITY_EPIC
    if milestone >= 1000:
        return RARITY_RARE
    return RARITY_COMMON


def lesson_rarity(milestone: int) -> str:
    if milestone >= 50:
        return RARITY_EPIC
    if milestone >= 25:
        return RARITY_RARE
    return RARITY_COMMON


def event_rarity(milestone: int) -> str:
    return RARITY_RARE if milestone >= 10 else RARITY_COMMON


def level_rarity(level: int) -> str:
    if level >= 50:
        return RARITY_LEGENDARY
    if level >= 25:
        return RARITY_EPIC
    if level >= 10:
        return RARITY_RARE
    return RARITY_COMMON


def level_nominal_points(level: int) -> int:
    """Catalog value of a level badge. Recorded for display, never paid."""
    return max(10, level * 2)


def points_achievement(milestone: int) -> AchievementCandidate:
    return AchievementCandidate(
        achievement_id=f"points_{milestone}",
        title=f"{milestone:,} Points",
        description=f"Earned {milestone:,} points",
        category=CATEGORY_POINTS,
        rarity=points_rarity(milestone),
        points=milestone // 10,
        threshold=milestone,
    )


def lesson_achievement(milestone: int) -> AchievementCandidate:
    return AchievementCandidate(
        achievement_id=f"lessons_{milestone}",
        title=f"{milestone} Lessons Completed",
        description=f"Completed {milestone} lessons",
        category=CATEGORY_LESSON,
        rarity=lesson_rarity(milestone),
        points=milestone * 5,
        threshold=milestone,
    )


def event_achievement(milestone: int) -> AchievementCandidate:
    return AchievementCandidate(
        achievement_id=f"events_{milestone}",
        title=f"{milestone} Events",
        description=f"Took part in {milestone} events",
        category=CATEGORY_EVENT,
        rarity=event_rarity(milestone),
        points=milestone * 10,
        threshold=milestone,
    )


def level_achievement(level: int) -> AchievementCandidate:
    # Badge only: level badges never award points, so a level-up cannot cascade
    return AchievementCandidate(
        achievement_id=f"level_{level}",
        title=f"Level {level}",
        description=f"Reached level {level}",
        category=CATEGORY_LEVEL,
        rarity=level_rarity(level),
        points=0,
        threshold=level,
        metadata={"level": level, "nominalPoints": level_nominal_points(level)},
    )


def candidate_achievements(
    stats: UserStats,
    event_type: str,
    already_unlocked: Iterable[str] = (),
) -> List[AchievementCandidate]:
    """
    Pure function: thresholds reached by `stats` that are not yet unlocked.

    Lesson and event rules apply only to their own event type; points and
    level rules apply to every event.
    """
    unlocked = set(already_unlocked)
    candidates: List[AchievementCandidate] = []

    candidates.extend(points_achievement(m) for m in POINT_MILESTONES if stats.total_points >= m)

    if event_type == EventType.LESSON_COMPLETED:
        candidates.extend(
            lesson_achievement(m) for m in LESSON_MILESTONES if stats.lessons_completed >= m
        )
    elif event_type == EventType.EVENT_PARTICIPATED:
        candidates.extend(
            event_achievement(m) for m in EVENT_MILESTONES if stats.events_attended >= m
        )

    candidates.extend(level_achievement(lvl) for lvl in range(2, stats.current_level + 1))

    return [c for c in candidates if c.achievement_id not in unlocked]
