"""
Level calculator - pure functions of cumulative points.

Level formula: level = floor(sqrt(total_points / 100)) + 1
  Level 1:  0 .. 99 points
  Level 2:  100 .. 399
  Level 3:  400 .. 899
  ...
Points to go from level L to L+1: 100 * L² - 100 * (L-1)²
"""
import math
from dataclasses import dataclass

POINTS_PER_LEVEL_UNIT = 100


@dataclass(frozen=True)
class LevelInfo:
    level: int
    level_start: int        # total points at which this level begins
    next_level_start: int   # total points at which the next level begins
    points_in_level: int
    points_remaining: int

    @property
    def level_span(self) -> int:
        return self.next_level_start - self.level_start


def calculate_level(total_points: int) -> int:
    """Return the level for a cumulative points total (always >= 1)."""
    if total_points < 0:
        raise ValueError("total_points must be >= 0")
    # isqrt(floor(p / 100)) == floor(sqrt(p / 100)) without float rounding
    return math.isqrt(total_points // POINTS_PER_LEVEL_UNIT) + 1


def level_start(level: int) -> int:
    """Cumulative points at which `level` is reached."""
    if level < 1:
        raise ValueError("level must be >= 1")
    return POINTS_PER_LEVEL_UNIT * (level - 1) ** 2


def points_for_next_level(level: int) -> int:
    """Points needed to go from `level` to `level + 1`."""
    return level_start(level + 1) - level_start(level)


def level_info(total_points: int) -> LevelInfo:
    level = calculate_level(total_points)
    start = level_start(level)
    next_start = level_start(level + 1)
    return LevelInfo(
        level=level,
        level_start=start,
        next_level_start=next_start,
        points_in_level=total_points - start,
        points_remaining=next_start - total_points,
    )
