"""
Streak continuity rules (calendar dates only, no time of day).

Transitions for one (user, streak_type):
- no previous activity       → start at 1
- last activity == today     → unchanged (same-day replay)
- last activity == yesterday → +1, longest = max(longest, current)
- any earlier date           → reset to 1, longest unchanged
"""
from dataclasses import dataclass
from datetime import date, timedelta

STREAK_STARTED = "STARTED"
STREAK_UNCHANGED = "UNCHANGED"
STREAK_CONTINUED = "CONTINUED"
STREAK_RESET = "RESET"


@dataclass(frozen=True)
class StreakState:
    user_id: str
    streak_type: str
    current_streak: int
    longest_streak: int
    last_activity_date: date | None
    is_active: bool
    transition: str = STREAK_UNCHANGED


def next_streak(
    current_streak: int,
    longest_streak: int,
    last_activity_date: date | None,
    today: date,
) -> tuple[int, int, str]:
    """
    Pure function: apply one activity on `today` to the previous counters.

    Returns:
        (current_streak, longest_streak, transition)
    """
    if last_activity_date is None:
        return 1, max(longest_streak, 1), STREAK_STARTED

    if last_activity_date >= today:
        # Same day (or a late event for an already-counted day)
        return current_streak, longest_streak, STREAK_UNCHANGED

    if last_activity_date == today - timedelta(days=1):
        new_current = current_streak + 1
        return new_current, max(longest_streak, new_current), STREAK_CONTINUED

    return 1, longest_streak, STREAK_RESET
