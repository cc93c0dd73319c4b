"""Daily reading streak rules.

Streaks are calendar-day based: two reads an hour apart across midnight
extend the streak, two reads 23 hours apart on the same date do not.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class StreakUpdate:
    current_streak: int
    longest_streak: int
    updated: bool


def compute_streak(
    last_read_date: date | None,
    today: date,
    current_streak: int,
    longest_streak: int,
) -> StreakUpdate:
    """Apply one verse read on ``today`` to the stored streak state."""
    if last_read_date is None:
        new_streak, updated = 1, True
    elif last_read_date == today:
        new_streak, updated = current_streak, False
    elif (today - last_read_date).days == 1:
        new_streak, updated = current_streak + 1, True
    else:
        # Gap of more than a day, or a last read dated in the future
        new_streak, updated = 1, True

    return StreakUpdate(
        current_streak=new_streak,
        longest_streak=max(longest_streak, new_streak),
        updated=updated,
    )
