"""Group weekly leveling.

A group's ``weekly_xp`` is the XP its members earned since the current
Sun-Sat week began. Rollover is lazy: a stale ``week_start_date`` is
detected and reset on the next contribution (or read), not by a timer.
``current_level`` is always re-derived from ``weekly_xp``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.db.base import utcnow
from scrolily.db.models import Group, GroupMembership
from scrolily.errors import GroupNotFound
from scrolily.progression.calendar import app_today, week_start

logger = logging.getLogger(__name__)

GROUP_LEVELS: list[dict] = [
    {"level": "Angels", "min_xp": 0, "level_order": 1, "color": "#94a3b8"},
    {"level": "Archangels", "min_xp": 500, "level_order": 2, "color": "#3b82f6"},
    {"level": "Virtues", "min_xp": 1000, "level_order": 3, "color": "#8b5cf6"},
    {"level": "Cherubim", "min_xp": 2000, "level_order": 4, "color": "#f59e0b"},
    {"level": "Seraphim", "min_xp": 5000, "level_order": 5, "color": "#f97316"},
]

LOWEST_LEVEL = GROUP_LEVELS[0]["level"]


def classify_group_level(weekly_xp: int) -> dict:
    """Highest level whose ``min_xp`` is at or below ``weekly_xp``."""
    current = GROUP_LEVELS[0]
    for level in GROUP_LEVELS:
        if weekly_xp >= level["min_xp"]:
            current = level
    return current


def next_group_level(level_name: str) -> dict | None:
    for i, level in enumerate(GROUP_LEVELS):
        if level["level"] == level_name:
            return GROUP_LEVELS[i + 1] if i + 1 < len(GROUP_LEVELS) else None
    return None


def effective_weekly_xp(group: Group, today: date) -> int:
    """``weekly_xp`` as of ``today``; 0 when the stored week is stale."""
    if group.week_start_date != week_start(today):
        return 0
    return group.weekly_xp


def apply_rollover(group: Group, today: date, now: datetime | None = None) -> bool:
    """Reset a stale week in place. Returns True if the group rolled over."""
    current_week = week_start(today)
    if group.week_start_date == current_week:
        return False
    group.weekly_xp = 0
    group.week_start_date = current_week
    _set_level(group, now)
    return True


def _set_level(group: Group, now: datetime | None = None) -> None:
    level = classify_group_level(group.weekly_xp)["level"]
    if level != group.current_level:
        logger.info(
            "Group %d level %s -> %s (weekly_xp=%d)",
            group.id, group.current_level, level, group.weekly_xp,
        )
        group.current_level = level
        group.level_updated_at = now or utcnow()


async def lock_group(db: AsyncSession, group_id: int) -> Group | None:
    result = await db.execute(
        select(Group)
        .where(Group.id == group_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def contribute_group_xp(
    db: AsyncSession,
    user_id: int,
    amount: int,
    today: date | None = None,
    now: datetime | None = None,
) -> list[int]:
    """Add a member's XP gain to every group they belong to.

    Returns the ids of the groups that received the contribution.
    """
    if amount <= 0:
        return []
    today = today or app_today(now)
    result = await db.execute(
        select(GroupMembership.group_id)
        .where(GroupMembership.user_id == user_id)
        .order_by(GroupMembership.group_id)
    )
    group_ids = list(result.scalars().all())
    for group_id in group_ids:
        group = await lock_group(db, group_id)
        if group is None:
            continue
        apply_rollover(group, today, now)
        group.weekly_xp += amount
        _set_level(group, now)
    return group_ids


async def get_group_level_info(
    db: AsyncSession,
    group_id: int,
    today: date | None = None,
) -> dict[str, Any]:
    """Level view for a group. Read-only: a stale week reads as zero."""
    group = await db.get(Group, group_id)
    if group is None:
        raise GroupNotFound(group_id)
    today = today or app_today()
    weekly_xp = effective_weekly_xp(group, today)
    level = classify_group_level(weekly_xp)
    nxt = next_group_level(level["level"])
    return {
        "group_id": group.id,
        "current_level": level["level"],
        "color": level["color"],
        "weekly_xp": weekly_xp,
        "next_level": nxt["level"] if nxt else None,
        "next_level_min_xp": nxt["min_xp"] if nxt else None,
        "xp_to_next_level": nxt["min_xp"] - weekly_xp if nxt else None,
        "week_start_date": week_start(today),
    }


def get_group_level_thresholds() -> list[dict]:
    return [dict(level) for level in GROUP_LEVELS]


async def recalculate_group_levels(
    db: AsyncSession,
    today: date | None = None,
    now: datetime | None = None,
) -> int:
    """Apply the weekly rollover to every group. Returns groups that rolled over."""
    today = today or app_today(now)
    result = await db.execute(
        select(Group.id).where(
            (Group.week_start_date.is_(None)) | (Group.week_start_date != week_start(today))
        )
    )
    rolled = 0
    for group_id in list(result.scalars().all()):
        group = await lock_group(db, group_id)
        if group is not None and apply_rollover(group, today, now):
            rolled += 1
    await db.flush()
    logger.info("Recalculated group levels: %d groups rolled over", rolled)
    return rolled
