"""Per-user, per-day XP buckets backing the rolling tier window."""

from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.config import get_settings
from scrolily.db.models import RollingXpDay
from scrolily.db.upsert import insert_for
from scrolily.progression.calendar import app_today, window_start

logger = logging.getLogger(__name__)


async def add_rolling_xp(db: AsyncSession, user_id: int, day: date, amount: int) -> None:
    """Additively upsert ``amount`` into the (user, day) bucket."""
    stmt = insert_for(db, RollingXpDay).values(user_id=user_id, date=day, xp_earned=amount)
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "date"],
        set_={"xp_earned": RollingXpDay.xp_earned + stmt.excluded.xp_earned},
    )
    await db.execute(stmt)


async def get_rolling_xp(
    db: AsyncSession,
    user_id: int,
    today: date | None = None,
    days: int | None = None,
) -> int:
    """Sum of the user's buckets over the inclusive window ending ``today``."""
    today = today or app_today()
    days = days or get_settings().rolling_window_days
    result = await db.execute(
        select(func.coalesce(func.sum(RollingXpDay.xp_earned), 0)).where(
            RollingXpDay.user_id == user_id,
            RollingXpDay.date >= window_start(today, days),
            RollingXpDay.date <= today,
        )
    )
    return int(result.scalar_one())


async def get_rolling_xp_history(
    db: AsyncSession,
    user_id: int,
    days: int | None = None,
    today: date | None = None,
) -> list[dict]:
    """One entry per day, oldest first, zero-filled."""
    today = today or app_today()
    days = days or get_settings().rolling_window_days
    start = window_start(today, days)
    result = await db.execute(
        select(RollingXpDay.date, RollingXpDay.xp_earned).where(
            RollingXpDay.user_id == user_id,
            RollingXpDay.date >= start,
            RollingXpDay.date <= today,
        )
    )
    by_day = {row.date: row.xp_earned for row in result.all()}
    return [
        {"date": start + timedelta(days=i), "xp_earned": by_day.get(start + timedelta(days=i), 0)}
        for i in range(days)
    ]


async def cleanup_old_rolling_xp(db: AsyncSession, today: date | None = None) -> int:
    """Delete buckets older than the retention horizon. Returns rows deleted."""
    today = today or app_today()
    cutoff = today - timedelta(days=get_settings().rolling_xp_retention_days)
    result = await db.execute(delete(RollingXpDay).where(RollingXpDay.date < cutoff))
    deleted = result.rowcount or 0
    logger.info("Cleaned up %d rolling XP buckets older than %s", deleted, cutoff)
    return deleted
