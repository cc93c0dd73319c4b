"""Tier classification from rolling-window XP.

The tier is a cache on the user row. It is always re-derived from the
rolling buckets, never incremented, so recomputing is idempotent.
"""

from __future__ import annotations

import logging
import math
from datetime import date
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.config import get_settings
from scrolily.db.models import RollingXpDay, TierThreshold, User
from scrolily.db.upsert import insert_for
from scrolily.errors import UserNotFound
from scrolily.progression.calendar import app_today, window_start
from scrolily.progression.rolling_xp import get_rolling_xp
from scrolily.redis_client import publish_event

logger = logging.getLogger(__name__)

DEFAULT_TIERS: list[dict] = [
    {"tier": "Bronze", "min_xp": 0, "tier_order": 1, "color": "#CD7F32"},
    {"tier": "Silver", "min_xp": 100, "tier_order": 2, "color": "#C0C0C0"},
    {"tier": "Gold", "min_xp": 300, "tier_order": 3, "color": "#FFD700"},
    {"tier": "Platinum", "min_xp": 600, "tier_order": 4, "color": "#E5E4E2"},
    {"tier": "Diamond", "min_xp": 1000, "tier_order": 5, "color": "#B9F2FF"},
]


def classify_tier(window_xp: int, thresholds: list[dict]) -> dict:
    """Highest threshold whose ``min_xp`` is at or below ``window_xp``.

    Falls back to the lowest tier when ``window_xp`` is below every threshold.
    """
    ordered = sorted(thresholds, key=lambda t: t["tier_order"])
    current = ordered[0]
    for threshold in ordered:
        if window_xp >= threshold["min_xp"]:
            current = threshold
    return current


def next_tier(tier_name: str, thresholds: list[dict]) -> dict | None:
    ordered = sorted(thresholds, key=lambda t: t["tier_order"])
    for i, threshold in enumerate(ordered):
        if threshold["tier"] == tier_name:
            return ordered[i + 1] if i + 1 < len(ordered) else None
    return None


def validate_thresholds(thresholds: list[dict]) -> None:
    """Raise ValueError unless min_xp and order strictly increase together."""
    ordered = sorted(thresholds, key=lambda t: t["tier_order"])
    if not ordered:
        raise ValueError("At least one tier threshold is required")
    if ordered[0]["tier_order"] != 1:
        raise ValueError("Lowest tier must have order 1")
    for lower, higher in zip(ordered, ordered[1:]):
        if higher["min_xp"] <= lower["min_xp"] or higher["tier_order"] <= lower["tier_order"]:
            raise ValueError(
                f"Tier {higher['tier']} must have a higher min_xp and order than {lower['tier']}"
            )


async def get_tier_thresholds(db: AsyncSession) -> list[dict]:
    """Stored ladder, or the default ladder when none is stored."""
    result = await db.execute(select(TierThreshold).order_by(TierThreshold.tier_order))
    rows = result.scalars().all()
    if not rows:
        return [dict(t) for t in DEFAULT_TIERS]
    return [
        {"tier": r.tier, "min_xp": r.min_xp, "tier_order": r.tier_order, "color": r.color}
        for r in rows
    ]


async def recompute_user_tier(
    db: AsyncSession,
    redis: object,
    user_id: int,
    today: date | None = None,
) -> dict[str, Any]:
    """Re-derive and store the user's cached tier."""
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFound(user_id)

    thresholds = await get_tier_thresholds(db)
    rolling_xp = await get_rolling_xp(db, user_id, today)
    tier = classify_tier(rolling_xp, thresholds)["tier"]
    previous = user.current_tier
    changed = tier != previous

    if changed:
        user.current_tier = tier
        await db.flush()
        logger.info("Tier changed: %s -> %s (user=%d, rolling_xp=%d)", previous, tier, user_id, rolling_xp)
        await publish_event(redis, "pubsub:tier_changed", {
            "user_id": user_id,
            "previous_tier": previous,
            "tier": tier,
            "rolling_xp": rolling_xp,
        })

    return {"tier": tier, "previous_tier": previous, "rolling_xp": rolling_xp, "changed": changed}


async def get_current_user_tier(
    db: AsyncSession,
    user_id: int,
    today: date | None = None,
) -> dict[str, Any]:
    thresholds = await get_tier_thresholds(db)
    rolling_xp = await get_rolling_xp(db, user_id, today)
    tier = classify_tier(rolling_xp, thresholds)
    nxt = next_tier(tier["tier"], thresholds)
    return {
        "tier": tier["tier"],
        "color": tier["color"],
        "rolling_xp": rolling_xp,
        "next_tier": nxt["tier"] if nxt else None,
        "next_tier_min_xp": nxt["min_xp"] if nxt else None,
        "xp_to_next_tier": nxt["min_xp"] - rolling_xp if nxt else None,
    }


def _window_totals(today: date):  # noqa: ANN202
    days = get_settings().rolling_window_days
    return (
        select(
            RollingXpDay.user_id.label("user_id"),
            func.sum(RollingXpDay.xp_earned).label("rolling_xp"),
        )
        .where(RollingXpDay.date >= window_start(today, days), RollingXpDay.date <= today)
        .group_by(RollingXpDay.user_id)
        .subquery()
    )


async def get_global_leaderboard(
    db: AsyncSession,
    limit: int = 50,
    today: date | None = None,
    current_user_id: int | None = None,
) -> list[dict[str, Any]]:
    """Users with XP in the window, ranked by window XP (ties by user id)."""
    today = today or app_today()
    totals = _window_totals(today)
    result = await db.execute(
        select(User.id, User.name, User.avatar_config, totals.c.rolling_xp)
        .join(totals, totals.c.user_id == User.id)
        .order_by(totals.c.rolling_xp.desc(), User.id.asc())
        .limit(limit)
    )
    thresholds = await get_tier_thresholds(db)
    entries = []
    for rank, row in enumerate(result.all(), start=1):
        rolling_xp = int(row.rolling_xp)
        tier = classify_tier(rolling_xp, thresholds)
        entries.append({
            "rank": rank,
            "user_id": row.id,
            "name": row.name,
            "avatar_config": row.avatar_config,
            "rolling_xp": rolling_xp,
            "tier": tier["tier"],
            "tier_color": tier["color"],
            "is_current_user": row.id == current_user_id,
        })
    return entries


async def get_user_rank(
    db: AsyncSession,
    user_id: int,
    today: date | None = None,
) -> dict[str, int]:
    """Rank = 1 + users with strictly more window XP."""
    today = today or app_today()
    totals = _window_totals(today)
    my_xp = await get_rolling_xp(db, user_id, today)

    ahead = await db.execute(
        select(func.count()).select_from(totals).where(totals.c.rolling_xp > my_xp)
    )
    ranked = await db.execute(select(func.count()).select_from(totals))

    rank = int(ahead.scalar_one()) + 1
    total_users = int(ranked.scalar_one()) or 1
    percentile = math.floor((total_users - rank + 1) / total_users * 100 + 0.5)
    return {"rank": rank, "total_users": total_users, "percentile": percentile}


async def seed_tier_thresholds(db: AsyncSession) -> int:
    """Upsert the default ladder by tier name."""
    validate_thresholds(DEFAULT_TIERS)
    for tier in DEFAULT_TIERS:
        stmt = insert_for(db, TierThreshold).values(**tier)
        stmt = stmt.on_conflict_do_update(
            index_elements=["tier"],
            set_={
                "min_xp": stmt.excluded.min_xp,
                "tier_order": stmt.excluded.tier_order,
                "color": stmt.excluded.color,
            },
        )
        await db.execute(stmt)
    logger.info("Seeded %d tier thresholds", len(DEFAULT_TIERS))
    return len(DEFAULT_TIERS)
