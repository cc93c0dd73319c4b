"""Catalog seeding: achievements, avatar items, tier ladder.

All seeders upsert by natural key, so re-running them is safe and picks
up catalog edits.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.catalog.achievements import ACHIEVEMENT_SEED_DATA
from scrolily.catalog.avatar_items import AVATAR_ITEM_SEED_DATA
from scrolily.db.models import Achievement, AvatarItem
from scrolily.db.upsert import insert_for
from scrolily.progression.tiers import seed_tier_thresholds

logger = logging.getLogger(__name__)


async def seed_achievements(db: AsyncSession) -> int:
    for data in ACHIEVEMENT_SEED_DATA:
        stmt = insert_for(db, Achievement).values(**data)
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "icon": stmt.excluded.icon,
                "category": stmt.excluded.category,
                "requirement": stmt.excluded.requirement,
                "xp_reward": stmt.excluded.xp_reward,
                "talent_reward": stmt.excluded.talent_reward,
                "sort_order": stmt.excluded.sort_order,
            },
        )
        await db.execute(stmt)
    logger.info("Seeded %d achievement definitions", len(ACHIEVEMENT_SEED_DATA))
    return len(ACHIEVEMENT_SEED_DATA)


async def seed_avatar_items(db: AsyncSession) -> int:
    for data in AVATAR_ITEM_SEED_DATA:
        stmt = insert_for(db, AvatarItem).values(**data)
        stmt = stmt.on_conflict_do_update(
            index_elements=["item_key"],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "category": stmt.excluded.category,
                "rarity": stmt.excluded.rarity,
                "unlock_method": stmt.excluded.unlock_method,
                "talent_cost": stmt.excluded.talent_cost,
                "achievement_key": stmt.excluded.achievement_key,
                "sort_order": stmt.excluded.sort_order,
            },
        )
        await db.execute(stmt)
    logger.info("Seeded %d avatar items", len(AVATAR_ITEM_SEED_DATA))
    return len(AVATAR_ITEM_SEED_DATA)


async def seed_all(db: AsyncSession) -> dict[str, int]:
    """Seed every catalog and commit."""
    counts = {
        "achievements": await seed_achievements(db),
        "avatar_items": await seed_avatar_items(db),
        "tier_thresholds": await seed_tier_thresholds(db),
    }
    await db.commit()
    return counts
