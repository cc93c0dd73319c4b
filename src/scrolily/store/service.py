"""Cosmetic items and the talent ledger.

Ownership rows are unique per (user, item), so every grant is an
``ON CONFLICT DO NOTHING`` insert and repeats are harmless.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.catalog.avatar_items import (
    ACHIEVEMENT_METHODS,
    EMPTY_SLOT,
    ITEM_CATEGORIES,
    STORE_METHODS,
)
from scrolily.db.base import utcnow
from scrolily.db.models import Achievement, AvatarItem, User, UserAchievement, UserAvatarItem
from scrolily.db.upsert import insert_for
from scrolily.errors import ItemNotFound, UserNotFound
from scrolily.progression.xp import lock_user

logger = logging.getLogger(__name__)


def item_payload(item: AvatarItem) -> dict[str, Any]:
    return {
        "item_key": item.item_key,
        "name": item.name,
        "description": item.description,
        "category": item.category,
        "rarity": item.rarity,
        "unlock_method": item.unlock_method,
        "talent_cost": item.talent_cost,
        "achievement_key": item.achievement_key,
    }


async def get_item(db: AsyncSession, item_key: str) -> AvatarItem:
    result = await db.execute(select(AvatarItem).where(AvatarItem.item_key == item_key))
    item = result.scalar_one_or_none()
    if item is None:
        raise ItemNotFound(item_key)
    return item


async def grant_item(
    db: AsyncSession,
    user_id: int,
    item: AvatarItem,
    acquired_via: str,
    now: datetime | None = None,
) -> bool:
    """Give ``item`` to the user. Returns False if already owned."""
    stmt = (
        insert_for(db, UserAvatarItem)
        .values(user_id=user_id, item_id=item.id, acquired_via=acquired_via, acquired_at=now or utcnow())
        .on_conflict_do_nothing(index_elements=["user_id", "item_id"])
        .returning(UserAvatarItem.id)
    )
    inserted = (await db.execute(stmt)).scalar_one_or_none()
    return inserted is not None


async def grant_achievement_items(
    db: AsyncSession,
    user_id: int,
    achievement_key: str,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Grant every item linked to ``achievement_key``. Returns newly granted items."""
    result = await db.execute(
        select(AvatarItem)
        .where(
            AvatarItem.achievement_key == achievement_key,
            AvatarItem.unlock_method.in_(sorted(ACHIEVEMENT_METHODS)),
        )
        .order_by(AvatarItem.sort_order)
    )
    granted = []
    for item in result.scalars().all():
        if await grant_item(db, user_id, item, "achievement", now):
            logger.info("Item unlocked: %s (user=%d, achievement=%s)", item.item_key, user_id, achievement_key)
            granted.append(item_payload(item))
    return granted


async def grant_free_items(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(select(AvatarItem).where(AvatarItem.unlock_method == "free"))
    granted = 0
    for item in result.scalars().all():
        if await grant_item(db, user_id, item, "free"):
            granted += 1
    return granted


async def _owned_item_ids(db: AsyncSession, user_id: int) -> set[int]:
    result = await db.execute(
        select(UserAvatarItem.item_id).where(UserAvatarItem.user_id == user_id)
    )
    return set(result.scalars().all())


async def _unlocked_achievement_keys(db: AsyncSession, user_id: int) -> set[str]:
    result = await db.execute(
        select(Achievement.key)
        .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
        .where(UserAchievement.user_id == user_id)
    )
    return set(result.scalars().all())


async def list_store_items(db: AsyncSession, user_id: int) -> dict[str, Any]:
    """Full catalog with owned / affordable / claimable flags for the user."""
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFound(user_id)
    owned = await _owned_item_ids(db, user_id)
    unlocked = await _unlocked_achievement_keys(db, user_id)

    result = await db.execute(select(AvatarItem).order_by(AvatarItem.sort_order, AvatarItem.id))
    items = []
    for item in result.scalars().all():
        is_owned = item.id in owned or item.unlock_method == "free"
        purchasable = item.unlock_method in STORE_METHODS and item.talent_cost is not None
        claimable = (
            not is_owned
            and item.unlock_method in ACHIEVEMENT_METHODS
            and item.achievement_key in unlocked
        )
        items.append({
            **item_payload(item),
            "owned": is_owned,
            "can_afford": purchasable and user.talents >= (item.talent_cost or 0),
            "can_claim": claimable,
        })
    return {"talents": user.talents, "items": items}


async def get_user_items(db: AsyncSession, user_id: int) -> list[dict[str, Any]]:
    result = await db.execute(
        select(AvatarItem, UserAvatarItem.acquired_via, UserAvatarItem.acquired_at)
        .join(UserAvatarItem, UserAvatarItem.item_id == AvatarItem.id)
        .where(UserAvatarItem.user_id == user_id)
        .order_by(AvatarItem.sort_order)
    )
    return [
        {**item_payload(item), "acquired_via": via, "acquired_at": acquired_at}
        for item, via, acquired_at in result.all()
    ]


async def purchase_item(db: AsyncSession, user_id: int, item_key: str) -> dict[str, Any]:
    """Buy a store item with talents.

    The balance check and debit happen on the locked user row. Buying an
    item already owned is a no-op that charges nothing.
    """
    item = await get_item(db, item_key)
    if item.unlock_method not in STORE_METHODS or item.talent_cost is None:
        raise ValueError(f"{item.name} is not sold in the store")

    user = await lock_user(db, user_id)
    owned = await _owned_item_ids(db, user_id)
    if item.id in owned:
        return {"success": True, "already_owned": True, "talents_remaining": user.talents, "item": item_payload(item)}

    if user.talents < item.talent_cost:
        raise ValueError(f"Not enough talents: {item.name} costs {item.talent_cost}, you have {user.talents}")

    await grant_item(db, user_id, item, "purchase")
    user.talents -= item.talent_cost
    user.updated_at = utcnow()
    await db.flush()

    logger.info("Item purchased: %s for %d talents (user=%d)", item.item_key, item.talent_cost, user_id)
    return {"success": True, "already_owned": False, "talents_remaining": user.talents, "item": item_payload(item)}


async def claim_achievement_item(db: AsyncSession, user_id: int, item_key: str) -> dict[str, Any]:
    """Claim an achievement-linked item the user has earned but does not own."""
    item = await get_item(db, item_key)
    if item.unlock_method not in ACHIEVEMENT_METHODS or not item.achievement_key:
        raise ValueError(f"{item.name} is not an achievement reward")

    unlocked = await _unlocked_achievement_keys(db, user_id)
    if item.achievement_key not in unlocked:
        raise ValueError(f"Unlock the {item.achievement_key} achievement to claim {item.name}")

    granted = await grant_item(db, user_id, item, "achievement")
    return {"success": True, "already_owned": not granted, "item": item_payload(item)}


async def update_avatar_config(
    db: AsyncSession,
    user_id: int,
    config: dict[str, Any],
) -> dict[str, Any]:
    """Store the avatar config after checking every equipped item slot.

    Item slots (face, hat, ...) must be ``none`` or an owned item of that
    category. Other keys (base layers, colors) pass through untouched.
    """
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFound(user_id)

    equipped = {slot: key for slot, key in config.items() if slot in ITEM_CATEGORIES and key != EMPTY_SLOT}
    if equipped:
        result = await db.execute(
            select(AvatarItem)
            .join(UserAvatarItem, UserAvatarItem.item_id == AvatarItem.id)
            .where(UserAvatarItem.user_id == user_id)
        )
        owned_by_key = {item.item_key: item for item in result.scalars().all()}
        free = await db.execute(select(AvatarItem).where(AvatarItem.unlock_method == "free"))
        for item in free.scalars().all():
            owned_by_key.setdefault(item.item_key, item)

        for slot, key in equipped.items():
            item = owned_by_key.get(key)
            if item is None:
                raise ValueError(f"Item {key} is not owned")
            if item.category != slot:
                raise ValueError(f"Item {key} cannot be worn in the {slot} slot")

    user.avatar_config = dict(config)
    user.updated_at = utcnow()
    await db.flush()
    return user.avatar_config
