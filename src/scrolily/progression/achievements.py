"""Achievement engine.

Each ``check_*`` function evaluates one category's predicates against a
snapshot of the user's state and awards whatever is satisfied and not yet
unlocked. The (user, achievement) unique constraint is the only guard:
awards are ``INSERT ... ON CONFLICT DO NOTHING RETURNING``, so a racing
duplicate simply returns no row and is skipped.

Reward XP goes through :func:`scrolily.progression.xp.grant_xp`, which
never evaluates achievements. A pass that granted reward XP schedules one
follow-up recomputation instead, so milestones crossed by rewards are
picked up by a later, separate pass.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.catalog.achievements import CATEGORIES
from scrolily.catalog.bible import BIBLE_BOOKS, TESTAMENTS, book_achievement_key
from scrolily.db.base import utcnow
from scrolily.db.models import Achievement, ChapterCompletion, User, UserAchievement
from scrolily.db.upsert import insert_for
from scrolily.errors import UserNotFound
from scrolily.groups.activity import ACHIEVEMENT_UNLOCKED, record_activity_for_user_groups
from scrolily.progression.xp import grant_xp, lock_user
from scrolily.redis_client import publish_event
from scrolily.store.service import grant_achievement_items
from scrolily.tasks.queue import CHECK_ACHIEVEMENTS, RECOMPUTE_TIER, TaskQueue

logger = logging.getLogger(__name__)


def achievement_payload(achievement: Achievement, unlocked_at: datetime | None = None) -> dict[str, Any]:
    return {
        "key": achievement.key,
        "name": achievement.name,
        "description": achievement.description,
        "icon": achievement.icon,
        "category": achievement.category,
        "xp_reward": achievement.xp_reward,
        "talent_reward": achievement.talent_reward,
        "unlocked_at": unlocked_at,
    }


async def _catalog(db: AsyncSession, category: str) -> list[Achievement]:
    result = await db.execute(
        select(Achievement)
        .where(Achievement.category == category)
        .order_by(Achievement.sort_order, Achievement.id)
    )
    return list(result.scalars().all())


async def _award(
    db: AsyncSession,
    redis: object,
    tasks: TaskQueue,
    user: User,
    achievement: Achievement,
    now: datetime | None = None,
) -> dict[str, Any] | None:
    """Unlock one achievement with its rewards. None if already unlocked."""
    now = now or utcnow()
    stmt = (
        insert_for(db, UserAchievement)
        .values(user_id=user.id, achievement_id=achievement.id, unlocked_at=now)
        .on_conflict_do_nothing(index_elements=["user_id", "achievement_id"])
        .returning(UserAchievement.id)
    )
    inserted = (await db.execute(stmt)).scalar_one_or_none()
    if inserted is None:
        logger.debug("Achievement %s already unlocked (user=%d)", achievement.key, user.id)
        return None

    if achievement.xp_reward:
        await grant_xp(
            db, user, achievement.xp_reward, "achievement", achievement.key,
            f'Unlocked "{achievement.name}"', now=now,
        )
        tasks.schedule(CHECK_ACHIEVEMENTS, user.id)
        tasks.schedule(RECOMPUTE_TIER, user.id)
    if achievement.talent_reward:
        user.talents += achievement.talent_reward

    items = await grant_achievement_items(db, user.id, achievement.key, now)
    await record_activity_for_user_groups(
        db, user.id, ACHIEVEMENT_UNLOCKED,
        {"achievement_key": achievement.key, "achievement_name": achievement.name},
        now,
    )
    await db.flush()

    logger.info("Achievement unlocked: %s (user=%d)", achievement.key, user.id)
    await publish_event(redis, "pubsub:achievement_unlocked", {
        "user_id": user.id,
        "achievement_key": achievement.key,
        "achievement_name": achievement.name,
        "xp_reward": achievement.xp_reward,
        "talent_reward": achievement.talent_reward,
        "items": [item["item_key"] for item in items],
    })

    payload = achievement_payload(achievement, now)
    payload["items"] = items
    return payload


async def _award_satisfied(
    db: AsyncSession,
    redis: object,
    tasks: TaskQueue,
    user: User,
    candidates: list[Achievement],
) -> list[dict[str, Any]]:
    awarded = []
    for achievement in candidates:
        payload = await _award(db, redis, tasks, user, achievement)
        if payload is not None:
            awarded.append(payload)
    return awarded


async def _chapter_counts(db: AsyncSession, user_id: int) -> dict[str, int]:
    result = await db.execute(
        select(ChapterCompletion.book, func.count(ChapterCompletion.id))
        .where(ChapterCompletion.user_id == user_id)
        .group_by(ChapterCompletion.book)
    )
    return {book: count for book, count in result.all()}


def completed_books(chapter_counts: dict[str, int]) -> set[str]:
    return {
        book for book, count in chapter_counts.items()
        if book in BIBLE_BOOKS and count >= BIBLE_BOOKS[book]
    }


# ---------------------------------------------------------------------------
# Category checks
# ---------------------------------------------------------------------------


async def check_xp_achievements(
    db: AsyncSession,
    redis: object,
    tasks: TaskQueue,
    user_id: int,
    total_xp: int,
) -> list[dict[str, Any]]:
    """Award XP milestones reached by ``total_xp``."""
    user = await lock_user(db, user_id)
    candidates = [
        a for a in await _catalog(db, "xp_milestone")
        if total_xp >= int(a.requirement.get("value", 0))
    ]
    return await _award_satisfied(db, redis, tasks, user, candidates)


async def check_streak_achievements(
    db: AsyncSession,
    redis: object,
    tasks: TaskQueue,
    user_id: int,
    current_streak: int,
) -> list[dict[str, Any]]:
    user = await lock_user(db, user_id)
    candidates = [
        a for a in await _catalog(db, "streak")
        if current_streak >= int(a.requirement.get("value", 0))
    ]
    return await _award_satisfied(db, redis, tasks, user, candidates)


async def check_book_achievement(
    db: AsyncSession,
    redis: object,
    tasks: TaskQueue,
    user_id: int,
    book: str,
) -> dict[str, Any] | None:
    """Award the completion achievement for ``book`` if every chapter is done."""
    total = BIBLE_BOOKS.get(book)
    if total is None:
        return None
    result = await db.execute(
        select(func.count(ChapterCompletion.id)).where(
            ChapterCompletion.user_id == user_id,
            ChapterCompletion.book == book,
        )
    )
    if int(result.scalar_one()) < total:
        return None

    achievement = (await db.execute(
        select(Achievement).where(Achievement.key == book_achievement_key(book))
    )).scalar_one_or_none()
    if achievement is None:
        logger.warning("No achievement defined for book %s", book)
        return None

    user = await lock_user(db, user_id)
    return await _award(db, redis, tasks, user, achievement)


async def check_all_book_achievements(
    db: AsyncSession,
    redis: object,
    tasks: TaskQueue,
    user_id: int,
) -> dict[str, Any]:
    user = await lock_user(db, user_id)
    done = completed_books(await _chapter_counts(db, user_id))
    catalog = await _catalog(db, "book_completion")
    candidates = [a for a in catalog if a.requirement.get("value") in done]
    awarded = await _award_satisfied(db, redis, tasks, user, candidates)
    return {"checked": len(catalog), "newly_awarded": awarded}


async def check_challenge_achievements(
    db: AsyncSession,
    redis: object,
    tasks: TaskQueue,
    user_id: int,
    total_wins: int,
) -> list[dict[str, Any]]:
    user = await lock_user(db, user_id)
    candidates = [
        a for a in await _catalog(db, "special")
        if a.requirement.get("type") == "challenge_wins"
        and total_wins >= int(a.requirement.get("value", 0))
    ]
    return await _award_satisfied(db, redis, tasks, user, candidates)


def special_predicate_met(requirement: dict[str, Any], chapter_counts: dict[str, int]) -> bool:
    """Reading milestones: chapters completed, a whole testament, the whole canon."""
    kind = requirement.get("type")
    if kind == "chapters_completed":
        return sum(chapter_counts.values()) >= int(requirement.get("value", 0))
    done = completed_books(chapter_counts)
    if kind == "testament":
        books = TESTAMENTS.get(str(requirement.get("value")), [])
        return bool(books) and all(book in done for book in books)
    if kind == "full_bible":
        return len(done) == len(BIBLE_BOOKS)
    return False


async def check_special_achievements(
    db: AsyncSession,
    redis: object,
    tasks: TaskQueue,
    user_id: int,
) -> list[dict[str, Any]]:
    user = await lock_user(db, user_id)
    counts = await _chapter_counts(db, user_id)
    candidates = [
        a for a in await _catalog(db, "special")
        if a.requirement.get("type") != "challenge_wins"
        and special_predicate_met(a.requirement, counts)
    ]
    return await _award_satisfied(db, redis, tasks, user, candidates)


async def check_all_misc_achievements(
    db: AsyncSession,
    redis: object,
    tasks: TaskQueue,
    user_id: int,
) -> dict[str, Any]:
    """Streak, challenge-win and reading-milestone checks in one pass."""
    user = await lock_user(db, user_id)
    streak = user.current_streak
    wins = user.challenge_wins

    streak_awarded = await check_streak_achievements(db, redis, tasks, user_id, streak)
    challenge_awarded = await check_challenge_achievements(db, redis, tasks, user_id, wins)
    special_awarded = await check_special_achievements(db, redis, tasks, user_id)
    return {
        "streak": {"checked_streak": streak, "newly_awarded": streak_awarded},
        "challenges": {"total_wins": wins, "newly_awarded": challenge_awarded},
        "special": {"newly_awarded": special_awarded},
    }


async def run_all_checks(
    db: AsyncSession,
    redis: object,
    tasks: TaskQueue,
    user_id: int,
) -> list[dict[str, Any]]:
    """Every category against one snapshot taken before any reward is applied."""
    user = await lock_user(db, user_id)
    total_xp = user.total_xp

    awarded = await check_xp_achievements(db, redis, tasks, user_id, total_xp)
    awarded += (await check_all_book_achievements(db, redis, tasks, user_id))["newly_awarded"]
    misc = await check_all_misc_achievements(db, redis, tasks, user_id)
    awarded += misc["streak"]["newly_awarded"]
    awarded += misc["challenges"]["newly_awarded"]
    awarded += misc["special"]["newly_awarded"]
    return awarded


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_all_achievements(db: AsyncSession) -> list[dict[str, Any]]:
    result = await db.execute(select(Achievement).order_by(Achievement.sort_order, Achievement.id))
    return [achievement_payload(a) for a in result.scalars().all()]


async def get_user_achievements(db: AsyncSession, user_id: int) -> list[dict[str, Any]]:
    """Unlocked achievements, newest first."""
    result = await db.execute(
        select(Achievement, UserAchievement.unlocked_at)
        .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
        .where(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.unlocked_at.desc(), Achievement.sort_order)
    )
    return [achievement_payload(a, unlocked_at) for a, unlocked_at in result.all()]


async def get_achievements_with_status(db: AsyncSession, user_id: int) -> list[dict[str, Any]]:
    if await db.get(User, user_id) is None:
        raise UserNotFound(user_id)
    unlocked = {
        a["key"]: a["unlocked_at"] for a in await get_user_achievements(db, user_id)
    }
    rows = []
    for achievement in await get_all_achievements(db):
        rows.append({
            **achievement,
            "is_unlocked": achievement["key"] in unlocked,
            "unlocked_at": unlocked.get(achievement["key"]),
        })
    return rows


async def get_achievement_stats(db: AsyncSession, user_id: int) -> dict[str, Any]:
    total = int((await db.execute(select(func.count(Achievement.id)))).scalar_one())
    unlocked = int((await db.execute(
        select(func.count(UserAchievement.id)).where(UserAchievement.user_id == user_id)
    )).scalar_one())
    by_category = {}
    for category in CATEGORIES:
        cat_total = int((await db.execute(
            select(func.count(Achievement.id)).where(Achievement.category == category)
        )).scalar_one())
        cat_unlocked = int((await db.execute(
            select(func.count(UserAchievement.id))
            .join(Achievement, Achievement.id == UserAchievement.achievement_id)
            .where(UserAchievement.user_id == user_id, Achievement.category == category)
        )).scalar_one())
        by_category[category] = {"unlocked": cat_unlocked, "total": cat_total}
    return {
        "unlocked": unlocked,
        "total": total,
        "percentage": round(unlocked / total * 100) if total else 0,
        "by_category": by_category,
    }
