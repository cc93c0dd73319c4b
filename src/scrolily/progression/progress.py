"""Read-only progress queries."""

from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.catalog.bible import BIBLE_BOOKS, book_achievement_key, validate_chapter
from scrolily.db.models import Achievement, ChapterCompletion, User, UserAchievement
from scrolily.errors import UserNotFound
from scrolily.progression.tiers import get_current_user_tier


async def _get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFound(user_id)
    return user


def _percentage(completed: int, total: int) -> int:
    return round(completed / total * 100) if total else 0


async def get_progress_summary(db: AsyncSession, user_id: int) -> dict[str, Any]:
    user = await _get_user(db, user_id)
    return {
        "total_xp": user.total_xp,
        "current_streak": user.current_streak,
        "longest_streak": user.longest_streak,
        "current_tier": user.current_tier,
        "last_read_date": user.last_read_date,
        "talents": user.talents,
    }


async def get_completed_chapters_for_book(db: AsyncSession, user_id: int, book: str) -> list[int]:
    result = await db.execute(
        select(ChapterCompletion.chapter)
        .where(ChapterCompletion.user_id == user_id, ChapterCompletion.book == book)
        .order_by(ChapterCompletion.chapter)
    )
    return list(result.scalars().all())


async def get_book_progress(db: AsyncSession, user_id: int, book: str) -> dict[str, Any]:
    validate_chapter(book, 1)
    completed = len(await get_completed_chapters_for_book(db, user_id, book))
    total = BIBLE_BOOKS[book]
    return {
        "book": book,
        "completed": completed,
        "total": total,
        "percentage": _percentage(completed, total),
        "is_complete": completed >= total,
    }


async def get_all_book_progress(db: AsyncSession, user_id: int) -> list[dict[str, Any]]:
    """One row per canonical book, in canonical order."""
    counts_result = await db.execute(
        select(ChapterCompletion.book, func.count(ChapterCompletion.id))
        .where(ChapterCompletion.user_id == user_id)
        .group_by(ChapterCompletion.book)
    )
    counts = dict(counts_result.all())

    names_result = await db.execute(
        select(Achievement.key, Achievement.name).where(Achievement.category == "book_completion")
    )
    names = dict(names_result.all())

    unlocked_result = await db.execute(
        select(Achievement.key)
        .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
        .where(UserAchievement.user_id == user_id, Achievement.category == "book_completion")
    )
    unlocked = set(unlocked_result.scalars().all())

    rows = []
    for book, total in BIBLE_BOOKS.items():
        completed = counts.get(book, 0)
        key = book_achievement_key(book)
        rows.append({
            "book": book,
            "completed_chapters": completed,
            "total_chapters": total,
            "percentage": _percentage(completed, total),
            "is_complete": completed >= total,
            "achievement_key": key,
            "achievement_name": names.get(key),
            "achievement_unlocked": key in unlocked,
        })
    return rows


async def get_overall_progress(db: AsyncSession, user_id: int) -> dict[str, Any]:
    chapters = await db.execute(
        select(func.count(ChapterCompletion.id)).where(ChapterCompletion.user_id == user_id)
    )
    books_started = await db.execute(
        select(func.count(func.distinct(ChapterCompletion.book))).where(ChapterCompletion.user_id == user_id)
    )
    books_completed = await db.execute(
        select(func.count(UserAchievement.id))
        .join(Achievement, Achievement.id == UserAchievement.achievement_id)
        .where(UserAchievement.user_id == user_id, Achievement.category == "book_completion")
    )
    return {
        "total_chapters_completed": int(chapters.scalar_one()),
        "books_started": int(books_started.scalar_one()),
        "books_completed": int(books_completed.scalar_one()),
        "total_books": len(BIBLE_BOOKS),
    }


async def get_recent_completions(db: AsyncSession, user_id: int, limit: int = 10) -> list[dict[str, Any]]:
    result = await db.execute(
        select(ChapterCompletion)
        .where(ChapterCompletion.user_id == user_id)
        .order_by(ChapterCompletion.completed_at.desc(), ChapterCompletion.id.desc())
        .limit(limit)
    )
    return [
        {
            "book": c.book,
            "chapter": c.chapter,
            "completed_at": c.completed_at,
            "xp_awarded": c.xp_awarded,
        }
        for c in result.scalars().all()
    ]


async def get_profile_stats(db: AsyncSession, user_id: int, today: date | None = None) -> dict[str, Any]:
    """Everything the profile page shows, in one call."""
    user = await _get_user(db, user_id)
    tier = await get_current_user_tier(db, user_id, today)
    overall = await get_overall_progress(db, user_id)

    unlocked = await db.execute(
        select(func.count(UserAchievement.id)).where(UserAchievement.user_id == user_id)
    )
    total = await db.execute(select(func.count(Achievement.id)))

    return {
        "user_id": user.id,
        "name": user.name,
        "avatar_config": user.avatar_config,
        "total_xp": user.total_xp,
        "rolling_xp": tier["rolling_xp"],
        "current_streak": user.current_streak,
        "longest_streak": user.longest_streak,
        "tier": tier["tier"],
        "tier_color": tier["color"],
        "next_tier": tier["next_tier"],
        "xp_to_next_tier": tier["xp_to_next_tier"],
        "talents": user.talents,
        "challenge_wins": user.challenge_wins,
        "books_started": overall["books_started"],
        "books_completed": overall["books_completed"],
        "chapters_completed": overall["total_chapters_completed"],
        "achievements_unlocked": int(unlocked.scalar_one()),
        "achievements_total": int(total.scalar_one()),
        "member_since": user.created_at,
    }
