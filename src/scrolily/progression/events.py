"""Event ledger: the three progression-causing user actions.

Each handler runs inside the caller's transaction and mutates XP, streak
and rolling buckets as one unit on the locked user row. Achievement and
tier recomputation is scheduled on the task queue, never run inline,
except the book-completion check whose result the reader renders as a
reward right away.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.catalog.bible import validate_chapter
from scrolily.config import get_settings
from scrolily.db.base import utcnow
from scrolily.db.models import ChapterCompletion, User
from scrolily.db.upsert import insert_for
from scrolily.errors import UserNotFound
from scrolily.groups.activity import CHAPTER_COMPLETED, record_activity_for_user_groups
from scrolily.progression.achievements import check_book_achievement
from scrolily.progression.calendar import app_date
from scrolily.progression.streak import compute_streak
from scrolily.progression.xp import grant_xp, lock_user
from scrolily.tasks.queue import TaskQueue

logger = logging.getLogger(__name__)


async def record_verse_read(
    db: AsyncSession,
    tasks: TaskQueue,
    user_id: int,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Grant per-verse XP and advance the daily streak."""
    now = now or utcnow()
    today = app_date(now)
    amount = get_settings().xp_per_verse

    user = await lock_user(db, user_id)
    streak = compute_streak(user.last_read_date, today, user.current_streak, user.longest_streak)
    user.current_streak = streak.current_streak
    user.longest_streak = streak.longest_streak
    user.last_read_date = today

    total_xp = await grant_xp(db, user, amount, "verse_read", now=now, today=today)
    tasks.schedule_recompute(user_id)

    if streak.updated:
        logger.info("Streak updated: %d days (user=%d)", streak.current_streak, user_id)

    return {
        "xp_awarded": amount,
        "total_xp": total_xp,
        "current_streak": streak.current_streak,
        "longest_streak": streak.longest_streak,
        "streak_updated": streak.updated,
    }


async def record_quiz_answer(
    db: AsyncSession,
    tasks: TaskQueue,
    user_id: int,
    correct: bool,
    book: str,
    chapter: int,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Grant XP for a correct answer. A wrong answer is a pure read."""
    if not correct:
        user = await db.get(User, user_id)
        if user is None:
            raise UserNotFound(user_id)
        return {"xp_awarded": 0, "total_xp": user.total_xp}

    amount = get_settings().xp_per_correct_answer
    user = await lock_user(db, user_id)
    total_xp = await grant_xp(
        db, user, amount, "quiz", f"{book}:{chapter}",
        f"Correct answer in {book} {chapter}", now=now,
    )
    tasks.schedule_recompute(user_id)
    return {"xp_awarded": amount, "total_xp": total_xp}


async def complete_chapter(
    db: AsyncSession,
    redis: object,
    tasks: TaskQueue,
    user_id: int,
    book: str,
    chapter: int,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Record a chapter completion exactly once per (user, book, chapter)."""
    validate_chapter(book, chapter)
    settings = get_settings()
    now = now or utcnow()

    user = await lock_user(db, user_id)
    stmt = (
        insert_for(db, ChapterCompletion)
        .values(user_id=user_id, book=book, chapter=chapter, completed_at=now, xp_awarded=settings.xp_per_chapter)
        .on_conflict_do_nothing(index_elements=["user_id", "book", "chapter"])
        .returning(ChapterCompletion.id)
    )
    inserted = (await db.execute(stmt)).scalar_one_or_none()

    if inserted is None:
        return {
            "success": True,
            "already_completed": True,
            "xp_awarded": 0,
            "talents_awarded": 0,
            "total_xp": user.total_xp,
            "current_streak": user.current_streak,
            "longest_streak": user.longest_streak,
            "achievement": None,
        }

    await grant_xp(
        db, user, settings.xp_per_chapter, "chapter", f"{book}:{chapter}",
        f"Completed {book} {chapter}", now=now,
    )
    user.talents += settings.talents_per_chapter
    await record_activity_for_user_groups(
        db, user_id, CHAPTER_COMPLETED, {"book": book, "chapter": chapter}, now,
    )
    await db.flush()
    logger.info("Chapter completed: %s %d (user=%d)", book, chapter, user_id)

    # Out-of-order reading can finish a book on any chapter
    achievement = await check_book_achievement(db, redis, tasks, user_id, book)
    tasks.schedule_recompute(user_id)

    return {
        "success": True,
        "already_completed": False,
        "xp_awarded": settings.xp_per_chapter,
        "talents_awarded": settings.talents_per_chapter,
        "total_xp": user.total_xp,
        "current_streak": user.current_streak,
        "longest_streak": user.longest_streak,
        "achievement": achievement,
    }
