"""Verse reads, quiz answers and chapter completions against the database."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from scrolily.db.base import utcnow
from scrolily.db.models import ChapterCompletion, XPLedger
from scrolily.errors import UserNotFound
from scrolily.progression.events import complete_chapter, record_quiz_answer, record_verse_read
from scrolily.progression.rolling_xp import get_rolling_xp
from scrolily.tasks.queue import CHECK_ACHIEVEMENTS, RECOMPUTE_TIER

MONDAY_NOON = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class TestVerseRead:
    @pytest.mark.asyncio
    async def test_first_read(self, db_session, tasks, make_user):
        user = await make_user()
        result = await record_verse_read(db_session, tasks, user.id, now=MONDAY_NOON)

        assert result["xp_awarded"] == 1
        assert result["total_xp"] == 1
        assert result["current_streak"] == 1
        assert result["streak_updated"] is True
        assert tasks.pending == [(CHECK_ACHIEVEMENTS, user.id), (RECOMPUTE_TIER, user.id)]

    @pytest.mark.asyncio
    async def test_second_read_same_day_keeps_streak(self, db_session, tasks, make_user):
        user = await make_user()
        await record_verse_read(db_session, tasks, user.id, now=MONDAY_NOON)
        result = await record_verse_read(db_session, tasks, user.id, now=MONDAY_NOON + timedelta(hours=3))

        assert result["total_xp"] == 2
        assert result["current_streak"] == 1
        assert result["streak_updated"] is False

    @pytest.mark.asyncio
    async def test_next_day_extends_streak(self, db_session, tasks, make_user):
        user = await make_user()
        await record_verse_read(db_session, tasks, user.id, now=MONDAY_NOON - timedelta(days=1))
        result = await record_verse_read(db_session, tasks, user.id, now=MONDAY_NOON)
        assert result["current_streak"] == 2
        assert result["longest_streak"] == 2

    @pytest.mark.asyncio
    async def test_gap_resets_streak(self, db_session, tasks, make_user):
        user = await make_user()
        await record_verse_read(db_session, tasks, user.id, now=MONDAY_NOON - timedelta(days=3))
        await record_verse_read(db_session, tasks, user.id, now=MONDAY_NOON - timedelta(days=2))
        result = await record_verse_read(db_session, tasks, user.id, now=MONDAY_NOON)
        assert result["current_streak"] == 1
        assert result["longest_streak"] == 2

    @pytest.mark.asyncio
    async def test_xp_lands_in_ledger_and_bucket(self, db_session, tasks, make_user):
        user = await make_user()
        for _ in range(3):
            await record_verse_read(db_session, tasks, user.id, now=MONDAY_NOON)

        ledger = await db_session.execute(
            select(func.sum(XPLedger.amount)).where(XPLedger.user_id == user.id, XPLedger.source == "verse_read")
        )
        assert ledger.scalar_one() == 3
        assert await get_rolling_xp(db_session, user.id, MONDAY_NOON.date()) == 3

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session, tasks, database):
        with pytest.raises(UserNotFound):
            await record_verse_read(db_session, tasks, 9999)


class TestQuizAnswer:
    @pytest.mark.asyncio
    async def test_correct_answer(self, db_session, tasks, make_user):
        user = await make_user()
        result = await record_quiz_answer(db_session, tasks, user.id, True, "John", 3)
        assert result == {"xp_awarded": 5, "total_xp": 5}
        assert tasks.pending

    @pytest.mark.asyncio
    async def test_wrong_answer_awards_nothing(self, db_session, tasks, make_user):
        user = await make_user()
        result = await record_quiz_answer(db_session, tasks, user.id, False, "John", 3)
        assert result == {"xp_awarded": 0, "total_xp": 0}
        assert tasks.pending == []

    @pytest.mark.asyncio
    async def test_quiz_does_not_touch_streak(self, db_session, tasks, make_user):
        user = await make_user()
        await record_quiz_answer(db_session, tasks, user.id, True, "John", 3)
        await db_session.refresh(user)
        assert user.current_streak == 0
        assert user.last_read_date is None


class TestCompleteChapter:
    @pytest.mark.asyncio
    async def test_first_completion(self, db_session, redis, tasks, make_user):
        user = await make_user()
        result = await complete_chapter(db_session, redis, tasks, user.id, "Genesis", 1)

        assert result["already_completed"] is False
        assert result["xp_awarded"] == 10
        assert result["talents_awarded"] == 1
        assert result["total_xp"] == 10
        assert result["achievement"] is None

    @pytest.mark.asyncio
    async def test_repeat_completion_is_idempotent(self, db_session, redis, tasks, make_user):
        user = await make_user()
        await complete_chapter(db_session, redis, tasks, user.id, "Genesis", 1)
        await db_session.commit()
        repeat = await complete_chapter(db_session, redis, tasks, user.id, "Genesis", 1)

        assert repeat["already_completed"] is True
        assert repeat["xp_awarded"] == 0
        assert repeat["total_xp"] == 10
        count = await db_session.execute(
            select(func.count(ChapterCompletion.id)).where(ChapterCompletion.user_id == user.id)
        )
        assert count.scalar_one() == 1
        await db_session.refresh(user)
        assert user.talents == 1

    @pytest.mark.asyncio
    async def test_out_of_range_chapter(self, db_session, redis, tasks, make_user):
        user = await make_user()
        with pytest.raises(ValueError):
            await complete_chapter(db_session, redis, tasks, user.id, "Ruth", 5)

    @pytest.mark.asyncio
    async def test_unknown_book(self, db_session, redis, tasks, make_user):
        user = await make_user()
        with pytest.raises(ValueError):
            await complete_chapter(db_session, redis, tasks, user.id, "Jasher", 1)

    @pytest.mark.asyncio
    async def test_single_chapter_book_unlocks_immediately(self, db_session, redis, tasks, make_user):
        user = await make_user()
        result = await complete_chapter(db_session, redis, tasks, user.id, "Obadiah", 1)

        assert result["achievement"]["key"] == "book_obadiah"
        assert result["achievement"]["xp_reward"] == 50
        # 10 for the chapter + 50 for the book
        assert result["total_xp"] == 60
        await db_session.refresh(user)
        assert user.talents == 6
        assert "pubsub:achievement_unlocked" in redis.channels()

    @pytest.mark.asyncio
    async def test_out_of_order_reading_finishes_book(self, db_session, redis, tasks, make_user):
        user = await make_user()
        results = []
        for chapter in (4, 2, 1, 3):
            results.append(await complete_chapter(db_session, redis, tasks, user.id, "Ruth", chapter))

        assert [r["achievement"] for r in results[:3]] == [None, None, None]
        assert results[3]["achievement"]["key"] == "book_ruth"

    @pytest.mark.asyncio
    async def test_completion_feeds_group_weekly_xp(self, db_session, redis, tasks, make_user, make_group):
        user = await make_user()
        group = await make_group(user, "Bereans")
        await complete_chapter(db_session, redis, tasks, user.id, "Mark", 1, now=utcnow())
        await db_session.commit()
        await db_session.refresh(group)
        assert group.weekly_xp == 10
