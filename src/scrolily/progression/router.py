"""Progress, tier, and achievement endpoints.

Event endpoints commit the ledger mutation first and then flush the
recomputation tasks it scheduled.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.auth.dependencies import get_current_user
from scrolily.database import get_session
from scrolily.db.models import User
from scrolily.dependencies import get_redis_dep, get_task_queue
from scrolily.progression.achievements import get_achievement_stats, get_achievements_with_status
from scrolily.progression.events import complete_chapter, record_quiz_answer, record_verse_read
from scrolily.progression.progress import (
    get_all_book_progress,
    get_book_progress,
    get_completed_chapters_for_book,
    get_overall_progress,
    get_profile_stats,
    get_progress_summary,
    get_recent_completions,
)
from scrolily.progression.rolling_xp import get_rolling_xp_history
from scrolily.progression.schemas import (
    AchievementStatsResponse,
    AchievementStatusResponse,
    BookProgressResponse,
    BookProgressRow,
    ChapterCompleteRequest,
    ChapterCompleteResponse,
    CurrentTierResponse,
    LeaderboardEntry,
    OverallProgressResponse,
    ProfileStatsResponse,
    ProgressSummaryResponse,
    QuizAnswerRequest,
    QuizAnswerResponse,
    RecentCompletion,
    RollingXpEntry,
    TierThresholdResponse,
    UserRankResponse,
    VerseReadResponse,
)
from scrolily.progression.tiers import (
    get_current_user_tier,
    get_global_leaderboard,
    get_tier_thresholds,
    get_user_rank,
)
from scrolily.tasks.queue import TaskQueue

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["Progression"])


# ── Events ──


@router.post("/progress/verse-read", response_model=VerseReadResponse)
async def verse_read(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    tasks: TaskQueue = Depends(get_task_queue),
) -> VerseReadResponse:
    result = await record_verse_read(db, tasks, user.id)
    await db.commit()
    await tasks.flush()
    return VerseReadResponse(**result)


@router.post("/progress/quiz-answer", response_model=QuizAnswerResponse)
async def quiz_answer(
    body: QuizAnswerRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    tasks: TaskQueue = Depends(get_task_queue),
) -> QuizAnswerResponse:
    result = await record_quiz_answer(db, tasks, user.id, body.correct, body.book, body.chapter)
    await db.commit()
    await tasks.flush()
    return QuizAnswerResponse(**result)


@router.post("/progress/chapters/complete", response_model=ChapterCompleteResponse)
async def chapter_complete(
    body: ChapterCompleteRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
    tasks: TaskQueue = Depends(get_task_queue),
) -> ChapterCompleteResponse:
    result = await complete_chapter(db, redis, tasks, user.id, body.book, body.chapter)
    await db.commit()
    await tasks.flush()
    if result["achievement"]:
        logger.info("book_completed", user_id=user.id, achievement=result["achievement"]["key"])
    return ChapterCompleteResponse(**result)


# ── Progress ──


@router.get("/progress/summary", response_model=ProgressSummaryResponse)
async def progress_summary(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ProgressSummaryResponse:
    return ProgressSummaryResponse(**await get_progress_summary(db, user.id))


@router.get("/progress/books", response_model=list[BookProgressRow])
async def all_book_progress(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[BookProgressRow]:
    return [BookProgressRow(**row) for row in await get_all_book_progress(db, user.id)]


@router.get("/progress/books/{book}", response_model=BookProgressResponse)
async def book_progress(
    book: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> BookProgressResponse:
    progress = await get_book_progress(db, user.id, book)
    chapters = await get_completed_chapters_for_book(db, user.id, book)
    return BookProgressResponse(**progress, chapters=chapters)


@router.get("/progress/overall", response_model=OverallProgressResponse)
async def overall_progress(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> OverallProgressResponse:
    return OverallProgressResponse(**await get_overall_progress(db, user.id))


@router.get("/progress/recent", response_model=list[RecentCompletion])
async def recent_completions(
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[RecentCompletion]:
    return [RecentCompletion(**row) for row in await get_recent_completions(db, user.id, limit)]


@router.get("/progress/profile", response_model=ProfileStatsResponse)
async def profile_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ProfileStatsResponse:
    return ProfileStatsResponse(**await get_profile_stats(db, user.id))


# ── Tiers ──


@router.get("/tiers/current", response_model=CurrentTierResponse)
async def current_tier(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> CurrentTierResponse:
    return CurrentTierResponse(**await get_current_user_tier(db, user.id))


@router.get("/tiers/thresholds", response_model=list[TierThresholdResponse])
async def tier_thresholds(db: AsyncSession = Depends(get_session)) -> list[TierThresholdResponse]:
    return [TierThresholdResponse(**t) for t in await get_tier_thresholds(db)]


@router.get("/tiers/history", response_model=list[RollingXpEntry])
async def rolling_xp_history(
    days: int = Query(14, ge=1, le=90),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[RollingXpEntry]:
    return [RollingXpEntry(**row) for row in await get_rolling_xp_history(db, user.id, days)]


@router.get("/tiers/leaderboard", response_model=list[LeaderboardEntry])
async def global_leaderboard(
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[LeaderboardEntry]:
    entries = await get_global_leaderboard(db, limit, current_user_id=user.id)
    return [LeaderboardEntry(**e) for e in entries]


@router.get("/tiers/rank", response_model=UserRankResponse)
async def my_rank(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserRankResponse:
    return UserRankResponse(**await get_user_rank(db, user.id))


# ── Achievements ──


@router.get("/achievements", response_model=list[AchievementStatusResponse])
async def achievements_with_status(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[AchievementStatusResponse]:
    return [AchievementStatusResponse(**a) for a in await get_achievements_with_status(db, user.id)]


@router.get("/achievements/stats", response_model=AchievementStatsResponse)
async def achievement_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> AchievementStatsResponse:
    return AchievementStatsResponse(**await get_achievement_stats(db, user.id))
