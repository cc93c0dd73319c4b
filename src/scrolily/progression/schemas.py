"""Request/response schemas for progress, tier, and achievement endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field


# ── Events ──


class QuizAnswerRequest(BaseModel):
    correct: bool
    book: str = Field(..., min_length=1, max_length=32)
    chapter: int = Field(..., ge=1)


class ChapterCompleteRequest(BaseModel):
    book: str = Field(..., min_length=1, max_length=32)
    chapter: int = Field(..., ge=1)


class VerseReadResponse(BaseModel):
    xp_awarded: int
    total_xp: int
    current_streak: int
    longest_streak: int
    streak_updated: bool


class QuizAnswerResponse(BaseModel):
    xp_awarded: int
    total_xp: int


class RewardItem(BaseModel):
    item_key: str
    name: str
    category: str
    rarity: str


class AchievementResponse(BaseModel):
    key: str
    name: str
    description: str
    icon: str | None = None
    category: str
    xp_reward: int
    talent_reward: int
    unlocked_at: datetime | None = None
    items: list[RewardItem] = []


class ChapterCompleteResponse(BaseModel):
    success: bool
    already_completed: bool
    xp_awarded: int
    talents_awarded: int
    total_xp: int
    current_streak: int
    longest_streak: int
    achievement: AchievementResponse | None = None


# ── Progress ──


class ProgressSummaryResponse(BaseModel):
    total_xp: int
    current_streak: int
    longest_streak: int
    current_tier: str | None
    last_read_date: date | None
    talents: int


class BookProgressResponse(BaseModel):
    book: str
    completed: int
    total: int
    percentage: int
    is_complete: bool
    chapters: list[int]


class BookProgressRow(BaseModel):
    book: str
    completed_chapters: int
    total_chapters: int
    percentage: int
    is_complete: bool
    achievement_key: str
    achievement_name: str | None
    achievement_unlocked: bool


class OverallProgressResponse(BaseModel):
    total_chapters_completed: int
    books_started: int
    books_completed: int
    total_books: int


class RecentCompletion(BaseModel):
    book: str
    chapter: int
    completed_at: datetime
    xp_awarded: int


class ProfileStatsResponse(BaseModel):
    user_id: int
    name: str | None
    avatar_config: dict[str, Any] | None
    total_xp: int
    rolling_xp: int
    current_streak: int
    longest_streak: int
    tier: str
    tier_color: str
    next_tier: str | None
    xp_to_next_tier: int | None
    talents: int
    challenge_wins: int
    books_started: int
    books_completed: int
    chapters_completed: int
    achievements_unlocked: int
    achievements_total: int
    member_since: datetime


# ── Tiers ──


class CurrentTierResponse(BaseModel):
    tier: str
    color: str
    rolling_xp: int
    next_tier: str | None
    next_tier_min_xp: int | None
    xp_to_next_tier: int | None


class TierThresholdResponse(BaseModel):
    tier: str
    min_xp: int
    tier_order: int
    color: str


class RollingXpEntry(BaseModel):
    date: date
    xp_earned: int


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    name: str | None
    avatar_config: dict[str, Any] | None
    rolling_xp: int
    tier: str
    tier_color: str
    is_current_user: bool


class UserRankResponse(BaseModel):
    rank: int
    total_users: int
    percentile: int


# ── Achievements ──


class AchievementStatusResponse(AchievementResponse):
    is_unlocked: bool


class CategoryStats(BaseModel):
    unlocked: int
    total: int


class AchievementStatsResponse(BaseModel):
    unlocked: int
    total: int
    percentage: int
    by_category: dict[str, CategoryStats]
