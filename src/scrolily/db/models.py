"""ORM models for the progression and competition engine.

Uniqueness constraints here are the idempotency anchors the services rely
on: (user, book, chapter) for chapter completions, (user, achievement) for
unlocks, (user, date) for rolling XP buckets, (user, item) for owned items.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from scrolily.db.base import Base, BigIntPK, UTCDateTime, utcnow


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Reader profile. XP and streak fields are mutated only by the event ledger."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("total_xp >= 0", name="ck_users_total_xp_non_negative"),
        CheckConstraint("talents >= 0", name="ck_users_talents_non_negative"),
        CheckConstraint("longest_streak >= current_streak", name="ck_users_longest_streak"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    auth_subject: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True, unique=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_config: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_read_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    current_tier: Mapped[str | None] = mapped_column(String(32), nullable=True)
    talents: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    challenge_wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


# ---------------------------------------------------------------------------
# Event ledger
# ---------------------------------------------------------------------------


class XPLedger(Base):
    """One row per XP-granting event. Source of truth for windowed group/challenge sums."""

    __tablename__ = "xp_ledger"
    __table_args__ = (
        Index("idx_xp_ledger_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class ChapterCompletion(Base):
    """Write-once per (user, book, chapter)."""

    __tablename__ = "chapter_completions"
    __table_args__ = (
        UniqueConstraint("user_id", "book", "chapter", name="uq_chapter_completions_user_book_chapter"),
        Index("idx_chapter_completions_user_book", "user_id", "book"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    book: Mapped[str] = mapped_column(String(32), nullable=False)
    chapter: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    xp_awarded: Mapped[int] = mapped_column(Integer, nullable=False)


class RollingXpDay(Base):
    """Per-user, per-app-local-day XP bucket. Upserted additively, never overwritten."""

    __tablename__ = "rolling_xp"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_rolling_xp_user_date"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    xp_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class TierThreshold(Base):
    """Stored tier ladder. When empty, the built-in default ladder applies."""

    __tablename__ = "tier_thresholds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tier: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    min_xp: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    tier_order: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    color: Mapped[str] = mapped_column(String(16), nullable=False)


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


class Achievement(Base):
    """Immutable catalog entry (seed data)."""

    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str] = mapped_column(String(32), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    requirement: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    talent_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")


class UserAchievement(Base):
    """At most one row per (user, achievement)."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_user_achievement"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    achievement_id: Mapped[int] = mapped_column(ForeignKey("achievements.id"), nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


# ---------------------------------------------------------------------------
# Cosmetics
# ---------------------------------------------------------------------------


class AvatarItem(Base):
    """Cosmetic catalog entry (seed data)."""

    __tablename__ = "avatar_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    rarity: Mapped[str] = mapped_column(String(16), nullable=False)
    unlock_method: Mapped[str] = mapped_column(String(16), nullable=False)
    talent_cost: Mapped[int | None] = mapped_column(Integer, nullable=True)
    achievement_key: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class UserAvatarItem(Base):
    __tablename__ = "user_avatar_items"
    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_user_avatar_items_user_item"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    item_id: Mapped[int] = mapped_column(ForeignKey("avatar_items.id"), nullable=False)
    acquired_via: Mapped[str] = mapped_column(String(16), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


class Group(Base):
    """Reading group. `weekly_xp`/`current_level` are caches rolled over lazily per week."""

    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    leader_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    invite_code: Mapped[str] = mapped_column(String(8), unique=True, nullable=False)
    open_for_challenges: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    members_can_invite: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    weekly_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    week_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    current_level: Mapped[str] = mapped_column(String(32), nullable=False, default="Angels")
    level_updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    challenge_wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    challenge_losses: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class GroupMembership(Base):
    __tablename__ = "group_memberships"
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_memberships_group_user"),
        Index("idx_group_memberships_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class GroupInvite(Base):
    __tablename__ = "group_invites"
    __table_args__ = (
        Index("idx_group_invites_invited_status", "invited_user_id", "status"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    invited_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    invited_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    responded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class GroupActivity(Base):
    __tablename__ = "group_activities"
    __table_args__ = (
        Index("idx_group_activities_group_created", "group_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    activity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    activity_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


class Challenge(Base):
    """Group-vs-group challenge. Scores are recomputed on read while active."""

    __tablename__ = "challenges"
    __table_args__ = (
        CheckConstraint("challenger_group_id <> challenged_group_id", name="ck_challenges_distinct_groups"),
        Index("idx_challenges_status_end", "status", "end_time"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    # Null once that side's group is deleted; finished challenges outlive their groups
    challenger_group_id: Mapped[int | None] = mapped_column(ForeignKey("groups.id", ondelete="SET NULL"), nullable=True)
    challenged_group_id: Mapped[int | None] = mapped_column(ForeignKey("groups.id", ondelete="SET NULL"), nullable=True)
    created_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    responded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    start_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Snapshots taken at activation
    challenger_start_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    challenged_start_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    challenger_member_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    challenged_member_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Final metrics, written once at completion
    challenger_xp_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    challenged_xp_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    challenger_active_members: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    challenged_active_members: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    challenger_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    challenged_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    winner_group_id: Mapped[int | None] = mapped_column(ForeignKey("groups.id", ondelete="SET NULL"), nullable=True)
