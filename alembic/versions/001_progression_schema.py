"""Progression and competition schema.

Creates users, the XP ledger, chapter completions, rolling XP buckets,
tier thresholds, achievements, avatar items, groups (memberships,
invites, activity) and challenges.

Revision ID: 001_progression_schema
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_progression_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            auth_subject VARCHAR(128) UNIQUE NOT NULL,
            name VARCHAR(64),
            email VARCHAR(320) UNIQUE,
            avatar_url TEXT,
            avatar_config JSONB,
            total_xp INTEGER NOT NULL DEFAULT 0,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_read_date DATE,
            current_tier VARCHAR(32),
            talents INTEGER NOT NULL DEFAULT 0,
            challenge_wins INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_users_total_xp_non_negative CHECK (total_xp >= 0),
            CONSTRAINT ck_users_talents_non_negative CHECK (talents >= 0),
            CONSTRAINT ck_users_longest_streak CHECK (longest_streak >= current_streak)
        )
    """)

    # --- Event ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            amount INTEGER NOT NULL,
            source VARCHAR(32) NOT NULL,
            source_id VARCHAR(128),
            description TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_xp_ledger_user_created
        ON xp_ledger(user_id, created_at)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS chapter_completions (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            book VARCHAR(32) NOT NULL,
            chapter INTEGER NOT NULL,
            completed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            xp_awarded INTEGER NOT NULL,
            CONSTRAINT uq_chapter_completions_user_book_chapter UNIQUE (user_id, book, chapter)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_chapter_completions_user_book
        ON chapter_completions(user_id, book)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS rolling_xp (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            date DATE NOT NULL,
            xp_earned INTEGER NOT NULL DEFAULT 0,
            CONSTRAINT uq_rolling_xp_user_date UNIQUE (user_id, date)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS tier_thresholds (
            id SERIAL PRIMARY KEY,
            tier VARCHAR(32) UNIQUE NOT NULL,
            min_xp INTEGER UNIQUE NOT NULL,
            tier_order INTEGER UNIQUE NOT NULL,
            color VARCHAR(16) NOT NULL
        )
    """)

    # --- Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id SERIAL PRIMARY KEY,
            key VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            icon VARCHAR(32) NOT NULL,
            category VARCHAR(32) NOT NULL,
            requirement JSONB NOT NULL DEFAULT '{}',
            xp_reward INTEGER NOT NULL DEFAULT 0,
            talent_reward INTEGER NOT NULL DEFAULT 0,
            sort_order INTEGER NOT NULL DEFAULT 0
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_achievements_category
        ON achievements(category)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            achievement_id INTEGER NOT NULL REFERENCES achievements(id),
            unlocked_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_achievements_user_achievement UNIQUE (user_id, achievement_id)
        )
    """)

    # --- Cosmetics ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS avatar_items (
            id SERIAL PRIMARY KEY,
            item_key VARCHAR(64) UNIQUE NOT NULL,
            category VARCHAR(16) NOT NULL,
            name VARCHAR(64) NOT NULL,
            description TEXT,
            rarity VARCHAR(16) NOT NULL,
            unlock_method VARCHAR(16) NOT NULL,
            talent_cost INTEGER,
            achievement_key VARCHAR(64),
            sort_order INTEGER NOT NULL DEFAULT 0
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_avatar_items_achievement_key
        ON avatar_items(achievement_key)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_avatar_items (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            item_id INTEGER NOT NULL REFERENCES avatar_items(id),
            acquired_via VARCHAR(16) NOT NULL,
            acquired_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_avatar_items_user_item UNIQUE (user_id, item_id)
        )
    """)

    # --- Groups ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS groups (
            id BIGSERIAL PRIMARY KEY,
            name VARCHAR(64) NOT NULL,
            description TEXT,
            leader_id BIGINT NOT NULL REFERENCES users(id),
            invite_code VARCHAR(8) UNIQUE NOT NULL,
            open_for_challenges BOOLEAN NOT NULL DEFAULT false,
            members_can_invite BOOLEAN NOT NULL DEFAULT false,
            weekly_xp INTEGER NOT NULL DEFAULT 0,
            week_start_date DATE,
            current_level VARCHAR(32) NOT NULL DEFAULT 'Angels',
            level_updated_at TIMESTAMPTZ,
            challenge_wins INTEGER NOT NULL DEFAULT 0,
            challenge_losses INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS group_memberships (
            id BIGSERIAL PRIMARY KEY,
            group_id BIGINT NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_group_memberships_group_user UNIQUE (group_id, user_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_group_memberships_user
        ON group_memberships(user_id)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS group_invites (
            id BIGSERIAL PRIMARY KEY,
            group_id BIGINT NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
            invited_user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            invited_by_user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            responded_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_group_invites_invited_status
        ON group_invites(invited_user_id, status)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS group_activities (
            id BIGSERIAL PRIMARY KEY,
            group_id BIGINT NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            activity_type VARCHAR(32) NOT NULL,
            metadata JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_group_activities_group_created
        ON group_activities(group_id, created_at)
    """)

    # --- Challenges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenges (
            id BIGSERIAL PRIMARY KEY,
            challenger_group_id BIGINT REFERENCES groups(id) ON DELETE SET NULL,
            challenged_group_id BIGINT REFERENCES groups(id) ON DELETE SET NULL,
            created_by_user_id BIGINT NOT NULL REFERENCES users(id),
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            responded_at TIMESTAMPTZ,
            start_time TIMESTAMPTZ,
            end_time TIMESTAMPTZ,
            resolved_at TIMESTAMPTZ,
            challenger_start_xp INTEGER NOT NULL DEFAULT 0,
            challenged_start_xp INTEGER NOT NULL DEFAULT 0,
            challenger_member_count INTEGER NOT NULL DEFAULT 0,
            challenged_member_count INTEGER NOT NULL DEFAULT 0,
            challenger_xp_earned INTEGER NOT NULL DEFAULT 0,
            challenged_xp_earned INTEGER NOT NULL DEFAULT 0,
            challenger_active_members INTEGER NOT NULL DEFAULT 0,
            challenged_active_members INTEGER NOT NULL DEFAULT 0,
            challenger_score DOUBLE PRECISION NOT NULL DEFAULT 0,
            challenged_score DOUBLE PRECISION NOT NULL DEFAULT 0,
            winner_group_id BIGINT REFERENCES groups(id) ON DELETE SET NULL,
            CONSTRAINT ck_challenges_distinct_groups CHECK (challenger_group_id <> challenged_group_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_challenges_status_end
        ON challenges(status, end_time)
    """)
    # Sweep only ever scans active challenges
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_challenges_active_end
        ON challenges(end_time)
        WHERE status = 'active'
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS challenges CASCADE")
    op.execute("DROP TABLE IF EXISTS group_activities CASCADE")
    op.execute("DROP TABLE IF EXISTS group_invites CASCADE")
    op.execute("DROP TABLE IF EXISTS group_memberships CASCADE")
    op.execute("DROP TABLE IF EXISTS groups CASCADE")
    op.execute("DROP TABLE IF EXISTS user_avatar_items CASCADE")
    op.execute("DROP TABLE IF EXISTS avatar_items CASCADE")
    op.execute("DROP TABLE IF EXISTS user_achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS tier_thresholds CASCADE")
    op.execute("DROP TABLE IF EXISTS rolling_xp CASCADE")
    op.execute("DROP TABLE IF EXISTS chapter_completions CASCADE")
    op.execute("DROP TABLE IF EXISTS xp_ledger CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
