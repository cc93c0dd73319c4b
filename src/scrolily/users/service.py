"""Reader profile registration and profile edits."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, select

from scrolily.db.base import utcnow
from scrolily.db.models import User
from scrolily.db.upsert import insert_for
from scrolily.errors import UserNotFound
from scrolily.progression.tiers import classify_tier, get_tier_thresholds
from scrolily.store.service import grant_free_items

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


async def get_user_by_subject(db: AsyncSession, auth_subject: str) -> User | None:
    result = await db.execute(select(User).where(User.auth_subject == auth_subject))
    return result.scalar_one_or_none()


async def register_user(
    db: AsyncSession,
    auth_subject: str,
    name: str | None = None,
    email: str | None = None,
) -> tuple[User, bool]:
    """
    Create the profile for an identity-provider subject.

    Idempotent: a second call for the same subject returns the existing
    profile. New profiles start in the lowest tier and own every free item.

    Returns:
        (user, created)
    """
    if email is not None:
        email = email.strip().lower()
        taken = await db.execute(
            select(User.id).where(func.lower(User.email) == email, User.auth_subject != auth_subject)
        )
        if taken.scalar_one_or_none() is not None:
            msg = "Email already registered"
            raise ValueError(msg)

    thresholds = await get_tier_thresholds(db)
    now = utcnow()
    stmt = (
        insert_for(db, User)
        .values(
            auth_subject=auth_subject,
            name=name.strip() if name else None,
            email=email,
            current_tier=classify_tier(0, thresholds)["tier"],
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=["auth_subject"])
        .returning(User.id)
    )
    new_id = (await db.execute(stmt)).scalar_one_or_none()

    user = await get_user_by_subject(db, auth_subject)
    if user is None:
        raise UserNotFound(auth_subject)
    if new_id is None:
        return user, False

    await grant_free_items(db, user.id)
    await db.flush()
    logger.info("user_registered", user_id=user.id)
    return user, True


async def update_profile(
    db: AsyncSession,
    user: User,
    name: str | None = None,
    avatar_url: str | None = None,
) -> User:
    """Update display fields. Progression fields are never edited here."""
    if name is not None:
        name = name.strip()
        if not name:
            msg = "Name cannot be empty"
            raise ValueError(msg)
        user.name = name
    if avatar_url is not None:
        user.avatar_url = avatar_url or None
    user.updated_at = utcnow()
    await db.flush()
    return user


def profile_payload(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "avatar_url": user.avatar_url,
        "avatar_config": user.avatar_config,
        "total_xp": user.total_xp,
        "current_streak": user.current_streak,
        "longest_streak": user.longest_streak,
        "current_tier": user.current_tier,
        "talents": user.talents,
        "challenge_wins": user.challenge_wins,
        "created_at": user.created_at,
    }
