"""Group activity feed."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.db.base import utcnow
from scrolily.db.models import GroupActivity, GroupMembership, User

MEMBER_JOINED = "member_joined"
MEMBER_LEFT = "member_left"
CHAPTER_COMPLETED = "chapter_completed"
ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
CHALLENGE_SENT = "challenge_sent"
CHALLENGE_ACCEPTED = "challenge_accepted"
CHALLENGE_WON = "challenge_won"
CHALLENGE_LOST = "challenge_lost"
CHALLENGE_TIED = "challenge_tied"


async def record_group_activity(
    db: AsyncSession,
    group_id: int,
    user_id: int,
    activity_type: str,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> GroupActivity:
    activity = GroupActivity(
        group_id=group_id,
        user_id=user_id,
        activity_type=activity_type,
        activity_metadata=metadata or {},
        created_at=now or utcnow(),
    )
    db.add(activity)
    return activity


async def record_activity_for_user_groups(
    db: AsyncSession,
    user_id: int,
    activity_type: str,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> int:
    """Fan a personal event out to every group the user belongs to."""
    result = await db.execute(
        select(GroupMembership.group_id).where(GroupMembership.user_id == user_id)
    )
    group_ids = list(result.scalars().all())
    for group_id in group_ids:
        await record_group_activity(db, group_id, user_id, activity_type, metadata, now)
    return len(group_ids)


async def get_group_activity_feed(
    db: AsyncSession,
    group_id: int,
    limit: int = 50,
) -> list[dict[str, Any]]:
    """Newest first, with the acting user's display fields."""
    result = await db.execute(
        select(GroupActivity, User.name, User.avatar_config)
        .join(User, User.id == GroupActivity.user_id)
        .where(GroupActivity.group_id == group_id)
        .order_by(GroupActivity.created_at.desc(), GroupActivity.id.desc())
        .limit(limit)
    )
    return [
        {
            "id": activity.id,
            "user_id": activity.user_id,
            "user_name": name,
            "user_avatar_config": avatar_config,
            "activity_type": activity.activity_type,
            "metadata": activity.activity_metadata,
            "created_at": activity.created_at,
        }
        for activity, name, avatar_config in result.all()
    ]
