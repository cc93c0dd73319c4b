"""Reading group business logic.

Rules:
- The creator is the leader and first member
- Exactly one leader per group, stored on the group row so a transfer is a
  single column update
- A leader leaving hands leadership to the longest-serving member
- The last member leaving deletes the group
- Leaving, removal, transfer and deletion lock the group row first
- Deleting a group drops its open challenges and keeps finished ones
- Invite codes are server-generated, 8-char A-Z0-9
- Leader-only actions by anyone else raise InvalidTransition
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.config import get_settings
from scrolily.db.base import utcnow
from scrolily.db.models import (
    ChapterCompletion,
    Challenge,
    Group,
    GroupActivity,
    GroupInvite,
    GroupMembership,
    User,
    XPLedger,
)
from scrolily.errors import GroupNotFound, InvalidTransition, UserNotFound
from scrolily.groups.activity import MEMBER_JOINED, MEMBER_LEFT, record_group_activity
from scrolily.groups.invite_codes import generate_unique_invite_code, normalize_invite_code
from scrolily.groups.leveling import classify_group_level, effective_weekly_xp, lock_group
from scrolily.progression.calendar import app_today, week_start

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 64


async def get_group(db: AsyncSession, group_id: int, lock: bool = False) -> Group:
    group = await lock_group(db, group_id) if lock else await db.get(Group, group_id)
    if group is None:
        raise GroupNotFound(group_id)
    return group


async def get_membership(db: AsyncSession, group_id: int, user_id: int) -> GroupMembership | None:
    result = await db.execute(
        select(GroupMembership).where(
            GroupMembership.group_id == group_id,
            GroupMembership.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def require_member(db: AsyncSession, group_id: int, user_id: int) -> GroupMembership:
    membership = await get_membership(db, group_id, user_id)
    if membership is None:
        raise InvalidTransition("You are not a member of this group")
    return membership


def require_leader(group: Group, user_id: int, action: str) -> None:
    if group.leader_id != user_id:
        raise InvalidTransition(f"Only the group leader can {action}")


async def member_ids(db: AsyncSession, group_id: int) -> list[int]:
    result = await db.execute(
        select(GroupMembership.user_id)
        .where(GroupMembership.group_id == group_id)
        .order_by(GroupMembership.joined_at, GroupMembership.id)
    )
    return list(result.scalars().all())


async def member_count(db: AsyncSession, group_id: int) -> int:
    result = await db.execute(
        select(func.count(GroupMembership.id)).where(GroupMembership.group_id == group_id)
    )
    return int(result.scalar_one())


async def active_member_ids(
    db: AsyncSession,
    user_ids: list[int],
    as_of: datetime,
    days: int | None = None,
) -> set[int]:
    """Users with at least one XP ledger event in the ``days`` before ``as_of``."""
    if not user_ids:
        return set()
    days = days or get_settings().active_member_window_days
    result = await db.execute(
        select(XPLedger.user_id)
        .where(
            XPLedger.user_id.in_(user_ids),
            XPLedger.created_at > as_of - timedelta(days=days),
            XPLedger.created_at <= as_of,
        )
        .distinct()
    )
    return set(result.scalars().all())


def _clean_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise ValueError("Group name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise ValueError(f"Group name must be at most {MAX_NAME_LENGTH} characters")
    return name


async def _ensure_name_available(db: AsyncSession, name: str, exclude_id: int | None = None) -> None:
    stmt = select(Group.id).where(func.lower(Group.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(Group.id != exclude_id)
    if (await db.execute(stmt)).scalar_one_or_none() is not None:
        raise ValueError("A group with this name already exists")


async def _add_member(db: AsyncSession, group: Group, user_id: int, via: str) -> GroupMembership:
    membership = GroupMembership(group_id=group.id, user_id=user_id, joined_at=utcnow())
    db.add(membership)
    await record_group_activity(db, group.id, user_id, MEMBER_JOINED, {"via": via})
    await db.flush()
    return membership


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


async def create_group(
    db: AsyncSession,
    user_id: int,
    name: str,
    description: str | None = None,
    today: date | None = None,
) -> Group:
    """Create a group. The creator becomes the leader."""
    if await db.get(User, user_id) is None:
        raise UserNotFound(user_id)
    name = _clean_name(name)
    await _ensure_name_available(db, name)

    now = utcnow()
    group = Group(
        name=name,
        description=description,
        leader_id=user_id,
        invite_code=await generate_unique_invite_code(db),
        open_for_challenges=False,
        members_can_invite=False,
        weekly_xp=0,
        week_start_date=week_start(today or app_today(now)),
        current_level=classify_group_level(0)["level"],
        created_at=now,
        updated_at=now,
    )
    db.add(group)
    await db.flush()
    await _add_member(db, group, user_id, "created")

    logger.info("Group created: %s (id=%d, leader=%d)", name, group.id, user_id)
    return group


async def update_group(
    db: AsyncSession,
    group_id: int,
    user_id: int,
    name: str | None = None,
    description: str | None = None,
) -> Group:
    group = await get_group(db, group_id)
    require_leader(group, user_id, "edit the group")

    if name is not None:
        name = _clean_name(name)
        await _ensure_name_available(db, name, exclude_id=group_id)
        group.name = name
    if description is not None:
        group.description = description

    group.updated_at = utcnow()
    await db.flush()
    return group


async def delete_group(db: AsyncSession, group_id: int, user_id: int) -> None:
    group = await get_group(db, group_id, lock=True)
    require_leader(group, user_id, "delete the group")
    await _delete_group_rows(db, group)
    logger.info("Group %d deleted by leader %d", group_id, user_id)


async def _delete_group_rows(db: AsyncSession, group: Group) -> None:
    await db.execute(delete(GroupActivity).where(GroupActivity.group_id == group.id))
    await db.execute(delete(GroupInvite).where(GroupInvite.group_id == group.id))
    await db.execute(delete(GroupMembership).where(GroupMembership.group_id == group.id))
    # Open challenges go with the group. Finished ones stay in the opponent's
    # history with this side nulled out.
    involved = or_(Challenge.challenger_group_id == group.id, Challenge.challenged_group_id == group.id)
    await db.execute(
        delete(Challenge)
        .where(
            involved,
            or_(
                Challenge.status.in_(("pending", "active")),
                Challenge.challenger_group_id.is_(None),
                Challenge.challenged_group_id.is_(None),
            ),
        )
        .execution_options(synchronize_session=False)
    )
    for column in ("challenger_group_id", "challenged_group_id", "winner_group_id"):
        await db.execute(
            update(Challenge)
            .where(getattr(Challenge, column) == group.id)
            .values({column: None})
            .execution_options(synchronize_session=False)
        )
    await db.delete(group)
    await db.flush()


async def regenerate_invite_code(db: AsyncSession, group_id: int, user_id: int) -> str:
    group = await get_group(db, group_id)
    require_leader(group, user_id, "regenerate the invite code")
    group.invite_code = await generate_unique_invite_code(db)
    group.updated_at = utcnow()
    await db.flush()
    return group.invite_code


async def toggle_open_for_challenges(db: AsyncSession, group_id: int, user_id: int) -> bool:
    group = await get_group(db, group_id)
    require_leader(group, user_id, "change challenge settings")
    group.open_for_challenges = not group.open_for_challenges
    group.updated_at = utcnow()
    await db.flush()
    return group.open_for_challenges


async def toggle_members_can_invite(db: AsyncSession, group_id: int, user_id: int) -> bool:
    group = await get_group(db, group_id)
    require_leader(group, user_id, "change invite settings")
    group.members_can_invite = not group.members_can_invite
    group.updated_at = utcnow()
    await db.flush()
    return group.members_can_invite


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------


async def join_group_by_code(db: AsyncSession, user_id: int, invite_code: str) -> Group:
    code = normalize_invite_code(invite_code)
    group = (await db.execute(select(Group).where(Group.invite_code == code))).scalar_one_or_none()
    if group is None:
        raise ValueError("Invalid invite code")
    if await get_membership(db, group.id, user_id) is not None:
        raise ValueError("You are already a member of this group")

    await _add_member(db, group, user_id, "invite_code")
    await _close_pending_invites(db, group.id, user_id, "accepted")
    logger.info("User %d joined group %d via invite code", user_id, group.id)
    return group


async def leave_group(db: AsyncSession, group_id: int, user_id: int) -> dict[str, Any]:
    """Leave a group. Returns whether the group was deleted and the new leader."""
    group = await get_group(db, group_id, lock=True)
    membership = await require_member(db, group_id, user_id)

    remaining = [uid for uid in await member_ids(db, group_id) if uid != user_id]
    if not remaining:
        await _delete_group_rows(db, group)
        logger.info("User %d left group %d as last member; group deleted", user_id, group_id)
        return {"group_deleted": True, "new_leader_id": None}

    new_leader_id = None
    if group.leader_id == user_id:
        # member_ids is ordered by joined_at, so remaining[0] served longest
        new_leader_id = remaining[0]
        group.leader_id = new_leader_id
        logger.info("Leadership of group %d passed from %d to %d", group_id, user_id, new_leader_id)

    await db.delete(membership)
    await record_group_activity(db, group_id, user_id, MEMBER_LEFT, {})
    group.updated_at = utcnow()
    await db.flush()
    logger.info("User %d left group %d", user_id, group_id)
    return {"group_deleted": False, "new_leader_id": new_leader_id}


async def transfer_leadership(db: AsyncSession, group_id: int, user_id: int, new_leader_id: int) -> Group:
    group = await get_group(db, group_id, lock=True)
    require_leader(group, user_id, "transfer leadership")
    if new_leader_id == user_id:
        raise ValueError("You are already the leader")
    if await get_membership(db, group_id, new_leader_id) is None:
        raise ValueError("New leader must be a member of the group")

    group.leader_id = new_leader_id
    group.updated_at = utcnow()
    await db.flush()
    logger.info("Leadership of group %d transferred from %d to %d", group_id, user_id, new_leader_id)
    return group


async def remove_member(db: AsyncSession, group_id: int, user_id: int, target_user_id: int) -> None:
    group = await get_group(db, group_id, lock=True)
    require_leader(group, user_id, "remove members")
    if target_user_id == user_id:
        raise ValueError("Use leave to leave your own group")
    target = await get_membership(db, group_id, target_user_id)
    if target is None:
        raise ValueError("User is not a member of this group")

    await db.delete(target)
    await record_group_activity(db, group_id, target_user_id, MEMBER_LEFT, {"removed_by": user_id})
    group.updated_at = utcnow()
    await db.flush()
    logger.info("Leader %d removed user %d from group %d", user_id, target_user_id, group_id)


# ---------------------------------------------------------------------------
# Invites
# ---------------------------------------------------------------------------


async def _close_pending_invites(db: AsyncSession, group_id: int, user_id: int, status: str) -> None:
    result = await db.execute(
        select(GroupInvite).where(
            GroupInvite.group_id == group_id,
            GroupInvite.invited_user_id == user_id,
            GroupInvite.status == "pending",
        )
    )
    for invite in result.scalars().all():
        invite.status = status
        invite.responded_at = utcnow()


async def invite_to_group(
    db: AsyncSession,
    group_id: int,
    user_id: int,
    invited_user_id: int,
) -> GroupInvite:
    group = await get_group(db, group_id)
    await require_member(db, group_id, user_id)
    if group.leader_id != user_id and not group.members_can_invite:
        raise InvalidTransition("Only the group leader can invite members")
    if await db.get(User, invited_user_id) is None:
        raise UserNotFound(invited_user_id)
    if await get_membership(db, group_id, invited_user_id) is not None:
        raise ValueError("User is already a member of this group")

    pending = await db.execute(
        select(GroupInvite.id).where(
            GroupInvite.group_id == group_id,
            GroupInvite.invited_user_id == invited_user_id,
            GroupInvite.status == "pending",
        )
    )
    if pending.scalar_one_or_none() is not None:
        raise ValueError("User already has a pending invite to this group")

    invite = GroupInvite(
        group_id=group_id,
        invited_user_id=invited_user_id,
        invited_by_user_id=user_id,
        status="pending",
        created_at=utcnow(),
    )
    db.add(invite)
    await db.flush()
    logger.info("User %d invited user %d to group %d", user_id, invited_user_id, group_id)
    return invite


async def _get_invite(db: AsyncSession, invite_id: int) -> GroupInvite:
    invite = await db.get(GroupInvite, invite_id)
    if invite is None:
        raise ValueError("Invite not found")
    return invite


async def respond_to_invite(db: AsyncSession, invite_id: int, user_id: int, accept: bool) -> GroupInvite:
    invite = await _get_invite(db, invite_id)
    if invite.invited_user_id != user_id:
        raise InvalidTransition("This invite is not for you")
    if invite.status != "pending":
        raise InvalidTransition(f"Invite is already {invite.status}")

    invite.status = "accepted" if accept else "declined"
    invite.responded_at = utcnow()
    if accept:
        group = await get_group(db, invite.group_id)
        if await get_membership(db, group.id, user_id) is None:
            await _add_member(db, group, user_id, "invite")
    await db.flush()
    return invite


async def cancel_invite(db: AsyncSession, invite_id: int, user_id: int) -> GroupInvite:
    invite = await _get_invite(db, invite_id)
    group = await get_group(db, invite.group_id)
    if user_id not in (invite.invited_by_user_id, group.leader_id):
        raise InvalidTransition("Only the inviter or the group leader can cancel this invite")
    if invite.status != "pending":
        raise InvalidTransition(f"Invite is already {invite.status}")
    invite.status = "cancelled"
    invite.responded_at = utcnow()
    await db.flush()
    return invite


def _invite_payload(invite: GroupInvite, group_name: str, name: str | None) -> dict[str, Any]:
    return {
        "id": invite.id,
        "group_id": invite.group_id,
        "group_name": group_name,
        "invited_user_id": invite.invited_user_id,
        "invited_by_user_id": invite.invited_by_user_id,
        "other_user_name": name,
        "status": invite.status,
        "created_at": invite.created_at,
    }


async def get_pending_invites(db: AsyncSession, user_id: int) -> list[dict[str, Any]]:
    """Invites waiting on the user; ``other_user_name`` is the inviter."""
    result = await db.execute(
        select(GroupInvite, Group.name, User.name)
        .join(Group, Group.id == GroupInvite.group_id)
        .join(User, User.id == GroupInvite.invited_by_user_id)
        .where(GroupInvite.invited_user_id == user_id, GroupInvite.status == "pending")
        .order_by(GroupInvite.created_at.desc())
    )
    return [_invite_payload(invite, group_name, name) for invite, group_name, name in result.all()]


async def get_group_pending_invites(db: AsyncSession, group_id: int, user_id: int) -> list[dict[str, Any]]:
    """Outstanding invites of a group; ``other_user_name`` is the invitee."""
    await get_group(db, group_id)
    await require_member(db, group_id, user_id)
    result = await db.execute(
        select(GroupInvite, Group.name, User.name)
        .join(Group, Group.id == GroupInvite.group_id)
        .join(User, User.id == GroupInvite.invited_user_id)
        .where(GroupInvite.group_id == group_id, GroupInvite.status == "pending")
        .order_by(GroupInvite.created_at.desc())
    )
    return [_invite_payload(invite, group_name, name) for invite, group_name, name in result.all()]


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def group_summary(group: Group, members: int, user_id: int | None, today: date) -> dict[str, Any]:
    weekly_xp = effective_weekly_xp(group, today)
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "leader_id": group.leader_id,
        "member_count": members,
        "is_leader": group.leader_id == user_id,
        "open_for_challenges": group.open_for_challenges,
        "members_can_invite": group.members_can_invite,
        "weekly_xp": weekly_xp,
        "current_level": classify_group_level(weekly_xp)["level"],
        "challenge_wins": group.challenge_wins,
        "challenge_losses": group.challenge_losses,
        "created_at": group.created_at,
    }


async def list_my_groups(db: AsyncSession, user_id: int, today: date | None = None) -> list[dict[str, Any]]:
    today = today or app_today()
    result = await db.execute(
        select(Group)
        .join(GroupMembership, GroupMembership.group_id == Group.id)
        .where(GroupMembership.user_id == user_id)
        .order_by(GroupMembership.joined_at)
    )
    return [
        group_summary(group, await member_count(db, group.id), user_id, today)
        for group in result.scalars().all()
    ]


async def get_group_details(
    db: AsyncSession,
    group_id: int,
    user_id: int,
    today: date | None = None,
) -> dict[str, Any]:
    """Group view. The invite code is only revealed to members."""
    group = await get_group(db, group_id)
    is_member = await get_membership(db, group_id, user_id) is not None
    details = group_summary(group, await member_count(db, group_id), user_id, today or app_today())
    details["is_member"] = is_member
    details["invite_code"] = group.invite_code if is_member else None
    return details


async def get_group_leaderboard(db: AsyncSession, group_id: int) -> list[dict[str, Any]]:
    """Members ranked by lifetime XP."""
    group = await get_group(db, group_id)
    result = await db.execute(
        select(User, GroupMembership.joined_at)
        .join(GroupMembership, GroupMembership.user_id == User.id)
        .where(GroupMembership.group_id == group_id)
        .order_by(User.total_xp.desc(), GroupMembership.joined_at, User.id)
    )
    return [
        {
            "rank": rank,
            "user_id": user.id,
            "name": user.name,
            "avatar_config": user.avatar_config,
            "total_xp": user.total_xp,
            "current_streak": user.current_streak,
            "current_tier": user.current_tier,
            "is_leader": user.id == group.leader_id,
            "joined_at": joined_at,
        }
        for rank, (user, joined_at) in enumerate(result.all(), start=1)
    ]


async def get_group_statistics(
    db: AsyncSession,
    group_id: int,
    today: date | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    group = await get_group(db, group_id)
    now = now or utcnow()
    today = today or app_today(now)
    ids = await member_ids(db, group_id)

    total_xp = 0
    total_chapters = 0
    if ids:
        xp_result = await db.execute(
            select(func.coalesce(func.sum(User.total_xp), 0)).where(User.id.in_(ids))
        )
        total_xp = int(xp_result.scalar_one())
        chapters_result = await db.execute(
            select(func.count(ChapterCompletion.id)).where(ChapterCompletion.user_id.in_(ids))
        )
        total_chapters = int(chapters_result.scalar_one())

    return {
        "group_id": group.id,
        "member_count": len(ids),
        "total_xp": total_xp,
        "total_chapters": total_chapters,
        "xp_this_week": effective_weekly_xp(group, today),
        "active_members": len(await active_member_ids(db, ids, now)),
    }
