"""Group-vs-group challenge engine: state machine, scoring, resolution.

State progression: pending -> active -> completed, or pending -> declined /
cancelled. Completed, declined and cancelled are terminal.

A side's score is the XP its current members earned inside the challenge
window divided by the number of those members active in the trailing
week (floored at 1), so inactive members never drag a group's average
down. Active scores are recomputed on every read from the XP ledger with
one shared ``as_of`` instant for both sides. Final scores are computed at
``end_time`` and stored once, on resolution.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.config import get_settings
from scrolily.db.base import utcnow
from scrolily.db.models import Challenge, Group, User, XPLedger
from scrolily.errors import ChallengeNotFound, GroupNotFound, InvalidTransition
from scrolily.groups.activity import (
    CHALLENGE_ACCEPTED,
    CHALLENGE_LOST,
    CHALLENGE_SENT,
    CHALLENGE_TIED,
    CHALLENGE_WON,
    record_group_activity,
)
from scrolily.groups.leveling import effective_weekly_xp
from scrolily.groups.service import active_member_ids, get_group, member_count, member_ids
from scrolily.progression.calendar import app_today
from scrolily.redis_client import publish_event
from scrolily.tasks.queue import CHECK_ACHIEVEMENTS, TaskQueue

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[str, list[str]] = {
    "pending": ["active", "declined", "cancelled"],
    "active": ["completed"],
    "completed": [],
    "declined": [],
    "cancelled": [],
}

OPEN_STATUSES = ("pending", "active")


def validate_transition(current_status: str, target_status: str) -> None:
    """Raise InvalidTransition unless ``current_status -> target_status`` is allowed."""
    valid = VALID_TRANSITIONS.get(current_status, [])
    if target_status not in valid:
        raise InvalidTransition(f"Cannot move a {current_status} challenge to {target_status}")


def compute_score(xp_earned: int, active_members: int) -> float:
    """Per-active-member XP rate. The divisor floors at 1, so 0/0 scores 0."""
    return xp_earned / max(1, active_members)


def decide_winner(
    challenger_group_id: int,
    challenger_score: float,
    challenged_group_id: int,
    challenged_score: float,
) -> int | None:
    """Strictly higher score wins. Equal scores are a tie (None)."""
    if challenger_score > challenged_score:
        return challenger_group_id
    if challenged_score > challenger_score:
        return challenged_group_id
    return None


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


async def side_metrics(
    db: AsyncSession,
    group_id: int,
    start: datetime,
    as_of: datetime,
) -> dict[str, Any]:
    """Window XP, active members and score for one side as of ``as_of``."""
    ids = await member_ids(db, group_id)
    xp_earned = 0
    if ids:
        result = await db.execute(
            select(func.coalesce(func.sum(XPLedger.amount), 0)).where(
                XPLedger.user_id.in_(ids),
                XPLedger.created_at >= start,
                XPLedger.created_at <= as_of,
            )
        )
        xp_earned = int(result.scalar_one())
    active = len(await active_member_ids(db, ids, as_of))
    return {
        "member_count": len(ids),
        "xp_earned": xp_earned,
        "active_members": active,
        "score": compute_score(xp_earned, active),
    }


async def _lifetime_xp(db: AsyncSession, group_id: int) -> int:
    ids = await member_ids(db, group_id)
    if not ids:
        return 0
    result = await db.execute(select(func.coalesce(func.sum(User.total_xp), 0)).where(User.id.in_(ids)))
    return int(result.scalar_one())


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


async def get_challenge(db: AsyncSession, challenge_id: int, lock: bool = False) -> Challenge:
    stmt = select(Challenge).where(Challenge.id == challenge_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    challenge = (await db.execute(stmt)).scalar_one_or_none()
    if challenge is None:
        raise ChallengeNotFound(challenge_id)
    return challenge


async def lookup_group_for_challenge(db: AsyncSession, group_id: int) -> dict[str, Any]:
    """Direct-by-id lookup. Only groups open for challenges are revealed."""
    group = await db.get(Group, group_id)
    if group is None or not group.open_for_challenges:
        return {"found": False, "group_id": None, "name": None}
    return {"found": True, "group_id": group.id, "name": group.name}


async def browse_open_groups(
    db: AsyncSession,
    exclude_group_id: int | None = None,
    today: date | None = None,
) -> list[dict[str, Any]]:
    today = today or app_today()
    stmt = select(Group).where(Group.open_for_challenges.is_(True)).order_by(Group.name, Group.id)
    if exclude_group_id is not None:
        stmt = stmt.where(Group.id != exclude_group_id)
    groups = (await db.execute(stmt)).scalars().all()
    return [
        {
            "group_id": group.id,
            "name": group.name,
            "description": group.description,
            "member_count": await member_count(db, group.id),
            "total_xp": await _lifetime_xp(db, group.id),
            "weekly_xp": effective_weekly_xp(group, today),
            "win_count": group.challenge_wins,
            "loss_count": group.challenge_losses,
        }
        for group in groups
    ]


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


async def create_challenge(
    db: AsyncSession,
    user_id: int,
    challenger_group_id: int,
    challenged_group_id: int,
    now: datetime | None = None,
) -> Challenge:
    """Propose a challenge from the caller's group to an open group."""
    now = now or utcnow()
    challenger = await get_group(db, challenger_group_id)
    if challenger.leader_id != user_id:
        raise InvalidTransition("Only the group leader can send challenges")
    if challenged_group_id == challenger_group_id:
        raise ValueError("A group cannot challenge itself")

    challenged = await db.get(Group, challenged_group_id)
    if challenged is None:
        raise GroupNotFound(challenged_group_id)
    if not challenged.open_for_challenges:
        raise ValueError(f"{challenged.name} is not accepting challenges")

    existing = await db.execute(
        select(Challenge.id).where(
            Challenge.status.in_(OPEN_STATUSES),
            or_(
                (Challenge.challenger_group_id == challenger_group_id)
                & (Challenge.challenged_group_id == challenged_group_id),
                (Challenge.challenger_group_id == challenged_group_id)
                & (Challenge.challenged_group_id == challenger_group_id),
            ),
        )
    )
    if existing.first() is not None:
        raise ValueError("These groups already have a pending or active challenge")

    challenge = Challenge(
        challenger_group_id=challenger_group_id,
        challenged_group_id=challenged_group_id,
        created_by_user_id=user_id,
        status="pending",
        created_at=now,
    )
    db.add(challenge)
    await db.flush()

    meta = {"challenge_id": challenge.id, "opponent": challenged.name}
    await record_group_activity(db, challenger_group_id, user_id, CHALLENGE_SENT, meta, now)
    logger.info(
        "Challenge %d created: group %d -> group %d (user=%d)",
        challenge.id, challenger_group_id, challenged_group_id, user_id,
    )
    return challenge


async def accept_challenge(
    db: AsyncSession,
    user_id: int,
    challenge_id: int,
    now: datetime | None = None,
) -> Challenge:
    """Challenged leader accepts: the window opens now and runs for the configured duration."""
    now = now or utcnow()
    challenge = await get_challenge(db, challenge_id, lock=True)
    validate_transition(challenge.status, "active")
    challenged = await get_group(db, challenge.challenged_group_id)
    if challenged.leader_id != user_id:
        raise InvalidTransition("Only the challenged group's leader can accept")

    challenge.status = "active"
    challenge.responded_at = now
    challenge.start_time = now
    challenge.end_time = now + timedelta(days=get_settings().challenge_duration_days)
    challenge.challenger_start_xp = await _lifetime_xp(db, challenge.challenger_group_id)
    challenge.challenged_start_xp = await _lifetime_xp(db, challenge.challenged_group_id)
    challenger_ids = await member_ids(db, challenge.challenger_group_id)
    challenged_ids = await member_ids(db, challenge.challenged_group_id)
    challenge.challenger_member_count = len(challenger_ids)
    challenge.challenged_member_count = len(challenged_ids)
    challenge.challenger_active_members = len(await active_member_ids(db, challenger_ids, now))
    challenge.challenged_active_members = len(await active_member_ids(db, challenged_ids, now))

    meta = {"challenge_id": challenge.id, "end_time": challenge.end_time.isoformat()}
    await record_group_activity(db, challenge.challenger_group_id, user_id, CHALLENGE_ACCEPTED, meta, now)
    await record_group_activity(db, challenge.challenged_group_id, user_id, CHALLENGE_ACCEPTED, meta, now)
    await db.flush()
    logger.info("Challenge %d accepted; ends %s", challenge.id, challenge.end_time.isoformat())
    return challenge


async def decline_challenge(
    db: AsyncSession,
    user_id: int,
    challenge_id: int,
    now: datetime | None = None,
) -> Challenge:
    challenge = await get_challenge(db, challenge_id, lock=True)
    validate_transition(challenge.status, "declined")
    challenged = await get_group(db, challenge.challenged_group_id)
    if challenged.leader_id != user_id:
        raise InvalidTransition("Only the challenged group's leader can decline")

    challenge.status = "declined"
    challenge.responded_at = now or utcnow()
    await db.flush()
    logger.info("Challenge %d declined by user %d", challenge.id, user_id)
    return challenge


async def cancel_challenge(
    db: AsyncSession,
    user_id: int,
    challenge_id: int,
    now: datetime | None = None,
) -> Challenge:
    challenge = await get_challenge(db, challenge_id, lock=True)
    validate_transition(challenge.status, "cancelled")
    challenger = await get_group(db, challenge.challenger_group_id)
    if challenger.leader_id != user_id:
        raise InvalidTransition("Only the challenging group's leader can cancel")

    challenge.status = "cancelled"
    challenge.responded_at = now or utcnow()
    await db.flush()
    logger.info("Challenge %d cancelled by user %d", challenge.id, user_id)
    return challenge


async def resolve_challenge(
    db: AsyncSession,
    redis: object,
    tasks: TaskQueue,
    challenge_id: int,
    now: datetime | None = None,
) -> Challenge:
    """Complete an active challenge whose window has closed.

    Re-resolving is a no-op: the row is locked and its status re-checked,
    so concurrent readers and the sweep cannot both apply the result.
    """
    now = now or utcnow()
    challenge = await get_challenge(db, challenge_id, lock=True)
    if challenge.status != "active" or challenge.end_time is None or now < challenge.end_time:
        return challenge
    validate_transition(challenge.status, "completed")

    start, end = challenge.start_time or challenge.created_at, challenge.end_time
    challenger = await side_metrics(db, challenge.challenger_group_id, start, end)
    challenged = await side_metrics(db, challenge.challenged_group_id, start, end)
    winner_id = decide_winner(
        challenge.challenger_group_id, challenger["score"],
        challenge.challenged_group_id, challenged["score"],
    )
    if winner_id is not None:
        await _credit_winning_members(db, tasks, winner_id)

    challenge.challenger_xp_earned = challenger["xp_earned"]
    challenge.challenged_xp_earned = challenged["xp_earned"]
    challenge.challenger_active_members = challenger["active_members"]
    challenge.challenged_active_members = challenged["active_members"]
    challenge.challenger_score = challenger["score"]
    challenge.challenged_score = challenged["score"]
    challenge.winner_group_id = winner_id
    challenge.status = "completed"
    challenge.resolved_at = now

    await _apply_result(db, challenge, now)
    await db.flush()

    logger.info(
        "Challenge %d completed: %.2f vs %.2f, winner=%s",
        challenge.id, challenge.challenger_score, challenge.challenged_score, challenge.winner_group_id,
    )
    await publish_event(redis, "pubsub:challenge_completed", {
        "challenge_id": challenge.id,
        "challenger_group_id": challenge.challenger_group_id,
        "challenged_group_id": challenge.challenged_group_id,
        "challenger_score": challenge.challenger_score,
        "challenged_score": challenge.challenged_score,
        "winner_group_id": challenge.winner_group_id,
    })
    return challenge


async def _credit_winning_members(db: AsyncSession, tasks: TaskQueue, winner_id: int) -> None:
    """Bump every winning member's challenge_wins.

    Runs before any group row is touched: user rows are locked in id order
    ahead of group rows, the same order grant_xp takes its locks in.
    """
    winners = await member_ids(db, winner_id)
    if not winners:
        return
    await db.execute(select(User.id).where(User.id.in_(winners)).order_by(User.id).with_for_update())
    await db.execute(
        update(User)
        .where(User.id.in_(winners))
        .values(challenge_wins=User.challenge_wins + 1)
        .execution_options(synchronize_session=False)
    )
    for uid in winners:
        tasks.schedule(CHECK_ACHIEVEMENTS, uid)


async def _apply_result(db: AsyncSession, challenge: Challenge, now: datetime) -> None:
    sides = (challenge.challenger_group_id, challenge.challenged_group_id)
    meta = {"challenge_id": challenge.id}

    if challenge.winner_group_id is None:
        for group_id in sides:
            await record_group_activity(db, group_id, challenge.created_by_user_id, CHALLENGE_TIED, meta, now)
        return

    winner_id = challenge.winner_group_id
    loser_id = sides[1] if winner_id == sides[0] else sides[0]

    locked: dict[int, Group] = {}
    for group_id in sorted(sides):
        locked[group_id] = await get_group(db, group_id, lock=True)
    winner, loser = locked[winner_id], locked[loser_id]
    winner.challenge_wins += 1
    loser.challenge_losses += 1

    await record_group_activity(db, winner_id, winner.leader_id, CHALLENGE_WON, meta, now)
    await record_group_activity(db, loser_id, loser.leader_id, CHALLENGE_LOST, meta, now)


async def sweep_challenges(
    db: AsyncSession,
    redis: object,
    tasks: TaskQueue,
    now: datetime | None = None,
) -> int:
    """Resolve every active challenge past its end time. Returns the number resolved."""
    now = now or utcnow()
    result = await db.execute(
        select(Challenge.id)
        .where(Challenge.status == "active", Challenge.end_time <= now)
        .order_by(Challenge.end_time)
    )
    resolved = 0
    for challenge_id in list(result.scalars().all()):
        challenge = await resolve_challenge(db, redis, tasks, challenge_id, now)
        if challenge.status == "completed" and challenge.resolved_at == now:
            resolved += 1
    if resolved:
        logger.info("Challenge sweep resolved %d challenges", resolved)
    return resolved


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


async def challenge_view(
    db: AsyncSession,
    challenge: Challenge,
    user_id: int | None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Challenge with per-side metrics and the caller's action flags.

    Active challenges show live metrics computed at one ``now`` for both
    sides. Completed challenges show the stored final metrics.
    """
    now = now or utcnow()
    challenger_group = await _side_group(db, challenge.challenger_group_id)
    challenged_group = await _side_group(db, challenge.challenged_group_id)

    if challenge.status == "active":
        as_of = min(now, challenge.end_time) if challenge.end_time else now
        start = challenge.start_time or challenge.created_at
        challenger = await side_metrics(db, challenge.challenger_group_id, start, as_of)
        challenged = await side_metrics(db, challenge.challenged_group_id, start, as_of)
    elif challenge.status == "completed":
        challenger = {
            "member_count": challenge.challenger_member_count,
            "xp_earned": challenge.challenger_xp_earned,
            "active_members": challenge.challenger_active_members,
            "score": challenge.challenger_score,
        }
        challenged = {
            "member_count": challenge.challenged_member_count,
            "xp_earned": challenge.challenged_xp_earned,
            "active_members": challenge.challenged_active_members,
            "score": challenge.challenged_score,
        }
    else:
        challenger = {
            "member_count": await _side_member_count(db, challenger_group),
            "xp_earned": 0, "active_members": 0, "score": 0.0,
        }
        challenged = {
            "member_count": await _side_member_count(db, challenged_group),
            "xp_earned": 0, "active_members": 0, "score": 0.0,
        }

    completed = challenge.status == "completed"
    pending = challenge.status == "pending"
    return {
        "id": challenge.id,
        "status": challenge.status,
        "created_by_user_id": challenge.created_by_user_id,
        "created_at": challenge.created_at,
        "start_time": challenge.start_time,
        "end_time": challenge.end_time,
        "resolved_at": challenge.resolved_at,
        "winner_group_id": challenge.winner_group_id,
        "is_tie": completed and challenge.challenger_score == challenge.challenged_score,
        "challenger": {**_side_identity(challenger_group), **challenger},
        "challenged": {**_side_identity(challenged_group), **challenged},
        "can_respond": pending and user_id is not None and challenged_group.leader_id == user_id,
        "can_cancel": pending and user_id is not None and challenger_group.leader_id == user_id,
    }


async def _side_group(db: AsyncSession, group_id: int | None) -> Group | None:
    """The side's group, or None once it has been deleted."""
    if group_id is None:
        return None
    return await get_group(db, group_id)


async def _side_member_count(db: AsyncSession, group: Group | None) -> int:
    return await member_count(db, group.id) if group is not None else 0


def _side_identity(group: Group | None) -> dict[str, Any]:
    if group is None:
        return {"group_id": None, "name": None}
    return {"group_id": group.id, "name": group.name}


async def get_challenge_status(
    db: AsyncSession,
    redis: object,
    tasks: TaskQueue,
    challenge_id: int,
    user_id: int | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Read a challenge, resolving it first if its window has closed."""
    now = now or utcnow()
    challenge = await resolve_challenge(db, redis, tasks, challenge_id, now)
    return await challenge_view(db, challenge, user_id, now)


async def get_group_challenges(
    db: AsyncSession,
    redis: object,
    tasks: TaskQueue,
    group_id: int,
    user_id: int | None = None,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Every challenge the group is part of, newest first."""
    now = now or utcnow()
    await get_group(db, group_id)
    result = await db.execute(
        select(Challenge.id)
        .where(or_(Challenge.challenger_group_id == group_id, Challenge.challenged_group_id == group_id))
        .order_by(Challenge.created_at.desc(), Challenge.id.desc())
    )
    views = []
    for challenge_id in list(result.scalars().all()):
        challenge = await resolve_challenge(db, redis, tasks, challenge_id, now)
        views.append(await challenge_view(db, challenge, user_id, now))
    return views
