"""Challenge endpoints.

Reads resolve challenges whose window has closed, so every endpoint here
commits before responding.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.auth.dependencies import get_current_user
from scrolily.competition.challenge_engine import (
    accept_challenge,
    browse_open_groups,
    cancel_challenge,
    challenge_view,
    create_challenge,
    decline_challenge,
    get_challenge_status,
    get_group_challenges,
    lookup_group_for_challenge,
)
from scrolily.competition.schemas import (
    ChallengeCreateRequest,
    ChallengeResponse,
    GroupLookupResponse,
    OpenGroupResponse,
)
from scrolily.database import get_session
from scrolily.db.models import User
from scrolily.dependencies import get_redis_dep, get_task_queue
from scrolily.tasks.queue import TaskQueue

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/challenges", tags=["Challenges"])


@router.post("", response_model=ChallengeResponse, status_code=201)
async def create(
    body: ChallengeCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ChallengeResponse:
    challenge = await create_challenge(db, user.id, body.challenger_group_id, body.challenged_group_id)
    await db.commit()
    logger.info("challenge_created", challenge_id=challenge.id, user_id=user.id)
    return ChallengeResponse(**await challenge_view(db, challenge, user.id))


@router.get("/lookup/{group_id}", response_model=GroupLookupResponse)
async def lookup(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> GroupLookupResponse:
    return GroupLookupResponse(**await lookup_group_for_challenge(db, group_id))


@router.get("/open-groups", response_model=list[OpenGroupResponse])
async def open_groups(
    exclude_group_id: int | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[OpenGroupResponse]:
    return [OpenGroupResponse(**g) for g in await browse_open_groups(db, exclude_group_id)]


@router.get("/group/{group_id}", response_model=list[ChallengeResponse])
async def for_group(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
    tasks: TaskQueue = Depends(get_task_queue),
) -> list[ChallengeResponse]:
    views = await get_group_challenges(db, redis, tasks, group_id, user.id)
    await db.commit()
    await tasks.flush()
    return [ChallengeResponse(**v) for v in views]


@router.get("/{challenge_id}", response_model=ChallengeResponse)
async def get_one(
    challenge_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
    tasks: TaskQueue = Depends(get_task_queue),
) -> ChallengeResponse:
    view = await get_challenge_status(db, redis, tasks, challenge_id, user.id)
    await db.commit()
    await tasks.flush()
    return ChallengeResponse(**view)


@router.post("/{challenge_id}/accept", response_model=ChallengeResponse)
async def accept(
    challenge_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ChallengeResponse:
    challenge = await accept_challenge(db, user.id, challenge_id)
    await db.commit()
    return ChallengeResponse(**await challenge_view(db, challenge, user.id))


@router.post("/{challenge_id}/decline", response_model=ChallengeResponse)
async def decline(
    challenge_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ChallengeResponse:
    challenge = await decline_challenge(db, user.id, challenge_id)
    await db.commit()
    return ChallengeResponse(**await challenge_view(db, challenge, user.id))


@router.post("/{challenge_id}/cancel", response_model=ChallengeResponse)
async def cancel(
    challenge_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ChallengeResponse:
    challenge = await cancel_challenge(db, user.id, challenge_id)
    await db.commit()
    return ChallengeResponse(**await challenge_view(db, challenge, user.id))
