"""Group endpoints: lifecycle, membership, invites, feed, and weekly levels."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.auth.dependencies import get_current_user
from scrolily.database import get_session
from scrolily.db.models import GroupInvite, User
from scrolily.groups.activity import get_group_activity_feed
from scrolily.groups.leveling import get_group_level_info, get_group_level_thresholds
from scrolily.groups.schemas import (
    ActivityResponse,
    GroupCreateRequest,
    GroupDetailResponse,
    GroupLeaderboardEntry,
    GroupLevelInfoResponse,
    GroupLevelThreshold,
    GroupStatisticsResponse,
    GroupSummaryResponse,
    GroupUpdateRequest,
    InviteCodeResponse,
    InviteRequest,
    InviteResponse,
    InviteResponseRequest,
    JoinRequest,
    LeaveResponse,
    ToggleResponse,
    TransferLeadershipRequest,
)
from scrolily.groups.service import (
    cancel_invite,
    create_group,
    delete_group,
    get_group,
    get_group_details,
    get_group_leaderboard,
    get_group_pending_invites,
    get_group_statistics,
    get_pending_invites,
    invite_to_group,
    join_group_by_code,
    leave_group,
    list_my_groups,
    regenerate_invite_code,
    remove_member,
    require_member,
    respond_to_invite,
    toggle_members_can_invite,
    toggle_open_for_challenges,
    transfer_leadership,
    update_group,
)

router = APIRouter(prefix="/api/v1/groups", tags=["Groups"])


def _invite(invite: GroupInvite) -> InviteResponse:
    return InviteResponse(
        id=invite.id,
        group_id=invite.group_id,
        invited_user_id=invite.invited_user_id,
        invited_by_user_id=invite.invited_by_user_id,
        status=invite.status,
        created_at=invite.created_at,
    )


async def _details(db: AsyncSession, group_id: int, user_id: int) -> GroupDetailResponse:
    return GroupDetailResponse(**await get_group_details(db, group_id, user_id))


# ── Lifecycle ──


@router.post("", response_model=GroupDetailResponse, status_code=201)
async def create(
    body: GroupCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> GroupDetailResponse:
    group = await create_group(db, user.id, body.name, body.description)
    await db.commit()
    return await _details(db, group.id, user.id)


@router.get("", response_model=list[GroupSummaryResponse])
async def my_groups(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[GroupSummaryResponse]:
    return [GroupSummaryResponse(**g) for g in await list_my_groups(db, user.id)]


@router.get("/level-thresholds", response_model=list[GroupLevelThreshold])
async def level_thresholds() -> list[GroupLevelThreshold]:
    return [GroupLevelThreshold(**level) for level in get_group_level_thresholds()]


@router.post("/join", response_model=GroupDetailResponse)
async def join(
    body: JoinRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> GroupDetailResponse:
    group = await join_group_by_code(db, user.id, body.invite_code)
    await db.commit()
    return await _details(db, group.id, user.id)


@router.get("/invites", response_model=list[InviteResponse])
async def my_invites(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[InviteResponse]:
    return [InviteResponse(**i) for i in await get_pending_invites(db, user.id)]


@router.post("/invites/{invite_id}/respond", response_model=InviteResponse)
async def respond(
    invite_id: int,
    body: InviteResponseRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> InviteResponse:
    invite = await respond_to_invite(db, invite_id, user.id, body.accept)
    await db.commit()
    return _invite(invite)


@router.post("/invites/{invite_id}/cancel", response_model=InviteResponse)
async def cancel(
    invite_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> InviteResponse:
    invite = await cancel_invite(db, invite_id, user.id)
    await db.commit()
    return _invite(invite)


@router.get("/{group_id}", response_model=GroupDetailResponse)
async def get_one(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> GroupDetailResponse:
    return await _details(db, group_id, user.id)


@router.patch("/{group_id}", response_model=GroupDetailResponse)
async def update(
    group_id: int,
    body: GroupUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> GroupDetailResponse:
    await update_group(db, group_id, user.id, body.name, body.description)
    await db.commit()
    return await _details(db, group_id, user.id)


@router.delete("/{group_id}", status_code=204)
async def delete(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> Response:
    await delete_group(db, group_id, user.id)
    await db.commit()
    return Response(status_code=204)


@router.post("/{group_id}/invite-code", response_model=InviteCodeResponse)
async def new_invite_code(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> InviteCodeResponse:
    code = await regenerate_invite_code(db, group_id, user.id)
    await db.commit()
    return InviteCodeResponse(invite_code=code)


@router.post("/{group_id}/toggle-challenges", response_model=ToggleResponse)
async def toggle_challenges(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ToggleResponse:
    enabled = await toggle_open_for_challenges(db, group_id, user.id)
    await db.commit()
    return ToggleResponse(enabled=enabled)


@router.post("/{group_id}/toggle-member-invites", response_model=ToggleResponse)
async def toggle_member_invites(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ToggleResponse:
    enabled = await toggle_members_can_invite(db, group_id, user.id)
    await db.commit()
    return ToggleResponse(enabled=enabled)


# ── Membership ──


@router.post("/{group_id}/leave", response_model=LeaveResponse)
async def leave(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> LeaveResponse:
    result = await leave_group(db, group_id, user.id)
    await db.commit()
    return LeaveResponse(**result)


@router.post("/{group_id}/transfer-leadership", response_model=GroupDetailResponse)
async def transfer(
    group_id: int,
    body: TransferLeadershipRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> GroupDetailResponse:
    await transfer_leadership(db, group_id, user.id, body.new_leader_id)
    await db.commit()
    return await _details(db, group_id, user.id)


@router.delete("/{group_id}/members/{member_id}", status_code=204)
async def remove(
    group_id: int,
    member_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> Response:
    await remove_member(db, group_id, user.id, member_id)
    await db.commit()
    return Response(status_code=204)


@router.post("/{group_id}/invites", response_model=InviteResponse, status_code=201)
async def invite(
    group_id: int,
    body: InviteRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> InviteResponse:
    created = await invite_to_group(db, group_id, user.id, body.user_id)
    await db.commit()
    return _invite(created)


@router.get("/{group_id}/invites", response_model=list[InviteResponse])
async def group_invites(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[InviteResponse]:
    return [InviteResponse(**i) for i in await get_group_pending_invites(db, group_id, user.id)]


# ── Views ──


@router.get("/{group_id}/leaderboard", response_model=list[GroupLeaderboardEntry])
async def leaderboard(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[GroupLeaderboardEntry]:
    return [GroupLeaderboardEntry(**row) for row in await get_group_leaderboard(db, group_id)]


@router.get("/{group_id}/statistics", response_model=GroupStatisticsResponse)
async def statistics(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> GroupStatisticsResponse:
    return GroupStatisticsResponse(**await get_group_statistics(db, group_id))


@router.get("/{group_id}/activity", response_model=list[ActivityResponse])
async def activity(
    group_id: int,
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[ActivityResponse]:
    await get_group(db, group_id)
    await require_member(db, group_id, user.id)
    return [ActivityResponse(**a) for a in await get_group_activity_feed(db, group_id, limit)]


@router.get("/{group_id}/level", response_model=GroupLevelInfoResponse)
async def level_info(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> GroupLevelInfoResponse:
    return GroupLevelInfoResponse(**await get_group_level_info(db, group_id))
