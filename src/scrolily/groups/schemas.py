"""Request/response schemas for group endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field


class GroupCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    description: str | None = Field(None, max_length=500)


class GroupUpdateRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=64)
    description: str | None = Field(None, max_length=500)


class JoinRequest(BaseModel):
    invite_code: str = Field(..., min_length=1, max_length=16)


class InviteRequest(BaseModel):
    user_id: int


class InviteResponseRequest(BaseModel):
    accept: bool


class TransferLeadershipRequest(BaseModel):
    new_leader_id: int


class GroupSummaryResponse(BaseModel):
    id: int
    name: str
    description: str | None
    leader_id: int
    member_count: int
    is_leader: bool
    open_for_challenges: bool
    members_can_invite: bool
    weekly_xp: int
    current_level: str
    challenge_wins: int
    challenge_losses: int
    created_at: datetime


class GroupDetailResponse(GroupSummaryResponse):
    is_member: bool
    invite_code: str | None


class GroupLeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    name: str | None
    avatar_config: dict[str, Any] | None
    total_xp: int
    current_streak: int
    current_tier: str | None
    is_leader: bool
    joined_at: datetime


class GroupStatisticsResponse(BaseModel):
    group_id: int
    member_count: int
    total_xp: int
    total_chapters: int
    xp_this_week: int
    active_members: int


class InviteResponse(BaseModel):
    id: int
    group_id: int
    group_name: str | None = None
    invited_user_id: int
    invited_by_user_id: int
    other_user_name: str | None = None
    status: str
    created_at: datetime


class LeaveResponse(BaseModel):
    group_deleted: bool
    new_leader_id: int | None


class InviteCodeResponse(BaseModel):
    invite_code: str


class ToggleResponse(BaseModel):
    enabled: bool


class ActivityResponse(BaseModel):
    id: int
    user_id: int
    user_name: str | None
    user_avatar_config: dict[str, Any] | None
    activity_type: str
    metadata: dict[str, Any] | None
    created_at: datetime


class GroupLevelInfoResponse(BaseModel):
    group_id: int
    current_level: str
    color: str
    weekly_xp: int
    next_level: str | None
    next_level_min_xp: int | None
    xp_to_next_level: int | None
    week_start_date: date


class GroupLevelThreshold(BaseModel):
    level: str
    min_xp: int
    level_order: int
    color: str
