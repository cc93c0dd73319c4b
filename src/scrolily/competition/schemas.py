"""Request/response schemas for challenge endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ChallengeCreateRequest(BaseModel):
    challenger_group_id: int
    challenged_group_id: int


class ChallengeSide(BaseModel):
    group_id: int | None
    name: str | None
    member_count: int | None
    xp_earned: int | None
    active_members: int | None
    score: float | None


class ChallengeResponse(BaseModel):
    id: int
    status: str
    created_by_user_id: int
    created_at: datetime
    start_time: datetime | None
    end_time: datetime | None
    resolved_at: datetime | None
    winner_group_id: int | None
    is_tie: bool
    challenger: ChallengeSide
    challenged: ChallengeSide
    can_respond: bool
    can_cancel: bool


class GroupLookupResponse(BaseModel):
    found: bool
    group_id: int | None
    name: str | None


class OpenGroupResponse(BaseModel):
    group_id: int
    name: str
    description: str | None
    member_count: int
    total_xp: int
    weekly_xp: int
    win_count: int
    loss_count: int
