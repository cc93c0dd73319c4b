"""Request/response schemas for user endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    name: str | None = Field(None, max_length=64)
    email: str | None = Field(None, max_length=320)


class ProfileUpdateRequest(BaseModel):
    name: str | None = Field(None, max_length=64)
    avatar_url: str | None = Field(None, max_length=2048)


class UserResponse(BaseModel):
    id: int
    name: str | None
    email: str | None
    avatar_url: str | None
    avatar_config: dict[str, Any] | None
    total_xp: int
    current_streak: int
    longest_streak: int
    current_tier: str | None
    talents: int
    challenge_wins: int
    created_at: datetime


class RegisterResponse(BaseModel):
    user: UserResponse
    created: bool
