"""User profile router: all /api/v1/users/* endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.auth.dependencies import get_current_subject, get_current_user
from scrolily.database import get_session
from scrolily.db.models import User
from scrolily.users.schemas import ProfileUpdateRequest, RegisterRequest, RegisterResponse, UserResponse
from scrolily.users.service import profile_payload, register_user, update_profile

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.post("/me", response_model=RegisterResponse)
async def register_me(
    body: RegisterRequest,
    subject: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_session),
) -> RegisterResponse:
    """Create the caller's profile. Safe to call on every sign-in."""
    user, created = await register_user(db, subject, body.name, body.email)
    await db.commit()
    return RegisterResponse(user=UserResponse(**profile_payload(user)), created=created)


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse(**profile_payload(user))


@router.patch("/me", response_model=UserResponse)
async def update_me(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    user = await update_profile(db, user, body.name, body.avatar_url)
    await db.commit()
    return UserResponse(**profile_payload(user))
