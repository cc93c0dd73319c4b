"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.auth.jwt import verify_token
from scrolily.database import get_session
from scrolily.db.models import User
from scrolily.errors import NotAuthenticated, UserNotFound

_bearer = HTTPBearer(auto_error=False)


async def get_current_subject(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> str:
    """Verify the bearer token and return its subject."""
    if credentials is None:
        raise NotAuthenticated()
    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise NotAuthenticated(str(e)) from e
    return str(payload["sub"])


async def get_current_user(
    subject: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Resolve the token subject to a registered profile."""
    result = await db.execute(select(User).where(User.auth_subject == subject))
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFound(subject)
    return user
