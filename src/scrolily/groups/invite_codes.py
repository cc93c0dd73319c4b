"""Group invite codes.

8 characters from A-Z0-9, generated server-side from a cryptographic
random source. Lookups are case-insensitive.
"""

from __future__ import annotations

import secrets
import string

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.db.models import Group

INVITE_CHARSET = string.ascii_uppercase + string.digits
INVITE_LENGTH = 8


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_CHARSET) for _ in range(INVITE_LENGTH))


def normalize_invite_code(code: str) -> str:
    return code.strip().upper()


async def generate_unique_invite_code(db: AsyncSession) -> str:
    """Generate a code no group currently uses."""
    for _ in range(10):
        code = generate_invite_code()
        existing = await db.execute(select(Group.id).where(Group.invite_code == code))
        if existing.scalar_one_or_none() is None:
            return code
    raise RuntimeError("Failed to generate unique invite code after 10 attempts")
