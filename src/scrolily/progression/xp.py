"""The single XP increment path.

Every XP gain (verse, quiz, chapter, achievement reward) goes through
:func:`grant_xp`: ledger row, lifetime total, today's rolling bucket and
each of the user's groups' weekly XP move together in the caller's
transaction. Nothing here evaluates achievements, which is what keeps
reward XP from re-triggering the check that granted it.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.db.base import utcnow
from scrolily.db.models import User, XPLedger
from scrolily.errors import UserNotFound
from scrolily.groups.leveling import contribute_group_xp
from scrolily.progression.calendar import app_date
from scrolily.progression.rolling_xp import add_rolling_xp

logger = logging.getLogger(__name__)


async def lock_user(db: AsyncSession, user_id: int) -> User:
    """Load the user row with ``SELECT ... FOR UPDATE``.

    ``populate_existing`` refreshes an instance already in the identity map
    so the read-modify-write sees the committed values.
    """
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFound(user_id)
    return user


async def grant_xp(
    db: AsyncSession,
    user: User,
    amount: int,
    source: str,
    source_id: str | None = None,
    description: str | None = None,
    now: datetime | None = None,
    today: date | None = None,
) -> int:
    """Grant ``amount`` XP to a locked ``user``. Returns the new total."""
    if amount < 0:
        raise ValueError("XP amount must be non-negative")
    if amount == 0:
        return user.total_xp

    now = now or utcnow()
    today = today or app_date(now)

    db.add(XPLedger(
        user_id=user.id,
        amount=amount,
        source=source,
        source_id=source_id,
        description=description,
        created_at=now,
    ))
    user.total_xp += amount
    user.updated_at = now

    await add_rolling_xp(db, user.id, today, amount)
    await contribute_group_xp(db, user.id, amount, today, now)
    await db.flush()

    logger.debug("Granted %d XP to user %d (source=%s)", amount, user.id, source)
    return user.total_xp
