"""Progression arq worker: recomputation tasks and scheduled sweeps.

Run with: arq scrolily.workers.settings.WorkerSettings

Every handler is idempotent and re-derives its result from the database,
so at-least-once delivery and retries are safe. Failures are logged and
raised as ``Retry`` so arq re-runs them with backoff.
"""

from __future__ import annotations

import logging

from arq import Retry, cron
from arq.connections import RedisSettings

from scrolily.competition.challenge_engine import sweep_challenges
from scrolily.config import get_settings
from scrolily.database import close_db, get_session_factory, init_db
from scrolily.groups.leveling import recalculate_group_levels
from scrolily.middleware.logging import setup_logging
from scrolily.progression.achievements import run_all_checks
from scrolily.progression.rolling_xp import cleanup_old_rolling_xp
from scrolily.progression.tiers import recompute_user_tier as recompute_tier
from scrolily.tasks.queue import ArqTaskQueue

logger = logging.getLogger(__name__)

MAX_TRIES = 5


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize logging and the database engine."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)
    logger.info("Progression worker started")


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    await close_db()
    logger.info("Progression worker shut down")


def _retry(ctx: dict) -> Retry:  # type: ignore[type-arg]
    return Retry(defer=ctx.get("job_try", 1) * 5)


async def check_user_achievements(ctx: dict, user_id: int) -> int:  # type: ignore[type-arg]
    """Run every achievement check for one user. Returns newly awarded count."""
    tasks = ArqTaskQueue(ctx["redis"])
    async with get_session_factory()() as db:
        try:
            awarded = await run_all_checks(db, ctx["redis"], tasks, user_id)
            await db.commit()
        except Exception as e:
            await db.rollback()
            tasks.discard()
            logger.exception("Achievement check failed for user %d", user_id)
            raise _retry(ctx) from e
    await tasks.flush()
    if awarded:
        logger.info("Awarded %d achievements to user %d", len(awarded), user_id)
    return len(awarded)


async def recompute_user_tier(ctx: dict, user_id: int) -> str:  # type: ignore[type-arg]
    """Re-derive the user's cached tier from rolling XP."""
    async with get_session_factory()() as db:
        try:
            result = await recompute_tier(db, ctx["redis"], user_id)
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.exception("Tier recomputation failed for user %d", user_id)
            raise _retry(ctx) from e
    return result["tier"]


async def sweep_expired_challenges(ctx: dict) -> int:  # type: ignore[type-arg]
    """Scheduled: resolve active challenges past their end time."""
    tasks = ArqTaskQueue(ctx["redis"])
    async with get_session_factory()() as db:
        try:
            resolved = await sweep_challenges(db, ctx["redis"], tasks)
            await db.commit()
        except Exception:
            await db.rollback()
            tasks.discard()
            logger.exception("Challenge sweep failed")
            raise
    await tasks.flush()
    return resolved


async def cleanup_rolling_xp(ctx: dict) -> int:  # type: ignore[type-arg]
    """Scheduled daily: drop rolling XP buckets past the retention horizon."""
    async with get_session_factory()() as db:
        deleted = await cleanup_old_rolling_xp(db)
        await db.commit()
    return deleted


async def weekly_group_levels(ctx: dict) -> int:  # type: ignore[type-arg]
    """Scheduled Sunday: apply the weekly rollover to every group."""
    async with get_session_factory()() as db:
        rolled = await recalculate_group_levels(db)
        await db.commit()
    return rolled


def _sweep_minutes() -> set[int]:
    interval = max(1, get_settings().challenge_sweep_interval_minutes)
    return set(range(0, 60, interval))


class ProgressionWorkerSettings:
    """arq worker settings for progression recomputation."""

    functions = [check_user_achievements, recompute_user_tier]
    cron_jobs = [
        cron(sweep_expired_challenges, minute=_sweep_minutes(), run_at_startup=True),
        cron(cleanup_rolling_xp, hour=3, minute=0),
        cron(weekly_group_levels, weekday="sun", hour=0, minute=5),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    max_jobs = 10
    max_tries = MAX_TRIES
    job_timeout = 120
    keep_result = 0
