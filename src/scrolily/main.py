"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from arq import create_pool
from arq.connections import RedisSettings
from fastapi import FastAPI

from scrolily.competition.router import router as challenges_router
from scrolily.config import get_settings
from scrolily.database import close_db, get_session_factory, init_db
from scrolily.groups.router import router as groups_router
from scrolily.health.router import router as health_router
from scrolily.middleware import setup_middleware
from scrolily.progression.router import router as progression_router
from scrolily.progression.seed import seed_all
from scrolily.redis_client import close_redis, init_redis
from scrolily.store.router import router as store_router
from scrolily.users.router import router as users_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    app.state.arq_pool = await create_pool(RedisSettings.from_dsn(settings.arq_redis_url))

    # Catalogs are upserted by key, so seeding on every start is safe
    try:
        async with get_session_factory()() as db:
            counts = await seed_all(db)
        logger.info("Catalogs seeded: %s", counts)
    except Exception:
        logger.warning("Catalog seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await app.state.arq_pool.aclose()
    app.state.arq_pool = None
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Scrolily API",
        description="Progression and competition engine for the Scrolily Scripture-reading app",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(users_router)
    app.include_router(progression_router)
    app.include_router(store_router)
    app.include_router(groups_router)
    app.include_router(challenges_router)

    return app


app = create_app()
