"""Shared test fixtures.

The suite runs against an in-memory SQLite database built from the ORM
metadata, so no PostgreSQL or Redis is needed. Every fixture gets a fresh
schema with the catalogs seeded.
"""

from __future__ import annotations

import os

os.environ.setdefault("SCROLILY_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SCROLILY_LOG_FORMAT", "console")
os.environ.setdefault("SCROLILY_JWT_SECRET", "test-secret-with-at-least-32-bytes!!")

from collections.abc import AsyncGenerator, Awaitable, Callable  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from scrolily.auth.jwt import create_access_token  # noqa: E402
from scrolily.config import get_settings  # noqa: E402
from scrolily.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from scrolily.db import models  # noqa: E402, F401
from scrolily.db.base import Base  # noqa: E402
from scrolily.db.models import Group, User  # noqa: E402
from scrolily.groups.service import create_group, join_group_by_code  # noqa: E402
from scrolily.progression.seed import seed_all  # noqa: E402
from scrolily.tasks.queue import TaskQueue  # noqa: E402
from scrolily.users.service import register_user  # noqa: E402

get_settings.cache_clear()


class RecordingTaskQueue(TaskQueue):
    """Keeps every delivered (task_type, user_id) instead of enqueueing it."""

    def __init__(self) -> None:
        super().__init__()
        self.delivered: list[tuple[str, int]] = []

    async def deliver(self, task_type: str, user_id: int) -> None:
        self.delivered.append((task_type, user_id))


class RecordingRedis:
    """Stands in for the pub/sub client; records published messages."""

    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 1

    def channels(self) -> list[str]:
        return [channel for channel, _ in self.published]


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """Fresh in-memory schema with seeded catalogs."""
    await init_db(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with get_session_factory()() as session:
        await seed_all(session)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    async with get_session_factory()() as session:
        yield session


@pytest.fixture
def tasks() -> RecordingTaskQueue:
    return RecordingTaskQueue()


@pytest.fixture
def redis() -> RecordingRedis:
    return RecordingRedis()


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    counter = {"n": 0}

    async def _make(name: str | None = None) -> User:
        counter["n"] += 1
        n = counter["n"]
        user, _ = await register_user(db_session, f"subject-{n}", name or f"Reader {n}")
        await db_session.commit()
        return user

    return _make


@pytest_asyncio.fixture
async def make_group(db_session: AsyncSession) -> Callable[..., Awaitable[Group]]:
    async def _make(leader: User, name: str, members: tuple[User, ...] = (), open_for_challenges: bool = False) -> Group:
        group = await create_group(db_session, leader.id, name)
        for member in members:
            await join_group_by_code(db_session, member.id, group.invite_code)
        group.open_for_challenges = open_for_challenges
        await db_session.commit()
        return group

    return _make


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


def auth_headers(subject: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject)}"}


@pytest_asyncio.fixture
async def client(database: None) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the app. Lifespan is not run; the fixture owns the database."""
    from scrolily.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def register(client: AsyncClient) -> Callable[..., Awaitable[dict]]:
    """Register a profile over the API and return its headers and id."""

    async def _register(subject: str, name: str) -> dict:
        headers = auth_headers(subject)
        response = await client.post("/api/v1/users/me", json={"name": name}, headers=headers)
        assert response.status_code == 200, response.text
        return {"headers": headers, "id": response.json()["user"]["id"]}

    return _register
