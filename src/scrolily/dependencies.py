"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import Request

from scrolily.redis_client import get_redis_or_none as _get_redis_or_none
from scrolily.tasks.queue import ArqTaskQueue, TaskQueue


async def get_redis_dep() -> AsyncGenerator[object, None]:
    """Yield the Redis client, or None when Redis is not configured."""
    yield _get_redis_or_none()


async def get_task_queue(request: Request) -> AsyncGenerator[TaskQueue, None]:
    """Yield a per-request task buffer.

    Routers flush it after commit. Anything left unflushed (the request
    failed) is discarded.
    """
    pool = getattr(request.app.state, "arq_pool", None)
    tasks: TaskQueue = ArqTaskQueue(pool) if pool is not None else TaskQueue()
    try:
        yield tasks
    finally:
        tasks.discard()
