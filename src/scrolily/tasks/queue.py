"""Fire-and-forget recomputation queue.

Services call :meth:`TaskQueue.schedule` while their transaction is open;
the caller flushes after commit so a worker never reads pre-commit state.
Handlers are idempotent, so at-least-once delivery and duplicates are safe.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Any

logger = logging.getLogger(__name__)

CHECK_ACHIEVEMENTS = "check_achievements"
RECOMPUTE_TIER = "recompute_tier"

TASK_TYPES = (CHECK_ACHIEVEMENTS, RECOMPUTE_TIER)

# arq function names, registered on the progression worker
TASK_FUNCTIONS = {
    CHECK_ACHIEVEMENTS: "check_user_achievements",
    RECOMPUTE_TIER: "recompute_user_tier",
}


class TaskQueue:
    """Buffers (task_type, user_id) payloads until :meth:`flush`.

    The base class drops flushed tasks. Subclasses deliver them.
    """

    def __init__(self) -> None:
        self.pending: list[tuple[str, int]] = []

    def schedule(self, task_type: str, user_id: int) -> None:
        if task_type not in TASK_FUNCTIONS:
            msg = f"Unknown task type: {task_type}"
            raise ValueError(msg)
        if (task_type, user_id) not in self.pending:
            self.pending.append((task_type, user_id))

    def schedule_recompute(self, user_id: int) -> None:
        """Achievements and tier, the pair every XP change needs."""
        self.schedule(CHECK_ACHIEVEMENTS, user_id)
        self.schedule(RECOMPUTE_TIER, user_id)

    def discard(self) -> None:
        """Drop buffered tasks (transaction rolled back)."""
        self.pending.clear()

    async def flush(self) -> int:
        tasks, self.pending = self.pending, []
        for task_type, user_id in tasks:
            try:
                await self.deliver(task_type, user_id)
            except Exception:
                # State is already committed and every task is re-derivable
                logger.warning("Failed to enqueue %s for user %d", task_type, user_id, exc_info=True)
        return len(tasks)

    async def deliver(self, task_type: str, user_id: int) -> None:
        logger.debug("Dropping task %s for user %d (no queue configured)", task_type, user_id)


class ArqTaskQueue(TaskQueue):
    """Delivers tasks as arq jobs.

    Job ids are bucketed per second and jobs are deferred by one second,
    so a burst of events in the same second coalesces into one job that
    starts only after every event in that second was enqueued.
    """

    defer_by = timedelta(seconds=1)

    def __init__(self, pool: Any) -> None:  # noqa: ANN401
        super().__init__()
        self._pool = pool

    async def deliver(self, task_type: str, user_id: int) -> None:
        bucket = int(time.time())
        job = await self._pool.enqueue_job(
            TASK_FUNCTIONS[task_type],
            user_id,
            _job_id=f"{task_type}:{user_id}:{bucket}",
            _defer_by=self.defer_by,
        )
        if job is None:
            logger.debug("Task %s for user %d coalesced", task_type, user_id)
