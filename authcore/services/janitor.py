"""
Best-effort cleanup of expired biometric challenges.

Runs on its own session in a background asyncio task so it never blocks or
fails the request that triggered it. Errors are reported through the task's
done-callback and logged.
"""

import asyncio
from typing import Callable, Optional, Set

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.clock import SystemClock
from authcore.logging import get_logger
from authcore.models.biometric import BiometricChallenge

logger = get_logger("auth.janitor")


class ChallengeJanitor:
    def __init__(self, session_factory: Callable[[], AsyncSession], clock: Optional[SystemClock] = None):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self._tasks: Set[asyncio.Task] = set()

    def schedule(self) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self.purge_expired())
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def purge_expired(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(BiometricChallenge)
                .where(BiometricChallenge.expires_at < self.clock.now())
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        if result.rowcount:
            logger.info("Expired challenges purged", count=result.rowcount)
        return result.rowcount

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Challenge cleanup failed", error=repr(error))

    async def drain(self) -> None:
        """Wait for in-flight cleanups (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
