"""
Periodic buffer maintenance.

Copyright (c) 2025 Chris Beatson (chris@chrisbeatson.com)
Licensed under the MIT License.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from .buffer import PointBuffer
from .flush import FlushEngine
from .point import utcnow

logger = logging.getLogger(__name__)


class HousekeepingScheduler:
    """Evicts expired points and kicks off overdue flushes on a fixed interval."""

    def __init__(
        self,
        buffer: PointBuffer,
        engine: FlushEngine,
        interval: float,
        clock: Callable[[], datetime] = utcnow
    ):
        self.buffer = buffer
        self.engine = engine
        self.interval = interval
        self.clock = clock
        self.evicted = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> int:
        """
        Run one housekeeping pass.

        Stale entries should only exist when sending was unsuccessful. The
        flush is started in the background so the next tick is never held
        up by a slow sink.

        Returns:
            Number of points evicted
        """
        now = self.clock()
        evicted = self.buffer.evict_expired(now)
        if evicted:
            self.evicted += evicted
            logger.warning("Dropped %d expired points from the buffer", evicted)

        # if the buffer hasn't been flushed recently, clear it out
        if self.engine.deadline_passed(now):
            self.engine.request_flush()
        return evicted

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.tick()
            except Exception as e:
                logger.error("Housekeeping failed: %s", e)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Housekeeping every %.1fs", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
