"""
Batch delivery of buffered points.

Copyright (c) 2025 Chris Beatson (chris@chrisbeatson.com)
Licensed under the MIT License.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Optional, Set, Tuple

from transports.base import Transport
from .buffer import PointBuffer
from .errors import TransportError
from .point import utcnow

logger = logging.getLogger(__name__)


class FlushEngine:
    """
    Sends the buffer to a transport in batches and reconciles the outcome.

    Only one flush runs at a time. The ``flushing`` flag is tested and set
    before the first await, so a second flush started while one is waiting
    on the network returns immediately without touching the buffer.

    The flush deadline is pushed forward after every attempt, whether it
    succeeded or not, so the trailing partial batch is retried at most once
    per interval. Full batches are not held back: while a full batch is
    waiting, every insert starts another flush, even against a failing sink.
    A flush interval of 0 disables the deadline.
    """

    def __init__(
        self,
        buffer: PointBuffer,
        transport: Transport,
        batch_size: int,
        flush_interval: float = 0.0,
        send_bookkeeping: bool = True,
        clock: Callable[[], datetime] = utcnow
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.buffer = buffer
        self.transport = transport
        self.batch_size = batch_size
        self.flush_interval = timedelta(seconds=flush_interval)
        self.send_bookkeeping = send_bookkeeping
        self.clock = clock
        self.flushing = False
        self.deadline: Optional[datetime] = None
        self._tasks: Set[asyncio.Task] = set()
        self.reset_deadline()

    def reset_deadline(self) -> None:
        if self.flush_interval:
            self.deadline = self.clock() + self.flush_interval
        else:
            self.deadline = None

    def deadline_passed(self, now: Optional[datetime] = None) -> bool:
        if self.deadline is None:
            return False
        return (now or self.clock()) > self.deadline

    def request_flush(self) -> Optional[asyncio.Task]:
        """
        Start a flush in the background without waiting for it.

        Must be called from inside a running event loop. Returns None when
        a flush is already in progress or waiting to start.
        """
        if self.flushing or self._tasks:
            return None
        task = asyncio.get_running_loop().create_task(self.flush())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for background flushes started by request_flush."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def flush(self, force: bool = False) -> Tuple[int, int]:
        """
        Attempt to send the buffered points.

        Full batches are always sent. The trailing partial batch is sent
        only when the flush deadline has passed or force is set. Sending
        stops at the first batch that is not delivered.

        Args:
            force: Also send the trailing partial batch

        Returns:
            Tuple of (delivered_count, failed_count) in points
        """
        # check if a flush is already in progress
        if self.flushing:
            return 0, 0
        self.flushing = True

        delivered = 0
        failed = 0
        try:
            # is this a full or partial flush?
            batches = len(self.buffer) // self.batch_size
            if force or self.deadline_passed():
                batches += 1

            pending = iter(self.buffer.entries_in_order())
            for number in range(1, batches + 1):
                batch = []
                for point in pending:
                    batch.append(point)
                    if len(batch) >= self.batch_size:
                        break
                if not batch:
                    break

                documents = [p.document(self.send_bookkeeping) for p in batch]
                started = time.monotonic()
                try:
                    status = await self.transport.write_batch(documents)
                except TransportError as e:
                    logger.error("Batch %d/%d of %d points not sent: %s",
                                 number, batches, len(batch), e)
                    failed += len(batch)
                    break

                duration_ms = (time.monotonic() - started) * 1000
                logger.debug("Sent batch %d/%d: %d of %d points in %.0f ms status: %d",
                             number, batches, len(batch), len(self.buffer),
                             duration_ms, status)

                # if successful, clear the sent items from the buffer
                if 200 <= status < 300:
                    for point in batch:
                        self.buffer.remove(point.fingerprint)
                    delivered += len(batch)
                else:
                    logger.error("Batch %d/%d of %d points rejected with status %d",
                                 number, batches, len(batch), status)
                    failed += len(batch)
                    break

        except Exception as e:
            logger.error("Flush failed: %s", e)

        finally:
            # reset the flush deadline
            self.reset_deadline()
            self.flushing = False

        if delivered or failed:
            logger.info("Flushed %d points (failed: %d, buffered: %d)",
                        delivered, failed, len(self.buffer))
        return delivered, failed
