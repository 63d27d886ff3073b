"""
The ingestion buffer: builds, stores, expires and delivers points.

An Ingestor owns one buffer, one flush engine and one housekeeping
scheduler. Points enter through send(); delivery happens when a full batch
is waiting, when the flush deadline has passed, or on shutdown.

Data loss is bounded policy rather than a fault: a point is dropped when the
buffer already holds max_buffer points, and a point that has not been
delivered within its time-to-live is evicted.

Copyright (c) 2025 Chris Beatson (chris@chrisbeatson.com)
Licensed under the MIT License.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from transports.base import Transport
from .buffer import PointBuffer
from .errors import CapacityExceeded, IngestError
from .flush import FlushEngine
from .housekeeping import HousekeepingScheduler
from .point import Point, PointBuilder, utcnow
from .settings import BufferSettings

logger = logging.getLogger(__name__)


class Ingestor:
    """Buffered, batched delivery of points to a transport."""

    def __init__(
        self,
        settings: BufferSettings,
        transport: Transport,
        clock: Callable[[], datetime] = utcnow
    ):
        self.settings = settings
        self.transport = transport
        self.clock = clock
        self.builder = PointBuilder(settings.ttl_secs, clock=clock)
        self.buffer = PointBuffer(settings.max_buffer)
        self.engine = FlushEngine(
            self.buffer,
            transport,
            batch_size=settings.batch_size,
            flush_interval=settings.flush_secs,
            send_bookkeeping=settings.send_bookkeeping,
            clock=clock
        )
        self.housekeeping = HousekeepingScheduler(
            self.buffer,
            self.engine,
            interval=settings.housekeeping_secs,
            clock=clock
        )
        self.dropped = 0

    async def start(self) -> None:
        """Open the transport and start housekeeping."""
        logger.info("Starting ingestor: batch_size=%d, flush=%.0fs, ttl=%.0fs, max_buffer=%d",
                    self.settings.batch_size, self.settings.flush_secs,
                    self.settings.ttl_secs, self.settings.max_buffer)
        await self.transport.init()
        self.engine.reset_deadline()
        self.housekeeping.start()

    async def stop(self) -> Tuple[int, int]:
        """
        Stop housekeeping, drain what can be delivered, and close the transport.

        Points still buffered after the final flush are lost.

        Returns:
            Tuple of (delivered_count, failed_count) of the final flush
        """
        await self.housekeeping.stop()
        await self.engine.wait_idle()
        try:
            result = await self.engine.flush(force=True)
        finally:
            await self.transport.close()
        if len(self.buffer):
            logger.warning("Stopped with %d undelivered points", len(self.buffer))
        else:
            logger.info("Stopped with an empty buffer")
        return result

    def send(self, payload: Dict[str, Any]) -> Optional[Point]:
        """
        Buffer a payload for delivery.

        Starts a background flush when a full batch is waiting or the flush
        deadline has passed, so it must be called from the event loop.
        Dropped points are logged and counted, never raised.

        Returns:
            The buffered point, or None if it was dropped
        """
        try:
            # check for excess messages before doing any work
            if len(self.buffer) >= self.buffer.max_size:
                raise CapacityExceeded(len(self.buffer), self.buffer.max_size)
            point = self.builder.build(payload)
            self.buffer.insert(point)
        except IngestError as e:
            self.dropped += 1
            logger.error("Dropped point: %s", e)
            return None

        # if the nominal batch size is reached, or if the
        # buffer hasn't been flushed recently, then flush
        if len(self.buffer) >= self.settings.batch_size or self.engine.deadline_passed():
            self.engine.request_flush()
        return point
