import asyncio
from datetime import datetime, timedelta, timezone

from ingest.errors import TransportError
from transports.base import Transport


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start=None):
        self.now = start or datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class FakeTransport(Transport):
    """Records batches and answers with scripted statuses or errors."""

    def __init__(self, responses=None, default=200):
        self.responses = list(responses or [])
        self.default = default
        self.batches = []
        self.gate = None
        self.initialized = False
        self.closed = False

    async def init(self):
        self.initialized = True

    async def write_batch(self, documents):
        self.batches.append(documents)
        if self.gate is not None:
            await self.gate.wait()
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        self.closed = True

    @property
    def calls(self):
        return len(self.batches)


def transport_error(message="connection refused"):
    return TransportError(message, attempts=3)


def run(coro):
    return asyncio.run(coro)
