"""
Exceptions raised by the buffering core.

Copyright (c) 2025 Chris Beatson (chris@chrisbeatson.com)
Licensed under the MIT License.
"""


class IngestError(Exception):
    """Base class for errors that cause a point or batch to be dropped."""


class BuildError(IngestError):
    """A payload could not be serialized or fingerprinted."""


class CapacityExceeded(IngestError):
    """The buffer is full; the point was not added."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"buffer exceeded: {size} (limit {limit})")
        self.size = size
        self.limit = limit


class TransportError(IngestError):
    """A batch could not be delivered after all retries."""

    def __init__(self, message: str, attempts: int = 1):
        super().__init__(message)
        self.attempts = attempts
