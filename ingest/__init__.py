"""
Buffered, batched delivery of data points.

Copyright (c) 2025 Chris Beatson (chris@chrisbeatson.com)
Licensed under the MIT License.
"""

from .buffer import PointBuffer
from .delta import DeltaAdapter, PathOption, resolve_self_context
from .errors import BuildError, CapacityExceeded, IngestError, TransportError
from .flush import FlushEngine
from .housekeeping import HousekeepingScheduler
from .pipeline import Ingestor
from .point import Point, PointBuilder, fingerprint
from .settings import BufferSettings

__all__ = [
    "BufferSettings",
    "BuildError",
    "CapacityExceeded",
    "DeltaAdapter",
    "FlushEngine",
    "HousekeepingScheduler",
    "IngestError",
    "Ingestor",
    "PathOption",
    "Point",
    "PointBuffer",
    "PointBuilder",
    "TransportError",
    "fingerprint",
    "resolve_self_context",
]
