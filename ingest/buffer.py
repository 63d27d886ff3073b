"""
Capacity-bounded, insertion-ordered store of pending points.

Copyright (c) 2025 Chris Beatson (chris@chrisbeatson.com)
Licensed under the MIT License.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from .errors import CapacityExceeded
from .point import Point

logger = logging.getLogger(__name__)


class PointBuffer:
    """
    Mapping of fingerprint to point.

    The buffer is the only record of what is still waiting to be delivered.
    Keys are unique and iteration follows insertion order, which decides the
    order points are sent in. Removal is idempotent, so a point evicted while
    a flush holds it in an in-flight batch is harmless.
    """

    def __init__(self, max_size: int):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._points: Dict[int, Point] = {}

    def __len__(self) -> int:
        return len(self._points)

    def __contains__(self, key: int) -> bool:
        return key in self._points

    def size(self) -> int:
        return len(self._points)

    def insert(self, point: Point) -> None:
        """
        Add a point, replacing any point with the same fingerprint.

        Raises:
            CapacityExceeded: If the buffer already holds max_size points
        """
        if len(self._points) >= self.max_size:
            raise CapacityExceeded(len(self._points), self.max_size)
        self._points[point.fingerprint] = point

    def get(self, key: int) -> Optional[Point]:
        return self._points.get(key)

    def remove(self, key: int) -> None:
        self._points.pop(key, None)

    def evict_expired(self, now: datetime) -> int:
        """Drop every point whose expiry is at or before now."""
        expired = [key for key, point in self._points.items() if point.is_expired(now)]
        for key in expired:
            del self._points[key]
        if expired:
            logger.debug("Evicted %d expired points (%d remaining)",
                         len(expired), len(self._points))
        return len(expired)

    def entries_in_order(self) -> List[Point]:
        """Snapshot of the buffered points in insertion order."""
        return list(self._points.values())
