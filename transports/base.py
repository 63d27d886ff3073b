"""
Abstract base class for transports.

All transport implementations must inherit from Transport and implement
the required methods for initialization, delivery, and cleanup.

Copyright (c) 2025 Chris Beatson (chris@chrisbeatson.com)
Licensed under the MIT License.
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Any


class Transport(ABC):
    """Abstract base class for all transports."""

    @abstractmethod
    async def init(self) -> None:
        """
        Open connections and validate configuration.

        Raises:
            ValueError: If configuration is invalid
        """
        pass

    @abstractmethod
    async def write_batch(self, documents: List[Dict[str, Any]]) -> int:
        """
        Deliver a batch of point documents as a single request.

        Args:
            documents: List of point payload dictionaries

        Returns:
            Status code reported by the remote end (2xx means delivered)

        Raises:
            TransportError: If the request failed after all retries
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Clean up connections and resources.
        """
        pass
