"""
HTTP transport delivering point batches as JSON arrays.

Uses a shared aiohttp client session with bounded response timeouts and
a small number of automatic retries on network failures.

Copyright (c) 2025 Chris Beatson (chris@chrisbeatson.com)
Licensed under the MIT License.
"""

import asyncio
import logging
from typing import List, Dict, Any, Optional

import aiohttp

from ingest.errors import TransportError
from ingest.point import dumps
from .base import Transport

logger = logging.getLogger(__name__)

HTTP_METHODS = ("GET", "PUT", "POST", "PATCH", "DELETE")


class HttpTransport(Transport):
    """
    HTTP transport implementation.

    Each batch is sent as one request with a JSON array body and the
    headers Content-Type: application/json, Accept: json and api-key.
    Status codes are returned to the caller as-is; only network level
    failures (connection errors, timeouts) are retried.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        method: str = "PUT",
        retries: int = 2,
        response_timeout: float = 10.0,
        deadline: float = 25.0,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize HTTP transport.

        Args:
            url: Endpoint receiving the batches
            api_key: Secret sent in the api-key header
            method: HTTP method used for every request
            retries: Extra attempts after a network failure
            response_timeout: Seconds allowed for the server to start sending
            deadline: Seconds allowed for the whole response to finish
            session: Optional externally owned client session
        """
        self.url = url
        self.api_key = api_key
        self.method = (method or "PUT").upper()
        self.retries = max(0, retries)
        self.response_timeout = response_timeout
        self.deadline = deadline
        self.timeout = aiohttp.ClientTimeout(total=deadline, sock_read=response_timeout)
        self.client = session
        self._owns_client = session is None

    async def init(self) -> None:
        """Validate configuration and open the client session."""
        if not self.url:
            raise ValueError("Missing required HTTP transport configuration (url)")
        if self.method not in HTTP_METHODS:
            raise ValueError(
                f"Unsupported HTTP method: '{self.method}'. "
                f"Available options: {', '.join(HTTP_METHODS)}"
            )

        if self.client is None:
            self.client = aiohttp.ClientSession(timeout=self.timeout)
        logger.info("HTTP transport ready: %s %s", self.method, self.url)

    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "json",
            "api-key": self.api_key or "",
        }

    async def write_batch(self, documents: List[Dict[str, Any]]) -> int:
        """
        Send a batch of documents.

        Args:
            documents: List of point documents

        Returns:
            HTTP status code of the response
        """
        if not self.client:
            raise RuntimeError("HTTP client not initialized")

        body = dumps(documents)
        attempts = self.retries + 1

        for attempt in range(1, attempts + 1):
            try:
                async with self.client.request(
                    self.method,
                    self.url,
                    data=body,
                    headers=self.headers(),
                    timeout=self.timeout
                ) as response:
                    reply = await response.text()
                    logger.debug("%s %s -> %d reply: %s",
                                 self.method, self.url, response.status, reply[:500])
                    return response.status

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt == attempts:
                    raise TransportError(
                        f"{self.method} {self.url} failed after {attempts} attempts: "
                        f"{type(e).__name__}: {e}",
                        attempts=attempts
                    ) from e
                logger.warning("Attempt %d/%d to %s failed: %s",
                               attempt, attempts, self.url, type(e).__name__)

    async def close(self) -> None:
        """Close the HTTP session."""
        if self.client and self._owns_client:
            logger.info("Closing HTTP transport")
            await self.client.close()
        self.client = None
