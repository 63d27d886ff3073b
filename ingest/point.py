"""
Point construction: timestamps, expiry and content fingerprints.

A point is a caller supplied payload stamped with the time it was collected,
the time it expires from the buffer, and a fingerprint derived from its
serialized content. The fingerprint is the buffer key, so two payloads that
serialize identically coalesce into a single buffered point.

Copyright (c) 2025 Chris Beatson (chris@chrisbeatson.com)
Licensed under the MIT License.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict

from .errors import BuildError

HASH_SEED_1 = 5381
HASH_SEED_2 = 52711
BOOKKEEPING_FIELDS = ("expiry", "fingerprint")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _encode_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps(value: Any) -> str:
    """Serialize to the canonical JSON form used for fingerprints and requests."""
    return json.dumps(
        value,
        default=_encode_default,
        sort_keys=True,
        separators=(",", ":"),
        allow_nan=False,
        ensure_ascii=False,
    )


def fingerprint(text: str) -> int:
    """
    Cheap two-accumulator rolling hash of a string.

    Walks the UTF-16 code units from the end of the string to the start,
    updating both accumulators as ``acc = (acc * 33) ^ c`` in 32 bits.
    Not suitable for anything security related.
    """
    units = text.encode("utf-16-le")
    hash1 = HASH_SEED_1
    hash2 = HASH_SEED_2
    for i in range(len(units) - 2, -1, -2):
        c = units[i] | (units[i + 1] << 8)
        hash1 = ((hash1 * 33) & 0xFFFFFFFF) ^ c
        hash2 = ((hash2 * 33) & 0xFFFFFFFF) ^ c
    return hash1 * 4096 + hash2


@dataclass
class Point:
    """A stamped payload waiting in the buffer."""

    payload: Dict[str, Any]
    expiry: datetime
    fingerprint: int

    def is_expired(self, now: datetime) -> bool:
        return self.expiry <= now

    def document(self, include_bookkeeping: bool = True) -> Dict[str, Any]:
        """Return the payload as it should be transmitted."""
        if include_bookkeeping:
            return self.payload
        return {k: v for k, v in self.payload.items() if k not in BOOKKEEPING_FIELDS}


class PointBuilder:
    """Stamps raw payloads so they can be buffered."""

    def __init__(self, ttl: float, clock: Callable[[], datetime] = utcnow):
        """
        Args:
            ttl: Time-to-live in seconds for every built point
            clock: Returns the current time as an aware datetime
        """
        self.ttl = timedelta(seconds=ttl)
        self.clock = clock

    def build(self, raw_payload: Dict[str, Any]) -> Point:
        """
        Build a point from a raw payload.

        Raises:
            BuildError: If the payload cannot be serialized
        """
        if not isinstance(raw_payload, dict):
            raise BuildError(f"payload must be a mapping, got {type(raw_payload).__name__}")

        now = self.clock()
        payload = dict(raw_payload)

        # collection time, or the buffering time if the feed didn't supply one
        if payload.get("time") is None:
            payload["time"] = now.isoformat()

        expiry = now + self.ttl
        payload["expiry"] = expiry.isoformat()
        payload.pop("fingerprint", None)

        try:
            serialized = dumps(payload)
        except (TypeError, ValueError, RecursionError) as e:
            raise BuildError(f"cannot serialize payload: {e}") from e

        key = fingerprint(serialized)
        payload["fingerprint"] = key
        return Point(payload=payload, expiry=expiry, fingerprint=key)
