"""
Options consumed by the buffering core.

Copyright (c) 2025 Chris Beatson (chris@chrisbeatson.com)
Licensed under the MIT License.
"""

from dataclasses import dataclass
from typing import Any, Dict

DEFAULT_TTL_SECS = 60.0
DEFAULT_FLUSH_SECS = 60.0
DEFAULT_BATCH_SIZE = 100
DEFAULT_MAX_BUFFER = 1000
DEFAULT_API_METHOD = "PUT"

# operational constants, not exposed to operators
HOUSEKEEPING_SECS = 30.0
RESPONSE_TIMEOUT_SECS = 10.0
DEADLINE_SECS = 25.0
TRANSPORT_RETRIES = 2

_TRUE_VALUES = ("1", "true", "yes", "on")


def _number(options: Dict[str, Any], key: str, default: float) -> float:
    value = options.get(key)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Option '{key}' must be a number, got {value!r}")


def _flag(options: Dict[str, Any], key: str, default: bool) -> bool:
    value = options.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


@dataclass
class BufferSettings:
    """Validated buffer, flush and transport options."""

    ttl_secs: float = DEFAULT_TTL_SECS
    flush_secs: float = DEFAULT_FLUSH_SECS
    batch_size: int = DEFAULT_BATCH_SIZE
    max_buffer: int = DEFAULT_MAX_BUFFER
    api_url: str = ""
    api_key: str = ""
    api_method: str = DEFAULT_API_METHOD
    send_bookkeeping: bool = True
    housekeeping_secs: float = HOUSEKEEPING_SECS

    def __post_init__(self):
        if self.ttl_secs <= 0:
            raise ValueError("ttlSecs must be greater than 0")
        if self.flush_secs < 0:
            raise ValueError("flushSecs must not be negative")
        if self.batch_size < 1:
            raise ValueError("batchSize must be at least 1")
        if self.max_buffer < 1:
            raise ValueError("maxBuffer must be at least 1")
        if self.housekeeping_secs <= 0:
            raise ValueError("housekeepingSecs must be greater than 0")
        self.api_method = (self.api_method or DEFAULT_API_METHOD).upper()

    @classmethod
    def from_options(cls, options: Dict[str, Any]) -> "BufferSettings":
        """
        Build settings from a plugin style option dictionary.

        Recognized keys: ttlSecs, flushSecs, batchSize, maxBuffer, apiUrl,
        apiKey, apiMethod, sendBookkeeping, housekeepingSecs. Missing or empty
        values fall back to the defaults.

        Raises:
            ValueError: If a value is malformed or out of range
        """
        return cls(
            ttl_secs=_number(options, "ttlSecs", DEFAULT_TTL_SECS),
            flush_secs=_number(options, "flushSecs", DEFAULT_FLUSH_SECS),
            batch_size=int(_number(options, "batchSize", DEFAULT_BATCH_SIZE)),
            max_buffer=int(_number(options, "maxBuffer", DEFAULT_MAX_BUFFER)),
            api_url=options.get("apiUrl") or "",
            api_key=options.get("apiKey") or "",
            api_method=options.get("apiMethod") or DEFAULT_API_METHOD,
            send_bookkeeping=_flag(options, "sendBookkeeping", True),
            housekeeping_secs=_number(options, "housekeepingSecs", HOUSEKEEPING_SECS),
        )
