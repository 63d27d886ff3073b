"""
SignalK delta handling.

Converts delta documents into flat point payloads, applying the path options
that decide which context/path combinations are recorded, how often, and
which tags are attached.

A delta looks like::

    {
        "context": "vessels.urn:mrn:imo:mmsi:123456789",
        "updates": [{
            "$source": "nmea0183.GP",
            "timestamp": "2025-01-01T00:00:00.000Z",
            "values": [{"path": "navigation.speedOverGround", "value": 3.2}]
        }]
    }

Copyright (c) 2025 Chris Beatson (chris@chrisbeatson.com)
Licensed under the MIT License.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from fnmatch import fnmatchcase
from typing import Any, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

SELF = "self"


def resolve_self_context(uuid: Optional[str] = None, mmsi: Optional[Any] = None) -> Optional[str]:
    """
    Work out the context of this vessel.

    A UUID takes precedence over an MMSI. Returns None when neither is known,
    in which case nothing is tagged as self.
    """
    if uuid:
        return f"vessels.{uuid}"
    if mmsi is not None and str(mmsi) != "":
        return f"vessels.urn:mrn:imo:mmsi:{mmsi}"
    return None


def parse_tags(raw: Any) -> Dict[str, Any]:
    """
    Parse tags given as a list of {name, value} objects or a
    "name=value,name=value" string.
    """
    tags: Dict[str, Any] = {}
    if not raw:
        return tags

    if isinstance(raw, str):
        for item in raw.split(","):
            if not item.strip():
                continue
            name, sep, value = item.partition("=")
            if not sep or not name.strip():
                raise ValueError(f"Invalid tag '{item.strip()}', expected name=value")
            tags[name.strip()] = value.strip()
        return tags

    for tag in raw:
        if not isinstance(tag, dict) or not tag.get("name"):
            raise ValueError(f"Invalid tag {tag!r}, expected an object with a name")
        tags[tag["name"]] = tag.get("value")
    return tags


@dataclass
class PathOption:
    """Which context/path to record, how often, and with what tags."""

    path: str
    context: str = SELF
    interval: float = 1000.0
    enabled: bool = True
    tags: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PathOption":
        if not isinstance(raw, dict):
            raise ValueError(f"Path option must be an object, got {type(raw).__name__}")
        if not raw.get("path"):
            raise ValueError(f"Path option without a path: {raw!r}")
        return cls(
            path=raw["path"],
            context=raw.get("context") or SELF,
            interval=float(raw.get("interval", 1000) or 0),
            enabled=raw.get("enabled", True) is True,
            tags=parse_tags(raw.get("pathTags")),
        )


class PathSubscription:
    """
    Filters delta values against a path option.

    Values are kept when both the context and path match the option's
    patterns (``*`` matches anything) and at least ``interval`` milliseconds
    have passed since the last value recorded for the same context and path.
    Entries older than the interval are pruned once the table grows past
    ``prune_at`` keys.
    """

    prune_at = 1024

    def __init__(self, option: PathOption, self_context: Optional[str] = None):
        self.option = option
        self.self_context = self_context
        self.min_period = timedelta(milliseconds=option.interval)
        self._last_seen: Dict[Tuple[str, str], datetime] = {}

    @property
    def context_pattern(self) -> Optional[str]:
        if self.option.context == SELF:
            return self.self_context
        return self.option.context

    def matches(self, context: str, path: str) -> bool:
        pattern = self.context_pattern
        if pattern is None or not fnmatchcase(context or "", pattern):
            return False
        return fnmatchcase(path or "", self.option.path)

    def accept(self, context: str, path: str, now: datetime) -> bool:
        if not self.matches(context, path):
            return False
        if not self.min_period:
            return True
        key = (context, path)
        last = self._last_seen.get(key)
        if last is not None and now - last < self.min_period:
            return False
        self._last_seen[key] = now
        if len(self._last_seen) > self.prune_at:
            self.prune(now)
        return True

    def prune(self, now: datetime) -> int:
        """Forget context/path pairs whose interval has already elapsed."""
        stale = [key for key, last in self._last_seen.items() if now - last >= self.min_period]
        for key in stale:
            del self._last_seen[key]
        return len(stale)


def iter_values(delta: Dict[str, Any]) -> Iterator[Tuple[Dict[str, Any], Dict[str, Any]]]:
    """Yield (update, value) pairs, skipping updates without values and malformed entries."""
    updates = delta.get("updates") or []
    if not isinstance(updates, list):
        logger.error("Skipping updates that are not a list: %r", updates)
        return

    for update in updates:
        if not isinstance(update, dict):
            logger.error("Skipping update: %r", update)
            continue
        # if no values then there is nothing to record
        values = update.get("values")
        if not values:
            continue
        if not isinstance(values, list):
            logger.error("Skipping values that are not a list: %r", values)
            continue
        for value in values:
            if not isinstance(value, dict):
                logger.error("Skipping value: %r", value)
                continue
            yield update, value


def build_payload(
    delta: Dict[str, Any],
    update: Dict[str, Any],
    value: Dict[str, Any],
    default_tags: Dict[str, Any],
    path_tags: Dict[str, Any],
    self_context: Optional[str] = None,
    tag_as_self: bool = False
) -> Dict[str, Any]:
    """Flatten one delta value into a point payload."""
    payload = {
        "source": update.get("$source"),
        "context": delta.get("context"),
        "path": value.get("path"),
        "value": value.get("value"),
        "time": update.get("timestamp"),
    }
    payload.update(default_tags)
    payload.update(path_tags)

    if tag_as_self and self_context is not None and delta.get("context") == self_context:
        payload["self"] = True
    return payload


class DeltaAdapter:
    """Turns deltas into payloads for every enabled path option."""

    def __init__(
        self,
        options: List[PathOption],
        default_tags: Optional[Dict[str, Any]] = None,
        self_context: Optional[str] = None,
        tag_as_self: bool = True
    ):
        self.default_tags = dict(default_tags or {})
        self.self_context = self_context
        self.tag_as_self = tag_as_self
        self.subscriptions = []

        for option in options:
            # paths can be switched off without removing them
            if not option.enabled:
                logger.info("Skipping subscription to: %s/.../%s", option.context, option.path)
                continue
            if option.context == SELF and self_context is None:
                logger.warning("No self context known, %s/.../%s will never match",
                               option.context, option.path)
            self.subscriptions.append(PathSubscription(option, self_context))
            logger.debug("Added subscription to: %s/.../%s (every %.0f ms)",
                         option.context, option.path, option.interval)

    def payloads(self, delta: Dict[str, Any], now: datetime) -> List[Dict[str, Any]]:
        if not isinstance(delta, dict):
            logger.warning("Skipping delta that is not an object: %r", delta)
            return []

        context = delta.get("context")
        result = []
        for update, value in iter_values(delta):
            for subscription in self.subscriptions:
                if not subscription.accept(context, value.get("path"), now):
                    continue
                result.append(build_payload(
                    delta, update, value,
                    self.default_tags,
                    subscription.option.tags,
                    self_context=self.self_context,
                    tag_as_self=self.tag_as_self
                ))
        return result
