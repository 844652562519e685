"""
Invalidation registry shared by write and read operations.

Writes mark `(principal_id, resource_class)` as invalidated; reads consult
the mark to bypass response caches and clear it once they have fetched
fresh data. Timestamps are wall-clock microseconds so the Redis store can
be shared between processes.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, TypeVar

import redis
from redis import exceptions as redis_exceptions

from nowandlater.errors import InvalidationUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def now_micros() -> int:
    return time.time_ns() // 1000


class InvalidationStore(Protocol):
    """Point operations on the invalidation map."""

    def clock(self) -> int:
        ...

    def mark_invalidated(self, principal_id: str, resource_class: str) -> int:
        ...

    def is_invalidated(self, principal_id: str, resource_class: str) -> bool:
        ...

    def invalidated_at(self, principal_id: str, resource_class: str) -> Optional[int]:
        ...

    def mark_fresh(
        self,
        principal_id: str,
        resource_class: str,
        *,
        read_started_at: Optional[int] = None,
    ) -> bool:
        ...


@dataclass
class InMemoryInvalidationStore:
    """Process-local registry. Entries are lost on restart."""

    clock: Callable[[], int] = now_micros
    entries: dict[tuple[str, str], int] = field(default_factory=dict)

    def __post_init__(self):
        self._lock = threading.Lock()

    def mark_invalidated(self, principal_id: str, resource_class: str) -> int:
        timestamp = self.clock()
        with self._lock:
            self.entries[(principal_id, resource_class)] = timestamp
        logger.debug("Invalidated %s for %s at %d", resource_class, principal_id, timestamp)
        return timestamp

    def is_invalidated(self, principal_id: str, resource_class: str) -> bool:
        with self._lock:
            return (principal_id, resource_class) in self.entries

    def invalidated_at(self, principal_id: str, resource_class: str) -> Optional[int]:
        with self._lock:
            return self.entries.get((principal_id, resource_class))

    def mark_fresh(
        self,
        principal_id: str,
        resource_class: str,
        *,
        read_started_at: Optional[int] = None,
    ) -> bool:
        key = (principal_id, resource_class)
        with self._lock:
            timestamp = self.entries.get(key)
            if timestamp is None:
                return False
            # A read that began before (or with) the write saw pre-write data.
            if read_started_at is not None and timestamp >= read_started_at:
                return False
            del self.entries[key]
        logger.debug("Marked %s fresh for %s", resource_class, principal_id)
        return True

    def reset(self) -> None:
        with self._lock:
            self.entries.clear()


# Deletes KEYS[1] if it exists and, when ARGV[1] is set, only if the stored
# timestamp is strictly older than ARGV[1].
_MARK_FRESH_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if not current then
  return 0
end
if ARGV[1] ~= '' and tonumber(current) >= tonumber(ARGV[1]) then
  return 0
end
redis.call('DEL', KEYS[1])
return 1
"""


@dataclass
class RedisInvalidationStore:
    """
    Registry shared across processes; survives restarts.

    Connection resets are logged and the client is rebuilt. A mark is retried
    once on the new connection and raises InvalidationUnavailable if that
    fails too. While Redis is unreachable every key reads as invalidated so
    callers skip caches.
    """

    url: str
    key_prefix: str = "nowandlater:invalidated"
    clock: Callable[[], int] = now_micros

    def __post_init__(self):
        self._connect()

    def _connect(self) -> None:
        self.client = redis.Redis.from_url(self.url)
        self._mark_fresh = self.client.register_script(_MARK_FRESH_SCRIPT)

    def _key(self, principal_id: str, resource_class: str) -> str:
        return f"{self.key_prefix}:{principal_id}:{resource_class}"

    def _retrying(self, description: str, command: Callable[[], T]) -> T:
        """Runs `command`, reconnecting and retrying once on a connection error."""
        try:
            return command()
        except redis_exceptions.ConnectionError as exc:
            logger.warning("Redis unavailable during %s, reconnecting: %s", description, exc)
            self._connect()
        try:
            return command()
        except redis_exceptions.ConnectionError as exc:
            logger.error("Redis still unavailable; %s failed: %s", description, exc)
            self._connect()
            raise InvalidationUnavailable(f"Could not {description}") from exc

    def mark_invalidated(self, principal_id: str, resource_class: str) -> int:
        timestamp = self.clock()
        key = self._key(principal_id, resource_class)
        self._retrying(
            f"invalidate {resource_class} for {principal_id}",
            lambda: self.client.set(key, timestamp),
        )
        return timestamp

    def is_invalidated(self, principal_id: str, resource_class: str) -> bool:
        try:
            return bool(self.client.exists(self._key(principal_id, resource_class)))
        except redis_exceptions.ConnectionError:
            logger.warning("Redis unavailable; treating %s as invalidated", resource_class)
            self._connect()
            return True

    def invalidated_at(self, principal_id: str, resource_class: str) -> Optional[int]:
        key = self._key(principal_id, resource_class)
        value = self._retrying(
            f"read the invalidation of {resource_class} for {principal_id}",
            lambda: self.client.get(key),
        )
        return int(value) if value is not None else None

    def mark_fresh(
        self,
        principal_id: str,
        resource_class: str,
        *,
        read_started_at: Optional[int] = None,
    ) -> bool:
        try:
            cleared = self._mark_fresh(
                keys=[self._key(principal_id, resource_class)],
                args=["" if read_started_at is None else str(read_started_at)],
            )
        except redis_exceptions.ConnectionError:
            logger.warning("Redis unavailable; %s left invalidated", resource_class)
            self._connect()
            return False
        return bool(cleared)
