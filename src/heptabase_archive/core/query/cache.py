"""Time-limited cache for query results."""

import json
import time
from collections.abc import Callable
from dataclasses import asdict, is_dataclass
from typing import Any


def make_cache_key(operation: str, shape: Any) -> str:
    """Deterministic key for an operation and its query shape.

    Field order does not matter: dicts are serialized with sorted keys.
    """
    if is_dataclass(shape) and not isinstance(shape, type):
        shape = asdict(shape)
    params = json.dumps(shape, sort_keys=True, separators=(",", ":"), default=str)
    return f"{operation}:{params}"


class ResultCache:
    """Map cache keys to results that expire ``ttl_seconds`` after being set.

    Expired entries are evicted lazily when looked up.
    """

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None on a miss or an expired entry."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock(), value)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
