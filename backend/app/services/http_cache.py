"""Short-lived response cache shared by replicated executions."""

from __future__ import annotations

import hashlib
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Mapping, TypeVar

T = TypeVar("T")


def request_fingerprint(
    url: str,
    *,
    method: str = "GET",
    body: Mapping[str, Any] | None = None,
    extra: Mapping[str, Any] | None = None,
) -> str:
    """Return a stable cache key for a request; headers never enter the key."""

    payload = {
        "url": url,
        "method": method.upper(),
        "body": body,
        "extra": extra,
    }
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class _Entry(Generic[T]):
    value: T
    expires_at: float


class ResponseCache(Generic[T]):
    """In-process TTL cache keyed by request fingerprint."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, _Entry[T]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> T | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry.value

    def put(self, key: str, value: T, max_age: float) -> None:
        if max_age <= 0:
            return
        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=self._clock() + max_age)

    def get_or_fetch(self, key: str, max_age: float, fetch: Callable[[], T]) -> T:
        """Return the cached value for ``key`` or call ``fetch`` and store it.

        Failed fetches are not cached, so the next replica observes the upstream
        again.
        """

        if max_age > 0:
            cached = self.get(key)
            if cached is not None:
                return cached
        value = fetch()
        self.put(key, value, max_age)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["ResponseCache", "request_fingerprint"]
