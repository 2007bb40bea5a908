"""Keyed stores with optional per-key expiry.

`InMemoryKeyedStore` is single-process and loses its contents on restart.
`RedisKeyedStore` keeps the same contract on a shared Redis instance.
"""

import json
import time
from typing import Any, Callable, Protocol

import redis


class KeyedStore(Protocol):
    """Minimal get/put/expire contract injected into the checkout service."""

    def get(self, key: str) -> Any | None: ...

    def put(self, key: str, value: Any, ttl_seconds: float | None = None) -> None: ...

    def expire(self, key: str) -> None: ...

    def purge_expired(self) -> int: ...


class InMemoryKeyedStore:
    """Dict-backed store that evicts entries once their deadline has passed."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[Any, float | None]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, deadline = entry
        if deadline is not None and self._clock() >= deadline:
            del self._entries[key]
            return None
        return value

    def put(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        deadline = self._clock() + ttl_seconds if ttl_seconds is not None else None
        self._entries[key] = (value, deadline)

    def expire(self, key: str) -> None:
        self._entries.pop(key, None)

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""

        now = self._clock()
        stale = [key for key, (_, deadline) in self._entries.items() if deadline is not None and now >= deadline]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)


class RedisKeyedStore:
    """JSON values in Redis under a common prefix; expiry is delegated to SETEX."""

    def __init__(self, client: redis.Redis, prefix: str) -> None:
        self._client = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def get(self, key: str) -> Any | None:
        raw = self._client.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    def put(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        payload = json.dumps(value)
        if ttl_seconds is None:
            self._client.set(self._key(key), payload)
        else:
            self._client.setex(self._key(key), int(ttl_seconds), payload)

    def expire(self, key: str) -> None:
        self._client.delete(self._key(key))

    def purge_expired(self) -> int:
        """Redis drops expired keys itself; nothing to sweep."""

        return 0


def build_store(backend: str, redis_url: str, prefix: str) -> KeyedStore:
    """Create the configured store backend (`memory` or `redis`)."""

    if backend == "memory":
        return InMemoryKeyedStore()
    if backend == "redis":
        return RedisKeyedStore(redis.Redis.from_url(redis_url, decode_responses=True), prefix)
    raise ValueError(f"Unknown store backend: {backend}")
