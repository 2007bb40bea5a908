"""Idempotency cache and recurring-token store on top of a keyed store.

Both are best-effort: a store outage is logged and the request carries on
without the cache, since the charge at PPRO is the source of truth.
"""

from typing import Any

import redis

from pprocheckout.common.logging import logger
from pprocheckout.common.store import KeyedStore


class IdempotencyCache:
    """Remembers the create-payment response for each idempotency key for `ttl_seconds`."""

    def __init__(self, store: KeyedStore, ttl_seconds: float) -> None:
        self.store_backend = store
        self.ttl_seconds = ttl_seconds

    def check(self, key: str) -> dict[str, Any] | None:
        try:
            return self.store_backend.get(key)
        except redis.RedisError as exc:
            logger.warning("idempotency_cache_read_failed key=%s error=%s", key, exc)
            return None

    def store(self, key: str, result: dict[str, Any]) -> None:
        try:
            self.store_backend.put(key, result, ttl_seconds=self.ttl_seconds)
        except redis.RedisError as exc:
            logger.warning("idempotency_cache_write_failed key=%s error=%s", key, exc)

    async def purge_expired(self) -> None:
        """Drop entries whose TTL has passed, even if their key is never seen again."""

        removed = self.store_backend.purge_expired()
        if removed:
            logger.info("idempotency_cache_purged removed=%s", removed)


class RecurringTokenStore:
    """Agreement tokens keyed by PPRO instrument id; entries never expire."""

    def __init__(self, store: KeyedStore) -> None:
        self._store = store

    def save(self, instrument_id: str, token: str, method: str, currency: str) -> None:
        try:
            self._store.put(instrument_id, {"token": token, "method": method, "currency": currency})
        except redis.RedisError as exc:
            logger.warning("recurring_token_write_failed instrument_id=%s error=%s", instrument_id, exc)

    def get(self, instrument_id: str) -> dict[str, Any] | None:
        return self._store.get(instrument_id)
