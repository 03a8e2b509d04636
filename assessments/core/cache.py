"""
Cache-aside helpers over a key-value storage backend.

The cache is never the source of truth. A failed cache read is treated as a
miss and a failed cache write is logged and ignored; only durable storage
failures reach the caller.

Usage:
    result_cache = Cache(storage, namespace="result", default_ttl=86400)

    cached = result_cache.get(session_id)
    if cached is None:
        cached = build_projection(await repository.get_session(session_id))
        result_cache.set(session_id, cached)
"""
import logging
from typing import Any, Awaitable, Callable, Optional

from assessments.core.exceptions import StorageUnavailableError
from assessments.core.graceful_failure import graceful_failure
from assessments.core.storage import KeyValueStorage

logger = logging.getLogger(__name__)


def cache_key(*parts: Any) -> str:
    """Join key parts with ':' (e.g. ``cache_key("questions", "phq9", "en")``)."""
    return ":".join(str(part) for part in parts)


class Cache:
    """
    Namespaced, TTL-bounded cache.

    Args:
        storage: Backing key-value store
        namespace: Prefix separating this cache's keys from others in the store
        default_ttl: TTL in seconds applied when ``set`` is not given one
    """

    def __init__(self, storage: KeyValueStorage, namespace: str, default_ttl: int):
        self.storage = storage
        self.namespace = namespace
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        return cache_key(self.namespace, key)

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss or backend failure."""
        try:
            return self.storage.get(self._key(key))
        except StorageUnavailableError as e:
            logger.warning(f"Cache read failed for {self.namespace}:{key}, treating as miss: {e}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store a value; backend failures are logged, not raised."""
        with graceful_failure(
            "populate cache", logger, context={"namespace": self.namespace, "key": key}
        ):
            self.storage.set(self._key(key), value, ttl=ttl or self.default_ttl)

    def delete(self, key: str) -> None:
        """Evict a key; backend failures are logged, not raised."""
        with graceful_failure(
            "evict cache entry", logger, context={"namespace": self.namespace, "key": key}
        ):
            self.storage.delete(self._key(key))

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Optional[Any]]],
        ttl: Optional[int] = None,
    ) -> Optional[Any]:
        """
        Cache-aside read.

        Probes the cache; on a miss awaits ``loader`` and caches a non-None
        result. Concurrent misses for the same key may both load and both
        write; values are immutable so the duplicate write is harmless.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        value = await loader()
        if value is not None:
            self.set(key, value, ttl=ttl)
        return value
