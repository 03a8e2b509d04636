"""
Key-value stores behind the rate limiter and the result cache.

Rate-limit windows and cached result projections are kept outside the
process so every API worker counts and caches against the same state.
``InMemoryStorage`` is for a single worker and for tests, ``RedisStorage``
for anything larger.

A store that cannot be reached raises ``StorageUnavailableError``; what
happens next is up to the caller (the limiter fails open or closed, the
cache reports a miss).
"""
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from assessments.core.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

# (value, absolute expiry in epoch seconds or None)
_Entry = Tuple[Any, Optional[float]]


class KeyValueStorage(ABC):
    """Values are JSON-compatible; ``ttl`` is in seconds."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """
        Read a key.

        Returns:
            The stored value, or None when absent or expired

        Raises:
            StorageUnavailableError: If the store cannot be reached
        """

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Write a key; ``ttl=None`` keeps it until deleted."""

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def clear(self) -> None:
        """Drop every key this store owns."""

    def close(self) -> None:
        pass


class InMemoryStorage(KeyValueStorage):
    """
    Process-local store guarded by a lock.

    Expired entries are dropped when read, and swept in bulk at most once
    per ``cleanup_interval`` seconds so keys nobody reads again do not
    accumulate.
    """

    def __init__(self, cleanup_interval: int = 60):
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.RLock()
        self._sweep_every = cleanup_interval
        self._swept_at = time.time()

    @staticmethod
    def _expired(entry: _Entry, now: float) -> bool:
        expires_at = entry[1]
        return expires_at is not None and now > expires_at

    def get(self, key: str) -> Optional[Any]:
        now = time.time()
        with self._lock:
            self._sweep(now)
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry, now):
                del self._entries[key]
                return None
            return entry[0]

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = time.time() + ttl if ttl is not None else None
        with self._lock:
            self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _sweep(self, now: float) -> None:
        if now - self._swept_at < self._sweep_every:
            return
        self._swept_at = now
        stale = [k for k, entry in self._entries.items() if self._expired(entry, now)]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"Swept {len(stale)} expired in-memory keys")

    def get_stats(self) -> dict:
        """Key counts, for debugging."""
        now = time.time()
        with self._lock:
            expired = sum(1 for entry in self._entries.values() if self._expired(entry, now))
            return {
                "total_keys": len(self._entries),
                "expired_keys": expired,
                "active_keys": len(self._entries) - expired,
            }


class RedisStorage(KeyValueStorage):
    """
    Redis-backed store.

    Values are stored as JSON under ``key_prefix`` so the limiter and the
    result cache can share a database without colliding.

    Args:
        redis_url: e.g. ``redis://localhost:6379/0``
        key_prefix: Namespace prepended to every key
        max_connections: Connection pool size
        timeout: Socket and connect timeout in seconds
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: str = "assessments:",
        max_connections: int = 10,
        timeout: float = 5.0,
    ):
        import redis

        self._errors = redis.RedisError
        self._prefix = key_prefix
        self._pool = redis.ConnectionPool.from_url(
            redis_url,
            max_connections=max_connections,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            retry_on_timeout=True,
        )
        self._client = redis.Redis(connection_pool=self._pool)

        if self.is_connected():
            logger.info(f"Redis store ready for '{key_prefix}' keys")
        else:
            logger.warning(
                f"Redis unreachable at startup for '{key_prefix}' keys; "
                "calls will raise until it comes back"
            )

    def _call(self, operation: str, fn, *args):
        try:
            return fn(*args)
        except self._errors as e:
            raise StorageUnavailableError(f"Redis {operation} failed: {e}") from e

    def get(self, key: str) -> Optional[Any]:
        raw = self._call("get", self._client.get, self._prefix + key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.error(f"Discarding undecodable Redis value for {self._prefix}{key}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        payload = json.dumps(value, default=str)
        if ttl:
            self._call("setex", self._client.setex, self._prefix + key, ttl, payload)
        else:
            self._call("set", self._client.set, self._prefix + key, payload)

    def delete(self, key: str) -> None:
        self._call("delete", self._client.delete, self._prefix + key)

    def clear(self) -> None:
        """Delete this prefix's keys with SCAN, leaving the rest of the database alone."""
        for batch in self._call("scan", self._scan_batches):
            self._call("delete", self._client.delete, *batch)

    def _scan_batches(self):
        batches = []
        cursor = 0
        while True:
            cursor, keys = self._client.scan(cursor, match=f"{self._prefix}*", count=100)
            if keys:
                batches.append(keys)
            if cursor == 0:
                return batches

    def is_connected(self) -> bool:
        try:
            return bool(self._client.ping())
        except self._errors:
            return False

    def close(self) -> None:
        self._pool.disconnect()


def create_storage(backend: str, redis_url: str, key_prefix: str) -> KeyValueStorage:
    """
    Build the configured store.

    ``backend="redis"`` falls back to ``InMemoryStorage`` when Redis does
    not answer at startup, so the API still boots (with per-worker state).
    """
    if backend != "redis":
        return InMemoryStorage()

    store = RedisStorage(redis_url=redis_url, key_prefix=key_prefix)
    if store.is_connected():
        return store

    logger.warning(
        f"Using in-memory storage for '{key_prefix}' keys; "
        "limits and cached results are per worker until Redis is reachable"
    )
    store.close()
    return InMemoryStorage()
