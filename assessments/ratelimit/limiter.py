"""
Fixed-window rate limiter.

Each ``(route class, client key)`` pair owns one counter record::

    {"key": ..., "count": 3, "window_expiry": 1700000060.0}

stored with a TTL equal to the window length. A request reads the record,
starts a new window if the previous one has elapsed, rejects if ``count``
has reached the limit, and otherwise increments and writes the record back.

The read-compare-write sequence is not atomic. Concurrent requests from one
client can each read the same count and be admitted together, so a burst
may slightly exceed the nominal limit. This is accepted.
"""
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from assessments.core.exceptions import RateLimitedError, StorageUnavailableError
from assessments.core.storage import KeyValueStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    """Limit for one route class.

    Attributes:
        limit: Maximum requests per window
        window: Window length in seconds
        fail_open: Admit requests when the counter store is unavailable
    """

    limit: int
    window: int
    fail_open: bool = True


class FixedWindowRateLimiter:
    """
    Fixed-window request counter keyed by route class and client.

    Example:
        >>> limiter = FixedWindowRateLimiter(
        ...     InMemoryStorage(),
        ...     {"submit": RateLimitRule(limit=10, window=60)},
        ... )
        >>> allowed, metadata = limiter.check("submit", "203.0.113.7")
    """

    def __init__(self, storage: KeyValueStorage, rules: Dict[str, RateLimitRule]):
        """
        Initialize the limiter.

        Args:
            storage: Counter store
            rules: Route class name -> RateLimitRule
        """
        self.storage = storage
        self.rules = dict(rules)

    def get_rule(self, route_class: str) -> RateLimitRule:
        """Return the rule for a route class, raising KeyError if undeclared."""
        return self.rules[route_class]

    @staticmethod
    def make_key(route_class: str, client_key: str) -> str:
        """Counter key for a route class and client."""
        return f"{route_class}:{client_key}"

    def check(self, route_class: str, client_key: str) -> Tuple[bool, Dict[str, Any]]:
        """
        Count a request and decide whether it is allowed.

        Args:
            route_class: Route class whose window applies (e.g. "submit")
            client_key: Client identifier (usually the client IP)

        Returns:
            Tuple of (allowed, metadata). Metadata carries limit, remaining,
            reset_at (epoch seconds) and retry_after (seconds, 0 if allowed).
        """
        rule = self.get_rule(route_class)
        key = self.make_key(route_class, client_key)
        now = time.time()

        try:
            record: Optional[Dict[str, Any]] = self.storage.get(key)
        except StorageUnavailableError as e:
            return self._store_unavailable(rule, route_class, e)

        if record is None or now >= record["window_expiry"]:
            count = 0
            window_expiry = now + rule.window
        else:
            count = int(record["count"])
            window_expiry = float(record["window_expiry"])

        if count >= rule.limit:
            retry_after = max(1, math.ceil(window_expiry - now))
            return False, self._metadata(rule, 0, window_expiry, retry_after)

        count += 1
        try:
            self.storage.set(
                key,
                {"key": key, "count": count, "window_expiry": window_expiry},
                ttl=rule.window,
            )
        except StorageUnavailableError as e:
            return self._store_unavailable(rule, route_class, e)

        return True, self._metadata(rule, rule.limit - count, window_expiry, 0)

    def hit(self, route_class: str, client_key: str) -> Dict[str, Any]:
        """
        Count a request, raising if it is over the limit.

        Raises:
            RateLimitedError: If the client has exhausted the window
        """
        allowed, metadata = self.check(route_class, client_key)
        if not allowed:
            raise RateLimitedError(
                "Too many requests. Please try again later.",
                retry_after=metadata["retry_after"],
                limit=metadata["limit"],
                window=self.get_rule(route_class).window,
            )
        return metadata

    def reset(self, route_class: str, client_key: str) -> None:
        """Forget the counter for a client in one route class."""
        self.storage.delete(self.make_key(route_class, client_key))

    def _store_unavailable(
        self, rule: RateLimitRule, route_class: str, error: Exception
    ) -> Tuple[bool, Dict[str, Any]]:
        if rule.fail_open:
            logger.warning(
                f"Rate limit store unavailable, allowing request: {error}",
                extra={"route_class": route_class},
            )
            return True, self._metadata(rule, rule.limit, time.time() + rule.window, 0)

        logger.error(
            f"Rate limit store unavailable, rejecting request: {error}",
            extra={"route_class": route_class},
        )
        return False, self._metadata(
            rule, 0, time.time() + rule.window, rule.window
        )

    @staticmethod
    def _metadata(
        rule: RateLimitRule, remaining: int, window_expiry: float, retry_after: int
    ) -> Dict[str, Any]:
        return {
            "limit": rule.limit,
            "remaining": max(0, remaining),
            "reset_at": int(math.ceil(window_expiry)),
            "retry_after": retry_after,
        }
