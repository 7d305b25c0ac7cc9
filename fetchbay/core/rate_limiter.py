"""Rate limiting implementation using token bucket algorithm.

Used to throttle login attempts per client address: a bucket holds
``attempts`` tokens and refills them evenly over ``window`` seconds.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_ATTEMPTS = 10
DEFAULT_WINDOW_SECONDS = 15 * 60


@dataclass
class TokenBucket:
    """Token bucket for rate limiting.

    Attributes:
        capacity: Maximum number of tokens (burst capacity)
        refill_rate: Tokens added per second
        tokens: Current token count
        last_refill: Timestamp of last refill
    """

    capacity: int
    refill_rate: float
    tokens: float = field(default=0.0)
    last_refill: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        """Initialize tokens to capacity if not set."""
        if self.tokens == 0.0:
            self.tokens = float(self.capacity)

    def refill(self, now: float) -> None:
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now


class RateLimiter:
    """Token bucket rate limiter keyed by an arbitrary client identifier.

    Example:
        limiter = RateLimiter(attempts=10, window=900)
        allowed, retry_after = limiter.check("203.0.113.7")
        if not allowed:
            # Return 429 with Retry-After header
            pass
    """

    def __init__(
        self,
        attempts: int = DEFAULT_ATTEMPTS,
        window: float = DEFAULT_WINDOW_SECONDS,
    ) -> None:
        """Initialize rate limiter.

        Args:
            attempts: Requests allowed per key within ``window``.
            window: Window length in seconds.
        """
        if attempts < 1 or window <= 0:
            raise ValueError("attempts and window must be positive")
        self.attempts = attempts
        self.window = window
        self._buckets: Dict[str, TokenBucket] = {}
        self._lock = threading.Lock()

    @property
    def refill_rate(self) -> float:
        return self.attempts / self.window

    def check(self, key: str) -> Tuple[bool, float]:
        """Consume one token for ``key`` if available.

        Returns:
            Tuple of (allowed, retry_after_seconds)
            - allowed: True if request is within rate limit
            - retry_after_seconds: Seconds to wait before retry (0 if allowed)
        """
        now = time.monotonic()
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = TokenBucket(
                    capacity=self.attempts, refill_rate=self.refill_rate, last_refill=now
                )
                self._buckets[key] = bucket
            bucket.refill(now)

            if bucket.tokens >= 1.0:
                bucket.tokens -= 1.0
                return True, 0.0

            retry_after = (1.0 - bucket.tokens) / bucket.refill_rate

        logger.info("rate_limit_exceeded", key=key, retry_after=retry_after)
        return False, retry_after

    def get_bucket_status(self, key: str) -> Dict:
        """Get current status of the bucket for ``key``."""
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                return {"tokens": float(self.attempts), "capacity": self.attempts}
            bucket.refill(time.monotonic())
            return {"tokens": bucket.tokens, "capacity": bucket.capacity}

    def reset(self, key: Optional[str] = None) -> None:
        """Forget one key's bucket, or every bucket when ``key`` is None."""
        with self._lock:
            if key is None:
                self._buckets.clear()
            else:
                self._buckets.pop(key, None)


# Global rate limiter instance
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get the global login rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter


def configure_rate_limiter(
    attempts: int = DEFAULT_ATTEMPTS,
    window: float = DEFAULT_WINDOW_SECONDS,
) -> RateLimiter:
    """Configure the global login rate limiter."""
    global _rate_limiter
    _rate_limiter = RateLimiter(attempts=attempts, window=window)
    return _rate_limiter
