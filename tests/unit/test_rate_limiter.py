"""Tests for the login rate limiter.

This module tests:
- Token bucket refill logic
- Per-key enforcement
- Retry-After calculation
"""

import time
from unittest.mock import patch

import pytest

from fetchbay.core.rate_limiter import (
    RateLimiter,
    TokenBucket,
    configure_rate_limiter,
    get_rate_limiter,
)


class TestTokenBucket:
    """Tests for TokenBucket dataclass."""

    def test_token_bucket_initialization(self):
        """Test that TokenBucket starts full."""
        bucket = TokenBucket(capacity=10, refill_rate=0.5)

        assert bucket.capacity == 10
        assert bucket.refill_rate == 0.5
        assert bucket.tokens == 10.0
        assert bucket.last_refill > 0

    def test_token_bucket_custom_tokens(self):
        """Test TokenBucket with explicit token count."""
        bucket = TokenBucket(capacity=20, refill_rate=1.0, tokens=10.0)

        assert bucket.tokens == 10.0

    def test_refill_is_capped(self):
        """Test that refill never exceeds capacity."""
        bucket = TokenBucket(capacity=5, refill_rate=1.0, tokens=4.0, last_refill=0.0)

        bucket.refill(100.0)

        assert bucket.tokens == 5.0
        assert bucket.last_refill == 100.0

    def test_partial_refill(self):
        """Test proportional refill."""
        bucket = TokenBucket(capacity=10, refill_rate=2.0, tokens=1.0, last_refill=0.0)

        bucket.refill(1.5)

        assert bucket.tokens == pytest.approx(4.0)


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_allows_up_to_attempts(self):
        """Test that ten attempts pass and the eleventh is throttled."""
        limiter = RateLimiter(attempts=10, window=900)

        results = [limiter.check("203.0.113.7")[0] for _ in range(11)]

        assert results == [True] * 10 + [False]

    def test_retry_after(self):
        """Test Retry-After equals the time to earn one token."""
        limiter = RateLimiter(attempts=10, window=900)
        with patch("fetchbay.core.rate_limiter.time.monotonic", return_value=50.0):
            for _ in range(10):
                limiter.check("ip")
            allowed, retry_after = limiter.check("ip")

        assert allowed is False
        assert retry_after == pytest.approx(90.0)

    def test_keys_are_independent(self):
        """Test that one client's throttling does not affect another."""
        limiter = RateLimiter(attempts=1, window=60)

        assert limiter.check("a")[0] is True
        assert limiter.check("a")[0] is False
        assert limiter.check("b")[0] is True

    def test_tokens_return_over_time(self):
        """Test that waiting restores attempts."""
        limiter = RateLimiter(attempts=2, window=0.1)
        limiter.check("ip")
        limiter.check("ip")
        assert limiter.check("ip")[0] is False

        time.sleep(0.06)

        assert limiter.check("ip")[0] is True

    def test_bucket_status(self):
        """Test bucket inspection."""
        limiter = RateLimiter(attempts=3, window=3000)

        assert limiter.get_bucket_status("new") == {"tokens": 3.0, "capacity": 3}

        limiter.check("new")
        status = limiter.get_bucket_status("new")
        assert status["capacity"] == 3
        assert 2.0 <= status["tokens"] < 2.1

    def test_reset(self):
        """Test forgetting one key or all keys."""
        limiter = RateLimiter(attempts=1, window=60)
        limiter.check("a")
        limiter.check("b")

        limiter.reset("a")
        assert limiter.check("a")[0] is True
        assert limiter.check("b")[0] is False

        limiter.reset()
        assert limiter.check("b")[0] is True

    @pytest.mark.parametrize("attempts,window", [(0, 60), (5, 0), (-1, 10)])
    def test_invalid_parameters(self, attempts, window):
        """Test that non-positive limits are rejected."""
        with pytest.raises(ValueError):
            RateLimiter(attempts=attempts, window=window)


class TestGlobalRateLimiter:
    """Tests for the global limiter accessors."""

    def test_configure_and_get(self):
        """Test configure_rate_limiter() installs the instance."""
        limiter = configure_rate_limiter(attempts=3, window=30)

        assert get_rate_limiter() is limiter
        assert limiter.refill_rate == pytest.approx(0.1)
