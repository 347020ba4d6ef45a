"""Tests for SlidingWindowRateLimiter."""
from roomchat.chat.rate_limiter import SlidingWindowRateLimiter


class TestSlidingWindowRateLimiter:
    """Tests for the per-connection sliding window."""

    def test_allows_three_then_rejects_fourth(self):
        limiter = SlidingWindowRateLimiter()
        assert limiter.try_acquire("c1", 0.0)
        assert limiter.try_acquire("c1", 0.1)
        assert limiter.try_acquire("c1", 0.2)
        assert not limiter.try_acquire("c1", 0.3)

    def test_allows_again_after_window(self):
        limiter = SlidingWindowRateLimiter()
        for t in (0.0, 0.1, 0.2):
            limiter.try_acquire("c1", t)
        assert not limiter.try_acquire("c1", 0.5)
        assert limiter.try_acquire("c1", 1.05)

    def test_rejected_attempts_are_not_recorded(self):
        limiter = SlidingWindowRateLimiter()
        for t in (0.0, 0.1, 0.2):
            limiter.try_acquire("c1", t)
        for t in (0.3, 0.4, 0.5, 0.6):
            assert not limiter.try_acquire("c1", t)
        # Only the three accepted sends count; the first has aged out
        assert limiter.try_acquire("c1", 1.01)

    def test_connections_are_independent(self):
        limiter = SlidingWindowRateLimiter()
        for t in (0.0, 0.1, 0.2):
            limiter.try_acquire("c1", t)
        assert not limiter.try_acquire("c1", 0.3)
        assert limiter.try_acquire("c2", 0.3)

    def test_release_forgets_window(self):
        limiter = SlidingWindowRateLimiter()
        for t in (0.0, 0.1, 0.2):
            limiter.try_acquire("c1", t)
        limiter.release("c1")
        assert limiter.tracked() == 0
        assert limiter.try_acquire("c1", 0.3)

    def test_release_unknown_connection_is_noop(self):
        limiter = SlidingWindowRateLimiter()
        limiter.release("nobody")
        assert limiter.tracked() == 0

    def test_custom_quota_and_window(self):
        limiter = SlidingWindowRateLimiter(max_events=1, window_seconds=10.0)
        assert limiter.try_acquire("c1", 0.0)
        assert not limiter.try_acquire("c1", 9.0)
        assert limiter.try_acquire("c1", 10.5)

    def test_defaults_to_monotonic_clock(self):
        limiter = SlidingWindowRateLimiter(max_events=2)
        assert limiter.try_acquire("c1")
        assert limiter.try_acquire("c1")
        assert not limiter.try_acquire("c1")
