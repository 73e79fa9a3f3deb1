"""
Admin action rate limiting over the audit log.
"""
import pytest

from marketing_hub.exceptions import RateLimitExceeded
from marketing_hub.services.rate_limiter import AdminRateLimiter


@pytest.fixture
def limiter(session_factory, clock):
    return AdminRateLimiter(session_factory, max_per_window=3, clock=clock)


def test_allows_up_to_the_limit_then_rejects(limiter, clock):
    assert limiter.check_and_record("admin-1", "trigger_sync") == 2
    clock.advance(minutes=10)
    assert limiter.check_and_record("admin-1", "trigger_sync") == 1
    clock.advance(minutes=10)
    assert limiter.check_and_record("admin-1", "trigger_sync") == 0

    with pytest.raises(RateLimitExceeded) as exc_info:
        limiter.check_and_record("admin-1", "trigger_sync")
    # Oldest action leaves the window 40 minutes from now
    assert exc_info.value.retry_after_seconds == 40 * 60
    assert limiter.count_recent("admin-1", "trigger_sync") == 3


def test_window_slides(limiter, clock):
    for _ in range(3):
        limiter.check_and_record("admin-1", "trigger_sync")

    clock.advance(hours=1, seconds=1)
    assert limiter.check_and_record("admin-1", "trigger_sync") == 2


def test_limits_are_per_actor_and_action(limiter):
    for _ in range(3):
        limiter.check_and_record("admin-1", "trigger_sync")

    assert limiter.check_and_record("admin-2", "trigger_sync") == 2
    assert limiter.check_and_record("admin-1", "clear_cache") == 2
