"""
Tests for the in-process fixed-window rate limiter.
"""
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from smartprompts.services.rate_limiter import InMemoryRateLimiter, RateLimiter


class FakeTime:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def limiter(fake_time):
    # Sweeping is tested separately
    return InMemoryRateLimiter(clock=fake_time, sweep_probability=0.0)


class TestInMemoryRateLimiter:
    """Window admission, expiry and inspection."""

    def test_is_a_rate_limiter(self, limiter):
        assert isinstance(limiter, RateLimiter)

    def test_admits_first_n_and_rejects_next(self, limiter):
        results = [limiter.check("optimize:u1", 3, 60) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert all(r.limit == 3 for r in results)

    def test_rejection_does_not_consume(self, limiter):
        for _ in range(5):
            limiter.check("k", 2, 60)

        state = limiter.inspect("k", 2, 60)
        assert state.remaining == 0
        assert state.allowed is False

    def test_fresh_window_after_expiry(self, limiter, fake_time):
        first = limiter.check("k", 2, 60)
        limiter.check("k", 2, 60)
        assert limiter.check("k", 2, 60).allowed is False

        fake_time.now = first.reset_at  # boundary counts as expired
        again = [limiter.check("k", 2, 60) for _ in range(3)]

        assert [r.allowed for r in again] == [True, True, False]
        assert again[0].reset_at == first.reset_at + 60

    def test_reset_at_is_window_end(self, limiter, fake_time):
        result = limiter.check("k", 5, 60)

        assert result.reset_at == fake_time.now + 60
        assert result.reset_in == 60
        assert result.reset_at_ms == int((fake_time.now + 60) * 1000)

    def test_keys_are_independent(self, limiter):
        assert limiter.check("optimize:a", 1, 60).allowed
        assert not limiter.check("optimize:a", 1, 60).allowed
        assert limiter.check("optimize:b", 1, 60).allowed

    def test_inspect_does_not_mutate(self, limiter):
        limiter.check("k", 3, 60)
        before = limiter.inspect("k", 3, 60)
        limiter.inspect("k", 3, 60)
        after = limiter.inspect("k", 3, 60)

        assert before.remaining == after.remaining == 2
        assert limiter.check("k", 3, 60).remaining == 1

    def test_inspect_unknown_key_reports_full_quota(self, limiter, fake_time):
        state = limiter.inspect("nobody", 10, 60)

        assert state.allowed is True
        assert state.remaining == 10
        assert state.reset_at == fake_time.now + 60
        assert len(limiter) == 0

    def test_inspect_expired_entry_reports_full_quota(self, limiter, fake_time):
        for _ in range(3):
            limiter.check("k", 3, 60)
        fake_time.now += 61

        state = limiter.inspect("k", 3, 60)
        assert state.allowed is True
        assert state.remaining == 3

    def test_clear_drops_entry(self, limiter):
        limiter.check("k", 1, 60)
        assert not limiter.check("k", 1, 60).allowed

        limiter.clear("k")
        limiter.clear("missing")  # no error

        assert limiter.check("k", 1, 60).allowed


class TestSweep:
    """Expired entries are pruned but correctness never depends on it."""

    def test_sweep_removes_only_expired(self, limiter, fake_time):
        limiter.check("old", 5, 10)
        fake_time.now += 30
        limiter.check("new", 5, 60)

        removed = limiter.sweep()

        assert removed == 1
        assert len(limiter) == 1
        assert limiter.inspect("new", 5, 60).remaining == 4

    def test_probabilistic_sweep_runs_on_check(self, fake_time):
        limiter = InMemoryRateLimiter(clock=fake_time, sweep_probability=0.5, rng=lambda: 0.1)
        limiter.check("old", 5, 10)
        fake_time.now += 30

        limiter.check("new", 5, 60)

        assert len(limiter) == 1

    def test_no_sweep_when_roll_misses(self, fake_time):
        limiter = InMemoryRateLimiter(clock=fake_time, sweep_probability=0.01, rng=lambda: 0.9)
        limiter.check("old", 5, 10)
        fake_time.now += 30

        limiter.check("new", 5, 60)

        assert len(limiter) == 2


class TestConcurrency:
    """The check-and-increment is a single critical section."""

    def test_concurrent_checks_never_exceed_limit(self):
        limiter = InMemoryRateLimiter(sweep_probability=0.0)
        barrier = threading.Barrier(20)

        def hit(_):
            barrier.wait()
            return limiter.check("optimize:shared", 10, 60).allowed

        with ThreadPoolExecutor(max_workers=20) as pool:
            outcomes = list(pool.map(hit, range(20)))

        assert outcomes.count(True) == 10
        assert outcomes.count(False) == 10
