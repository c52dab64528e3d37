"""
Tests for token buckets and the per-policy limiter registry.
"""

import asyncio
import threading

import pytest

from reaper.deletion.rate_limit import RateLimiterRegistry, TokenBucket


class ManualClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestTokenBucket:
    """Tests for TokenBucket."""

    def test_starts_full(self):
        bucket = TokenBucket(rate=5, clock=ManualClock())
        assert bucket.burst == 5
        assert bucket.tokens() == 5

    def test_try_acquire_drains_burst(self):
        bucket = TokenBucket(rate=3, clock=ManualClock())
        assert [bucket.try_acquire() for _ in range(4)] == [True, True, True, False]

    def test_refills_at_rate(self):
        clock = ManualClock()
        bucket = TokenBucket(rate=2, clock=clock)
        while bucket.try_acquire():
            pass
        clock.now += 0.5
        assert bucket.try_acquire()
        assert not bucket.try_acquire()

    def test_refill_is_capped_at_burst(self):
        clock = ManualClock()
        bucket = TokenBucket(rate=2, clock=clock)
        clock.now += 100
        assert bucket.tokens() == 2

    def test_reserve_reports_delay(self):
        bucket = TokenBucket(rate=4, clock=ManualClock())
        delays = [bucket.reserve() for _ in range(6)]
        assert delays[:4] == [0.0] * 4
        assert delays[4] == pytest.approx(0.25)
        assert delays[5] == pytest.approx(0.5)

    def test_cancel_reservation_refunds(self):
        bucket = TokenBucket(rate=1, clock=ManualClock())
        bucket.reserve()
        bucket.reserve()
        bucket.cancel_reservation()
        assert bucket.tokens() == 0

    def test_set_rate_caps_tokens(self):
        bucket = TokenBucket(rate=10, clock=ManualClock())
        bucket.set_rate(2)
        assert bucket.rate == 2
        assert bucket.tokens() == 2

    def test_rejects_non_positive_rate(self):
        with pytest.raises(ValueError):
            TokenBucket(rate=0)

    @pytest.mark.asyncio
    async def test_wait_admits_within_burst(self):
        bucket = TokenBucket(rate=100)
        assert await bucket.wait()

    @pytest.mark.asyncio
    async def test_wait_returns_false_when_stopped(self):
        bucket = TokenBucket(rate=1)
        stop = asyncio.Event()
        stop.set()
        assert not await bucket.wait(stop)

    @pytest.mark.asyncio
    async def test_stop_interrupts_long_wait(self):
        bucket = TokenBucket(rate=1)
        assert await bucket.wait()
        stop = asyncio.Event()

        async def stop_soon():
            await asyncio.sleep(0.01)
            stop.set()

        stopper = asyncio.create_task(stop_soon())
        admitted = await asyncio.wait_for(bucket.wait(stop), timeout=0.5)
        await stopper
        assert admitted is False
        assert bucket.tokens() < 1


class TestRateLimiterRegistry:
    """Tests for RateLimiterRegistry."""

    def test_one_bucket_per_policy(self):
        registry = RateLimiterRegistry(default_rate=10)
        assert registry.get_or_create("a") is registry.get_or_create("a")
        assert registry.get_or_create("a") is not registry.get_or_create("b")
        assert len(registry) == 2

    def test_default_rate_for_unset_or_non_positive(self):
        registry = RateLimiterRegistry(default_rate=7)
        assert registry.get_or_create("a").rate == 7
        assert registry.get_or_create("b", 0).rate == 7
        assert registry.get_or_create("c", 3).rate == 3

    def test_rate_updated_in_place(self):
        registry = RateLimiterRegistry()
        bucket = registry.get_or_create("a", 5)
        assert registry.get_or_create("a", 20) is bucket
        assert bucket.rate == 20

    def test_remove(self):
        registry = RateLimiterRegistry()
        registry.get_or_create("a")
        assert registry.remove("a") is True
        assert registry.remove("a") is False
        assert "a" not in registry

    def test_stats(self):
        registry = RateLimiterRegistry()
        registry.get_or_create("a", 4)
        [stats] = registry.stats()
        assert stats.policy_uid == "a"
        assert stats.rate == 4
        assert stats.burst == 4

    def test_rejects_bad_default(self):
        with pytest.raises(ValueError):
            RateLimiterRegistry(default_rate=0)

    def test_concurrent_first_use_creates_one_bucket(self):
        registry = RateLimiterRegistry()
        barrier = threading.Barrier(16)
        seen = []

        def worker():
            barrier.wait()
            seen.append(registry.get_or_create("shared", 10))

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(seen) == 16
        assert all(bucket is seen[0] for bucket in seen)
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_concurrent_tasks_share_bucket(self):
        registry = RateLimiterRegistry()

        async def use():
            await asyncio.sleep(0)
            return registry.get_or_create("shared")

        buckets = await asyncio.gather(*(use() for _ in range(20)))
        assert len({id(b) for b in buckets}) == 1
