from __future__ import annotations

import threading

import pytest

from gitlabbulk.ratelimit import RateLimiter, TokenBucket
from tests.conftest import FakeClock


class TestTokenBucket:

    def test_burst_is_free(self):
        clock = FakeClock()
        bucket = TokenBucket(rate=2, capacity=3, clock=clock, sleep=clock.sleep)
        assert [bucket.acquire() for _ in range(3)] == [0, 0, 0]
        assert clock.sleeps == []

    def test_reservations_queue_up(self):
        clock = FakeClock()
        bucket = TokenBucket(rate=4, capacity=1, clock=clock, sleep=clock.sleep)
        assert bucket.reserve() == 0
        assert bucket.reserve() == pytest.approx(0.25)
        assert bucket.reserve() == pytest.approx(0.5)

    def test_refill_is_capped(self):
        clock = FakeClock()
        bucket = TokenBucket(rate=10, capacity=2, clock=clock, sleep=clock.sleep)
        bucket.reserve()
        bucket.reserve()
        clock.advance(60)
        assert bucket.reserve() == 0
        assert bucket.reserve() == 0
        assert bucket.reserve() == pytest.approx(0.1)

    def test_acquire_sleeps_for_reservation(self):
        clock = FakeClock()
        bucket = TokenBucket(rate=5, capacity=1, clock=clock, sleep=clock.sleep)
        bucket.acquire()
        waited = bucket.acquire()
        assert waited == pytest.approx(0.2)
        assert clock.sleeps == [pytest.approx(0.2)]

    @pytest.mark.parametrize('rate', [0, -1])
    def test_non_positive_rate_disables_pacing(self, rate):
        clock = FakeClock()
        bucket = TokenBucket(rate=rate, capacity=1, clock=clock, sleep=clock.sleep)
        assert [bucket.acquire() for _ in range(50)] == [0] * 50
        assert clock.sleeps == []

    def test_capacity_at_least_one(self):
        assert TokenBucket(rate=1, capacity=0).capacity == 1

    def test_concurrent_reservations_are_spaced(self):
        clock = FakeClock()
        bucket = TokenBucket(rate=10, capacity=1, clock=clock, sleep=clock.sleep)
        waits = []
        lock = threading.Lock()

        def take():
            w = bucket.reserve()
            with lock:
                waits.append(w)

        threads = [threading.Thread(target=take) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert sorted(round(w, 6) for w in waits) == [round(n / 10, 6) for n in range(20)]


class TestRateLimiter:

    def test_buckets_are_per_credential(self):
        clock = FakeClock()
        limiter = RateLimiter(rate=1, burst=1, clock=clock, sleep=clock.sleep)
        assert limiter.acquire('a') == 0
        assert limiter.acquire('b') == 0
        assert limiter.acquire('a') == pytest.approx(1.0)
        assert limiter.bucket('a') is limiter.bucket('a')
        assert limiter.bucket('a') is not limiter.bucket('b')

    def test_default_credential_key(self):
        clock = FakeClock()
        limiter = RateLimiter(rate=2, burst=1, clock=clock, sleep=clock.sleep)
        limiter.acquire()
        assert limiter.acquire('default') == pytest.approx(0.5)
