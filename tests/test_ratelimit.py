# tests/test_ratelimit.py
import pytest

from modules.careers_crawl.lib.ratelimit import TokenBucket


class ManualClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def test_even_spacing_at_capacity_one():
    clock = ManualClock()
    bucket = TokenBucket(60, clock=clock, sleep=clock.sleep)  # one per second

    assert bucket.acquire() == 0.0
    assert bucket.try_acquire() == pytest.approx(1.0)
    assert bucket.acquire() == pytest.approx(1.0)
    assert clock.sleeps == [pytest.approx(1.0)]


def test_refill_over_time_and_burst_cap():
    clock = ManualClock()
    bucket = TokenBucket(120, capacity=3, clock=clock, sleep=clock.sleep)

    for _ in range(3):
        assert bucket.try_acquire() == 0.0
    assert bucket.try_acquire() == pytest.approx(0.5)

    clock.now += 60  # far longer than needed; tokens cap at capacity
    for _ in range(3):
        assert bucket.try_acquire() == 0.0
    assert bucket.try_acquire() > 0


def test_rejects_non_positive_rate():
    with pytest.raises(ValueError):
        TokenBucket(0)
