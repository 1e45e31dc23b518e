import pytest

from errors import AppError
from ratelimit import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_window_slides():
    clock = FakeClock()
    limiter = RateLimiter(2, 60, "Too many", clock=clock)
    limiter.check("1.2.3.4")
    clock.now += 30
    limiter.check("1.2.3.4")

    with pytest.raises(AppError) as exc:
        limiter.check("1.2.3.4")
    assert exc.value.status_code == 429
    assert exc.value.message == "Too many"

    clock.now += 31
    limiter.check("1.2.3.4")


def test_keys_are_independent():
    limiter = RateLimiter(1, 60, "Too many", clock=FakeClock())
    limiter.check("a")
    limiter.check("b")
    with pytest.raises(AppError):
        limiter.check("a")


def test_prune_evicts_idle_keys():
    clock = FakeClock()
    limiter = RateLimiter(5, 60, "Too many", clock=clock)
    limiter.check("old")
    clock.now += 45
    limiter.check("recent")
    clock.now += 20

    assert limiter.prune() == 1
    assert len(limiter) == 1
    limiter.check("recent")
