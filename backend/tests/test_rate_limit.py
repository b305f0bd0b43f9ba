import fakeredis
import pytest
from fastapi import HTTPException

from gstbook.core.rate_limit import (
    InMemoryRateLimitStore, RedisRateLimitStore, check_rate_limit, enforce_rate_limit
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(params=["memory", "redis"])
def store(request, clock):
    if request.param == "memory":
        return InMemoryRateLimitStore(clock=clock)
    return RedisRateLimitStore(fakeredis.FakeRedis(decode_responses=True), clock=clock)


def test_fourth_attempt_in_window_is_denied(store):
    results = [store.check("sign_up:a@example.bt", 3, 60) for _ in range(4)]

    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results[:3]] == [2, 1, 0]
    assert 0 < results[3].retry_after_seconds <= 60


def test_keys_are_counted_independently(store):
    for _ in range(3):
        store.check("sign_up:a@example.bt", 3, 60)

    assert not store.check("sign_up:a@example.bt", 3, 60).allowed
    assert store.check("sign_up:b@example.bt", 3, 60).allowed


def test_window_expiry_allows_again(store, clock):
    for _ in range(3):
        store.check("k", 3, 60)
    assert not store.check("k", 3, 60).allowed

    clock.advance(61)

    assert store.check("k", 3, 60).allowed


def test_retry_after_counts_down(store, clock):
    for _ in range(3):
        store.check("k", 3, 60)

    clock.advance(45)
    result = store.check("k", 3, 60)

    assert not result.allowed
    assert result.retry_after_seconds == 15


def test_reset_clears_key(store):
    for _ in range(3):
        store.check("k", 3, 60)

    store.reset("k")

    assert store.check("k", 3, 60).allowed


def test_denied_attempts_do_not_extend_redis_window(clock):
    store = RedisRateLimitStore(fakeredis.FakeRedis(decode_responses=True), clock=clock)
    for _ in range(3):
        store.check("k", 3, 60)
    for _ in range(5):
        clock.advance(5)
        store.check("k", 3, 60)

    clock.advance(36)

    assert store.check("k", 3, 60).allowed


def test_preset_keys_are_case_insensitive(clock):
    store = InMemoryRateLimitStore(clock=clock)
    for _ in range(5):
        check_rate_limit(store, "sign_in", "Owner@Example.bt")

    assert not check_rate_limit(store, "sign_in", "owner@example.bt").allowed


def test_enforce_raises_429_with_retry_after(clock):
    store = InMemoryRateLimitStore(clock=clock)
    for _ in range(3):
        enforce_rate_limit(store, "sign_up", "a@example.bt")

    with pytest.raises(HTTPException) as exc_info:
        enforce_rate_limit(store, "sign_up", "a@example.bt")

    assert exc_info.value.status_code == 429
    assert exc_info.value.headers["Retry-After"] == "60"
