"""Tests for the login throttle."""
import threading

import pytest

from tagger.errors import RateLimitedError
from tagger.services.throttle import LoginThrottle


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def throttle(clock):
    return LoginThrottle(window_seconds=60, max_attempts=3, skip_successful=True, clock=clock)


def test_blocks_after_max_failures(throttle):
    key = throttle.key_for("alice")
    for _ in range(3):
        assert not throttle.is_blocked(key)
        throttle.hit(key)
    assert throttle.is_blocked(key)
    with pytest.raises(RateLimitedError) as exc:
        throttle.hit(key)
    assert 0 < exc.value.retry_after <= 60


def test_rejected_attempt_is_not_counted(throttle, clock):
    key = throttle.key_for("alice")
    for _ in range(3):
        throttle.hit(key)
    for _ in range(5):
        with pytest.raises(RateLimitedError):
            throttle.hit(key)
    clock.now += 60
    throttle.hit(key)
    assert not throttle.is_blocked(key)


def test_unblocks_after_window(throttle, clock):
    key = throttle.key_for("alice")
    for _ in range(3):
        throttle.hit(key)
    clock.now += 59
    assert throttle.is_blocked(key)
    clock.now += 1
    assert not throttle.is_blocked(key)
    throttle.hit(key)


def test_success_does_not_reset_counter(throttle):
    key = throttle.key_for("alice")
    throttle.hit(key)
    throttle.hit(key)
    throttle.hit(key)
    throttle.record_success(key)
    assert not throttle.is_blocked(key)
    throttle.hit(key)
    assert throttle.is_blocked(key)


def test_success_counts_when_not_skipped(clock):
    throttle = LoginThrottle(window_seconds=60, max_attempts=2, skip_successful=False, clock=clock)
    key = throttle.key_for("alice")
    for _ in range(2):
        throttle.hit(key)
        throttle.record_success(key)
    assert throttle.is_blocked(key)


def test_success_after_expiry_is_a_no_op(throttle, clock):
    key = throttle.key_for("alice")
    throttle.hit(key)
    clock.now += 61
    throttle.record_success(key)
    assert throttle.retry_after(key) == 0.0


def test_new_window_starts_after_expiry(throttle, clock):
    key = throttle.key_for("alice")
    for _ in range(3):
        throttle.hit(key)
    clock.now += 61
    throttle.hit(key)
    assert not throttle.is_blocked(key)
    assert throttle.retry_after(key) == 60


def test_concurrent_hits_never_exceed_limit():
    throttle = LoginThrottle(window_seconds=60, max_attempts=3)
    key = throttle.key_for("alice")
    allowed = []
    barrier = threading.Barrier(20)

    def attempt():
        barrier.wait()
        try:
            throttle.hit(key)
        except RateLimitedError:
            return
        allowed.append(1)

    threads = [threading.Thread(target=attempt) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(allowed) == 3


def test_keys_are_case_folded():
    assert LoginThrottle.key_for(" Alice ") == LoginThrottle.key_for("alice")


def test_key_falls_back_to_address():
    assert LoginThrottle.key_for("", "10.0.0.1") == "ip:10.0.0.1"
    assert LoginThrottle.key_for(None, None) == "ip:unknown"
    assert LoginThrottle.key_for("alice", "10.0.0.1") != LoginThrottle.key_for("", "10.0.0.1")


def test_keys_are_independent(throttle):
    a, b = throttle.key_for("alice"), throttle.key_for("bob")
    for _ in range(3):
        throttle.hit(a)
    assert throttle.is_blocked(a)
    assert not throttle.is_blocked(b)


def test_rejects_bad_parameters():
    with pytest.raises(ValueError):
        LoginThrottle(window_seconds=0, max_attempts=3)
    with pytest.raises(ValueError):
        LoginThrottle(window_seconds=60, max_attempts=0)
