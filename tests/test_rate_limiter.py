"""
Tests for the RateLimiter: interval, error penalty, 429 cooldown and FIFO serialization.
"""

from __future__ import annotations

import threading

import pytest

from wallet_ledger.core.exceptions import CooldownError, RateLimitError, TransientNetworkError
from wallet_ledger.solana_listener import RateLimiter


def _limiter(clock, rps=0.5, penalty=2.0):
    return RateLimiter(rps, error_penalty_sec=penalty, cooldown_base_sec=15.0,
                       cooldown_max_sec=600.0, clock=clock, sleep=clock.sleep)


def _raise(exc):
    def call():
        raise exc
    return call


def test_min_interval_between_dispatches(clock):
    """Second call waits out the 2s interval at 0.5 rps; first call does not wait."""
    limiter = _limiter(clock)
    assert limiter.submit(lambda: "a") == "a"
    assert clock.sleeps == []
    assert limiter.submit(lambda: "b") == "b"
    assert clock.sleeps == [pytest.approx(2.0)]


def test_zero_rps_disables_interval(clock):
    limiter = _limiter(clock, rps=0, penalty=0)
    for _ in range(3):
        limiter.submit(lambda: None)
    assert clock.sleeps == []


def test_error_penalty_grows_and_success_resets(clock):
    limiter = _limiter(clock, rps=0, penalty=2.0)
    for _ in range(2):
        with pytest.raises(TransientNetworkError):
            limiter.submit(_raise(TransientNetworkError("boom")))
    assert limiter.consecutive_errors == 2
    assert not limiter.in_cooldown()
    limiter.submit(lambda: None)
    # second failure waited 1 * penalty, the success waited 2 * penalty
    assert clock.sleeps == [pytest.approx(2.0), pytest.approx(4.0)]
    assert limiter.consecutive_errors == 0
    limiter.submit(lambda: None)
    assert len(clock.sleeps) == 2


def test_rate_limit_trips_cooldown_and_fails_fast(clock):
    limiter = _limiter(clock, rps=0, penalty=0)
    with pytest.raises(RateLimitError):
        limiter.submit(_raise(RateLimitError("429", status_code=429)))
    assert limiter.in_cooldown()
    assert limiter.cooldown_remaining() == pytest.approx(30.0)

    dispatched = []
    with pytest.raises(CooldownError) as exc_info:
        limiter.submit(lambda: dispatched.append(1))
    assert dispatched == []
    assert exc_info.value.remaining_sec == pytest.approx(30.0)


def test_cooldown_trip_after_three_429s(clock):
    """429 three times (waiting out each cooldown), 4th submit fails fast, succeeds after cooldown."""
    limiter = _limiter(clock, rps=0, penalty=0)
    responses = iter(["429", "429", "429", "ok"])
    calls = []

    def provider():
        r = next(responses)
        calls.append(r)
        if r == "429":
            raise RateLimitError("429", status_code=429)
        return r

    for expected_cooldown in (30.0, 60.0, 120.0):
        with pytest.raises(RateLimitError):
            limiter.submit(provider)
        assert limiter.cooldown_remaining() == pytest.approx(expected_cooldown)
        if expected_cooldown < 120.0:
            clock.advance(expected_cooldown)

    clock.advance(119.0)
    with pytest.raises(CooldownError):
        limiter.submit(provider)
    assert calls == ["429", "429", "429"]

    clock.advance(1.0)
    assert limiter.submit(provider) == "ok"
    assert limiter.consecutive_errors == 0


def test_cooldown_is_capped(clock):
    limiter = RateLimiter(0, cooldown_base_sec=15.0, cooldown_max_sec=100.0, clock=clock, sleep=clock.sleep)
    for _ in range(4):
        with pytest.raises(RateLimitError):
            limiter.submit(_raise(RateLimitError("429")))
        remaining = limiter.cooldown_remaining()
        clock.advance(remaining)
    assert remaining == pytest.approx(100.0)


def test_submit_serializes_calls():
    """Concurrent submitters never overlap inside call()."""
    limiter = RateLimiter(0, error_penalty_sec=0)
    active = 0
    max_active = 0
    lock = threading.Lock()

    def call():
        nonlocal active, max_active
        with lock:
            active += 1
            max_active = max(max_active, active)
        threading.Event().wait(0.005)
        with lock:
            active -= 1

    threads = [threading.Thread(target=limiter.submit, args=(call,)) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert max_active == 1
