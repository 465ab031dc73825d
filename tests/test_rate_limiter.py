"""Tests for the shared outbound-call throttle."""

from typing import List

import pytest
from hypothesis import given, settings, strategies as st

from fleetsync.integrations.airtable.rate_limiter import RateLimiter

from conftest import FakeClock, FakeResponse, make_client


def test_first_call_does_not_wait():
    clock = FakeClock()
    limiter = RateLimiter(min_interval=0.25, clock=clock, sleep=clock.sleep)

    assert limiter.acquire() == 0.0
    assert clock.sleeps == []


def test_back_to_back_calls_are_spaced_by_min_interval():
    clock = FakeClock()
    limiter = RateLimiter(min_interval=0.25, clock=clock, sleep=clock.sleep)

    starts = []
    for _ in range(4):
        limiter.acquire()
        starts.append(clock.now)

    assert [round(b - a, 9) for a, b in zip(starts, starts[1:])] == [0.25, 0.25, 0.25]


def test_no_wait_once_interval_has_elapsed():
    clock = FakeClock()
    limiter = RateLimiter(min_interval=0.25, clock=clock, sleep=clock.sleep)

    limiter.acquire()
    clock.advance(1.0)

    assert limiter.acquire() == 0.0


def test_reset_forgets_last_start():
    clock = FakeClock()
    limiter = RateLimiter(min_interval=0.25, clock=clock, sleep=clock.sleep)
    limiter.acquire()
    limiter.reset()

    assert limiter.acquire() == 0.0


def test_from_milliseconds():
    assert RateLimiter.from_milliseconds(250).min_interval == pytest.approx(0.25)


def test_negative_interval_rejected():
    with pytest.raises(ValueError):
        RateLimiter(min_interval=-1)


@given(
    st.floats(min_value=0.0, max_value=2.0, allow_nan=False),
    st.lists(st.floats(min_value=0.0, max_value=1.0, allow_nan=False), min_size=1, max_size=30),
)
@settings(max_examples=100, deadline=None)
def test_property_call_starts_never_closer_than_interval(interval: float, gaps: List[float]):
    """Whatever the caller's pacing, consecutive starts are at least ``interval`` apart."""
    clock = FakeClock()
    limiter = RateLimiter(min_interval=interval, clock=clock, sleep=clock.sleep)

    starts = []
    for gap in gaps:
        limiter.acquire()
        starts.append(clock.now)
        clock.advance(gap)

    for earlier, later in zip(starts, starts[1:]):
        assert later - earlier >= interval - 1e-9


def test_client_calls_share_one_limiter(session):
    """Two clients sharing a limiter never start requests closer than the interval."""
    clock = FakeClock()
    limiter = RateLimiter(min_interval=0.25, clock=clock, sleep=clock.sleep)
    first = make_client(session, clock)
    second = make_client(session, clock)
    first.rate_limiter = limiter
    second.rate_limiter = limiter

    starts = []
    original_request = session.request

    def timed_request(*args, **kwargs):
        starts.append(clock.now)
        return original_request(*args, **kwargs)

    session.request = timed_request
    session.queue(*[FakeResponse(200, {"records": []}) for _ in range(4)])

    first.test_connection("Commandes")
    second.test_connection("Clients")
    first.test_connection("Commandes")
    second.test_connection("Clients")

    assert len(starts) == 4
    for earlier, later in zip(starts, starts[1:]):
        assert later - earlier >= 0.25 - 1e-9
