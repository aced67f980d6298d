from __future__ import annotations

from typing import List

import pytest
import requests

from facturationpro_api_client import FacturationProClient, RateLimitTracker

from ._fakes import FakeAdapter, FakeClock, FakeTimer


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timers() -> List[FakeTimer]:
    return []


@pytest.fixture
def tracker(clock, timers) -> RateLimitTracker:
    def factory(interval, function):
        timer = FakeTimer(interval, function)
        timers.append(timer)
        return timer

    return RateLimitTracker(clock=clock, timer_factory=factory)


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def client(adapter, tracker) -> FacturationProClient:
    session = requests.Session()
    session.mount("https://", adapter)
    return FacturationProClient(
        client_id="cid",
        client_secret="secret",
        redirect_uri="https://example.com/callback",
        scope="read_write",
        session=session,
        rate_limit=tracker,
    )
