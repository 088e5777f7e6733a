from __future__ import annotations

from collections.abc import Generator
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from salesdesk.core.config import get_settings
from salesdesk.middleware.rate_limit import RATE_LIMIT_MESSAGE, _TokenBucketLimiter, reset_rate_limiter


@pytest.fixture()
def limited(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "false")
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "3")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    reset_rate_limiter()
    get_settings.cache_clear()


def test_bucket_refuses_once_capacity_is_spent() -> None:
    limiter = _TokenBucketLimiter()

    results = [limiter.take("ip:1.2.3.4", capacity=2, window_seconds=60) for _ in range(3)]

    assert [allowed for allowed, _ in results] == [True, True, False]
    assert results[-1][1] >= 1
    assert limiter.take("ip:5.6.7.8", capacity=2, window_seconds=60) == (True, 0)


def test_refilled_buckets_are_evicted(monkeypatch: pytest.MonkeyPatch) -> None:
    clock = [1000.0]
    monkeypatch.setattr("salesdesk.middleware.rate_limit.time", SimpleNamespace(monotonic=lambda: clock[0]))
    limiter = _TokenBucketLimiter()

    limiter.take("ip:idle", capacity=2, window_seconds=60)
    clock[0] = 1059.0
    limiter.take("ip:busy", capacity=2, window_seconds=60)
    limiter.take("ip:busy", capacity=2, window_seconds=60)
    clock[0] = 1061.0
    limiter.take("ip:new", capacity=2, window_seconds=60)

    assert len(limiter) == 2
    assert limiter.take("ip:busy", capacity=2, window_seconds=60)[0] is False


def test_api_requests_are_limited_per_user(client: TestClient, actors, limited: None) -> None:
    sarah = actors.headers("sarah")

    responses = [client.get("/api/leads", headers=sarah) for _ in range(4)]
    other_user = client.get("/api/leads", headers=actors.headers("mike"))

    assert [response.status_code for response in responses] == [200, 200, 200, 429]
    blocked = responses[-1]
    assert blocked.json() == {"success": False, "message": RATE_LIMIT_MESSAGE}
    assert int(blocked.headers["Retry-After"]) >= 1
    assert other_user.status_code == 200


def test_anonymous_requests_are_limited_per_ip(client: TestClient, limited: None) -> None:
    responses = [client.post("/api/auth/login", json={"email": "x@salesdesk.io", "password": "nope"}) for _ in range(4)]

    assert [response.status_code for response in responses] == [401, 401, 401, 429]


def test_health_is_never_limited(client: TestClient, limited: None) -> None:
    responses = [client.get("/health") for _ in range(5)]

    assert all(response.status_code == 200 for response in responses)


def test_disabled_limiter_lets_everything_through(client: TestClient, actors) -> None:
    responses = [client.get("/api/leads", headers=actors.headers("sarah")) for _ in range(5)]

    assert all(response.status_code == 200 for response in responses)
