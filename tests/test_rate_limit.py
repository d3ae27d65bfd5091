"""Tests for the fixed-window rate limiter."""

from __future__ import annotations

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from laiive.app import install_error_handlers
from laiive.rate_limit import RATE_LIMIT_MESSAGE, RateLimiter, client_key, rate_limited


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_limit_applies_within_window_and_resets_after():
    clock = FakeClock()
    limiter = RateLimiter(2, 60, clock=clock)

    assert limiter.check("1.2.3.4")
    assert limiter.check("1.2.3.4")
    assert not limiter.check("1.2.3.4")

    clock.now = 60.0
    assert not limiter.check("1.2.3.4")

    clock.now = 60.5
    assert limiter.check("1.2.3.4")


def test_keys_are_independent():
    limiter = RateLimiter(1, 60, clock=FakeClock())

    assert limiter.check("a")
    assert limiter.check("b")
    assert not limiter.check("a")


def test_key_table_is_bounded():
    clock = FakeClock()
    limiter = RateLimiter(1, 60, max_keys=2, clock=clock)

    limiter.check("a")
    limiter.check("b")
    limiter.check("c")

    assert len(limiter) == 2
    # "a" was evicted, so it starts a fresh window
    assert limiter.check("a")


def test_expired_entries_are_swept():
    clock = FakeClock()
    limiter = RateLimiter(5, 10, clock=clock)
    for key in ("a", "b", "c"):
        limiter.check(key)

    clock.now = 30.0
    limiter.check("d")

    assert len(limiter) == 1


def test_client_key_prefers_forwarded_for():
    assert client_key({"x-forwarded-for": " 9.9.9.9 , 10.0.0.1", "x-real-ip": "8.8.8.8"}) == "9.9.9.9"
    assert client_key({"x-real-ip": "8.8.8.8"}) == "8.8.8.8"
    assert client_key({}) == "unknown"


def make_client(extra=None) -> TestClient:
    app = FastAPI()
    install_error_handlers(app)
    app.state.rate_limiters = {"ping": RateLimiter(1, 60)}

    @app.get("/ping", dependencies=[Depends(rate_limited("ping", extra=extra))])
    async def ping() -> dict[str, bool]:
        return {"ok": True}

    return TestClient(app)


def test_dependency_rejects_with_error_body():
    client = make_client()

    assert client.get("/ping").status_code == 200
    response = client.get("/ping")

    assert response.status_code == 429
    assert response.json() == {"error": RATE_LIMIT_MESSAGE}


def test_dependency_merges_extra_fields():
    client = make_client(extra={"success": False})

    client.get("/ping")
    response = client.get("/ping")

    assert response.json() == {"success": False, "error": RATE_LIMIT_MESSAGE}
