# tests/conftest.py
import itertools
import time

import httpx
import jwt
import pytest

from pkg_api_client import ApiClient, ClientSettings

BASE_URL = "http://api.test/api/v1"
SIGNING_KEY = "test-signing-key-that-is-long-enough-for-hs256"

_jti = itertools.count(1)


def make_token(*, expires_in: int = 3600, issued_at: int | None = None, **claims) -> str:
    iat = int(time.time()) if issued_at is None else issued_at
    payload = {
        "sub": "user-1",
        "email": "jane@example.com",
        "role": "job_seeker",
        "iat": iat,
        "exp": iat + expires_in,
        "jti": str(next(_jti)),
    }
    payload.update(claims)
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def token_factory():
    return make_token


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def make_client(clock, sleeps):
    """Build an ApiClient whose HTTP traffic goes to `handler`."""

    def _make(handler, *, on_session_expired=None, **overrides) -> ApiClient:
        settings = ClientSettings(**{"base_url": BASE_URL, "cache_sweep_interval": 0, **overrides})
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)
        return ApiClient(
            settings,
            client=http,
            on_session_expired=on_session_expired,
            sleep=sleeps,
            clock=clock,
        )

    return _make
