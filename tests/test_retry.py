import httpx
import pytest

from pkg_api_client.client.retry import RetryPolicy
from pkg_api_client.domain.exceptions import (
    ClientHttpError,
    NetworkError,
    RefreshFailedError,
    ServerError,
    UnauthorizedError,
)


# --- policy -----------------------------------------------------------------


def test_retryable_errors():
    policy = RetryPolicy()
    assert policy.should_retry(NetworkError("down"), 3)
    assert policy.should_retry(NetworkError("slow", timed_out=True), 1)
    assert policy.should_retry(ServerError("HTTP_503", "unavailable", status_code=503), 2)

    assert not policy.should_retry(ClientHttpError("HTTP_404", "missing", status_code=404), 3)
    assert not policy.should_retry(UnauthorizedError("HTTP_401", "expired", status_code=401), 3)
    assert not policy.should_retry(RefreshFailedError("gone"), 3)
    assert not policy.should_retry(ValueError("not an api error"), 3)


def test_budget_exhausted():
    policy = RetryPolicy()
    assert not policy.should_retry(NetworkError("down"), 0)


def test_idempotent_only():
    err = ServerError("HTTP_500", "oops", status_code=500)
    assert RetryPolicy().should_retry(err, 3, "POST")

    policy = RetryPolicy(idempotent_only=True)
    assert not policy.should_retry(err, 3, "POST")
    assert not policy.should_retry(err, 3, "patch")
    assert policy.should_retry(err, 3, "PUT")
    assert policy.should_retry(err, 3, "GET")


def test_backoff_schedule():
    policy = RetryPolicy(max_retries=3)
    assert [policy.backoff(r) for r in (3, 2, 1)] == [1.0, 2.0, 4.0]

    assert RetryPolicy(base_delay=0.5).backoff(2) == 1.0
    assert policy.backoff(1, budget=1) == 1.0
    assert policy.backoff(1, budget=5) == 16.0


def test_negative_budget_rejected():
    with pytest.raises(ValueError):
        RetryPolicy(max_retries=-1)


# --- pipeline -----------------------------------------------------------------


@pytest.mark.asyncio
async def test_always_503_is_attempted_one_plus_retries_times(make_client, sleeps):
    attempts = 0

    def handler(request):
        nonlocal attempts
        attempts += 1
        return httpx.Response(503, json={"message": "maintenance"})

    async with make_client(handler) as api:
        with pytest.raises(ServerError) as exc_info:
            await api.get("/jobs")

    assert attempts == 4
    assert sleeps.delays == [1.0, 2.0, 4.0]
    assert exc_info.value.code == "HTTP_503"
    assert exc_info.value.message == "maintenance"


@pytest.mark.asyncio
async def test_per_request_retry_budget(make_client, sleeps):
    attempts = 0

    def handler(request):
        nonlocal attempts
        attempts += 1
        return httpx.Response(500)

    async with make_client(handler) as api:
        with pytest.raises(ServerError):
            await api.post("/applications", {"jobId": 1}, retries=0)
        assert attempts == 1

        with pytest.raises(ServerError):
            await api.get("/jobs", retries=1)

    assert attempts == 3
    assert sleeps.delays == [1.0]


@pytest.mark.asyncio
async def test_transient_failure_then_success(make_client, sleeps):
    responses = iter([httpx.Response(502), httpx.Response(504), httpx.Response(200, json={"ok": True})])

    async with make_client(lambda request: next(responses)) as api:
        assert await api.get("/jobs") == {"ok": True}

    assert sleeps.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_timeouts_and_connection_errors_are_retried(make_client, sleeps):
    attempts = 0

    def handler(request):
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise httpx.ConnectError("connection refused", request=request)
        raise httpx.ReadTimeout("timed out", request=request)

    async with make_client(handler, max_retries=2) as api:
        with pytest.raises(NetworkError) as exc_info:
            await api.get("/jobs")

    assert attempts == 3
    assert exc_info.value.timed_out
    assert exc_info.value.code == "NETWORK_ERROR"
    assert sleeps.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_client_errors_are_not_retried(make_client, sleeps):
    attempts = 0

    def handler(request):
        nonlocal attempts
        attempts += 1
        return httpx.Response(422, json={"error": {"code": "VALIDATION_ERROR", "message": "bad"}})

    async with make_client(handler) as api:
        with pytest.raises(ClientHttpError) as exc_info:
            await api.post("/jobs", {"title": ""})

    assert attempts == 1
    assert sleeps.delays == []
    assert exc_info.value.code == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_idempotent_only_setting_skips_post(make_client):
    attempts = 0

    def handler(request):
        nonlocal attempts
        attempts += 1
        return httpx.Response(500)

    async with make_client(handler, retry_idempotent_only=True) as api:
        with pytest.raises(ServerError):
            await api.post("/applications", {"jobId": 1})

    assert attempts == 1


@pytest.mark.asyncio
async def test_retrying_follows_backoff_schedule():
    policy = RetryPolicy(base_delay=0.5)
    delays = []
    calls = 0

    async def sleep(delay):
        delays.append(delay)

    async def flaky():
        nonlocal calls
        calls += 1
        raise ServerError("HTTP_503", "unavailable", status_code=503)

    with pytest.raises(ServerError):
        await policy.retrying(2, "GET", sleep=sleep)(flaky)

    assert calls == 3
    assert delays == [policy.backoff(r, budget=2) for r in (2, 1)] == [0.5, 1.0]


@pytest.mark.asyncio
async def test_retrying_reraises_non_transient_errors_at_once():
    calls = 0

    async def broken():
        nonlocal calls
        calls += 1
        raise ValueError("bad payload")

    with pytest.raises(ValueError):
        await RetryPolicy().retrying(3)(broken)

    assert calls == 1
