import asyncio
import gc

import pytest

from pkg_api_client.client.dedup import RequestDeduplicator


@pytest.mark.asyncio
async def test_concurrent_calls_share_one_execution():
    dedup = RequestDeduplicator()
    calls = 0
    release = asyncio.Event()

    async def factory():
        nonlocal calls
        calls += 1
        await release.wait()
        return {"page": 1}

    tasks = [asyncio.create_task(dedup.dedupe("GET /jobs", factory)) for _ in range(5)]
    await asyncio.sleep(0)
    assert dedup.is_pending("GET /jobs")
    assert dedup.pending_count == 1

    release.set()
    results = await asyncio.gather(*tasks)

    assert calls == 1
    assert all(r is results[0] for r in results)
    assert dedup.pending_count == 0


@pytest.mark.asyncio
async def test_failure_is_shared_and_key_released():
    dedup = RequestDeduplicator()
    calls = 0

    async def factory():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0)
        raise RuntimeError("boom")

    results = await asyncio.gather(
        dedup.dedupe("k", factory),
        dedup.dedupe("k", factory),
        return_exceptions=True,
    )

    assert calls == 1
    assert all(isinstance(r, RuntimeError) for r in results)
    assert results[0] is results[1]
    assert not dedup.is_pending("k")


@pytest.mark.asyncio
async def test_key_released_before_caller_resumes():
    dedup = RequestDeduplicator()

    async def factory():
        return "ok"

    assert await dedup.dedupe("k", factory) == "ok"
    assert not dedup.is_pending("k")


@pytest.mark.asyncio
async def test_sequential_and_distinct_keys_are_not_merged():
    dedup = RequestDeduplicator()
    seen = []

    def factory_for(key):
        async def factory():
            seen.append(key)
            await asyncio.sleep(0)
            return key

        return factory

    assert await dedup.dedupe("a", factory_for("a")) == "a"
    assert await dedup.dedupe("a", factory_for("a")) == "a"
    results = await asyncio.gather(
        dedup.dedupe("a", factory_for("a")),
        dedup.dedupe("b", factory_for("b")),
    )

    assert results == ["a", "b"]
    assert seen == ["a", "a", "a", "b"]


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_shared_call():
    dedup = RequestDeduplicator()
    release = asyncio.Event()

    async def factory():
        await release.wait()
        return "done"

    first = asyncio.create_task(dedup.dedupe("k", factory))
    second = asyncio.create_task(dedup.dedupe("k", factory))
    await asyncio.sleep(0)

    first.cancel()
    await asyncio.sleep(0)
    release.set()

    assert await second == "done"
    with pytest.raises(asyncio.CancelledError):
        await first
    assert dedup.pending_count == 0


@pytest.mark.asyncio
async def test_failure_after_every_caller_left_is_not_reported():
    loop = asyncio.get_running_loop()
    reported = []
    loop.set_exception_handler(lambda loop, context: reported.append(context))
    try:
        dedup = RequestDeduplicator()
        release = asyncio.Event()

        async def factory():
            await release.wait()
            raise RuntimeError("backend down")

        waiter = asyncio.create_task(dedup.dedupe("GET /jobs", factory))
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        release.set()
        for _ in range(3):
            await asyncio.sleep(0)
        assert dedup.pending_count == 0

        del waiter
        gc.collect()
        assert reported == []
    finally:
        loop.set_exception_handler(None)
