import asyncio

import pytest

from app.core.concurrency import settle_all


@pytest.mark.asyncio
async def test_failures_are_isolated_and_order_is_kept():
    async def job(i: int) -> int:
        await asyncio.sleep(0.01 * (3 - i))
        if i == 1:
            raise RuntimeError("boom")
        return i * 10

    results = await settle_all(job(i) for i in range(3))

    assert [r.ok for r in results] == [True, False, True]
    assert [r.value for r in results] == [0, None, 20]
    assert isinstance(results[1].error, RuntimeError)


@pytest.mark.asyncio
async def test_max_concurrency_caps_running_tasks():
    running = 0
    peak = 0

    async def job():
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1

    await settle_all((job() for _ in range(8)), max_concurrency=2)

    assert peak == 2


@pytest.mark.asyncio
async def test_empty_input():
    assert await settle_all([]) == []
