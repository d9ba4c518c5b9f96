import asyncio

from spotifiling.rate_limiter import RateLimiter


def test_concurrency_is_bounded():
    limiter = RateLimiter(max_concurrent=2, rate_per_second=0)
    active = {"now": 0, "peak": 0}

    async def call():
        async with limiter:
            active["now"] += 1
            active["peak"] = max(active["peak"], active["now"])
            await asyncio.sleep(0.01)
            active["now"] -= 1

    async def run():
        await asyncio.gather(*(call() for _ in range(6)))

    asyncio.run(run())
    assert active["peak"] == 2


def test_requests_are_paced():
    limiter = RateLimiter(max_concurrent=10, rate_per_second=50)

    async def run():
        loop = asyncio.get_running_loop()
        start = loop.time()
        for _ in range(5):
            async with limiter:
                pass
        return loop.time() - start

    # 5 requests at 50/s: the last one waits ~4 intervals of 20ms
    assert asyncio.run(run()) >= 0.07


def test_cancelled_wait_releases_slot():
    limiter = RateLimiter(max_concurrent=1, rate_per_second=1)

    async def run():
        async with limiter:
            pass
        waiter = asyncio.create_task(limiter.acquire())
        await asyncio.sleep(0.01)
        waiter.cancel()
        try:
            await waiter
        except asyncio.CancelledError:
            pass
        # The slot taken by the cancelled waiter is free again
        limiter.rate = 0
        await asyncio.wait_for(limiter.acquire(), timeout=1)
        limiter.release()

    asyncio.run(run())
