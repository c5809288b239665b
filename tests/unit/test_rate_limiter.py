import asyncio
import time

import pytest

from pubmed_bot.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


async def _wait_for_len(items: list, expected: int, attempts: int = 200) -> None:
    for _ in range(attempts):
        if len(items) >= expected:
            return
        await asyncio.sleep(0.005)


@pytest.mark.anyio
async def test_admits_up_to_limit_then_queues_until_window_frees() -> None:
    clock = FakeClock()
    limiter = RateLimiter(max_requests=2, window_seconds=1.0, poll_interval=0.01, clock=clock)

    await limiter.acquire()
    await limiter.acquire()
    waiting = asyncio.create_task(limiter.acquire())
    await asyncio.sleep(0.05)

    assert not waiting.done()
    assert limiter.pending == 1

    clock.now += 1.0
    await asyncio.wait_for(waiting, timeout=1.0)
    assert limiter.pending == 0
    await limiter.aclose()


@pytest.mark.anyio
async def test_waiters_are_admitted_in_arrival_order() -> None:
    clock = FakeClock()
    limiter = RateLimiter(max_requests=1, window_seconds=1.0, poll_interval=0.01, clock=clock)
    order: list[int] = []

    async def worker(index: int) -> None:
        await limiter.acquire()
        order.append(index)

    tasks = [asyncio.create_task(worker(index)) for index in range(4)]
    await asyncio.sleep(0.03)
    assert order == [0]

    clock.now += 1.0
    # a late arrival must not jump ahead of the queued tickets
    tasks.append(asyncio.create_task(worker(99)))
    await _wait_for_len(order, 2)
    assert order == [0, 1]

    for expected in (2, 3, 4):
        clock.now += 1.0
        await _wait_for_len(order, expected + 1)

    assert order == [0, 1, 2, 3, 99]
    await asyncio.gather(*tasks)
    await limiter.aclose()


@pytest.mark.anyio
async def test_cancelled_waiter_does_not_consume_a_slot() -> None:
    clock = FakeClock()
    limiter = RateLimiter(max_requests=1, window_seconds=1.0, poll_interval=0.01, clock=clock)
    await limiter.acquire()

    cancelled = asyncio.create_task(limiter.acquire())
    survivor = asyncio.create_task(limiter.acquire())
    await asyncio.sleep(0.02)
    cancelled.cancel()
    await asyncio.sleep(0.02)
    assert limiter.pending == 1

    clock.now += 1.0
    await asyncio.wait_for(survivor, timeout=1.0)
    assert cancelled.cancelled()
    await limiter.aclose()


@pytest.mark.anyio
async def test_admissions_never_exceed_limit_in_any_window() -> None:
    window = 0.2
    limiter = RateLimiter(max_requests=2, window_seconds=window, poll_interval=0.05)
    admitted: list[float] = []

    async def worker() -> None:
        await limiter.acquire()
        admitted.append(time.monotonic())

    await asyncio.gather(*(worker() for _ in range(7)))

    admitted.sort()
    assert len(admitted) == 7
    for index in range(len(admitted) - 2):
        # small allowance for event loop scheduling jitter
        assert admitted[index + 2] - admitted[index] >= window - 0.02
    await limiter.aclose()


def test_rejects_non_positive_limits() -> None:
    with pytest.raises(ValueError):
        RateLimiter(max_requests=0)
    with pytest.raises(ValueError):
        RateLimiter(max_requests=1, window_seconds=0)
