from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Deque


logger = logging.getLogger(__name__)

_MIN_WAKEUP_SECONDS = 0.001


class RateLimiter:
    """Admits at most ``max_requests`` callers per rolling ``window_seconds``.

    Callers that cannot be admitted immediately wait on a ticket. Tickets are
    granted strictly in arrival order by a single drain task, which only runs
    while the queue is non-empty.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 1.0,
        poll_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests <= 0:
            raise ValueError("max_requests must be > 0")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._poll_interval = poll_interval
        self._clock = clock
        self._timestamps: Deque[float] = deque()
        self._waiters: Deque[asyncio.Future[None]] = deque()
        self._drain_task: asyncio.Task[None] | None = None

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    @property
    def pending(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self) -> None:
        now = self._clock()
        self._prune(now)
        if not self._waiters and len(self._timestamps) < self._max_requests:
            self._timestamps.append(now)
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug(
            "rate limit reached, queued waiter pending=%s max_requests=%s window=%s",
            len(self._waiters),
            self._max_requests,
            self._window_seconds,
        )
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.create_task(self._drain())
        await waiter

    async def aclose(self) -> None:
        task = self._drain_task
        self._drain_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.cancel()

    def _prune(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self._window_seconds:
            self._timestamps.popleft()

    def _admit_waiters(self) -> None:
        now = self._clock()
        self._prune(now)
        while self._waiters and len(self._timestamps) < self._max_requests:
            waiter = self._waiters.popleft()
            if waiter.done():
                # cancelled while queued
                continue
            self._timestamps.append(now)
            waiter.set_result(None)

    def _next_delay(self) -> float:
        if not self._timestamps:
            return _MIN_WAKEUP_SECONDS
        remaining = self._timestamps[0] + self._window_seconds - self._clock()
        return min(self._poll_interval, max(remaining, _MIN_WAKEUP_SECONDS))

    async def _drain(self) -> None:
        while True:
            self._admit_waiters()
            if not self._waiters:
                return
            await asyncio.sleep(self._next_delay())
