from __future__ import annotations

import asyncio
import logging

from .actions import MentionHandler


logger = logging.getLogger(__name__)


class ResearchScheduler:
    def __init__(self, handler: MentionHandler, interval_seconds: float) -> None:
        self._handler = handler
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._interval_seconds <= 0:
            logger.info("research scheduler disabled")
            return
        if self.running:
            return
        logger.info("starting research scheduler interval_seconds=%s", self._interval_seconds)
        self._task = asyncio.create_task(self.run_forever())

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def run_forever(self) -> None:
        while True:
            await asyncio.sleep(self._interval_seconds)
            try:
                await self._handler.post_research()
            except Exception:
                logger.exception("scheduled research post failed")
