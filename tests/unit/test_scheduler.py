import asyncio

import pytest

from pubmed_bot.errors import APIError
from pubmed_bot.scheduler import ResearchScheduler


class FlakyHandler:
    def __init__(self) -> None:
        self.calls = 0

    async def post_research(self, topic: str | None = None) -> bool:
        self.calls += 1
        if self.calls == 1:
            raise APIError("upstream unavailable")
        return True


@pytest.mark.anyio
async def test_scheduler_keeps_running_after_failures() -> None:
    handler = FlakyHandler()
    scheduler = ResearchScheduler(handler, interval_seconds=0.01)

    scheduler.start()
    for _ in range(100):
        if handler.calls >= 3:
            break
        await asyncio.sleep(0.01)
    assert scheduler.running
    await scheduler.stop()

    assert handler.calls >= 3
    assert not scheduler.running


@pytest.mark.anyio
async def test_zero_interval_disables_scheduler() -> None:
    scheduler = ResearchScheduler(FlakyHandler(), interval_seconds=0)

    scheduler.start()

    assert not scheduler.running
    await scheduler.stop()
