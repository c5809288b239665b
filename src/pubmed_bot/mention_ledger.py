from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict

from .errors import ValidationError


logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000
DEFAULT_RETENTION_SECONDS = 7 * 24 * 60 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 24 * 60 * 60
EVICTION_FRACTION = 0.1


@dataclass(frozen=True)
class MentionRecord:
    mention_id: str
    processed: bool
    processed_at: float


class MentionLedger:
    """Remembers which inbound mentions were already handled.

    The ledger is bounded two ways. When an insert finds it full, the oldest
    tenth of the entries is evicted in one pass. Entries older than the
    retention window read as unprocessed: they are deleted when read, and a
    periodic sweep removes the rest.

    All methods are synchronous and run on the event loop thread, so
    ``check_and_mark`` cannot interleave with another caller.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._retention_seconds = retention_seconds
        self._sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._records: Dict[str, MentionRecord] = {}
        self._last_sweep = clock()
        self._sweep_task: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, mention_id: object) -> bool:
        return mention_id in self._records

    @property
    def capacity(self) -> int:
        return self._capacity

    def is_processed(self, mention_id: str) -> bool:
        mention_id = _require_id(mention_id)
        record = self._records.get(mention_id)
        if record is None:
            return False
        if self._is_expired(record, self._clock()):
            del self._records[mention_id]
            logger.debug("mention expired id=%s", mention_id)
            return False
        return record.processed

    def mark_processed(self, mention_id: str) -> None:
        mention_id = _require_id(mention_id)
        if self.is_processed(mention_id):
            return
        if len(self._records) >= self._capacity:
            self._evict_oldest()
        self._records[mention_id] = MentionRecord(
            mention_id=mention_id,
            processed=True,
            processed_at=self._clock(),
        )
        logger.debug("mention marked id=%s size=%s", mention_id, len(self._records))

    def check_and_mark(self, mention_id: str) -> bool:
        """Mark the mention and return whether it had already been processed."""
        if self.is_processed(mention_id):
            logger.info("mention already processed id=%s", mention_id)
            return True
        self.mark_processed(mention_id)
        return False

    def sweep_expired(self) -> int:
        now = self._clock()
        if now - self._last_sweep < self._sweep_interval_seconds:
            return 0
        self._last_sweep = now
        try:
            expired = [
                mention_id
                for mention_id, record in self._records.items()
                if self._is_expired(record, now)
            ]
            for mention_id in expired:
                del self._records[mention_id]
        except Exception:
            logger.exception("mention sweep failed")
            return 0
        if expired:
            logger.info(
                "mentions swept removed=%s remaining=%s", len(expired), len(self._records)
            )
        return len(expired)

    def start(self) -> None:
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._run_sweeps())

    async def stop(self) -> None:
        task = self._sweep_task
        self._sweep_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run_sweeps(self) -> None:
        while True:
            due_in = self._last_sweep + self._sweep_interval_seconds - self._clock()
            await asyncio.sleep(max(due_in, 0.001))
            self.sweep_expired()

    def _is_expired(self, record: MentionRecord, now: float) -> bool:
        return now - record.processed_at > self._retention_seconds

    def _evict_oldest(self) -> None:
        count = max(1, math.ceil(self._capacity * EVICTION_FRACTION))
        try:
            oldest = sorted(self._records.values(), key=lambda record: record.processed_at)
            for record in oldest[:count]:
                self._records.pop(record.mention_id, None)
        except Exception:
            logger.exception("mention eviction failed")
            return
        logger.debug(
            "mentions evicted count=%s remaining=%s", min(count, len(oldest)), len(self._records)
        )


def _require_id(mention_id: str) -> str:
    if not isinstance(mention_id, str) or not mention_id.strip():
        raise ValidationError("Invalid mention ID")
    return mention_id.strip()
