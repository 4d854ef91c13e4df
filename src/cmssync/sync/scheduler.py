"""Periodic sync for ``cmssync watch``."""

from __future__ import annotations

import asyncio
import contextlib
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from cmssync.sync.engine import SyncEngine

log = structlog.get_logger(__name__)


class SyncScheduler:
    """Runs the engine once right away, then every *interval_minutes* until stopped.

    A failed run is logged and the schedule carries on; the next run resumes
    from whatever tokens the failed one left behind.
    """

    def __init__(self, engine: SyncEngine, interval_minutes: int = 30) -> None:
        self._engine = engine
        self._interval = interval_minutes * 60  # seconds
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._last_sync_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_sync_at(self) -> datetime | None:
        """When the most recent successful run finished."""
        return self._last_sync_at

    async def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        log.info("scheduler_started", interval_minutes=self._interval // 60)

    async def stop(self) -> None:
        """Stop the loop, letting a run in progress finish first."""
        if not self.is_running:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        log.info("scheduler_stopped")

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self._engine.run_sync()
                self._last_sync_at = datetime.now(UTC)
            except Exception as exc:
                log.error("scheduled_sync_failed", error=str(exc))

            # Sleep until the next run, waking early on stop.
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
