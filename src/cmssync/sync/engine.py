"""Sync engine: wires the CMS client, syncers and runner from configuration."""

from __future__ import annotations

import asyncio
from enum import StrEnum
from typing import TYPE_CHECKING, Callable

import structlog

from cmssync.sync.runner import SyncRunner, SyncStats
from cmssync.sync.syncers import ContentSyncer, PageSyncer

if TYPE_CHECKING:
    from cmssync.config import ApiConfig, AppConfig
    from cmssync.storage.database import Database
    from cmssync.sync.client import CmsClient

log = structlog.get_logger(__name__)


class EngineState(StrEnum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


class SyncEngine:
    """Runs sync cycles against the configured CMS instance and records them."""

    def __init__(
        self,
        config: AppConfig,
        db: Database,
        *,
        client_factory: Callable[[ApiConfig], CmsClient] | None = None,
    ) -> None:
        self._config = config
        self._db = db
        self._client_factory = client_factory
        self._state = EngineState.IDLE
        self._lock = asyncio.Lock()

    @property
    def state(self) -> EngineState:
        return self._state

    async def run_sync(self) -> SyncStats:
        """Run a sync cycle. Raises if already syncing."""
        if self._lock.locked():
            raise RuntimeError("Sync already in progress")

        async with self._lock:
            self._state = EngineState.SYNCING
            try:
                stats = await self._do_sync()
                self._state = EngineState.IDLE
                return stats
            except Exception:
                self._state = EngineState.ERROR
                raise

    async def _do_sync(self) -> SyncStats:
        languages = self._config.sync.languages
        channels = self._config.sync.channels
        log.info("sync_start", languages=languages, channels=channels)

        run = await self._db.start_sync_run(languages=languages)

        try:
            async with self._create_client() as client:
                page_size = self._config.api.page_size
                content_syncer = ContentSyncer(client, self._db, page_size=page_size)
                page_syncer = PageSyncer(client, self._db, page_size=page_size)
                runner = SyncRunner(
                    content_syncer,
                    page_syncer,
                    client,
                    self._db,
                    languages=languages,
                    channels=channels,
                )
                stats = await runner.run()
                stats.items_synced = content_syncer.synced
                stats.pages_synced = page_syncer.synced

            await self._db.finish_sync_run(run.id, status="completed", stats_json=stats.to_json())
            log.info("sync_completed", stats=stats.to_json())
            return stats

        except Exception as exc:
            await self._db.finish_sync_run(run.id, status="failed", error_message=str(exc))
            log.error("sync_failed", error=str(exc))
            raise

    def _create_client(self) -> CmsClient:
        if self._client_factory:
            return self._client_factory(self._config.api)
        from cmssync.sync.client import CmsClient

        return CmsClient(self._config.api)
