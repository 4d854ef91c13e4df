"""Incremental sync loop over languages and sitemap channels."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any, Protocol

import structlog

from cmssync.storage.models import SyncState

log = structlog.get_logger(__name__)


class TokenSyncer(Protocol):
    async def sync(self, language_code: str, token: int) -> int: ...


class SitemapFetcher(Protocol):
    async def get_sitemap_flat(self, channel_name: str, language_code: str) -> dict[str, Any]: ...


class SyncStateStore(Protocol):
    async def get_sync_state(self, language_code: str) -> SyncState | None: ...

    async def save_sync_state(self, language_code: str, state: SyncState) -> None: ...

    async def save_sitemap(
        self, channel_name: str, language_code: str, sitemap: dict[str, Any]
    ) -> None: ...


@dataclass
class SyncStats:
    languages: int = 0
    languages_changed: int = 0
    items_synced: int = 0
    pages_synced: int = 0
    sitemaps_refreshed: int = 0

    def to_json(self) -> str:
        return json.dumps(asdict(self))


class SyncRunner:
    """Runs one incremental pass over every configured language.

    Languages are handled strictly one after another, in configured order.
    For each one the stored tokens are handed to the content and page syncers;
    if either token moved, the sitemap of every channel is fetched again and
    replaces the stored snapshot. The new tokens are saved at the end of the
    language pass whether or not they changed.

    Nothing is caught here: a failing collaborator aborts the run, leaving the
    languages already processed with their state saved and the rest untouched.
    """

    def __init__(
        self,
        content_syncer: TokenSyncer,
        page_syncer: TokenSyncer,
        sitemap_fetcher: SitemapFetcher,
        store: SyncStateStore,
        *,
        languages: list[str],
        channels: list[str],
    ) -> None:
        self._content_syncer = content_syncer
        self._page_syncer = page_syncer
        self._sitemap_fetcher = sitemap_fetcher
        self._store = store
        self._languages = list(languages)
        self._channels = list(channels)

    async def run(self) -> SyncStats:
        stats = SyncStats()
        for language_code in self._languages:
            await self._sync_language(language_code, stats)
        return stats

    async def _sync_language(self, language_code: str, stats: SyncStats) -> None:
        lang_log = log.bind(language=language_code)
        lang_log.info("sync_language_start")

        state = await self._store.get_sync_state(language_code)
        if state is None:
            state = SyncState(item_token=0, page_token=0)

        new_item_token = await self._content_syncer.sync(language_code, state.item_token)
        new_page_token = await self._page_syncer.sync(language_code, state.page_token)

        if new_item_token != state.item_token or new_page_token != state.page_token:
            # Anything changed: pull every channel's sitemap down again.
            for channel_name in self._channels:
                sitemap = await self._sitemap_fetcher.get_sitemap_flat(channel_name, language_code)
                await self._store.save_sitemap(channel_name, language_code, sitemap)
                stats.sitemaps_refreshed += 1
                lang_log.info("sitemap_updated", channel=channel_name, entries=len(sitemap))
            stats.languages_changed += 1

        state.item_token = new_item_token
        state.page_token = new_page_token
        await self._store.save_sync_state(language_code, state)
        stats.languages += 1

        lang_log.info(
            "sync_language_completed",
            item_token=new_item_token,
            page_token=new_page_token,
        )
