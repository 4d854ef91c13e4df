"""Content item and page syncers.

Each syncer pages through a sync endpoint starting at a stored token, mirrors
every returned document into the store, and returns the token the next run
should start from.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from cmssync.storage.database import Database
    from cmssync.sync.client import CmsClient, SyncBatch

log = structlog.get_logger(__name__)

# Item/page ``properties.state`` value the CMS uses for deleted documents.
STATE_DELETED = 3


def is_deleted(raw: dict[str, Any]) -> bool:
    props = raw.get("properties") or {}
    return props.get("state") == STATE_DELETED


class _TokenSyncer:
    """Shared paging loop; subclasses supply fetch/save/delete."""

    kind = "document"

    def __init__(self, client: CmsClient, store: Database, *, page_size: int = 100) -> None:
        self._client = client
        self._store = store
        self._page_size = page_size
        self.synced = 0

    async def _fetch(self, language_code: str, token: int) -> SyncBatch:
        raise NotImplementedError

    async def _save(self, raw: dict[str, Any], language_code: str) -> None:
        raise NotImplementedError

    async def _delete(self, raw: dict[str, Any], language_code: str) -> None:
        raise NotImplementedError

    async def sync(self, language_code: str, token: int) -> int:
        """Pull every change after *token* and return the advanced token."""
        count = 0
        while True:
            batch = await self._fetch(language_code, token)
            if not batch.items:
                break

            for raw in batch.items:
                if is_deleted(raw):
                    await self._delete(raw, language_code)
                else:
                    await self._save(raw, language_code)
            count += len(batch.items)

            # Tokens only move forward; a stalled or lower token ends the pass.
            if batch.sync_token <= token:
                break
            token = batch.sync_token

        self.synced += count
        if count:
            log.info(f"{self.kind}s_synced", language=language_code, count=count, token=token)
        return token


class ContentSyncer(_TokenSyncer):
    """Mirrors content items into the store."""

    kind = "item"

    async def _fetch(self, language_code: str, token: int) -> SyncBatch:
        return await self._client.get_sync_items(language_code, token, self._page_size)

    async def _save(self, raw: dict[str, Any], language_code: str) -> None:
        await self._store.save_content_item(raw, language_code)

    async def _delete(self, raw: dict[str, Any], language_code: str) -> None:
        await self._store.delete_content_item(int(raw["contentID"]), language_code)


class PageSyncer(_TokenSyncer):
    """Mirrors pages into the store."""

    kind = "page"

    async def _fetch(self, language_code: str, token: int) -> SyncBatch:
        return await self._client.get_sync_pages(language_code, token, self._page_size)

    async def _save(self, raw: dict[str, Any], language_code: str) -> None:
        await self._store.save_page(raw, language_code)

    async def _delete(self, raw: dict[str, Any], language_code: str) -> None:
        await self._store.delete_page(int(raw["pageID"]), language_code)
