"""Tests for the SyncEngine — wiring, run bookkeeping and state transitions."""

from __future__ import annotations

import asyncio
import json

import pytest
import pytest_asyncio
from pydantic import SecretStr

from cmssync.config import ApiConfig, AppConfig, SyncConfig
from cmssync.storage.database import Database
from cmssync.storage.models import SyncState
from cmssync.sync.client import CmsAPIError, SyncBatch
from cmssync.sync.engine import EngineState, SyncEngine

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _item(content_id: int, state: int = 2) -> dict:
    return {"contentID": content_id, "properties": {"state": state, "versionID": 1}}


def _page(page_id: int) -> dict:
    return {"pageID": page_id, "name": f"page-{page_id}", "properties": {"state": 2}}


class MockClient:
    """Mock client implementing the CmsClient surface used by the engine."""

    def __init__(self, items=None, pages=None, sitemaps=None):
        # {(language, token): SyncBatch}
        self.items = items or {}
        self.pages = pages or {}
        self.sitemaps = sitemaps or {}
        self.sitemap_calls: list[tuple[str, str]] = []
        self.page_sizes: list[int] = []
        self.entered = False
        self.exited = False

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, *exc):
        self.exited = True

    async def get_sync_items(self, language_code, sync_token, page_size):
        self.page_sizes.append(page_size)
        return self.items.get((language_code, sync_token), SyncBatch(sync_token=sync_token))

    async def get_sync_pages(self, language_code, sync_token, page_size):
        return self.pages.get((language_code, sync_token), SyncBatch(sync_token=sync_token))

    async def get_sitemap_flat(self, channel_name, language_code):
        self.sitemap_calls.append((channel_name, language_code))
        return self.sitemaps.get((channel_name, language_code), {})


def _make_config(**sync_kw) -> AppConfig:
    return AppConfig(
        api=ApiConfig(guid="abc123-u", api_key=SecretStr("test"), page_size=50),
        sync=SyncConfig(**sync_kw),
    )


def _mock_factory(client):
    """Return a factory callable that ignores config and returns the mock client."""
    def factory(config):
        return client
    return factory


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture()
async def db(tmp_path):
    d = Database(tmp_path / "test.db")
    await d.connect()
    yield d
    await d.close()


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_first_sync_mirrors_content_and_sitemap(db):
    """A first run stores items, pages, sitemap and the new tokens."""
    client = MockClient(
        items={("en-us", 0): SyncBatch(sync_token=5, items=[_item(1), _item(2)])},
        pages={("en-us", 0): SyncBatch(sync_token=3, items=[_page(10)])},
        sitemaps={("website", "en-us"): {"/home": {"pageID": 10}}},
    )
    engine = SyncEngine(_make_config(), db, client_factory=_mock_factory(client))

    stats = await engine.run_sync()

    assert stats.languages == 1
    assert stats.languages_changed == 1
    assert stats.items_synced == 2
    assert stats.pages_synced == 1
    assert stats.sitemaps_refreshed == 1

    assert await db.get_sync_state("en-us") == SyncState(item_token=5, page_token=3)
    assert await db.count_content_items("en-us") == 2
    assert await db.count_pages("en-us") == 1
    assert (await db.get_sitemap("website", "en-us")).pages == {"/home": {"pageID": 10}}

    assert client.entered and client.exited
    assert set(client.page_sizes) == {50}
    assert engine.state == EngineState.IDLE


@pytest.mark.asyncio
async def test_sync_run_recorded_as_completed(db):
    engine = SyncEngine(
        _make_config(languages=["en-us", "fr-ca"]),
        db,
        client_factory=_mock_factory(MockClient()),
    )

    stats = await engine.run_sync()

    run = await db.get_last_sync_run()
    assert run.status == "completed"
    assert run.languages == "en-us,fr-ca"
    assert run.finished_at is not None
    assert json.loads(run.stats_json) == json.loads(stats.to_json())


@pytest.mark.asyncio
async def test_incremental_sync_resumes_from_saved_tokens(db):
    """Stored tokens are passed on, and an unchanged run skips the sitemap."""
    await db.save_sync_state("en-us", SyncState(item_token=9, page_token=4))
    client = MockClient()
    engine = SyncEngine(_make_config(), db, client_factory=_mock_factory(client))

    stats = await engine.run_sync()

    assert client.sitemap_calls == []
    assert stats.languages_changed == 0
    assert await db.get_sync_state("en-us") == SyncState(item_token=9, page_token=4)


@pytest.mark.asyncio
async def test_sync_error_state(db):
    """Engine should transition to ERROR state and record a failed run."""

    class FailClient(MockClient):
        async def get_sync_items(self, language_code, sync_token, page_size):
            raise CmsAPIError("CMS API error: 500 boom")

    engine = SyncEngine(_make_config(), db, client_factory=_mock_factory(FailClient()))

    with pytest.raises(CmsAPIError, match="500"):
        await engine.run_sync()

    assert engine.state == EngineState.ERROR
    run = await db.get_last_sync_run()
    assert run.status == "failed"
    assert "500" in run.error_message
    assert await db.get_sync_state("en-us") is None


@pytest.mark.asyncio
async def test_engine_recovers_after_error(db):
    calls = 0

    class FlakyClient(MockClient):
        async def get_sync_items(self, language_code, sync_token, page_size):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise CmsAPIError("Network error talking to CMS")
            return await super().get_sync_items(language_code, sync_token, page_size)

    engine = SyncEngine(_make_config(), db, client_factory=_mock_factory(FlakyClient()))

    with pytest.raises(CmsAPIError):
        await engine.run_sync()
    assert engine.state == EngineState.ERROR

    await engine.run_sync()
    assert engine.state == EngineState.IDLE
    runs = await db.list_sync_runs()
    assert [r.status for r in runs] == ["completed", "failed"]


@pytest.mark.asyncio
async def test_concurrent_sync_blocked(db):
    """Concurrent sync attempts should raise."""
    syncing = asyncio.Event()
    proceed = asyncio.Event()

    class SlowClient(MockClient):
        async def get_sync_items(self, language_code, sync_token, page_size):
            syncing.set()
            await proceed.wait()
            return SyncBatch(sync_token=sync_token)

    engine = SyncEngine(_make_config(), db, client_factory=_mock_factory(SlowClient()))

    task = asyncio.create_task(engine.run_sync())
    await syncing.wait()
    assert engine.state == EngineState.SYNCING

    with pytest.raises(RuntimeError, match="already in progress"):
        await engine.run_sync()

    proceed.set()
    await task

