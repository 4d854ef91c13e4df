"""Async SQLite database for the cmssync storage layer."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from cmssync.storage.models import (
    ContentItem,
    Page,
    Sitemap,
    SyncRun,
    SyncState,
)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS sync_state (
    language_code TEXT PRIMARY KEY,
    item_token INTEGER NOT NULL DEFAULT 0,
    page_token INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS content_item (
    content_id INTEGER NOT NULL,
    language_code TEXT NOT NULL,
    reference_name TEXT,
    definition_name TEXT,
    version_id INTEGER,
    item_json TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (content_id, language_code)
);

CREATE INDEX IF NOT EXISTS ix_content_item_reference
    ON content_item(language_code, reference_name);

CREATE TABLE IF NOT EXISTS page (
    page_id INTEGER NOT NULL,
    language_code TEXT NOT NULL,
    name TEXT,
    path TEXT,
    version_id INTEGER,
    page_json TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (page_id, language_code)
);

CREATE TABLE IF NOT EXISTS sitemap (
    channel_name TEXT NOT NULL,
    language_code TEXT NOT NULL,
    sitemap_json TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (channel_name, language_code)
);

CREATE TABLE IF NOT EXISTS sync_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    languages TEXT NOT NULL,
    status TEXT NOT NULL CHECK(status IN ('running', 'completed', 'failed')),
    stats_json TEXT,
    error_message TEXT
);
"""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Database:
    """Async SQLite database wrapper for cmssync.

    Also serves as the state store of the sync loop: it persists per-language
    sync tokens and sitemap snapshots next to the mirrored items and pages.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._conn: aiosqlite.Connection | None = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            msg = "Database not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._conn

    async def connect(self) -> None:
        self._conn = await aiosqlite.connect(self.path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.executescript(_SCHEMA)
        await self._conn.commit()

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    # -- sync_state -----------------------------------------------------------

    async def get_sync_state(self, language_code: str) -> SyncState | None:
        cur = await self.conn.execute(
            "SELECT * FROM sync_state WHERE language_code = ?", (language_code,)
        )
        row = await cur.fetchone()
        return self._row_to_sync_state(row) if row else None

    async def save_sync_state(self, language_code: str, state: SyncState) -> None:
        await self.conn.execute(
            """
            INSERT INTO sync_state (language_code, item_token, page_token, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (language_code) DO UPDATE SET
                item_token = excluded.item_token,
                page_token = excluded.page_token,
                updated_at = excluded.updated_at
            """,
            (language_code, state.item_token, state.page_token, _now_iso()),
        )
        await self.conn.commit()

    async def list_sync_states(self) -> dict[str, SyncState]:
        cur = await self.conn.execute("SELECT * FROM sync_state ORDER BY language_code")
        rows = await cur.fetchall()
        return {r["language_code"]: self._row_to_sync_state(r) for r in rows}

    # -- sitemap --------------------------------------------------------------

    async def save_sitemap(
        self, channel_name: str, language_code: str, sitemap: dict[str, Any]
    ) -> None:
        """Store a sitemap snapshot, replacing any previous one for the same key."""
        await self.conn.execute(
            """
            INSERT INTO sitemap (channel_name, language_code, sitemap_json, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (channel_name, language_code) DO UPDATE SET
                sitemap_json = excluded.sitemap_json,
                updated_at = excluded.updated_at
            """,
            (channel_name, language_code, json.dumps(sitemap), _now_iso()),
        )
        await self.conn.commit()

    async def get_sitemap(self, channel_name: str, language_code: str) -> Sitemap | None:
        cur = await self.conn.execute(
            "SELECT * FROM sitemap WHERE channel_name = ? AND language_code = ?",
            (channel_name, language_code),
        )
        row = await cur.fetchone()
        return self._row_to_sitemap(row) if row else None

    # -- content_item ---------------------------------------------------------

    async def save_content_item(self, raw: dict[str, Any], language_code: str) -> ContentItem:
        props = raw.get("properties") or {}
        cur = await self.conn.execute(
            """
            INSERT INTO content_item
                (content_id, language_code, reference_name, definition_name, version_id, item_json, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (content_id, language_code) DO UPDATE SET
                reference_name = excluded.reference_name,
                definition_name = excluded.definition_name,
                version_id = excluded.version_id,
                item_json = excluded.item_json,
                updated_at = excluded.updated_at
            RETURNING *
            """,
            (
                int(raw["contentID"]),
                language_code,
                props.get("referenceName"),
                props.get("definitionName"),
                props.get("versionID"),
                json.dumps(raw),
                _now_iso(),
            ),
        )
        row = await cur.fetchone()
        await self.conn.commit()
        return self._row_to_content_item(row)

    async def delete_content_item(self, content_id: int, language_code: str) -> bool:
        cur = await self.conn.execute(
            "DELETE FROM content_item WHERE content_id = ? AND language_code = ?",
            (content_id, language_code),
        )
        await self.conn.commit()
        return cur.rowcount > 0

    async def get_content_item(self, content_id: int, language_code: str) -> ContentItem | None:
        cur = await self.conn.execute(
            "SELECT * FROM content_item WHERE content_id = ? AND language_code = ?",
            (content_id, language_code),
        )
        row = await cur.fetchone()
        return self._row_to_content_item(row) if row else None

    async def count_content_items(self, language_code: str | None = None) -> int:
        if language_code:
            cur = await self.conn.execute(
                "SELECT COUNT(*) FROM content_item WHERE language_code = ?", (language_code,)
            )
        else:
            cur = await self.conn.execute("SELECT COUNT(*) FROM content_item")
        row = await cur.fetchone()
        return row[0]

    # -- page -----------------------------------------------------------------

    async def save_page(self, raw: dict[str, Any], language_code: str) -> Page:
        props = raw.get("properties") or {}
        cur = await self.conn.execute(
            """
            INSERT INTO page (page_id, language_code, name, path, version_id, page_json, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (page_id, language_code) DO UPDATE SET
                name = excluded.name,
                path = excluded.path,
                version_id = excluded.version_id,
                page_json = excluded.page_json,
                updated_at = excluded.updated_at
            RETURNING *
            """,
            (
                int(raw["pageID"]),
                language_code,
                raw.get("name"),
                raw.get("path"),
                props.get("versionID"),
                json.dumps(raw),
                _now_iso(),
            ),
        )
        row = await cur.fetchone()
        await self.conn.commit()
        return self._row_to_page(row)

    async def delete_page(self, page_id: int, language_code: str) -> bool:
        cur = await self.conn.execute(
            "DELETE FROM page WHERE page_id = ? AND language_code = ?",
            (page_id, language_code),
        )
        await self.conn.commit()
        return cur.rowcount > 0

    async def get_page(self, page_id: int, language_code: str) -> Page | None:
        cur = await self.conn.execute(
            "SELECT * FROM page WHERE page_id = ? AND language_code = ?",
            (page_id, language_code),
        )
        row = await cur.fetchone()
        return self._row_to_page(row) if row else None

    async def count_pages(self, language_code: str | None = None) -> int:
        if language_code:
            cur = await self.conn.execute(
                "SELECT COUNT(*) FROM page WHERE language_code = ?", (language_code,)
            )
        else:
            cur = await self.conn.execute("SELECT COUNT(*) FROM page")
        row = await cur.fetchone()
        return row[0]

    # -- sync_runs ------------------------------------------------------------

    async def start_sync_run(self, *, languages: list[str]) -> SyncRun:
        cur = await self.conn.execute(
            """
            INSERT INTO sync_runs (started_at, languages, status)
            VALUES (?, ?, 'running')
            RETURNING *
            """,
            (_now_iso(), ",".join(languages)),
        )
        row = await cur.fetchone()
        await self.conn.commit()
        return self._row_to_sync_run(row)

    async def finish_sync_run(
        self,
        run_id: int,
        *,
        status: str,
        stats_json: str | None = None,
        error_message: str | None = None,
    ) -> SyncRun:
        cur = await self.conn.execute(
            """
            UPDATE sync_runs SET finished_at = ?, status = ?, stats_json = ?, error_message = ?
            WHERE id = ?
            RETURNING *
            """,
            (_now_iso(), status, stats_json, error_message, run_id),
        )
        row = await cur.fetchone()
        await self.conn.commit()
        return self._row_to_sync_run(row)

    async def list_sync_runs(self, *, limit: int = 20) -> list[SyncRun]:
        cur = await self.conn.execute(
            "SELECT * FROM sync_runs ORDER BY id DESC LIMIT ?", (limit,)
        )
        rows = await cur.fetchall()
        return [self._row_to_sync_run(r) for r in rows]

    async def get_last_sync_run(self) -> SyncRun | None:
        runs = await self.list_sync_runs(limit=1)
        return runs[0] if runs else None

    # -- maintenance ----------------------------------------------------------

    async def clear(self) -> None:
        """Drop all mirrored data and sync tokens so the next run starts from zero."""
        for table in ("content_item", "page", "sitemap", "sync_state"):
            await self.conn.execute(f"DELETE FROM {table}")  # noqa: S608
        await self.conn.commit()

    # -- row → model helpers --------------------------------------------------

    @staticmethod
    def _row_to_sync_state(row: aiosqlite.Row) -> SyncState:
        return SyncState(item_token=row["item_token"], page_token=row["page_token"])

    @staticmethod
    def _row_to_sitemap(row: aiosqlite.Row) -> Sitemap:
        return Sitemap(
            channel_name=row["channel_name"],
            language_code=row["language_code"],
            pages=json.loads(row["sitemap_json"]),
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_content_item(row: aiosqlite.Row) -> ContentItem:
        return ContentItem(
            content_id=row["content_id"],
            language_code=row["language_code"],
            reference_name=row["reference_name"],
            definition_name=row["definition_name"],
            version_id=row["version_id"],
            data=json.loads(row["item_json"]),
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_page(row: aiosqlite.Row) -> Page:
        return Page(
            page_id=row["page_id"],
            language_code=row["language_code"],
            name=row["name"],
            path=row["path"],
            version_id=row["version_id"],
            data=json.loads(row["page_json"]),
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_sync_run(row: aiosqlite.Row) -> SyncRun:
        return SyncRun(
            id=row["id"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            languages=row["languages"],
            status=row["status"],
            stats_json=row["stats_json"],
            error_message=row["error_message"],
        )
