"""Pydantic models for the cmssync storage layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

SyncStatus = Literal["running", "completed", "failed"]


class SyncState(BaseModel):
    """Per-language sync tokens.

    Tokens are opaque to the sync loop; they are only compared for equality
    and handed back to the API on the next run.
    """

    item_token: int = 0
    page_token: int = 0


class ContentItem(BaseModel):
    """A content item mirrored from the CMS, kept as the raw API document."""

    content_id: int
    language_code: str
    reference_name: str | None = None
    definition_name: str | None = None
    version_id: int | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime | None = None


class Page(BaseModel):
    """A page mirrored from the CMS, kept as the raw API document."""

    page_id: int
    language_code: str
    name: str | None = None
    path: str | None = None
    version_id: int | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime | None = None


class Sitemap(BaseModel):
    """Flattened sitemap snapshot for one channel and language."""

    channel_name: str
    language_code: str
    pages: dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime | None = None


class SyncRun(BaseModel):
    """Record of a single synchronisation run."""

    id: int | None = None
    started_at: datetime
    finished_at: datetime | None = None
    languages: str
    status: SyncStatus
    stats_json: str | None = None
    error_message: str | None = None
