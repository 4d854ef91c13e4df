"""cmssync storage layer — async SQLite database for mirrored content and sync state."""

from cmssync.storage.database import Database
from cmssync.storage.models import (
    ContentItem,
    Page,
    Sitemap,
    SyncRun,
    SyncState,
)

__all__ = [
    "ContentItem",
    "Database",
    "Page",
    "Sitemap",
    "SyncRun",
    "SyncState",
]
