"""Sync module — runner, syncers, engine, scheduler, and the CMS API client."""

from cmssync.sync.engine import EngineState, SyncEngine
from cmssync.sync.runner import SyncRunner, SyncStats
from cmssync.sync.scheduler import SyncScheduler
from cmssync.sync.syncers import ContentSyncer, PageSyncer

__all__ = [
    "ContentSyncer",
    "EngineState",
    "PageSyncer",
    "SyncEngine",
    "SyncRunner",
    "SyncScheduler",
    "SyncStats",
]
