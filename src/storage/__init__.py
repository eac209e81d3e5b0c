"""
Health Storage Engine

Consistency layer over MongoDB for county health policy, testing sites,
test results and per-user encrypted history.

Public API:
- get_storage_adapter / reset_storage_adapter: process-wide StorageAdapter
- StorageAdapter: cross-collection operations (guarded deletes, rule
  mutations with status invalidation, lab tests, manual-test review,
  user-data erasure)
- StorageConfig: settings loaded from the environment
- DatabaseClient / Collections: connection, collection handles, indexes

Usage:
    from src.storage import get_storage_adapter

    # Seeds app versions and watches configs as the environment says
    storage = get_storage_adapter(listener=config_cache)

    counties = storage.repos.counties.find_all()
    storage.delete_county(county_id)
"""

from .adapter import StorageAdapter
from .audit import AuditLogger, LoggingAuditLogger
from .config import StorageConfig, get_storage_adapter, reset_storage_adapter
from .database import COLLECTION_INDEXES, Collections, DatabaseClient
from .integrity import DEPENDENCY_CHECKLIST, EntityKind
from .watcher import ConfigsListener, ConfigWatcher

__all__ = [
    "StorageAdapter",
    "StorageConfig",
    "get_storage_adapter",
    "reset_storage_adapter",
    "DatabaseClient",
    "Collections",
    "COLLECTION_INDEXES",
    "DEPENDENCY_CHECKLIST",
    "EntityKind",
    "AuditLogger",
    "LoggingAuditLogger",
    "ConfigsListener",
    "ConfigWatcher",
]
