"""Content-addressed SQLite cache store.

This module provides persistent storage for:
- Snapshots of fetched and extracted pages, keyed by a deterministic hash
- Search responses with a per-entry TTL
- Schema migrations applied on open
- Purge strategies: expiry, age, URL substring, and LRU by count
"""

from src.store.errors import (
    CacheConnectionError,
    CacheError,
    CacheMissError,
    CacheQueryError,
    InvalidHashError,
    MigrationError,
)
from src.store.hash import compute_cache_key, compute_search_key, is_valid_cache_key
from src.store.metrics import MetricsRecorder, NullMetricsRecorder, StoreMetrics
from src.store.migrations import CURRENT_VERSION, MIGRATIONS, MigrationManager
from src.store.models import SearchCacheMeta, Snapshot, SnapshotMode
from src.store.store import CacheStore


__all__ = [
    # Store
    "CacheStore",
    # Models
    "Snapshot",
    "SnapshotMode",
    "SearchCacheMeta",
    # Keys
    "compute_cache_key",
    "compute_search_key",
    "is_valid_cache_key",
    # Migrations
    "CURRENT_VERSION",
    "MIGRATIONS",
    "MigrationManager",
    # Metrics
    "MetricsRecorder",
    "NullMetricsRecorder",
    "StoreMetrics",
    # Errors
    "CacheError",
    "CacheConnectionError",
    "CacheMissError",
    "CacheQueryError",
    "InvalidHashError",
    "MigrationError",
]
