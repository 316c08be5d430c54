"""Cache maintenance operations: lookup by hash, purge, and stats."""

import structlog
from pydantic import BaseModel, ConfigDict

from src.store.errors import CacheMissError, InvalidHashError
from src.store.hash import is_valid_cache_key
from src.store.metrics import StoreMetrics
from src.store.models import Snapshot
from src.store.store import CacheStore
from src.web.errors import InvalidInputError


logger = structlog.get_logger()


class PurgeResult(BaseModel):
    """Rows removed per strategy and the snapshots left afterwards."""

    model_config = ConfigDict(frozen=True)

    expired: int = 0
    older_than: int = 0
    domain: int = 0
    lru: int = 0
    search_expired: int = 0
    remaining: int = 0

    @property
    def total(self) -> int:
        """Snapshots removed across all strategies."""
        return self.expired + self.older_than + self.domain + self.lru


async def get_cached(store: CacheStore, key: str) -> Snapshot:
    """Fetch a snapshot by hash, expired or not.

    Args:
        store: Connected cache store.
        key: 64-character hex cache key.

    Returns:
        The stored snapshot.

    Raises:
        InvalidHashError: If the key is not a valid cache key.
        CacheMissError: If no snapshot has that key.
    """
    if not is_valid_cache_key(key):
        raise InvalidHashError(key)

    snapshot = await store.get(key)
    if snapshot is None:
        raise CacheMissError(key)
    return snapshot


async def purge_cache(
    store: CacheStore,
    older_than_days: int | None = None,
    domain: str | None = None,
    max_entries: int | None = None,
) -> PurgeResult:
    """Apply the requested purge strategies in order.

    An age purge also drops expired snapshots and expired search entries.

    Args:
        store: Connected cache store.
        older_than_days: Remove snapshots fetched more than this many days ago.
        domain: Remove snapshots whose URL contains this literal substring.
        max_entries: Keep at most this many snapshots, evicting the oldest.

    Returns:
        Counts per strategy.

    Raises:
        InvalidInputError: If no criterion is given or one is out of range.
    """
    if older_than_days is None and not domain and max_entries is None:
        msg = "at least one of older_than_days, domain, max_entries is required"
        raise InvalidInputError(msg)
    if older_than_days is not None and older_than_days < 0:
        msg = f"older_than_days must be non-negative, got {older_than_days}"
        raise InvalidInputError(msg)
    if max_entries is not None and max_entries < 0:
        msg = f"max_entries must be non-negative, got {max_entries}"
        raise InvalidInputError(msg)

    counts: dict[str, int] = {}
    if older_than_days is not None:
        counts["older_than"] = await store.purge_older_than(older_than_days)
        counts["expired"] = await store.purge_expired()
        counts["search_expired"] = await store.purge_expired_search()
    if domain:
        counts["domain"] = await store.purge_by_domain(domain)
    if max_entries is not None:
        counts["lru"] = await store.purge_lru(max_entries)

    result = PurgeResult(remaining=await store.count(), **counts)
    logger.info("cache_purged", component="cache_ops", **result.model_dump())
    return result


async def cache_stats(store: CacheStore) -> dict[str, object]:
    """Summarize the cache.

    Args:
        store: Connected cache store.

    Returns:
        Row counts per table, schema version, and in-process store metrics.
    """
    return {
        "tables": await store.get_stats(),
        "schema_version": await store.get_schema_version(),
        "metrics": StoreMetrics.get_instance().to_dict(),
    }
