"""SQLite cache store for snapshots and search results.

One sqlite3 connection is owned by a single worker thread; every
statement is submitted to that worker and awaited, so callers see an
asynchronous request/response API while statements execute serialized.
WAL journaling lets readers proceed while a write is in progress.
"""

import asyncio
import sqlite3
import time
import uuid
from collections.abc import Callable, Generator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import timedelta
from functools import partial
from pathlib import Path
from typing import Any, TypeVar

import structlog

from src.store.errors import CacheConnectionError, CacheError, CacheQueryError
from src.store.metrics import MetricsRecorder, StoreMetrics, TransactionContext
from src.store.migrations import CURRENT_VERSION, MigrationManager
from src.store.models import (
    SearchCacheMeta,
    Snapshot,
    to_db_timestamp,
    utc_now,
)


logger = structlog.get_logger()

T = TypeVar("T")

MEMORY_DB = ":memory:"

_SNAPSHOT_COLUMNS = (
    "hash",
    "url",
    "final_url",
    "mode",
    "content_type",
    "status_code",
    "fetched_at",
    "expires_at",
    "etag",
    "last_modified",
    "raw_bytes",
    "raw_truncated",
    "title",
    "markdown",
    "text",
    "links_json",
    "extractor_name",
    "extractor_version",
    "siteconfig_id",
    "extract_cfg_json",
    "headers_json",
    "fetch_ms",
    "extract_ms",
)

_UPSERT_SNAPSHOT_SQL = (
    f"INSERT INTO snapshots ({', '.join(_SNAPSHOT_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _SNAPSHOT_COLUMNS)}) "
    "ON CONFLICT(hash) DO UPDATE SET "
    + ", ".join(f"{c} = excluded.{c}" for c in _SNAPSHOT_COLUMNS if c != "hash")
)


class CacheStore:
    """Content-addressed SQLite store for snapshots and search responses.

    Provides async APIs for lookup, freshness checks, last-write-wins
    upserts, and purge strategies. Uses WAL mode and applies schema
    migrations on connect.
    """

    def __init__(
        self,
        db_path: Path | str,
        run_id: str | None = None,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        """Initialize the cache store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
            run_id: Optional run ID for logging context.
            metrics: Metrics recorder (defaults to StoreMetrics).
        """
        self._db_path = db_path if str(db_path) == MEMORY_DB else Path(db_path)
        self._run_id = run_id or str(uuid.uuid4())
        self._conn: sqlite3.Connection | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._metrics: MetricsRecorder = metrics or StoreMetrics.get_instance()
        self._log = logger.bind(
            component="store",
            run_id=self._run_id,
            db_path=str(self._db_path),
        )

    @property
    def db_path(self) -> Path | str:
        """Get the database path."""
        return self._db_path

    @property
    def is_connected(self) -> bool:
        """Check if connected to database."""
        return self._conn is not None

    async def connect(self) -> None:
        """Open the database on the worker thread and apply migrations.

        Creates the database file and parent directories if they don't exist.

        Raises:
            CacheConnectionError: If the database cannot be opened.
            MigrationError: If a schema migration fails.
        """
        if self._conn is not None:
            return

        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="cache-store"
        )
        try:
            await self._call(self._connect_sync)
        except CacheError:
            self._shutdown_executor()
            raise

    async def close(self) -> None:
        """Close the database connection and stop the worker."""
        if self._executor is None:
            return
        if self._conn is not None:
            await self._call(self._close_sync)
        self._shutdown_executor()

    async def __aenter__(self) -> "CacheStore":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Async context manager exit."""
        await self.close()

    # ===== Worker plumbing =====

    async def _call(self, func: Callable[..., T], *args: Any) -> T:
        """Run a synchronous operation on the database worker.

        Args:
            func: Operation to run.
            *args: Positional arguments for the operation.

        Returns:
            The operation's result.

        Raises:
            CacheConnectionError: If the store is not connected.
            CacheQueryError: If SQLite reports an error.
        """
        if self._executor is None:
            raise CacheConnectionError("Database not connected. Call connect() first.")

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, partial(func, *args))
        except sqlite3.Error as e:
            operation = getattr(func, "__name__", "query").lstrip("_")
            self._log.error("cache_query_failed", op=operation, error=str(e))
            raise CacheQueryError(operation, str(e)) from e

    def _shutdown_executor(self) -> None:
        """Stop the worker thread."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _connect_sync(self) -> None:
        """Open the connection, set pragmas, and migrate (worker thread)."""
        if isinstance(self._db_path, Path):
            self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._log.info("connecting_to_database")

        try:
            conn = sqlite3.connect(str(self._db_path))
        except sqlite3.Error as e:
            raise CacheConnectionError(f"Cannot open {self._db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA temp_store=MEMORY")
        conn.execute("PRAGMA foreign_keys=ON")

        migration_mgr = MigrationManager(conn)
        try:
            old_version = migration_mgr.get_current_version()
            applied = migration_mgr.apply_migrations()
        except Exception:
            conn.close()
            raise

        self._conn = conn
        self._log.info(
            "database_connected",
            old_version=old_version,
            new_version=CURRENT_VERSION,
            migrations_applied=applied,
        )

    def _close_sync(self) -> None:
        """Close the connection (worker thread)."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            self._log.info("database_closed")

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database is connected.

        Returns:
            The database connection.

        Raises:
            CacheConnectionError: If not connected.
        """
        if self._conn is None:
            raise CacheConnectionError("Database not connected. Call connect() first.")
        return self._conn

    @contextmanager
    def _transaction(self, operation: str) -> Generator[TransactionContext]:
        """Context manager for transactions with timing and logging.

        Args:
            operation: Name of the operation for logging.

        Yields:
            Transaction context with timing information.
        """
        conn = self._ensure_connected()
        tx_id = str(uuid.uuid4())[:8]
        start_ns = time.perf_counter_ns()
        ctx = TransactionContext(
            tx_id=tx_id, start_time_ns=start_ns, operation=operation
        )

        self._log.debug("transaction_started", tx_id=tx_id, op=operation)

        try:
            yield ctx
            conn.commit()
            duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
            self._metrics.record_tx_duration(duration_ms)

            self._log.debug(
                "transaction_complete",
                tx_id=tx_id,
                op=operation,
                affected_rows=ctx.affected_rows,
                duration_ms=round(duration_ms, 2),
            )

        except Exception:
            conn.rollback()
            duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000

            self._log.error(
                "transaction_failed",
                tx_id=tx_id,
                op=operation,
                duration_ms=round(duration_ms, 2),
            )
            raise

    # ===== Snapshot Operations =====

    async def upsert(self, snapshot: Snapshot) -> None:
        """Insert or replace every field of a snapshot (last-write-wins).

        Args:
            snapshot: The snapshot to store.
        """
        await self._call(self._upsert_snapshot, snapshot)
        self._metrics.record_upsert()

    def _upsert_snapshot(self, snapshot: Snapshot) -> None:
        params = (
            snapshot.hash,
            snapshot.url,
            snapshot.final_url,
            snapshot.mode.value,
            snapshot.content_type,
            snapshot.status_code,
            to_db_timestamp(snapshot.fetched_at),
            to_db_timestamp(snapshot.expires_at) if snapshot.expires_at else None,
            snapshot.etag,
            snapshot.last_modified,
            snapshot.raw_bytes,
            int(snapshot.raw_truncated),
            snapshot.title,
            snapshot.markdown,
            snapshot.text,
            snapshot.links_json,
            snapshot.extractor_name,
            snapshot.extractor_version,
            snapshot.siteconfig_id,
            snapshot.extract_cfg_json,
            snapshot.headers_json,
            snapshot.fetch_ms,
            snapshot.extract_ms,
        )
        with self._transaction("upsert_snapshot") as ctx:
            conn = self._ensure_connected()
            conn.execute(_UPSERT_SNAPSHOT_SQL, params)
            ctx.add_affected_rows(1)

        self._log.debug(
            "snapshot_upserted", hash=snapshot.hash, mode=snapshot.mode.value
        )

    async def get(self, key: str) -> Snapshot | None:
        """Get a snapshot by hash, fresh or not.

        Args:
            key: Snapshot hash.

        Returns:
            The snapshot, or None if not found.
        """
        return await self._call(self._get_snapshot, key, False)

    async def get_fresh(self, key: str) -> Snapshot | None:
        """Get a snapshot only if it has not expired.

        Args:
            key: Snapshot hash.

        Returns:
            The fresh snapshot, or None if absent or expired.
        """
        snapshot = await self._call(self._get_snapshot, key, True)
        if snapshot is None:
            self._metrics.record_miss()
        else:
            self._metrics.record_hit()
        return snapshot

    def _get_snapshot(self, key: str, fresh_only: bool) -> Snapshot | None:
        conn = self._ensure_connected()
        if fresh_only:
            cursor = conn.execute(
                """
                SELECT * FROM snapshots
                WHERE hash = ? AND (expires_at IS NULL OR expires_at > ?)
                """,
                (key, to_db_timestamp(utc_now())),
            )
        else:
            cursor = conn.execute("SELECT * FROM snapshots WHERE hash = ?", (key,))
        row = cursor.fetchone()

        if row is None:
            return None
        return self._row_to_snapshot(row)

    async def is_fresh(self, key: str) -> bool:
        """Check that a snapshot exists and has not expired.

        Args:
            key: Snapshot hash.

        Returns:
            True if the row exists and expires_at is null or in the future.
        """
        return await self._call(self._is_fresh, key)

    def _is_fresh(self, key: str) -> bool:
        conn = self._ensure_connected()
        cursor = conn.execute(
            """
            SELECT EXISTS(
                SELECT 1 FROM snapshots
                WHERE hash = ? AND (expires_at IS NULL OR expires_at > ?)
            )
            """,
            (key, to_db_timestamp(utc_now())),
        )
        return bool(cursor.fetchone()[0])

    def _row_to_snapshot(self, row: sqlite3.Row) -> Snapshot:
        """Convert a database row to a Snapshot model."""
        data = {column: row[column] for column in _SNAPSHOT_COLUMNS}
        data["raw_truncated"] = bool(data["raw_truncated"])
        if data["raw_bytes"] is not None:
            data["raw_bytes"] = bytes(data["raw_bytes"])
        return Snapshot(**data)

    # ===== Purge =====

    async def purge_expired(self) -> int:
        """Delete snapshots whose expires_at is set and in the past.

        Returns:
            Number of snapshots deleted.
        """
        return await self._call(self._purge_expired)

    def _purge_expired(self) -> int:
        with self._transaction("purge_expired") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                "DELETE FROM snapshots WHERE expires_at IS NOT NULL AND expires_at < ?",
                (to_db_timestamp(utc_now()),),
            )
            purged = cursor.rowcount
            ctx.add_affected_rows(purged)

        self._metrics.record_purged("expired", purged)
        self._log.info("snapshots_purged", strategy="expired", count=purged)
        return purged

    async def purge_by_domain(self, substring: str) -> int:
        """Delete snapshots whose URL contains a substring.

        The match is a literal, case-sensitive substring of the stored URL,
        so it can also match path or query text.

        Args:
            substring: Text to look for, e.g. "example.com".

        Returns:
            Number of snapshots deleted.

        Raises:
            ValueError: If substring is empty.
        """
        if not substring:
            msg = "substring must not be empty"
            raise ValueError(msg)
        return await self._call(self._purge_by_domain, substring)

    def _purge_by_domain(self, substring: str) -> int:
        with self._transaction("purge_by_domain") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                "DELETE FROM snapshots WHERE instr(url, ?) > 0",
                (substring,),
            )
            purged = cursor.rowcount
            ctx.add_affected_rows(purged)

        self._metrics.record_purged("domain", purged)
        self._log.info(
            "snapshots_purged", strategy="domain", substring=substring, count=purged
        )
        return purged

    async def purge_lru(self, max_entries: int) -> int:
        """Delete the oldest snapshots until at most max_entries remain.

        Age is by fetched_at. A no-op when already at or below the ceiling.

        Args:
            max_entries: Number of snapshots to keep.

        Returns:
            Number of snapshots deleted.

        Raises:
            ValueError: If max_entries is negative.
        """
        if max_entries < 0:
            msg = f"max_entries must be >= 0, got {max_entries}"
            raise ValueError(msg)
        return await self._call(self._purge_lru, max_entries)

    def _purge_lru(self, max_entries: int) -> int:
        with self._transaction("purge_lru") as ctx:
            conn = self._ensure_connected()
            count = conn.execute("SELECT COUNT(*) FROM snapshots").fetchone()[0]
            excess = count - max_entries
            purged = 0
            if excess > 0:
                cursor = conn.execute(
                    """
                    DELETE FROM snapshots WHERE hash IN (
                        SELECT hash FROM snapshots
                        ORDER BY fetched_at ASC, hash ASC
                        LIMIT ?
                    )
                    """,
                    (excess,),
                )
                purged = cursor.rowcount
            ctx.add_affected_rows(purged)

        self._metrics.record_purged("lru", purged)
        self._log.info(
            "snapshots_purged", strategy="lru", max_entries=max_entries, count=purged
        )
        return purged

    async def purge_older_than(self, days: int) -> int:
        """Delete snapshots fetched more than the given number of days ago.

        Args:
            days: Age threshold in days.

        Returns:
            Number of snapshots deleted.

        Raises:
            ValueError: If days is negative.
        """
        if days < 0:
            msg = f"days must be >= 0, got {days}"
            raise ValueError(msg)
        return await self._call(self._purge_older_than, days)

    def _purge_older_than(self, days: int) -> int:
        cutoff = utc_now() - timedelta(days=days)

        with self._transaction("purge_older_than") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                "DELETE FROM snapshots WHERE fetched_at < ?",
                (to_db_timestamp(cutoff),),
            )
            purged = cursor.rowcount
            ctx.add_affected_rows(purged)

        self._metrics.record_purged("age", purged)
        self._log.info("snapshots_purged", strategy="age", days=days, count=purged)
        return purged

    # ===== Search Cache Operations =====

    async def put_search(
        self,
        key_hash: str,
        query_json: str,
        response_json: str,
        ttl_seconds: int,
    ) -> None:
        """Insert or replace a cached search response.

        Args:
            key_hash: Search cache key.
            query_json: Serialized query parameters.
            response_json: Serialized provider response.
            ttl_seconds: Lifetime of the entry.
        """
        await self._call(
            self._put_search, key_hash, query_json, response_json, ttl_seconds
        )
        self._metrics.record_upsert()

    def _put_search(
        self, key_hash: str, query_json: str, response_json: str, ttl_seconds: int
    ) -> None:
        fetched_at = utc_now()
        expires_at = fetched_at + timedelta(seconds=ttl_seconds)

        with self._transaction("put_search") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO search_cache (key_hash, query_json, response_json, fetched_at, expires_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(key_hash) DO UPDATE SET
                    query_json = excluded.query_json,
                    response_json = excluded.response_json,
                    fetched_at = excluded.fetched_at,
                    expires_at = excluded.expires_at
                """,
                (
                    key_hash,
                    query_json,
                    response_json,
                    to_db_timestamp(fetched_at),
                    to_db_timestamp(expires_at),
                ),
            )
            ctx.add_affected_rows(1)

    async def get_search(self, key_hash: str) -> str | None:
        """Get a cached search response, fresh or not.

        Args:
            key_hash: Search cache key.

        Returns:
            The response JSON, or None if not found.
        """
        return await self._call(self._get_search, key_hash)

    def _get_search(self, key_hash: str) -> str | None:
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT response_json FROM search_cache WHERE key_hash = ?",
            (key_hash,),
        ).fetchone()
        return None if row is None else str(row["response_json"])

    async def get_search_meta(self, key_hash: str) -> SearchCacheMeta | None:
        """Get the query and timestamps of a cached search response.

        Args:
            key_hash: Search cache key.

        Returns:
            Entry metadata, or None if not found.
        """
        return await self._call(self._get_search_meta, key_hash)

    def _get_search_meta(self, key_hash: str) -> SearchCacheMeta | None:
        conn = self._ensure_connected()
        row = conn.execute(
            """
            SELECT key_hash, query_json, fetched_at, expires_at
            FROM search_cache WHERE key_hash = ?
            """,
            (key_hash,),
        ).fetchone()
        if row is None:
            return None
        return SearchCacheMeta(
            key_hash=row["key_hash"],
            query_json=row["query_json"],
            fetched_at=row["fetched_at"],
            expires_at=row["expires_at"],
        )

    async def is_search_fresh(self, key_hash: str) -> bool:
        """Check that a search entry exists and has not expired.

        Args:
            key_hash: Search cache key.

        Returns:
            True if present with expires_at in the future.
        """
        return await self._call(self._is_search_fresh, key_hash)

    def _is_search_fresh(self, key_hash: str) -> bool:
        conn = self._ensure_connected()
        cursor = conn.execute(
            """
            SELECT EXISTS(
                SELECT 1 FROM search_cache WHERE key_hash = ? AND expires_at > ?
            )
            """,
            (key_hash, to_db_timestamp(utc_now())),
        )
        return bool(cursor.fetchone()[0])

    async def purge_expired_search(self) -> int:
        """Delete search entries whose expiry has passed.

        Returns:
            Number of entries deleted.
        """
        return await self._call(self._purge_expired_search)

    def _purge_expired_search(self) -> int:
        with self._transaction("purge_expired_search") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                "DELETE FROM search_cache WHERE expires_at < ?",
                (to_db_timestamp(utc_now()),),
            )
            purged = cursor.rowcount
            ctx.add_affected_rows(purged)

        self._metrics.record_purged("search", purged)
        self._log.info("search_cache_purged", count=purged)
        return purged

    # ===== Stats =====

    async def count(self) -> int:
        """Count stored snapshots.

        Returns:
            Number of snapshot rows.
        """
        stats = await self.get_stats()
        return stats["snapshots"]

    async def get_stats(self) -> dict[str, int]:
        """Get row counts for all cache tables.

        Returns:
            Dictionary mapping table name to row count.
        """
        return await self._call(self._get_stats)

    def _get_stats(self) -> dict[str, int]:
        conn = self._ensure_connected()

        stats: dict[str, int] = {}

        for table in ("snapshots", "search_cache"):
            cursor = conn.execute(f"SELECT COUNT(*) FROM {table}")  # noqa: S608
            stats[table] = cursor.fetchone()[0]

        return stats

    async def get_schema_version(self) -> int:
        """Get current schema version.

        Returns:
            Current schema version number.
        """
        return await self._call(self._get_schema_version)

    def _get_schema_version(self) -> int:
        conn = self._ensure_connected()
        return MigrationManager(conn).get_current_version()
