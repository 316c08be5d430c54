"""SQLite schema migrations for the cache store.

Migrations are an ordered list of idempotent DDL batches. The
`_migrations` table records every applied version; on open, each
migration above the recorded maximum is applied and recorded in a single
BEGIN IMMEDIATE transaction that re-checks the version under the write
lock. Re-running the sequence, from this or another connection, is a
no-op.
"""

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from src.store.errors import MigrationError


logger = structlog.get_logger()


@dataclass(frozen=True)
class Migration:
    """A database migration.

    Attributes:
        version: Target version after applying this migration.
        description: Human-readable description.
        up_sql: Idempotent SQL to apply the migration.
    """

    version: int
    description: str
    up_sql: str


# All migrations in order
MIGRATIONS: list[Migration] = [
    Migration(
        version=1,
        description="Snapshots table for fetched and extracted pages",
        up_sql="""
CREATE TABLE IF NOT EXISTS snapshots (
    hash TEXT PRIMARY KEY,
    url TEXT NOT NULL,
    final_url TEXT NOT NULL,
    mode TEXT NOT NULL,
    content_type TEXT,
    status_code INTEGER,
    fetched_at TEXT NOT NULL,
    expires_at TEXT,
    etag TEXT,
    last_modified TEXT,
    raw_bytes BLOB,
    raw_truncated INTEGER NOT NULL DEFAULT 0,
    title TEXT,
    markdown TEXT,
    text TEXT,
    links_json TEXT,
    extractor_name TEXT,
    extractor_version TEXT,
    siteconfig_id TEXT,
    extract_cfg_json TEXT,
    headers_json TEXT,
    fetch_ms INTEGER,
    extract_ms INTEGER
);
CREATE INDEX IF NOT EXISTS idx_snapshots_url ON snapshots(url);
CREATE INDEX IF NOT EXISTS idx_snapshots_fetched ON snapshots(fetched_at);
CREATE INDEX IF NOT EXISTS idx_snapshots_expires ON snapshots(expires_at);
""",
    ),
    Migration(
        version=2,
        description="Search cache table for external query results",
        up_sql="""
CREATE TABLE IF NOT EXISTS search_cache (
    key_hash TEXT PRIMARY KEY,
    query_json TEXT NOT NULL,
    response_json TEXT NOT NULL,
    fetched_at TEXT NOT NULL,
    expires_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_search_cache_expires ON search_cache(expires_at);
""",
    ),
]

# Current schema version
CURRENT_VERSION = MIGRATIONS[-1].version


def get_migrations_to_apply(
    current_version: int,
    migrations: list[Migration] | None = None,
) -> list[Migration]:
    """Get migrations that need to be applied.

    Args:
        current_version: The current schema version.
        migrations: Migration list (defaults to MIGRATIONS).

    Returns:
        List of migrations to apply in order.
    """
    candidates = MIGRATIONS if migrations is None else migrations
    return [m for m in candidates if m.version > current_version]


def split_statements(sql: str) -> list[str]:
    """Split a migration script into complete SQL statements.

    Args:
        sql: Semicolon-terminated statements, possibly spanning lines.

    Returns:
        Statements in script order, without blanks.
    """
    statements: list[str] = []
    buffer = ""
    # A semicolon inside a literal or trigger body leaves the buffer incomplete
    for piece in sql.split(";"):
        buffer += piece + ";"
        if sqlite3.complete_statement(buffer):
            if buffer.rstrip(";").strip():
                statements.append(buffer.strip())
            buffer = ""
    if buffer.rstrip(";").strip():
        statements.append(buffer.strip())
    return statements


class MigrationManager:
    """Manages SQLite schema migrations."""

    # SQL for schema version tracking table
    VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS _migrations (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);
"""

    def __init__(
        self,
        connection: sqlite3.Connection,
        migrations: list[Migration] | None = None,
    ) -> None:
        """Initialize the migration manager.

        Args:
            connection: SQLite connection to manage.
            migrations: Migration list (defaults to MIGRATIONS).
        """
        self._conn = connection
        self._migrations = MIGRATIONS if migrations is None else migrations
        self._log = logger.bind(component="store", operation="migration")

    def ensure_version_table(self) -> None:
        """Ensure the _migrations table exists."""
        self._conn.execute(self.VERSION_TABLE_SQL)
        self._conn.commit()

    def get_current_version(self) -> int:
        """Get the current schema version.

        Returns:
            Current version number, or 0 if no migrations applied.
        """
        self.ensure_version_table()
        cursor = self._conn.execute("SELECT COALESCE(MAX(version), 0) FROM _migrations")
        return int(cursor.fetchone()[0])

    def apply_migrations(self) -> list[int]:
        """Apply all pending migrations.

        Each migration runs under BEGIN IMMEDIATE and re-reads the recorded
        version once the write lock is held, so a migration another
        connection applied in the meantime is skipped.

        Returns:
            List of version numbers that were applied.

        Raises:
            MigrationError: If a migration fails; it is rolled back.
        """
        current = self.get_current_version()
        pending = get_migrations_to_apply(current, self._migrations)

        if not pending:
            self._log.debug("no_migrations_pending", current_version=current)
            return []

        applied: list[int] = []

        for migration in pending:
            try:
                if self._apply_one(migration):
                    applied.append(migration.version)
            except sqlite3.Error as e:
                self._log.error(
                    "migration_failed",
                    version=migration.version,
                    error=str(e),
                )
                if self._conn.in_transaction:
                    self._conn.rollback()
                raise MigrationError(migration.version, str(e)) from e

        return applied

    def _apply_one(self, migration: Migration) -> bool:
        """Apply one migration in its own write transaction.

        Returns:
            False if the version was already recorded when the lock was taken.
        """
        self._conn.execute("BEGIN IMMEDIATE")
        cursor = self._conn.execute(
            "SELECT 1 FROM _migrations WHERE version = ?", (migration.version,)
        )
        if cursor.fetchone() is not None:
            self._conn.commit()
            self._log.debug("migration_already_applied", version=migration.version)
            return False

        self._log.info(
            "applying_migration",
            version=migration.version,
            description=migration.description,
        )
        for statement in split_statements(migration.up_sql):
            self._conn.execute(statement)
        self._conn.execute(
            "INSERT OR IGNORE INTO _migrations (version, applied_at) VALUES (?, ?)",
            (migration.version, datetime.now(UTC).isoformat()),
        )
        self._conn.commit()

        self._log.info("migration_applied", version=migration.version)
        return True

    def get_applied_migrations(self) -> list[dict[str, str | int]]:
        """Get list of applied migrations.

        Returns:
            List of dicts with version and applied_at.
        """
        self.ensure_version_table()
        cursor = self._conn.execute(
            "SELECT version, applied_at FROM _migrations ORDER BY version"
        )
        return [
            {"version": row[0], "applied_at": row[1]} for row in cursor.fetchall()
        ]
