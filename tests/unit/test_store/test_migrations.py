"""Unit tests for schema migrations."""

import sqlite3
from collections.abc import Generator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from src.store.errors import MigrationError
from src.store.migrations import (
    CURRENT_VERSION,
    MIGRATIONS,
    Migration,
    MigrationManager,
    get_migrations_to_apply,
    split_statements,
)


@pytest.fixture
def temp_db() -> Generator[sqlite3.Connection]:
    """Create a temporary in-memory database."""
    conn = sqlite3.connect(":memory:")
    yield conn
    conn.close()


def _table_exists(conn: sqlite3.Connection, name: str) -> bool:
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)
    )
    return cursor.fetchone() is not None


class TestMigrationConstants:
    """Tests for migration constants."""

    def test_migrations_in_order(self) -> None:
        """Test migrations are in strictly ascending version order."""
        versions = [m.version for m in MIGRATIONS]
        assert versions == sorted(set(versions))

    def test_migrations_have_sql(self) -> None:
        """Test all migrations have up SQL."""
        for migration in MIGRATIONS:
            assert migration.up_sql.strip()

    def test_current_version_matches_latest_migration(self) -> None:
        """Test current version matches the latest migration."""
        assert MIGRATIONS[-1].version == CURRENT_VERSION


class TestGetMigrationsToApply:
    """Tests for get_migrations_to_apply function."""

    def test_from_zero(self) -> None:
        """Test getting all migrations from version 0."""
        assert len(get_migrations_to_apply(0)) == len(MIGRATIONS)

    def test_from_current(self) -> None:
        """Test no migrations when at current version."""
        assert get_migrations_to_apply(CURRENT_VERSION) == []


class TestMigrationManager:
    """Tests for MigrationManager."""

    def test_version_zero_when_empty(self, temp_db: sqlite3.Connection) -> None:
        """Test version is 0 when no migrations applied."""
        manager = MigrationManager(temp_db)

        assert manager.get_current_version() == 0
        assert _table_exists(temp_db, "_migrations")

    def test_apply_migrations(self, temp_db: sqlite3.Connection) -> None:
        """Test applying all migrations creates the cache tables."""
        manager = MigrationManager(temp_db)
        applied = manager.apply_migrations()

        assert applied == [m.version for m in MIGRATIONS]
        assert manager.get_current_version() == CURRENT_VERSION
        assert _table_exists(temp_db, "snapshots")
        assert _table_exists(temp_db, "search_cache")

    def test_apply_migrations_idempotent(self, temp_db: sqlite3.Connection) -> None:
        """Test applying migrations twice is a no-op the second time."""
        MigrationManager(temp_db).apply_migrations()

        applied = MigrationManager(temp_db).apply_migrations()

        assert applied == []
        assert len(MigrationManager(temp_db).get_applied_migrations()) == len(
            MIGRATIONS
        )

    def test_resumes_from_partial_state(self, temp_db: sqlite3.Connection) -> None:
        """Test only migrations above the recorded maximum are applied."""
        MigrationManager(temp_db, MIGRATIONS[:1]).apply_migrations()

        applied = MigrationManager(temp_db).apply_migrations()

        assert applied == [m.version for m in MIGRATIONS[1:]]

    def test_applied_migrations_recorded(self, temp_db: sqlite3.Connection) -> None:
        """Test applied migrations are recorded with a timestamp."""
        manager = MigrationManager(temp_db)
        manager.apply_migrations()

        for record, migration in zip(
            manager.get_applied_migrations(), MIGRATIONS, strict=True
        ):
            assert record["version"] == migration.version
            assert record["applied_at"]

    def test_failed_migration_rolls_back(self, temp_db: sqlite3.Connection) -> None:
        """Test a broken migration leaves no partial state behind."""
        broken = [
            *MIGRATIONS,
            Migration(
                version=CURRENT_VERSION + 1,
                description="broken",
                up_sql="CREATE TABLE half_done (id INTEGER); SELECT * FROM nowhere;",
            ),
        ]
        manager = MigrationManager(temp_db, broken)

        with pytest.raises(MigrationError) as exc_info:
            manager.apply_migrations()

        assert exc_info.value.version == CURRENT_VERSION + 1
        assert manager.get_current_version() == CURRENT_VERSION
        assert not _table_exists(temp_db, "half_done")

    def test_stale_version_read_skips_applied(
        self, temp_db: sqlite3.Connection, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test a manager that read an old version does not re-apply or fail."""
        late = MigrationManager(temp_db)
        monkeypatch.setattr(late, "get_current_version", lambda: 0)
        MigrationManager(temp_db).apply_migrations()

        applied = late.apply_migrations()

        assert applied == []
        assert len(late.get_applied_migrations()) == len(MIGRATIONS)

    def test_concurrent_connections(self, tmp_path: Path) -> None:
        """Test two connections migrating one file both succeed."""
        db_file = tmp_path / "cache.sqlite"

        def migrate() -> list[int]:
            conn = sqlite3.connect(db_file, timeout=10)
            try:
                return MigrationManager(conn).apply_migrations()
            finally:
                conn.close()

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(lambda _: migrate(), range(2)))

        assert sorted(v for result in results for v in result) == [
            m.version for m in MIGRATIONS
        ]
        conn = sqlite3.connect(db_file)
        try:
            assert MigrationManager(conn).get_current_version() == CURRENT_VERSION
        finally:
            conn.close()


class TestSplitStatements:
    """Tests for split_statements."""

    def test_single_line_script(self) -> None:
        """Test statements on one line are separated."""
        assert split_statements("CREATE TABLE a (id INTEGER); SELECT 1;") == [
            "CREATE TABLE a (id INTEGER);",
            "SELECT 1;",
        ]

    def test_semicolons_inside_literals_and_triggers(self) -> None:
        """Test semicolons that do not end a statement are kept."""
        sql = """
INSERT INTO notes VALUES ('a;b');
CREATE TRIGGER t AFTER INSERT ON notes BEGIN
    DELETE FROM notes WHERE body = 'x';
END;
"""

        statements = split_statements(sql)

        assert len(statements) == 2
        assert statements[0] == "INSERT INTO notes VALUES ('a;b');"
        assert statements[1].startswith("CREATE TRIGGER t")
        assert statements[1].endswith("END;")


class TestMigrationSQL:
    """Tests for migration SQL correctness."""

    def test_snapshots_schema(self, temp_db: sqlite3.Connection) -> None:
        """Test snapshots has every column and its indexes."""
        MigrationManager(temp_db).apply_migrations()

        columns = {row[1] for row in temp_db.execute("PRAGMA table_info(snapshots)")}
        indexes = {row[1] for row in temp_db.execute("PRAGMA index_list(snapshots)")}

        assert {
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
        } == columns
        assert {
            "idx_snapshots_url",
            "idx_snapshots_fetched",
            "idx_snapshots_expires",
        } <= indexes

    def test_search_cache_schema(self, temp_db: sqlite3.Connection) -> None:
        """Test search_cache columns."""
        MigrationManager(temp_db).apply_migrations()

        columns = {
            row[1] for row in temp_db.execute("PRAGMA table_info(search_cache)")
        }

        assert columns == {
            "key_hash",
            "query_json",
            "response_json",
            "fetched_at",
            "expires_at",
        }
