"""Unit tests for cache store models."""

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from src.store.models import (
    SearchCacheMeta,
    Snapshot,
    SnapshotMode,
    to_db_timestamp,
)
from tests.helpers.time import FIXED_NOW


KEY = "a" * 64


def _snapshot(**overrides: object) -> Snapshot:
    data: dict[str, object] = {
        "hash": KEY,
        "url": "https://example.com/",
        "final_url": "https://example.com/",
        "mode": SnapshotMode.READABLE,
        "fetched_at": FIXED_NOW,
    }
    data.update(overrides)
    return Snapshot(**data)  # type: ignore[arg-type]


class TestToDbTimestamp:
    """Tests for timestamp formatting."""

    def test_fixed_width_utc(self) -> None:
        """Test timestamps are UTC with microseconds."""
        assert to_db_timestamp(FIXED_NOW) == "2024-03-01T12:30:00.250000+00:00"

    def test_converts_offsets(self) -> None:
        """Test non-UTC offsets are converted."""
        local = datetime(2017, 6, 13, 9, 0, tzinfo=timezone(timedelta(hours=9)))

        assert to_db_timestamp(local) == "2017-06-13T00:00:00.000000+00:00"

    def test_naive_assumed_utc(self) -> None:
        """Test naive datetimes are treated as UTC."""
        assert to_db_timestamp(datetime(2017, 6, 13)) == (
            "2017-06-13T00:00:00.000000+00:00"
        )

    def test_lexicographic_order_is_chronological(self) -> None:
        """Test string order matches time order."""
        earlier = to_db_timestamp(FIXED_NOW)
        later = to_db_timestamp(FIXED_NOW + timedelta(microseconds=1))

        assert earlier < later


class TestSnapshot:
    """Tests for the Snapshot model."""

    def test_minimal(self) -> None:
        """Test defaults for optional fields."""
        snapshot = _snapshot()

        assert snapshot.expires_at is None
        assert snapshot.raw_truncated is False
        assert snapshot.markdown is None

    def test_rejects_bad_hash(self) -> None:
        """Test the hash must be a lowercase hex digest."""
        with pytest.raises(ValidationError):
            _snapshot(hash="not-a-hash")

    def test_parses_stored_timestamps(self) -> None:
        """Test ISO strings from the database become aware datetimes."""
        snapshot = _snapshot(
            fetched_at="2017-06-13T00:00:00.000000+00:00",
            expires_at="2017-06-14T00:00:00",
        )

        assert snapshot.fetched_at == FIXED_NOW
        assert snapshot.expires_at == FIXED_NOW + timedelta(days=1)
        assert snapshot.expires_at.tzinfo is not None

    def test_fresh_without_expiry(self) -> None:
        """Test a snapshot with no expiry is always fresh."""
        assert _snapshot().is_fresh(FIXED_NOW + timedelta(days=3650))

    def test_freshness_boundary(self) -> None:
        """Test a snapshot is stale once expires_at is reached."""
        snapshot = _snapshot(expires_at=FIXED_NOW + timedelta(hours=1))

        assert snapshot.is_fresh(FIXED_NOW)
        assert not snapshot.is_fresh(FIXED_NOW + timedelta(hours=1))

    def test_negative_durations_rejected(self) -> None:
        """Test timing fields must be non-negative."""
        with pytest.raises(ValidationError):
            _snapshot(fetch_ms=-1)

    def test_mode_values(self) -> None:
        """Test the stored mode strings."""
        assert SnapshotMode.RAW.value == "raw"
        assert SnapshotMode.READABLE.value == "readable"


class TestSearchCacheMeta:
    """Tests for SearchCacheMeta."""

    def test_is_fresh(self) -> None:
        """Test freshness uses expires_at."""
        meta = SearchCacheMeta(
            key_hash=KEY,
            query_json="{}",
            fetched_at=FIXED_NOW,
            expires_at=FIXED_NOW + timedelta(minutes=5),
        )

        assert meta.is_fresh(FIXED_NOW)
        assert not meta.is_fresh(FIXED_NOW + timedelta(minutes=5))
        assert meta.fetched_at.tzinfo == UTC
