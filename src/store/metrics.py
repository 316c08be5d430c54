"""Metrics collection for the cache store."""

from dataclasses import dataclass, field
from typing import ClassVar, Protocol


class MetricsRecorder(Protocol):
    """Protocol for metrics recording.

    This protocol defines the interface for recording store metrics,
    enabling dependency injection and improved testability.
    """

    def record_hit(self) -> None:
        """Record a lookup that found a fresh row."""
        ...

    def record_miss(self) -> None:
        """Record a lookup that found nothing usable."""
        ...

    def record_upsert(self) -> None:
        """Record a snapshot upsert."""
        ...

    def record_tx_duration(self, duration_ms: float) -> None:
        """Record transaction duration in milliseconds."""
        ...

    def record_purged(self, strategy: str, count: int) -> None:
        """Record rows removed by a purge strategy."""
        ...


@dataclass
class NullMetricsRecorder:
    """No-op metrics recorder for testing.

    This implementation discards all metrics, useful for tests that
    don't need to verify metrics behavior.
    """

    def record_hit(self) -> None:
        """No-op."""

    def record_miss(self) -> None:
        """No-op."""

    def record_upsert(self) -> None:
        """No-op."""

    def record_tx_duration(self, duration_ms: float) -> None:  # noqa: ARG002
        """No-op."""

    def record_purged(self, strategy: str, count: int) -> None:  # noqa: ARG002
        """No-op."""


@dataclass
class StoreMetrics:
    """Metrics for cache store operations.

    Attributes:
        cache_hits_total: Lookups answered with a fresh row.
        cache_misses_total: Lookups with no usable row.
        db_upserts_total: Snapshot and search upserts.
        db_tx_duration_ms: Cumulative transaction duration in milliseconds.
        db_tx_count: Number of transactions.
        purged_total: Rows removed, keyed by purge strategy.
    """

    cache_hits_total: int = 0
    cache_misses_total: int = 0
    db_upserts_total: int = 0
    db_tx_duration_ms: float = 0.0
    db_tx_count: int = 0
    purged_total: dict[str, int] = field(default_factory=dict)

    _instance: ClassVar["StoreMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "StoreMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_hit(self) -> None:
        """Record a cache hit."""
        self.cache_hits_total += 1

    def record_miss(self) -> None:
        """Record a cache miss."""
        self.cache_misses_total += 1

    def record_upsert(self) -> None:
        """Record an upsert."""
        self.db_upserts_total += 1

    def record_tx_duration(self, duration_ms: float) -> None:
        """Record transaction duration.

        Args:
            duration_ms: Duration in milliseconds.
        """
        self.db_tx_duration_ms += duration_ms
        self.db_tx_count += 1

    def record_purged(self, strategy: str, count: int) -> None:
        """Record purged rows.

        Args:
            strategy: Purge strategy name (expired, domain, lru, age, search).
            count: Number of rows removed.
        """
        self.purged_total[strategy] = self.purged_total.get(strategy, 0) + count

    def to_dict(self) -> dict[str, float | int | dict[str, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "cache_hits_total": self.cache_hits_total,
            "cache_misses_total": self.cache_misses_total,
            "db_upserts_total": self.db_upserts_total,
            "db_tx_duration_ms": self.db_tx_duration_ms,
            "db_tx_count": self.db_tx_count,
            "avg_tx_duration_ms": self.avg_tx_duration_ms,
            "purged_total": dict(self.purged_total),
        }

    @property
    def avg_tx_duration_ms(self) -> float:
        """Calculate average transaction duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.db_tx_count == 0:
            return 0.0
        return self.db_tx_duration_ms / self.db_tx_count


@dataclass
class TransactionContext:
    """Context for a single transaction with timing.

    Attributes:
        tx_id: Unique transaction identifier.
        start_time_ns: Start time in nanoseconds.
        operation: The operation being performed.
    """

    tx_id: str
    start_time_ns: int
    operation: str
    affected_rows: int = field(default=0)

    def add_affected_rows(self, rows: int) -> None:
        """Add to the affected row count.

        Args:
            rows: Number of rows affected.
        """
        self.affected_rows += rows
