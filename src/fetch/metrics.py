"""Metrics collection for the safe fetch layer."""

from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class FetchMetrics:
    """Metrics for fetch operations.

    Singleton class that tracks request counts by status, bytes received,
    failures by error type, and robots.txt cache effectiveness.
    """

    http_requests_total: dict[int, int] = field(default_factory=dict)
    http_failures_total: dict[str, int] = field(default_factory=dict)
    http_bytes_total: int = 0
    http_duration_ms_total: float = 0.0
    http_request_count: int = 0
    robots_cache_hits_total: int = 0
    robots_cache_misses_total: int = 0
    robots_disallowed_total: int = 0

    _instance: ClassVar["FetchMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "FetchMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_request(self, status_code: int, bytes_received: int) -> None:
        """Record a completed HTTP request.

        Args:
            status_code: HTTP status code.
            bytes_received: Number of bytes received.
        """
        self.http_requests_total[status_code] = (
            self.http_requests_total.get(status_code, 0) + 1
        )
        self.http_bytes_total += bytes_received
        self.http_request_count += 1

    def record_failure(self, error_type: str) -> None:
        """Record a fetch failure.

        Args:
            error_type: Exception class name of the failure.
        """
        self.http_failures_total[error_type] = (
            self.http_failures_total.get(error_type, 0) + 1
        )

    def record_duration(self, duration_ms: float) -> None:
        """Record request duration.

        Args:
            duration_ms: Duration in milliseconds.
        """
        self.http_duration_ms_total += duration_ms

    def record_robots_hit(self) -> None:
        """Record a robots.txt decision served from cache."""
        self.robots_cache_hits_total += 1

    def record_robots_miss(self) -> None:
        """Record a robots.txt refetch."""
        self.robots_cache_misses_total += 1

    def record_robots_disallowed(self) -> None:
        """Record a request refused by robots.txt."""
        self.robots_disallowed_total += 1

    def to_dict(self) -> dict[str, int | float | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "http_requests_total": dict(self.http_requests_total),
            "http_failures_total": dict(self.http_failures_total),
            "http_bytes_total": self.http_bytes_total,
            "http_duration_ms_total": self.http_duration_ms_total,
            "http_request_count": self.http_request_count,
            "robots_cache_hits_total": self.robots_cache_hits_total,
            "robots_cache_misses_total": self.robots_cache_misses_total,
            "robots_disallowed_total": self.robots_disallowed_total,
            "avg_duration_ms": self.avg_duration_ms,
        }

    @property
    def avg_duration_ms(self) -> float:
        """Calculate average request duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.http_request_count == 0:
            return 0.0
        return self.http_duration_ms_total / self.http_request_count
