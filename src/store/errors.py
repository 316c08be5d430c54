"""Domain exceptions for the cache store.

Storage failures are kept separate from fetch failures so callers can
tell "the cache is broken" apart from "the fetch failed".
"""


class CacheError(Exception):
    """Base exception for all cache store errors.

    All exceptions raised by the cache store inherit from this class to
    enable consistent error handling at the application level.
    """


class CacheConnectionError(CacheError):
    """Raised when the database is not open or cannot be opened."""

    def __init__(self, message: str = "Database not connected") -> None:
        """Initialize the connection error.

        Args:
            message: Human-readable error message.
        """
        super().__init__(message)


class MigrationError(CacheError):
    """Raised when a schema migration fails.

    The failed migration is rolled back; earlier migrations stay applied.
    """

    def __init__(self, version: int, message: str) -> None:
        """Initialize the migration error.

        Args:
            version: The migration version that failed.
            message: Human-readable error message.
        """
        self.version = version
        super().__init__(f"Migration {version} failed: {message}")


class CacheQueryError(CacheError):
    """Raised when a statement fails against an open database."""

    def __init__(self, operation: str, message: str) -> None:
        """Initialize the query error.

        Args:
            operation: Store operation that failed.
            message: Underlying database error text.
        """
        self.operation = operation
        super().__init__(f"Cache operation {operation} failed: {message}")


class InvalidHashError(CacheError):
    """Raised when a cache key is not a 64-character hex digest."""

    def __init__(self, value: str) -> None:
        """Initialize the error with the malformed key.

        Args:
            value: The rejected key.
        """
        self.value = value
        super().__init__(f"Invalid cache key: {value!r}")


class CacheMissError(CacheError):
    """Raised when a requested snapshot does not exist."""

    def __init__(self, key: str) -> None:
        """Initialize the error with the missing key.

        Args:
            key: The cache key that was not found.
        """
        self.key = key
        super().__init__(f"Snapshot not found: {key}")
