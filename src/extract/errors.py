"""Exceptions for content extraction."""


class ExtractionError(Exception):
    """Raised when an extractor cannot produce content from a document."""

    def __init__(self, extractor: str, message: str) -> None:
        """Initialize the extraction error.

        Args:
            extractor: Name of the extractor that failed.
            message: Human-readable error message.
        """
        self.extractor = extractor
        super().__init__(f"{extractor} extraction failed: {message}")
