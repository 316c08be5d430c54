"""Errors raised by the open and batch services."""


class InvalidInputError(Exception):
    """Request rejected before any I/O."""

    def __init__(self, message: str) -> None:
        """Initialize the error.

        Args:
            message: What was wrong with the input.
        """
        self.message = message
        super().__init__(message)


class RenderDisabledError(Exception):
    """Rendered mode was requested but no renderer is available."""

    def __init__(self) -> None:
        """Initialize the error."""
        super().__init__("rendered mode is disabled")
