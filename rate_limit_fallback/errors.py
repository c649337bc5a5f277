"""Error definitions for the rate limit fallback package."""

from typing import Optional


class FallbackError(Exception):
    """Base exception for rate limit fallback errors."""
    pass


class ConfigurationError(FallbackError):
    """Raised when a configuration document cannot be parsed or validated."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid configuration in {path}: {reason}")


class PatternStorageError(FallbackError):
    """Raised when the learned pattern document cannot be read or written."""

    def __init__(
        self,
        operation: str,
        path: str,
        original_error: Optional[Exception] = None
    ):
        self.operation = operation
        self.path = path
        self.original_error = original_error

        message = f"Pattern storage {operation} failed for {path}"
        if original_error is not None:
            message += f": {original_error}"
        super().__init__(message)
