"""Typed errors raised by the short URL core.

Errors on the authoritative path (the SQL store) propagate to callers.
``CacheDegradedError`` is raised by the Redis adapter only; every caller on
the acceleration path catches it, logs it and falls back.
"""

__all__ = [
    "ShortenerError",
    "ValidationError",
    "NotFoundError",
    "ExpiredError",
    "StoreError",
    "HashConflictError",
    "CacheDegradedError",
]


class ShortenerError(Exception):
    """Base exception for the short URL service."""


class ValidationError(ShortenerError):
    """Raised when caller input is rejected before any store mutation."""

    def __init__(self, message: str, value: str | None = None):
        self.value = value
        super().__init__(message)


class NotFoundError(ShortenerError):
    """Raised when no record exists for a short code."""

    def __init__(self, short_code: str):
        self.short_code = short_code
        super().__init__(f"Short code '{short_code}' not found")


class ExpiredError(ShortenerError):
    """Raised when a record exists but is inactive or past its expiry."""

    def __init__(self, short_code: str):
        self.short_code = short_code
        super().__init__(f"Short code '{short_code}' has expired")


class StoreError(ShortenerError):
    """Raised when a durable store operation fails."""

    def __init__(self, message: str, original_error: Exception | None = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")


class HashConflictError(StoreError):
    """Raised when another record for the same URL became current first."""

    def __init__(self, url_hash: str, original_error: Exception | None = None):
        self.url_hash = url_hash
        super().__init__(f"url hash {url_hash} already has a current record", original_error)


class CacheDegradedError(ShortenerError):
    """Raised when a Redis operation fails or times out."""

    def __init__(self, operation: str, original_error: Exception | None = None):
        self.operation = operation
        self.original_error = original_error
        super().__init__(f"Cache operation '{operation}' failed: {original_error!r}")
