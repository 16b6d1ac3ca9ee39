"""
Error kinds raised by the matching engine and its storage adapters.
"""


class MatchingError(Exception):
    """Base class for all matching engine errors."""


class NotFoundError(MatchingError, LookupError):
    """Raised when a referenced user or match does not exist."""


class InvalidOperationError(MatchingError, ValueError):
    """Raised for requests that can never succeed (self-swipe, bad direction)."""


class ConflictError(MatchingError):
    """Raised by a ledger when a write collides with an existing record."""


class StorageUnavailableError(MatchingError):
    """Raised by a storage adapter when its backend cannot be reached."""
