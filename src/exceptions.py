"""
Domain exceptions for the Electricity Price Store.
Provides clear, typed exceptions for storage and upstream errors.
"""


class PriceAPIException(Exception):
    """Base exception for all price store errors."""
    pass


class DataFetchError(PriceAPIException):
    """Raised when fetching from the upstream price source fails."""
    pass


class DatabaseError(PriceAPIException):
    """Raised when database operations fail."""
    pass
