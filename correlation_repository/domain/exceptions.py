"""
Exceptions raised by the correlation repository.

Driver errors (psycopg2.Error and subclasses) are not wrapped and reach
the caller unchanged.
"""

from typing import Optional


class CorrelationRepositoryError(Exception):
    """Base exception for correlation repository errors."""
    pass


class NotFoundError(CorrelationRepositoryError):
    """Raised when a lookup by key matches no correlation rows."""

    code = 404


class CorrelationDecodeError(CorrelationRepositoryError):
    """Raised when a stored identity or error payload cannot be decoded."""

    def __init__(self, column: str, payload: Optional[str], reason: str):
        self.column = column
        self.payload = payload
        super().__init__(f"Could not decode '{column}' column: {reason}")
