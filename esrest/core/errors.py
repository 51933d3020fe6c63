"""Shared error codes and exceptions for the search client.

Every failure surfaced by the client is a ``SearchError`` carrying an
``ErrorCode`` so callers can branch on the code or on the exception type.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    INDEX_ALREADY_EXISTS = "INDEX_ALREADY_EXISTS"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"  # Non-2xx response not otherwise classified
    NETWORK_ERROR = "NETWORK_ERROR"  # Connection refused, DNS, protocol errors
    TIMEOUT = "TIMEOUT"
    DESERIALIZATION_FAILED = "DESERIALIZATION_FAILED"
    INVALID_QUERY = "INVALID_QUERY"


class SearchError(Exception):
    """Base exception for the search client."""

    code: ErrorCode = ErrorCode.TRANSPORT_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class IndexAlreadyExistsError(SearchError):
    """Raised when creating an index that the engine already holds."""

    code = ErrorCode.INDEX_ALREADY_EXISTS

    def __init__(self, index: str, body: str = ""):
        self.index = index
        self.body = body
        super().__init__(f"Index already exists: {index}")


class TransportError(SearchError):
    """Connection failure, timeout or unexpected HTTP status."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: str = "",
        code: ErrorCode = ErrorCode.TRANSPORT_ERROR,
    ):
        self.status = status
        self.body = body
        self.code = code
        super().__init__(message)


class DeserializationError(SearchError):
    """Response body does not have the shape the operation expects."""

    code = ErrorCode.DESERIALIZATION_FAILED


class InvalidQueryError(SearchError, ValueError):
    """A DSL value was constructed with an invalid combination of options."""

    code = ErrorCode.INVALID_QUERY


__all__ = [
    "ErrorCode",
    "SearchError",
    "IndexAlreadyExistsError",
    "TransportError",
    "DeserializationError",
    "InvalidQueryError",
]
