from typing import Any, List, Optional


class BigQueryError(Exception):
    """Base exception for the bqpager SDK."""

    pass


class NotInitialized(BigQueryError):
    """Raised when credentials or the target dataset were never configured."""

    pass


class TransportError(BigQueryError):
    """Raised when a round trip to the service fails."""

    pass


class QueryError(TransportError):
    """Raised when the service reports the query job itself as failed."""

    pass


class QueryCancelled(BigQueryError):
    """Raised when a pager is cancelled before the result set is exhausted."""

    pass


class DecodeError(BigQueryError):
    """Base class for failures while decoding cells into records."""

    pass


class ShapeMismatch(DecodeError):
    """Raised when a row's cell count does not match the record's field count."""

    pass


class TypeMismatch(DecodeError):
    def __init__(self, column: str, message: str):
        super().__init__(f"column {column!r}: {message}")
        self.column = column


class UnsupportedType(DecodeError):
    def __init__(self, column: str, type_name: str):
        super().__init__(f"column {column!r}: unsupported type {type_name}")
        self.column = column
        self.type_name = type_name


class InvalidTimestampFormat(DecodeError, ValueError):
    def __init__(self, value: str, reason: str):
        super().__init__(f"invalid timestamp {value!r}: {reason}")
        self.value = value


class InsertFailure(BigQueryError):
    """Raised when the service rejects some of the rows of an insert."""

    def __init__(self, table: str, errors: List[Any], message: Optional[str] = None):
        super().__init__(message or f"{len(errors)} row(s) rejected by {table}")
        self.table = table
        self.errors = errors
