from .client import Client, get_private_key_by_pem
from .cable import RowCable
from .errors import (
    BigQueryError,
    NotInitialized,
    TransportError,
    QueryError,
    QueryCancelled,
    DecodeError,
    ShapeMismatch,
    TypeMismatch,
    UnsupportedType,
    InvalidTimestampFormat,
    InsertFailure,
)
from .models import (
    DEFAULT_PAGE_SIZE,
    DataType,
    Field,
    JobReference,
    JobConfiguration,
    WriteDisposition,
    CreateDisposition,
    Page,
)
from .decoder import decode_rows, decode_into
from .timestamp import parse_exponential_timestamp
from .pager import ResultPager
from .stream import PageStream
from .query import Query

__all__ = [
    "Client",
    "get_private_key_by_pem",
    "RowCable",
    "BigQueryError",
    "NotInitialized",
    "TransportError",
    "QueryError",
    "QueryCancelled",
    "DecodeError",
    "ShapeMismatch",
    "TypeMismatch",
    "UnsupportedType",
    "InvalidTimestampFormat",
    "InsertFailure",
    "DEFAULT_PAGE_SIZE",
    "DataType",
    "Field",
    "JobReference",
    "JobConfiguration",
    "WriteDisposition",
    "CreateDisposition",
    "Page",
    "decode_rows",
    "decode_into",
    "parse_exponential_timestamp",
    "ResultPager",
    "PageStream",
    "Query",
]
