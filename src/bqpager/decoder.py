import dataclasses
import functools
import logging
import typing
from typing import Any, Callable, Dict, List, MutableSequence, NamedTuple, Sequence, Tuple, Type, TypeVar

from .errors import DecodeError, ShapeMismatch, TypeMismatch, UnsupportedType
from .models import Cell, DataType, Field, Row
from .timestamp import parse_exponential_timestamp

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_bool(v: str) -> bool:
    return v in ("true", "1")


class CellDecoder(NamedTuple):
    kinds: Tuple[type, ...]
    decode: Callable[[str], Any]


# Column type -> accepted destination kinds and the text decoder.
# RECORD has no entry and fails as unsupported.
DECODERS: Dict[DataType, CellDecoder] = {
    DataType.STRING: CellDecoder((str,), str),
    DataType.INTEGER: CellDecoder((int,), int),
    DataType.FLOAT: CellDecoder((float,), float),
    DataType.BOOLEAN: CellDecoder((bool,), parse_bool),
    DataType.TIMESTAMP: CellDecoder((int,), parse_exponential_timestamp),
}


class FieldSlot(NamedTuple):
    name: str
    kind: Any
    zero: Callable[[], Any]


@functools.lru_cache(maxsize=None)
def decode_plan(record_type: type) -> Tuple[FieldSlot, ...]:
    """
    Resolves the ordered field slots of a dataclass record type once.
    """
    if not (isinstance(record_type, type) and dataclasses.is_dataclass(record_type)):
        raise TypeError(f"destination record type must be a dataclass, got {record_type!r}")

    hints = typing.get_type_hints(record_type)
    slots = []
    for f in dataclasses.fields(record_type):
        kind = _unwrap_optional(hints.get(f.name, f.type))
        slots.append(FieldSlot(f.name, kind, _zero_factory(f, kind)))
    return tuple(slots)


def _unwrap_optional(annotation: Any) -> Any:
    if typing.get_origin(annotation) is typing.Union:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _zero_factory(f: dataclasses.Field, kind: Any) -> Callable[[], Any]:
    if f.default is not dataclasses.MISSING:
        default = f.default
        return lambda: default
    if f.default_factory is not dataclasses.MISSING:
        return f.default_factory
    if kind in (str, int, float, bool):
        return kind
    return lambda: None


def _column_decoders(schema: Sequence[Field], plan: Sequence[FieldSlot]) -> List[Callable[[str], Any]]:
    if len(schema) != len(plan):
        raise ShapeMismatch(
            f"schema has {len(schema)} columns but record has {len(plan)} fields"
        )

    decoders = []
    for column, slot in zip(schema, plan):
        dtype = column.data_type
        if dtype is None or dtype not in DECODERS:
            raise UnsupportedType(column.name, column.type)
        entry = DECODERS[dtype]
        # bool is an int subclass, so match kinds exactly.
        if slot.kind not in entry.kinds:
            raise TypeMismatch(
                column.name,
                f"{dtype.value} cannot be stored in field {slot.name!r} of type "
                f"{getattr(slot.kind, '__name__', slot.kind)}",
            )
        decoders.append(entry.decode)
    return decoders


def _decode_cell(column: Field, decode: Callable[[str], Any], v: str) -> Any:
    try:
        return decode(v)
    except DecodeError:
        raise
    except ValueError as e:
        raise TypeMismatch(column.name, f"cannot parse {v!r} as {column.type}") from e


def decode_rows(schema: Sequence[Field], rows: Sequence[Row], record_type: Type[T]) -> List[T]:
    """
    Decodes a page of textual rows into instances of record_type.

    Columns map positionally onto the dataclass fields. A null cell leaves
    the field at its zero value. Any error aborts the whole batch.
    """
    plan = decode_plan(record_type)
    decoders = _column_decoders(schema, plan)

    records = []
    for index, row in enumerate(rows):
        if len(row) != len(plan):
            raise ShapeMismatch(
                f"row {index} has {len(row)} cells but record has {len(plan)} fields"
            )
        values = {}
        for column, slot, decode, v in zip(schema, plan, decoders, row):
            values[slot.name] = slot.zero() if v is None else _decode_cell(column, decode, v)
        records.append(record_type(**values))

    logger.debug("decoded %d rows into %s", len(records), record_type.__name__)
    return records


def decode_into(
    schema: Sequence[Field],
    rows: Sequence[Row],
    dest: MutableSequence[T],
    record_type: Type[T],
) -> MutableSequence[T]:
    """
    Replaces the contents of dest with one record per row, in row order.
    dest is left untouched when decoding fails.
    """
    records = decode_rows(schema, rows, record_type)
    dest[:] = records
    return dest


def convert_value(column: Field, v: Cell) -> Any:
    if v is None:
        return None
    entry = DECODERS.get(column.data_type)
    if entry is None:
        return v
    return _decode_cell(column, entry.decode, v)
