"""
Column metadata and typed decoding of text protocol cells.

This module provides:
- Column: immutable column descriptor from a column definition packet
- DecodedValue: tagged union over the decoded cell variants
- decode_value: raw cell bytes + declared type code -> DecodedValue

Decoding is driven only by the column's declared type code. Unknown type
codes and invalid UTF-8 in textual columns raise DecodeError; malformed
numeric or date text degrades to a null value.
"""
import datetime
import decimal
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple, Self

from mysqlcore.constants import BINARY_CHARSET_ID, FieldFlag, FieldType
from mysqlcore.exceptions import DecodeError, TypeConversionError

logger = logging.getLogger(__name__)

__all__ = [
    'Column',
    'ValueKind',
    'DateParts',
    'DateTimeParts',
    'DecodedValue',
    'NULL',
    'decode_value',
    'kind_for_type',
    'type_name',
]

INT64_MIN = -2 ** 63
INT64_MAX = 2 ** 63 - 1
UINT64_MAX = 2 ** 64 - 1

_INTEGER_RE = re.compile(r'[+-]?[0-9]+')
_NUMBER_RE = re.compile(r'[+-]?([0-9]+(\.[0-9]*)?|\.[0-9]+)([eE][+-]?[0-9]+)?')
_DATE_RE = re.compile(r'([0-9]{4})-([0-9]{2})-([0-9]{2})')
_DATETIME_RE = re.compile(r'([0-9]{4})-([0-9]{2})-([0-9]{2}) ([0-9]{2}):([0-9]{2}):([0-9]{2})')


class ValueKind(Enum):
    """Variant tag of a DecodedValue.
    """
    NULL = 'null'
    INTEGER = 'integer'
    INT64 = 'int64'
    DOUBLE = 'double'
    DECIMAL = 'decimal'
    BLOB = 'blob'
    TEXT = 'text'
    DATE = 'date'
    DATETIME = 'datetime'


class DateParts(NamedTuple):
    year: int
    month: int
    day: int

    def to_date(self) -> datetime.date:
        return datetime.date(self.year, self.month, self.day)


class DateTimeParts(NamedTuple):
    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int

    def to_datetime(self) -> datetime.datetime:
        return datetime.datetime(self.year, self.month, self.day,
                                 self.hour, self.minute, self.second)


@dataclass(frozen=True, slots=True)
class DecodedValue:
    """One decoded cell: a `kind` tag and the Python payload for that kind.

    Callers extract the payload with the `as_*` methods, which raise
    TypeConversionError when the value holds a different kind.
    """
    kind: ValueKind
    value: Any = None

    @property
    def is_null(self) -> bool:
        return self.kind is ValueKind.NULL

    def _expect(self, *kinds: ValueKind) -> Any:
        if self.kind not in kinds:
            expected = '/'.join(k.value for k in kinds)
            raise TypeConversionError(f'Expected {expected} value, got {self.kind.value}')
        return self.value

    def as_int(self) -> int:
        return self._expect(ValueKind.INTEGER, ValueKind.INT64)

    def as_float(self) -> float:
        return self._expect(ValueKind.DOUBLE)

    def as_decimal(self) -> decimal.Decimal:
        return self._expect(ValueKind.DECIMAL)

    def as_text(self) -> str:
        return self._expect(ValueKind.TEXT)

    def as_bytes(self) -> bytes:
        return self._expect(ValueKind.BLOB)

    def as_date_parts(self) -> DateParts:
        return self._expect(ValueKind.DATE)

    def as_datetime_parts(self) -> DateTimeParts:
        return self._expect(ValueKind.DATETIME)

    def as_date(self) -> datetime.date:
        return self.as_date_parts().to_date()

    def as_datetime(self) -> datetime.datetime:
        return self.as_datetime_parts().to_datetime()

    def to_python(self) -> Any:
        """Plain Python value: None, int, float, Decimal, bytes, str, date or datetime.
        """
        if self.kind is ValueKind.DATE:
            return self.value.to_date()
        if self.kind is ValueKind.DATETIME:
            return self.value.to_datetime()
        return self.value

    def __str__(self) -> str:
        return 'NULL' if self.is_null else str(self.value)


NULL = DecodedValue(ValueKind.NULL)


# Type Resolution - MySQL type codes -> decoded kinds

_KIND_BY_TYPE: dict[int, ValueKind] = {}

for t in [FieldType.DECIMAL, FieldType.NEWDECIMAL]:
    _KIND_BY_TYPE[t] = ValueKind.DECIMAL

for t in [FieldType.TINY, FieldType.SHORT, FieldType.LONG, FieldType.INT24, FieldType.BIT]:
    _KIND_BY_TYPE[t] = ValueKind.INTEGER

for t in [FieldType.FLOAT, FieldType.DOUBLE]:
    _KIND_BY_TYPE[t] = ValueKind.DOUBLE

_KIND_BY_TYPE[FieldType.LONGLONG] = ValueKind.INT64
_KIND_BY_TYPE[FieldType.DATE] = ValueKind.DATE
_KIND_BY_TYPE[FieldType.DATETIME] = ValueKind.DATETIME

# TIME is a duration and is never parsed as a time of day
for t in [FieldType.TIME, FieldType.NULL, FieldType.TIMESTAMP, FieldType.YEAR,
          FieldType.NEWDATE, FieldType.TIMESTAMP2, FieldType.TYPED_ARRAY, FieldType.INVALID,
          FieldType.VARCHAR, FieldType.VAR_STRING, FieldType.STRING, FieldType.JSON,
          FieldType.ENUM, FieldType.SET, FieldType.BOOL, FieldType.GEOMETRY]:
    _KIND_BY_TYPE[t] = ValueKind.TEXT

for t in [FieldType.TINY_BLOB, FieldType.MEDIUM_BLOB, FieldType.LONG_BLOB, FieldType.BLOB]:
    _KIND_BY_TYPE[t] = ValueKind.BLOB


def kind_for_type(type_code: int) -> ValueKind:
    """Resolve a declared column type code to the kind its cells decode to.

    Raises DecodeError for type codes with no decoding rule.
    """
    try:
        return _KIND_BY_TYPE[type_code]
    except KeyError:
        raise DecodeError(f'Unknown column type: {type_name(type_code)}') from None


def type_name(type_code: int) -> str:
    """Readable name of a type code, e.g. ``MYSQL_TYPE_LONG``."""
    try:
        return f'MYSQL_TYPE_{FieldType(type_code).name}'
    except ValueError:
        return f'MYSQL_TYPE unknown: ({type_code})'


def _parse_integer(text: str) -> int | None:
    if not _INTEGER_RE.fullmatch(text):
        return None
    return int(text)


def _parse_int64(text: str, unsigned: bool) -> int | None:
    value = _parse_integer(text)
    if value is None:
        return None
    low, high = (0, UINT64_MAX) if unsigned else (INT64_MIN, INT64_MAX)
    if not low <= value <= high:
        return None
    return value


def _parse_double(text: str) -> float | None:
    if not _NUMBER_RE.fullmatch(text):
        return None
    return float(text)


def _parse_decimal(text: str) -> decimal.Decimal | None:
    if not _NUMBER_RE.fullmatch(text):
        return None
    return decimal.Decimal(text)


def _parse_date(text: str) -> DateParts | None:
    match = _DATE_RE.fullmatch(text)
    if not match:
        return None
    parts = DateParts(*map(int, match.groups()))
    try:
        parts.to_date()
    except ValueError:
        return None
    return parts


def _parse_datetime(text: str) -> DateTimeParts | None:
    match = _DATETIME_RE.fullmatch(text)
    if not match:
        return None
    parts = DateTimeParts(*map(int, match.groups()))
    try:
        parts.to_datetime()
    except ValueError:
        return None
    return parts


def _parse(kind: ValueKind, text: str, unsigned: bool) -> Any:
    if kind is ValueKind.INTEGER:
        return _parse_integer(text)
    if kind is ValueKind.INT64:
        return _parse_int64(text, unsigned)
    if kind is ValueKind.DOUBLE:
        return _parse_double(text)
    if kind is ValueKind.DECIMAL:
        return _parse_decimal(text)
    if kind is ValueKind.DATE:
        return _parse_date(text)
    return _parse_datetime(text)


def decode_value(raw: bytes | None, type_code: int, flags: int = 0) -> DecodedValue:
    """Decode one raw text protocol cell according to its declared type code.

    Args:
        raw: Cell bytes, or None for SQL NULL
        type_code: Declared column type code
        flags: Column flags (UNSIGNED widens the 64-bit integer range)

    Returns
        DecodedValue of the kind the type code maps to, or NULL

    Raises
        DecodeError: unknown type code, or invalid UTF-8 in a textual column
    """
    kind = kind_for_type(type_code)

    if raw is None:
        return NULL

    if kind is ValueKind.BLOB:
        return DecodedValue(kind, bytes(raw))

    if kind is ValueKind.TEXT:
        try:
            return DecodedValue(kind, bytes(raw).decode('utf-8'))
        except UnicodeDecodeError as e:
            raise DecodeError(f'Invalid UTF-8 in {type_name(type_code)} column: {e}') from e

    try:
        text = bytes(raw).decode('utf-8')
    except UnicodeDecodeError:
        logger.debug(f'Undecodable bytes in {type_name(type_code)} column, treating as NULL')
        return NULL

    value = _parse(kind, text, bool(flags & FieldFlag.UNSIGNED))
    if value is None:
        logger.debug(f'Malformed {kind.value} value {text!r}, treating as NULL')
        return NULL
    return DecodedValue(kind, value)


# Column - Metadata from column definition packets

@dataclass(frozen=True)
class Column:
    """Result column descriptor. Immutable once the cursor is constructed.
    """
    name: str
    index: int
    type_code: int
    flags: int = 0
    charset_id: int = 0
    length: int = 0
    decimals: int = 0
    table: str = ''
    schema: str = ''

    @property
    def is_binary(self) -> bool:
        return bool(self.flags & FieldFlag.BINARY) or self.charset_id == BINARY_CHARSET_ID

    @property
    def is_unsigned(self) -> bool:
        return bool(self.flags & FieldFlag.UNSIGNED)

    @property
    def nullable(self) -> bool:
        return not self.flags & FieldFlag.NOT_NULL

    @property
    def type_name(self) -> str:
        return type_name(self.type_code)

    @property
    def kind(self) -> ValueKind | None:
        """Decoded kind for this column, None when the type code is unknown."""
        return _KIND_BY_TYPE.get(self.type_code)

    def decode(self, raw: bytes | None) -> DecodedValue:
        return decode_value(raw, self.type_code, self.flags)

    def __repr__(self) -> str:
        return (f'Column(name={self.name!r}, index={self.index}, '
                f'type={self.type_name}, binary={self.is_binary})')

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'index': self.index,
            'type_code': self.type_code,
            'type_name': self.type_name,
            'kind': self.kind.value if self.kind else None,
            'flags': self.flags,
            'charset_id': self.charset_id,
            'length': self.length,
            'decimals': self.decimals,
            'binary': self.is_binary,
            'nullable': self.nullable,
        }

    @staticmethod
    def get_names(columns: list[Self]) -> list[str]:
        return [col.name for col in columns]

    @staticmethod
    def get_column_by_name(columns: list[Self], name: str) -> Self | None:
        found = None
        for col in columns:
            if col.name == name:
                found = col
        return found

    @staticmethod
    def get_column_types_dict(columns: list[Self]) -> dict[str, dict]:
        return {col.name: col.to_dict() for col in columns}
