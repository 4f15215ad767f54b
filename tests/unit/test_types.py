import datetime
import decimal

import pytest
from mysqlcore.constants import FieldFlag, FieldType
from mysqlcore.exceptions import DecodeError, TypeConversionError
from mysqlcore.types import NULL, Column, DateParts, DateTimeParts, DecodedValue
from mysqlcore.types import ValueKind, decode_value, kind_for_type, type_name


@pytest.mark.parametrize(('type_code', 'raw', 'expected'), [
    (FieldType.TINY, b'-7', -7),
    (FieldType.SHORT, b'300', 300),
    (FieldType.LONG, b'2147483647', 2147483647),
    (FieldType.INT24, b'+12', 12),
    (FieldType.BIT, b'1', 1),
])
def test_integer_types(type_code, raw, expected):
    value = decode_value(raw, type_code)
    assert value.kind is ValueKind.INTEGER
    assert value.as_int() == expected


def test_longlong_range():
    """64-bit values are range-checked, unsigned columns get the unsigned range"""
    assert decode_value(b'9223372036854775807', FieldType.LONGLONG).as_int() == 2 ** 63 - 1
    assert decode_value(b'-9223372036854775808', FieldType.LONGLONG).kind is ValueKind.INT64
    assert decode_value(b'9223372036854775808', FieldType.LONGLONG).is_null
    unsigned = decode_value(b'18446744073709551615', FieldType.LONGLONG, FieldFlag.UNSIGNED)
    assert unsigned.as_int() == 2 ** 64 - 1
    assert decode_value(b'-1', FieldType.LONGLONG, FieldFlag.UNSIGNED).is_null


def test_double_and_decimal():
    assert decode_value(b'1.5e3', FieldType.DOUBLE).as_float() == 1500.0
    assert decode_value(b'-0.25', FieldType.FLOAT).as_float() == -0.25
    assert decode_value(b'12.340', FieldType.NEWDECIMAL).as_decimal() == decimal.Decimal('12.340')
    assert decode_value(b'7', FieldType.DECIMAL).kind is ValueKind.DECIMAL


@pytest.mark.parametrize(('type_code', 'raw'), [
    (FieldType.LONG, b'12abc'),
    (FieldType.LONG, b''),
    (FieldType.LONG, b'1_000'),
    (FieldType.DOUBLE, b'nan'),
    (FieldType.DOUBLE, b' 1.0'),
    (FieldType.NEWDECIMAL, b'1,5'),
    (FieldType.DATE, b'not-a-date'),
    (FieldType.DATE, b'2024-02-30'),
    (FieldType.DATE, b'0000-00-00'),
    (FieldType.DATETIME, b'2024-03-15'),
    (FieldType.DATETIME, b'2024-03-15 10:30:00.250000'),
    (FieldType.LONG, b'\xff\xfe'),
])
def test_malformed_text_is_null(type_code, raw):
    """Unparsable numeric and date text degrades to null"""
    assert decode_value(raw, type_code) is NULL


def test_date():
    value = decode_value(b'2024-03-15', FieldType.DATE)
    assert value.kind is ValueKind.DATE
    assert value.as_date_parts() == DateParts(2024, 3, 15)
    assert value.as_date() == datetime.date(2024, 3, 15)


def test_datetime():
    value = decode_value(b'2024-03-15 10:30:59', FieldType.DATETIME)
    assert value.as_datetime_parts() == DateTimeParts(2024, 3, 15, 10, 30, 59)
    assert value.to_python() == datetime.datetime(2024, 3, 15, 10, 30, 59)


def test_blob_keeps_bytes():
    value = decode_value(b'\x00\xff\x41', FieldType.BLOB)
    assert value.kind is ValueKind.BLOB
    assert value.as_bytes() == b'\x00\xff\x41'
    assert len(value.as_bytes()) == 3
    with pytest.raises(TypeConversionError):
        value.as_text()


@pytest.mark.parametrize('type_code', [
    FieldType.VARCHAR, FieldType.VAR_STRING, FieldType.STRING, FieldType.JSON,
    FieldType.ENUM, FieldType.SET, FieldType.TIME, FieldType.TIMESTAMP,
    FieldType.YEAR, FieldType.NEWDATE, FieldType.GEOMETRY,
])
def test_textual_types(type_code):
    value = decode_value('héllo'.encode(), type_code)
    assert value.kind is ValueKind.TEXT
    assert value.as_text() == 'héllo'


def test_time_is_not_parsed():
    """TIME is a duration and stays text"""
    assert decode_value(b'838:59:59', FieldType.TIME).as_text() == '838:59:59'


def test_invalid_utf8_in_text_raises():
    with pytest.raises(DecodeError):
        decode_value(b'\xc3\x28', FieldType.VAR_STRING)


@pytest.mark.parametrize('type_code', [FieldType.DATETIME2, FieldType.TIME2, 21, 100, 242])
def test_unknown_type_raises(type_code):
    with pytest.raises(DecodeError):
        decode_value(b'1', type_code)
    with pytest.raises(DecodeError):
        decode_value(None, type_code)


def test_sql_null_for_every_known_type():
    for type_code in FieldType:
        if type_code in {FieldType.DATETIME2, FieldType.TIME2}:
            continue
        assert decode_value(None, type_code) is NULL


def test_empty_text_is_not_null():
    value = decode_value(b'', FieldType.VAR_STRING)
    assert not value.is_null
    assert value.as_text() == ''


def test_extraction_mismatch():
    value = decode_value(b'5', FieldType.LONG)
    with pytest.raises(TypeConversionError):
        value.as_float()
    with pytest.raises(TypeConversionError):
        NULL.as_int()


def test_to_python_and_str():
    assert NULL.to_python() is None
    assert str(NULL) == 'NULL'
    assert str(DecodedValue(ValueKind.INTEGER, 5)) == '5'
    assert decode_value(b'2024-03-15', FieldType.DATE).to_python() == datetime.date(2024, 3, 15)


def test_kind_for_type_and_names():
    assert kind_for_type(FieldType.LONGLONG) is ValueKind.INT64
    assert type_name(FieldType.LONG) == 'MYSQL_TYPE_LONG'
    assert type_name(99) == 'MYSQL_TYPE unknown: (99)'
    with pytest.raises(DecodeError):
        kind_for_type(99)


def test_column_helpers():
    column = Column(name='id', index=0, type_code=FieldType.LONGLONG,
                    flags=FieldFlag.NOT_NULL | FieldFlag.UNSIGNED, charset_id=63)
    assert column.is_binary
    assert column.is_unsigned
    assert not column.nullable
    assert column.kind is ValueKind.INT64
    assert column.decode(b'18446744073709551615').as_int() == 2 ** 64 - 1
    assert column.to_dict()['type_name'] == 'MYSQL_TYPE_LONGLONG'


def test_column_unknown_kind():
    column = Column(name='x', index=0, type_code=99)
    assert column.kind is None
    assert column.to_dict()['kind'] is None


def test_column_lookup_last_wins():
    columns = [
        Column(name='id', index=0, type_code=FieldType.LONG),
        Column(name='name', index=1, type_code=FieldType.VARCHAR),
        Column(name='id', index=2, type_code=FieldType.LONGLONG),
    ]
    assert Column.get_names(columns) == ['id', 'name', 'id']
    assert Column.get_column_by_name(columns, 'id').index == 2
    assert Column.get_column_by_name(columns, 'missing') is None
    assert set(Column.get_column_types_dict(columns)) == {'id', 'name'}


if __name__ == '__main__':
    __import__('pytest').main([__file__])
