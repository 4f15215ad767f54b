"""
MySQL client library speaking the client/server protocol directly.

Statements can be issued either as:
- Module functions: db.execute(cn, sql), db.select(cn, sql)
- Connection methods: cn.execute(sql), cn.select(sql)

The module functions are facades over the connection methods.
"""
__version__ = '0.1.0'

from typing import Any

from mysqlcore.connection import Connection, connect
from mysqlcore.cursor import ResultCursor, Row
from mysqlcore.exceptions import CommandOutOfSync, ConnectionClosed
from mysqlcore.exceptions import ConnectionFailure, CursorClosed, DatabaseError
from mysqlcore.exceptions import DbConnectionError, DecodeError, ProtocolError
from mysqlcore.exceptions import QueryError, TypeConversionError
from mysqlcore.logger import LoggingQueryLogger, NullQueryLogger, QueryLogger
from mysqlcore.options import DatabaseOptions, iterdict_data_loader
from mysqlcore.options import pandas_numpy_data_loader
from mysqlcore.options import pandas_pyarrow_data_loader
from mysqlcore.transaction import Transaction as transaction
from mysqlcore.types import NULL, Column, DateParts, DateTimeParts
from mysqlcore.types import DecodedValue, ValueKind, decode_value


def execute(cn: Connection, sql: str) -> int:
    """Execute a statement, discard any result rows and return the affected row count.
    """
    with cn.execute(sql) as cursor:
        return cursor.affected_rows


def select(cn: Connection, sql: str, **kwargs: Any) -> Any:
    """Execute a query and return all rows through the connection's data loader.
    """
    return cn.select(sql, **kwargs)


def isconnection(obj: Any) -> bool:
    """Check if object is an open mysqlcore connection.
    """
    return isinstance(obj, Connection) and not obj.closed


__all__ = [
    # Connection
    'Connection',
    'connect',
    'isconnection',
    'transaction',
    # Statements
    'execute',
    'select',
    # Results
    'ResultCursor',
    'Row',
    'Column',
    'DecodedValue',
    'ValueKind',
    'DateParts',
    'DateTimeParts',
    'NULL',
    'decode_value',
    # Options
    'DatabaseOptions',
    'iterdict_data_loader',
    'pandas_numpy_data_loader',
    'pandas_pyarrow_data_loader',
    'QueryLogger',
    'NullQueryLogger',
    'LoggingQueryLogger',
    # Exceptions
    'DatabaseError',
    'ConnectionFailure',
    'ConnectionClosed',
    'QueryError',
    'CommandOutOfSync',
    'CursorClosed',
    'DecodeError',
    'ProtocolError',
    'TypeConversionError',
    'DbConnectionError',
]
