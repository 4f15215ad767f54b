from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

import pandas as pd
import pyarrow as pa
from mysqlcore.logger import NullQueryLogger, QueryLogger
from mysqlcore.types import Column, ValueKind

from libb import ConfigOptions, scriptname

__all__ = [
    'DatabaseOptions',
    'pandas_numpy_data_loader',
    'pandas_pyarrow_data_loader',
    'iterdict_data_loader',
    'use_iterdict_data_loader',
]


def use_iterdict_data_loader(func):
    """Temporarily use default dict loader over user-specified loader"""

    @wraps(func)
    def inner(*args, **kwargs):
        cn = args[0]

        if hasattr(cn, 'connection') and not hasattr(cn, 'options'):
            cn = cn.connection

        original_data_loader = cn.options.data_loader
        cn.options.data_loader = iterdict_data_loader

        try:
            return func(*args, **kwargs)
        finally:
            cn.options.data_loader = original_data_loader

    return inner


def iterdict_data_loader(data, columns, **kwargs) -> list[dict]:
    """Minimal data loader.

    Accepts additional keyword arguments for compatibility with other data
    loaders, but doesn't use them.
    """
    if not data:
        return []
    return list(data)


_NUMPY_DTYPES = {
    ValueKind.INTEGER: 'Int64',
    ValueKind.INT64: 'Int64',
    ValueKind.DOUBLE: 'float64',
}


def _numpy_column(series: pd.Series, column: Column) -> pd.Series:
    """Cast a loaded column to the dtype matching its decoded kind.

    Integers become nullable Int64 (UInt64 for unsigned BIGINT), dates and
    datetimes become datetime64. Decimal, text and blob cells stay objects.
    """
    kind = column.kind
    if kind in {ValueKind.DATE, ValueKind.DATETIME}:
        return pd.to_datetime(series)
    if kind is ValueKind.INT64 and column.is_unsigned:
        return series.astype('UInt64')
    dtype = _NUMPY_DTYPES.get(kind)
    return series.astype(dtype) if dtype else series


def _empty_dataframe(columns) -> pd.DataFrame:
    """Create empty DataFrame with column metadata."""
    df = pd.DataFrame(columns=Column.get_names(columns))
    df.attrs['column_types'] = Column.get_column_types_dict(columns)
    return df


def pandas_numpy_data_loader(data, columns, **kwargs) -> pd.DataFrame:
    """Pandas DataFrame loader with NumPy-backed dtypes per column kind.

    Always returns a DataFrame, never None, with columns preserved for empty results.
    Includes column metadata in the DataFrame.attrs attribute.
    """
    df = pd.DataFrame.from_records(list(data or []), columns=Column.get_names(columns))
    for i, column in enumerate(columns):
        df.isetitem(i, _numpy_column(df.iloc[:, i], column))
    df.attrs['column_types'] = Column.get_column_types_dict(columns)
    return df


def pandas_pyarrow_data_loader(data, columns, **kwargs) -> pd.DataFrame:
    """PyArrow-based pandas DataFrame loader.

    Always returns a DataFrame, never None, with columns preserved for empty results.
    """
    if not data:
        return _empty_dataframe(columns)

    column_names = Column.get_names(columns)
    columns_data = [[row[col] for row in data] for col in column_names]
    df = pa.table(columns_data, names=column_names).to_pandas(types_mapper=pd.ArrowDtype)
    df.attrs['column_types'] = Column.get_column_types_dict(columns)
    return df


@dataclass
class DatabaseOptions(ConfigOptions):
    """Options

    Connection options:
    - hostname, port: server address (default: localhost:3306)
    - username, password, database: credentials and default schema
    - charset: connection character set (default: utf8mb4)
    - timeout: connect timeout in seconds, 0 waits indefinitely

    Client options:
    - appname: program name reported to the server
    - data_loader: callable turning rows into the `select` result
    - query_logger: object with a `log(line)` method receiving each statement
    """
    hostname: str = 'localhost'
    username: str = None
    password: str = None
    database: str = None
    port: int = 3306
    charset: str = 'utf8mb4'
    timeout: int = 0
    appname: str = None
    data_loader: Callable[..., Any] | None = None
    query_logger: QueryLogger | None = None

    def __post_init__(self):
        if not 0 < int(self.port) < 65536:
            raise ValueError(f'port must be between 1 and 65535, got {self.port}')
        self.port = int(self.port)
        self.charset = (self.charset or 'utf8mb4').lower()
        self.appname = self.appname or scriptname() or 'python_console'
        if self.data_loader is None:
            self.data_loader = iterdict_data_loader
        if self.query_logger is None:
            self.query_logger = NullQueryLogger()
        if not isinstance(self.query_logger, QueryLogger):
            raise ValueError('query_logger must provide a log(line) method')
