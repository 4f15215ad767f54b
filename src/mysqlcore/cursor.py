"""
Streaming result cursor and rows.

A `ResultCursor` owns the in-flight response of one statement: its column
definitions are read when the statement executes, its rows are read from
the connection one packet at a time as the caller pulls them. Closing the
cursor drains any unread rows so the connection can accept the next
statement.
"""
import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any, Self

from mysqlcore.exceptions import CursorClosed, QueryError
from mysqlcore.protocol import OkPacket, parse_eof, parse_err, parse_text_row
from mysqlcore.types import Column, DecodedValue

from libb import attrdict

if TYPE_CHECKING:
    from mysqlcore.connection import Connection

logger = logging.getLogger(__name__)

__all__ = ['ResultCursor', 'Row']


class Row:
    """One result row: raw cells plus explicit per-cell nullability.

    Cells hold the bytes the server sent (None for SQL NULL, b'' for an
    empty value). Values are decoded on access, each through its own
    column's declared type.
    """

    __slots__ = ('_cursor', 'rownumber', '_cells')

    def __init__(self, cursor: 'ResultCursor', rownumber: int,
                 cells: list[bytes | None]) -> None:
        self._cursor = cursor
        self.rownumber = rownumber
        self._cells = tuple(cells)

    @property
    def cursor(self) -> 'ResultCursor':
        return self._cursor

    @property
    def columns(self) -> tuple[Column, ...]:
        return self._cursor.columns()

    @property
    def lengths(self) -> list[int]:
        """Byte length of each cell, 0 for NULL."""
        return [len(cell) if cell is not None else 0 for cell in self._cells]

    def get(self, name: str) -> DecodedValue | None:
        """Decoded value of the column called `name`, None if there is no such column.

        Raises DecodeError if that cell cannot be decoded.
        """
        column = self._cursor.column(name)
        if column is None:
            return None
        return column.decode(self._cells[column.index])

    def value_at(self, index: int) -> DecodedValue:
        column = self.columns[index]
        return column.decode(self._cells[column.index])

    def values(self) -> list[DecodedValue]:
        """Decoded values in column order."""
        return [col.decode(self._cells[col.index]) for col in self.columns]

    def raw(self, name: str) -> bytes | None:
        column = self._cursor.column(name)
        if column is None:
            raise KeyError(name)
        return self._cells[column.index]

    def is_null(self, name: str) -> bool:
        return self.raw(name) is None

    def to_dict(self) -> dict[str, Any]:
        """Plain Python values keyed by column name (last column wins on duplicates)."""
        return {col.name: col.decode(self._cells[col.index]).to_python()
                for col in self.columns}

    def to_attrdict(self) -> attrdict:
        return attrdict(self.to_dict())

    def __len__(self) -> int:
        return len(self._cells)

    def __repr__(self) -> str:
        return f'Row(rownumber={self.rownumber}, cells={len(self._cells)})'

    def __str__(self) -> str:
        return ', '.join(f'{col.name}: {col.decode(self._cells[col.index])}'
                         for col in self.columns)


class ResultCursor:
    """Forward-only cursor over one statement's result.

    Statements without a result set (DDL/DML) produce a cursor with no
    columns that is already exhausted; `affected_rows`, `insert_id`,
    `warning_count` and `message` come from the server's OK packet.
    """

    def __init__(self, connection: 'Connection', columns: list[Column] | None = None,
                 ok: OkPacket | None = None) -> None:
        self._connection = connection
        self._columns = tuple(columns or ())
        self._by_name = {col.name: col for col in self._columns}
        self._done = not self._columns
        self._closed = False
        self.rownumber = 0
        ok = ok or OkPacket()
        self.affected_rows = ok.affected_rows
        self.insert_id = ok.insert_id
        self.warning_count = ok.warnings
        self.server_status = ok.status
        self.message = ok.message

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __iter__(self) -> Iterator[Row]:
        while True:
            row = self.next_row()
            if row is None:
                return
            yield row

    def __repr__(self) -> str:
        state = 'closed' if self._closed else 'exhausted' if self._done else 'open'
        return f'ResultCursor(columns={len(self._columns)}, rownumber={self.rownumber}, {state})'

    @property
    def connection(self) -> 'Connection':
        return self._connection

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def exhausted(self) -> bool:
        return self._done

    @property
    def column_count(self) -> int:
        return len(self._columns)

    def columns(self) -> tuple[Column, ...]:
        """Column descriptors in result order."""
        return self._columns

    def column(self, name: str) -> Column | None:
        return self._by_name.get(name)

    def next_row(self) -> Row | None:
        """Read the next row; None once the result is exhausted.

        Raises CursorClosed after an explicit close, QueryError if the server
        aborts the result mid-stream.
        """
        if self._closed:
            raise CursorClosed('Result cursor is closed')
        if self._done:
            return None

        try:
            packet = self._connection._read_packet()
        except Exception:
            self._abandon()
            raise

        if packet.is_err():
            err = parse_err(packet)
            self._finish()
            self._connection._set_error(err.code, err.message)
            raise QueryError(err.code, err.message)

        if packet.is_eof():
            eof = parse_eof(packet)
            self.warning_count = eof.warnings
            self.server_status = eof.status
            self._finish()
            logger.debug(f'Result exhausted after {self.rownumber} rows')
            return None

        row = Row(self, self.rownumber, parse_text_row(packet, len(self._columns)))
        self.rownumber += 1
        return row

    def fetchall(self) -> list[Row]:
        """Read all remaining rows."""
        return list(self)

    def close(self) -> None:
        """Release the result, draining unread rows. Safe to call repeatedly.
        """
        if self._closed:
            return
        if not self._done:
            self._drain()
        self._closed = True

    def _drain(self) -> None:
        skipped = 0
        try:
            while True:
                packet = self._connection._read_packet()
                if packet.is_eof() or packet.is_err():
                    break
                skipped += 1
        except Exception as e:
            logger.warning(f'Could not drain result: {e}')
            self._abandon()
            raise
        if skipped:
            logger.debug(f'Discarded {skipped} unread rows')
        self._finish()

    def _finish(self) -> None:
        self._done = True
        self._connection._release(self)

    def _abandon(self) -> None:
        """Mark the cursor unusable after its connection closed or failed."""
        self._done = True
        self._closed = True
        self._connection._release(self)
