"""
Transaction context manager.
"""
import logging
import threading
from typing import Any

from mysqlcore.cursor import ResultCursor
from mysqlcore.exceptions import DatabaseError
from mysqlcore.options import use_iterdict_data_loader

from libb import attrdict

logger = logging.getLogger(__name__)

__all__ = ['Transaction']

_local = threading.local()


class Transaction:
    """Context manager for running multiple commands in a transaction.

    Issues START TRANSACTION on enter, COMMIT on a clean exit and ROLLBACK
    when the block raises. Nested transactions on the same connection
    within one thread are not supported.

    Examples
        with Transaction(cn) as tx:
            tx.execute('delete from ...')
            tx.execute('update ...')
    """

    def __init__(self, cn: Any) -> None:
        self.connection = cn

        if not hasattr(_local, 'active_transactions'):
            _local.active_transactions = set()

        if id(cn) in _local.active_transactions:
            raise RuntimeError('Nested transactions are not supported')

    def __enter__(self):
        self.connection.begin_transaction()
        _local.active_transactions.add(id(self.connection))
        logger.debug(f'Started transaction for connection {id(self.connection)}')
        return self

    def __exit__(self, exc_type: type | None, value: Exception | None, traceback: Any | None) -> None:
        try:
            if exc_type is not None:
                logger.warning('Rolling back the current transaction')
                try:
                    self._close_active_cursor()
                    if not self.connection.closed:
                        self.connection.rollback()
                except DatabaseError as e:
                    logger.error(f'Rollback failed: {e}')
            else:
                self._close_active_cursor()
                self.connection.commit()
                logger.debug(f'Committed transaction for connection {id(self.connection)}')
        finally:
            _local.active_transactions.discard(id(self.connection))

    def _close_active_cursor(self) -> None:
        # a result still streaming blocks COMMIT and ROLLBACK
        if not self.connection.closed and self.connection.active_cursor is not None:
            self.connection.active_cursor.close()

    def execute(self, sql: str) -> int:
        """Execute a statement inside the transaction and return the affected row count."""
        with self.connection.execute(sql) as cursor:
            return cursor.affected_rows

    def cursor(self, sql: str) -> ResultCursor:
        """Execute a statement and hand back its streaming cursor."""
        return self.connection.execute(sql)

    def select(self, sql: str, **kwargs: Any) -> Any:
        """Execute a query within the transaction and load every row."""
        return self.connection.select(sql, **kwargs)

    @use_iterdict_data_loader
    def select_row(self, sql: str) -> attrdict:
        """Execute a query and return its single row
        """
        data = self.select(sql)
        assert len(data) == 1, f'Expected one row, got {len(data)}'
        return attrdict(data[0])

    @use_iterdict_data_loader
    def select_scalar(self, sql: str) -> Any:
        """Execute a query and return the single value of its single row
        """
        data = self.select(sql)
        assert len(data) == 1, f'Expected one row, got {len(data)}'
        return next(iter(data[0].values()))
