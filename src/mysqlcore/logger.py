"""
Query logging capability injected into connections.

A connection reports every statement it sends through its `QueryLogger`.
The default logger discards lines; `LoggingQueryLogger` forwards them to
the standard `logging` machinery.
"""
import logging
from typing import Protocol, runtime_checkable

__all__ = [
    'QueryLogger',
    'NullQueryLogger',
    'LoggingQueryLogger',
]


@runtime_checkable
class QueryLogger(Protocol):
    """Anything with a single `log(line)` method."""

    def log(self, line: str) -> None:
        ...


class NullQueryLogger:
    """Discards every line."""

    def log(self, line: str) -> None:
        pass

    def __repr__(self) -> str:
        return 'NullQueryLogger()'


class LoggingQueryLogger:
    """Forwards lines to a `logging.Logger` at a fixed level.
    """

    def __init__(self, logger: logging.Logger | str = 'mysqlcore.query',
                 level: int = logging.INFO) -> None:
        if isinstance(logger, str):
            logger = logging.getLogger(logger)
        self.logger = logger
        self.level = level

    def log(self, line: str) -> None:
        self.logger.log(self.level, line)

    def __repr__(self) -> str:
        return f'LoggingQueryLogger({self.logger.name!r}, level={logging.getLevelName(self.level)})'
