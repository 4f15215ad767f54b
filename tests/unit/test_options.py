import logging

import pytest
from mysqlcore.logger import LoggingQueryLogger, NullQueryLogger
from mysqlcore.options import DatabaseOptions, iterdict_data_loader
from mysqlcore.options import pandas_numpy_data_loader


def test_init_defaults():
    """Test default initialization"""
    options = DatabaseOptions(
        username='testuser',
        password='testpass',
        database='testdb',
    )

    assert options.hostname == 'localhost'
    assert options.port == 3306
    assert options.charset == 'utf8mb4'
    assert options.timeout == 0
    assert options.appname is not None
    assert options.data_loader == iterdict_data_loader
    assert isinstance(options.query_logger, NullQueryLogger)


def test_explicit_options():
    query_logger = LoggingQueryLogger('tests.sql', level=logging.DEBUG)
    options = DatabaseOptions(
        hostname='db.internal',
        username='testuser',
        password='testpass',
        database='testdb',
        port='3307',
        charset='UTF8MB4',
        appname='reporting',
        data_loader=pandas_numpy_data_loader,
        query_logger=query_logger,
    )

    assert options.port == 3307
    assert options.charset == 'utf8mb4'
    assert options.appname == 'reporting'
    assert options.data_loader == pandas_numpy_data_loader
    assert options.query_logger is query_logger


@pytest.mark.parametrize('port', [0, -1, 65536])
def test_port_validation(port):
    with pytest.raises(ValueError):
        DatabaseOptions(username='u', password='p', database='d', port=port)


def test_query_logger_validation():
    """Query logger must have a log(line) method"""
    with pytest.raises(ValueError):
        DatabaseOptions(username='u', password='p', database='d', query_logger=object())


if __name__ == '__main__':
    __import__('pytest').main([__file__])
