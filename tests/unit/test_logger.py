import logging

from mysqlcore.logger import LoggingQueryLogger, NullQueryLogger, QueryLogger


def test_null_logger_satisfies_protocol():
    logger = NullQueryLogger()
    assert isinstance(logger, QueryLogger)
    logger.log('select 1')


def test_logging_logger_forwards(caplog):
    query_logger = LoggingQueryLogger('tests.sql')
    with caplog.at_level(logging.INFO, logger='tests.sql'):
        query_logger.log('select 1')
    assert [r.getMessage() for r in caplog.records] == ['select 1']
    assert caplog.records[0].levelno == logging.INFO


def test_logging_logger_accepts_logger_instance(caplog):
    target = logging.getLogger('tests.sql.debug')
    query_logger = LoggingQueryLogger(target, level=logging.DEBUG)
    with caplog.at_level(logging.DEBUG, logger='tests.sql.debug'):
        query_logger.log('select 2')
    assert caplog.records[0].name == 'tests.sql.debug'
    assert 'DEBUG' in repr(query_logger)


def test_any_object_with_log_method():
    class Recorder:
        def __init__(self):
            self.lines = []

        def log(self, line):
            self.lines.append(line)

    assert isinstance(Recorder(), QueryLogger)
