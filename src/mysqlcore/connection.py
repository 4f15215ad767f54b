"""
Database connection handling over the MySQL client/server protocol.

This module provides:
1. The `connect()` function for opening new connections from options
2. The `Connection` class owning one network session to the server

A connection serialises statements: `execute()` returns a streaming
`ResultCursor`, and no other statement may be sent until that cursor is
exhausted or closed. Issuing one anyway fails fast with CommandOutOfSync.

Connections do no internal locking. Using one connection from several
threads at once is undefined; independent connections share no state and
may be used concurrently.
"""
import logging
import socket
import time
from dataclasses import fields
from typing import Any, Self

from mysqlcore.auth import NATIVE_PASSWORD, SUPPORTED_PLUGINS, scramble
from mysqlcore.constants import CHARSETS, CR, Client, Command, ServerStatus
from mysqlcore.cursor import ResultCursor
from mysqlcore.exceptions import CommandOutOfSync, ConnectionClosed
from mysqlcore.exceptions import ConnectionFailure, DatabaseError, ProtocolError
from mysqlcore.exceptions import QueryError
from mysqlcore.options import DatabaseOptions
from mysqlcore.protocol import FAST_AUTH_SUCCESS, PERFORM_FULL_AUTH, Handshake
from mysqlcore.protocol import Packet, PacketStream, build_handshake_response
from mysqlcore.protocol import parse_auth_switch, parse_column_definition
from mysqlcore.protocol import parse_err, parse_handshake, parse_ok

from libb import load_options

__all__ = [
    'Connection',
    'connect',
]

logger = logging.getLogger(__name__)


class Connection:
    """One authenticated session with a MySQL server.

    Lifecycle: opened by `Connection.open()` / `connect()`, used for any
    number of sequential statements, released by `close()`. Every
    operation after close raises ConnectionClosed.
    """

    def __init__(self, options: DatabaseOptions) -> None:
        self.options = options
        self.query_logger = options.query_logger
        self.calls = 0
        self.time = 0.0
        self.server_status = 0
        self._stream: PacketStream | None = None
        self._handshake: Handshake | None = None
        self._active: ResultCursor | None = None
        self._error: tuple[int, str] = (0, '')

    @classmethod
    def open(cls, options: DatabaseOptions) -> Self:
        """Connect, authenticate and negotiate the character set.

        Raises ConnectionFailure carrying the server (or client) error code
        and message.
        """
        cn = cls(options)
        cn._connect()
        return cn

    def __enter__(self) -> Self:
        """Support for context manager protocol
        """
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        """Close the connection when exiting the context manager
        """
        self.close()

    def __str__(self) -> str:
        return (f'{type(self).__name__}: host={self.host}, port={self.port}, '
                f'user={self.user}, database={self.database}')

    def __repr__(self) -> str:
        state = 'closed' if self.closed else f'thread_id={self.thread_id}'
        return f'<{type(self).__name__} {self.user}@{self.host}:{self.port} {state}>'

    @property
    def host(self) -> str:
        return self.options.hostname

    @property
    def port(self) -> int:
        return self.options.port

    @property
    def user(self) -> str | None:
        return self.options.username

    @property
    def database(self) -> str | None:
        return self.options.database

    @property
    def charset(self) -> str:
        return self.options.charset

    @property
    def closed(self) -> bool:
        return self._stream is None or self._stream.closed

    @property
    def server_version(self) -> str | None:
        return self._handshake.server_version if self._handshake else None

    @property
    def thread_id(self) -> int | None:
        return self._handshake.thread_id if self._handshake else None

    @property
    def in_transaction(self) -> bool:
        """Whether the server reported an open transaction after the last statement."""
        return bool(self.server_status & ServerStatus.IN_TRANS)

    @property
    def active_cursor(self) -> ResultCursor | None:
        return self._active

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def last_error(self) -> tuple[int, str]:
        """(code, message) of the last failed operation, (0, '') after a success.
        """
        self._check_open()
        return self._error

    def execute(self, sql: str) -> ResultCursor:
        """Send `sql` verbatim and return a cursor over its result.

        Statements without a result set yield a cursor with zero columns.

        Raises
            ConnectionClosed: the connection is closed or was lost
            CommandOutOfSync: a previous result has not been exhausted or closed
            QueryError: the server rejected the statement
        """
        self._check_open()
        self._check_idle()

        self.query_logger.log(sql)
        logger.debug(f'SQL:\n{sql}')
        start = time.time()
        try:
            self._stream.write_command(Command.COM_QUERY, sql.encode('utf-8'))
            cursor = self._read_result()
        except QueryError:
            logger.error(f'Error with query:\nSQL:\n{sql}')
            raise
        finally:
            elapsed = time.time() - start
            self.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')

        self._error = (0, '')
        return cursor

    def select(self, sql: str, **kwargs: Any) -> Any:
        """Execute a query, read every row and return the configured data loader's output.
        """
        with self.execute(sql) as cursor:
            columns = list(cursor.columns())
            data = [row.to_dict() for row in cursor]
        logger.debug(f'Select query returned {len(data)} rows')
        return self.options.data_loader(data, columns, **kwargs)

    def ping(self) -> bool:
        """Check that the server is alive.
        """
        self._check_open()
        self._check_idle()
        self._stream.write_command(Command.COM_PING)
        self._read_ok(QueryError)
        return True

    def begin_transaction(self) -> None:
        self.execute('START TRANSACTION').close()

    def commit(self) -> None:
        self.execute('COMMIT').close()

    def rollback(self) -> None:
        self.execute('ROLLBACK').close()

    def close(self) -> None:
        """Close the session. Safe to call more than once.

        A cursor still streaming is abandoned and can no longer be read.
        """
        if self._stream is None:
            return

        if self._active is not None:
            logger.warning('Closing connection with an unread result')
            self._active._abandon()

        if not self._stream.closed:
            try:
                self._stream.write_command(Command.COM_QUIT)
            except DatabaseError as e:
                logger.debug(f'Could not send COM_QUIT: {e}')
        self._stream.close()
        self._stream = None

        logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s '
                     f'(avg: {self.time/max(1,self.calls):.3f}s per query)')

    def _connect(self) -> None:
        charset_id = CHARSETS.get(self.charset)
        if charset_id is None:
            raise ConnectionFailure(CR.CR_CANT_READ_CHARSET,
                                    f'Character set {self.charset!r} is not supported, '
                                    f'supported: {sorted(CHARSETS)}')

        try:
            sock = socket.create_connection((self.host, self.port),
                                            timeout=self.options.timeout or None)
        except OSError as e:
            raise ConnectionFailure(CR.CR_CONN_HOST_ERROR,
                                    f"Can't connect to MySQL server on "
                                    f"'{self.host}:{self.port}' ({e})") from e
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        self._stream = PacketStream(sock)

        try:
            self._handshake = self._read_handshake()
            self._authenticate(charset_id)
            self._set_names()
        except ConnectionFailure:
            self._stream.close()
            self._stream = None
            raise
        except DatabaseError as e:
            self._stream.close()
            self._stream = None
            raise ConnectionFailure(e.code, e.message) from e
        finally:
            if self._stream is not None:
                sock.settimeout(None)

        logger.debug(f'Connected to {self.host}:{self.port} '
                     f'(server {self.server_version}, thread {self.thread_id})')

    def _read_handshake(self) -> Handshake:
        packet = self._stream.read_packet()
        if packet.is_err():
            err = parse_err(packet)
            raise ConnectionFailure(err.code, err.message)
        handshake = parse_handshake(packet)
        if not handshake.capabilities & Client.PROTOCOL_41:
            raise ConnectionFailure(CR.CR_CONNECTION_ERROR,
                                    f'Server {handshake.server_version} does not support protocol 4.1')
        return handshake

    def _authenticate(self, charset_id: int) -> None:
        handshake = self._handshake
        password = (self.options.password or '').encode('utf-8')

        capabilities = Client.default() | Client.CONNECT_ATTRS
        if self.database:
            capabilities |= Client.CONNECT_WITH_DB
        capabilities &= handshake.capabilities

        plugin = handshake.auth_plugin
        if plugin not in SUPPORTED_PLUGINS:
            logger.debug(f'Server default auth plugin {plugin!r} unsupported, '
                         f'offering {NATIVE_PASSWORD}')
            plugin = NATIVE_PASSWORD

        payload = build_handshake_response(
            capabilities, charset_id, self.user,
            scramble(plugin, password, handshake.salt),
            database=self.database,
            auth_plugin=plugin,
            connect_attrs={'_client_name': 'mysqlcore', 'program_name': self.options.appname},
        )
        self._stream.write_packet(payload)

        packet = self._stream.read_packet()
        while not packet.is_ok():
            if packet.is_err():
                err = parse_err(packet)
                self._error = (err.code, err.message)
                raise ConnectionFailure(err.code, err.message)

            if packet.is_auth_switch():
                plugin, salt = parse_auth_switch(packet)
                if plugin not in SUPPORTED_PLUGINS:
                    raise ConnectionFailure(CR.CR_AUTH_PLUGIN_CANNOT_LOAD,
                                            f'Authentication plugin {plugin!r} is not supported')
                logger.debug(f'Server switched authentication to {plugin}')
                self._stream.write_packet(scramble(plugin, password, salt))

            elif packet.is_auth_more_data() and len(packet) > 1:
                status = packet.data[1]
                if status == PERFORM_FULL_AUTH:
                    raise ConnectionFailure(CR.CR_AUTH_PLUGIN_ERR,
                                            'caching_sha2_password full authentication '
                                            'requires a secure connection')
                if status != FAST_AUTH_SUCCESS:
                    raise ProtocolError(f'Unexpected authentication status 0x{status:02x}')

            else:
                raise ProtocolError(f'Unexpected packet 0x{packet.header:02x} during authentication')

            packet = self._stream.read_packet()

        self.server_status = parse_ok(packet).status

    def _set_names(self) -> None:
        self._stream.write_command(Command.COM_QUERY, f'SET NAMES {self.charset}'.encode('ascii'))
        packet = self._stream.read_packet()
        if packet.is_err():
            err = parse_err(packet)
            raise ConnectionFailure(CR.CR_CANT_READ_CHARSET,
                                    f'Server refused character set {self.charset!r}: '
                                    f'({err.code}) {err.message}')
        self.server_status = parse_ok(packet).status

    def _read_result(self) -> ResultCursor:
        packet = self._read_packet()

        if packet.is_err():
            err = parse_err(packet)
            self._error = (err.code, err.message)
            raise QueryError(err.code, err.message)

        if packet.is_ok():
            ok = parse_ok(packet)
            self.server_status = ok.status
            logger.debug(f'Statement affected {ok.affected_rows} rows')
            return ResultCursor(self, ok=ok)

        column_count = packet.read_lenenc_int()
        if not column_count:
            raise ProtocolError(f'Unexpected result header 0x{packet.header:02x}')

        columns = [parse_column_definition(self._read_packet(), i)
                   for i in range(column_count)]
        if not self._read_packet().is_eof():
            raise ProtocolError('Expected EOF after column definitions')

        self._active = ResultCursor(self, columns)
        return self._active

    def _read_ok(self, error_cls: type[DatabaseError]) -> None:
        packet = self._read_packet()
        if packet.is_err():
            err = parse_err(packet)
            self._error = (err.code, err.message)
            raise error_cls(err.code, err.message)
        self.server_status = parse_ok(packet).status
        self._error = (0, '')

    def _read_packet(self) -> Packet:
        self._check_open()
        return self._stream.read_packet()

    def _check_open(self) -> None:
        if self.closed:
            raise ConnectionClosed('Connection is closed')

    def _check_idle(self) -> None:
        if self._active is not None:
            message = 'Commands out of sync; a previous result has not been read or closed'
            self._error = (CommandOutOfSync.default_code, message)
            raise CommandOutOfSync(message)

    def _release(self, cursor: ResultCursor) -> None:
        if self._active is cursor:
            self._active = None

    def _set_error(self, code: int, message: str) -> None:
        self._error = (code, message)


@load_options(cls=DatabaseOptions)
def connect(options: DatabaseOptions | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> Connection:
    """Connect to a MySQL server

    Args:
        options: Can be:
                - DatabaseOptions object
                - String path to configuration
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    Returns
        Open, authenticated Connection
    """
    if isinstance(options, DatabaseOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=DatabaseOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)

    return Connection.open(options)
