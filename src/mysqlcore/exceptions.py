"""
Driver exception classes.

Every error carries the MySQL error ``code`` (server error number, or a
client error number from ``mysqlcore.constants.CR``) and the ``message``.
"""
from mysqlcore.constants import CR


class DatabaseError(Exception):
    """Base class for all driver errors.
    """

    default_code: int = 0

    def __init__(self, code: int | str | None = None, message: str | None = None) -> None:
        if isinstance(code, str) and message is None:
            code, message = None, code
        self.code = self.default_code if code is None else code
        self.message = message or ''
        super().__init__(self.code, self.message)

    def __str__(self) -> str:
        if self.code:
            return f'({self.code}) {self.message}'
        return self.message


class ConnectionFailure(DatabaseError):
    """Error establishing a session: unreachable host, handshake or
    authentication failure, unsupported charset.
    """

    default_code = CR.CR_CONN_HOST_ERROR


class ConnectionClosed(DatabaseError):
    """Operation attempted on a closed connection, or the server went away.
    """

    default_code = CR.CR_SERVER_LOST


class QueryError(DatabaseError):
    """Statement rejected by the server.
    """


class CommandOutOfSync(QueryError):
    """A new statement was issued while a previous result is still pending.
    """

    default_code = CR.CR_COMMANDS_OUT_OF_SYNC


class CursorClosed(DatabaseError):
    """Operation attempted on a disposed result cursor.
    """


class DecodeError(DatabaseError):
    """Cell could not be decoded: unknown column type or invalid text encoding.
    """


class ProtocolError(DatabaseError):
    """Malformed or out-of-sequence packet received from the server.
    """

    default_code = CR.CR_MALFORMED_PACKET


class TypeConversionError(DatabaseError):
    """Decoded value extracted as a type it does not hold.
    """


DbConnectionError = (
    ConnectionFailure,
    ConnectionClosed,
    ProtocolError,
    )
