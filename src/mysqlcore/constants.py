"""
MySQL client/server protocol constants.

Values follow the server's ``include/mysql_com.h`` and
``include/field_types.h``.
"""
from enum import IntEnum, IntFlag

__all__ = [
    'FieldType',
    'FieldFlag',
    'Client',
    'Command',
    'ServerStatus',
    'CR',
    'CHARSETS',
    'MAX_PACKET_LENGTH',
    'NULL_COLUMN',
    'BINARY_CHARSET_ID',
]

MAX_PACKET_LENGTH = 2 ** 24 - 1

# Marker for a NULL cell in a text protocol row
NULL_COLUMN = 0xFB


class FieldType(IntEnum):
    """Column type codes reported in column definition packets.
    """
    DECIMAL = 0
    TINY = 1
    SHORT = 2
    LONG = 3
    FLOAT = 4
    DOUBLE = 5
    NULL = 6
    TIMESTAMP = 7
    LONGLONG = 8
    INT24 = 9
    DATE = 10
    TIME = 11
    DATETIME = 12
    YEAR = 13
    NEWDATE = 14
    VARCHAR = 15
    BIT = 16
    TIMESTAMP2 = 17
    DATETIME2 = 18
    TIME2 = 19
    TYPED_ARRAY = 20
    INVALID = 243
    BOOL = 244
    JSON = 245
    NEWDECIMAL = 246
    ENUM = 247
    SET = 248
    TINY_BLOB = 249
    MEDIUM_BLOB = 250
    LONG_BLOB = 251
    BLOB = 252
    VAR_STRING = 253
    STRING = 254
    GEOMETRY = 255


class FieldFlag(IntFlag):
    """Column definition flags.
    """
    NOT_NULL = 1
    PRI_KEY = 2
    UNIQUE_KEY = 4
    MULTIPLE_KEY = 8
    BLOB = 16
    UNSIGNED = 32
    ZEROFILL = 64
    BINARY = 128
    ENUM = 256
    AUTO_INCREMENT = 512
    TIMESTAMP = 1024
    SET = 2048


class Client(IntFlag):
    """Capability flags exchanged during the handshake.
    """
    LONG_PASSWORD = 1
    FOUND_ROWS = 1 << 1
    LONG_FLAG = 1 << 2
    CONNECT_WITH_DB = 1 << 3
    NO_SCHEMA = 1 << 4
    COMPRESS = 1 << 5
    ODBC = 1 << 6
    LOCAL_FILES = 1 << 7
    IGNORE_SPACE = 1 << 8
    PROTOCOL_41 = 1 << 9
    INTERACTIVE = 1 << 10
    SSL = 1 << 11
    IGNORE_SIGPIPE = 1 << 12
    TRANSACTIONS = 1 << 13
    RESERVED = 1 << 14
    SECURE_CONNECTION = 1 << 15
    MULTI_STATEMENTS = 1 << 16
    MULTI_RESULTS = 1 << 17
    PS_MULTI_RESULTS = 1 << 18
    PLUGIN_AUTH = 1 << 19
    CONNECT_ATTRS = 1 << 20
    PLUGIN_AUTH_LENENC_CLIENT_DATA = 1 << 21
    CAN_HANDLE_EXPIRED_PASSWORDS = 1 << 22
    SESSION_TRACK = 1 << 23
    DEPRECATE_EOF = 1 << 24

    @classmethod
    def default(cls) -> 'Client':
        return (cls.LONG_PASSWORD | cls.LONG_FLAG | cls.PROTOCOL_41
                | cls.TRANSACTIONS | cls.SECURE_CONNECTION
                | cls.PLUGIN_AUTH | cls.PLUGIN_AUTH_LENENC_CLIENT_DATA)


class Command(IntEnum):
    """Command phase opcodes (first payload byte of a client packet).
    """
    COM_SLEEP = 0x00
    COM_QUIT = 0x01
    COM_INIT_DB = 0x02
    COM_QUERY = 0x03
    COM_FIELD_LIST = 0x04
    COM_PING = 0x0E


class ServerStatus(IntFlag):
    IN_TRANS = 1
    AUTOCOMMIT = 2
    MORE_RESULTS_EXISTS = 8
    NO_GOOD_INDEX_USED = 16
    NO_INDEX_USED = 32
    CURSOR_EXISTS = 64
    LAST_ROW_SENT = 128
    DB_DROPPED = 256
    NO_BACKSLASH_ESCAPES = 512


class CR(IntEnum):
    """Client-side error numbers (``include/errmsg.h``).
    """
    CR_UNKNOWN_ERROR = 2000
    CR_CONNECTION_ERROR = 2002
    CR_CONN_HOST_ERROR = 2003
    CR_SERVER_GONE_ERROR = 2006
    CR_SERVER_LOST = 2013
    CR_COMMANDS_OUT_OF_SYNC = 2014
    CR_CANT_READ_CHARSET = 2019
    CR_MALFORMED_PACKET = 2027
    CR_AUTH_PLUGIN_CANNOT_LOAD = 2059
    CR_AUTH_PLUGIN_ERR = 2061


# charset name -> default collation id; text is always decoded as UTF-8,
# so only UTF-8 compatible character sets can be negotiated
CHARSETS: dict[str, int] = {
    'ascii': 11,
    'utf8': 33,
    'utf8mb3': 33,
    'utf8mb4': 45,
}

# charset id that marks a column as binary data
BINARY_CHARSET_ID = 63
