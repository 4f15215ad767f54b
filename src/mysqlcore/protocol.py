"""
MySQL client/server protocol wire codec.

Packet: [length:3B LE][sequence:1B][payload:length]

Payloads of 2**24-1 bytes or more are split across consecutive packets; a
packet shorter than the maximum terminates the sequence.

This module provides:
1. `Packet` - a read cursor over one reassembled payload
2. Parsers for the server greeting, OK/ERR/EOF, auth switch requests,
   column definitions and text protocol rows
3. Encoders for the handshake response and command packets
4. `PacketStream` - framing and sequence tracking over a socket
"""
import logging
import struct
from dataclasses import dataclass, field
from typing import Any

from mysqlcore.constants import CR, MAX_PACKET_LENGTH, NULL_COLUMN, Client
from mysqlcore.constants import Command
from mysqlcore.exceptions import ConnectionClosed, ProtocolError
from mysqlcore.types import Column

logger = logging.getLogger(__name__)

__all__ = [
    'Packet',
    'Handshake',
    'OkPacket',
    'ErrPacket',
    'EofPacket',
    'PacketStream',
    'lenenc_int',
    'lenenc_bytes',
    'parse_handshake',
    'parse_ok',
    'parse_err',
    'parse_eof',
    'parse_auth_switch',
    'parse_column_definition',
    'parse_text_row',
    'build_handshake_response',
    'encode_command',
]

HEADER_SIZE = 4

OK_HEADER = 0x00
EOF_HEADER = 0xFE
ERR_HEADER = 0xFF
AUTH_MORE_DATA_HEADER = 0x01

# caching_sha2_password status bytes carried in an AuthMoreData packet
FAST_AUTH_SUCCESS = 0x03
PERFORM_FULL_AUTH = 0x04


class Packet:
    """Read cursor over one packet payload.
    """

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f'Packet(length={len(self.data)}, pos={self.pos})'

    @property
    def header(self) -> int:
        """First byte of the payload, -1 for an empty payload."""
        return self.data[0] if self.data else -1

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos

    def is_ok(self) -> bool:
        return self.header == OK_HEADER and len(self.data) >= 7

    def is_err(self) -> bool:
        return self.header == ERR_HEADER

    def is_eof(self) -> bool:
        return self.header == EOF_HEADER and len(self.data) < 9

    def is_auth_switch(self) -> bool:
        return self.header == EOF_HEADER

    def is_auth_more_data(self) -> bool:
        return self.header == AUTH_MORE_DATA_HEADER

    def read(self, size: int) -> bytes:
        if size > self.remaining:
            raise ProtocolError(f'Packet truncated: need {size} bytes at offset '
                                f'{self.pos}, have {self.remaining}')
        chunk = self.data[self.pos:self.pos + size]
        self.pos += size
        return chunk

    def skip(self, size: int) -> None:
        self.read(size)

    def read_remaining(self) -> bytes:
        chunk = self.data[self.pos:]
        self.pos = len(self.data)
        return chunk

    def read_uint8(self) -> int:
        return self.read(1)[0]

    def read_uint16(self) -> int:
        return struct.unpack('<H', self.read(2))[0]

    def read_uint24(self) -> int:
        low, high = struct.unpack('<HB', self.read(3))
        return low + (high << 16)

    def read_uint32(self) -> int:
        return struct.unpack('<I', self.read(4))[0]

    def read_uint64(self) -> int:
        return struct.unpack('<Q', self.read(8))[0]

    def read_lenenc_int(self) -> int | None:
        """Length-encoded integer; None for the 0xFB NULL marker.
        """
        first = self.read_uint8()
        if first < 0xFB:
            return first
        if first == NULL_COLUMN:
            return None
        if first == 0xFC:
            return self.read_uint16()
        if first == 0xFD:
            return self.read_uint24()
        if first == 0xFE:
            return self.read_uint64()
        raise ProtocolError(f'Invalid length-encoded integer prefix 0x{first:02x}')

    def read_lenenc_bytes(self) -> bytes | None:
        size = self.read_lenenc_int()
        if size is None:
            return None
        return self.read(size)

    def read_null_terminated(self) -> bytes:
        end = self.data.find(b'\0', self.pos)
        if end < 0:
            # last field of some packets may omit the terminator
            return self.read_remaining()
        chunk = self.data[self.pos:end]
        self.pos = end + 1
        return chunk


@dataclass(frozen=True)
class Handshake:
    """Initial handshake (protocol v10) sent by the server.
    """
    protocol_version: int
    server_version: str
    thread_id: int
    salt: bytes
    capabilities: int
    charset_id: int = 0
    status: int = 0
    auth_plugin: str = ''


@dataclass(frozen=True)
class OkPacket:
    affected_rows: int = 0
    insert_id: int = 0
    status: int = 0
    warnings: int = 0
    message: str = ''


@dataclass(frozen=True)
class ErrPacket:
    code: int
    message: str
    sql_state: str = 'HY000'


@dataclass(frozen=True)
class EofPacket:
    warnings: int = 0
    status: int = 0


def lenenc_int(value: int) -> bytes:
    """Encode a length-encoded integer.
    """
    if value < 0:
        raise ValueError(f'Length-encoded integers are unsigned: {value}')
    if value < 0xFB:
        return bytes((value,))
    if value < 2 ** 16:
        return b'\xfc' + struct.pack('<H', value)
    if value < 2 ** 24:
        return b'\xfd' + struct.pack('<I', value)[:3]
    return b'\xfe' + struct.pack('<Q', value)


def lenenc_bytes(value: bytes) -> bytes:
    return lenenc_int(len(value)) + value


def _plugin_name(raw: bytes) -> str:
    try:
        return raw.decode('ascii')
    except UnicodeDecodeError as e:
        raise ProtocolError(CR.CR_MALFORMED_PACKET, f'Malformed auth plugin name: {raw!r}') from e


def parse_handshake(packet: Packet) -> Handshake:
    """Parse the server greeting.
    """
    protocol_version = packet.read_uint8()
    if protocol_version != 10:
        raise ProtocolError(CR.CR_MALFORMED_PACKET,
                            f'Unsupported protocol version {protocol_version}')
    server_version = packet.read_null_terminated().decode('latin-1')
    thread_id = packet.read_uint32()
    salt = packet.read(8)
    packet.skip(1)
    capabilities = packet.read_uint16()

    charset_id = status = 0
    salt_length = 0
    if packet.remaining >= 16:
        charset_id = packet.read_uint8()
        status = packet.read_uint16()
        capabilities |= packet.read_uint16() << 16
        salt_length = packet.read_uint8()
        packet.skip(10)

    if capabilities & Client.SECURE_CONNECTION and packet.remaining:
        part2 = packet.read(min(max(13, salt_length - 8), packet.remaining))
        salt += part2.rstrip(b'\0')

    auth_plugin = ''
    if capabilities & Client.PLUGIN_AUTH and packet.remaining:
        auth_plugin = _plugin_name(packet.read_null_terminated())

    return Handshake(protocol_version=protocol_version, server_version=server_version,
                     thread_id=thread_id, salt=salt, capabilities=capabilities,
                     charset_id=charset_id, status=status, auth_plugin=auth_plugin)


def parse_ok(packet: Packet) -> OkPacket:
    """Parse an OK packet (header 0x00, or 0xFE when it replaces an EOF).
    """
    packet.skip(1)
    affected_rows = packet.read_lenenc_int() or 0
    insert_id = packet.read_lenenc_int() or 0
    status = packet.read_uint16()
    warnings = packet.read_uint16()
    message = packet.read_remaining().decode('utf-8', errors='replace')
    return OkPacket(affected_rows=affected_rows, insert_id=insert_id,
                    status=status, warnings=warnings, message=message)


def parse_err(packet: Packet) -> ErrPacket:
    """Parse an ERR packet.

    The SQL state marker is absent when the server rejects a connection
    before capabilities are negotiated.
    """
    packet.skip(1)
    code = packet.read_uint16()
    sql_state = 'HY000'
    if packet.remaining and packet.data[packet.pos] == ord('#'):
        packet.skip(1)
        sql_state = packet.read(5).decode('ascii', errors='replace')
    message = packet.read_remaining().decode('utf-8', errors='replace')
    return ErrPacket(code=code, message=message, sql_state=sql_state)


def parse_eof(packet: Packet) -> EofPacket:
    packet.skip(1)
    if packet.remaining < 4:
        return EofPacket()
    warnings = packet.read_uint16()
    status = packet.read_uint16()
    return EofPacket(warnings=warnings, status=status)


def parse_auth_switch(packet: Packet) -> tuple[str, bytes]:
    """Parse an AuthSwitchRequest into (plugin name, salt).
    """
    packet.skip(1)
    plugin = _plugin_name(packet.read_null_terminated())
    salt = packet.read_remaining().rstrip(b'\0')
    return plugin, salt


def parse_column_definition(packet: Packet, index: int) -> Column:
    """Parse a ColumnDefinition41 packet into the column at ordinal `index`.
    """
    packet.read_lenenc_bytes()  # catalog, always "def"
    schema = packet.read_lenenc_bytes() or b''
    table = packet.read_lenenc_bytes() or b''
    packet.read_lenenc_bytes()  # org_table
    name = packet.read_lenenc_bytes() or b''
    packet.read_lenenc_bytes()  # org_name
    packet.read_lenenc_int()  # length of fixed fields, always 0x0c
    charset_id = packet.read_uint16()
    length = packet.read_uint32()
    type_code = packet.read_uint8()
    flags = packet.read_uint16()
    decimals = packet.read_uint8()
    return Column(
        name=name.decode('utf-8', errors='replace'),
        index=index,
        type_code=type_code,
        flags=flags,
        charset_id=charset_id,
        length=length,
        decimals=decimals,
        table=table.decode('utf-8', errors='replace'),
        schema=schema.decode('utf-8', errors='replace'),
    )


def parse_text_row(packet: Packet, column_count: int) -> list[bytes | None]:
    """Parse a text protocol row into raw cells.

    SQL NULL is returned as None, an empty value as b''.
    """
    cells: list[bytes | None] = []
    for _ in range(column_count):
        if packet.remaining and packet.data[packet.pos] == NULL_COLUMN:
            packet.skip(1)
            cells.append(None)
        else:
            cells.append(packet.read_lenenc_bytes())
    if packet.remaining:
        raise ProtocolError(f'{packet.remaining} trailing bytes after {column_count} columns')
    return cells


def build_handshake_response(capabilities: int, charset_id: int, username: str,
                             auth_response: bytes, database: str | None = None,
                             auth_plugin: str = '',
                             connect_attrs: dict[str, str] | None = None) -> bytes:
    """Build a HandshakeResponse41 payload.
    """
    parts = [
        struct.pack('<IIB', capabilities, MAX_PACKET_LENGTH, charset_id),
        b'\0' * 23,
        (username or '').encode('utf-8') + b'\0',
    ]

    if capabilities & Client.PLUGIN_AUTH_LENENC_CLIENT_DATA:
        parts.append(lenenc_bytes(auth_response))
    elif capabilities & Client.SECURE_CONNECTION:
        parts.append(struct.pack('<B', len(auth_response)) + auth_response)
    else:
        parts.append(auth_response + b'\0')

    if capabilities & Client.CONNECT_WITH_DB:
        parts.append((database or '').encode('utf-8') + b'\0')

    if capabilities & Client.PLUGIN_AUTH:
        parts.append(auth_plugin.encode('ascii') + b'\0')

    if capabilities & Client.CONNECT_ATTRS:
        attrs = b''.join(
            lenenc_bytes(k.encode('utf-8')) + lenenc_bytes(v.encode('utf-8'))
            for k, v in (connect_attrs or {}).items()
        )
        parts.append(lenenc_bytes(attrs))

    return b''.join(parts)


def encode_command(command: Command, argument: bytes = b'') -> bytes:
    """Build a command phase payload.
    """
    return bytes((command,)) + argument


@dataclass
class PacketStream:
    """Packet framing and sequence-id tracking over a connected socket.

    Reads block on the socket. Any socket failure closes the stream and
    raises ConnectionClosed.
    """
    sock: Any
    sequence: int = 0
    _reader: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self._reader = self.sock.makefile('rb')

    @property
    def closed(self) -> bool:
        return self.sock is None

    def reset_sequence(self) -> None:
        self.sequence = 0

    def read_packet(self) -> Packet:
        """Read one logical packet, joining continuation packets.
        """
        chunks: list[bytes] = []
        while True:
            header = self._read_bytes(HEADER_SIZE)
            length = header[0] | (header[1] << 8) | (header[2] << 16)
            sequence = header[3]
            if sequence != self.sequence:
                self.close()
                raise ProtocolError(f'Packet sequence number wrong: got {sequence}, '
                                    f'expected {self.sequence}')
            self.sequence = (self.sequence + 1) % 256
            chunks.append(self._read_bytes(length))
            if length < MAX_PACKET_LENGTH:
                break
        return Packet(b''.join(chunks))

    def write_packet(self, payload: bytes) -> None:
        """Write one logical packet, splitting it at the maximum packet length.
        """
        frames = []
        pos = 0
        while True:
            chunk = payload[pos:pos + MAX_PACKET_LENGTH]
            frames.append(struct.pack('<I', len(chunk))[:3] + bytes((self.sequence,)) + chunk)
            self.sequence = (self.sequence + 1) % 256
            pos += len(chunk)
            if len(chunk) < MAX_PACKET_LENGTH:
                break
        self._write_bytes(b''.join(frames))

    def write_command(self, command: Command, argument: bytes = b'') -> None:
        """Start a new command exchange.
        """
        self.reset_sequence()
        self.write_packet(encode_command(command, argument))

    def close(self) -> None:
        if self.sock is None:
            return
        try:
            self._reader.close()
            self.sock.close()
        except OSError as e:
            logger.debug(f'Error closing socket: {e}')
        finally:
            self.sock = None
            self._reader = None

    def _read_bytes(self, size: int) -> bytes:
        if self.sock is None:
            raise ConnectionClosed('Connection is closed')
        try:
            data = self._reader.read(size)
        except OSError as e:
            self.close()
            raise ConnectionClosed(CR.CR_SERVER_LOST,
                                   f'Lost connection to server during query ({e})') from e
        if len(data) < size:
            self.close()
            raise ConnectionClosed(CR.CR_SERVER_LOST,
                                   'Lost connection to server during query')
        return data

    def _write_bytes(self, data: bytes) -> None:
        if self.sock is None:
            raise ConnectionClosed('Connection is closed')
        try:
            self.sock.sendall(data)
        except OSError as e:
            self.close()
            raise ConnectionClosed(CR.CR_SERVER_GONE_ERROR,
                                   f'Server has gone away ({e})') from e
