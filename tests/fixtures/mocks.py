"""
Mock socket utilities for codec tests.

Provides an in-memory socket so `PacketStream` can be exercised without a
network peer.

Usage:
    def test_read(mock_socket):
        sock = mock_socket(frame(b'\x00\x00\x00\x02\x00\x00\x00'))
        stream = PacketStream(sock)
"""
import io
import struct

import pytest


def frame(payload: bytes, sequence: int = 0) -> bytes:
    """Wrap a payload in a packet header."""
    return struct.pack('<I', len(payload))[:3] + bytes((sequence,)) + payload


class MockSocket:
    """Socket double reading from a fixed buffer and recording writes.

    Once the buffer is consumed reads return b'', as a socket whose peer
    closed the connection would.
    """

    def __init__(self, incoming: bytes = b'', fail_writes: bool = False):
        self.incoming = io.BytesIO(incoming)
        self.sent = bytearray()
        self.fail_writes = fail_writes
        self.closed = False

    def makefile(self, mode='rb'):
        return self.incoming

    def sendall(self, data):
        if self.fail_writes:
            raise BrokenPipeError('Broken pipe')
        self.sent.extend(data)

    def close(self):
        self.closed = True


@pytest.fixture
def mock_socket():
    """
    Fixture that provides a factory for in-memory sockets.

    Returns
        Factory taking the bytes the socket will yield to reads
    """
    return MockSocket
