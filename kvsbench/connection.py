"""Non-blocking client connection speaking the binary protocol."""

from __future__ import annotations

import errno
import ipaddress
import logging
import socket
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator

from kvsbench.protocol import (
    HEADER_SIZE,
    Command,
    ProtocolError,
    ResponseHeader,
)
from kvsbench.workload import Operation

BUFSIZE = 2048

_log = logging.getLogger(__name__)


class ConnectionState(IntEnum):
    CLOSED = 0
    CONNECTING = 1
    OPEN = 2


@dataclass
class Response:
    """A parsed response; ``op`` is None for an unexpected opcode."""

    op: Operation | None
    status: int
    opaque: int


class Connection:
    """A non-blocking socket with transmit and receive buffers."""

    def __init__(self, sock: socket.socket) -> None:
        sock.setblocking(False)
        self.sock = sock
        self.state = ConnectionState.OPEN
        self.pending = 0
        self._tx = bytearray()
        self._rx = bytearray()

    @property
    def tx_pending(self) -> int:
        """Bytes queued but not yet written."""
        return len(self._tx)

    def fileno(self) -> int:
        return self.sock.fileno()

    def queue(self, data: bytes) -> None:
        """Queue a request for sending."""
        if len(data) > BUFSIZE:
            raise ValueError(f"request of {len(data)} bytes exceeds {BUFSIZE}")
        self._tx += data

    def _established(self) -> bool:
        if self.state is not ConnectionState.CONNECTING:
            return True
        err = self.sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        if err:
            raise ConnectionError(err, f"connect failed: {errno.errorcode.get(err, err)}")
        try:
            self.sock.getpeername()
        except OSError:
            return False
        self.state = ConnectionState.OPEN
        return True

    def flush(self) -> bool:
        """Write queued bytes; return True once nothing is left to send."""
        if not self._established():
            return False
        while self._tx:
            try:
                sent = self.sock.send(self._tx)
            except BlockingIOError:
                return False
            if sent <= 0:
                return False
            del self._tx[:sent]
        return True

    def feed(self, data: bytes) -> None:
        """Append received bytes to the receive buffer."""
        self._rx += data

    def responses(self) -> Iterator[Response]:
        """Yield every complete response held in the receive buffer."""
        while len(self._rx) >= HEADER_SIZE:
            header = ResponseHeader.unpack(bytes(self._rx[:HEADER_SIZE]))
            length = header.total_length
            if length > BUFSIZE:
                raise ProtocolError(
                    f"response of {length} bytes exceeds {BUFSIZE}")
            if len(self._rx) < length:
                return
            del self._rx[:length]
            if header.opcode == Command.GET:
                op: Operation | None = Operation.GET
            elif header.opcode == Command.SET:
                op = Operation.SET
            else:
                _log.warning("unknown opcode=%x", header.opcode)
                op = None
            yield Response(op, header.status, header.opaque)

    def receive(self) -> list[Response]:
        """Read whatever the socket has and return the complete responses."""
        if not self._established():
            return []
        while True:
            try:
                data = self.sock.recv(BUFSIZE)
            except BlockingIOError:
                break
            if not data:
                raise ConnectionError("connection closed by peer")
            self.feed(data)
        return list(self.responses())

    def close(self) -> None:
        self.sock.close()
        self.state = ConnectionState.CLOSED

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def open_connection(address: str | int, port: int) -> Connection:
    """Start a non-blocking TCP connect with Nagle's algorithm disabled."""
    host = str(ipaddress.IPv4Address(address))
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP)
    try:
        sock.setblocking(False)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        ret = sock.connect_ex((host, port))
    except OSError:
        sock.close()
        raise
    conn = Connection(sock)
    if ret == 0:
        conn.state = ConnectionState.OPEN
    elif ret in (errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EAGAIN):
        conn.state = ConnectionState.CONNECTING
    else:
        sock.close()
        raise ConnectionError(ret, f"connect failed: {errno.errorcode.get(ret, ret)}")
    return conn