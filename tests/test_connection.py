import selectors
import socket

import pytest

from kvsbench.connection import (
    BUFSIZE,
    Connection,
    ConnectionState,
    Response,
    open_connection,
)
from kvsbench.protocol import (
    Command,
    ProtocolError,
    RequestHeader,
    ResponseHeader,
    ResponseStatus,
    build_get_request,
)
from kvsbench.workload import Operation


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    conn = Connection(a)
    b.settimeout(5)
    yield conn, b
    conn.close()
    b.close()


def _response(opcode, opaque, status=ResponseStatus.SUCCESS, body=b""):
    header = ResponseHeader(opcode=opcode, status=status,
                            bodylen=len(body), opaque=opaque)
    return header.pack() + body


def test_flush_sends_queued_request(pair):
    conn, peer = pair
    request = build_get_request(b"key", 7)
    conn.queue(request)
    assert conn.tx_pending == len(request)
    assert conn.flush() is True
    assert conn.tx_pending == 0
    received = peer.recv(4096)
    assert received == request
    assert RequestHeader.unpack(received).opaque == 7


def test_queue_rejects_oversized_request(pair):
    conn, _ = pair
    with pytest.raises(ValueError):
        conn.queue(bytes(BUFSIZE + 1))


def test_feed_parses_complete_responses(pair):
    conn, _ = pair
    conn.feed(_response(Command.GET, 11, body=b"\x00" * 4 + b"value"))
    conn.feed(_response(Command.SET, 12, status=ResponseStatus.NOT_STORED))
    assert list(conn.responses()) == [
        Response(Operation.GET, ResponseStatus.SUCCESS, 11),
        Response(Operation.SET, ResponseStatus.NOT_STORED, 12),
    ]


def test_partial_response_waits_for_rest(pair):
    conn, _ = pair
    data = _response(Command.GET, 3, body=b"abcd")
    conn.feed(data[:10])
    assert list(conn.responses()) == []
    conn.feed(data[10:])
    assert list(conn.responses()) == [Response(Operation.GET, 0, 3)]


def test_unknown_opcode_gives_no_operation(pair):
    conn, _ = pair
    conn.feed(_response(Command.NOOP, 5))
    [resp] = conn.responses()
    assert resp.op is None
    assert resp.opaque == 5


def test_bad_magic_raises(pair):
    conn, _ = pair
    conn.feed(bytes([0x80]) + bytes(23))
    with pytest.raises(ProtocolError):
        list(conn.responses())


def test_oversized_response_raises(pair):
    conn, _ = pair
    conn.feed(ResponseHeader(opcode=Command.GET, bodylen=BUFSIZE).pack())
    with pytest.raises(ProtocolError):
        list(conn.responses())


def test_receive_reads_from_socket(pair):
    conn, peer = pair
    assert conn.receive() == []
    peer.sendall(_response(Command.SET, 99))
    sel = selectors.DefaultSelector()
    sel.register(conn.sock, selectors.EVENT_READ)
    sel.select(5)
    sel.close()
    assert conn.receive() == [Response(Operation.SET, 0, 99)]


def test_receive_on_closed_peer_raises(pair):
    conn, peer = pair
    peer.close()
    with pytest.raises(ConnectionError):
        conn.receive()


def test_close_sets_state(pair):
    conn, _ = pair
    conn.close()
    assert conn.state is ConnectionState.CLOSED


def test_open_connection_establishes():
    server = socket.create_server(("127.0.0.1", 0))
    port = server.getsockname()[1]
    conn = open_connection("127.0.0.1", port)
    try:
        assert conn.state in (ConnectionState.CONNECTING, ConnectionState.OPEN)
        assert conn.sock.getsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY) != 0
        accepted, _ = server.accept()
        sel = selectors.DefaultSelector()
        sel.register(conn.sock, selectors.EVENT_WRITE)
        sel.select(5)
        sel.close()
        conn.queue(build_get_request(b"k", 1))
        assert conn.flush() is True
        assert conn.state is ConnectionState.OPEN
        accepted.settimeout(5)
        assert RequestHeader.unpack(accepted.recv(4096)).opcode == Command.GET
        accepted.close()
    finally:
        conn.close()
        server.close()


def test_open_connection_rejects_bad_address():
    with pytest.raises(ValueError):
        open_connection("not-an-ip", 1)