import pytest

from kvsbench.protocol import (
    HEADER_SIZE,
    UDP_HEADER_SIZE,
    Command,
    Magic,
    ProtocolError,
    RequestHeader,
    ResponseHeader,
    ResponseStatus,
    UdpHeader,
    build_get_request,
    build_set_request,
)


def test_documented_constants_on_the_wire():
    get_packet = build_get_request(b"k", 0)
    assert get_packet[0] == Magic.REQUEST == 0x80
    assert get_packet[1] == Command.GET == 0x00
    set_packet = build_set_request(b"k", 0, 0)
    assert set_packet[1] == Command.SET == 0x01
    response = ResponseHeader(opcode=Command.GET,
                              status=ResponseStatus.ENOMEM).pack()
    assert response[0] == Magic.RESPONSE == 0x81
    assert response[6:8] == b"\x00\x82"


def test_request_header_round_trip():
    header = RequestHeader(opcode=Command.SET, keylen=5, extlen=8,
                           reserved=3, bodylen=100, opaque=0xDEADBEEF, cas=7)
    data = header.pack()
    assert len(data) == HEADER_SIZE
    assert RequestHeader.unpack(data) == header


def test_response_header_round_trip():
    header = ResponseHeader(opcode=Command.GET, status=ResponseStatus.KEY_ENOENT,
                            bodylen=9, opaque=12345)
    data = header.pack()
    assert len(data) == HEADER_SIZE
    parsed = ResponseHeader.unpack(data)
    assert parsed == header
    assert parsed.status == ResponseStatus.KEY_ENOENT
    assert parsed.total_length == HEADER_SIZE + 9


def test_response_header_from_wire_bytes():
    wire = bytes([0x81, 0x01, 0, 0, 0, 0, 0x00, 0x05]) + (4).to_bytes(4, "big") \
        + (77).to_bytes(4, "big") + bytes(8)
    header = ResponseHeader.unpack(wire)
    assert header.opcode == Command.SET
    assert header.status == ResponseStatus.NOT_STORED
    assert header.bodylen == 4
    assert header.opaque == 77


def test_response_header_bad_magic():
    data = RequestHeader(opcode=Command.GET).pack()
    with pytest.raises(ProtocolError):
        ResponseHeader.unpack(data)


def test_request_header_bad_magic():
    data = ResponseHeader(opcode=Command.GET).pack()
    with pytest.raises(ProtocolError):
        RequestHeader.unpack(data)


def test_short_header_raises():
    with pytest.raises(ProtocolError):
        ResponseHeader.unpack(b"\x81" * (HEADER_SIZE - 1))


def test_field_out_of_range_raises():
    with pytest.raises(ProtocolError):
        RequestHeader(opcode=Command.GET, keylen=0x10000).pack()


def test_udp_header_round_trip():
    header = UdpHeader(req_id=1, seq_id=2, n_data=3, extras=4)
    data = header.pack()
    assert len(data) == UDP_HEADER_SIZE
    assert data == b"\x00\x01\x00\x02\x00\x03\x00\x04"
    assert UdpHeader.unpack(data) == header


def test_udp_header_short():
    with pytest.raises(ProtocolError):
        UdpHeader.unpack(b"\x00" * 7)


def test_get_request_layout():
    packet = build_get_request(b"abc", 0x01020304)
    assert packet[:12] == b"\x80\x00\x00\x03\x00\x00\x00\x00\x00\x00\x00\x03"
    assert packet[12:16] == b"\x01\x02\x03\x04"
    assert packet[16:24] == bytes(8)
    assert packet[24:] == b"abc"


def test_set_request_layout():
    key = b"key-01"
    packet = build_set_request(key, 16, 99)
    header = RequestHeader.unpack(packet)
    assert header.opcode == Command.SET
    assert header.extlen == 8
    assert header.keylen == len(key)
    assert header.bodylen == 8 + len(key) + 16
    assert header.opaque == 99
    assert len(packet) == HEADER_SIZE + header.bodylen
    assert packet[HEADER_SIZE:HEADER_SIZE + 8] == bytes(8)
    assert packet[HEADER_SIZE + 8:HEADER_SIZE + 8 + len(key)] == key


def test_set_request_negative_value_size():
    with pytest.raises(ProtocolError):
        build_set_request(b"k", -1, 0)