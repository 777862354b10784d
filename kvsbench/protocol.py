"""Constants and packet layouts of the memcached binary protocol."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum

HEADER_SIZE = 24
UDP_HEADER_SIZE = 8

_HEADER = struct.Struct("!BBHBBHIIQ")
_UDP = struct.Struct("!HHHH")
_SET_EXTRAS = struct.Struct("!II")


class ProtocolError(ValueError):
    """Raised when a packet is malformed."""


class Magic(IntEnum):
    REQUEST = 0x80
    RESPONSE = 0x81


class ResponseStatus(IntEnum):
    SUCCESS = 0x00
    KEY_ENOENT = 0x01
    KEY_EEXISTS = 0x02
    E2BIG = 0x03
    EINVAL = 0x04
    NOT_STORED = 0x05
    DELTA_BADVAL = 0x06
    AUTH_ERROR = 0x20
    AUTH_CONTINUE = 0x21
    UNKNOWN_COMMAND = 0x81
    ENOMEM = 0x82


class Command(IntEnum):
    GET = 0x00
    SET = 0x01
    ADD = 0x02
    REPLACE = 0x03
    DELETE = 0x04
    INCREMENT = 0x05
    DECREMENT = 0x06
    QUIT = 0x07
    FLUSH = 0x08
    GETQ = 0x09
    NOOP = 0x0A
    VERSION = 0x0B
    GETK = 0x0C
    GETKQ = 0x0D
    APPEND = 0x0E
    PREPEND = 0x0F
    STAT = 0x10
    SETQ = 0x11
    ADDQ = 0x12
    REPLACEQ = 0x13
    DELETEQ = 0x14
    INCREMENTQ = 0x15
    DECREMENTQ = 0x16
    QUITQ = 0x17
    FLUSHQ = 0x18
    APPENDQ = 0x19
    PREPENDQ = 0x1A
    TOUCH = 0x1C
    GAT = 0x1D
    GATQ = 0x1E
    SASL_LIST_MECHS = 0x20
    SASL_AUTH = 0x21
    SASL_STEP = 0x22
    GATK = 0x23
    GATKQ = 0x24
    RGET = 0x30
    RSET = 0x31
    RSETQ = 0x32
    RAPPEND = 0x33
    RAPPENDQ = 0x34
    RPREPEND = 0x35
    RPREPENDQ = 0x36
    RDELETE = 0x37
    RDELETEQ = 0x38
    RINCR = 0x39
    RINCRQ = 0x3A
    RDECR = 0x3B
    RDECRQ = 0x3C


def _check_length(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise ProtocolError(f"{what} needs {size} bytes, got {len(data)}")


@dataclass
class RequestHeader:
    """The 24-byte header of a request packet."""

    opcode: int
    keylen: int = 0
    extlen: int = 0
    datatype: int = 0
    reserved: int = 0
    bodylen: int = 0
    opaque: int = 0
    cas: int = 0
    magic: int = Magic.REQUEST

    def pack(self) -> bytes:
        try:
            return _HEADER.pack(
                self.magic, self.opcode, self.keylen, self.extlen,
                self.datatype, self.reserved, self.bodylen, self.opaque,
                self.cas,
            )
        except struct.error as exc:
            raise ProtocolError(f"header field out of range: {exc}") from exc

    @classmethod
    def unpack(cls, data: bytes) -> RequestHeader:
        _check_length(data, HEADER_SIZE, "request header")
        (magic, opcode, keylen, extlen, datatype, reserved, bodylen, opaque,
         cas) = _HEADER.unpack_from(data)
        if magic != Magic.REQUEST:
            raise ProtocolError(f"invalid magic on request: {magic:#x}")
        return cls(opcode, keylen, extlen, datatype, reserved, bodylen,
                   opaque, cas, Magic(magic))


@dataclass
class ResponseHeader:
    """The 24-byte header of a response packet."""

    opcode: int
    keylen: int = 0
    extlen: int = 0
    datatype: int = 0
    status: int = ResponseStatus.SUCCESS
    bodylen: int = 0
    opaque: int = 0
    cas: int = 0
    magic: int = Magic.RESPONSE

    @property
    def total_length(self) -> int:
        """Length of the whole packet, header and body."""
        return HEADER_SIZE + self.bodylen

    def pack(self) -> bytes:
        try:
            return _HEADER.pack(
                self.magic, self.opcode, self.keylen, self.extlen,
                self.datatype, self.status, self.bodylen, self.opaque,
                self.cas,
            )
        except struct.error as exc:
            raise ProtocolError(f"header field out of range: {exc}") from exc

    @classmethod
    def unpack(cls, data: bytes) -> ResponseHeader:
        _check_length(data, HEADER_SIZE, "response header")
        (magic, opcode, keylen, extlen, datatype, status, bodylen, opaque,
         cas) = _HEADER.unpack_from(data)
        if magic != Magic.RESPONSE:
            raise ProtocolError(f"invalid magic on response: {magic:#x}")
        return cls(opcode, keylen, extlen, datatype, status, bodylen,
                   opaque, cas, Magic(magic))


@dataclass
class UdpHeader:
    """The 8-byte frame header used over UDP."""

    req_id: int = 0
    seq_id: int = 0
    n_data: int = 0
    extras: int = 0

    def pack(self) -> bytes:
        try:
            return _UDP.pack(self.req_id, self.seq_id, self.n_data,
                             self.extras)
        except struct.error as exc:
            raise ProtocolError(f"UDP header field out of range: {exc}") from exc

    @classmethod
    def unpack(cls, data: bytes) -> UdpHeader:
        _check_length(data, UDP_HEADER_SIZE, "UDP header")
        return cls(*_UDP.unpack_from(data))


def build_get_request(key: bytes, opaque: int) -> bytes:
    """Return a complete GET request for ``key``."""
    header = RequestHeader(
        opcode=Command.GET, keylen=len(key), bodylen=len(key), opaque=opaque,
    )
    return header.pack() + bytes(key)


def build_set_request(key: bytes, value_size: int, opaque: int) -> bytes:
    """Return a complete SET request storing ``value_size`` zero bytes."""
    if value_size < 0:
        raise ProtocolError("value size must not be negative")
    header = RequestHeader(
        opcode=Command.SET, keylen=len(key), extlen=8,
        bodylen=8 + len(key) + value_size, opaque=opaque,
    )
    return header.pack() + _SET_EXTRAS.pack(0, 0) + bytes(key) + bytes(value_size)