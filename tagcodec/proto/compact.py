"""Compact protocol: varint integers and packed field headers.

Field ids are written as a delta from the previous field id when it fits in
four bits, and boolean fields fold their value into the field header type.
"""

import struct
from typing import BinaryIO

from .errors import BadVersionError, InvalidDataError, MalformedTagError
from .protocol import Protocol
from .types import MessageType, ProtocolConfig, TType

PROTOCOL_ID = 0x82
VERSION = 1
VERSION_MASK = 0x1F
TYPE_MASK = 0xE0
TYPE_SHIFT = 5

MAX_VARINT_BYTES = 10


class CompactType:
    """Type nibbles used on the wire by the compact protocol."""

    STOP = 0x00
    TRUE = 0x01
    FALSE = 0x02
    BYTE = 0x03
    I16 = 0x04
    I32 = 0x05
    I64 = 0x06
    DOUBLE = 0x07
    BINARY = 0x08
    LIST = 0x09
    SET = 0x0A
    MAP = 0x0B
    STRUCT = 0x0C
    FLOAT = 0x0D


_TO_COMPACT = {
    TType.STOP: CompactType.STOP,
    TType.BOOL: CompactType.TRUE,
    TType.BYTE: CompactType.BYTE,
    TType.I16: CompactType.I16,
    TType.I32: CompactType.I32,
    TType.I64: CompactType.I64,
    TType.DOUBLE: CompactType.DOUBLE,
    TType.STRING: CompactType.BINARY,
    TType.LIST: CompactType.LIST,
    TType.SET: CompactType.SET,
    TType.MAP: CompactType.MAP,
    TType.STRUCT: CompactType.STRUCT,
    TType.FLOAT: CompactType.FLOAT,
}

_FROM_COMPACT = {
    CompactType.STOP: TType.STOP,
    CompactType.TRUE: TType.BOOL,
    CompactType.FALSE: TType.BOOL,
    CompactType.BYTE: TType.BYTE,
    CompactType.I16: TType.I16,
    CompactType.I32: TType.I32,
    CompactType.I64: TType.I64,
    CompactType.DOUBLE: TType.DOUBLE,
    CompactType.BINARY: TType.STRING,
    CompactType.LIST: TType.LIST,
    CompactType.SET: TType.SET,
    CompactType.MAP: TType.MAP,
    CompactType.STRUCT: TType.STRUCT,
    CompactType.FLOAT: TType.FLOAT,
}

_BYTE = struct.Struct("<b")
_DOUBLE = struct.Struct("<d")
_FLOAT = struct.Struct("<f")


def zigzag_encode(value: int, bits: int) -> int:
    """Map a signed integer onto an unsigned one, small magnitudes first."""
    return (value << 1) ^ (value >> (bits - 1))


def zigzag_decode(value: int) -> int:
    """Inverse of zigzag_encode."""
    return (value >> 1) ^ -(value & 1)


def encode_varint(value: int) -> bytes:
    """Encode an unsigned integer as a little-endian base-128 varint."""
    out = bytearray()
    while True:
        if value & ~0x7F == 0:
            out.append(value)
            return bytes(out)
        out.append((value & 0x7F) | 0x80)
        value >>= 7


def _compact_type(ttype: int) -> int:
    try:
        return _TO_COMPACT[TType(ttype)]
    except (KeyError, ValueError) as exc:
        raise MalformedTagError(f"type {ttype} has no compact encoding") from exc


def _ttype(ctype: int, what: str) -> TType:
    if ctype not in _FROM_COMPACT or ctype == CompactType.STOP:
        raise MalformedTagError(f"invalid {what} type {ctype}")
    return _FROM_COMPACT[ctype]


class CompactProtocol(Protocol):
    """Thrift-compatible compact protocol."""

    name = "compact"

    def __init__(self, stream: BinaryIO, config: ProtocolConfig | None = None) -> None:
        super().__init__(stream, config)
        self._last_fid = 0
        self._fid_stack: list[int] = []
        self._bool_fid: int | None = None
        self._bool_value: bool | None = None

    # Varints

    def _write_varint(self, value: int) -> None:
        self._write(encode_varint(value))

    def _read_varint(self) -> int:
        result = 0
        shift = 0
        for _ in range(MAX_VARINT_BYTES):
            byte = self._read_exact(1)[0]
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result
            shift += 7
        raise InvalidDataError(f"varint longer than {MAX_VARINT_BYTES} bytes")

    def _write_int(self, value: int, bits: int) -> None:
        low = -(1 << (bits - 1))
        high = (1 << (bits - 1)) - 1
        if not low <= value <= high:
            raise InvalidDataError(f"i{bits} value out of range: {value}")
        self._write_varint(zigzag_encode(value, bits) & ((1 << bits) - 1))

    def _read_int(self, bits: int) -> int:
        value = zigzag_decode(self._read_varint())
        if not -(1 << (bits - 1)) <= value < (1 << (bits - 1)):
            raise InvalidDataError(f"i{bits} value out of range: {value}")
        return value

    # Messages

    def write_message_begin(self, name: str, mtype: MessageType, seqid: int) -> None:
        self._write(bytes([PROTOCOL_ID, VERSION | ((int(mtype) << TYPE_SHIFT) & TYPE_MASK)]))
        self._write_varint(seqid & 0xFFFFFFFF)
        self.write_string(name)

    def write_message_end(self) -> None:
        pass

    def read_message_begin(self) -> tuple[str, MessageType, int]:
        proto_id = self._read_exact(1)[0]
        if proto_id != PROTOCOL_ID:
            raise BadVersionError(f"bad protocol id {proto_id:#x}, expected {PROTOCOL_ID:#x}")
        version_type = self._read_exact(1)[0]
        version = version_type & VERSION_MASK
        if version != VERSION:
            raise BadVersionError(f"bad version {version}, expected {VERSION}")
        mtype = (version_type & TYPE_MASK) >> TYPE_SHIFT
        seqid = self._read_varint() & 0xFFFFFFFF
        if seqid >= 1 << 31:
            seqid -= 1 << 32
        name = self.read_string()
        try:
            return name, MessageType(mtype), seqid
        except ValueError as exc:
            raise InvalidDataError(f"unknown message type {mtype}") from exc

    def read_message_end(self) -> None:
        pass

    # Structs and fields

    def write_struct_begin(self, name: str) -> None:
        self._fid_stack.append(self._last_fid)
        self._last_fid = 0

    def write_struct_end(self) -> None:
        self._last_fid = self._fid_stack.pop()

    def _write_field_header(self, ctype: int, fid: int) -> None:
        delta = fid - self._last_fid
        if 0 < delta <= 15:
            self._write(bytes([(delta << 4) | ctype]))
        else:
            self._write(bytes([ctype]))
            self.write_i16(fid)
        self._last_fid = fid

    def write_field_begin(self, name: str, ttype: TType, fid: int) -> None:
        if ttype == TType.BOOL:
            # Header is written by write_bool, which knows the value.
            self._bool_fid = fid
        else:
            self._write_field_header(_compact_type(ttype), fid)

    def write_field_end(self) -> None:
        pass

    def write_field_stop(self) -> None:
        self._write(bytes([CompactType.STOP]))

    def read_struct_begin(self) -> str:
        self._fid_stack.append(self._last_fid)
        self._last_fid = 0
        return ""

    def read_struct_end(self) -> None:
        self._last_fid = self._fid_stack.pop()

    def read_field_begin(self) -> tuple[str, int, int]:
        header = self._read_exact(1)[0]
        ctype = header & 0x0F
        if ctype == CompactType.STOP:
            return "", TType.STOP, 0
        ttype = _ttype(ctype, "field")
        delta = header >> 4
        fid = self._last_fid + delta if delta else self.read_i16()
        if ctype in (CompactType.TRUE, CompactType.FALSE):
            self._bool_value = ctype == CompactType.TRUE
        self._last_fid = fid
        return "", ttype, fid

    def read_field_end(self) -> None:
        pass

    # Containers

    def _write_collection_begin(self, etype: TType, size: int) -> None:
        self._check_container_size(size)
        ctype = _compact_type(etype)
        if size < 15:
            self._write(bytes([(size << 4) | ctype]))
        else:
            self._write(bytes([0xF0 | ctype]))
            self._write_varint(size)

    def _read_collection_begin(self, what: str) -> tuple[int, int]:
        header = self._read_exact(1)[0]
        size = header >> 4
        if size == 15:
            size = self._read_varint()
        self._check_container_size(size)
        ctype = header & 0x0F
        if size == 0:
            return _FROM_COMPACT.get(ctype, TType.STOP), 0
        return _ttype(ctype, what), size

    def write_list_begin(self, etype: TType, size: int) -> None:
        self._write_collection_begin(etype, size)

    def write_list_end(self) -> None:
        pass

    def write_set_begin(self, etype: TType, size: int) -> None:
        self._write_collection_begin(etype, size)

    def write_set_end(self) -> None:
        pass

    def write_map_begin(self, ktype: TType, vtype: TType, size: int) -> None:
        self._check_container_size(size)
        if size == 0:
            self._write(bytes([0]))
            return
        self._write_varint(size)
        self._write(bytes([(_compact_type(ktype) << 4) | _compact_type(vtype)]))

    def write_map_end(self) -> None:
        pass

    def read_list_begin(self) -> tuple[int, int]:
        return self._read_collection_begin("list element")

    def read_list_end(self) -> None:
        pass

    def read_set_begin(self) -> tuple[int, int]:
        return self._read_collection_begin("set element")

    def read_set_end(self) -> None:
        pass

    def read_map_begin(self) -> tuple[int, int, int]:
        size = self._read_varint()
        self._check_container_size(size)
        if size == 0:
            return TType.STOP, TType.STOP, 0
        types = self._read_exact(1)[0]
        return _ttype(types >> 4, "map key"), _ttype(types & 0x0F, "map value"), size

    def read_map_end(self) -> None:
        pass

    # Primitives

    def write_bool(self, value: bool) -> None:
        ctype = CompactType.TRUE if value else CompactType.FALSE
        if self._bool_fid is not None:
            fid, self._bool_fid = self._bool_fid, None
            self._write_field_header(ctype, fid)
        else:
            self._write(bytes([ctype]))

    def write_byte(self, value: int) -> None:
        if not -128 <= value <= 127:
            raise InvalidDataError(f"byte value out of range: {value}")
        self._write(_BYTE.pack(value))

    def write_i16(self, value: int) -> None:
        self._write_int(value, 16)

    def write_i32(self, value: int) -> None:
        self._write_int(value, 32)

    def write_i64(self, value: int) -> None:
        self._write_int(value, 64)

    def write_double(self, value: float) -> None:
        try:
            self._write(_DOUBLE.pack(value))
        except struct.error as exc:
            raise InvalidDataError(f"cannot encode double {value!r}: {exc}") from exc

    def write_float(self, value: float) -> None:
        try:
            self._write(_FLOAT.pack(value))
        except (struct.error, OverflowError) as exc:
            raise InvalidDataError(f"cannot encode float {value!r}: {exc}") from exc

    def write_string(self, value: str) -> None:
        try:
            data = value.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise InvalidDataError(f"cannot encode string as UTF-8: {exc}") from exc
        self.write_binary(data)

    def write_binary(self, value: bytes) -> None:
        self._write_varint(len(value))
        self._write(bytes(value))

    def read_bool(self) -> bool:
        if self._bool_value is not None:
            value, self._bool_value = self._bool_value, None
            return value
        return self._read_exact(1)[0] == CompactType.TRUE

    def read_byte(self) -> int:
        return _BYTE.unpack(self._read_exact(1))[0]

    def read_i16(self) -> int:
        return self._read_int(16)

    def read_i32(self) -> int:
        return self._read_int(32)

    def read_i64(self) -> int:
        return self._read_int(64)

    def read_double(self) -> float:
        return _DOUBLE.unpack(self._read_exact(8))[0]

    def read_float(self) -> float:
        return _FLOAT.unpack(self._read_exact(4))[0]

    def read_string(self) -> str:
        data = self.read_binary()
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidDataError(f"invalid UTF-8 in string: {exc}") from exc

    def read_binary(self) -> bytes:
        length = self._read_varint()
        self._check_string_length(length)
        return self._read_exact(length)
