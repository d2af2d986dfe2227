"""Binary protocol: fixed-width big-endian encoding.

Field frame:  [1B type][2B id]  value
Stop marker:  [1B 0x00]
String:       [4B length][bytes]
List/set:     [1B elem type][4B count] elements
Map:          [1B key type][1B value type][4B count] key/value pairs
"""

import struct

from .errors import BadVersionError, InvalidDataError, MalformedTagError
from .protocol import Protocol
from .types import MessageType, TType, is_value_type

VERSION_MASK = 0xFFFF0000
VERSION_1 = 0x80010000
TYPE_MASK = 0x000000FF

_BYTE = struct.Struct(">b")
_UBYTE = struct.Struct(">B")
_I16 = struct.Struct(">h")
_I32 = struct.Struct(">i")
_U32 = struct.Struct(">I")
_I64 = struct.Struct(">q")
_DOUBLE = struct.Struct(">d")
_FLOAT = struct.Struct(">f")
_FIELD_HEADER = struct.Struct(">bh")
_LIST_HEADER = struct.Struct(">bi")
_MAP_HEADER = struct.Struct(">bbi")


def _pack(fmt: struct.Struct, *values: object) -> bytes:
    try:
        return fmt.pack(*values)
    except (struct.error, OverflowError) as exc:
        raise InvalidDataError(f"cannot encode {values!r}: {exc}") from exc


class BinaryProtocol(Protocol):
    """Thrift-compatible binary protocol."""

    name = "binary"

    def _check_tag(self, ttype: int, size: int, what: str) -> int:
        # Empty containers may carry any tag, other implementations write STOP.
        if size > 0 and not is_value_type(ttype):
            raise MalformedTagError(f"invalid {what} type {ttype}")
        return ttype

    # Messages

    def write_message_begin(self, name: str, mtype: MessageType, seqid: int) -> None:
        if self.config.strict_write:
            self._write(_pack(_U32, VERSION_1 | int(mtype)))
            self.write_string(name)
            self.write_i32(seqid)
        else:
            self.write_string(name)
            self.write_byte(int(mtype))
            self.write_i32(seqid)

    def write_message_end(self) -> None:
        pass

    def read_message_begin(self) -> tuple[str, MessageType, int]:
        header = self.read_i32()
        if header < 0:
            version = header & VERSION_MASK
            if version != VERSION_1:
                raise BadVersionError(f"bad version in message header: {version:#x}")
            mtype = header & TYPE_MASK
            name = self.read_string()
        else:
            if self.config.strict_read:
                raise BadVersionError("missing version in message header")
            self._check_string_length(header)
            name = self._decode(self._read_exact(header))
            mtype = self.read_byte()
        seqid = self.read_i32()
        try:
            return name, MessageType(mtype), seqid
        except ValueError as exc:
            raise InvalidDataError(f"unknown message type {mtype}") from exc

    def read_message_end(self) -> None:
        pass

    # Structs and fields

    def write_struct_begin(self, name: str) -> None:
        pass

    def write_struct_end(self) -> None:
        pass

    def write_field_begin(self, name: str, ttype: TType, fid: int) -> None:
        self._write(_pack(_FIELD_HEADER, int(ttype), fid))

    def write_field_end(self) -> None:
        pass

    def write_field_stop(self) -> None:
        self._write(_UBYTE.pack(TType.STOP))

    def read_struct_begin(self) -> str:
        return ""

    def read_struct_end(self) -> None:
        pass

    def read_field_begin(self) -> tuple[str, int, int]:
        ttype = _BYTE.unpack(self._read_exact(1))[0]
        if ttype == TType.STOP:
            return "", TType.STOP, 0
        if not is_value_type(ttype):
            raise MalformedTagError(f"invalid field type {ttype}")
        fid = self.read_i16()
        return "", TType(ttype), fid

    def read_field_end(self) -> None:
        pass

    # Containers

    def write_list_begin(self, etype: TType, size: int) -> None:
        self._write(_pack(_LIST_HEADER, int(etype), size))

    def write_list_end(self) -> None:
        pass

    def write_set_begin(self, etype: TType, size: int) -> None:
        self._write(_pack(_LIST_HEADER, int(etype), size))

    def write_set_end(self) -> None:
        pass

    def write_map_begin(self, ktype: TType, vtype: TType, size: int) -> None:
        self._write(_pack(_MAP_HEADER, int(ktype), int(vtype), size))

    def write_map_end(self) -> None:
        pass

    def read_list_begin(self) -> tuple[int, int]:
        etype, size = _LIST_HEADER.unpack(self._read_exact(_LIST_HEADER.size))
        self._check_container_size(size)
        return self._check_tag(etype, size, "list element"), size

    def read_list_end(self) -> None:
        pass

    def read_set_begin(self) -> tuple[int, int]:
        etype, size = _LIST_HEADER.unpack(self._read_exact(_LIST_HEADER.size))
        self._check_container_size(size)
        return self._check_tag(etype, size, "set element"), size

    def read_set_end(self) -> None:
        pass

    def read_map_begin(self) -> tuple[int, int, int]:
        ktype, vtype, size = _MAP_HEADER.unpack(self._read_exact(_MAP_HEADER.size))
        self._check_container_size(size)
        return (
            self._check_tag(ktype, size, "map key"),
            self._check_tag(vtype, size, "map value"),
            size,
        )

    def read_map_end(self) -> None:
        pass

    # Primitives

    def write_bool(self, value: bool) -> None:
        self._write(_UBYTE.pack(1 if value else 0))

    def write_byte(self, value: int) -> None:
        self._write(_pack(_BYTE, value))

    def write_i16(self, value: int) -> None:
        self._write(_pack(_I16, value))

    def write_i32(self, value: int) -> None:
        self._write(_pack(_I32, value))

    def write_i64(self, value: int) -> None:
        self._write(_pack(_I64, value))

    def write_double(self, value: float) -> None:
        self._write(_pack(_DOUBLE, value))

    def write_float(self, value: float) -> None:
        self._write(_pack(_FLOAT, value))

    def write_string(self, value: str) -> None:
        try:
            data = value.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise InvalidDataError(f"cannot encode string as UTF-8: {exc}") from exc
        self.write_binary(data)

    def write_binary(self, value: bytes) -> None:
        self._write(_pack(_I32, len(value)))
        self._write(bytes(value))

    def read_bool(self) -> bool:
        return self._read_exact(1)[0] != 0

    def read_byte(self) -> int:
        return _BYTE.unpack(self._read_exact(1))[0]

    def read_i16(self) -> int:
        return _I16.unpack(self._read_exact(2))[0]

    def read_i32(self) -> int:
        return _I32.unpack(self._read_exact(4))[0]

    def read_i64(self) -> int:
        return _I64.unpack(self._read_exact(8))[0]

    def read_double(self) -> float:
        return _DOUBLE.unpack(self._read_exact(8))[0]

    def read_float(self) -> float:
        return _FLOAT.unpack(self._read_exact(4))[0]

    def read_string(self) -> str:
        return self._decode(self.read_binary())

    def read_binary(self) -> bytes:
        length = self.read_i32()
        self._check_string_length(length)
        return self._read_exact(length)

    @staticmethod
    def _decode(data: bytes) -> str:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidDataError(f"invalid UTF-8 in string: {exc}") from exc
