"""JSON protocol: a self-describing text encoding.

Every field carries its id and a short type name, so unknown fields can be
skipped exactly as in the binary protocols:

    {"1":{"str":"foo"},"2":{"lst":["i32",2,7,9]}}

Containers are arrays that start with their element type names and size,
maps wrap their entries in an object whose keys are always quoted. Binary
values are base64 strings, and the non-finite doubles are written as the
strings "NaN", "Infinity" and "-Infinity".
"""

import base64
import binascii
import json
import math
from typing import BinaryIO

from .errors import BadVersionError, InvalidDataError, MalformedTagError, SizeLimitError
from .protocol import Protocol
from .types import MessageType, ProtocolConfig, TType

VERSION = 1

COMMA = b","
COLON = b":"
LBRACE = b"{"
RBRACE = b"}"
LBRACKET = b"["
RBRACKET = b"]"
QUOTE = b'"'
BACKSLASH = b"\\"

NUMERIC_CHARS = b"+-.0123456789Ee"
SPECIAL_DOUBLES = ("NaN", "Infinity", "-Infinity")

TYPE_NAMES = {
    TType.BOOL: "tf",
    TType.BYTE: "i8",
    TType.I16: "i16",
    TType.I32: "i32",
    TType.I64: "i64",
    TType.DOUBLE: "dbl",
    TType.FLOAT: "flt",
    TType.STRING: "str",
    TType.STRUCT: "rec",
    TType.MAP: "map",
    TType.SET: "set",
    TType.LIST: "lst",
}

TYPES_BY_NAME = {name: ttype for ttype, name in TYPE_NAMES.items()}


class _Context:
    """Separator state for the innermost JSON value being read or written."""

    def __init__(self, protocol: "JSONProtocol") -> None:
        self.protocol = protocol
        self.first = True

    def _separator(self) -> bytes | None:
        return None

    def write(self) -> None:
        separator = self._separator()
        if separator:
            self.protocol._write(separator)

    def read(self) -> None:
        separator = self._separator()
        if separator:
            self.protocol._read_syntax(separator)

    def escape_num(self) -> bool:
        return False


class _ListContext(_Context):
    def _separator(self) -> bytes | None:
        if self.first:
            self.first = False
            return None
        return COMMA


class _PairContext(_Context):
    # Alternates key, value, key, ...; keys must always be quoted.

    def __init__(self, protocol: "JSONProtocol") -> None:
        super().__init__(protocol)
        self.colon = True

    def _separator(self) -> bytes | None:
        if self.first:
            self.first = False
            self.colon = True
            return None
        separator = COLON if self.colon else COMMA
        self.colon = not self.colon
        return separator

    def escape_num(self) -> bool:
        return self.colon


class _LookaheadReader:
    def __init__(self, protocol: "JSONProtocol") -> None:
        self.protocol = protocol
        self._pending: bytes | None = None

    def read(self) -> bytes:
        if self._pending is not None:
            char, self._pending = self._pending, None
            return char
        return self.protocol._read_exact(1)

    def peek(self) -> bytes:
        if self._pending is None:
            self._pending = self.protocol._read_exact(1)
        return self._pending


class JSONProtocol(Protocol):
    """Streaming JSON protocol, compatible with Thrift's TJSONProtocol layout."""

    name = "json"
    raw_strings = False

    def __init__(self, stream: BinaryIO, config: ProtocolConfig | None = None) -> None:
        super().__init__(stream, config)
        self._context = _Context(self)
        self._contexts: list[_Context] = []
        self._reader = _LookaheadReader(self)

    def _push(self, context: _Context) -> None:
        self._contexts.append(self._context)
        self._context = context

    def _pop(self) -> None:
        self._context = self._contexts.pop()

    # Low level writers

    def _write_json_string(self, value: str) -> None:
        self._context.write()
        try:
            self._write(json.dumps(value, ensure_ascii=False).encode("utf-8"))
        except UnicodeEncodeError as exc:
            raise InvalidDataError(f"cannot encode string as UTF-8: {exc}") from exc

    def _write_json_number(self, value: int) -> None:
        self._context.write()
        text = str(int(value)).encode("ascii")
        if self._context.escape_num():
            text = QUOTE + text + QUOTE
        self._write(text)

    def _write_json_double(self, value: float) -> None:
        try:
            value = float(value)
        except (TypeError, ValueError) as exc:
            raise InvalidDataError(f"cannot encode double {value!r}: {exc}") from exc
        self._context.write()
        if math.isnan(value):
            text = b'"NaN"'
        elif math.isinf(value):
            text = b'"Infinity"' if value > 0 else b'"-Infinity"'
        else:
            text = repr(value).encode("ascii")
            if self._context.escape_num():
                text = QUOTE + text + QUOTE
        self._write(text)

    def _write_json_base64(self, value: bytes) -> None:
        self._context.write()
        self._write(QUOTE + base64.b64encode(bytes(value)) + QUOTE)

    def _write_object_start(self) -> None:
        self._context.write()
        self._write(LBRACE)
        self._push(_PairContext(self))

    def _write_object_end(self) -> None:
        self._pop()
        self._write(RBRACE)

    def _write_array_start(self) -> None:
        self._context.write()
        self._write(LBRACKET)
        self._push(_ListContext(self))

    def _write_array_end(self) -> None:
        self._pop()
        self._write(RBRACKET)

    def _type_name(self, ttype: int, size: int) -> str:
        if ttype in TYPE_NAMES:
            return TYPE_NAMES[ttype]
        if size == 0:
            return ""
        raise MalformedTagError(f"type {ttype} has no JSON name")

    # Low level readers

    def _read_syntax(self, expected: bytes) -> None:
        char = self._reader.read()
        if char != expected:
            raise InvalidDataError(f"unexpected character {char!r}, expected {expected!r}")

    def _read_json_string(self, skip_context: bool = False) -> str:
        if not skip_context:
            self._context.read()
        self._read_syntax(QUOTE)
        raw = bytearray()
        while True:
            char = self._reader.read()
            if char == QUOTE:
                break
            raw += char
            if char == BACKSLASH:
                raw += self._reader.read()
            if len(raw) > self.config.string_length_limit:
                raise SizeLimitError(
                    f"string exceeds limit {self.config.string_length_limit}"
                )
        try:
            return json.loads(QUOTE + bytes(raw) + QUOTE)
        except ValueError as exc:
            raise InvalidDataError(f"invalid JSON string: {exc}") from exc

    def _read_numeric_chars(self) -> str:
        chars = bytearray()
        while self._reader.peek() in NUMERIC_CHARS:
            chars += self._reader.read()
        return chars.decode("ascii")

    def _read_json_integer(self, bits: int = 64) -> int:
        self._context.read()
        escaped = self._context.escape_num()
        if escaped:
            self._read_syntax(QUOTE)
        text = self._read_numeric_chars()
        if escaped:
            self._read_syntax(QUOTE)
        try:
            value = int(text)
        except ValueError as exc:
            raise InvalidDataError(f"bad integer {text!r}") from exc
        if not -(1 << (bits - 1)) <= value < (1 << (bits - 1)):
            raise InvalidDataError(f"i{bits} value out of range: {value}")
        return value

    def _read_json_double(self) -> float:
        self._context.read()
        if self._reader.peek() == QUOTE:
            text = self._read_json_string(skip_context=True)
            if text not in SPECIAL_DOUBLES and not self._context.escape_num():
                raise InvalidDataError(f"numeric value unexpectedly quoted: {text!r}")
        else:
            if self._context.escape_num():
                raise InvalidDataError("expected a quoted numeric value")
            text = self._read_numeric_chars()
        try:
            return float(text)
        except ValueError as exc:
            raise InvalidDataError(f"bad double {text!r}") from exc

    def _read_object_start(self) -> None:
        self._context.read()
        self._read_syntax(LBRACE)
        self._push(_PairContext(self))

    def _read_object_end(self) -> None:
        self._read_syntax(RBRACE)
        self._pop()

    def _read_array_start(self) -> None:
        self._context.read()
        self._read_syntax(LBRACKET)
        self._push(_ListContext(self))

    def _read_array_end(self) -> None:
        self._read_syntax(RBRACKET)
        self._pop()

    def _read_size(self) -> int:
        size = self._read_json_integer(bits=32)
        self._check_container_size(size)
        return size

    @staticmethod
    def _resolve_type(name: str, size: int, what: str) -> int:
        if name in TYPES_BY_NAME:
            return TYPES_BY_NAME[name]
        if size == 0:
            return TType.STOP
        raise MalformedTagError(f"invalid {what} type {name!r}")

    # Messages

    def write_message_begin(self, name: str, mtype: MessageType, seqid: int) -> None:
        self._write_array_start()
        self._write_json_number(VERSION)
        self._write_json_string(name)
        self._write_json_number(int(mtype))
        self._write_json_number(seqid)

    def write_message_end(self) -> None:
        self._write_array_end()

    def read_message_begin(self) -> tuple[str, MessageType, int]:
        self._read_array_start()
        version = self._read_json_integer()
        if version != VERSION:
            raise BadVersionError(f"bad version {version}, expected {VERSION}")
        name = self._read_json_string()
        mtype = self._read_json_integer()
        seqid = self._read_json_integer(bits=32)
        try:
            return name, MessageType(mtype), seqid
        except ValueError as exc:
            raise InvalidDataError(f"unknown message type {mtype}") from exc

    def read_message_end(self) -> None:
        self._read_array_end()

    # Structs and fields

    def write_struct_begin(self, name: str) -> None:
        self._write_object_start()

    def write_struct_end(self) -> None:
        self._write_object_end()

    def write_field_begin(self, name: str, ttype: TType, fid: int) -> None:
        self._write_json_number(fid)
        self._write_object_start()
        self._write_json_string(self._type_name(ttype, 1))

    def write_field_end(self) -> None:
        self._write_object_end()

    def write_field_stop(self) -> None:
        pass

    def read_struct_begin(self) -> str:
        self._read_object_start()
        return ""

    def read_struct_end(self) -> None:
        self._read_object_end()

    def read_field_begin(self) -> tuple[str, int, int]:
        if self._reader.peek() == RBRACE:
            return "", TType.STOP, 0
        fid = self._read_json_integer(bits=16)
        self._read_object_start()
        name = self._read_json_string()
        return "", self._resolve_type(name, 1, "field"), fid

    def read_field_end(self) -> None:
        self._read_object_end()

    # Containers

    def _write_collection_begin(self, etype: TType, size: int) -> None:
        self._write_array_start()
        self._write_json_string(self._type_name(etype, size))
        self._write_json_number(size)

    def _read_collection_begin(self, what: str) -> tuple[int, int]:
        self._read_array_start()
        name = self._read_json_string()
        size = self._read_size()
        return self._resolve_type(name, size, what), size

    def write_list_begin(self, etype: TType, size: int) -> None:
        self._write_collection_begin(etype, size)

    def write_list_end(self) -> None:
        self._write_array_end()

    def write_set_begin(self, etype: TType, size: int) -> None:
        self._write_collection_begin(etype, size)

    def write_set_end(self) -> None:
        self._write_array_end()

    def write_map_begin(self, ktype: TType, vtype: TType, size: int) -> None:
        self._write_array_start()
        self._write_json_string(self._type_name(ktype, size))
        self._write_json_string(self._type_name(vtype, size))
        self._write_json_number(size)
        self._write_object_start()

    def write_map_end(self) -> None:
        self._write_object_end()
        self._write_array_end()

    def read_list_begin(self) -> tuple[int, int]:
        return self._read_collection_begin("list element")

    def read_list_end(self) -> None:
        self._read_array_end()

    def read_set_begin(self) -> tuple[int, int]:
        return self._read_collection_begin("set element")

    def read_set_end(self) -> None:
        self._read_array_end()

    def read_map_begin(self) -> tuple[int, int, int]:
        self._read_array_start()
        key_name = self._read_json_string()
        value_name = self._read_json_string()
        size = self._read_size()
        self._read_object_start()
        return (
            self._resolve_type(key_name, size, "map key"),
            self._resolve_type(value_name, size, "map value"),
            size,
        )

    def read_map_end(self) -> None:
        self._read_object_end()
        self._read_array_end()

    # Primitives

    def write_bool(self, value: bool) -> None:
        self._write_json_number(1 if value else 0)

    def write_byte(self, value: int) -> None:
        self._check_range(value, 8)
        self._write_json_number(value)

    def write_i16(self, value: int) -> None:
        self._check_range(value, 16)
        self._write_json_number(value)

    def write_i32(self, value: int) -> None:
        self._check_range(value, 32)
        self._write_json_number(value)

    def write_i64(self, value: int) -> None:
        self._check_range(value, 64)
        self._write_json_number(value)

    def write_double(self, value: float) -> None:
        self._write_json_double(value)

    def write_float(self, value: float) -> None:
        self._write_json_double(value)

    def write_string(self, value: str) -> None:
        self._write_json_string(value)

    def write_binary(self, value: bytes) -> None:
        self._write_json_base64(value)

    def read_bool(self) -> bool:
        return self._read_json_integer(bits=8) != 0

    def read_byte(self) -> int:
        return self._read_json_integer(bits=8)

    def read_i16(self) -> int:
        return self._read_json_integer(bits=16)

    def read_i32(self) -> int:
        return self._read_json_integer(bits=32)

    def read_i64(self) -> int:
        return self._read_json_integer(bits=64)

    def read_double(self) -> float:
        return self._read_json_double()

    def read_float(self) -> float:
        return self._read_json_double()

    def read_string(self) -> str:
        return self._read_json_string()

    def read_binary(self) -> bytes:
        text = self._read_json_string()
        # Other writers may drop the base64 padding.
        text += "=" * (-len(text) % 4)
        try:
            return base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidDataError(f"invalid base64 data: {exc}") from exc

    def _skip_string(self) -> None:
        self._read_json_string()

    @staticmethod
    def _check_range(value: int, bits: int) -> None:
        if not -(1 << (bits - 1)) <= value < (1 << (bits - 1)):
            raise InvalidDataError(f"i{bits} value out of range: {value}")
