"""Protocol capability interface shared by every wire encoding.

Struct bindings are written purely against ``Protocol``; swapping the
concrete protocol changes the byte-level representation only.
"""

from abc import ABC, abstractmethod
from typing import Any, BinaryIO

from .errors import (
    DepthLimitError,
    EndOfStreamError,
    MalformedTagError,
    SizeLimitError,
    TransportError,
)
from .types import DEFAULT_CONFIG, MessageType, ProtocolConfig, TType


class Protocol(ABC):
    """Base class for concrete protocols.

    A protocol owns its stream for the duration of each call and keeps
    per-instance state (nesting, pending field headers), so an instance must
    not be shared between threads.

    Example:
        proto = BinaryProtocol(io.BytesIO())
        message.write(proto)
        data = proto.stream.getvalue()
    """

    name: str = ""
    # Strings travel as raw bytes and may hold binary data
    raw_strings: bool = True

    def __init__(self, stream: BinaryIO, config: ProtocolConfig | None = None) -> None:
        self.stream = stream
        self.config = config or DEFAULT_CONFIG

    # Stream access

    def _read_exact(self, size: int) -> bytes:
        if size == 0:
            return b""
        try:
            data = self.stream.read(size)
        except OSError as exc:
            raise TransportError(f"read failed: {exc}") from exc
        if data is None or len(data) < size:
            got = 0 if data is None else len(data)
            raise EndOfStreamError(f"unexpected end of stream: wanted {size} bytes, got {got}")
        return data

    def _write(self, data: bytes) -> None:
        try:
            self.stream.write(data)
        except OSError as exc:
            raise TransportError(f"write failed: {exc}") from exc

    def flush(self) -> None:
        """Flush the underlying stream if it buffers writes."""
        flush = getattr(self.stream, "flush", None)
        if flush is None:
            return
        try:
            flush()
        except OSError as exc:
            raise TransportError(f"flush failed: {exc}") from exc

    # Size checks, applied before anything is allocated

    def _check_string_length(self, length: int) -> None:
        if length < 0:
            raise SizeLimitError(f"negative string length {length}")
        if length > self.config.string_length_limit:
            raise SizeLimitError(
                f"string length {length} exceeds limit {self.config.string_length_limit}"
            )

    def _check_container_size(self, size: int) -> None:
        if size < 0:
            raise SizeLimitError(f"negative container size {size}")
        if size > self.config.container_length_limit:
            raise SizeLimitError(
                f"container size {size} exceeds limit {self.config.container_length_limit}"
            )

    # Messages

    @abstractmethod
    def write_message_begin(self, name: str, mtype: MessageType, seqid: int) -> None: ...

    @abstractmethod
    def write_message_end(self) -> None: ...

    @abstractmethod
    def read_message_begin(self) -> tuple[str, MessageType, int]: ...

    @abstractmethod
    def read_message_end(self) -> None: ...

    # Structs and fields

    @abstractmethod
    def write_struct_begin(self, name: str) -> None: ...

    @abstractmethod
    def write_struct_end(self) -> None: ...

    @abstractmethod
    def write_field_begin(self, name: str, ttype: TType, fid: int) -> None: ...

    @abstractmethod
    def write_field_end(self) -> None: ...

    @abstractmethod
    def write_field_stop(self) -> None: ...

    @abstractmethod
    def read_struct_begin(self) -> str: ...

    @abstractmethod
    def read_struct_end(self) -> None: ...

    @abstractmethod
    def read_field_begin(self) -> tuple[str, int, int]:
        """Return ``(name, ttype, fid)``; ``ttype`` is STOP at the end of a struct."""

    @abstractmethod
    def read_field_end(self) -> None: ...

    # Containers

    @abstractmethod
    def write_list_begin(self, etype: TType, size: int) -> None: ...

    @abstractmethod
    def write_list_end(self) -> None: ...

    @abstractmethod
    def write_set_begin(self, etype: TType, size: int) -> None: ...

    @abstractmethod
    def write_set_end(self) -> None: ...

    @abstractmethod
    def write_map_begin(self, ktype: TType, vtype: TType, size: int) -> None: ...

    @abstractmethod
    def write_map_end(self) -> None: ...

    @abstractmethod
    def read_list_begin(self) -> tuple[int, int]: ...

    @abstractmethod
    def read_list_end(self) -> None: ...

    @abstractmethod
    def read_set_begin(self) -> tuple[int, int]: ...

    @abstractmethod
    def read_set_end(self) -> None: ...

    @abstractmethod
    def read_map_begin(self) -> tuple[int, int, int]: ...

    @abstractmethod
    def read_map_end(self) -> None: ...

    # Primitives

    @abstractmethod
    def write_bool(self, value: bool) -> None: ...

    @abstractmethod
    def write_byte(self, value: int) -> None: ...

    @abstractmethod
    def write_i16(self, value: int) -> None: ...

    @abstractmethod
    def write_i32(self, value: int) -> None: ...

    @abstractmethod
    def write_i64(self, value: int) -> None: ...

    @abstractmethod
    def write_double(self, value: float) -> None: ...

    @abstractmethod
    def write_float(self, value: float) -> None: ...

    @abstractmethod
    def write_string(self, value: str) -> None: ...

    @abstractmethod
    def write_binary(self, value: bytes) -> None: ...

    @abstractmethod
    def read_bool(self) -> bool: ...

    @abstractmethod
    def read_byte(self) -> int: ...

    @abstractmethod
    def read_i16(self) -> int: ...

    @abstractmethod
    def read_i32(self) -> int: ...

    @abstractmethod
    def read_i64(self) -> int: ...

    @abstractmethod
    def read_double(self) -> float: ...

    @abstractmethod
    def read_float(self) -> float: ...

    @abstractmethod
    def read_string(self) -> str: ...

    @abstractmethod
    def read_binary(self) -> bytes: ...

    # Skipping

    def _skip_string(self) -> None:
        # Strings and binaries share a tag; skip without decoding either way.
        self.read_binary()

    def skip(self, ttype: int, depth: int = 0) -> None:
        """Consume and discard one value of type ``ttype``."""
        if depth > self.config.max_depth:
            raise DepthLimitError(f"maximum nesting depth {self.config.max_depth} exceeded")

        if ttype == TType.BOOL:
            self.read_bool()
        elif ttype == TType.BYTE:
            self.read_byte()
        elif ttype == TType.I16:
            self.read_i16()
        elif ttype == TType.I32:
            self.read_i32()
        elif ttype == TType.I64:
            self.read_i64()
        elif ttype == TType.DOUBLE:
            self.read_double()
        elif ttype == TType.FLOAT:
            self.read_float()
        elif ttype == TType.STRING:
            self._skip_string()
        elif ttype == TType.STRUCT:
            self.read_struct_begin()
            while True:
                _, field_type, _ = self.read_field_begin()
                if field_type == TType.STOP:
                    break
                self.skip(field_type, depth + 1)
                self.read_field_end()
            self.read_struct_end()
        elif ttype == TType.MAP:
            ktype, vtype, size = self.read_map_begin()
            for _ in range(size):
                self.skip(ktype, depth + 1)
                self.skip(vtype, depth + 1)
            self.read_map_end()
        elif ttype == TType.SET:
            etype, size = self.read_set_begin()
            for _ in range(size):
                self.skip(etype, depth + 1)
            self.read_set_end()
        elif ttype == TType.LIST:
            etype, size = self.read_list_begin()
            for _ in range(size):
                self.skip(etype, depth + 1)
            self.read_list_end()
        else:
            raise MalformedTagError(f"cannot skip value of unknown type {ttype}")


def _registry() -> dict[str, type[Protocol]]:
    from .binary import BinaryProtocol
    from .compact import CompactProtocol
    from .json_protocol import JSONProtocol

    return {
        "binary": BinaryProtocol,
        "compact": CompactProtocol,
        "json": JSONProtocol,
    }


PROTOCOL_NAMES = ("binary", "compact", "json")


def get_protocol(name: str, stream: Any, config: ProtocolConfig | None = None) -> Protocol:
    """Build a protocol by name (``binary``, ``compact`` or ``json``)."""
    protocols = _registry()
    if name.lower() not in protocols:
        raise ValueError(f"Unknown protocol {name}")
    return protocols[name.lower()](stream, config)
