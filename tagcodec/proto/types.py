"""Wire types and runtime type descriptors for tagcodec serialization.

These describe the shape of values at runtime; the struct bindings use them
to drive ``write``/``read`` and the protocols use the tag values on the wire.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any


class TType(IntEnum):
    """Wire-type tags shared by every protocol."""

    STOP = 0
    VOID = 1
    BOOL = 2
    BYTE = 3
    DOUBLE = 4
    I16 = 6
    I32 = 8
    I64 = 10
    STRING = 11
    STRUCT = 12
    MAP = 13
    SET = 14
    LIST = 15
    FLOAT = 19


I8 = TType.BYTE

# Tags that may appear in a field header or container header
VALUE_TYPES = frozenset(TType) - {TType.STOP, TType.VOID}


class MessageType(IntEnum):
    """Kinds of message envelope."""

    CALL = 1
    REPLY = 2
    EXCEPTION = 3
    ONEWAY = 4


def is_value_type(ttype: int) -> bool:
    """Check whether a raw tag names a value that can be read or skipped."""
    return ttype in VALUE_TYPES


@dataclass(frozen=True, slots=True)
class ValueType:
    """Describes how a single value is encoded.

    ``elem`` is set for lists and sets, ``key``/``value`` for maps,
    ``struct`` for nested structs and ``enum`` for i32 enums.
    """

    ttype: TType
    binary: bool = False
    elem: "ValueType | None" = None
    key: "ValueType | None" = None
    value: "ValueType | None" = None
    struct: Any = None
    enum: Any = None

    @property
    def hashable(self) -> bool:
        return self.ttype not in (TType.STRUCT, TType.LIST, TType.SET, TType.MAP)

    @property
    def name(self) -> str:
        """Human readable type name, e.g. ``map<string,list<i32>>``."""
        if self.ttype == TType.LIST:
            return f"list<{self.elem.name}>"
        if self.ttype == TType.SET:
            return f"set<{self.elem.name}>"
        if self.ttype == TType.MAP:
            return f"map<{self.key.name},{self.value.name}>"
        if self.ttype == TType.STRUCT:
            return self.struct.__name__
        if self.enum is not None:
            return self.enum.__name__
        if self.binary:
            return "binary"
        return TYPE_NAMES[self.ttype]


PRIMITIVES = {
    "bool": ValueType(TType.BOOL),
    "byte": ValueType(TType.BYTE),
    "i8": ValueType(TType.BYTE),
    "i16": ValueType(TType.I16),
    "i32": ValueType(TType.I32),
    "i64": ValueType(TType.I64),
    "double": ValueType(TType.DOUBLE),
    "float": ValueType(TType.FLOAT),
    "string": ValueType(TType.STRING),
    "binary": ValueType(TType.STRING, binary=True),
}

TYPE_NAMES = {
    TType.BOOL: "bool",
    TType.BYTE: "byte",
    TType.I16: "i16",
    TType.I32: "i32",
    TType.I64: "i64",
    TType.DOUBLE: "double",
    TType.FLOAT: "float",
    TType.STRING: "string",
    TType.STRUCT: "struct",
    TType.MAP: "map",
    TType.SET: "set",
    TType.LIST: "list",
}


def value_type(spec: Any) -> ValueType:
    """Normalize a type spec into a ValueType.

    Accepts a primitive type name, a ValueType, a Struct subclass or an
    IntEnum subclass (encoded as i32).
    """
    from .serialization import Struct

    if isinstance(spec, ValueType):
        return spec
    if isinstance(spec, str):
        if spec not in PRIMITIVES:
            raise ValueError(f"Unknown type name: {spec}")
        return PRIMITIVES[spec]
    if isinstance(spec, type) and issubclass(spec, Struct):
        return ValueType(TType.STRUCT, struct=spec)
    if isinstance(spec, type) and issubclass(spec, IntEnum):
        return ValueType(TType.I32, enum=spec)
    raise ValueError(f"Cannot use {spec!r} as a field type")


def list_of(elem: Any) -> ValueType:
    """Describe a list of ``elem``."""
    return ValueType(TType.LIST, elem=value_type(elem))


def set_of(elem: Any) -> ValueType:
    """Describe a set of ``elem``. Elements must be hashable primitives."""
    elem_type = value_type(elem)
    if not elem_type.hashable:
        raise ValueError(f"set elements must be hashable, not {elem_type.name}")
    return ValueType(TType.SET, elem=elem_type)


def map_of(key: Any, value: Any) -> ValueType:
    """Describe a map from ``key`` to ``value``. Keys must be hashable primitives."""
    key_type = value_type(key)
    if not key_type.hashable:
        raise ValueError(f"map keys must be hashable, not {key_type.name}")
    return ValueType(TType.MAP, key=key_type, value=value_type(value))


@dataclass(frozen=True, slots=True)
class ProtocolConfig:
    """Limits and options shared by every protocol implementation."""

    string_length_limit: int = 64 * 1024 * 1024
    container_length_limit: int = 16 * 1024 * 1024
    max_depth: int = 64
    strict_read: bool = False
    strict_write: bool = True


DEFAULT_CONFIG = ProtocolConfig()
