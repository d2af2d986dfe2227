"""Schemaless decoding and encoding.

Every value on the wire carries its type tag, so a struct frame can be read
without its schema into a tree of generic values and written back out with
any protocol.
"""

from dataclasses import dataclass, field
from typing import Any

from .errors import DepthLimitError, InvalidDataError, MalformedTagError
from .protocol import Protocol
from .types import MessageType, TType


@dataclass
class GenericField:
    """A field value together with its wire type."""

    ttype: TType
    value: Any


@dataclass
class GenericStruct:
    """A decoded struct frame; fields keep their wire order."""

    fields: dict[int, GenericField] = field(default_factory=dict)


@dataclass
class GenericList:
    """A decoded list or set."""

    etype: TType
    items: list[Any] = field(default_factory=list)
    kind: TType = TType.LIST


@dataclass
class GenericMap:
    """A decoded map; entries keep their wire order."""

    ktype: TType
    vtype: TType
    items: list[tuple[Any, Any]] = field(default_factory=list)


@dataclass
class GenericMessage:
    """A message envelope wrapping one struct."""

    name: str
    mtype: MessageType
    seqid: int
    body: GenericStruct


def _as_ttype(ttype: int) -> TType:
    try:
        return TType(ttype)
    except ValueError as exc:
        raise MalformedTagError(f"unknown type {ttype}") from exc


def _read_string(iprot: Protocol) -> str | bytes:
    if not iprot.raw_strings:
        return iprot.read_string()
    data = iprot.read_binary()
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data


def read_generic(iprot: Protocol, ttype: int, depth: int = 0) -> Any:
    """Decode one value of type ``ttype`` without a schema."""
    if depth > iprot.config.max_depth:
        raise DepthLimitError(f"maximum nesting depth {iprot.config.max_depth} exceeded")

    if ttype == TType.BOOL:
        return iprot.read_bool()
    if ttype == TType.BYTE:
        return iprot.read_byte()
    if ttype == TType.I16:
        return iprot.read_i16()
    if ttype == TType.I32:
        return iprot.read_i32()
    if ttype == TType.I64:
        return iprot.read_i64()
    if ttype == TType.DOUBLE:
        return iprot.read_double()
    if ttype == TType.FLOAT:
        return iprot.read_float()
    if ttype == TType.STRING:
        return _read_string(iprot)
    if ttype == TType.STRUCT:
        return read_generic_struct(iprot, depth)
    if ttype in (TType.LIST, TType.SET):
        if ttype == TType.LIST:
            etype, size = iprot.read_list_begin()
        else:
            etype, size = iprot.read_set_begin()
        result = GenericList(_as_ttype(etype), kind=TType(ttype))
        for _ in range(size):
            result.items.append(read_generic(iprot, etype, depth + 1))
        if ttype == TType.LIST:
            iprot.read_list_end()
        else:
            iprot.read_set_end()
        return result
    if ttype == TType.MAP:
        ktype, vtype, size = iprot.read_map_begin()
        result = GenericMap(_as_ttype(ktype), _as_ttype(vtype))
        for _ in range(size):
            key = read_generic(iprot, ktype, depth + 1)
            result.items.append((key, read_generic(iprot, vtype, depth + 1)))
        iprot.read_map_end()
        return result
    raise MalformedTagError(f"cannot read value of unknown type {ttype}")


def read_generic_struct(iprot: Protocol, depth: int = 0) -> GenericStruct:
    """Decode a struct frame without a schema."""
    result = GenericStruct()
    iprot.read_struct_begin()
    while True:
        _, ttype, fid = iprot.read_field_begin()
        if ttype == TType.STOP:
            break
        if fid in result.fields:
            raise InvalidDataError(f"field {fid} appears more than once")
        result.fields[fid] = GenericField(TType(ttype), read_generic(iprot, ttype, depth + 1))
        iprot.read_field_end()
    iprot.read_struct_end()
    return result


def read_generic_message(iprot: Protocol) -> GenericMessage:
    """Decode a message envelope and its struct body."""
    name, mtype, seqid = iprot.read_message_begin()
    body = read_generic_struct(iprot)
    iprot.read_message_end()
    return GenericMessage(name, mtype, seqid, body)


def write_generic(oprot: Protocol, ttype: int, value: Any) -> None:
    """Encode a value produced by read_generic."""
    if ttype == TType.BOOL:
        oprot.write_bool(value)
    elif ttype == TType.BYTE:
        oprot.write_byte(value)
    elif ttype == TType.I16:
        oprot.write_i16(value)
    elif ttype == TType.I32:
        oprot.write_i32(value)
    elif ttype == TType.I64:
        oprot.write_i64(value)
    elif ttype == TType.DOUBLE:
        oprot.write_double(value)
    elif ttype == TType.FLOAT:
        oprot.write_float(value)
    elif ttype == TType.STRING:
        if isinstance(value, str):
            oprot.write_string(value)
        else:
            oprot.write_binary(value)
    elif ttype == TType.STRUCT:
        write_generic_struct(oprot, value)
    elif ttype == TType.LIST:
        oprot.write_list_begin(value.etype, len(value.items))
        for item in value.items:
            write_generic(oprot, value.etype, item)
        oprot.write_list_end()
    elif ttype == TType.SET:
        oprot.write_set_begin(value.etype, len(value.items))
        for item in value.items:
            write_generic(oprot, value.etype, item)
        oprot.write_set_end()
    elif ttype == TType.MAP:
        oprot.write_map_begin(value.ktype, value.vtype, len(value.items))
        for key, item in value.items:
            write_generic(oprot, value.ktype, key)
            write_generic(oprot, value.vtype, item)
        oprot.write_map_end()
    else:
        raise MalformedTagError(f"cannot write value of unknown type {ttype}")


def write_generic_struct(oprot: Protocol, value: GenericStruct, name: str = "") -> None:
    """Encode a struct produced by read_generic_struct."""
    oprot.write_struct_begin(name)
    for fid, generic_field in value.fields.items():
        oprot.write_field_begin("", generic_field.ttype, fid)
        write_generic(oprot, generic_field.ttype, generic_field.value)
        oprot.write_field_end()
    oprot.write_field_stop()
    oprot.write_struct_end()


def write_generic_message(oprot: Protocol, message: GenericMessage) -> None:
    """Encode a message produced by read_generic_message."""
    oprot.write_message_begin(message.name, message.mtype, message.seqid)
    write_generic_struct(oprot, message.body)
    oprot.write_message_end()
