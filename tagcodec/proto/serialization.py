"""Struct bindings: field metadata, the struct frame codec and value codecs."""

import io
import logging
from collections.abc import Mapping
from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, ClassVar, Self

from .errors import CodecError, DepthLimitError, InvalidDataError, prepend_error
from .protocol import Protocol, get_protocol
from .types import ProtocolConfig, TType, ValueType, value_type

logger = logging.getLogger(__name__)

METADATA_KEY = "tagcodec"


@dataclass(frozen=True)
class FieldInfo:
    """Field descriptor: id and wire type, plus the wire name for diagnostics.

    ``attr`` and ``name`` are filled in from the dataclass field when the
    struct spec is built.
    """

    id: int
    vtype: ValueType
    name: str | None = None
    required: bool = False
    optional: bool = False
    attr: str = ""


@dataclass(frozen=True)
class StructSpec:
    """Shape of a struct: fields in declaration order and the id dispatch table."""

    name: str
    fields: tuple[FieldInfo, ...]
    by_id: dict[int, FieldInfo]


# Sentinel for missing default
_MISSING: Any = object()


def _zero_default(vtype: ValueType) -> tuple[Any, Any]:
    """Return the (default, default_factory) pair for a field of this type."""
    if vtype.ttype == TType.LIST:
        return _MISSING, list
    if vtype.ttype == TType.SET:
        return _MISSING, set
    if vtype.ttype == TType.MAP:
        return _MISSING, dict
    if vtype.ttype == TType.STRUCT or vtype.enum is not None:
        return None, _MISSING
    if vtype.ttype == TType.BOOL:
        return False, _MISSING
    if vtype.ttype in (TType.DOUBLE, TType.FLOAT):
        return 0.0, _MISSING
    if vtype.ttype == TType.STRING:
        return (b"" if vtype.binary else ""), _MISSING
    return 0, _MISSING


def tfield(
    id: int,
    type: Any,
    *,
    name: str | None = None,
    required: bool = False,
    optional: bool = False,
    default: Any = _MISSING,
    default_factory: Any = _MISSING,
) -> Any:
    """Define a struct field with serialization metadata.

    Args:
        id: Field id, unique within the struct (1-32767).
        type: Type name ("i32", "string", ...), a ValueType from list_of/set_of/
            map_of, a Struct subclass or an IntEnum subclass.
        name: Wire name used in diagnostics and rendering. Defaults to the
            attribute name.
        required: Decoding fails if the field is absent.
        optional: The field defaults to None and is omitted while None.
        default: Default value. Defaults to the zero value of the type.
        default_factory: Factory function for the default value.

    Returns:
        A dataclass field with the field descriptor attached.
    """
    if not 0 < id < 1 << 15:
        raise ValueError(f"field id {id} is out of range")
    if required and optional:
        raise ValueError("a field cannot be both required and optional")

    info = FieldInfo(id, value_type(type), name, required, optional)
    metadata = {METADATA_KEY: info}

    if default is _MISSING and default_factory is _MISSING:
        if required or optional:
            default = None
        else:
            default, default_factory = _zero_default(info.vtype)

    if default is not _MISSING:
        return field(default=default, metadata=metadata)
    return field(default_factory=default_factory, metadata=metadata)


def _build_spec(cls: type) -> StructSpec:
    if not is_dataclass(cls):
        raise TypeError(f"{cls.__name__} must be a dataclass")

    infos: list[FieldInfo] = []
    by_id: dict[int, FieldInfo] = {}
    for dc_field in fields(cls):
        info = dc_field.metadata.get(METADATA_KEY)
        if info is None:
            continue
        if dc_field.default is MISSING and dc_field.default_factory is MISSING:
            raise TypeError(f"{cls.__name__}.{dc_field.name} needs a default")
        info = FieldInfo(
            info.id,
            info.vtype,
            info.name or dc_field.name,
            info.required,
            info.optional,
            dc_field.name,
        )
        if info.id in by_id:
            raise ValueError(
                f"{cls.__name__}: field id {info.id} used by both "
                f"{by_id[info.id].name} and {info.name}"
            )
        by_id[info.id] = info
        infos.append(info)

    return StructSpec(cls.__name__, tuple(infos), by_id)


def _wrap(prefix: str, exc: Exception, struct_name: str, field_id: int | None = None) -> CodecError:
    err = prepend_error(prefix, exc)
    if err.struct_name is None:
        err.struct_name = struct_name
        err.field_id = field_id
    return err


def _display_name(name: str) -> str:
    return name[:1].upper() + name[1:]


def _render(value: Any) -> str:
    if value is None:
        return "<nil>"
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, list):
        return "[" + " ".join(_render(v) for v in value) + "]"
    if isinstance(value, (set, frozenset)):
        return "[" + " ".join(_render(v) for v in _ordered(value)) + "]"
    if isinstance(value, dict):
        entries = " ".join(f"{_render(k)}:{_render(v)}" for k, v in _ordered_items(value))
        return "map[" + entries + "]"
    return str(value)


def _ordered(values: Any) -> list[Any]:
    try:
        return sorted(values)
    except TypeError:
        return list(values)


def _ordered_items(mapping: Mapping[Any, Any]) -> list[tuple[Any, Any]]:
    return [(key, mapping[key]) for key in _ordered(mapping)]


class Struct:
    """Base class for struct bindings.

    Subclasses should be @dataclass decorated and define their fields with
    tfield(). Every field needs a default so that absent fields decode to
    their zero value.

    Example:
        @dataclass
        class Adapter(Struct):
            name: str = tfield(1, "string")
            type_hint: str = tfield(2, "string", name="typeHint")

        data = Adapter(name="foo", type_hint="bar").pack()
        adapter, consumed = Adapter.unpack(data)
    """

    _tagcodec_spec: ClassVar[StructSpec | None] = None

    @classmethod
    def struct_spec(cls) -> StructSpec:
        """Return the (cached) struct shape for this class."""
        spec = cls.__dict__.get("_tagcodec_spec")
        if spec is None:
            spec = _build_spec(cls)
            cls._tagcodec_spec = spec
        return spec

    def write(self, oprot: Protocol) -> None:
        """Encode this struct: every present field in declaration order, then stop."""
        spec = self.struct_spec()
        name = spec.name

        try:
            oprot.write_struct_begin(name)
        except CodecError as exc:
            raise _wrap(f"{name} write struct begin error: ", exc, name) from exc

        for info in spec.fields:
            value = getattr(self, info.attr)
            if value is None:
                if info.required:
                    raise InvalidDataError(
                        f"{name} required field {info.name} is not set",
                        struct_name=name,
                        field_id=info.id,
                    )
                continue
            self._write_field(oprot, info, value)

        try:
            oprot.write_field_stop()
        except CodecError as exc:
            raise _wrap("write field stop error: ", exc, name) from exc
        try:
            oprot.write_struct_end()
        except CodecError as exc:
            raise _wrap("write struct stop error: ", exc, name) from exc

    def _write_field(self, oprot: Protocol, info: FieldInfo, value: Any) -> None:
        name = self.struct_spec().name
        label = f"{info.id}:{info.name}"

        try:
            oprot.write_field_begin(info.name, info.vtype.ttype, info.id)
        except CodecError as exc:
            raise _wrap(f"{name} write field begin error {label}: ", exc, name, info.id) from exc
        try:
            write_value(oprot, info.vtype, value)
        except (CodecError, TypeError, ValueError) as exc:
            raise _wrap(
                f"{name}.{info.name} ({info.id}) field write error: ", exc, name, info.id
            ) from exc
        try:
            oprot.write_field_end()
        except CodecError as exc:
            raise _wrap(f"{name} write field end error {label}: ", exc, name, info.id) from exc

    @classmethod
    def read(cls, iprot: Protocol, depth: int = 0) -> Self:
        """Decode a struct.

        Fields may arrive in any order. Unknown ids and fields whose wire type
        does not match the schema are skipped. The instance is only built once
        the whole frame has been read; any error aborts the decode.
        """
        spec = cls.struct_spec()
        name = spec.name

        if depth > iprot.config.max_depth:
            raise DepthLimitError(
                f"{name} read error: maximum nesting depth {iprot.config.max_depth} exceeded",
                struct_name=name,
            )

        try:
            iprot.read_struct_begin()
        except CodecError as exc:
            raise _wrap(f"{name} read error: ", exc, name) from exc

        values: dict[str, Any] = {}
        while True:
            try:
                _, ttype, fid = iprot.read_field_begin()
            except CodecError as exc:
                raise _wrap(f"{name} field header read error: ", exc, name) from exc
            if ttype == TType.STOP:
                break

            info = spec.by_id.get(fid)
            try:
                if info is not None and info.vtype.ttype == ttype:
                    values[info.attr] = read_value(iprot, info.vtype, depth + 1)
                else:
                    logger.debug("%s: skipping field %d of type %d", name, fid, ttype)
                    iprot.skip(ttype, depth + 1)
                iprot.read_field_end()
            except CodecError as exc:
                raise _wrap(f"error reading field {fid}: ", exc, name, fid) from exc

        try:
            iprot.read_struct_end()
        except CodecError as exc:
            raise _wrap(f"{name} read struct end error: ", exc, name) from exc

        for info in spec.fields:
            if info.required and info.attr not in values:
                raise InvalidDataError(
                    f"{name} required field {info.name} is not set",
                    struct_name=name,
                    field_id=info.id,
                )

        return cls(**values)

    def pack(self, protocol: str = "binary", config: ProtocolConfig | None = None) -> bytes:
        """Encode this struct to bytes with the named protocol."""
        stream = io.BytesIO()
        self.write(get_protocol(protocol, stream, config))
        return stream.getvalue()

    @classmethod
    def unpack(
        cls,
        data: bytes | memoryview,
        protocol: str = "binary",
        config: ProtocolConfig | None = None,
    ) -> tuple[Self, int]:
        """Decode a struct from bytes.

        Args:
            data: The bytes to decode.
            protocol: Protocol name ("binary", "compact" or "json").
            config: Optional limits for the protocol.

        Returns:
            Tuple of (instance, bytes_consumed).
        """
        stream = io.BytesIO(bytes(data))
        instance = cls.read(get_protocol(protocol, stream, config))
        return instance, stream.tell()

    @classmethod
    def describe(cls) -> Any:
        """Return the shape of this struct as a SchemaStruct document."""
        from .schema import struct_schema

        return struct_schema(cls)

    def __str__(self) -> str:
        spec = self.struct_spec()
        parts = [
            f"{_display_name(info.name)}:{_render(getattr(self, info.attr))}"
            for info in spec.fields
        ]
        return f"{spec.name}({{{' '.join(parts)}}})"


def _check_elem(actual: int, expected: ValueType, size: int, what: str) -> None:
    if size > 0 and actual != expected.ttype:
        raise InvalidDataError(
            f"{what} type mismatch: expected {expected.name}, got type {actual}"
        )


def write_value(oprot: Protocol, vtype: ValueType, value: Any) -> None:
    """Encode one value of any shape."""
    ttype = vtype.ttype

    if ttype == TType.BOOL:
        oprot.write_bool(bool(value))
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
        if vtype.binary:
            if not isinstance(value, (bytes, bytearray, memoryview)):
                raise InvalidDataError(f"expected bytes, got {type(value).__name__}")
            oprot.write_binary(bytes(value))
        else:
            if not isinstance(value, str):
                raise InvalidDataError(f"expected str, got {type(value).__name__}")
            oprot.write_string(value)
    elif ttype == TType.STRUCT:
        if not isinstance(value, vtype.struct):
            raise InvalidDataError(
                f"expected {vtype.struct.__name__}, got {type(value).__name__}"
            )
        value.write(oprot)
    elif ttype == TType.LIST:
        oprot.write_list_begin(vtype.elem.ttype, len(value))
        for item in value:
            write_value(oprot, vtype.elem, item)
        oprot.write_list_end()
    elif ttype == TType.SET:
        oprot.write_set_begin(vtype.elem.ttype, len(value))
        for item in _ordered(value):
            write_value(oprot, vtype.elem, item)
        oprot.write_set_end()
    elif ttype == TType.MAP:
        if not isinstance(value, Mapping):
            raise InvalidDataError(f"expected mapping, got {type(value).__name__}")
        oprot.write_map_begin(vtype.key.ttype, vtype.value.ttype, len(value))
        for key, item in value.items():
            write_value(oprot, vtype.key, key)
            write_value(oprot, vtype.value, item)
        oprot.write_map_end()
    else:
        raise InvalidDataError(f"cannot write value of type {ttype}")


def read_value(iprot: Protocol, vtype: ValueType, depth: int = 0) -> Any:
    """Decode one value of any shape."""
    ttype = vtype.ttype

    if ttype == TType.BOOL:
        return iprot.read_bool()
    if ttype == TType.BYTE:
        return iprot.read_byte()
    if ttype == TType.I16:
        return iprot.read_i16()
    if ttype == TType.I32:
        value = iprot.read_i32()
        if vtype.enum is not None:
            try:
                return vtype.enum(value)
            except ValueError:
                # Values added by newer schemas are kept as plain ints.
                return value
        return value
    if ttype == TType.I64:
        return iprot.read_i64()
    if ttype == TType.DOUBLE:
        return iprot.read_double()
    if ttype == TType.FLOAT:
        return iprot.read_float()
    if ttype == TType.STRING:
        return iprot.read_binary() if vtype.binary else iprot.read_string()
    if ttype == TType.STRUCT:
        return vtype.struct.read(iprot, depth)

    if depth > iprot.config.max_depth:
        raise DepthLimitError(f"maximum nesting depth {iprot.config.max_depth} exceeded")

    if ttype == TType.LIST:
        etype, size = iprot.read_list_begin()
        _check_elem(etype, vtype.elem, size, "list element")
        items = [read_value(iprot, vtype.elem, depth + 1) for _ in range(size)]
        iprot.read_list_end()
        return items
    if ttype == TType.SET:
        etype, size = iprot.read_set_begin()
        _check_elem(etype, vtype.elem, size, "set element")
        members = {read_value(iprot, vtype.elem, depth + 1) for _ in range(size)}
        iprot.read_set_end()
        return members
    if ttype == TType.MAP:
        ktype, vtype_tag, size = iprot.read_map_begin()
        _check_elem(ktype, vtype.key, size, "map key")
        _check_elem(vtype_tag, vtype.value, size, "map value")
        result = {}
        for _ in range(size):
            key = read_value(iprot, vtype.key, depth + 1)
            result[key] = read_value(iprot, vtype.value, depth + 1)
        iprot.read_map_end()
        return result
    raise InvalidDataError(f"cannot read value of type {ttype}")
