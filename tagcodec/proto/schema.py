"""JSON schema documents describing struct shapes.

A schema document names the fields of a struct by id so that schemaless
decodes (see ``generic``) can be labelled, and lets a binding's shape be
exported for other tools.
"""

import json
from dataclasses import dataclass, field

from dataclasses_json import DataClassJsonMixin

from .serialization import Struct
from .types import TType, ValueType


@dataclass
class SchemaField(DataClassJsonMixin):
    """Represents a single field of a struct.

    ``type`` is the wire type name (``bool``, ``i32``, ``string``, ``list``...),
    ``struct`` names the nested struct for ``struct`` fields and
    ``type_name`` carries the full type, e.g. ``list<i32>``.
    """

    id: int
    name: str
    type: str
    type_name: str | None = None
    struct: str | None = None
    required: bool = False
    optional: bool = False


@dataclass
class SchemaStruct(DataClassJsonMixin):
    """Represents a struct and its fields."""

    name: str
    fields: list[SchemaField] = field(default_factory=list)

    def field_by_id(self, fid: int) -> SchemaField | None:
        for schema_field in self.fields:
            if schema_field.id == fid:
                return schema_field
        return None


def _wire_name(vtype: ValueType) -> str:
    if vtype.ttype == TType.STRING and vtype.binary:
        return "binary"
    return vtype.ttype.name.lower()


def _nested_struct(vtype: ValueType) -> str | None:
    # Containers of structs are labelled with their element struct.
    structs = _referenced_structs(vtype)
    return structs[0].__name__ if structs else None


def struct_schema(cls: type[Struct]) -> SchemaStruct:
    """Build the schema document of a struct binding."""
    spec = cls.struct_spec()
    return SchemaStruct(
        name=spec.name,
        fields=[
            SchemaField(
                id=info.id,
                name=info.name,
                type=_wire_name(info.vtype),
                type_name=info.vtype.name,
                struct=_nested_struct(info.vtype),
                required=info.required,
                optional=info.optional,
            )
            for info in spec.fields
        ],
    )


def collect_structs(cls: type[Struct]) -> list[type[Struct]]:
    """Return ``cls`` and every struct reachable from its fields, in discovery order."""
    found: list[type[Struct]] = []
    pending = [cls]
    while pending:
        current = pending.pop(0)
        if current in found:
            continue
        found.append(current)
        for info in current.struct_spec().fields:
            pending.extend(_referenced_structs(info.vtype))
    return found


def _referenced_structs(vtype: ValueType | None) -> list[type[Struct]]:
    if vtype is None:
        return []
    if vtype.ttype == TType.STRUCT:
        return [vtype.struct]
    return (
        _referenced_structs(vtype.elem)
        + _referenced_structs(vtype.key)
        + _referenced_structs(vtype.value)
    )


def dump_schema(structs: list[SchemaStruct]) -> str:
    """Serialize schema documents to JSON."""
    return json.dumps([s.to_dict() for s in structs], indent=2)


def load_schema(text: str) -> dict[str, SchemaStruct]:
    """Load schema documents from JSON, keyed by struct name.

    Accepts either a list of structs or a single struct object.
    """
    data = json.loads(text)
    if isinstance(data, dict):
        data = [data]
    structs = [SchemaStruct.from_dict(item) for item in data]
    return {s.name: s for s in structs}
