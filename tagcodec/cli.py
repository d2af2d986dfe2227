"""Command-line interface for inspecting and transcoding encoded payloads."""

from __future__ import annotations

import io
import json
import sys
from typing import Any

import click
from rich.console import Console
from rich.text import Text
from rich.tree import Tree

from tagcodec.proto import PROTOCOL_NAMES, CodecError, TType, get_protocol
from tagcodec.proto.generic import (
    GenericList,
    GenericMap,
    GenericMessage,
    GenericStruct,
    read_generic_message,
    read_generic_struct,
    write_generic_message,
    write_generic_struct,
)
from tagcodec.proto.schema import SchemaStruct, load_schema

_TYPE_NAMES = {ttype: ttype.name.lower() for ttype in TType}


@click.group()
def cli() -> None:
    """tagcodec payload tools."""


def _read_payload(input_file: str, hex_input: bool) -> bytes:
    with open(input_file, "rb") as f:
        data = f.read()
    if hex_input:
        try:
            return bytes.fromhex(data.decode("ascii"))
        except ValueError as exc:
            raise click.BadParameter(f"input is not valid hex: {exc}") from exc
    return data


def _decode(data: bytes, protocol: str, message: bool) -> GenericStruct | GenericMessage:
    iprot = get_protocol(protocol, io.BytesIO(data))
    if message:
        return read_generic_message(iprot)
    return read_generic_struct(iprot)


@cli.command()
@click.option(
    "--protocol",
    "-p",
    default="binary",
    type=click.Choice(PROTOCOL_NAMES),
    help="Wire protocol of the input",
)
@click.option("--input", "-i", "input_file", required=True, help="Input file")
@click.option("--hex", "hex_input", is_flag=True, help="Input is hex text")
@click.option("--message", is_flag=True, help="Input starts with a message header")
@click.option("--schema", "schema_file", default=None, help="JSON schema file naming the fields")
@click.option("--struct", "struct_name", default=None, help="Struct in the schema to decode as")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def inspect(
    protocol: str,
    input_file: str,
    hex_input: bool,
    message: bool,
    schema_file: str | None,
    struct_name: str | None,
    output_json: bool,
) -> None:
    """Decode one struct without its schema and print it."""
    data = _read_payload(input_file, hex_input)

    schemas: dict[str, SchemaStruct] = {}
    if schema_file:
        with open(schema_file, encoding="utf-8") as f:
            schemas = load_schema(f.read())
        if struct_name is None and len(schemas) == 1:
            struct_name = next(iter(schemas))
        if struct_name is None:
            print(f"Schema holds several structs, pick one with --struct: {', '.join(schemas)}")
            sys.exit(1)
        if struct_name not in schemas:
            print(f"Unknown struct: {struct_name}")
            sys.exit(1)

    try:
        decoded = _decode(data, protocol, message)
    except CodecError as exc:
        print(f"Decode error: {exc}")
        sys.exit(1)

    labeller = _Labeller(schemas)
    root_schema = schemas.get(struct_name) if struct_name else None

    if output_json:
        _output_json(decoded, root_schema, labeller)
    else:
        _output_plain(decoded, root_schema, labeller)


@cli.command()
@click.option(
    "--from", "-f", "from_protocol", required=True, type=click.Choice(PROTOCOL_NAMES)
)
@click.option("--to", "-t", "to_protocol", required=True, type=click.Choice(PROTOCOL_NAMES))
@click.option("--input", "-i", "input_file", required=True, help="Input file")
@click.option("--output", "-o", "output_file", required=True, help="Output file")
@click.option("--hex", "hex_io", is_flag=True, help="Read and write hex text")
@click.option("--message", is_flag=True, help="Input starts with a message header")
def convert(
    from_protocol: str,
    to_protocol: str,
    input_file: str,
    output_file: str,
    hex_io: bool,
    message: bool,
) -> None:
    """Transcode one struct from one protocol to another."""
    data = _read_payload(input_file, hex_io)

    try:
        decoded = _decode(data, from_protocol, message)
        stream = io.BytesIO()
        oprot = get_protocol(to_protocol, stream)
        if isinstance(decoded, GenericMessage):
            write_generic_message(oprot, decoded)
        else:
            write_generic_struct(oprot, decoded)
    except CodecError as exc:
        print(f"Conversion error: {exc}")
        sys.exit(1)

    output = stream.getvalue()
    if hex_io:
        with open(output_file, "w", encoding="utf-8") as f:
            f.write(output.hex())
    else:
        with open(output_file, "wb") as f:
            f.write(output)


class _Labeller:
    """Resolves field names from schema documents."""

    def __init__(self, schemas: dict[str, SchemaStruct]) -> None:
        self._schemas = schemas

    def field_label(self, schema: SchemaStruct | None, fid: int) -> tuple[str | None, SchemaStruct | None]:
        """Return the field name and the schema of any struct nested in it."""
        if schema is None:
            return None, None
        schema_field = schema.field_by_id(fid)
        if schema_field is None:
            return None, None
        nested = self._schemas.get(schema_field.struct) if schema_field.struct else None
        return schema_field.name, nested


def _scalar(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.hex()
    return value


def _to_plain(value: Any, schema: SchemaStruct | None, labeller: _Labeller) -> Any:
    """Convert a generic value into JSON-compatible data."""
    if isinstance(value, GenericStruct):
        fields = []
        for fid, generic_field in value.fields.items():
            name, nested = labeller.field_label(schema, fid)
            entry: dict[str, Any] = {"id": fid}
            if name:
                entry["name"] = name
            entry["type"] = _TYPE_NAMES[generic_field.ttype]
            entry["value"] = _to_plain(generic_field.value, nested, labeller)
            fields.append(entry)
        return {"fields": fields}
    if isinstance(value, GenericList):
        return {
            "type": _TYPE_NAMES[value.kind],
            "elem_type": _TYPE_NAMES[value.etype],
            "items": [_to_plain(item, schema, labeller) for item in value.items],
        }
    if isinstance(value, GenericMap):
        return {
            "type": "map",
            "key_type": _TYPE_NAMES[value.ktype],
            "value_type": _TYPE_NAMES[value.vtype],
            "items": [
                [_to_plain(k, schema, labeller), _to_plain(v, schema, labeller)]
                for k, v in value.items
            ],
        }
    return _scalar(value)


def _output_json(
    decoded: GenericStruct | GenericMessage,
    schema: SchemaStruct | None,
    labeller: _Labeller,
) -> None:
    """Output a decoded payload as JSON."""
    if isinstance(decoded, GenericMessage):
        data: dict[str, Any] = {
            "message": {
                "name": decoded.name,
                "type": decoded.mtype.name.lower(),
                "seqid": decoded.seqid,
            },
            "body": _to_plain(decoded.body, schema, labeller),
        }
    else:
        data = _to_plain(decoded, schema, labeller)
        if schema:
            data["struct"] = schema.name

    print(json.dumps(data, indent=2))


def _add_value(
    node: Tree,
    label: str,
    ttype: TType,
    value: Any,
    schema: SchemaStruct | None,
    labeller: _Labeller,
) -> None:
    type_name = _TYPE_NAMES[ttype]
    if isinstance(value, GenericStruct):
        title = f"{label} ({schema.name})" if schema else f"{label} (struct)"
        _add_struct(node.add(Text(title)), value, schema, labeller)
    elif isinstance(value, GenericList):
        branch = node.add(
            Text(f"{label} ({type_name}<{_TYPE_NAMES[value.etype]}>, {len(value.items)} items)")
        )
        for index, item in enumerate(value.items):
            _add_value(branch, f"[{index}]", value.etype, item, schema, labeller)
    elif isinstance(value, GenericMap):
        branch = node.add(
            Text(
                f"{label} (map<{_TYPE_NAMES[value.ktype]},{_TYPE_NAMES[value.vtype]}>, "
                f"{len(value.items)} items)"
            )
        )
        for key, item in value.items:
            _add_value(branch, f"[{_scalar(key)}]", value.vtype, item, schema, labeller)
    else:
        node.add(Text(f"{label} ({type_name}) = {_scalar(value)}"))


def _add_struct(
    node: Tree,
    value: GenericStruct,
    schema: SchemaStruct | None,
    labeller: _Labeller,
) -> None:
    for fid, generic_field in value.fields.items():
        name, nested = labeller.field_label(schema, fid)
        label = f"{fid}:{name}" if name else str(fid)
        _add_value(node, label, generic_field.ttype, generic_field.value, nested, labeller)


def _output_plain(
    decoded: GenericStruct | GenericMessage,
    schema: SchemaStruct | None,
    labeller: _Labeller,
) -> None:
    """Output a decoded payload as a rich tree."""
    console = Console()

    if isinstance(decoded, GenericMessage):
        console.print("[bold cyan]Message[/bold cyan]")
        console.print(
            Text(f"{decoded.name} {decoded.mtype.name.lower()} seqid={decoded.seqid}")
        )
        body = decoded.body
    else:
        body = decoded

    root = Tree(Text(schema.name if schema else "struct"))
    _add_struct(root, body, schema, labeller)
    console.print(root)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
