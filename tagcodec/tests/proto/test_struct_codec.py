"""Tests for struct bindings"""

import logging
from dataclasses import dataclass, replace

from pytest import raises

from sample_structs import (
    Account,
    Adapter,
    Bag,
    Color,
    Everything,
    Flags,
    Hidden,
    IOBuf,
    Name,
    Point,
    Profile,
    Segment,
    populated,
)
from tagcodec.proto import (
    PROTOCOL_NAMES,
    CodecError,
    InvalidDataError,
    Struct,
    TType,
    list_of,
    set_of,
    tfield,
    value_type,
)

UNKNOWN_FIELDS = (
    b"\x0b\x00\x63\x00\x00\x00\x02hi"
    b"\x0c\x00\x64\x08\x00\x01\x00\x00\x00\x07\x00"
    b"\x0f\x00\x65\x08\x00\x00\x00\x02\x00\x00\x00\x01\x00\x00\x00\x02"
    b"\x0d\x00\x66\x0b\x08\x00\x00\x00\x01\x00\x00\x00\x01k\x00\x00\x00\x09"
)
X_FIELD = b"\x08\x00\x01\x00\x00\x00\x05"
Y_FIELD = b"\x08\x00\x02\x00\x00\x00\x06"


def describe_round_trip():
    def populated_struct_in_every_protocol(expect):
        original = populated()
        for protocol in PROTOCOL_NAMES:
            packed = original.pack(protocol)
            recovered, consumed = Everything.unpack(packed, protocol)
            expect(recovered) == original
            expect(consumed) == len(packed)

    def zero_valued_struct_in_every_protocol(expect):
        for protocol in PROTOCOL_NAMES:
            recovered, _ = Everything.unpack(Everything().pack(protocol), protocol)
            expect(recovered) == Everything()

    def empty_structs(expect):
        for cls in (Hidden, Flags, IOBuf):
            for protocol in PROTOCOL_NAMES:
                expect(cls.unpack(cls().pack(protocol), protocol)[0]) == cls()

    def enum_values(expect):
        recovered, _ = Bag.unpack(Bag(color=Color.GREEN).pack())
        expect(recovered.color) == Color.GREEN
        expect(isinstance(recovered.color, Color)) == True

    def unknown_enum_values_stay_ints(expect):
        recovered, _ = Bag.unpack(b"\x08\x00\x04\x00\x00\x00\x63\x00")
        expect(recovered.color) == 99

    def builder_is_construction_plus_replace(expect):
        adapter = replace(Adapter(name="foo"), type_hint="bar")
        expect(Adapter.unpack(adapter.pack())[0]) == Adapter(name="foo", type_hint="bar")


def describe_forward_compatibility():
    def unknown_fields_are_ignored(expect):
        data = X_FIELD + UNKNOWN_FIELDS + Y_FIELD + b"\x00"
        expect(Point.unpack(data)) == (Point(x=5, y=6), len(data))
        expect(Point.unpack(X_FIELD + Y_FIELD + b"\x00")[0]) == Point(x=5, y=6)

    def fields_may_arrive_in_any_order(expect):
        expect(Point.unpack(Y_FIELD + X_FIELD + b"\x00")[0]) == Point(x=5, y=6)

    def mismatched_wire_type_is_skipped(expect):
        data = b"\x0b\x00\x01\x00\x00\x00\x01z" + Y_FIELD + b"\x00"
        expect(Point.unpack(data)) == (Point(x=0, y=6), len(data))

    def newer_struct_decodes_with_older_schema(expect):
        @dataclass
        class PointV2(Struct):
            x: int = tfield(1, "i32")
            y: int = tfield(2, "i32")
            label: str = tfield(3, "string")
            history: list[Point] = tfield(4, list_of(Point))

        newer = PointV2(x=1, y=2, label="new", history=[Point(x=9, y=9)])
        for protocol in PROTOCOL_NAMES:
            expect(Point.unpack(newer.pack(protocol), protocol)[0]) == Point(x=1, y=2)
            expect(PointV2.unpack(Point(x=1, y=2).pack(protocol), protocol)[0]) == PointV2(
                x=1, y=2
            )

    def skipped_fields_are_logged(expect, caplog):
        caplog.set_level(logging.DEBUG, logger="tagcodec")
        Point.unpack(X_FIELD + UNKNOWN_FIELDS + b"\x00")
        expect("Point: skipping field 99 of type 11" in caplog.text) == True


def describe_truncation():
    def every_prefix_fails(expect):
        original = populated()
        for protocol in PROTOCOL_NAMES:
            packed = original.pack(protocol)
            for size in range(len(packed)):
                with raises(CodecError):
                    Everything.unpack(packed[:size], protocol)

    def error_carries_struct_and_field(expect):
        with raises(CodecError) as exc_info:
            Point.unpack(b"\x08\x00\x01\x00\x00")
        err = exc_info.value
        expect(str(err)) == "error reading field 1: unexpected end of stream: wanted 4 bytes, got 2"
        expect(err.struct_name) == "Point"
        expect(err.field_id) == 1

    def header_errors_name_the_struct(expect):
        with raises(CodecError) as exc_info:
            Point.unpack(b"")
        expect(str(exc_info.value)) == (
            "Point field header read error: unexpected end of stream: wanted 1 bytes, got 0"
        )

    def nested_errors_keep_the_innermost_context(expect):
        with raises(CodecError) as exc_info:
            Segment.unpack(b"\x0c\x00\x01" b"\x08\x00\x01\x00")
        err = exc_info.value
        expect(str(err)) == (
            "error reading field 1: error reading field 1: "
            "unexpected end of stream: wanted 4 bytes, got 1"
        )
        expect(err.struct_name) == "Point"
        expect(err.field_id) == 1


def describe_requiredness():
    def optional_none_fields_are_omitted(expect):
        expect(Profile(name="a").pack()) == b"\x0b\x00\x01\x00\x00\x00\x01a\x00"
        expect(Profile.unpack(b"\x00")[0].nickname) == None

    def required_field_must_be_set_to_write(expect):
        with raises(InvalidDataError) as exc_info:
            Account(owner="x").pack()
        expect(str(exc_info.value)) == "Account required field id is not set"
        expect(exc_info.value.field_id) == 1

    def required_field_must_be_present_to_read(expect):
        with raises(InvalidDataError):
            Account.unpack(b"\x0b\x00\x02\x00\x00\x00\x01x\x00")

        recovered, _ = Account.unpack(Account(id=4, owner="x").pack())
        expect(recovered) == Account(id=4, owner="x")


def describe_write_errors():
    def out_of_range_value(expect):
        with raises(InvalidDataError) as exc_info:
            Point(x=2**40).pack()
        expect(str(exc_info.value).startswith("Point.x (1) field write error: ")) == True
        expect(exc_info.value.struct_name) == "Point"

    def wrong_python_type(expect):
        with raises(InvalidDataError) as exc_info:
            Adapter(name=5).pack()
        expect(str(exc_info.value)) == "Adapter.name (1) field write error: expected str, got int"

    def wrong_nested_struct(expect):
        with raises(InvalidDataError):
            Segment(start=Adapter()).pack()

    def map_field_needs_a_mapping(expect):
        with raises(InvalidDataError) as exc_info:
            Bag(counts=[1, 2]).pack()
        expect(str(exc_info.value)) == "Bag.counts (2) field write error: expected mapping, got list"
        expect(exc_info.value.field_id) == 2

    def non_numeric_double(expect):
        for protocol in PROTOCOL_NAMES:
            with raises(InvalidDataError) as exc_info:
                Everything(ratio="x").pack(protocol)
            expect(str(exc_info.value).startswith("Everything.ratio (6) field write error: ")) == True
            expect(exc_info.value.struct_name) == "Everything"


def describe_rendering():
    def two_field_record(expect):
        expect(str(Adapter(name="foo", type_hint="bar"))) == "Adapter({Name:foo TypeHint:bar})"

    def empty_structs(expect):
        expect(str(Hidden())) == "Hidden({})"
        expect(str(IOBuf())) == "IOBuf({})"

    def single_field(expect):
        expect(str(Name(name="x"))) == "Name({Name:x})"

    def nested_and_nil(expect):
        expect(str(Segment(start=Point(x=1, y=2)))) == "Segment({Start:Point({X:1 Y:2}) End:<nil>})"

    def containers(expect):
        bag = Bag(items=[1, 2], counts={"a": 1}, payload=b"\x01\xff", color=Color.RED)
        expect(str(bag)) == "Bag({Items:[1 2] Counts:map[a:1] Payload:01ff Color:RED})"

    def maps_render_in_key_order(expect):
        first = Bag(counts={"a": 1, "b": 2})
        second = Bag(counts={"b": 2, "a": 1})
        expect(first) == second
        expect(str(first)) == str(second)
        expect("Counts:map[a:1 b:2]" in str(second)) == True


def describe_definitions():
    def field_ids_are_positive_i16(expect):
        with raises(ValueError):
            tfield(0, "i32")
        with raises(ValueError):
            tfield(1 << 15, "i32")

    def required_and_optional_are_exclusive(expect):
        with raises(ValueError):
            tfield(1, "i32", required=True, optional=True)

    def set_elements_must_be_hashable(expect):
        with raises(ValueError):
            set_of(Point)

    def unknown_type_name(expect):
        with raises(ValueError):
            value_type("uint128")

    def duplicate_ids_are_rejected(expect):
        @dataclass
        class Duplicate(Struct):
            a: int = tfield(1, "i32")
            b: int = tfield(1, "string")

        with raises(ValueError):
            Duplicate.struct_spec()

    def spec_is_cached_per_class(expect):
        spec = Point.struct_spec()
        expect(Point.struct_spec() is spec) == True
        expect(spec.by_id[2].name) == "y"
        expect(spec.by_id[2].vtype.ttype) == TType.I32
        expect(Adapter.struct_spec().by_id[2].name) == "typeHint"
