"""Tests for the compact protocol"""

import io

from pytest import raises

from sample_structs import Adapter, Hidden, Point, Segment, Sparse, Toggle
from tagcodec.proto import (
    BadVersionError,
    CompactProtocol,
    InvalidDataError,
    MessageType,
    TType,
    list_of,
    map_of,
    write_value,
)
from tagcodec.proto.compact import encode_varint, zigzag_decode, zigzag_encode


def encode(vtype, value):
    stream = io.BytesIO()
    write_value(CompactProtocol(stream), vtype, value)
    return stream.getvalue()


def reader(data):
    return CompactProtocol(io.BytesIO(data))


def describe_varints():
    def zigzag_puts_small_magnitudes_first(expect):
        expect(zigzag_encode(0, 32)) == 0
        expect(zigzag_encode(-1, 32)) == 1
        expect(zigzag_encode(1, 32)) == 2
        expect(zigzag_encode(-(2**31), 32)) == 2**32 - 1
        expect(zigzag_decode(2**32 - 1)) == -(2**31)
        expect(zigzag_decode(4)) == 2

    def base_128_little_endian(expect):
        expect(encode_varint(0)) == b"\x00"
        expect(encode_varint(127)) == b"\x7f"
        expect(encode_varint(300)) == b"\xac\x02"

    def overlong_varint_is_rejected(expect):
        with raises(InvalidDataError):
            reader(b"\xff" * 11).read_i64()

    def i64_extremes(expect):
        stream = io.BytesIO()
        proto = CompactProtocol(stream)
        proto.write_i64(-(2**63))
        proto.write_i64(2**63 - 1)
        proto = reader(stream.getvalue())
        expect(proto.read_i64()) == -(2**63)
        expect(proto.read_i64()) == 2**63 - 1


def describe_struct_frames():
    def empty_struct_is_the_stop_marker(expect):
        expect(Hidden().pack("compact")) == b"\x00"
        expect(Hidden.unpack(b"\x00", "compact")) == (Hidden(), 1)

    def short_field_headers_pack_the_id_delta(expect):
        packed = Adapter(name="foo", type_hint="bar").pack("compact")
        expect(packed) == b"\x18\x03foo" b"\x18\x03bar" b"\x00"

    def bool_fields_live_in_the_header(expect):
        expect(Toggle(on=True, count=-1).pack("compact")) == b"\x11" b"\x15\x01" b"\x00"
        expect(Toggle(on=False, count=150).pack("compact")) == b"\x12" b"\x15\xac\x02" b"\x00"

        expect(Toggle.unpack(b"\x12\x15\xac\x02\x00", "compact")[0]) == Toggle(on=False, count=150)

    def large_id_gaps_use_the_long_form(expect):
        packed = Sparse(low=1, high=-2).pack("compact")
        expect(packed) == b"\x14\x02" b"\x04\xd8\x04\x03" b"\x00"

        expect(Sparse.unpack(packed, "compact")[0]) == Sparse(low=1, high=-2)

    def ids_restart_inside_nested_structs(expect):
        packed = Segment(start=Point(x=1, y=2), end=Point(x=3, y=4)).pack("compact")
        expect(packed) == (
            b"\x1c\x15\x02\x15\x04\x00" b"\x1c\x15\x06\x15\x08\x00" b"\x00"
        )

        expect(Segment.unpack(packed, "compact")) == (
            Segment(start=Point(x=1, y=2), end=Point(x=3, y=4)),
            len(packed),
        )


def describe_containers():
    def short_list_header(expect):
        expect(encode(list_of("i32"), [1, 2, 3])) == b"\x35\x02\x04\x06"

    def long_list_header(expect):
        packed = encode(list_of("byte"), list(range(20)))
        expect(packed[:2]) == b"\xf3\x14"
        expect(len(packed)) == 22

    def bool_elements_are_one_byte(expect):
        expect(encode(list_of("bool"), [True, False])) == b"\x21\x01\x02"

    def map_header(expect):
        expect(encode(map_of("string", "i32"), {"a": 1})) == b"\x01\x85\x01a\x02"

    def empty_map_is_one_byte(expect):
        expect(encode(map_of("string", "i32"), {})) == b"\x00"
        expect(reader(b"\x00").read_map_begin()) == (TType.STOP, TType.STOP, 0)


def describe_primitives():
    def doubles_are_little_endian(expect):
        stream = io.BytesIO()
        CompactProtocol(stream).write_double(1.0)
        expect(stream.getvalue()) == b"\x00\x00\x00\x00\x00\x00\xf0\x3f"

    def integer_range_is_checked(expect):
        proto = CompactProtocol(io.BytesIO())
        with raises(InvalidDataError):
            proto.write_i16(40000)
        with raises(InvalidDataError):
            reader(encode_varint(zigzag_encode(40000, 32))).read_i16()


def describe_messages():
    def header_layout(expect):
        stream = io.BytesIO()
        proto = CompactProtocol(stream)
        proto.write_message_begin("ping", MessageType.CALL, 1)
        expect(stream.getvalue()) == b"\x82\x21\x01\x04ping"

        expect(reader(stream.getvalue()).read_message_begin()) == ("ping", MessageType.CALL, 1)

    def negative_seqid(expect):
        stream = io.BytesIO()
        CompactProtocol(stream).write_message_begin("x", MessageType.ONEWAY, -5)
        expect(reader(stream.getvalue()).read_message_begin()) == ("x", MessageType.ONEWAY, -5)

    def wrong_protocol_id(expect):
        with raises(BadVersionError):
            reader(b"\x80\x21\x01\x04ping").read_message_begin()

    def wrong_version(expect):
        with raises(BadVersionError):
            reader(b"\x82\x22\x01\x04ping").read_message_begin()
