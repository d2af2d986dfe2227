"""Tests for the binary protocol"""

import io
import math

from pytest import raises

from sample_structs import Adapter, Bag, Hidden, Point, Toggle
from tagcodec.proto import (
    BadVersionError,
    BinaryProtocol,
    EndOfStreamError,
    InvalidDataError,
    MalformedTagError,
    MessageType,
    ProtocolConfig,
    TType,
    list_of,
    map_of,
    write_value,
)


def encode(vtype, value):
    stream = io.BytesIO()
    write_value(BinaryProtocol(stream), vtype, value)
    return stream.getvalue()


def reader(data, config=None):
    return BinaryProtocol(io.BytesIO(data), config)


def describe_struct_frames():
    def empty_struct_is_the_stop_marker(expect):
        expect(Hidden().pack()) == b"\x00"

        recovered, consumed = Hidden.unpack(b"\x00")
        expect(recovered) == Hidden()
        expect(consumed) == 1

    def two_string_fields(expect):
        packed = Adapter(name="foo", type_hint="bar").pack()
        expect(packed) == (
            b"\x0b\x00\x01\x00\x00\x00\x03foo" b"\x0b\x00\x02\x00\x00\x00\x03bar" b"\x00"
        )

    def bool_and_negative_i32(expect):
        packed = Toggle(on=True, count=-1).pack()
        expect(packed) == b"\x02\x00\x01\x01" b"\x08\x00\x02\xff\xff\xff\xff" b"\x00"

    def nested_struct_has_its_own_stop(expect):
        stream = io.BytesIO()
        Point(x=1, y=2).write(BinaryProtocol(stream))
        expect(stream.getvalue()) == (
            b"\x08\x00\x01\x00\x00\x00\x01" b"\x08\x00\x02\x00\x00\x00\x02" b"\x00"
        )

    def zero_values_decode_from_stop_marker(expect):
        recovered, _ = Bag.unpack(b"\x00")
        expect(recovered) == Bag()
        expect(recovered.items) == []
        expect(recovered.payload) == b""
        expect(recovered.color) == None

    def consumed_excludes_trailing_bytes(expect):
        packed = Point(x=5, y=6).pack()
        recovered, consumed = Point.unpack(packed + b"trailing")
        expect(recovered) == Point(x=5, y=6)
        expect(consumed) == len(packed)


def describe_containers():
    def list_header(expect):
        expect(encode(list_of("i16"), [1, -1])) == b"\x06\x00\x00\x00\x02\x00\x01\xff\xff"

    def map_header(expect):
        expect(encode(map_of("string", "bool"), {"k": True})) == (
            b"\x0b\x02\x00\x00\x00\x01" b"\x00\x00\x00\x01k" b"\x01"
        )

    def empty_list_may_carry_any_tag(expect):
        proto = reader(b"\x00\x00\x00\x00\x00")
        expect(proto.read_list_begin()) == (TType.STOP, 0)

    def invalid_element_tag(expect):
        with raises(MalformedTagError):
            reader(b"\x07\x00\x00\x00\x01").read_list_begin()


def describe_primitives():
    def fixed_widths(expect):
        stream = io.BytesIO()
        proto = BinaryProtocol(stream)
        proto.write_byte(-2)
        proto.write_i16(258)
        proto.write_i32(-2)
        proto.write_i64(1)
        expect(stream.getvalue()) == (
            b"\xfe" b"\x01\x02" b"\xff\xff\xff\xfe" b"\x00\x00\x00\x00\x00\x00\x00\x01"
        )

    def doubles_are_ieee_big_endian(expect):
        stream = io.BytesIO()
        BinaryProtocol(stream).write_double(1.0)
        expect(stream.getvalue()) == b"\x3f\xf0\x00\x00\x00\x00\x00\x00"

        expect(math.isnan(reader(b"\x7f\xf8\x00\x00\x00\x00\x00\x00").read_double())) == True

    def any_nonzero_byte_is_true(expect):
        expect(reader(b"\x05").read_bool()) == True
        expect(reader(b"\x00").read_bool()) == False

    def out_of_range_integers_are_rejected(expect):
        proto = BinaryProtocol(io.BytesIO())
        with raises(InvalidDataError):
            proto.write_i16(1 << 15)
        with raises(InvalidDataError):
            proto.write_byte(200)

    def strings_must_be_utf8(expect):
        with raises(InvalidDataError):
            reader(b"\x00\x00\x00\x01\xff").read_string()
        expect(reader(b"\x00\x00\x00\x01\xff").read_binary()) == b"\xff"

    def short_reads_raise_end_of_stream(expect):
        with raises(EndOfStreamError) as exc_info:
            reader(b"\x00\x01").read_i32()
        expect(str(exc_info.value)) == "unexpected end of stream: wanted 4 bytes, got 2"


def describe_messages():
    def strict_header(expect):
        stream = io.BytesIO()
        proto = BinaryProtocol(stream)
        proto.write_message_begin("ping", MessageType.CALL, 1)
        proto.write_message_end()
        expect(stream.getvalue()) == b"\x80\x01\x00\x01" b"\x00\x00\x00\x04ping" b"\x00\x00\x00\x01"

        expect(reader(stream.getvalue()).read_message_begin()) == ("ping", MessageType.CALL, 1)

    def non_strict_header(expect):
        stream = io.BytesIO()
        proto = BinaryProtocol(stream, ProtocolConfig(strict_write=False))
        proto.write_message_begin("ping", MessageType.REPLY, 9)
        data = stream.getvalue()
        expect(data) == b"\x00\x00\x00\x04ping" b"\x02" b"\x00\x00\x00\x09"

        expect(reader(data).read_message_begin()) == ("ping", MessageType.REPLY, 9)

        with raises(BadVersionError):
            reader(data, ProtocolConfig(strict_read=True)).read_message_begin()

    def wrong_version(expect):
        with raises(BadVersionError):
            reader(b"\x80\x02\x00\x01\x00\x00\x00\x00\x00\x00\x00\x00").read_message_begin()
