"""
Tests for wire protocol parsing and serialization.

Tests cover:
- Frame header parsing and validation
- ClientMessage encoding and decoding (Heartbeat, Input)
- Address and address-list frames (IPv4 and IPv6)
- Rejection of truncated, malformed and oversized datagrams
- Registration role bytes
"""

import struct

import pytest

from netpad.models.wire_types import (
    MAX_PAYLOAD,
    WIRE_MAGIC,
    WIRE_VERSION,
    FrameHeader,
    Heartbeat,
    MessageKind,
    Role,
    UserInput,
)
from netpad.util.errors import DecodeError, PayloadTooLargeError
from netpad.util.wire_protocol import (
    decode_address,
    decode_address_list,
    decode_client_message,
    decode_role,
    encode_address,
    encode_address_list,
    encode_address_lists,
    encode_client_message,
    encode_role,
    normalize_address,
)

TEST_CLIENT = ("203.0.113.7", 45682)
TEST_HOST = ("198.51.100.20", 45681)


class TestFrameHeader:
    """Tests for the 4-byte frame header."""

    def test_header_layout(self):
        header = FrameHeader(kind=MessageKind.INPUT)

        assert header.to_bytes() == WIRE_MAGIC + bytes([WIRE_VERSION, 0x02])

    def test_parse_valid_header(self):
        header = FrameHeader.from_bytes(b"NP\x01\x01")

        assert header.kind == MessageKind.HEARTBEAT
        assert header.version == WIRE_VERSION

    def test_short_header_rejected(self):
        with pytest.raises(DecodeError):
            FrameHeader.from_bytes(b"NP\x01")

    def test_bad_magic_rejected(self):
        with pytest.raises(DecodeError, match="magic"):
            FrameHeader.from_bytes(b"XX\x01\x01")

    def test_bad_version_rejected(self):
        with pytest.raises(DecodeError, match="version"):
            FrameHeader.from_bytes(b"NP\x07\x01")

    def test_unknown_kind_rejected(self):
        with pytest.raises(DecodeError, match="kind"):
            FrameHeader.from_bytes(b"NP\x01\x7f")


class TestClientMessages:
    """Tests for HEARTBEAT and INPUT frames."""

    def test_heartbeat_is_header_only(self):
        data = encode_client_message(Heartbeat())

        assert data == b"NP\x01\x01"
        assert decode_client_message(data) == Heartbeat()

    def test_input_body_is_big_endian(self):
        user_input = UserInput(lx=29999, ly=-29999, rx=0, ry=1, ltrigger=255, rtrigger=7, buttons=0x1001)

        data = encode_client_message(user_input)

        assert len(data) == FrameHeader.HEADER_SIZE + UserInput.BODY_SIZE
        assert data[4:] == struct.pack(">hhhhBBH", 29999, -29999, 0, 1, 255, 7, 0x1001)

    def test_input_round_trip_at_type_bounds(self):
        for user_input in (
            UserInput(),
            UserInput(lx=-32768, ly=32767, rx=-32768, ry=32767, ltrigger=0, rtrigger=255, buttons=0xFFFF),
            UserInput(lx=29999),
        ):
            assert decode_client_message(encode_client_message(user_input)) == user_input

    def test_encoding_is_deterministic(self):
        user_input = UserInput(lx=1, buttons=0x8000)

        assert encode_client_message(user_input) == encode_client_message(UserInput(lx=1, buttons=0x8000))

    def test_truncated_input_rejected(self):
        data = encode_client_message(UserInput(lx=5))

        with pytest.raises(DecodeError):
            decode_client_message(data[:-1])

    def test_input_with_trailing_bytes_rejected(self):
        data = encode_client_message(UserInput(lx=5))

        with pytest.raises(DecodeError):
            decode_client_message(data + b"\x00")

    def test_heartbeat_with_payload_rejected(self):
        with pytest.raises(DecodeError):
            decode_client_message(b"NP\x01\x01\x00")

    def test_address_frame_is_not_a_client_message(self):
        with pytest.raises(DecodeError, match="PEER_ADDRESS"):
            decode_client_message(encode_address(TEST_HOST))

    def test_empty_datagram_rejected(self):
        with pytest.raises(DecodeError):
            decode_client_message(b"")

    def test_user_input_range_checked(self):
        with pytest.raises(ValueError):
            UserInput(lx=40000)
        with pytest.raises(ValueError):
            UserInput(ltrigger=256)
        with pytest.raises(ValueError):
            UserInput(buttons=-1)

    def test_user_input_structural_equality(self):
        assert UserInput(lx=3, buttons=1) == UserInput(lx=3, buttons=1)
        assert UserInput(lx=3) != UserInput(ly=3)


class TestAddressFrames:
    """Tests for PEER_ADDRESS and PEER_LIST frames."""

    def test_address_round_trip(self):
        assert decode_address(encode_address(TEST_HOST)) == TEST_HOST

    def test_ipv6_address_round_trip(self):
        addr = ("2001:db8::1", 45681)

        assert decode_address(encode_address(addr)) == addr

    def test_address_layout(self):
        data = encode_address(("10.0.0.1", 0x1234))

        assert data == b"NP\x01\x10" + b"\x04" + bytes([10, 0, 0, 1]) + b"\x12\x34"

    def test_truncated_address_rejected(self):
        data = encode_address(TEST_HOST)

        with pytest.raises(DecodeError, match="Truncated"):
            decode_address(data[:-1])

    def test_unknown_family_rejected(self):
        with pytest.raises(DecodeError, match="family"):
            decode_address(b"NP\x01\x10\x05" + bytes(6))

    def test_list_round_trip_preserves_order(self):
        addrs = [TEST_CLIENT, ("192.0.2.1", 1), ("2001:db8::2", 65535)]

        assert decode_address_list(encode_address_list(addrs)) == addrs

    def test_empty_list(self):
        data = encode_address_list([])

        assert data == b"NP\x01\x11\x00\x00"
        assert decode_address_list(data) == []

    def test_list_count_larger_than_body_rejected(self):
        data = encode_address_list([TEST_CLIENT])
        tampered = data[:4] + b"\x00\x02" + data[6:]

        with pytest.raises(DecodeError):
            decode_address_list(tampered)

    def test_list_with_trailing_bytes_rejected(self):
        with pytest.raises(DecodeError, match="trailing"):
            decode_address_list(encode_address_list([TEST_CLIENT]) + b"\xff")

    def test_single_address_is_not_a_list(self):
        with pytest.raises(DecodeError):
            decode_address_list(encode_address(TEST_CLIENT))

    def test_oversized_list_rejected_at_encode_time(self):
        addrs = [("10.0.%d.%d" % (i // 256 % 256, i % 256), 1000 + i % 50000) for i in range(10000)]

        with pytest.raises(PayloadTooLargeError) as excinfo:
            encode_address_list(addrs)
        assert excinfo.value.limit == MAX_PAYLOAD

    def test_long_list_split_into_frames(self):
        addrs = [("10.0.%d.%d" % (i >> 8, i & 0xFF), 2000) for i in range(20000)]

        frames = encode_address_lists(addrs)

        assert len(frames) == 3
        assert all(len(frame) <= MAX_PAYLOAD for frame in frames)
        assert [a for frame in frames for a in decode_address_list(frame)] == addrs

    def test_short_list_is_one_frame(self):
        assert encode_address_lists([TEST_CLIENT]) == [encode_address_list([TEST_CLIENT])]
        assert encode_address_lists([]) == [encode_address_list([])]

    def test_oversized_datagram_rejected(self):
        with pytest.raises(DecodeError):
            decode_address_list(b"NP\x01\x11" + bytes(MAX_PAYLOAD))

    def test_normalize_ipv6_socket_address(self):
        assert normalize_address(("2001:db8::1", 5, 0, 0)) == ("2001:db8::1", 5)


class TestRole:
    """Tests for single-byte registration."""

    def test_encode_roles(self):
        assert encode_role(Role.HOST) == b"\x00"
        assert encode_role(Role.CLIENT) == b"\x01"

    def test_decode_roles(self):
        assert decode_role(b"\x00") == Role.HOST
        assert decode_role(b"\x01") == Role.CLIENT

    def test_unknown_role_rejected(self):
        with pytest.raises(DecodeError):
            decode_role(b"\x02")

    def test_multi_byte_registration_rejected(self):
        with pytest.raises(DecodeError):
            decode_role(b"\x00\x00")
