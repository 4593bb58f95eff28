"""
Wire Protocol Parsing and Serialization.

Handles decoding incoming datagrams and building outgoing frames for the
relay, host and client roles. Decoders validate the full structure of a
buffer before building a value and raise DecodeError on anything else.
"""

import ipaddress
import struct

from netpad.models.wire_types import (
    MAX_PAYLOAD,
    Address,
    AddressFamily,
    ClientMessage,
    FrameHeader,
    Heartbeat,
    MessageKind,
    Role,
    UserInput,
)
from netpad.util.errors import DecodeError, PayloadTooLargeError


PORT_FORMAT = '>H'
COUNT_FORMAT = '>H'


def _finish_frame(kind: MessageKind, body: bytes = b"") -> bytes:
    """Prefix a body with its frame header and enforce the payload ceiling."""
    frame = FrameHeader(kind=kind).to_bytes() + body
    if len(frame) > MAX_PAYLOAD:
        raise PayloadTooLargeError(len(frame), MAX_PAYLOAD)
    return frame


def parse_frame(data: bytes) -> tuple[FrameHeader, bytes]:
    """
    Split a structured frame into header and body.

    Args:
        data: Raw datagram bytes

    Returns:
        Tuple of (header, body)

    Raises:
        DecodeError: if the header is invalid or the datagram is oversized
    """
    if len(data) > MAX_PAYLOAD:
        raise DecodeError(f"Datagram exceeds {MAX_PAYLOAD} bytes")
    header = FrameHeader.from_bytes(data)
    return header, data[FrameHeader.HEADER_SIZE:]


# =============================================================================
# Registration
# =============================================================================


def encode_role(role: Role) -> bytes:
    """Build the single-byte registration datagram sent to the relay."""
    return bytes([role])


def decode_role(data: bytes) -> Role:
    """
    Parse a registration datagram.

    Raises:
        DecodeError: if the datagram is not exactly one known Role byte
    """
    if len(data) != 1:
        raise DecodeError(f"Registration must be 1 byte, got {len(data)}")
    try:
        return Role(data[0])
    except ValueError:
        raise DecodeError(f"Unknown role byte: 0x{data[0]:02X}") from None


# =============================================================================
# Client messages
# =============================================================================


def encode_client_message(message: ClientMessage) -> bytes:
    """
    Build a HEARTBEAT or INPUT frame.

    Args:
        message: Heartbeat() or a UserInput snapshot

    Returns:
        Raw frame bytes
    """
    if isinstance(message, Heartbeat):
        return _finish_frame(MessageKind.HEARTBEAT)
    if isinstance(message, UserInput):
        return _finish_frame(MessageKind.INPUT, message.to_body())
    raise TypeError(f"Not a client message: {message!r}")


def decode_client_message(data: bytes) -> ClientMessage:
    """
    Parse a datagram sent by a client to the host.

    Raises:
        DecodeError: if the datagram is not a well-formed HEARTBEAT or INPUT frame
    """
    header, body = parse_frame(data)

    if header.kind == MessageKind.HEARTBEAT:
        if body:
            raise DecodeError(f"HEARTBEAT carries {len(body)} unexpected bytes")
        return Heartbeat()
    if header.kind == MessageKind.INPUT:
        return UserInput.from_body(body)

    raise DecodeError(f"Expected a client message, got {header.kind.name}")


# =============================================================================
# Addresses
# =============================================================================


def normalize_address(addr: tuple) -> Address:
    """Reduce a socket address (IPv6 sockets report 4-tuples) to (ip, port)."""
    return (addr[0], addr[1])


def pack_address(addr: Address) -> bytes:
    """
    Pack an (ip, port) tuple as family(1) + ip(4 or 16) + port(2).

    Raises:
        ValueError: if the IP is not a literal address or the port is out of range
    """
    ip, port = addr[0], addr[1]
    ip_obj = ipaddress.ip_address(ip)
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"Port out of range: {port}")
    family = AddressFamily.IPV4 if ip_obj.version == 4 else AddressFamily.IPV6
    return bytes([family]) + ip_obj.packed + struct.pack(PORT_FORMAT, port)


def unpack_address(data: bytes, offset: int = 0) -> tuple[Address, int]:
    """
    Unpack one address starting at offset.

    Returns:
        Tuple of ((ip, port), offset just past the address)

    Raises:
        DecodeError: if the family tag is unknown or the buffer is truncated
    """
    if offset >= len(data):
        raise DecodeError("Truncated address: missing family byte")

    family = data[offset]
    if family == AddressFamily.IPV4:
        ip_size = 4
    elif family == AddressFamily.IPV6:
        ip_size = 16
    else:
        raise DecodeError(f"Unknown address family: {family}")
    offset += 1

    end = offset + ip_size + 2
    if end > len(data):
        raise DecodeError("Truncated address")

    ip = str(ipaddress.ip_address(data[offset:offset + ip_size]))
    port = struct.unpack(PORT_FORMAT, data[offset + ip_size:end])[0]
    return (ip, port), end


def encode_address(addr: Address) -> bytes:
    """Build a PEER_ADDRESS frame (relay -> client: where the host is)."""
    return _finish_frame(MessageKind.PEER_ADDRESS, pack_address(addr))


def decode_address(data: bytes) -> Address:
    """
    Parse a PEER_ADDRESS frame.

    Raises:
        DecodeError: on a wrong kind, truncated address or trailing bytes
    """
    header, body = parse_frame(data)
    if header.kind != MessageKind.PEER_ADDRESS:
        raise DecodeError(f"Expected PEER_ADDRESS, got {header.kind.name}")

    addr, end = unpack_address(body)
    if end != len(body):
        raise DecodeError(f"PEER_ADDRESS carries {len(body) - end} trailing bytes")
    return addr


def encode_address_list(addrs: list[Address]) -> bytes:
    """
    Build a PEER_LIST frame (relay -> host: clients to punch through to).

    Raises:
        PayloadTooLargeError: if the list does not fit in one datagram
    """
    packed = b"".join(pack_address(a) for a in addrs)
    if len(packed) > MAX_PAYLOAD:
        raise PayloadTooLargeError(len(packed), MAX_PAYLOAD)
    body = struct.pack(COUNT_FORMAT, len(addrs)) + packed
    return _finish_frame(MessageKind.PEER_LIST, body)


def encode_address_lists(addrs: list[Address]) -> list[bytes]:
    """
    Build as many PEER_LIST frames as needed to carry every address.

    Order is preserved across frames. An empty list still yields one
    (empty) frame so the receiver always gets an answer.
    """
    budget = MAX_PAYLOAD - FrameHeader.HEADER_SIZE - struct.calcsize(COUNT_FORMAT)
    frames = []
    chunk: list[bytes] = []
    size = 0

    for addr in addrs:
        packed = pack_address(addr)
        if chunk and size + len(packed) > budget:
            frames.append(_list_frame(chunk))
            chunk, size = [], 0
        chunk.append(packed)
        size += len(packed)

    if chunk or not frames:
        frames.append(_list_frame(chunk))
    return frames


def _list_frame(packed_addrs: list[bytes]) -> bytes:
    body = struct.pack(COUNT_FORMAT, len(packed_addrs)) + b"".join(packed_addrs)
    return _finish_frame(MessageKind.PEER_LIST, body)


def decode_address_list(data: bytes) -> list[Address]:
    """
    Parse a PEER_LIST frame.

    Raises:
        DecodeError: on a wrong kind, a count that does not match the body,
            or trailing bytes
    """
    header, body = parse_frame(data)
    if header.kind != MessageKind.PEER_LIST:
        raise DecodeError(f"Expected PEER_LIST, got {header.kind.name}")

    if len(body) < 2:
        raise DecodeError("Truncated PEER_LIST: missing count")
    (count,) = struct.unpack(COUNT_FORMAT, body[:2])

    addrs = []
    offset = 2
    for _ in range(count):
        addr, offset = unpack_address(body, offset)
        addrs.append(addr)

    if offset != len(body):
        raise DecodeError(f"PEER_LIST carries {len(body) - offset} trailing bytes")
    return addrs
