"""
Wire Protocol Types for the netpad relay, host and client.

This module defines the frame layout and message values exchanged between
the three roles.

Protocol reference:
- Registration (peer -> relay) is a single Role byte with no framing
- Every other datagram starts with a 4-byte frame header:
  magic b"NP", version 0x01, message kind
- All multi-byte integers are big-endian (network byte order)
- No datagram may exceed MAX_PAYLOAD bytes
"""

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Union

from netpad.util.errors import DecodeError

# Frame magic bytes
WIRE_MAGIC = b"NP"

# Protocol version carried in every frame header
WIRE_VERSION = 0x01

# Largest UDP payload that fits in a single IPv4 datagram
MAX_PAYLOAD = 65507

Address = tuple[str, int]


class Role(IntEnum):
    """Registration byte sent to the relay during hole-punching."""
    HOST = 0x00
    CLIENT = 0x01


class MessageKind(IntEnum):
    """
    Frame kinds.

    Stored in byte offset 3 of every frame.
    """
    HEARTBEAT = 0x01      # Client -> Host: liveness signal, no body
    INPUT = 0x02          # Client -> Host: UserInput snapshot
    PEER_ADDRESS = 0x10   # Relay -> Client: the host's public address
    PEER_LIST = 0x11      # Relay -> Host: public addresses of clients to punch


class AddressFamily(IntEnum):
    """Address family tag preceding a packed IP address."""
    IPV4 = 4
    IPV6 = 6


@dataclass(frozen=True)
class FrameHeader:
    """
    Fixed 4-byte header at the beginning of every structured frame.

    - Bytes 0-1: Magic (4E 50)
    - Byte 2: Version (0x01)
    - Byte 3: Message kind
    """
    kind: MessageKind
    version: int = WIRE_VERSION

    HEADER_SIZE = 4
    HEADER_FORMAT = '>2sBB'  # magic(2) + version(1) + kind(1)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'FrameHeader':
        """
        Parse a frame header from raw bytes.

        Args:
            data: Raw datagram bytes (must be at least 4 bytes)

        Returns:
            The parsed header

        Raises:
            DecodeError: if the buffer is short, or magic, version or kind is wrong
        """
        if len(data) < cls.HEADER_SIZE:
            raise DecodeError(f"Frame too short: {len(data)} bytes")

        magic, version, kind = struct.unpack(cls.HEADER_FORMAT, data[:cls.HEADER_SIZE])
        if magic != WIRE_MAGIC:
            raise DecodeError(f"Bad frame magic: {magic!r}")
        if version != WIRE_VERSION:
            raise DecodeError(f"Unsupported frame version: {version}")

        try:
            message_kind = MessageKind(kind)
        except ValueError:
            raise DecodeError(f"Unknown message kind: 0x{kind:02X}") from None

        return cls(kind=message_kind, version=version)

    def to_bytes(self) -> bytes:
        """Serialize header to bytes."""
        return struct.pack(self.HEADER_FORMAT, WIRE_MAGIC, self.version, self.kind)


@dataclass(frozen=True)
class UserInput:
    """
    Snapshot of one gamepad's state as sampled on the client.

    Body of an INPUT frame (12 bytes):
    - Bytes 0-7: lx, ly, rx, ry (signed 16-bit each)
    - Byte 8: left trigger (unsigned 8-bit)
    - Byte 9: right trigger (unsigned 8-bit)
    - Bytes 10-11: button bitmask (unsigned 16-bit)
    """
    lx: int = 0
    ly: int = 0
    rx: int = 0
    ry: int = 0
    ltrigger: int = 0
    rtrigger: int = 0
    buttons: int = 0

    BODY_FORMAT = '>hhhhBBH'
    BODY_SIZE = 12

    def __post_init__(self):
        for name in ('lx', 'ly', 'rx', 'ry'):
            value = getattr(self, name)
            if not -0x8000 <= value <= 0x7FFF:
                raise ValueError(f"{name} out of signed 16-bit range: {value}")
        for name in ('ltrigger', 'rtrigger'):
            value = getattr(self, name)
            if not 0 <= value <= 0xFF:
                raise ValueError(f"{name} out of unsigned 8-bit range: {value}")
        if not 0 <= self.buttons <= 0xFFFF:
            raise ValueError(f"buttons out of unsigned 16-bit range: {self.buttons}")

    @classmethod
    def from_body(cls, body: bytes) -> 'UserInput':
        """Parse an INPUT frame body. The body must be exactly 12 bytes."""
        if len(body) != cls.BODY_SIZE:
            raise DecodeError(f"INPUT body must be {cls.BODY_SIZE} bytes, got {len(body)}")
        lx, ly, rx, ry, ltrigger, rtrigger, buttons = struct.unpack(cls.BODY_FORMAT, body)
        return cls(lx, ly, rx, ry, ltrigger, rtrigger, buttons)

    def to_body(self) -> bytes:
        """Serialize to an INPUT frame body."""
        return struct.pack(
            self.BODY_FORMAT,
            self.lx,
            self.ly,
            self.rx,
            self.ry,
            self.ltrigger,
            self.rtrigger,
            self.buttons,
        )


@dataclass(frozen=True)
class Heartbeat:
    """Liveness signal; carries no payload."""


ClientMessage = Union[Heartbeat, UserInput]
