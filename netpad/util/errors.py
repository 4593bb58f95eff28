"""
Error types shared by the relay, host and client roles.

Per-datagram errors (DecodeError, CapacityError) are logged and the datagram
is dropped. Startup errors (RelayTimeoutError, KeyMapError) abort the process.
SinkError is fatal to a single controller worker only when raised by plug_in.
"""


class NetpadError(Exception):
    """Base class for all netpad errors."""


class DecodeError(NetpadError, ValueError):
    """A datagram is truncated, malformed or of an unexpected kind."""


class PayloadTooLargeError(NetpadError, ValueError):
    """An encoded frame exceeds the UDP safe payload ceiling."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Encoded payload is {size} bytes, limit is {limit}")
        self.size = size
        self.limit = limit


class RelayTimeoutError(NetpadError, TimeoutError):
    """The relay did not answer a registration within the connect window."""


class SinkError(NetpadError):
    """The virtual controller could not be plugged in, updated or unplugged."""


class CapacityError(NetpadError):
    """A session mailbox is full and a message was dropped."""


class KeyMapError(NetpadError, ValueError):
    """A key mapping file names an unknown key or action."""

    def __init__(self, message: str, token: str):
        super().__init__(message)
        self.token = token
