"""
Input-Sending Client Session.

Registers with the relay as a client, waits for the host's address, then
runs two independent periodic tasks against the same socket:

- Input sampling (every 5 ms): map pressed keys to a UserInput snapshot and
  send it only when it differs from the last one sent
- Heartbeat (every 5 s): send a Heartbeat unconditionally so the host's
  liveness timeout never fires while input is idle
"""

import asyncio
from collections.abc import Callable

from netpad.devices.keyboard_source import InputSource
from netpad.models.wire_types import Address, Heartbeat, Role, UserInput
from netpad.util.errors import DecodeError, RelayTimeoutError
from netpad.util.key_mapper import KeyMapper
from netpad.util.logging_helper import format_addr, format_hex, get_logger
from netpad.util.net import family_for_bind_host, resolve_udp_address
from netpad.util.wire_protocol import (
    decode_address,
    encode_client_message,
    encode_role,
    normalize_address,
)

logger = get_logger(__name__)

SAMPLE_INTERVAL = 0.005
HEARTBEAT_INTERVAL = 5.0

HEARTBEAT_FRAME = encode_client_message(Heartbeat())


class InputClient(asyncio.DatagramProtocol):
    """
    Client UDP Protocol.

    Incoming datagrams only matter until the relay has told us where the
    host is; after that the session is send-only.
    """

    def __init__(
        self,
        relay_addr: Address,
        source: InputSource,
        key_mapper: KeyMapper,
        sample_interval: float = SAMPLE_INTERVAL,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
    ):
        self.transport: asyncio.DatagramTransport | None = None
        self.relay_addr = relay_addr
        self.source = source
        self.key_mapper = key_mapper
        self.sample_interval = sample_interval
        self.heartbeat_interval = heartbeat_interval

        self.host_addr: Address | None = None
        self._host_reply: asyncio.Future | None = None
        self._previous_input: UserInput | None = None

        # Statistics
        self.inputs_sent = 0
        self.heartbeats_sent = 0

    def connection_made(self, transport: asyncio.DatagramTransport):
        """Called when the UDP socket is ready."""
        self.transport = transport
        self._host_reply = asyncio.get_running_loop().create_future()
        local_addr = transport.get_extra_info("sockname")
        logger.info("Client bound to %s:%d", local_addr[0], local_addr[1])

    def connection_lost(self, exc: Exception | None):
        logger.info("Client stopped")

    def datagram_received(self, data: bytes, addr: tuple):
        addr = normalize_address(addr)

        if addr != self.relay_addr or self._host_reply is None or self._host_reply.done():
            logger.debug("Ignoring %d bytes from %s", len(data), format_addr(addr))
            return

        try:
            host_addr = decode_address(data)
        except DecodeError as e:
            logger.warning("Dropping relay datagram: %s", e)
            logger.debug("Dropped payload: %s", format_hex(data[:20]))
            return

        self._host_reply.set_result(host_addr)

    def error_received(self, exc: Exception):
        """Handle error on the UDP socket."""
        logger.error("UDP error: %s", exc)

    async def connect(self, timeout: float = 5.0) -> Address:
        """
        Register as a client and wait for the host's address.

        Raises:
            RelayTimeoutError: if no host address arrives within timeout
        """
        logger.info("Registering with relay %s as client", format_addr(self.relay_addr))
        self._send(encode_role(Role.CLIENT), self.relay_addr)

        try:
            host_addr = await asyncio.wait_for(asyncio.shield(self._host_reply), timeout)
        except asyncio.TimeoutError:
            raise RelayTimeoutError(
                f"No host address from relay {format_addr(self.relay_addr)} within {timeout:.1f}s"
            ) from None

        self.host_addr = host_addr
        logger.info("Relay introduced host %s", format_addr(host_addr))
        return host_addr

    def sample_input(self) -> bool:
        """
        Sample the input source once.

        Returns:
            True if a new Input message was sent
        """
        user_input = self.key_mapper.map_keys(self.source.get_pressed_keys())
        if user_input == self._previous_input:
            return False

        self._send(encode_client_message(user_input), self.host_addr)
        self._previous_input = user_input
        self.inputs_sent += 1
        return True

    def send_heartbeat(self):
        self._send(HEARTBEAT_FRAME, self.host_addr)
        self.heartbeats_sent += 1

    async def _every(self, interval: float, action: Callable[[], object]):
        """Run action once per interval on a fixed schedule, first run after one interval."""
        loop = asyncio.get_running_loop()
        deadline = loop.time()
        while True:
            deadline += interval
            now = loop.time()
            if deadline < now:
                # Skip missed ticks instead of bursting to catch up
                deadline = now
            await asyncio.sleep(deadline - now)
            action()

    async def run(self):
        """
        Run the sampling and heartbeat tasks until one of them fails.

        Must be called after connect().
        """
        if self.host_addr is None:
            raise RuntimeError("connect() must complete before run()")

        tasks = [
            asyncio.create_task(self._every(self.sample_interval, self.sample_input), name="input-sampler"),
            asyncio.create_task(self._every(self.heartbeat_interval, self.send_heartbeat), name="heartbeat"),
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    def _send(self, data: bytes, addr: Address):
        if self.transport:
            self.transport.sendto(data, addr)
            logger.debug("TX to %s (%d bytes): %s", format_addr(addr), len(data), format_hex(data[:20]))


async def start_client_session(
    relay_address: Address,
    source: InputSource,
    key_mapper: KeyMapper,
    host: str = "0.0.0.0",
    port: int = 45682,
    connect_timeout: float = 5.0,
    sample_interval: float = SAMPLE_INTERVAL,
    heartbeat_interval: float = HEARTBEAT_INTERVAL,
) -> tuple[asyncio.DatagramTransport, InputClient]:
    """
    Bind the client socket and complete relay registration.

    Args:
        relay_address: (host, port) of the relay; names are resolved first
        source: Input source polled by the sampling task
        key_mapper: Key bindings used to build UserInput snapshots
        host: Host to bind to
        port: Port to bind to (default 45682)
        connect_timeout: Seconds to wait for the host's address
        sample_interval: Seconds between input samples
        heartbeat_interval: Seconds between heartbeats

    Returns:
        Tuple of (transport, protocol), ready for protocol.run()

    Raises:
        RelayTimeoutError: if the relay does not introduce a host
    """
    loop = asyncio.get_running_loop()
    relay_addr = await resolve_udp_address(relay_address, family_for_bind_host(host))

    transport, protocol = await loop.create_datagram_endpoint(
        lambda: InputClient(relay_addr, source, key_mapper, sample_interval, heartbeat_interval),
        local_addr=(host, port),
    )

    try:
        await protocol.connect(connect_timeout)
    except RelayTimeoutError:
        transport.close()
        raise

    return transport, protocol
