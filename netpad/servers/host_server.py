"""
Input-Receiving Host Server.

Registers with the relay as the host, learns client addresses from it, and
routes each client's datagrams to that client's controller worker.

Dispatch by sender address:
- Known client: decode a ClientMessage and enqueue it (never blocks)
- The relay: decode an address list and open a session per new address
- Anyone else: dropped without a reply
"""

import asyncio

from netpad.devices.virtual_gamepad import SinkFactory
from netpad.models.wire_types import Address, Heartbeat, Role
from netpad.servers.sessions import LIVENESS_TIMEOUT, MAILBOX_CAPACITY, SessionRegistry
from netpad.util.errors import CapacityError, DecodeError, RelayTimeoutError
from netpad.util.logging_helper import format_addr, format_hex, get_logger
from netpad.util.net import family_for_bind_host, resolve_udp_address
from netpad.util.wire_protocol import (
    decode_address_list,
    decode_client_message,
    encode_client_message,
    encode_role,
    normalize_address,
)

logger = get_logger(__name__)

# Frame sent to a newly learned client to open our side of the NAT mapping
PUNCH_FRAME = encode_client_message(Heartbeat())


class HostServer(asyncio.DatagramProtocol):
    """
    Host UDP Server Protocol.

    The receive callback does no controller work; it only decodes and
    enqueues, so one slow controller cannot starve the shared socket.
    """

    def __init__(self, relay_addr: Address, registry: SessionRegistry):
        """
        Initialize the host server.

        Args:
            relay_addr: Resolved (ip, port) of the relay
            registry: Session registry that owns the controller workers
        """
        self.transport: asyncio.DatagramTransport | None = None
        self.relay_addr = relay_addr
        self.registry = registry

        self._relay_reply: asyncio.Future | None = None
        self._closed: asyncio.Future | None = None

        # Statistics
        self.datagrams_dropped = 0

    def connection_made(self, transport: asyncio.DatagramTransport):
        """Called when the UDP socket is ready."""
        self.transport = transport
        loop = asyncio.get_running_loop()
        self._relay_reply = loop.create_future()
        self._closed = loop.create_future()
        local_addr = transport.get_extra_info("sockname")
        logger.info("Host listening on %s:%d", local_addr[0], local_addr[1])

    def connection_lost(self, exc: Exception | None):
        """Called when the connection is closed."""
        logger.info("Host stopped")
        if self._closed and not self._closed.done():
            self._closed.set_result(None)

    async def register_with_relay(self, timeout: float = 5.0) -> list[Address]:
        """
        Register as the host and wait for the relay's first client list.

        Returns:
            Client addresses in the relay's first list frame; any further
            frames open their sessions as they arrive

        Raises:
            RelayTimeoutError: if the relay does not answer within timeout
        """
        logger.info("Registering with relay %s as host", format_addr(self.relay_addr))
        self._send_to(encode_role(Role.HOST), self.relay_addr)

        try:
            clients = await asyncio.wait_for(asyncio.shield(self._relay_reply), timeout)
        except asyncio.TimeoutError:
            raise RelayTimeoutError(
                f"Relay {format_addr(self.relay_addr)} did not answer within {timeout:.1f}s"
            ) from None

        logger.info("Relay answered with %d waiting client(s)", len(clients))
        return clients

    def datagram_received(self, data: bytes, addr: tuple):
        """
        Handle incoming UDP datagram.

        Args:
            data: Raw packet bytes
            addr: Socket address of the sender
        """
        addr = normalize_address(addr)

        if addr in self.registry:
            self._handle_client_datagram(data, addr)
        elif addr == self.relay_addr:
            self._handle_relay_datagram(data)
        else:
            self.datagrams_dropped += 1
            logger.debug("Ignoring %d bytes from unknown sender %s", len(data), format_addr(addr))

    def _handle_client_datagram(self, data: bytes, addr: Address):
        try:
            message = decode_client_message(data)
        except DecodeError as e:
            self.datagrams_dropped += 1
            logger.warning("Dropping datagram from %s: %s", format_addr(addr), e)
            logger.debug("Dropped payload: %s", format_hex(data[:20]))
            return

        try:
            self.registry.deliver(addr, message)
        except CapacityError as e:
            self.datagrams_dropped += 1
            logger.warning("Dropping message: %s", e)

    def _handle_relay_datagram(self, data: bytes):
        try:
            clients = decode_address_list(data)
        except DecodeError as e:
            logger.warning("Dropping relay datagram: %s", e)
            logger.debug("Dropped payload: %s", format_hex(data[:20]))
            return

        for client in clients:
            if client in self.registry:
                continue
            self._send_to(PUNCH_FRAME, client)
            self.registry.open_session(client)

        if self._relay_reply and not self._relay_reply.done():
            self._relay_reply.set_result(clients)

    def _send_to(self, data: bytes, addr: Address):
        """Send a packet to the specified address."""
        if self.transport:
            self.transport.sendto(data, addr)
            logger.debug("TX to %s (%d bytes): %s", format_addr(addr), len(data), format_hex(data[:20]))

    def error_received(self, exc: Exception):
        """Handle error on the UDP socket."""
        logger.error("UDP error: %s", exc)

    async def wait_closed(self):
        """Wait until the transport has been closed."""
        await self._closed

    async def stop(self):
        """Tear down every session, then close the socket."""
        await self.registry.close_all()
        if self.transport:
            self.transport.close()


async def start_host_server(
    relay_address: Address,
    sink_factory: SinkFactory,
    host: str = "0.0.0.0",
    port: int = 45681,
    connect_timeout: float = 5.0,
    mailbox_capacity: int = MAILBOX_CAPACITY,
    liveness_timeout: float = LIVENESS_TIMEOUT,
) -> tuple[asyncio.DatagramTransport, HostServer]:
    """
    Start the host and complete relay registration.

    Args:
        relay_address: (host, port) of the relay; names are resolved first
        sink_factory: Creates one virtual controller sink per session
        host: Host to bind to
        port: Port to bind to (default 45681)
        connect_timeout: Seconds to wait for the relay's answer
        mailbox_capacity: Per-session mailbox size
        liveness_timeout: Seconds of client silence before a session ends

    Returns:
        Tuple of (transport, protocol)

    Raises:
        RelayTimeoutError: if the relay does not answer
        OSError: if the socket cannot be bound or the relay cannot be resolved
    """
    loop = asyncio.get_running_loop()
    relay_addr = await resolve_udp_address(relay_address, family_for_bind_host(host))
    registry = SessionRegistry(sink_factory, mailbox_capacity, liveness_timeout)

    transport, protocol = await loop.create_datagram_endpoint(
        lambda: HostServer(relay_addr, registry),
        local_addr=(host, port),
    )

    try:
        await protocol.register_with_relay(connect_timeout)
    except RelayTimeoutError:
        transport.close()
        raise

    return transport, protocol
