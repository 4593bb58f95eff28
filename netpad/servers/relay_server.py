"""
Hole-Punch Relay Server.

Publicly reachable UDP rendezvous service. Hosts and clients register with a
single Role byte; the relay learns their public addresses and introduces
them to each other so they can exchange datagrams directly.

Flow:
1. Clients register (Role=CLIENT) and wait in arrival order
2. The first host to register (Role=HOST) receives the full client list,
   and every waiting client receives the host's address
3. A client registering after the host is introduced immediately, in both
   directions, and is still recorded as waiting
4. Later host registrations are ignored (first host wins)

The relay is not in the data path after introduction.
"""

import asyncio
import time

from netpad.models.relay_types import RelayState
from netpad.models.wire_types import Address, Role
from netpad.util.errors import DecodeError, PayloadTooLargeError
from netpad.util.logging_helper import format_addr, format_hex, get_logger
from netpad.util.wire_protocol import (
    decode_role,
    encode_address,
    encode_address_list,
    encode_address_lists,
    normalize_address,
)

logger = get_logger(__name__)

Datagram = tuple[bytes, Address]


class RelayCoordinator:
    """
    Single-writer owner of the relay state.

    Registration handlers mutate the state and return the datagrams to send,
    leaving socket I/O to the caller.
    """

    def __init__(self, state: RelayState | None = None):
        self._state = state or RelayState()

    @property
    def host(self) -> Address | None:
        return self._state.host

    @property
    def waiting_clients(self) -> list[Address]:
        return list(self._state.waiting_clients)

    def snapshot(self) -> dict:
        return self._state.snapshot()

    def handle_registration(self, role: Role, addr: Address) -> list[Datagram]:
        """
        Apply one registration.

        Args:
            role: Role byte sent by the peer
            addr: Public (ip, port) of the peer as seen by the relay

        Returns:
            Datagrams to send, as (payload, destination) pairs
        """
        if role == Role.HOST:
            return self.register_host(addr)
        return self.register_client(addr)

    def register_host(self, addr: Address) -> list[Datagram]:
        state = self._state
        if state.host is not None:
            logger.info(
                "Ignoring HOST registration from %s: host %s already active",
                format_addr(addr),
                format_addr(state.host),
            )
            return []

        # Encode everything first so a failure leaves the relay without a host
        outgoing: list[Datagram] = [(frame, addr) for frame in encode_address_lists(state.waiting_clients)]
        host_info = encode_address(addr)
        for client in state.waiting_clients:
            outgoing.append((host_info, client))

        state.host = addr
        state.host_registered_at = time.time()
        logger.info(
            "Host registered at %s, introducing %d waiting client(s) in %d list frame(s)",
            format_addr(addr),
            len(state.waiting_clients),
            len(outgoing) - len(state.waiting_clients),
        )
        return outgoing

    def register_client(self, addr: Address) -> list[Datagram]:
        state = self._state
        outgoing: list[Datagram] = []

        if state.host is not None:
            outgoing.append((encode_address(state.host), addr))
            outgoing.append((encode_address_list([addr]), state.host))
            logger.info("Client %s introduced to host %s", format_addr(addr), format_addr(state.host))
        else:
            logger.info("Client %s waiting for a host", format_addr(addr))

        state.waiting_clients.append(addr)
        return outgoing


class RelayServer(asyncio.DatagramProtocol):
    """
    Relay UDP Server Protocol.

    Decodes Role bytes and hands them to the coordinator. The coordinator is
    only ever touched from this protocol's callbacks.
    """

    def __init__(self, coordinator: RelayCoordinator | None = None):
        self.transport: asyncio.DatagramTransport | None = None
        self.coordinator = coordinator or RelayCoordinator()

    def connection_made(self, transport: asyncio.DatagramTransport):
        """Called when the UDP socket is ready."""
        self.transport = transport
        local_addr = transport.get_extra_info("sockname")
        logger.info("Relay listening on %s:%d", local_addr[0], local_addr[1])

    def connection_lost(self, exc: Exception | None):
        logger.info("Relay stopped")

    def datagram_received(self, data: bytes, addr: tuple):
        """
        Handle incoming UDP datagram.

        Args:
            data: Raw packet bytes
            addr: Socket address of the sender
        """
        addr = normalize_address(addr)
        try:
            role = decode_role(data)
        except DecodeError as e:
            logger.warning("Dropping datagram from %s: %s", format_addr(addr), e)
            logger.debug("Dropped payload: %s", format_hex(data[:20]))
            return

        try:
            outgoing = self.coordinator.handle_registration(role, addr)
        except PayloadTooLargeError as e:
            logger.error("Cannot answer %s registration from %s: %s", role.name, format_addr(addr), e)
            return

        for payload, dest in outgoing:
            self._send_to(payload, dest)

    def _send_to(self, data: bytes, addr: Address):
        """Send a packet to the specified address."""
        if self.transport:
            self.transport.sendto(data, addr)
            logger.debug("TX to %s (%d bytes): %s", format_addr(addr), len(data), format_hex(data[:20]))

    def error_received(self, exc: Exception):
        """Handle error on the UDP socket."""
        logger.error("UDP error: %s", exc)


async def start_relay_server(
    host: str = "0.0.0.0",
    port: int = 45680,
    coordinator: RelayCoordinator | None = None,
) -> tuple[asyncio.DatagramTransport, RelayServer]:
    """
    Start the relay UDP server.

    Args:
        host: Host to bind to
        port: Port to bind to
        coordinator: Optional pre-built coordinator (for sharing with the status API)

    Returns:
        Tuple of (transport, protocol)
    """
    loop = asyncio.get_running_loop()

    transport, protocol = await loop.create_datagram_endpoint(
        lambda: RelayServer(coordinator),
        local_addr=(host, port),
    )

    return transport, protocol
