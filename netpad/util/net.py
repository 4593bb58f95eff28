"""Address resolution helpers for the UDP roles."""

import asyncio
import socket

from netpad.models.wire_types import Address


def family_for_bind_host(host: str) -> socket.AddressFamily:
    """Pick the socket family implied by a bind address."""
    return socket.AF_INET6 if ":" in host else socket.AF_INET


async def resolve_udp_address(addr: Address, family: socket.AddressFamily = socket.AF_INET) -> Address:
    """
    Resolve a (hostname, port) pair to the literal (ip, port) a socket reports.

    Datagram senders are matched by exact address, so configured names such
    as "relay.example.net" must be resolved before comparing.

    Raises:
        OSError: if the name cannot be resolved for the requested family
    """
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(addr[0], addr[1], family=family, type=socket.SOCK_DGRAM)
    if not infos:
        raise OSError(f"Could not resolve {addr[0]}:{addr[1]}")
    sockaddr = infos[0][4]
    return (sockaddr[0], sockaddr[1])
