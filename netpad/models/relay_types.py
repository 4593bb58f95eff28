"""
Relay Coordinator Types.

Data structures for hole-punch rendezvous state.
"""

import time
from dataclasses import dataclass, field
from enum import Enum

from netpad.models.wire_types import Address


class RelayPhase(str, Enum):
    """Relay lifecycle, derived from the registered host and waiting clients."""

    IDLE = "idle"
    WAITING_FOR_HOST = "waiting_for_host"
    HOST_ACTIVE = "host_active"


@dataclass
class RelayState:
    """
    Rendezvous state for one relay instance.

    The first host to register is kept for the lifetime of the relay.
    Clients are appended in arrival order, including clients that register
    after the host, so a second host could still learn about them.
    """

    host: Address | None = None
    waiting_clients: list[Address] = field(default_factory=list)

    # Activity tracking
    started_at: float = field(default_factory=time.time)
    host_registered_at: float | None = None

    @property
    def phase(self) -> RelayPhase:
        if self.host is not None:
            return RelayPhase.HOST_ACTIVE
        if self.waiting_clients:
            return RelayPhase.WAITING_FOR_HOST
        return RelayPhase.IDLE

    def snapshot(self) -> dict:
        """Return a JSON-friendly copy of the state for status reporting."""
        return {
            "phase": self.phase.value,
            "host": list(self.host) if self.host else None,
            "waiting_clients": [list(addr) for addr in self.waiting_clients],
            "started_at": self.started_at,
            "host_registered_at": self.host_registered_at,
        }
