"""
Session Management for the input-receiving host.

One ClientSession exists per connected client, keyed by the client's public
address. Each session is owned by exactly one ControllerWorker task; the
host's receive loop only ever enqueues into the session mailbox.
"""

import asyncio
import time
from dataclasses import dataclass, field

from netpad.devices.virtual_gamepad import SinkFactory
from netpad.models.wire_types import Address, ClientMessage
from netpad.servers.controller_worker import ControllerWorker
from netpad.util.errors import CapacityError
from netpad.util.logging_helper import format_addr, get_logger

logger = get_logger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Messages a session may hold before new ones are dropped
MAILBOX_CAPACITY = 1000

# Seconds without any message before a session is torn down
LIVENESS_TIMEOUT = 10.0


@dataclass
class ClientSession:
    """Server-side record for one connected client."""

    address: Address
    mailbox: asyncio.Queue

    # Activity tracking
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)

    # Statistics
    messages_received: int = 0
    messages_dropped: int = 0

    def update_activity(self):
        """Update last activity timestamp."""
        self.last_activity = time.time()


class SessionRegistry:
    """
    Address -> (session, worker task) registry.

    Entries are inserted when a client is first learned from the relay and
    removed when the worker task finishes, for whatever reason.
    """

    def __init__(
        self,
        sink_factory: SinkFactory,
        mailbox_capacity: int = MAILBOX_CAPACITY,
        liveness_timeout: float = LIVENESS_TIMEOUT,
    ):
        self.sink_factory = sink_factory
        self.mailbox_capacity = mailbox_capacity
        self.liveness_timeout = liveness_timeout

        self._sessions: dict[Address, ClientSession] = {}
        self._tasks: dict[Address, asyncio.Task] = {}

    def __contains__(self, addr: Address) -> bool:
        return addr in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, addr: Address) -> ClientSession | None:
        return self._sessions.get(addr)

    @property
    def addresses(self) -> list[Address]:
        return list(self._sessions)

    def open_session(self, addr: Address) -> ClientSession | None:
        """
        Create a session and spawn its worker.

        Must be called from within the running event loop.

        Returns:
            The new session, or None if the address already has one.
        """
        if addr in self._sessions:
            return None

        session = ClientSession(address=addr, mailbox=asyncio.Queue(maxsize=self.mailbox_capacity))
        worker = ControllerWorker(session, self.sink_factory(), self.liveness_timeout)
        task = asyncio.create_task(worker.run(), name=f"controller-worker-{format_addr(addr)}")

        self._sessions[addr] = session
        self._tasks[addr] = task
        task.add_done_callback(lambda t, a=addr: self._on_worker_done(a, t))

        logger.info("Session opened for %s (%d active)", format_addr(addr), len(self._sessions))
        return session

    def deliver(self, addr: Address, message: ClientMessage) -> None:
        """
        Enqueue a message for the session at addr without blocking.

        Raises:
            KeyError: if no session exists for addr
            CapacityError: if the session mailbox is full
        """
        session = self._sessions[addr]
        try:
            session.mailbox.put_nowait(message)
        except asyncio.QueueFull:
            session.messages_dropped += 1
            raise CapacityError(
                f"Mailbox for {format_addr(addr)} is full ({self.mailbox_capacity} messages)"
            ) from None
        session.messages_received += 1

    def _on_worker_done(self, addr: Address, task: asyncio.Task):
        if self._tasks.get(addr) is not task:
            return
        del self._tasks[addr]
        session = self._sessions.pop(addr)

        if not task.cancelled() and task.exception() is not None:
            logger.error("Worker for %s failed: %r", format_addr(addr), task.exception())

        logger.info(
            "Session closed for %s (received %d, dropped %d, %d active)",
            format_addr(addr),
            session.messages_received,
            session.messages_dropped,
            len(self._sessions),
        )

    async def close_all(self):
        """Cancel every worker and wait for them to unplug their controllers."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
