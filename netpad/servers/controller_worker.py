"""
Per-Client Controller Worker.

Owns one client's virtual controller for the lifetime of its session:
plugs it in, applies Input snapshots from the session mailbox, and unplugs
it once the client has been silent for the liveness timeout.
"""

import asyncio
from typing import TYPE_CHECKING

from netpad.devices.virtual_gamepad import VirtualControllerSink
from netpad.models.controller_types import ControllerState
from netpad.models.wire_types import ClientMessage, Heartbeat, UserInput
from netpad.util.errors import SinkError
from netpad.util.logging_helper import format_addr, get_logger

if TYPE_CHECKING:
    from netpad.servers.sessions import ClientSession

logger = get_logger(__name__)


class ControllerWorker:
    """
    Consumer side of one session mailbox.

    A timeout on the mailbox is the only way a session ends on its own;
    the protocol has no disconnect message.
    """

    def __init__(self, session: "ClientSession", sink: VirtualControllerSink, liveness_timeout: float = 10.0):
        self.session = session
        self.sink = sink
        self.liveness_timeout = liveness_timeout
        self.updates_applied = 0

    async def run(self):
        """Worker task body. Returns when the session ends."""
        addr = format_addr(self.session.address)

        try:
            self.sink.plug_in()
        except SinkError as e:
            logger.error("Could not plug in controller for %s: %s", addr, e)
            return

        logger.info("Controller plugged in for %s", addr)

        try:
            while True:
                try:
                    message = await asyncio.wait_for(self.session.mailbox.get(), self.liveness_timeout)
                except asyncio.TimeoutError:
                    logger.info("No message from %s for %.1fs, ending session", addr, self.liveness_timeout)
                    return
                self.handle_message(message)
        finally:
            self._unplug()

    def handle_message(self, message: ClientMessage):
        self.session.update_activity()

        if isinstance(message, Heartbeat):
            logger.debug("Heartbeat from %s", format_addr(self.session.address))
            return

        if isinstance(message, UserInput):
            try:
                self.sink.update(ControllerState.from_user_input(message))
            except SinkError as e:
                logger.error("Controller update failed for %s: %s", format_addr(self.session.address), e)
                return
            self.updates_applied += 1

    def _unplug(self):
        try:
            self.sink.unplug()
        except SinkError as e:
            logger.error("Could not unplug controller for %s: %s", format_addr(self.session.address), e)
            return
        logger.info("Controller unplugged for %s", format_addr(self.session.address))
