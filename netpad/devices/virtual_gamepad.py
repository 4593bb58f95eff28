"""
Virtual Controller Sink.

Wraps an OS-level emulated Xbox 360 pad. The host creates one sink per
client session; only that session's worker ever touches it.
"""

from collections.abc import Callable
from typing import Protocol

from netpad.models.controller_types import ControllerState
from netpad.util.errors import SinkError
from netpad.util.logging_helper import get_logger

logger = get_logger(__name__)


class VirtualControllerSink(Protocol):
    """Contract between a session worker and its virtual controller."""

    def plug_in(self) -> None:
        """Acquire the device. Raises SinkError on failure."""

    def update(self, state: ControllerState) -> None:
        """Push a full controller report. Raises SinkError on failure."""

    def unplug(self) -> None:
        """Release the device. Raises SinkError on failure."""


SinkFactory = Callable[[], VirtualControllerSink]


def check_sink_backend(sink_factory: SinkFactory) -> None:
    """
    Plug in and release one controller to prove the backend works.

    Raises:
        SinkError: if the driver or library is missing
    """
    sink = sink_factory()
    sink.plug_in()
    sink.unplug()
    logger.info("Virtual controller backend available")


class VGamepadSink:
    """
    Virtual Xbox 360 controller backed by vgamepad (ViGEmBus on Windows,
    uinput on Linux).
    """

    def __init__(self):
        self._pad = None

    @property
    def plugged_in(self) -> bool:
        return self._pad is not None

    def plug_in(self) -> None:
        if self._pad is not None:
            return
        try:
            import vgamepad

            pad = vgamepad.VX360Gamepad()
            pad.reset()
            pad.update()
        except Exception as e:
            raise SinkError(f"Failed to plug in virtual controller: {e}") from e
        self._pad = pad
        logger.debug("Virtual controller plugged in")

    def update(self, state: ControllerState) -> None:
        if self._pad is None:
            raise SinkError("Virtual controller is not plugged in")
        try:
            self._pad.left_joystick(x_value=state.thumb_lx, y_value=state.thumb_ly)
            self._pad.right_joystick(x_value=state.thumb_rx, y_value=state.thumb_ry)
            self._pad.left_trigger(value=state.left_trigger)
            self._pad.right_trigger(value=state.right_trigger)
            self._pad.report.wButtons = state.buttons
            self._pad.update()
        except Exception as e:
            raise SinkError(f"Failed to update virtual controller: {e}") from e

    def unplug(self) -> None:
        pad, self._pad = self._pad, None
        if pad is None:
            return
        try:
            pad.reset()
            pad.update()
        except Exception as e:
            raise SinkError(f"Failed to reset virtual controller: {e}") from e
        finally:
            # vgamepad removes the ViGEm target when the pad is collected
            del pad
        logger.debug("Virtual controller unplugged")
