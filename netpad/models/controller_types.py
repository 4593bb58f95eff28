"""
Controller Types.

Values flowing between the key mapper, the host's workers and the
virtual controller sink.
"""

from dataclasses import dataclass
from enum import Enum

from netpad.models.wire_types import UserInput


class ControllerField(str, Enum):
    """UserInput field targeted by an axis or trigger action."""

    LX = "lx"
    LY = "ly"
    RX = "rx"
    RY = "ry"
    LTRIGGER = "ltrigger"
    RTRIGGER = "rtrigger"


@dataclass(frozen=True)
class AxisAction:
    """Set a thumbstick axis to a signed 16-bit value."""

    field: ControllerField
    value: int


@dataclass(frozen=True)
class TriggerAction:
    """Set a trigger to an unsigned 8-bit magnitude."""

    field: ControllerField
    value: int = 255


@dataclass(frozen=True)
class ButtonAction:
    """OR a button bit into the 16-bit mask."""

    mask: int


ControllerAction = AxisAction | TriggerAction | ButtonAction


@dataclass(frozen=True)
class ControllerState:
    """
    Virtual controller report pushed to the sink.

    Fields map 1:1 to UserInput, named after the XUSB report.
    """

    thumb_lx: int = 0
    thumb_ly: int = 0
    thumb_rx: int = 0
    thumb_ry: int = 0
    left_trigger: int = 0
    right_trigger: int = 0
    buttons: int = 0

    @classmethod
    def from_user_input(cls, user_input: UserInput) -> "ControllerState":
        return cls(
            thumb_lx=user_input.lx,
            thumb_ly=user_input.ly,
            thumb_rx=user_input.rx,
            thumb_ry=user_input.ry,
            left_trigger=user_input.ltrigger,
            right_trigger=user_input.rtrigger,
            buttons=user_input.buttons,
        )
