"""
Key Mapping for the input-sending client.

Loads a TOML table of "<KeyName>" = "<ActionName>" pairs and turns a set of
pressed keys into a UserInput snapshot.

Example keymap.toml:

    W = "LY+"
    S = "LY-"
    A = "LX-"
    D = "LX+"
    Space = "A"
    LShift = "LTRIGGER"
"""

import tomllib
from collections.abc import Iterable, Mapping

from netpad.models.controller_types import (
    AxisAction,
    ButtonAction,
    ControllerAction,
    ControllerField,
    TriggerAction,
)
from netpad.models.wire_types import UserInput
from netpad.util.errors import KeyMapError
from netpad.util.logging_helper import get_logger

logger = get_logger(__name__)

# Full deflection used for digital thumbstick directions
AXIS_MAGNITUDE = 29999

# Trigger magnitude applied while the key is held
TRIGGER_MAGNITUDE = 255

KEY_NAMES: frozenset[str] = frozenset(
    [f"Key{i}" for i in range(10)]
    + [chr(c) for c in range(ord("A"), ord("Z") + 1)]
    + [f"F{i}" for i in range(1, 21)]
    + [
        "Escape", "Space", "LControl", "RControl", "LShift", "RShift",
        "LAlt", "RAlt", "Command", "LOption", "ROption", "LMeta", "RMeta",
        "Enter", "Up", "Down", "Left", "Right", "Backspace", "CapsLock",
        "Tab", "Home", "End", "PageUp", "PageDown", "Insert", "Delete",
    ]
    + [f"Numpad{i}" for i in range(10)]
    + [
        "NumpadSubtract", "NumpadAdd", "NumpadDivide", "NumpadMultiply",
        "NumpadEquals", "NumpadEnter", "NumpadDecimal",
        "Grave", "Minus", "Equal", "LeftBracket", "RightBracket", "BackSlash",
        "Semicolon", "Apostrophe", "Comma", "Dot", "Slash",
    ]
)

# XUSB button bits
BUTTON_BITS: dict[str, int] = {
    "UP": 0x0001,
    "DOWN": 0x0002,
    "LEFT": 0x0004,
    "RIGHT": 0x0008,
    "START": 0x0010,
    "BACK": 0x0020,
    "LTHUMB": 0x0040,
    "RTHUMB": 0x0080,
    "LB": 0x0100,
    "RB": 0x0200,
    "GUIDE": 0x0400,
    "A": 0x1000,
    "B": 0x2000,
    "X": 0x4000,
    "Y": 0x8000,
}

CONTROLLER_ACTIONS: dict[str, ControllerAction] = {
    "LX+": AxisAction(ControllerField.LX, AXIS_MAGNITUDE),
    "LX-": AxisAction(ControllerField.LX, -AXIS_MAGNITUDE),
    "LY+": AxisAction(ControllerField.LY, AXIS_MAGNITUDE),
    "LY-": AxisAction(ControllerField.LY, -AXIS_MAGNITUDE),
    "RX+": AxisAction(ControllerField.RX, AXIS_MAGNITUDE),
    "RX-": AxisAction(ControllerField.RX, -AXIS_MAGNITUDE),
    "RY+": AxisAction(ControllerField.RY, AXIS_MAGNITUDE),
    "RY-": AxisAction(ControllerField.RY, -AXIS_MAGNITUDE),
    "LTRIGGER": TriggerAction(ControllerField.LTRIGGER, TRIGGER_MAGNITUDE),
    "RTRIGGER": TriggerAction(ControllerField.RTRIGGER, TRIGGER_MAGNITUDE),
    **{name: ButtonAction(bit) for name, bit in BUTTON_BITS.items()},
}


class KeyMapper:
    """
    Immutable key -> controller action lookup.

    Multiple keys may target the same field: axes and triggers take the value
    of the last matching key in iteration order, buttons are OR-ed together.
    """

    def __init__(self, bindings: Mapping[str, ControllerAction]):
        self._bindings: dict[str, ControllerAction] = dict(bindings)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, object]) -> "KeyMapper":
        """
        Build a mapper from raw key-name -> action-name pairs.

        Raises:
            KeyMapError: naming the first unknown key or action
        """
        bindings: dict[str, ControllerAction] = {}
        for key, action in raw.items():
            if key not in KEY_NAMES:
                raise KeyMapError(f"Key not supported: {key}", key)
            if not isinstance(action, str) or action not in CONTROLLER_ACTIONS:
                raise KeyMapError(f"Controller action not supported: {action}", str(action))
            bindings[key] = CONTROLLER_ACTIONS[action]
        return cls(bindings)

    @classmethod
    def from_toml(cls, text: str) -> "KeyMapper":
        try:
            raw = tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            raise KeyMapError(f"Invalid keymap: {e}", "") from e
        return cls.from_mapping(raw)

    @classmethod
    def load(cls, path: str) -> "KeyMapper":
        """Load a keymap file from disk."""
        with open(path, encoding="utf-8") as f:
            mapper = cls.from_toml(f.read())
        logger.info("Loaded %d key bindings from %s", len(mapper), path)
        return mapper

    def __len__(self) -> int:
        return len(self._bindings)

    @property
    def bindings(self) -> dict[str, ControllerAction]:
        return dict(self._bindings)

    def map_keys(self, pressed: Iterable[str]) -> UserInput:
        """Translate the currently pressed keys into a UserInput snapshot."""
        values = {f.value: 0 for f in ControllerField}
        buttons = 0

        for key in pressed:
            action = self._bindings.get(key)
            if action is None:
                continue
            if isinstance(action, ButtonAction):
                buttons |= action.mask
            else:
                values[action.field.value] = action.value

        return UserInput(buttons=buttons, **values)
