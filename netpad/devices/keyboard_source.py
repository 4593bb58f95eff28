"""
Keyboard Input Source.

Tracks which keys are held down and reports them using the key names
understood by the key mapper (see netpad.util.key_mapper.KEY_NAMES).
"""

import threading
from typing import Protocol

from netpad.util.logging_helper import get_logger

logger = get_logger(__name__)


class InputSource(Protocol):
    """Anything that can report the currently pressed keys without blocking."""

    def get_pressed_keys(self) -> set[str]:
        ...


# Printable characters -> key names
CHAR_NAMES: dict[str, str] = {
    "`": "Grave",
    "-": "Minus",
    "=": "Equal",
    "[": "LeftBracket",
    "]": "RightBracket",
    "\\": "BackSlash",
    ";": "Semicolon",
    "'": "Apostrophe",
    ",": "Comma",
    ".": "Dot",
    "/": "Slash",
}

# Shifted characters (US layout) -> name of the unshifted key
SHIFTED_NAMES: dict[str, str] = {
    "~": "Grave",
    "!": "Key1",
    "@": "Key2",
    "#": "Key3",
    "$": "Key4",
    "%": "Key5",
    "^": "Key6",
    "&": "Key7",
    "*": "Key8",
    "(": "Key9",
    ")": "Key0",
    "_": "Minus",
    "+": "Equal",
    "{": "LeftBracket",
    "}": "RightBracket",
    "|": "BackSlash",
    ":": "Semicolon",
    "\"": "Apostrophe",
    "<": "Comma",
    ">": "Dot",
    "?": "Slash",
}

# pynput special key attribute -> key name
SPECIAL_NAMES: dict[str, str] = {
    "esc": "Escape",
    "space": "Space",
    "ctrl_l": "LControl",
    "ctrl_r": "RControl",
    "shift": "LShift",
    "shift_l": "LShift",
    "shift_r": "RShift",
    "alt": "LAlt",
    "alt_l": "LAlt",
    "alt_r": "RAlt",
    "alt_gr": "RAlt",
    "cmd": "Command",
    "cmd_l": "LMeta",
    "cmd_r": "RMeta",
    "enter": "Enter",
    "up": "Up",
    "down": "Down",
    "left": "Left",
    "right": "Right",
    "backspace": "Backspace",
    "caps_lock": "CapsLock",
    "tab": "Tab",
    "home": "Home",
    "end": "End",
    "page_up": "PageUp",
    "page_down": "PageDown",
    "insert": "Insert",
    "delete": "Delete",
    **{f"f{i}": f"F{i}" for i in range(1, 21)},
}

# Keypad virtual key codes (Windows VK_* and X11 keysyms)
NUMPAD_VK_NAMES: dict[int, str] = {
    **{0x60 + i: f"Numpad{i}" for i in range(10)},
    0x6A: "NumpadMultiply",
    0x6B: "NumpadAdd",
    0x6D: "NumpadSubtract",
    0x6E: "NumpadDecimal",
    0x6F: "NumpadDivide",
    **{0xFFB0 + i: f"Numpad{i}" for i in range(10)},
    0xFFAA: "NumpadMultiply",
    0xFFAB: "NumpadAdd",
    0xFFAD: "NumpadSubtract",
    0xFFAE: "NumpadDecimal",
    0xFFAF: "NumpadDivide",
    0xFF8D: "NumpadEnter",
    0xFFBD: "NumpadEquals",
}


def char_key_name(char: str | None, vk: int | None = None) -> str | None:
    """Translate a printable key (and optional virtual key code) to a key name."""
    # X11 letter keysyms overlap the Windows keypad range
    if vk is not None and vk in NUMPAD_VK_NAMES and not (char and char.isalpha()):
        return NUMPAD_VK_NAMES[vk]
    if not char or len(char) != 1:
        return None
    if char.isascii() and char.isalpha():
        return char.upper()
    if char.isascii() and char.isdigit():
        return f"Key{char}"
    return CHAR_NAMES.get(char) or SHIFTED_NAMES.get(char)


class PynputKeyboardSource:
    """
    Global keyboard state tracked with a pynput listener thread.

    The listener adds and removes key names from a shared set; the client's
    sampling task reads a copy of it.
    """

    def __init__(self):
        self._pressed: set[str] = set()
        self._lock = threading.Lock()
        self._listener = None
        self._special: dict = {}
        # Name recorded at press time, by virtual key code
        self._held: dict[int, str] = {}

    def start(self) -> None:
        from pynput import keyboard

        self._special = {}
        for attr, name in SPECIAL_NAMES.items():
            key = getattr(keyboard.Key, attr, None)
            if key is not None:
                self._special[key] = name

        self._listener = keyboard.Listener(on_press=self._on_press, on_release=self._on_release)
        self._listener.start()
        logger.info("Keyboard listener started")

    def stop(self) -> None:
        if self._listener is not None:
            self._listener.stop()
            self._listener = None
            logger.info("Keyboard listener stopped")
        with self._lock:
            self._pressed.clear()
            self._held.clear()

    def _key_name(self, key) -> str | None:
        name = self._special.get(key)
        if name is not None:
            return name
        return char_key_name(getattr(key, "char", None), getattr(key, "vk", None))

    def _on_press(self, key) -> None:
        name = self._key_name(key)
        if name is None:
            return
        vk = getattr(key, "vk", None)
        with self._lock:
            self._pressed.add(name)
            if vk is not None:
                self._held[vk] = name

    def _on_release(self, key) -> None:
        # A modifier may have changed the character since the press
        vk = getattr(key, "vk", None)
        with self._lock:
            name = self._held.pop(vk, None) if vk is not None else None
            if name is None:
                name = self._key_name(key)
            if name is not None:
                self._pressed.discard(name)

    def get_pressed_keys(self) -> set[str]:
        with self._lock:
            return set(self._pressed)
