"""Path utilities for PyInstaller frozen executable support."""

import os
import sys


def is_frozen() -> bool:
    """Check if running as a PyInstaller bundle."""
    return getattr(sys, "frozen", False)


def get_runtime_path() -> str:
    """
    Get the runtime path for user files (config.json, keymap files).

    When running as a PyInstaller bundle, this returns the directory
    where the executable is located.
    When running normally, this returns the current working directory.
    """
    if is_frozen():
        return os.path.dirname(sys.executable)
    return os.getcwd()


def resolve_runtime_file(path: str) -> str:
    """Resolve a relative file name against the runtime path."""
    if os.path.isabs(path):
        return path
    return os.path.join(get_runtime_path(), path)
