#!/usr/bin/env python3
"""
Entry point for PyInstaller executable.
Runs the relay, server or client role selected on the command line.
"""

import os
import sys


def main():
    # Change to executable directory for relative paths (config, keymap)
    if getattr(sys, "frozen", False):
        os.chdir(os.path.dirname(sys.executable))

    # Import after path setup so config.json is found; settings load at import
    try:
        from netpad.cli import main as cli_main
    except ValueError as e:
        print(f"Invalid configuration in config.json: {e}", file=sys.stderr)
        sys.exit(2)

    sys.exit(cli_main())


if __name__ == "__main__":
    main()
