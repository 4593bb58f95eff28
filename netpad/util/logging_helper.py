"""
Logging utilities for the netpad relay, host and client.

Provides centralized logging configuration and helper functions.
"""

import logging
import sys
from typing import Optional


def format_hex(data: bytes) -> str:
    """Format bytes as hex string for debug logging."""
    return ' '.join(f'{b:02x}' for b in data)


def format_addr(addr: tuple[str, int]) -> str:
    """Format an (ip, port) tuple the way it appears in log lines."""
    ip, port = addr
    if ':' in ip:
        return f'[{ip}]:{port}'
    return f'{ip}:{port}'


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__ or module name)
        level: Optional log level override

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if level is not None:
        logger.setLevel(level)

    return logger


def setup_logging(level: int = logging.INFO, debug_modules: Optional[list[str]] = None) -> None:
    """
    Configure root logging for the application.

    Args:
        level: Default log level for the application
        debug_modules: List of module names to set to DEBUG level
    """
    formatter = logging.Formatter(
        fmt='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    if debug_modules:
        for module in debug_modules:
            logging.getLogger(module).setLevel(logging.DEBUG)


# Module-level logger names for each component
RELAY_LOGGER = 'netpad.servers.relay_server'
HOST_LOGGER = 'netpad.servers.host_server'
WORKER_LOGGER = 'netpad.servers.controller_worker'
CLIENT_LOGGER = 'netpad.servers.client_session'
