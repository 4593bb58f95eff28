"""
Command-line entry point.

    run_server.py relay  [--host H] [--port P] [--api] [--api-port N]
    run_server.py server [--relay HOST:PORT] [--host H] [--port P]
    run_server.py client [--relay HOST:PORT] [--host H] [--port P] [--keymap FILE]

Flags override the matching section of config.json.
"""

import argparse
import asyncio
import logging
import sys

from netpad.config.app_settings import (
    AppSettings,
    ClientSettings,
    RelaySettings,
    ServerSettings,
    app_config,
    parse_address,
)
from netpad.devices.keyboard_source import PynputKeyboardSource
from netpad.devices.virtual_gamepad import VGamepadSink, check_sink_backend
from netpad.servers.client_session import start_client_session
from netpad.servers.host_server import start_host_server
from netpad.servers.relay_server import start_relay_server
from netpad.util.errors import KeyMapError, RelayTimeoutError, SinkError
from netpad.util.key_mapper import KeyMapper
from netpad.util.logging_helper import (
    CLIENT_LOGGER,
    HOST_LOGGER,
    RELAY_LOGGER,
    WORKER_LOGGER,
    get_logger,
    setup_logging,
)
from netpad.util.paths import resolve_runtime_file

logger = get_logger(__name__)

# Modules whose debug output belongs to each role
ROLE_DEBUG_MODULES = {
    "relay": [RELAY_LOGGER],
    "server": [HOST_LOGGER, WORKER_LOGGER],
    "client": [CLIENT_LOGGER],
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="netpad", description="Drive a remote virtual gamepad over UDP")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    parser.add_argument("--debug", action="store_true", help="Log datagrams of the selected role at DEBUG")
    roles = parser.add_subparsers(dest="role", required=True)

    relay = roles.add_parser("relay", help="Run the hole-punch relay")
    relay.add_argument("--host", help="Address to bind the relay to")
    relay.add_argument("--port", type=int, help="UDP port for registrations")
    relay.add_argument("--api", action="store_true", default=None, help="Also serve the HTTP status API")
    relay.add_argument("--api-host", help="Address to bind the status API to")
    relay.add_argument("--api-port", type=int, help="Port for the status API")

    server = roles.add_parser("server", help="Receive input and drive virtual controllers")
    server.add_argument("--relay", dest="relay_address", help="Relay address as host:port")
    server.add_argument("--host", help="Address to bind to")
    server.add_argument("--port", type=int, help="UDP port to bind to")
    server.add_argument("--connect-timeout", type=float, help="Seconds to wait for the relay")

    client = roles.add_parser("client", help="Capture keyboard input and send it to the host")
    client.add_argument("--relay", dest="relay_address", help="Relay address as host:port")
    client.add_argument("--host", help="Address to bind to")
    client.add_argument("--port", type=int, help="UDP port to bind to")
    client.add_argument("--connect-timeout", type=float, help="Seconds to wait for the host address")
    client.add_argument("--keymap", dest="keymap_path", help="Key mapping file (TOML)")

    return parser


def _override(section, args: argparse.Namespace, names: list[str]):
    """Return a validated copy of a settings section with non-None flags applied."""
    updates = {name: getattr(args, name) for name in names if getattr(args, name, None) is not None}
    if not updates:
        return section
    return type(section)(**{**section.model_dump(), **updates})


def apply_overrides(settings: AppSettings, args: argparse.Namespace) -> AppSettings:
    if args.role == "relay":
        if args.api:
            args.api_enabled = True
        relay = _override(settings.relay, args, ["host", "port", "api_enabled", "api_host", "api_port"])
        return settings.model_copy(update={"relay": relay})
    if args.role == "server":
        server = _override(settings.server, args, ["relay_address", "host", "port", "connect_timeout"])
        return settings.model_copy(update={"server": server})
    client = _override(settings.client, args, ["relay_address", "host", "port", "connect_timeout", "keymap_path"])
    return settings.model_copy(update={"client": client})


async def serve_relay(relay_settings: RelaySettings):
    """Run the relay without the status API until cancelled."""
    transport, _ = await start_relay_server(relay_settings.host, relay_settings.port)
    try:
        await asyncio.Event().wait()
    finally:
        transport.close()


async def serve_host(settings: AppSettings):
    server_settings: ServerSettings = settings.server
    # Fail before registering if no controller can be created
    check_sink_backend(VGamepadSink)
    transport, protocol = await start_host_server(
        relay_address=parse_address(server_settings.relay_address),
        sink_factory=VGamepadSink,
        host=server_settings.host,
        port=server_settings.port,
        connect_timeout=server_settings.connect_timeout,
        mailbox_capacity=settings.session.mailbox_capacity,
        liveness_timeout=settings.session.liveness_timeout,
    )
    try:
        await protocol.wait_closed()
    finally:
        await protocol.stop()


async def serve_client(client_settings: ClientSettings, key_mapper: KeyMapper):
    source = PynputKeyboardSource()
    source.start()
    try:
        transport, protocol = await start_client_session(
            relay_address=parse_address(client_settings.relay_address),
            source=source,
            key_mapper=key_mapper,
            host=client_settings.host,
            port=client_settings.port,
            connect_timeout=client_settings.connect_timeout,
            sample_interval=client_settings.sample_interval,
            heartbeat_interval=client_settings.heartbeat_interval,
        )
        try:
            await protocol.run()
        finally:
            transport.close()
    finally:
        source.stop()


def run_relay(settings: AppSettings):
    relay_settings = settings.relay
    if relay_settings.api_enabled:
        import uvicorn

        from netpad.main import create_app

        uvicorn.run(
            create_app(relay_settings, configure_logging=False),
            host=relay_settings.api_host,
            port=relay_settings.api_port,
            log_level=settings.logging.level.lower(),
        )
    else:
        asyncio.run(serve_relay(relay_settings))


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = apply_overrides(app_config, args)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    level_name = (args.log_level or settings.logging.level).upper()
    setup_logging(
        level=getattr(logging, level_name, logging.INFO),
        debug_modules=ROLE_DEBUG_MODULES[args.role] if args.debug else None,
    )

    try:
        if args.role == "relay":
            run_relay(settings)
        elif args.role == "server":
            asyncio.run(serve_host(settings))
        else:
            keymap_path = resolve_runtime_file(settings.client.keymap_path)
            key_mapper = KeyMapper.load(keymap_path)
            asyncio.run(serve_client(settings.client, key_mapper))
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
    except (RelayTimeoutError, KeyMapError, SinkError, OSError) as e:
        logger.error("%s failed to start: %s", args.role, e)
        return 1

    return 0
