import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from netpad._version import __version__
from netpad.config.app_settings import RelaySettings, app_config
from netpad.rest.routes import router as rest_router
from netpad.servers.relay_server import RelayCoordinator, start_relay_server
from netpad.util.logging_helper import get_logger, setup_logging

logger = get_logger(__name__)


def create_app(relay_settings: RelaySettings | None = None, configure_logging: bool = True) -> FastAPI:
    """
    Build the relay application.

    The lifespan binds the relay's UDP socket on startup and closes it on
    shutdown; the HTTP side only reports status.
    """
    relay_settings = relay_settings or app_config.relay

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        if configure_logging:
            log_level = getattr(logging, app_config.logging.level.upper(), logging.INFO)
            setup_logging(level=log_level)

        coordinator = RelayCoordinator()
        logger.info("Starting relay on %s:%d...", relay_settings.host, relay_settings.port)
        transport, protocol = await start_relay_server(
            host=relay_settings.host,
            port=relay_settings.port,
            coordinator=coordinator,
        )
        app.state.relay_coordinator = coordinator
        app.state.relay_transport = transport

        yield

        # Shutdown
        logger.info("Relay shutting down...")
        transport.close()
        app.state.relay_coordinator = None

    app = FastAPI(
        title="netpad relay",
        description="UDP hole-punch relay introducing a gamepad host to its clients.",
        version=__version__,
        lifespan=lifespan,
    )

    # Mount the REST API router
    app.include_router(rest_router, prefix="/api/rest")

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


app = create_app()
