import os

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, JsonConfigSettingsSource, SettingsConfigDict

from netpad.util.paths import get_runtime_path

DEFAULT_RELAY_PORT = 45680
DEFAULT_SERVER_PORT = 45681
DEFAULT_CLIENT_PORT = 45682


def parse_address(value: str) -> tuple[str, int]:
    """
    Parse "host:port" (or "[v6addr]:port") into a (host, port) tuple.

    Raises:
        ValueError: if the port is missing or out of range
    """
    host, sep, port_text = value.rpartition(":")
    if not sep or not host:
        raise ValueError(f"Address must be host:port, got {value!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"Invalid port in address {value!r}") from None
    if not 0 < port < 65536:
        raise ValueError(f"Port out of range in address {value!r}")
    return host, port


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")


class RelaySettings(BaseModel):
    """Hole-punch relay settings."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=DEFAULT_RELAY_PORT, ge=0, lt=65536)  # 0 binds an ephemeral port
    api_enabled: bool = Field(default=False)  # Serve the status API with uvicorn
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8080, gt=0, lt=65536)


class ServerSettings(BaseModel):
    """Input-receiving host settings."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=DEFAULT_SERVER_PORT, ge=0, lt=65536)
    relay_address: str = Field(default=f"127.0.0.1:{DEFAULT_RELAY_PORT}")
    connect_timeout: float = Field(default=5.0, gt=0)  # Seconds to wait for the relay

    @field_validator("relay_address")
    @classmethod
    def _check_relay_address(cls, value: str) -> str:
        parse_address(value)
        return value


class ClientSettings(BaseModel):
    """Input-sending client settings."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=DEFAULT_CLIENT_PORT, ge=0, lt=65536)
    relay_address: str = Field(default=f"127.0.0.1:{DEFAULT_RELAY_PORT}")
    connect_timeout: float = Field(default=5.0, gt=0)
    sample_interval: float = Field(default=0.005, gt=0)  # Seconds between key samples
    heartbeat_interval: float = Field(default=5.0, gt=0)  # Seconds between heartbeats
    keymap_path: str = Field(default="keymap.toml")

    @field_validator("relay_address")
    @classmethod
    def _check_relay_address(cls, value: str) -> str:
        parse_address(value)
        return value


class SessionSettings(BaseModel):
    """Per-client session settings on the host."""

    mailbox_capacity: int = Field(default=1000, gt=0)
    liveness_timeout: float = Field(default=10.0, gt=0)  # Seconds without a message before teardown


# Compute config path at module load time for frozen executable support
_config_path = os.path.join(get_runtime_path(), "config.json")


class AppSettings(BaseSettings):
    relay: RelaySettings = Field(default_factory=RelaySettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    client: ClientSettings = Field(default_factory=ClientSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        json_file=_config_path,
        json_file_encoding="utf-8",
        env_prefix="NETPAD_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            JsonConfigSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )


app_config = AppSettings()
