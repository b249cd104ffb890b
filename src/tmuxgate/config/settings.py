"""Configuration management for tmuxgate.

Loads settings from a YAML configuration file with environment variable
overrides. Supports .env files. The resulting object is built once at
startup and handed to each component; nothing reads it globally.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/tmuxgate.yaml")

DEFAULT_ALLOWED_RANGES = [
    # Private network ranges (common VPN ranges)
    "10.0.0.0/8",
    "172.16.0.0/12",
    "192.168.0.0/16",
    # Localhost
    "127.0.0.1",
    "::1",
    "localhost",
]


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, ge=1, le=65535)


class AccessMessages(BaseModel):
    access_denied: str = Field(default="Access denied. VPN connection required.")
    vpn_required: str = Field(default="This service is only accessible through VPN.")
    invalid_ip: str = Field(default="Invalid IP address detected.")


class AccessConfig(BaseModel):
    enabled: bool = Field(default=True, description="Enable the IP access gate")
    allowed_ranges: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_RANGES),
        description="Exact addresses or CIDR ranges, checked in order",
    )
    allowed_ips: list[str] = Field(
        default_factory=list, description="Addresses that are always allowed"
    )
    trust_proxy: bool = Field(
        default=False, description="Take the client address from X-Forwarded-For"
    )
    cidr_mode: Literal["octet", "bitwise"] = Field(default="octet")
    log_access_attempts: bool = Field(default=True)
    log_denied_access: bool = Field(default=True)
    messages: AccessMessages = Field(default_factory=AccessMessages)


class StreamConfig(BaseModel):
    interval: float = Field(default=1.0, gt=0, description="Seconds between pane samples")
    max_consecutive_errors: int = Field(default=5, ge=2)
    max_pending: int = Field(
        default=100, gt=0, description="Undelivered messages before a stream is dropped"
    )


class TmuxConfig(BaseModel):
    binary: str = Field(default="tmux")
    command_timeout: float | None = Field(default=None, gt=0)


class StorageConfig(BaseModel):
    session_names_file: str = Field(default="config/session-names.json")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for tmuxgate.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "TMUXGATE_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    server: ServerConfig = Field(default_factory=ServerConfig)
    access: AccessConfig = Field(default_factory=AccessConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    tmux: TmuxConfig = Field(default_factory=TmuxConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # YAML values arrive as init kwargs; environment must still win
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: env vars > .env file > YAML file > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    # Load .env file manually for non-prefixed vars
    _load_dotenv()

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    _apply_env_overrides(yaml_data)

    return Settings(**yaml_data)


def _load_dotenv() -> None:
    """Load .env file into os.environ if it exists."""
    env_path = Path(".env")
    if not env_path.exists():
        return
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                if not os.environ.get(key):
                    os.environ[key] = value


def _apply_env_overrides(yaml_data: dict) -> None:
    """Apply environment variable overrides for non-prefixed vars."""
    port = os.environ.get("PORT", "")
    if port:
        yaml_data.setdefault("server", {})
        yaml_data["server"]["port"] = port
