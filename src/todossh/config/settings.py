"""Configuration management for todossh.

Loads settings from a YAML configuration file with environment variable
overrides (``TODOSSH_`` prefix, ``__`` between nested keys). Supports
.env files.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/todossh.yaml")


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=2222, ge=0, le=65535, description="0 picks a free port")
    host_key_path: str = Field(default="id_rsa")
    host_key_bits: int = Field(default=2048, ge=1024)
    banner_timeout: float = Field(default=15.0, gt=0)
    auth_timeout: float = Field(default=30.0, gt=0)
    channel_accept_timeout: float = Field(
        default=20.0, gt=0, description="Seconds to wait for a session channel"
    )
    shell_request_timeout: float = Field(
        default=20.0, gt=0, description="Seconds to wait for the shell request"
    )
    read_poll_interval: float = Field(
        default=0.5, gt=0, description="Seconds a channel read blocks before it is retried"
    )
    max_workers: int = Field(default=64, gt=0)


class StorageConfig(BaseModel):
    data_dir: str = Field(default="data")


class SessionConfig(BaseModel):
    min_password_length: int = Field(default=6, ge=1)
    default_width: int = Field(default=80, gt=0)
    default_height: int = Field(default=24, gt=0)
    farewell: str = Field(default="Goodbye!")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s [%(session)s]: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for the todossh server.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "TODOSSH_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: env vars > .env file > YAML file > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

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
    """Move prefixed env vars over the YAML values they shadow.

    pydantic-settings gives init kwargs priority over the environment,
    so a section loaded from YAML would otherwise hide ``TODOSSH_*``
    overrides of its fields.
    """
    prefix = "TODOSSH_"
    for name, value in os.environ.items():
        if not name.startswith(prefix) or "__" not in name:
            continue
        section, _, field = name[len(prefix):].lower().partition("__")
        if isinstance(yaml_data.get(section), dict):
            yaml_data[section][field] = value
