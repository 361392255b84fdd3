"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Iterable, Optional, Protocol, TypeVar

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from y_chat.core.models import BotConfig, McpServerConfig


class ProviderConfig(BaseModel):
    free_api_key: str = ""
    free_base_url: str = "https://openrouter.ai/api/v1"
    request_timeout: float = 10.0
    referer: str = "https://github.com/y-chat/y-chat"
    title: str = "y-chat"


class McpConfig(BaseModel):
    connect_timeout: float = 5.0


class StorageConfig(BaseModel):
    db_path: str = "./data/y_chat.db"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "console"  # "console" | "json"
    data_dir: str = "./data"
    default_bot: Optional[str] = None
    storage: StorageConfig = Field(default_factory=StorageConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    mcp: McpConfig = Field(default_factory=McpConfig)
    default_bots: list[BotConfig] = Field(default_factory=list)
    default_mcp_servers: list[McpServerConfig] = Field(default_factory=list)


class _Named(Protocol):
    name: str


NamedT = TypeVar("NamedT", bound=_Named)


def with_defaults(stored: Iterable[NamedT], defaults: Iterable[NamedT]) -> list[NamedT]:
    """Merge configured defaults into stored entries; a stored entry wins by name."""
    merged = list(stored)
    names = {item.name for item in merged}
    for item in defaults:
        if item.name not in names:
            merged.append(item)
            names.add(item.name)
    return merged


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def is_unset(value: str | None) -> bool:
    """True for an empty value or a ``${VAR}`` placeholder whose variable was never set."""
    return not value or _ENV_VAR_PATTERN.fullmatch(value.strip()) is not None


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # data_dir may be referenced by other keys, resolve it first
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
