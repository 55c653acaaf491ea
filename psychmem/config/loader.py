"""Configuration loading utilities."""

import json
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from psychmem.config.schema import Config, MemoryConfig
from psychmem.errors import ConfigInvalidError


def get_data_dir() -> Path:
    """Get the psychmem data directory (~/.psychmem)."""
    path = Path.home() / ".psychmem"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return get_data_dir() / "config.json"


def get_db_path(config: Config | None = None) -> Path:
    """Resolve the SQLite database file, honouring ``memory.db_path``."""
    if config is not None and config.db_file is not None:
        return config.db_file
    return get_data_dir() / "memory.db"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from a JSON file, falling back to defaults.

    Keys may be camelCase (``stmToLtmStrengthThreshold``) or snake_case.
    Environment variables with the ``PSYCHMEM_`` prefix are applied by
    pydantic-settings for any field the file does not set.

    Raises:
        ConfigInvalidError: if the file is not valid JSON or a value is out of range.
    """
    path = config_path or get_config_path()

    data: dict[str, Any] = {}
    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = convert_keys(json.load(f))
        except json.JSONDecodeError as e:
            raise ConfigInvalidError(f"Invalid JSON in {path}: {e}") from e
        logger.debug(f"Loaded config from {path}")
    else:
        logger.debug(f"No config at {path}, using defaults")

    try:
        return Config(**data)
    except ValidationError as e:
        raise ConfigInvalidError(f"Invalid configuration in {path}: {e}") from e


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """Save configuration as camelCase JSON."""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump(mode="json"))
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, sort_keys=True)
    return path


def coerce_memory_config(value: Config | MemoryConfig | Mapping[str, Any] | None) -> MemoryConfig:
    """
    Turn a config object, a plain mapping or ``None`` into a validated MemoryConfig.

    A root ``Config`` contributes its ``memory`` section.

    Raises:
        ConfigInvalidError: if any weight or threshold is out of range, or the
            value is not a config object or mapping.
    """
    if value is None:
        return MemoryConfig()
    if isinstance(value, Config):
        return value.memory
    if isinstance(value, MemoryConfig):
        return value
    if not isinstance(value, Mapping):
        raise ConfigInvalidError(f"Expected a memory config or mapping, got {type(value).__name__}")
    try:
        return MemoryConfig.model_validate(convert_keys(dict(value)))
    except ValidationError as e:
        raise ConfigInvalidError(f"Invalid memory configuration: {e}") from e


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case, recursively."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase, recursively."""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)
