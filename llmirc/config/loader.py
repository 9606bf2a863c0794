"""Configuration loading utilities."""

import json
import os
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from llmirc.config.schema import Config
from llmirc.core.errors import ConfigError

_VERBATIM_KEYS = frozenset({"extraHeaders", "extra_headers"})


def get_data_path() -> Path:
    """Get the llmirc data directory.

    Respects LLMIRC_HOME environment variable; falls back to ~/.llmirc.
    """
    home = os.environ.get("LLMIRC_HOME", "").strip()
    if home:
        return Path(home).expanduser()
    return Path.home() / ".llmirc"


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return get_data_path() / "config.json"


def load_config(config_path: Path | None = None, overrides: dict[str, Any] | None = None) -> Config:
    """
    Load configuration from file, environment and explicit overrides.

    Args:
        config_path: Optional path to config file. Uses default if not provided.
        overrides: snake_case values (usually CLI flags) applied on top of the file.

    Returns:
        Validated configuration object.

    Raises:
        ConfigError: The file exists but is not valid JSON, or validation failed.
    """
    path = config_path or get_config_path()
    data: dict[str, Any] = {}

    if path.exists():
        try:
            with open(path) as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Failed to read config from {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"Config root in {path} must be a JSON object")
        data = convert_keys(raw)
        logger.debug("Loaded config from {}", path)
    elif config_path is not None:
        raise ConfigError(f"Config file not found: {path}")

    if overrides:
        data = deep_merge(data, overrides)

    try:
        return Config(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """
    Save configuration to file as camelCase JSON.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = convert_to_camel(config.model_dump())
    tmp_path = path.with_name(f".{path.name}.tmp-{os.getpid()}")
    with open(tmp_path, "w") as f:
        json.dump(data, f, indent=2)
    os.replace(tmp_path, path)
    try:
        path.chmod(0o600)
    except OSError:
        pass
    return path


def deep_merge(base: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` updated recursively with ``extra`` (neither is mutated)."""
    merged = dict(base)
    for key, value in extra.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic. Header maps are kept verbatim."""
    if isinstance(data, dict):
        return {
            camel_to_snake(k): v if k in _VERBATIM_KEYS else convert_keys(v)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase."""
    if isinstance(data, dict):
        return {
            snake_to_camel(k): v if k in _VERBATIM_KEYS else convert_to_camel(v)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
