"""Configuration loading utilities."""

import json
from pathlib import Path
from typing import Any

from rfcbridge.config.schema import BridgeSettings


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".rfcbridge" / "config.json"


def get_data_dir() -> Path:
    """Get the rfcbridge data directory (logs live underneath)."""
    path = Path.home() / ".rfcbridge"
    path.mkdir(parents=True, exist_ok=True)
    return path


def load_settings(config_path: Path | None = None) -> BridgeSettings:
    """
    Load settings from file or create defaults.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded settings; RFCBRIDGE_* env vars take precedence over file values.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("config file must contain a JSON object")
            return BridgeSettings(**convert_keys(data))
        except (json.JSONDecodeError, ValueError) as e:
            raise ValueError(
                f"Failed to load config from {path}: {e}. "
                "Fix the file or remove it to regenerate defaults."
            ) from e

    return BridgeSettings()


def save_settings(settings: BridgeSettings, config_path: Path | None = None) -> None:
    """
    Save settings to file.

    Args:
        settings: Settings to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(settings.model_dump())

    with open(path, "w") as f:
        json.dump(data, f, indent=2)


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase."""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
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
