"""YAML config loader with runtime get/set and write-back."""

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from haakweer.config.schema import AppConfig


def load_config(path: str | Path) -> AppConfig:
    """Load and validate config from a YAML file.

    A missing file or an empty document yields the defaults.
    """
    path = Path(path)
    if not path.exists():
        return AppConfig()
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    return AppConfig(**raw)


def save_config(config: AppConfig, path: str | Path) -> None:
    """Write the config back as YAML."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(config.model_dump(mode="json"), f, sort_keys=False)


def config_hash(config: AppConfig) -> str:
    """Compute a deterministic SHA256 hash of the config."""
    data = config.model_dump_json(indent=None)
    return hashlib.sha256(data.encode()).hexdigest()[:16]


def get_config_value(config: AppConfig, dotted_key: str) -> Any:
    """Get a config value by dotted key path. E.g. 'sync.refresh_window_days'."""
    obj: Any = config
    for part in dotted_key.split("."):
        if hasattr(obj, part):
            obj = getattr(obj, part)
        elif isinstance(obj, dict) and part in obj:
            obj = obj[part]
        else:
            raise KeyError(f"Config key not found: {dotted_key}")
    return obj


def set_config_value(config: AppConfig, dotted_key: str, value: Any) -> AppConfig:
    """Set a config value by dotted key path and re-validate.

    Returns a new AppConfig instance.
    """
    data = json.loads(config.model_dump_json())
    parts = dotted_key.split(".")
    target = data
    for part in parts[:-1]:
        if not isinstance(target, dict) or part not in target:
            raise KeyError(f"Config key not found: {dotted_key}")
        target = target[part]
    if parts[-1] not in target:
        raise KeyError(f"Config key not found: {dotted_key}")
    # Attempt type coercion for common cases
    old_value = target[parts[-1]]
    if isinstance(old_value, int) and isinstance(value, str):
        value = int(value)
    elif isinstance(old_value, float) and isinstance(value, str):
        value = float(value)
    target[parts[-1]] = value
    return AppConfig(**data)
