from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from platformdirs import user_config_dir, user_state_dir
from pydantic import ValidationError

from insights_agent.storage.models import InsightsConfig

APP_NAME = "claude-insights"
CONFIG_FILENAME = "config.yaml"
STATE_FILENAME = "synced.json"
CONFIG_FILE_MODE = 0o600


class ConfigError(Exception):
    """Raised when configuration is missing or invalid."""

    pass


def default_config_path() -> Path:
    return Path(user_config_dir(APP_NAME)) / CONFIG_FILENAME


def default_state_path() -> Path:
    return Path(user_state_dir(APP_NAME)) / STATE_FILENAME


def default_logs_dir() -> Path:
    return Path.home() / ".claude"


def resolve_logs_dir(config: InsightsConfig) -> Path:
    return (config.sync.logs_dir or default_logs_dir()).expanduser()


def resolve_state_path(config: InsightsConfig) -> Path:
    return (config.sync.state_path or default_state_path()).expanduser()


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping")
    return data


def load_config(path: Path | None = None) -> InsightsConfig:
    """Load config.yaml, layering any ``extends`` files underneath it."""
    main_path = path or default_config_path()
    data = _load_yaml(main_path)

    merged: dict[str, Any] = {}
    for extend_path in data.get("extends") or []:
        extra = Path(extend_path).expanduser()
        if not extra.is_absolute():
            extra = (main_path.parent / extra).resolve()
        merged = _deep_merge(merged, _load_yaml(extra))

    merged = _deep_merge(merged, data)
    try:
        return InsightsConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config {main_path}:\n{exc}") from exc


def save_config(config: InsightsConfig, path: Path | None = None) -> Path:
    target = path or default_config_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", exclude_defaults=False)
    if not data.get("extends"):
        data.pop("extends", None)
    target.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))
    os.chmod(target, CONFIG_FILE_MODE)
    return target


def validate_for_sync(config: InsightsConfig) -> None:
    """Ensure everything the sync engine needs is present."""
    if not config.server.url:
        raise ConfigError("server.url is required")
    if not config.server.resolved_api_key():
        raise ConfigError(
            f"server.api_key is required (or set {config.server.api_key_env})"
        )
