"""Configuration management for trackermesh.

Provides centralized configuration with TOML support, validation, and
hierarchical loading from defaults → config file → environment.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import toml

from trackermesh.models import Config, TransportConfig
from trackermesh.utils.exceptions import ConfigurationError
from trackermesh.utils.logging_config import setup_logging

CONFIG_FILENAME = "trackermesh.toml"

# Mapping of environment variables to config paths
ENV_MAPPINGS: dict[str, str] = {
    "TRACKERMESH_IDENTIFIER": "discovery.identifier",
    "TRACKERMESH_ANNOUNCE_URLS": "discovery.announce_urls",
    "TRACKERMESH_NUMWANT": "discovery.numwant",
    "TRACKERMESH_UPLOADED": "discovery.uploaded",
    "TRACKERMESH_DOWNLOADED": "discovery.downloaded",
    "TRACKERMESH_MAX_FRAGMENT_SIZE": "transport.max_fragment_size",
    "TRACKERMESH_LOG_LEVEL": "observability.log_level",
    "TRACKERMESH_LOG_FILE": "observability.log_file",
    "TRACKERMESH_STRUCTURED_LOGGING": "observability.structured_logging",
    "TRACKERMESH_LOG_CORRELATION_ID": "observability.log_correlation_id",
}

_LIST_PATHS = frozenset({"discovery.announce_urls"})
_STRING_PATHS = frozenset(
    {"discovery.identifier", "observability.log_level", "observability.log_file"}
)

# Global configuration instance
_config_manager: ConfigManager | None = None


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(
        self,
        config_file: str | Path | None = None,
        *,
        configure_logging: bool = False,
    ):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file. If None, searches for trackermesh.toml
            configure_logging: Apply the observability section to the logging system

        """
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()
        self.configure_logging = configure_logging
        if configure_logging:
            self._setup_logging()

    def _find_config_file(
        self,
        config_file: str | Path | None,
    ) -> Path | None:
        """Find configuration file in standard locations."""
        if config_file:
            return Path(config_file)

        search_paths = [
            Path.cwd() / CONFIG_FILENAME,
            Path.home() / ".config" / "trackermesh" / CONFIG_FILENAME,
            Path.home() / f".{CONFIG_FILENAME}",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    def _load_config(self) -> Config:
        """Load configuration from file and environment."""
        config_data: dict[str, Any] = {}

        if self.config_file is not None:
            if not self.config_file.exists():
                msg = f"Config file not found: {self.config_file}"
                raise ConfigurationError(msg)
            try:
                with open(self.config_file, encoding="utf-8") as f:
                    config_data.update(toml.load(f))
            except (OSError, toml.TomlDecodeError) as e:
                msg = f"Failed to load config file {self.config_file}: {e}"
                raise ConfigurationError(msg) from e

            urls = config_data.get("discovery", {}).get("announce_urls")
            if isinstance(urls, str):
                config_data["discovery"]["announce_urls"] = _split_list(urls)

        config_data = self._merge_config(config_data, self._get_env_config())

        try:
            return Config(**config_data)
        except Exception as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration from environment variables."""
        env_config: dict[str, Any] = {}

        for env_name, cfg_path in ENV_MAPPINGS.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            _set_nested(env_config, cfg_path, _parse_env_value(raw, cfg_path))

        return env_config

    def _merge_config(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge configuration dictionaries recursively."""
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def export(self, fmt: str = "toml") -> str:
        """Export current configuration as a string in the given format.

        Args:
            fmt: one of "toml" or "json"

        """
        data = self.config.model_dump(mode="json")
        # TOML has no null; drop unset optional values
        data = _drop_none(data)

        fmt = (fmt or "toml").lower()
        if fmt == "toml":
            return toml.dumps(data)
        if fmt == "json":
            return json.dumps(data, indent=2)
        msg = f"Unsupported export format: {fmt}"
        raise ConfigurationError(msg)

    def _setup_logging(self) -> None:
        """Set up logging configuration."""
        setup_logging(self.config.observability)


def _split_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_env_value(raw: str, path: str) -> bool | int | str | list[str]:
    if path in _LIST_PATHS:
        return _split_list(raw)
    if path in _STRING_PATHS:
        return raw

    low = raw.lower()
    if low in {"true", "1", "yes", "on"}:
        return True
    if low in {"false", "0", "no", "off"}:
        return False
    try:
        return int(raw)
    except ValueError:
        return raw


def _set_nested(d: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    cur = d
    for p in parts[:-1]:
        cur = cur.setdefault(p, {})
    cur[parts[-1]] = value


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {
        key: _drop_none(value) if isinstance(value, dict) else value
        for key, value in data.items()
        if value is not None
    }


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager.config


def init_config(
    config_file: str | Path | None = None,
    *,
    configure_logging: bool = True,
) -> ConfigManager:
    """Initialize the global configuration manager."""
    global _config_manager
    _config_manager = ConfigManager(config_file, configure_logging=configure_logging)
    return _config_manager


def reload_config() -> Config:
    """Reload configuration from file."""
    if _config_manager is None:
        msg = "Configuration not initialized"
        raise ConfigurationError(msg)

    _config_manager.config = _config_manager._load_config()  # noqa: SLF001
    if _config_manager.configure_logging:
        _config_manager._setup_logging()  # noqa: SLF001
    return _config_manager.config


def set_config(new_config: Config) -> None:
    """Replace the global configuration at runtime.

    Components that snapshot config must re-read values to pick up changes.
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(None)
    _config_manager.config = new_config
    if _config_manager.configure_logging:
        _config_manager._setup_logging()  # noqa: SLF001
    logging.getLogger(__name__).debug("Configuration replaced at runtime")


def reset_config() -> None:
    """Forget the global configuration so the next get_config() reloads it."""
    global _config_manager
    _config_manager = None


def get_transport_config() -> TransportConfig:
    """Get transport configuration."""
    return get_config().transport
