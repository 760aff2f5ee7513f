"""Configuration for blogroll.

Values are resolved in order: dataclass defaults, an optional YAML file
(``~/.blogroll/config.yaml`` or the path in ``BLOGROLL_CONFIG``), then
``BLOGROLL_*`` environment variables.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


ENV_PREFIX = "BLOGROLL_"


@dataclass
class ServerConfig:
    """Server and sync configuration."""

    name: str = "blogroll"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    db_path: str = str(Path.home() / ".blogroll" / "blogroll.db")

    # Sync cadence and limits
    sync_interval: int = 60  # minutes
    max_items_per_blog: int = 50
    fetch_timeout: float = 15.0  # seconds
    max_item_age: int = 7  # days
    initial_sync_delay: float = 15.0  # seconds
    max_concurrent_fetches: int = 5
    blog_page_size: int = 1000

    mirror_collection_prefix: str = "microsub_"
    scheduler_enabled: bool = True


@dataclass(frozen=True)
class SyncOptions:
    """Flat options record passed to the sync engine and adapters."""

    max_items_per_blog: int = 50
    fetch_timeout: float = 15.0
    max_item_age: int = 7
    max_concurrent_fetches: int = 5
    blog_page_size: int = 1000

    @classmethod
    def from_config(cls, config: ServerConfig) -> "SyncOptions":
        return cls(
            max_items_per_blog=config.max_items_per_blog,
            fetch_timeout=config.fetch_timeout,
            max_item_age=config.max_item_age,
            max_concurrent_fetches=config.max_concurrent_fetches,
            blog_page_size=config.blog_page_size,
        )

    def merged(self, overrides: Optional[Dict[str, Any]] = None) -> "SyncOptions":
        """Return a copy with the non-empty overrides applied."""
        if not overrides:
            return self
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for key, value in overrides.items():
            if key in values and value not in (None, 0, ""):
                values[key] = value
        return SyncOptions(**values)


def _default_config_path() -> Path:
    env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
    if env_path:
        return Path(env_path)
    return Path.home() / ".blogroll" / "config.yaml"


def _coerce(value: Any, current: Any, key: str) -> Any:
    """Coerce a raw value to the type of the field's default."""
    try:
        if isinstance(current, bool):
            if isinstance(value, bool):
                return value
            return str(value).strip().lower() in ("1", "true", "yes", "on")
        if isinstance(current, int):
            return int(value)
        if isinstance(current, float):
            return float(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {key}: {value!r}") from e
    return value


def load_config(config_path: Optional[Path] = None) -> ServerConfig:
    """Load configuration from YAML (if present) and the environment.

    Args:
        config_path: Optional YAML file; defaults to ~/.blogroll/config.yaml

    Returns:
        Resolved ServerConfig

    Raises:
        ValueError: If the YAML is malformed or a value has the wrong type
    """
    config = ServerConfig()
    known = {f.name for f in fields(ServerConfig)}

    path = config_path or _default_config_path()
    if path.exists():
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping: {path}")

        for key, value in data.items():
            if key in known:
                setattr(config, key, _coerce(value, getattr(config, key), key))

    for name in known:
        raw = os.environ.get(ENV_PREFIX + name.upper())
        if raw is not None:
            setattr(config, name, _coerce(raw, getattr(config, name), name))

    if config.sync_interval < 1:
        raise ValueError("sync_interval must be at least 1 minute")
    if config.max_concurrent_fetches < 1:
        raise ValueError("max_concurrent_fetches must be at least 1")

    return config


_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Get the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config
