"""
Configuration loader for poker-sync.

This module provides configuration management with:
- Multiple configuration sources (files, dicts, env vars)
- Schema validation
- Type coercion
- Configuration merging by priority
"""

import os
import json
import yaml
from pathlib import Path
from typing import Optional, Dict, Any, List, Union
import toml
from pydantic import BaseModel, Field, field_validator, ValidationError, ConfigDict
import asyncio

from .logging import get_logger
from .errors import ConfigurationError


logger = get_logger("poker-sync.config")

ENV_PREFIX = "POKER_SYNC_"
ENV_NESTING = "__"

DEFAULT_VOTE_VALUES = [
    "0", "1", "2", "3", "5", "8", "13", "20", "40", "100", "?", "☕",
]


class ConfigSource(BaseModel):
    """Configuration source definition."""
    path: Optional[Path] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    source_type: str = "dict"

    model_config = ConfigDict(arbitrary_types_allowed=True)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    format: str = "json"
    directory: Path = Field(default_factory=lambda: Path.home() / ".poker-sync" / "logs")
    console: bool = True
    max_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 10
    enable_sentry: bool = False
    sentry_dsn: Optional[str] = None

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        if v not in ("json", "text"):
            raise ValueError(f"Invalid log format: {v}")
        return v


class RoomConfig(BaseModel):
    """Room synchronization configuration."""
    topic_prefix: str = "room"
    default_display_name: str = "Anonymous"
    vote_values: List[str] = Field(default_factory=lambda: list(DEFAULT_VOTE_VALUES))
    broadcast_ack: bool = True
    broadcast_self: bool = False
    retrack_on_new_round: bool = True

    @field_validator('topic_prefix')
    @classmethod
    def validate_topic_prefix(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("topic_prefix cannot be empty")
        return v

    @field_validator('vote_values', mode='before')
    @classmethod
    def parse_vote_values(cls, v):
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [token.strip() for token in v.split(",") if token.strip()]
        return v

    @field_validator('vote_values')
    @classmethod
    def validate_vote_values(cls, v):
        if not v:
            raise ValueError("vote_values cannot be empty")
        if len(set(v)) != len(v):
            raise ValueError("vote_values must not contain duplicates")
        return v


class IdentityConfig(BaseModel):
    """Device identity configuration."""
    path: Path = Field(default_factory=lambda: Path.home() / ".poker-sync" / "player_id")

    @field_validator('path')
    @classmethod
    def validate_path(cls, v):
        """Ensure path is absolute."""
        return Path(v).expanduser().absolute()


class PokerSyncConfig(BaseModel):
    """Main poker-sync configuration."""
    app_name: str = "poker-sync"
    debug: bool = False

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    room: RoomConfig = Field(default_factory=RoomConfig)
    identity: IdentityConfig = Field(default_factory=IdentityConfig)

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        validate_assignment=True
    )


class ConfigLoader:
    """Configuration loader with multiple source support."""

    def __init__(self, env_prefix: str = ENV_PREFIX):
        self.env_prefix = env_prefix
        self._sources: List[ConfigSource] = []
        self._config: Optional[PokerSyncConfig] = None
        self._lock = asyncio.Lock()

    def add_source(
        self,
        source: Union[str, Path, Dict[str, Any]],
        priority: int = 0,
        source_type: Optional[str] = None
    ) -> None:
        """
        Add configuration source.

        Args:
            source: Configuration source (file path or dict)
            priority: Source priority (higher wins)
            source_type: Source type (auto-detected if None)
        """
        if isinstance(source, (str, Path)):
            path = Path(source)
            if not source_type:
                source_type = self._detect_source_type(path)

            self._sources.append(ConfigSource(
                path=path,
                priority=priority,
                source_type=source_type
            ))
        else:
            self._sources.append(ConfigSource(
                data=source,
                priority=priority,
                source_type="dict"
            ))

        # Lowest priority first so later merges win
        self._sources.sort(key=lambda s: s.priority)

    def _detect_source_type(self, path: Path) -> str:
        """Detect configuration file type."""
        suffix = path.suffix.lower()
        if suffix == ".json":
            return "json"
        elif suffix in (".yaml", ".yml"):
            return "yaml"
        elif suffix == ".toml":
            return "toml"
        else:
            raise ConfigurationError(f"Unknown config file type: {suffix}")

    async def load(self) -> PokerSyncConfig:
        """
        Load configuration from all sources.

        Returns:
            Merged configuration
        """
        async with self._lock:
            merged_data: Dict[str, Any] = {}

            for source in self._sources:
                try:
                    data = self._load_source(source)
                except (OSError, ValueError, yaml.YAMLError, toml.TomlDecodeError) as e:
                    raise ConfigurationError(
                        f"Failed to load configuration from {source.path}: {e}",
                        cause=e
                    ) from e
                merged_data = self._deep_merge(merged_data, data)

            merged_data = self._deep_merge(merged_data, self._load_env_vars())

            try:
                self._config = PokerSyncConfig(**merged_data)
            except ValidationError as e:
                errors = []
                for error in e.errors():
                    field = ".".join(str(x) for x in error["loc"])
                    errors.append(f"{field}: {error['msg']}")

                raise ConfigurationError(
                    f"Configuration validation failed: {'; '.join(errors)}"
                ) from e

            logger.info("configuration_loaded", sources=len(self._sources))
            return self._config

    def _load_source(self, source: ConfigSource) -> Dict[str, Any]:
        """Load data from a configuration source."""
        if source.path is None:
            return source.data

        if not source.path.exists():
            logger.warning("config_file_not_found", path=str(source.path))
            return {}

        content = source.path.read_text(encoding="utf-8")

        if source.source_type == "json":
            return json.loads(content)
        elif source.source_type == "yaml":
            return yaml.safe_load(content) or {}
        elif source.source_type == "toml":
            return toml.loads(content)
        else:
            raise ConfigurationError(f"Unknown source type: {source.source_type}")

    def _load_env_vars(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        result: Dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(self.env_prefix):
                continue

            parts = key[len(self.env_prefix):].lower().split(ENV_NESTING)
            current = result

            for part in parts[:-1]:
                current = current.setdefault(part, {})

            current[parts[-1]] = self._convert_value(value)

        return result

    def _convert_value(self, value: str) -> Any:
        """Convert string value to appropriate type."""
        if value.lower() in ("true", "yes", "on"):
            return True
        elif value.lower() in ("false", "no", "off"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith("/") or value.startswith("~"):
            return Path(value).expanduser()

        return value

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def get_config(self) -> PokerSyncConfig:
        """Get current configuration."""
        if self._config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._config


_config_loader: Optional[ConfigLoader] = None


def get_config_loader() -> ConfigLoader:
    """Get global configuration loader."""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader


async def load_config(
    config_paths: Optional[List[Union[str, Path]]] = None,
    extra_config: Optional[Dict[str, Any]] = None
) -> PokerSyncConfig:
    """
    Load configuration from standard locations.

    Args:
        config_paths: Additional configuration paths
        extra_config: Extra configuration to merge

    Returns:
        Loaded configuration
    """
    loader = get_config_loader()

    default_paths = [
        Path.home() / ".poker-sync" / "config.yaml",
        Path.home() / ".poker-sync" / "config.json",
        Path("./poker-sync.yaml"),
        Path("./poker-sync.toml"),
    ]

    for path in default_paths:
        if path.exists():
            loader.add_source(path, priority=10)

    if config_paths:
        for i, path in enumerate(config_paths):
            loader.add_source(path, priority=20 + i)

    if extra_config:
        loader.add_source(extra_config, priority=100)

    return await loader.load()


def get_config() -> PokerSyncConfig:
    """Get current configuration."""
    return get_config_loader().get_config()


__all__ = [
    'PokerSyncConfig',
    'LoggingConfig',
    'RoomConfig',
    'IdentityConfig',
    'ConfigLoader',
    'DEFAULT_VOTE_VALUES',
    'get_config_loader',
    'load_config',
    'get_config',
]
