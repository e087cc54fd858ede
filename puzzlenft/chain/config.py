"""
Puzzle Chain Configuration System

Unified configuration management with YAML files, environment variables,
validation, and runtime updates.

Configuration Sources (in order of precedence):
    1. Environment variables (PUZZLENFT_*)
    2. Runtime overrides
    3. User config file (~/.puzzlenft/config.yaml)
    4. Project config file (./puzzlenft.yaml, ./config/puzzlenft.yaml)
    5. Default values

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

logger = logging.getLogger(__name__)

T = TypeVar("T")

WEI_PER_ETHER = 10 ** 18

DEFAULT_MNEMONIC = "test test test test test test test test test test test junk"
DEFAULT_BASE_URI = "ipfs://Qmc2cjnm3xdyPoY4X82uLUrfeb6KdabxKTvoKHRcrGRRR9/"


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding,
    validation, and change callbacks.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    secret: bool = False  # Don't show if True
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[Optional[T], T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])

        return self._value if self._value is not None else self.default

    def set(self, value: Any) -> None:
        """Set the value with coercion and validation."""
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)
        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value!r}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def reset(self) -> None:
        self._value = None

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        try:
            if target_type == bool:
                return value.lower() in ("true", "1", "yes", "on")  # type: ignore
            elif target_type == int:
                base = 16 if value.strip().lower().startswith("0x") else 10
                return int(value, base)  # type: ignore
            elif target_type == list:
                return value.split(",")  # type: ignore
        except ValueError as e:
            raise ConfigValidationError(f"Cannot convert {value!r} to {target_type.__name__}") from e
        return value  # type: ignore

    def on_change(self, callback: Callable[[Optional[T], T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


@dataclass
class ChainConfig:
    """Configuration for the development chain."""
    chain_id: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=31337,
        env_var="PUZZLENFT_CHAIN_ID",
        description="Chain id used in transaction signatures",
        validator=lambda x: x > 0,
    ))
    mnemonic: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default=DEFAULT_MNEMONIC,
        env_var="PUZZLENFT_MNEMONIC",
        description="Mnemonic the development accounts are derived from",
        validator=lambda x: bool(x.strip()),
        secret=True,
    ))
    account_count: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=20,
        env_var="PUZZLENFT_ACCOUNT_COUNT",
        description="Number of funded development accounts",
        validator=lambda x: 1 <= x <= 1000,
    ))
    initial_balance_eth: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=10000,
        env_var="PUZZLENFT_INITIAL_BALANCE_ETH",
        description="Genesis balance of each account, in ether",
        validator=lambda x: x >= 0,
    ))
    block_gas_limit: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=30_000_000,
        env_var="PUZZLENFT_BLOCK_GAS_LIMIT",
        description="Block gas limit (also the default transaction gas limit)",
        validator=lambda x: x >= 21000,
    ))
    gas_price: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=0,
        env_var="PUZZLENFT_GAS_PRICE",
        description="Gas price in wei charged to senders",
        validator=lambda x: x >= 0,
    ))
    state_file: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="PUZZLENFT_STATE_FILE",
        description="JSON file the chain is loaded from and saved to (empty = in-memory)",
    ))

    @property
    def initial_balance_wei(self) -> int:
        return self.initial_balance_eth.get() * WEI_PER_ETHER


@dataclass
class PuzzleConfig:
    """Configuration for Puzzle contract deployments."""
    name: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="Puzzle",
        env_var="PUZZLENFT_TOKEN_NAME",
        description="ERC-721 collection name",
        validator=lambda x: bool(x),
    ))
    symbol: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="PZL",
        env_var="PUZZLENFT_TOKEN_SYMBOL",
        description="ERC-721 collection symbol",
        validator=lambda x: bool(x),
    ))
    max_pieces_per_owner: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=3,
        env_var="PUZZLENFT_MAX_PIECES_PER_OWNER",
        description="Initial cap on pieces one address may find per puzzle",
        validator=lambda x: x > 0,
    ))
    base_uri: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default=DEFAULT_BASE_URI,
        env_var="PUZZLENFT_BASE_URI",
        description="Base token URI passed to the constructor by the deploy script",
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for Observability."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="warning",
        env_var="PUZZLENFT_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="text",
        env_var="PUZZLENFT_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))
    gas_report: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=False,
        env_var="PUZZLENFT_GAS_REPORT",
        description="Print a per-method gas report",
    ))


@dataclass
class PuzzleNFTConfig:
    """
    Root configuration.

    Aggregates all component configurations and provides
    loading/saving functionality.
    """
    chain: ChainConfig = field(default_factory=ChainConfig)
    puzzle: PuzzleConfig = field(default_factory=PuzzleConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self, include_secrets: bool = False) -> Dict[str, Any]:
        """Convert to dictionary; secret values are masked unless requested."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                if obj.secret and not include_secrets:
                    return "********"
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False)


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = PuzzleNFTConfig()
        self._config_paths: List[Path] = []
        self._watchers: List[Callable[[PuzzleNFTConfig], None]] = []
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton; the next access starts from defaults."""
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> PuzzleNFTConfig:
        """Get the current configuration."""
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {path}")

        self._apply_dict(data)
        if path not in self._config_paths:
            self._config_paths.append(path)

    def load_defaults(self) -> None:
        """Load default configuration files if they exist."""
        # later files win; the user file goes last
        default_paths = [
            Path("puzzlenft.yaml"),
            Path("config/puzzlenft.yaml"),
            Path.home() / ".puzzlenft" / "config.yaml",
        ]

        for path in default_paths:
            if path.exists():
                try:
                    self.load_from_file(path)
                except ConfigError as e:
                    logger.warning("Skipping config file %s: %s", path, e)

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        """Apply dictionary values to configuration."""
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                path = f"{prefix}{key}"
                if not hasattr(config_obj, key):
                    raise ConfigError(f"Unknown config key: {path}")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, f"{path}.")
                else:
                    raise ConfigError(f"Invalid value for config section: {path}")

        apply_to_config(self._config, data, "")

    def _resolve(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, part) or part.startswith("_"):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("puzzle.max_pieces_per_owner", 5)
        """
        attr = self._resolve(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        attr.set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("chain.chain_id")
        """
        obj = self._resolve(path)
        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def watch(self, callback: Callable[[PuzzleNFTConfig], None]) -> None:
        """Register a callback for configuration changes."""
        self._watchers.append(callback)

    def reload(self) -> None:
        """Reload configuration from all loaded files."""
        for path in self._config_paths:
            if path.exists():
                self.load_from_file(path)

        for watcher in self._watchers:
            watcher(self._config)

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                except ConfigError as e:
                    errors.append(f"{path}: {e}")
                    return
                if obj.validator and not obj.validator(value):
                    errors.append(f"{path}: validation failed for value {value!r}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = "********" if obj.secret else str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema


def get_config() -> PuzzleNFTConfig:
    """Get the current configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()
