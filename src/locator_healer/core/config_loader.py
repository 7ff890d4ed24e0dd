"""Configuration loading and validation utilities for locator healing."""

import copy
import yaml
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from .models.healing_models import HealingConfiguration
from .config import settings

logger = logging.getLogger(__name__)

ROOT_SECTION = "locator_healing"

# HealingConfiguration field -> (YAML section, key within section, coercion).
# A section of None means the key sits directly under ROOT_SECTION.
_FIELD_MAP: Dict[str, Tuple[Optional[str], str, Callable[[Any], Any]]] = {
    "enabled": (None, "enabled", bool),
    "min_similarity": ("matching", "min_similarity", float),
    "high_confidence": ("matching", "high_confidence", float),
    "early_exit_all_strategies": ("matching", "early_exit_all_strategies", bool),
    "enable_feature_scorer": ("matching", "enable_feature_scorer", bool),
    "max_healing_seconds": ("budget", "max_healing_seconds", float),
    "max_nodes": ("budget", "max_nodes", int),
    "context_margin_seconds": ("budget", "context_margin_seconds", float),
    "cache_enabled": ("cache", "enabled", bool),
    "cache_ttl_seconds": ("cache", "ttl_seconds", float),
    "cache_max_size": ("cache", "max_size", int),
    "unreliable_min_uses": ("cache", "unreliable_min_uses", int),
    "unreliable_success_rate": ("cache", "unreliable_success_rate", float),
}


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


def config_to_yaml_dict(config: HealingConfiguration) -> Dict[str, Any]:
    """Nest a HealingConfiguration into the YAML file layout."""
    section_data: Dict[str, Any] = {}
    for field_name, (section, key, _) in _FIELD_MAP.items():
        target = section_data if section is None else section_data.setdefault(section, {})
        target[key] = getattr(config, field_name)
    return {ROOT_SECTION: section_data}


class HealingConfigLoader:
    """Loads and validates locator healing configuration.

    The YAML file only needs the keys it overrides; everything else comes
    from DEFAULT_CONFIG. A loaded configuration is reused until the file's
    modification time changes.
    """

    DEFAULT_CONFIG = config_to_yaml_dict(HealingConfiguration())

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path or settings.LOCATOR_HEALING_CONFIG_PATH)
        self._config_cache: Optional[HealingConfiguration] = None
        self._config_file_mtime: Optional[float] = None

    def load_config(self, force_reload: bool = False) -> HealingConfiguration:
        """Load and validate locator healing configuration.

        Args:
            force_reload: Ignore the cached configuration

        Returns:
            HealingConfiguration: Validated configuration object

        Raises:
            ConfigurationError: If the file is unreadable or a value is invalid
        """
        if not force_reload and self._config_cache and self._is_config_current():
            return self._config_cache

        try:
            healing_config = self._parse_healing_config(self._load_config_file())
            self._validate_config(healing_config)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Failed to load locator healing configuration: {e}")
            raise ConfigurationError(f"Configuration loading failed: {e}") from e

        self._config_cache = healing_config
        self._config_file_mtime = self._current_mtime()
        logger.info(f"Loaded locator healing configuration from {self.config_path}")
        return healing_config

    def save_config(self, config: HealingConfiguration) -> None:
        """Validate a configuration and write it to the config path.

        Raises:
            ConfigurationError: If validation or writing fails
        """
        self._validate_config(config)

        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(config_to_yaml_dict(config), f,
                               default_flow_style=False, indent=2)
        except OSError as e:
            logger.error(f"Failed to save locator healing configuration: {e}")
            raise ConfigurationError(f"Configuration saving failed: {e}") from e

        self._config_cache = config
        self._config_file_mtime = self._current_mtime()
        logger.info(f"Saved locator healing configuration to {self.config_path}")

    def _load_config_file(self) -> Dict[str, Any]:
        defaults = copy.deepcopy(self.DEFAULT_CONFIG)
        if not self.config_path.exists():
            logger.info(f"Config file {self.config_path} not found, using defaults")
            return defaults

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                file_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to read config file: {e}")

        if not isinstance(file_data, dict):
            raise ConfigurationError("Config file must contain a mapping")

        return self._deep_merge(defaults, file_data)

    def _parse_healing_config(self, config_data: Dict[str, Any]) -> HealingConfiguration:
        root = config_data.get(ROOT_SECTION) or {}
        values: Dict[str, Any] = {}

        for field_name, (section, key, coerce) in _FIELD_MAP.items():
            source = root if section is None else (root.get(section) or {})
            if key not in source:
                continue
            try:
                values[field_name] = coerce(source[key])
            except (TypeError, ValueError) as e:
                location = key if section is None else f"{section}.{key}"
                raise ConfigurationError(f"Invalid configuration value for {location}: {e}")

        return HealingConfiguration(**values)

    def _validate_config(self, config: HealingConfiguration) -> None:
        """Check value ranges, reporting every problem at once.

        Raises:
            ConfigurationError: If any value is out of range
        """
        errors: List[str] = []

        for name in ("min_similarity", "high_confidence", "unreliable_success_rate"):
            if not 0.0 <= getattr(config, name) <= 1.0:
                errors.append(f"{name} must be between 0.0 and 1.0")

        if config.min_similarity > config.high_confidence:
            errors.append("min_similarity must not exceed high_confidence")
        if config.max_healing_seconds <= 0:
            errors.append("max_healing_seconds must be positive")
        if config.max_nodes < 1:
            errors.append("max_nodes must be at least 1")
        if config.context_margin_seconds < 0:
            errors.append("context_margin_seconds must not be negative")
        if config.cache_ttl_seconds <= 0:
            errors.append("cache ttl_seconds must be positive")
        if config.cache_max_size < 1:
            errors.append("cache max_size must be at least 1")
        if config.unreliable_min_uses < 1:
            errors.append("unreliable_min_uses must be at least 1")

        if errors:
            raise ConfigurationError("Configuration validation failed: " + "; ".join(errors))

    def _current_mtime(self) -> Optional[float]:
        if not self.config_path.exists():
            return None
        return self.config_path.stat().st_mtime

    def _is_config_current(self) -> bool:
        return self._current_mtime() == self._config_file_mtime

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Merge override into base, recursing into nested mappings."""
        result = dict(base)
        for key, value in override.items():
            if isinstance(result.get(key), dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result


def get_healing_config(config_path: Optional[str] = None,
                       force_reload: bool = False) -> HealingConfiguration:
    """Get the current locator healing configuration.

    Args:
        config_path: Optional path overriding LOCATOR_HEALING_CONFIG_PATH
        force_reload: Force reload from file

    Returns:
        HealingConfiguration with the global LOCATOR_HEALING_ENABLED switch applied
    """
    config = HealingConfigLoader(config_path).load_config(force_reload)

    if not settings.LOCATOR_HEALING_ENABLED:
        config.enabled = False

    return config
