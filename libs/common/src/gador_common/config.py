"""
Configuration loading and management for Gador services.
"""

import argparse
import json
import logging
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional, Union, Type, TypeVar

import toml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

# Note: Logging is configured by the CLI or service entry point
logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Exception raised for configuration errors."""
    pass


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries, with override values taking precedence.

    Args:
        base: Base dictionary
        override: Dictionary with values that override base

    Returns:
        Merged dictionary
    """
    result = deepcopy(base)

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            if not value and result[key]:
                logger.warning(f"Empty config section '[{key}]' is clearing defaults. "
                               f"Remove the section from config file to use defaults, "
                               f"or add configuration values to customize.")
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def namespace_to_dict(namespace: argparse.Namespace) -> Dict[str, Any]:
    """Convert an argparse.Namespace to a nested dictionary.

    This handles nested keys specified with dots (e.g., 'initial_state.volume').
    Only includes values that were explicitly set (not defaults).

    Args:
        namespace: Argparse namespace object

    Returns:
        Nested dictionary representation
    """
    result: Dict[str, Any] = {}

    # Set by the tracked argparse actions in gador_common.cli
    explicitly_set = getattr(namespace, '_explicitly_set', set())

    for key, value in vars(namespace).items():
        if value is None:
            continue
        if key not in explicitly_set:
            continue

        if '.' in key:
            parts = key.split('.')
            current = result
            for part in parts[:-1]:
                if part not in current:
                    current[part] = {}
                current = current[part]
            current[parts[-1]] = value
        else:
            result[key] = value

    return result


def load_config_with_overrides(
    override_config: Optional[Dict[str, Any]] = None,
    config_file: Optional[Union[str, Path]] = None,
    default_config: Optional[Dict[str, Any]] = None,
    args: Optional[argparse.Namespace] = None
) -> Dict[str, Any]:
    """Load configuration with flexible overrides and defaults.

    The priority order is:
    1. Command line args (from args parameter, highest priority)
    2. Provided override_config dictionary
    3. Config loaded from config_file
    4. Default config (lowest priority)

    Args:
        override_config: Dictionary with configuration overrides
        config_file: Path to TOML configuration file
        default_config: Default configuration dictionary
        args: Command line arguments as argparse.Namespace

    Returns:
        Merged configuration dictionary

    Raises:
        ConfigError: If the config file exists but cannot be parsed
    """
    config = {} if default_config is None else deepcopy(default_config)

    if config_file is not None:
        config_path = Path(config_file)
        if config_path.exists():
            try:
                with open(config_path, 'r') as f:
                    file_config = toml.load(f)
            except (toml.TomlDecodeError, OSError) as e:
                raise ConfigError(f"Error loading config from {config_file}: {e}") from e
            config = deep_merge(config, file_config)

            try:
                display_path = config_path.relative_to(Path.cwd())
            except ValueError:
                display_path = config_path
            logger.info(f"Loaded configuration from {display_path}")
            logger.debug(config)
        else:
            logger.warning(f"Config file not found: {config_file}")

    if override_config is not None:
        config = deep_merge(config, override_config)

    if args is not None:
        config = deep_merge(config, namespace_to_dict(args))

    return config


T = TypeVar('T', bound='BaseConfig')


class BaseConfig(BaseModel):
    """Base configuration model with loading methods.

    Extend this class with specific configuration fields for each service.
    """

    model_config = ConfigDict(
        validate_assignment=True,
        extra='forbid',
        str_strip_whitespace=True
    )

    @classmethod
    def _extract_env_overrides(cls, env_prefix: Optional[str] = None) -> Dict[str, Any]:
        """Extract configuration overrides from environment variables.

        Args:
            env_prefix: Prefix to filter environment variables (e.g., "GADOR").
                        If None, derived from the service_name field default.

        Returns:
            Dictionary of configuration overrides from environment variables

        Examples:
            GADOR_PORT="5050" → {"port": 5050}
            GADOR_INITIAL_STATE_VOLUME="0.5" → {"initial_state": {"volume": 0.5}}
        """
        overrides: Dict[str, Any] = {}

        if env_prefix is None:
            fields = getattr(cls, 'model_fields', {})
            if 'service_name' in fields:
                default_value = getattr(fields['service_name'], 'default', None)
                if default_value and isinstance(default_value, str):
                    # gador_relay → GADOR
                    env_prefix = default_value.split('_')[0].upper()

        if not env_prefix:
            return overrides

        model_fields = getattr(cls, 'model_fields', {})

        for env_key, env_value in os.environ.items():
            if not env_key.startswith(env_prefix + '_'):
                continue

            config_key = env_key[len(env_prefix) + 1:].lower()

            # Skip variables that share the prefix but are not config (GADOR_ENV, secrets)
            if not cls._looks_like_config_override(config_key, model_fields):
                continue

            mapped_override = cls._map_env_key_to_config(
                config_key, cls._convert_env_value(env_value), model_fields
            )
            if mapped_override:
                overrides = deep_merge(overrides, mapped_override)

        return overrides

    @classmethod
    def _looks_like_config_override(cls, env_key: str, model_fields: Dict) -> bool:
        """Check if an environment variable looks like it's intended as a config override.

        Args:
            env_key: Environment variable key (without prefix, lowercase)
            model_fields: Model fields to check against

        Returns:
            True if this looks like a config override, False otherwise
        """
        # Import here to avoid circular imports
        from gador_common.cli import CLI_ONLY_ARGS

        if env_key in CLI_ONLY_ARGS:
            return False

        if env_key in model_fields:
            return True

        for field_name, field_info in model_fields.items():
            field_type = getattr(field_info, 'annotation', None)
            if field_type and hasattr(field_type, 'model_fields') and env_key.startswith(field_name + '_'):
                nested_key = env_key[len(field_name) + 1:]
                if nested_key in field_type.model_fields:
                    return True

        return False

    @classmethod
    def _map_env_key_to_config(cls, env_key: str, value: Any, model_fields: Dict) -> Optional[Dict[str, Any]]:
        """Map an environment variable key to the config structure."""
        if env_key in model_fields:
            return {env_key: value}

        # {section}_{nested_field} (e.g. "validation_volume_policy")
        for field_name, field_info in model_fields.items():
            field_type = getattr(field_info, 'annotation', None)
            if field_type and hasattr(field_type, 'model_fields'):
                if env_key.startswith(field_name + '_'):
                    nested_key = env_key[len(field_name) + 1:]
                    if nested_key in field_type.model_fields:
                        return {field_name: {nested_key: value}}

        logger.debug(f"Unrecognized environment variable for config: {env_key}")
        return None

    @staticmethod
    def _convert_env_value(value: str) -> Any:
        """Convert environment variable string to appropriate Python type."""
        if value.lower() in ('true', 'yes', 'on'):
            return True
        elif value.lower() in ('false', 'no', 'off'):
            return False

        try:
            if '.' not in value:
                return int(value)
            return float(value)
        except ValueError:
            pass

        if value.startswith(('[', '{')):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    @classmethod
    def from_overrides(cls: Type[T],
                       override_config: Optional[Dict[str, Any]] = None,
                       config_file: Optional[Union[str, Path]] = None,
                       default_config: Optional[Dict[str, Any]] = None,
                       args: Optional[argparse.Namespace] = None,
                       env_prefix: Optional[str] = None) -> T:
        """Create a Config instance from multiple sources with flexible overrides.

        The priority order for configuration is:
        1. Command line args (from args parameter, highest priority)
        2. Provided override_config dictionary
        3. Environment variables (with env_prefix)
        4. Config loaded from config_file
        5. Default config (lowest priority)

        Args:
            override_config: Dictionary with configuration overrides
            config_file: Path to TOML configuration file
            default_config: Default configuration dictionary
            args: Command line arguments as argparse.Namespace
            env_prefix: Prefix for environment variables (e.g., "GADOR").
                        If None, auto-detects from service_name field default

        Returns:
            Config instance validated by Pydantic

        Raises:
            ConfigError: If the merged configuration doesn't match the model

        Examples:
            config = RelayServiceConfig.from_overrides(config_file="relay.toml")

            config = RelayServiceConfig.from_overrides(
                config_file="relay.toml",
                override_config={"port": 5050},
                args=parsed_args
            )
        """
        env_overrides = cls._extract_env_overrides(env_prefix)

        if env_overrides:
            if override_config:
                merged_overrides = deep_merge(env_overrides, override_config)
            else:
                merged_overrides = env_overrides
        else:
            merged_overrides = override_config

        merged_config = load_config_with_overrides(
            override_config=merged_overrides,
            config_file=config_file,
            default_config=default_config,
            args=args
        )

        try:
            config_instance = cls(**merged_config)
        except ValidationError as e:
            logger.error(f"Configuration validation error: {e.errors()}")
            raise ConfigError(f"Invalid configuration: {e}") from e
        return config_instance

    def __str__(self) -> str:
        """String representation of the configuration."""
        return f"{self.__class__.__name__}:\n{self.model_dump_json(indent=2)}"


# =============================================================================
# SERVICE CONFIGURATION BASE CLASSES
# =============================================================================

class BaseServiceConfig(BaseConfig):
    """Base service configuration with common fields."""

    service_name: str = Field(
        description="Name of this service instance"
    )
