"""
Reusable command line interface utilities for Gador services.

This module provides a standard CLI interface that all Gador services can use
for consistent command line argument parsing, logging setup, and service execution.
"""
import argparse
import asyncio
import logging
import sys
from typing import Optional, Callable, Awaitable, Any, Dict, Literal, Type, get_origin, get_args

from pydantic import BaseModel

from gador_common.config import ConfigError
from gador_common.logger import setup_logging

# Arguments handled by the CLI itself and never part of a config model
CLI_ONLY_ARGS = {"log_level", "config"}


class TrackedAction(argparse.Action):
    """Custom argparse action that tracks which arguments were explicitly provided."""

    def __call__(self, parser, namespace, values, option_string=None):
        if not hasattr(namespace, '_explicitly_set'):
            namespace._explicitly_set = set()
        namespace._explicitly_set.add(self.dest)
        setattr(namespace, self.dest, values)


class TrackedStoreTrueAction(argparse._StoreTrueAction):
    """Custom store_true action that tracks when the flag was explicitly provided."""

    def __call__(self, parser, namespace, values, option_string=None):
        if not hasattr(namespace, '_explicitly_set'):
            namespace._explicitly_set = set()
        namespace._explicitly_set.add(self.dest)
        super().__call__(parser, namespace, values, option_string)


class TrackedStoreFalseAction(argparse._StoreFalseAction):
    """Custom store_false action that tracks when the flag was explicitly provided."""

    def __call__(self, parser, namespace, values, option_string=None):
        if not hasattr(namespace, '_explicitly_set'):
            namespace._explicitly_set = set()
        namespace._explicitly_set.add(self.dest)
        super().__call__(parser, namespace, values, option_string)


def _unwrap_optional(field_type: Any) -> Any:
    """Return T for Optional[T] / T | None, otherwise the type unchanged."""
    args = get_args(field_type)
    if args and type(None) in args and get_origin(field_type) is not Literal:
        non_none = [arg for arg in args if arg is not type(None)]
        if len(non_none) == 1:
            return non_none[0]
    return field_type


def extract_cli_args_from_config(config_class: Type[BaseModel], prefix: str = "") -> Dict[str, Dict[str, Any]]:
    """Extract CLI arguments from a Pydantic config class.

    Handles bool, int, float, str and Literal fields and recursively processes
    nested BaseModel fields. Lists and other complex types are left to the
    config file.

    Args:
        config_class: Pydantic BaseModel class to extract arguments from
        prefix: Prefix for nested field names (e.g., "initial_state")

    Returns:
        Dictionary mapping argument names to argparse argument configurations
    """
    cli_args = {}

    for field_name, field_info in config_class.model_fields.items():
        field_type = _unwrap_optional(field_info.annotation)

        if isinstance(field_type, type) and issubclass(field_type, BaseModel):
            nested_prefix = f"{prefix}.{field_name}" if prefix else field_name
            cli_args.update(extract_cli_args_from_config(field_type, nested_prefix))
            continue

        choices = None
        if get_origin(field_type) is Literal:
            choices = list(get_args(field_type))
            field_type = type(choices[0])

        if field_type not in (bool, int, float, str):
            continue

        full_field_name = f"{prefix}.{field_name}" if prefix else field_name
        # Use hyphens for CLI display, dots are only used internally for argparse dest
        flag = full_field_name.replace('_', '-').replace('.', '-')
        arg_name = f"--{flag}"
        arg_config: Dict[str, Any] = {}

        if field_type == bool:
            if field_info.default is True:
                arg_config['action'] = TrackedStoreFalseAction
                arg_name = f"--no-{flag}"
            else:
                arg_config['action'] = TrackedStoreTrueAction
        else:
            arg_config['type'] = field_type
            arg_config['action'] = TrackedAction
            if choices:
                arg_config['choices'] = choices

        help_text = field_info.description or ""
        if prefix:
            section_name = prefix.replace('_', ' ').replace('.', ' ').title()
            help_text = f"[{section_name}] {help_text or field_name}"
        if field_info.default is not None and field_info.default != ...:
            if help_text:
                help_text += f" (default: {field_info.default})"
            else:
                help_text = f"Default: {field_info.default}"
        if help_text:
            arg_config['help'] = help_text

        # Dots in dest let namespace_to_dict rebuild the nested structure
        arg_config['dest'] = full_field_name
        if field_type == int:
            arg_config['metavar'] = 'N'
        elif field_type == float:
            arg_config['metavar'] = 'VALUE'
        elif field_type == str and not choices:
            arg_config['metavar'] = 'TEXT'

        cli_args[arg_name] = arg_config

    return cli_args


def create_service_parser(
    service_name: str,
    description: str,
    default_config_path: Optional[str] = None,
    extra_args: Optional[Dict[str, Dict[str, Any]]] = None,
    config_class: Optional[Type[BaseModel]] = None
) -> argparse.ArgumentParser:
    """Create a standard argument parser for Gador services.

    Args:
        service_name: Name of the service (e.g., "Relay")
        description: Description of the service
        default_config_path: Default path to config file (optional)
        extra_args: Additional arguments to add to parser
        config_class: Pydantic config class to auto-generate arguments from

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description=f'Gador {service_name} Service - {description}'
    )

    parser.add_argument(
        '--log-level', '-l',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default='INFO',
        action=TrackedAction,
        help='Set the logging level (default: INFO)'
    )

    if default_config_path:
        parser.add_argument(
            '--config', '-c',
            default=default_config_path,
            action=TrackedAction,
            help=f'Path to configuration file (default: {default_config_path})'
        )

    if config_class:
        for arg_name, arg_config in extract_cli_args_from_config(config_class).items():
            parser.add_argument(arg_name, **arg_config)

    if extra_args:
        for arg_name, arg_config in extra_args.items():
            parser.add_argument(arg_name, **arg_config)

    return parser


async def run_service_cli(
    service_name: str,
    description: str,
    service_runner: Callable[..., Awaitable[None]],
    default_config_path: Optional[str] = None,
    extra_args: Optional[Dict[str, Dict[str, Any]]] = None,
    config_class: Optional[Type[BaseModel]] = None,
    argv: Optional[list[str]] = None
) -> None:
    """Run a service with standard CLI argument parsing and error handling.

    Args:
        service_name: Name of the service (e.g., "Relay")
        description: Description of the service
        service_runner: Async function that runs the service
        default_config_path: Default path to config file (optional)
        extra_args: Additional arguments to add to parser
        config_class: Pydantic config class to auto-generate CLI args from
        argv: Argument list, defaults to sys.argv[1:]
    """
    parser = create_service_parser(
        service_name=service_name,
        description=description,
        default_config_path=default_config_path,
        extra_args=extra_args,
        config_class=config_class
    )

    args = parser.parse_args(argv)

    setup_logging("", args.log_level, service_label=service_name.upper())

    logger = logging.getLogger(__name__)
    logger.info(f"Starting Gador {service_name} Service with log level: {args.log_level}")

    # Remove cli only options so they aren't validated by the pydantic config class
    config_path = getattr(args, 'config', default_config_path)
    if hasattr(args, 'config'):
        del args.config
    del args.log_level
    for arg in extra_args or {}:
        if hasattr(args, arg.lstrip('-')):
            delattr(args, arg.lstrip('-'))

    try:
        if config_class:
            await service_runner(args=args, config_path=config_path)
        elif default_config_path:
            await service_runner(config_path=config_path)
        else:
            await service_runner()
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down gracefully...")
    except ConfigError as e:
        logger.error(f"Configuration error in {service_name} service: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Unexpected error in {service_name} service: {e}", exc_info=True)
        sys.exit(1)


def create_simple_main(
    service_name: str,
    description: str,
    service_runner: Callable[..., Awaitable[None]],
    default_config_path: Optional[str] = None,
    extra_args: Optional[Dict[str, Dict[str, Any]]] = None,
    config_class: Optional[Type[BaseModel]] = None
) -> Callable[[], None]:
    """Create a main() function for a service that can be used in __main__.py.

    Args:
        service_name: Name of the service (e.g., "Relay")
        description: Description of the service
        service_runner: Async function that runs the service
        default_config_path: Default path to config file (optional)
        extra_args: Additional arguments to add to parser
        config_class: Pydantic config class to auto-generate CLI args from

    Returns:
        A main() function that can be called from __main__.py
    """
    def main() -> None:
        asyncio.run(run_service_cli(
            service_name=service_name,
            description=description,
            service_runner=service_runner,
            default_config_path=default_config_path,
            extra_args=extra_args,
            config_class=config_class
        ))

    return main
