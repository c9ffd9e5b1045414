import logging
import os
from pathlib import Path
from typing import Optional


def _is_production() -> bool:
    return (
        os.environ.get("GADOR_ENV") == "production" or
        Path("/etc/gador").exists()  # Production marker
    )


def get_log_directory() -> Path:
    """
    Determine the appropriate log directory based on environment.

    Returns:
        Path to log directory - uses /var/log/gador/ in production,
        logs/ directory in development
    """
    is_production = _is_production()

    if is_production:
        log_dir = Path("/var/log/gador")
    else:
        from gador_common.constants import PROJECT_ROOT
        log_dir = PROJECT_ROOT / "logs"

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except (PermissionError, OSError) as e:
        if is_production:
            raise RuntimeError(
                f"Cannot create production log directory {log_dir}. "
                f"Create it with write access for the service user. Error: {e}"
            )
        # Fallback to local logs in development
        log_dir = Path.cwd() / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def get_log_file_path(log_filename: str = "gador.log") -> str:
    """
    Determine the appropriate log file path based on environment.

    Args:
        log_filename: Name of the log file

    Returns:
        Path to log file as a string
    """
    return str(get_log_directory() / log_filename)


def setup_logging(
    name: str = __name__,
    level: int | str = logging.INFO,
    log_filename: Optional[str] = None,
    include_console: Optional[bool] = None,
    external_level: int = logging.WARNING,
    service_label: Optional[str] = None,
) -> logging.Logger:
    """
    Setup logging with adaptive file location and external logger configuration.

    Args:
        name: Logger name (usually __name__); empty or "root" configures the root logger
        level: Logging level for the main logger
        log_filename: Log file name, no file logging if None
        include_console: Whether to include console output. If None, auto-detects:
                        - Development: True (console + file)
                        - Production: False (file only, systemd handles console)
        external_level: Level for external libraries
        service_label: Optional label inserted into each line (e.g. "RELAY")

    Returns:
        Configured logger instance
    """
    if include_console is None:
        include_console = not _is_production()

    if isinstance(level, str):
        numeric_level = getattr(logging, level.upper(), None)
        if not isinstance(numeric_level, int):
            raise ValueError(f'Invalid log level: {level}')
        level = numeric_level

    # Configure the root logger first to ensure all child loggers inherit the level
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    configure_external_loggers(external_level)

    handlers: list = []

    if log_filename is not None:
        file_handler = logging.FileHandler(get_log_file_path(log_filename))
        file_handler.setLevel(level)
        handlers.append(file_handler)

    if include_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        handlers.append(console_handler)

    label = f"{service_label} - " if service_label else ""
    formatter = logging.Formatter(
        f'%(asctime)s - {label}%(name)s - %(levelname)s - %(message)s'
    )
    for handler in handlers:
        handler.setFormatter(formatter)

    if not name or name == "root":
        # Clear existing handlers to avoid duplicates
        root_logger.handlers.clear()
        for handler in handlers:
            root_logger.addHandler(handler)
        return root_logger

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Named loggers propagate to an already configured root
    if root_logger.hasHandlers():
        return logger

    for handler in handlers:
        logger.addHandler(handler)
    return logger


def configure_external_loggers(level=logging.WARNING):
    """Configure external library loggers to a specific level.

    Args:
        level: The logging level to set for external libraries
    """
    for logger_name in [
        "aiohttp",          # HTTP / WebSocket server and client
        "aiohttp.access",   # One line per HTTP request
        "aiohttp.server",
        "aiohttp.web",
        "aiohttp.websocket",
        "asyncio",          # Asyncio debugging messages
        "websockets",
    ]:
        logger = logging.getLogger(logger_name)
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
