"""
Default configuration values for Gador installation services.
"""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Project structure constants
# Find the project root by going up from libs/common/src/gador_common
PROJECT_ROOT = (Path(__file__).parent.parent.parent.parent.parent).absolute()

# Directory for project-specific configurations
PROJECT_SPECIFIC_DIR = PROJECT_ROOT / "projects"

# Ensure PROJECT_ENV is set before anything reads it
os.environ.setdefault("PROJECT_ENV", "gador")

# Then load project-specific .env file which can override the default
proj_env = PROJECT_SPECIFIC_DIR / os.environ["PROJECT_ENV"] / ".env"
if proj_env.exists():
    load_dotenv(proj_env, override=True)

logger = logging.getLogger(__name__)

PROJECT = os.getenv("PROJECT_ENV", "gador")

# Service directories
RELAY_SERVICE_DIR = PROJECT_ROOT / "services" / "relay"
CLIENT_SERVICE_DIR = PROJECT_ROOT / "services" / "client"

# Relay listener
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 5000
WS_PATH = "/ws"
API_PREFIX = "/api"

# Timing (seconds)
HEARTBEAT_INTERVAL = 30.0     # transport-level ping from relay to every peer
RECONNECT_DELAY = 2.0         # client wait before a new connection attempt
PHRASE_LIFETIME = 35.0        # how long the stage keeps a triggered phrase active
AUTO_PHRASE_INTERVAL = 4.0    # stage pace for scene-1 automatic phrases
SEND_TIMEOUT = 5.0            # longest the relay waits on one peer's write

# Installation state defaults
DEFAULT_SCENE = 1
DEFAULT_VOLUME = 0.8
DEFAULT_SCENE1_AUTO = False

# The scene whose manual phrase sequence unlocks automatic playback
AUTO_SCENE_ID = 1


def get_project_config_path(service_name: str, fallback_dir: Path | None = None) -> Path:
    """
    Get the configuration path for a service, with project-aware defaults.

    Priority:
    1. projects/{PROJECT_ENV}/{service_name}.toml if it exists
    2. fallback_dir/config.toml if it exists
    3. projects/{PROJECT_ENV}/{service_name}.toml (may not exist)

    Args:
        service_name: Name of the service (e.g., "relay", "client")
        fallback_dir: Directory containing a service-local config.toml

    Returns:
        Path to the configuration file
    """
    project_env = os.getenv("PROJECT_ENV", PROJECT)
    project_config = PROJECT_SPECIFIC_DIR / project_env / f"{service_name}.toml"
    if project_config.exists():
        return project_config

    if fallback_dir is not None:
        legacy_config = fallback_dir / "config.toml"
        if legacy_config.exists():
            return legacy_config

    return project_config
