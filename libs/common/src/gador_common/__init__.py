"""
Gador common package initialization.
"""

from dotenv import load_dotenv, find_dotenv

# whichever .env the environment points at; projects/<project>/.env is
# cascaded on top of it by gador_common.constants
load_dotenv(find_dotenv(usecwd=True), override=False)

from gador_common.constants import (
    PROJECT_ROOT,
    DEFAULT_PORT,
    HEARTBEAT_INTERVAL,
    RECONNECT_DELAY,
)

from gador_common.config import (
    BaseConfig,
    BaseServiceConfig,
    ConfigError,
)

from gador_common.schemas import (
    ClientRole,
    EventType,
    InstallationState,
    ProtocolError,
    RealtimeEvent,
    Scene,
    parse_event,
    encode_event,
)

from gador_common.service_state import ServiceState
from gador_common.base_service import BaseService

__all__ = [
    "PROJECT_ROOT",
    "DEFAULT_PORT",
    "HEARTBEAT_INTERVAL",
    "RECONNECT_DELAY",
    "BaseConfig",
    "BaseServiceConfig",
    "ConfigError",
    "ClientRole",
    "EventType",
    "InstallationState",
    "ProtocolError",
    "RealtimeEvent",
    "Scene",
    "parse_event",
    "encode_event",
    "ServiceState",
    "BaseService",
]
