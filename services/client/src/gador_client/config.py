"""
Configuration schema for Gador clients (remote control and stage).
"""

from typing import Literal

from pydantic import Field

from gador_common.config import BaseServiceConfig
from gador_common.constants import (
    DEFAULT_PORT, WS_PATH, RECONNECT_DELAY, PHRASE_LIFETIME, AUTO_PHRASE_INTERVAL,
    CLIENT_SERVICE_DIR, get_project_config_path
)

DEFAULT_CONFIG_PATH = get_project_config_path("client", CLIENT_SERVICE_DIR)

DEFAULT_URL = f"ws://localhost:{DEFAULT_PORT}{WS_PATH}"


class ClientConfig(BaseServiceConfig):
    """Connection and presentation settings for a Gador client."""

    service_name: str = Field(
        default="gador_client",
        description="Name of this client instance"
    )

    url: str = Field(
        default=DEFAULT_URL,
        description="WebSocket URL of the relay"
    )

    role: Literal["remote", "stage"] = Field(
        default="remote",
        description="Role announced to the relay"
    )

    reconnect_delay: float = Field(
        default=RECONNECT_DELAY,
        ge=0,
        description="Seconds to wait before reconnecting after the socket closes"
    )

    connect_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds allowed for the WebSocket handshake"
    )

    phrase_lifetime: float = Field(
        default=PHRASE_LIFETIME,
        gt=0,
        description="Seconds a triggered phrase stays active on the stage"
    )

    auto_phrase_interval: float = Field(
        default=AUTO_PHRASE_INTERVAL,
        gt=0,
        description="Seconds between automatic scene 1 phrases on the stage"
    )
