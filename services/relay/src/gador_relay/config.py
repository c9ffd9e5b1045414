#!/usr/bin/env python3
"""
Configuration schema for the Gador Relay Service.

This module defines Pydantic models for validating and accessing
relay configuration in a type-safe way.
"""

from typing import List, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from gador_common.config import BaseServiceConfig
from gador_common.constants import (
    DEFAULT_HOST, DEFAULT_PORT, WS_PATH, HEARTBEAT_INTERVAL, SEND_TIMEOUT,
    DEFAULT_SCENE, DEFAULT_VOLUME, DEFAULT_SCENE1_AUTO,
    RELAY_SERVICE_DIR, get_project_config_path
)
from gador_common.schemas import InstallationState, Scene, DEFAULT_SCENES

DEFAULT_CONFIG_PATH = get_project_config_path("relay", RELAY_SERVICE_DIR)


class InitialStateConfig(BaseModel):
    """Installation state the relay starts with (and returns to on restart)."""

    scene: int = Field(
        default=DEFAULT_SCENE,
        gt=0,
        description="Scene active at startup"
    )

    volume: float = Field(
        default=DEFAULT_VOLUME,
        ge=0.0,
        le=1.0,
        description="Volume at startup"
    )

    scene1_auto_enabled: bool = Field(
        default=DEFAULT_SCENE1_AUTO,
        description="Whether scene 1 automatic phrases start enabled"
    )

    def to_state(self) -> InstallationState:
        return InstallationState(
            current_scene=self.scene,
            volume=self.volume,
            scene1_auto_enabled=self.scene1_auto_enabled,
        )


class ValidationConfig(BaseModel):
    """How the relay treats well-formed events carrying out-of-range values."""

    scene_policy: Literal["reject", "allow"] = Field(
        default="reject",
        description="Scene ids missing from the catalog: drop the event (reject) or pass it through (allow)"
    )

    volume_policy: Literal["clamp", "reject", "allow"] = Field(
        default="clamp",
        description="Volume outside [0, 1]: clamp it, drop the event, or pass it through"
    )


class RelayServiceConfig(BaseServiceConfig):
    """Main configuration for the Gador relay service."""

    service_name: str = Field(
        default="gador_relay",
        description="Name of this service instance"
    )

    host: str = Field(
        default=DEFAULT_HOST,
        description="Interface the HTTP/WebSocket listener binds to"
    )

    port: int = Field(
        default=DEFAULT_PORT,
        ge=0,
        le=65535,
        description="Listener port (0 picks a free port)"
    )

    ws_path: str = Field(
        default=WS_PATH,
        description="Path of the WebSocket endpoint"
    )

    heartbeat_interval: float = Field(
        default=HEARTBEAT_INTERVAL,
        gt=0,
        description="Seconds between transport pings to every connection"
    )

    send_timeout: float = Field(
        default=SEND_TIMEOUT,
        gt=0,
        description="Seconds one peer may take to accept a frame before it is dropped"
    )

    initial_state: InitialStateConfig = Field(
        default_factory=InitialStateConfig,
        description="Starting installation state"
    )

    validation: ValidationConfig = Field(
        default_factory=ValidationConfig,
        description="Out-of-range value handling"
    )

    scenes: List[Scene] = Field(
        default_factory=lambda: [scene.model_copy(deep=True) for scene in DEFAULT_SCENES],
        description="Scene catalog"
    )

    @field_validator("ws_path")
    @classmethod
    def _absolute_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("ws_path must start with '/'")
        return value

    @model_validator(mode="after")
    def _check_scenes(self):
        ids = [scene.id for scene in self.scenes]
        if len(ids) != len(set(ids)):
            raise ValueError(f"duplicate scene ids in catalog: {sorted(ids)}")
        if (self.validation.scene_policy == "reject" and self.scenes
                and self.initial_state.scene not in ids):
            raise ValueError(f"initial scene {self.initial_state.scene} is not in the scene catalog")
        return self

    @property
    def scene_ids(self) -> List[int]:
        return [scene.id for scene in self.scenes]
