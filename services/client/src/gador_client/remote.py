"""
Remote control surface for the installation.

RemoteControl wraps a ClientConnectionManager with the ``remote`` role,
mirrors the relay's state and exposes the operator actions: select a scene,
trigger a phrase, walk through the scene 1 phrase sequence, change or mute
the volume and reset to scene 1.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

from gador_common.constants import AUTO_SCENE_ID, DEFAULT_VOLUME, RECONNECT_DELAY
from gador_common.schemas import (
    ClientRole, InstallationState, PhraseTrigger, RealtimeEvent, Scene, Scene1Complete,
    SceneChange, StateSync, VolumeChange, DEFAULT_SCENES, find_scene,
)

from .config import ClientConfig
from .connection import ClientConnectionManager, StatusCallback

logger = logging.getLogger(__name__)


class RemoteControl:
    """Operator actions on top of a remote-role connection."""

    def __init__(self,
                 url: str,
                 scenes: Optional[Sequence[Scene]] = None,
                 reconnect_delay: float = RECONNECT_DELAY,
                 on_event: Optional[Callable[[RealtimeEvent], None]] = None,
                 on_status: Optional[StatusCallback] = None,
                 **connection_kwargs):
        self.scenes: List[Scene] = list(scenes or DEFAULT_SCENES)
        self.state = InstallationState()
        self.synced = asyncio.Event()
        self.on_event = on_event
        self.scene1_index = 0
        self._restore_volume = DEFAULT_VOLUME

        self.connection = ClientConnectionManager(
            url,
            ClientRole.REMOTE,
            on_message=self._handle_event,
            reconnect_delay=reconnect_delay,
            on_status=on_status,
            **connection_kwargs,
        )

    @classmethod
    def from_config(cls, config: ClientConfig, **kwargs) -> "RemoteControl":
        return cls(
            config.url,
            reconnect_delay=config.reconnect_delay,
            connect_timeout=config.connect_timeout,
            **kwargs,
        )

    async def start(self):
        await self.connection.start()

    async def stop(self):
        await self.connection.stop()

    async def __aenter__(self) -> "RemoteControl":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def wait_synced(self, timeout: Optional[float] = None) -> bool:
        """Wait for the first state_sync from the relay."""
        try:
            await asyncio.wait_for(self.synced.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    @property
    def current_scene(self) -> Optional[Scene]:
        return find_scene(self.scenes, self.state.current_scene)

    @property
    def muted(self) -> bool:
        return self.state.volume == 0

    def _handle_event(self, event: RealtimeEvent):
        if isinstance(event, StateSync):
            if event.state.current_scene != self.state.current_scene:
                self.scene1_index = 0
            self.state = event.state
            if self.state.volume > 0:
                self._restore_volume = self.state.volume
            self.synced.set()
        if self.on_event is not None:
            self.on_event(event)

    # ------------------------------------------------------------------
    # operator actions

    async def select_scene(self, scene_id: int) -> bool:
        if find_scene(self.scenes, scene_id) is None:
            logger.warning(f"Scene {scene_id} is not in the local catalog, sending anyway")
        return await self.connection.send_event(SceneChange(scene_id=scene_id))

    async def trigger_phrase(self, text: str, scene_id: Optional[int] = None) -> bool:
        """Trigger a phrase on the stage, defaulting to the current scene."""
        target = scene_id if scene_id is not None else self.state.current_scene
        return await self.connection.send_event(PhraseTrigger(phrase_text=text, scene_id=target))

    async def advance_scene1(self) -> Optional[str]:
        """Send the next manual scene 1 phrase.

        Once every phrase has been sent, the next call sends scene1_complete
        so the stage can start automatic playback.

        Returns:
            The phrase sent, or None when scene1_complete was sent (or sending failed)
        """
        scene = find_scene(self.scenes, AUTO_SCENE_ID)
        phrases = scene.phrases if scene else []

        if self.scene1_index < len(phrases):
            phrase = phrases[self.scene1_index]
            if not await self.trigger_phrase(phrase, AUTO_SCENE_ID):
                return None
            self.scene1_index += 1
            return phrase

        if await self.connection.send_event(Scene1Complete()):
            logger.info("Scene 1 manual phrases complete, automatic playback enabled")
        return None

    async def set_volume(self, volume: float) -> bool:
        if volume > 0:
            self._restore_volume = volume
        return await self.connection.send_event(VolumeChange(volume=volume))

    async def toggle_mute(self) -> bool:
        """Mute, or restore the last non-zero volume."""
        if self.muted:
            return await self.set_volume(self._restore_volume)
        self._restore_volume = self.state.volume
        return await self.connection.send_event(VolumeChange(volume=0.0))

    async def emergency_stop(self) -> bool:
        """Return the installation to scene 1."""
        logger.warning("Emergency stop: resetting to scene 1")
        self.scene1_index = 0
        return await self.select_scene(AUTO_SCENE_ID)
