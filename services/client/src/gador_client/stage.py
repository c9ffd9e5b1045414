"""
Event model for the stage display.

StageMirror turns protocol events into what a renderer needs: the mirrored
installation state, the phrases currently on screen and the next automatic
scene 1 phrase. It draws nothing itself.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from gador_common.constants import AUTO_SCENE_ID, AUTO_PHRASE_INTERVAL, PHRASE_LIFETIME
from gador_common.schemas import (
    InstallationState, PhraseTrigger, RealtimeEvent, Scene1Complete, SceneChange,
    StateSync, VolumeChange, SCENE1_AUTO_PHRASES,
)

logger = logging.getLogger(__name__)


@dataclass
class ActivePhrase:
    text: str
    scene_id: int
    shown_at: float
    automatic: bool = False
    expires_at: float = field(default=0.0)


class StageMirror:
    """Stage-side view of the installation.

    Pass ``handle_event`` as the connection's message handler.
    """

    def __init__(self,
                 phrase_lifetime: float = PHRASE_LIFETIME,
                 auto_phrases: Optional[Sequence[str]] = None,
                 on_phrase: Optional[Callable[[ActivePhrase], None]] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.state = InstallationState()
        self.synced = False
        self.phrase_lifetime = phrase_lifetime
        self.on_phrase = on_phrase
        self._clock = clock
        self._phrases: List[ActivePhrase] = []
        self._auto_phrases = list(SCENE1_AUTO_PHRASES if auto_phrases is None else auto_phrases)
        self._auto_index = 0
        self.events_seen = 0

    def handle_event(self, event: RealtimeEvent):
        self.events_seen += 1

        if isinstance(event, StateSync):
            self.state = event.state
            self.synced = True
        elif isinstance(event, SceneChange):
            update = {"current_scene": event.scene_id}
            if event.scene_id != AUTO_SCENE_ID:
                update["scene1_auto_enabled"] = False
            self.state = self.state.model_copy(update=update)
            logger.info(f"Scene changed to {event.scene_id}")
        elif isinstance(event, Scene1Complete):
            self.state = self.state.model_copy(update={"scene1_auto_enabled": True})
            logger.info("Scene 1 automatic playback enabled")
        elif isinstance(event, VolumeChange):
            self.state = self.state.model_copy(update={"volume": event.volume})
        elif isinstance(event, PhraseTrigger):
            self.show_phrase(event.phrase_text, event.scene_id)

    def show_phrase(self, text: str, scene_id: int, automatic: bool = False) -> ActivePhrase:
        now = self._clock()
        phrase = ActivePhrase(
            text=text,
            scene_id=scene_id,
            shown_at=now,
            automatic=automatic,
            expires_at=now + self.phrase_lifetime,
        )
        self._phrases.append(phrase)
        logger.info(f"Phrase on stage (scene {scene_id}): {text}")
        if self.on_phrase is not None:
            self.on_phrase(phrase)
        return phrase

    @property
    def active_phrases(self) -> List[ActivePhrase]:
        """Phrases still within their lifetime, oldest first."""
        now = self._clock()
        self._phrases = [p for p in self._phrases if p.expires_at > now]
        return list(self._phrases)

    @property
    def auto_play_active(self) -> bool:
        return self.state.current_scene == AUTO_SCENE_ID and self.state.scene1_auto_enabled

    def next_auto_phrase(self) -> Optional[str]:
        """Show the next automatic scene 1 phrase, cycling through the list."""
        if not self.auto_play_active or not self._auto_phrases:
            return None
        text = self._auto_phrases[self._auto_index % len(self._auto_phrases)]
        self._auto_index += 1
        self.show_phrase(text, AUTO_SCENE_ID, automatic=True)
        return text

    async def run_auto_play(self, interval: float = AUTO_PHRASE_INTERVAL):
        """Emit automatic phrases while auto play is active, until cancelled."""
        while True:
            await asyncio.sleep(interval)
            self.next_auto_phrase()
