"""
Authoritative installation state for the relay.
"""

import logging
from typing import Optional

from gador_common.constants import AUTO_SCENE_ID
from gador_common.schemas import (
    InstallationState, MutatingEvent, SceneChange, VolumeChange, Scene1Complete,
)

logger = logging.getLogger(__name__)


class StateAuthority:
    """Owns the one live InstallationState of the process.

    Snapshots are frozen pydantic models, so whatever ``get()`` hands out can
    never be used to write state. ``apply()`` is the only mutator.
    """

    def __init__(self, initial: Optional[InstallationState] = None):
        self._initial = initial or InstallationState()
        self._state = self._initial
        self.transitions = 0

    def get(self) -> InstallationState:
        """Current snapshot."""
        return self._state

    def apply(self, event: MutatingEvent) -> InstallationState:
        """Apply a state-mutating event and return the new snapshot.

        Raises:
            TypeError: For any event that does not mutate state
        """
        old = self._state

        if isinstance(event, SceneChange):
            update = {"current_scene": event.scene_id}
            if event.scene_id != AUTO_SCENE_ID:
                update["scene1_auto_enabled"] = False
        elif isinstance(event, VolumeChange):
            update = {"volume": event.volume}
        elif isinstance(event, Scene1Complete):
            update = {"scene1_auto_enabled": True}
        else:
            raise TypeError(f"{type(event).__name__} does not mutate installation state")

        self._state = old.model_copy(update=update)
        self.transitions += 1

        logger.info(
            f"State {event.type}: scene {old.current_scene} -> {self._state.current_scene}, "
            f"volume {old.volume} -> {self._state.volume}, "
            f"auto {old.scene1_auto_enabled} -> {self._state.scene1_auto_enabled}"
        )
        return self._state

    def reset(self) -> InstallationState:
        """Return to the initial state, as a process restart would."""
        self._state = self._initial
        logger.info("State reset to initial values")
        return self._state
