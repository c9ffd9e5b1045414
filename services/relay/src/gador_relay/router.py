"""
Inbound event dispatch for the relay.

Every frame is decoded against the closed event schema and dispatched by its
``type``. Frames that fail to decode are dropped with a warning and the
connection stays open. State-mutating events update the StateAuthority and
are then relayed to every other connection, followed by a full ``state_sync``
to every connection (sender included) so all peers converge on the
authoritative snapshot.
"""

import logging
from typing import Iterable, Optional

from gador_common.schemas import (
    ClientIdentify, EventType, Heartbeat, MutatingEvent, PhraseTrigger, ProtocolError,
    RealtimeEvent, Scene1Complete, SceneChange, StateSync, VolumeChange,
    parse_event,
)

from .broadcaster import Broadcaster
from .config import ValidationConfig
from .registry import Connection, ConnectionRegistry
from .state import StateAuthority

logger = logging.getLogger(__name__)


class EventRouter:
    """The relay's protocol state machine.

    Callers must feed it one item at a time (the relay's dispatcher task does),
    which keeps each mutate-then-broadcast sequence indivisible.
    """

    def __init__(self,
                 state: StateAuthority,
                 registry: ConnectionRegistry,
                 broadcaster: Broadcaster,
                 validation: Optional[ValidationConfig] = None,
                 scene_ids: Optional[Iterable[int]] = None):
        self.state = state
        self.registry = registry
        self.broadcaster = broadcaster
        self.validation = validation or ValidationConfig()
        self.scene_ids = frozenset(scene_ids or ())

        self.events_handled = 0
        self.protocol_errors = 0
        self.rejected_values = 0

        self._handlers = {
            EventType.CLIENT_IDENTIFY: self._on_client_identify,
            EventType.SCENE_CHANGE: self._on_scene_change,
            EventType.PHRASE_TRIGGER: self._on_phrase_trigger,
            EventType.SCENE1_COMPLETE: self._on_scene1_complete,
            EventType.VOLUME_CHANGE: self._on_volume_change,
            EventType.HEARTBEAT: self._on_heartbeat,
            EventType.STATE_SYNC: self._on_state_sync,
        }

    async def handle_connect(self, conn: Connection):
        """Register a new connection and send it the current state."""
        self.registry.add(conn)
        await self.broadcaster.send(conn, StateSync(state=self.state.get()))

    async def handle_disconnect(self, conn: Connection):
        self.registry.remove(conn)

    async def handle_frame(self, conn: Connection, raw) -> Optional[RealtimeEvent]:
        """Decode and dispatch one inbound frame.

        Returns:
            The decoded event, or None if the frame was dropped
        """
        try:
            event = parse_event(raw)
        except ProtocolError as e:
            self.protocol_errors += 1
            logger.warning(f"Dropping frame from {conn.id}: {e.reason}")
            if e.details:
                logger.debug(f"Validation details: {e.details}")
            return None

        self.events_handled += 1
        logger.debug(f"{conn.id} ({conn.role}) -> {event.type}")
        handled = await self._handlers[EventType(event.type)](conn, event)
        return event if handled is not False else None

    # ------------------------------------------------------------------
    # handlers

    async def _on_client_identify(self, conn: Connection, event: ClientIdentify):
        self.registry.identify(conn, event.role)

    async def _on_scene_change(self, conn: Connection, event: SceneChange):
        if not self._scene_allowed(conn, event.scene_id):
            return False
        await self._apply_and_broadcast(conn, event)

    async def _on_phrase_trigger(self, conn: Connection, event: PhraseTrigger):
        if not self._scene_allowed(conn, event.scene_id):
            return False
        await self.broadcaster.broadcast_except(event, conn)

    async def _on_scene1_complete(self, conn: Connection, event: Scene1Complete):
        await self._apply_and_broadcast(conn, event)

    async def _on_volume_change(self, conn: Connection, event: VolumeChange):
        checked = self._check_volume(conn, event)
        if checked is None:
            return False
        await self._apply_and_broadcast(conn, checked)

    async def _on_heartbeat(self, conn: Connection, event: Heartbeat):
        await self.broadcaster.send(conn, Heartbeat())

    async def _on_state_sync(self, conn: Connection, event: StateSync):
        # server to client only
        logger.debug(f"Ignoring state_sync sent by client {conn.id}")

    async def _apply_and_broadcast(self, conn: Connection, event: MutatingEvent):
        self.state.apply(event)
        await self.broadcaster.broadcast_except(event, conn)
        await self.broadcaster.broadcast_all(StateSync(state=self.state.get()))

    # ------------------------------------------------------------------
    # value policy

    def _scene_allowed(self, conn: Connection, scene_id: int) -> bool:
        if self.validation.scene_policy == "allow" or not self.scene_ids:
            return True
        if scene_id in self.scene_ids:
            return True
        self.rejected_values += 1
        logger.warning(f"Dropping event from {conn.id}: scene {scene_id} is not in the catalog "
                       f"{sorted(self.scene_ids)}")
        return False

    def _check_volume(self, conn: Connection, event: VolumeChange) -> Optional[VolumeChange]:
        if 0.0 <= event.volume <= 1.0 or self.validation.volume_policy == "allow":
            return event
        if self.validation.volume_policy == "reject":
            self.rejected_values += 1
            logger.warning(f"Dropping volume_change from {conn.id}: {event.volume} is outside [0, 1]")
            return None
        clamped = min(1.0, max(0.0, event.volume))
        logger.info(f"Clamping volume from {conn.id}: {event.volume} -> {clamped}")
        return event.model_copy(update={"volume": clamped})
