"""
Schema definitions for the Gador realtime protocol.

Every WebSocket frame is a UTF-8 JSON object with a ``type`` tag. The set of
tags is closed: ``parse_event`` accepts exactly the event models below and
raises ``ProtocolError`` for anything else, so callers can drop one bad frame
without touching the connection.

Python attribute names are snake_case; the wire uses the camelCase aliases
(``sceneId``, ``phraseText``, ``currentScene``, ``scene1AutoEnabled``).
"""

import json
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, ValidationError

from gador_common.constants import DEFAULT_SCENE, DEFAULT_VOLUME, DEFAULT_SCENE1_AUTO


class StringComparableEnum(str, Enum):
    """Base class for string comparable enums.

    This allows for direct comparison with strings and provides a consistent
    string representation.
    """

    def __str__(self) -> str:
        return self.value

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, str):
            return self.value == other
        return super().__eq__(other)

    def __hash__(self) -> int:
        return hash(self.value)


class ClientRole(StringComparableEnum):
    """Declared identity of a connection."""
    UNIDENTIFIED = "unidentified"  # accepted, no client_identify seen yet
    REMOTE = "remote"              # control surface
    STAGE = "stage"                # presentation surface


class EventType(StringComparableEnum):
    """Protocol message tags."""
    CLIENT_IDENTIFY = "client_identify"
    SCENE_CHANGE = "scene_change"
    PHRASE_TRIGGER = "phrase_trigger"
    SCENE1_COMPLETE = "scene1_complete"
    VOLUME_CHANGE = "volume_change"
    HEARTBEAT = "heartbeat"
    STATE_SYNC = "state_sync"


class ProtocolError(ValueError):
    """A frame that is not valid JSON or not a valid protocol event."""

    def __init__(self, reason: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(reason)
        self.reason = reason
        self.details = details or []


# JSON numbers arrive as int/float and bools are ints in Python,
# so the wire types are checked before pydantic coerces anything.

def _require_int(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("must be an integer")
    return value


def _require_number(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("must be a number")
    return value


def _require_str(value: Any) -> Any:
    if not isinstance(value, str):
        raise ValueError("must be a string")
    return value


def _require_bool(value: Any) -> Any:
    if not isinstance(value, bool):
        raise ValueError("must be a boolean")
    return value


SceneId = Annotated[int, BeforeValidator(_require_int), Field(gt=0)]
Volume = Annotated[float, BeforeValidator(_require_number), Field(allow_inf_nan=False)]
Flag = Annotated[bool, BeforeValidator(_require_bool)]
Text = Annotated[str, BeforeValidator(_require_str)]


class WireModel(BaseModel):
    """Base for everything that goes over the socket."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra='ignore',
    )

    def to_wire(self) -> Dict[str, Any]:
        """Plain dict using wire (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)


class InstallationState(WireModel):
    """The shared control state of the installation. Immutable snapshot."""

    current_scene: SceneId = Field(default=DEFAULT_SCENE, alias="currentScene")
    volume: Volume = Field(default=DEFAULT_VOLUME)
    scene1_auto_enabled: Flag = Field(default=DEFAULT_SCENE1_AUTO, alias="scene1AutoEnabled")


class ClientIdentify(WireModel):
    type: Literal["client_identify"] = "client_identify"
    role: Literal["remote", "stage"]


class SceneChange(WireModel):
    type: Literal["scene_change"] = "scene_change"
    scene_id: SceneId = Field(alias="sceneId")


class PhraseTrigger(WireModel):
    type: Literal["phrase_trigger"] = "phrase_trigger"
    phrase_text: Text = Field(alias="phraseText")
    scene_id: SceneId = Field(alias="sceneId")


class Scene1Complete(WireModel):
    type: Literal["scene1_complete"] = "scene1_complete"


class VolumeChange(WireModel):
    type: Literal["volume_change"] = "volume_change"
    volume: Volume


class Heartbeat(WireModel):
    type: Literal["heartbeat"] = "heartbeat"


class StateSync(WireModel):
    """Full snapshot, server to client only."""
    type: Literal["state_sync"] = "state_sync"
    state: InstallationState


RealtimeEvent = Annotated[
    Union[
        ClientIdentify,
        SceneChange,
        PhraseTrigger,
        Scene1Complete,
        VolumeChange,
        Heartbeat,
        StateSync,
    ],
    Field(discriminator="type"),
]

MutatingEvent = Union[SceneChange, VolumeChange, Scene1Complete]

_event_adapter: TypeAdapter = TypeAdapter(RealtimeEvent)

_KNOWN_TYPES = frozenset(t.value for t in EventType)


def parse_event(raw: Union[str, bytes]) -> RealtimeEvent:
    """Decode one text frame into an event model.

    Args:
        raw: Frame payload as received

    Returns:
        The validated event

    Raises:
        ProtocolError: If the frame is not JSON, not an object, has an unknown
            ``type`` or fails validation for its type
    """
    try:
        data = json.loads(raw)
    except (ValueError, RecursionError, TypeError) as e:
        # JSONDecodeError, bad UTF-8, oversized integer literals, runaway nesting
        raise ProtocolError(f"malformed JSON: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError(f"frame is a JSON {type(data).__name__}, expected an object")

    event_type = data.get("type")
    if not isinstance(event_type, str):
        raise ProtocolError("missing or non-string 'type' field")
    if event_type not in _KNOWN_TYPES:
        raise ProtocolError(f"unknown event type {event_type!r}")

    try:
        return _event_adapter.validate_python(data)
    except ValidationError as e:
        raise ProtocolError(
            f"invalid {event_type} event ({e.error_count()} error(s))",
            details=e.errors(include_url=False),
        ) from e


def encode_event(event: WireModel) -> str:
    """Serialize an event for the wire."""
    return event.model_dump_json(by_alias=True)


# =============================================================================
# SCENE CATALOG
# =============================================================================

class Scene(BaseModel):
    """A numbered phase of the exhibit with its triggerable phrases."""

    model_config = ConfigDict(extra='forbid')

    id: int = Field(gt=0, description="Scene number")
    name: str = Field(description="Display name")
    description: str = Field(default="", description="Operator hint")
    phrases: List[str] = Field(default_factory=list, description="Phrases the remote can trigger")


DEFAULT_SCENES: List[Scene] = [
    Scene(
        id=1,
        name="Opening Thoughts",
        description="First 5 phrases - sequential remote trigger",
        phrases=[
            "¿Y si me olvido de lo que tengo que decir?",
            "Capaz no es suficiente lo que preparé...",
            "¿Desenchufé la planchita de pelo?",
            "¿Cómo hago para subirlos a todos al barco de Sistema Nervioso Central?",
            "¿Por qué no me habré puesto zapatos más cómodos?",
        ],
    ),
    Scene(
        id=2,
        name="Start Scene",
        description="Start button to begin",
        phrases=[],
    ),
    Scene(
        id=3,
        name="Scene 3",
        description="3 individual phrase buttons",
        phrases=[
            "Espero que Rocío no me pregunte nada difícil",
            "Necesito ese micrófono… ¿estará en Mercado Libre?",
            "Rocío… ¡te olvidaste de presentarme! Tenemos que anunciar mi nueva posición.",
        ],
    ),
    Scene(
        id=4,
        name="Closing Scene",
        description="4 closing phrases - sequential trigger",
        phrases=[
            "¡Sí! Juntos podemos, ¡vamos con todo!",
            "¿Nos sacamos una foto todos juntos?",
            "¡Lo vamos a lograr!",
            "¡Qué bueno estar acá con todos!",
        ],
    ),
]

# Played by the stage once scene 1's manual phrases are exhausted
SCENE1_AUTO_PHRASES: List[str] = [
    "Hoy la misión es clara: motivar, inspirar y sumar confianza.",
    "¿Traje el cargador del celu? ¿Necesitaré adaptador?",
    "Respirá profundo: convención, allá vamos.",
    "Último repaso mental: todo bajo control.",
    "Ojalá que la energía positiva sea contagiosa.",
    "¿Estará mi perfume en el freeshop?",
    "Tengo que comprar garotos para todos en la oficina.",
    "Preparada, enfocada y con toda la energía lista.",
]


def find_scene(scenes: List[Scene], scene_id: int) -> Optional[Scene]:
    """Return the scene with ``scene_id`` or None."""
    for scene in scenes:
        if scene.id == scene_id:
            return scene
    return None
