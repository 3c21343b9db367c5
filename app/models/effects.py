"""
Side-effect descriptions returned by domain mutations
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union


@dataclass(frozen=True)
class Broadcast:
    """Deliver ``{type, args}`` to every socket subscribed to ``room``"""
    room: str
    type: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Persist:
    """Write the entity's record to storage"""
    entity: Any


Effect = Union[Broadcast, Persist]
Effects = List[Effect]


def event_room(event_id) -> str:
    return f"event/{event_id}"


def session_room(session_id) -> str:
    return f"session/{session_id}"
