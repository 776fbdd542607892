"""
Save protocol events and their payloads.

Every event is published as keyword data on the EventBus. The payload
dataclasses give the keyword set a name and a type:

    bus.publish(SaveEvent.SAVE_RESPONSE, **response.to_data())
    ...
    response = SaveResponse.from_event(event)
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum, auto
from typing import Any, TypeVar

from savecore.core.events import Event


class SaveEvent(Enum):
    """Save system events."""
    SAVE_REQUESTED = auto()
    SAVE_RESPONSE = auto()
    LOAD_DATA = auto()
    SAVE_COMPLETED = auto()
    LOAD_COMPLETED = auto()


P = TypeVar('P', bound='_Payload')


class _Payload:
    """Keyword-data conversion shared by all payloads."""

    def to_data(self) -> dict[str, Any]:
        # Shallow copy; system_data dicts are shared, not copied
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_event(cls: type[P], event: Event) -> P:
        """Rebuild the payload from a published event's data."""
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in event.data.items() if k in names})


@dataclass
class SaveRequest(_Payload):
    """Broadcast asking every participant for its save blob."""
    save_slot: int
    operation_id: str
    request_time: datetime
    expected_systems: int


@dataclass
class SaveResponse(_Payload):
    """One participant's answer to a SaveRequest."""
    system_name: str
    save_data: str
    operation_id: str
    total_systems: int = 0
    response_time: datetime = field(default_factory=datetime.now)
    success: bool = True


@dataclass
class LoadDelivery(_Payload):
    """Broadcast carrying a loaded slot's full name->blob mapping."""
    save_slot: int
    system_data: dict[str, str]
    save_time: str
    operation_id: str
    scene_name: str = ""


@dataclass
class SaveCompleted(_Payload):
    """Terminal event of a save operation."""
    save_slot: int
    success: bool
    systems_saved: int
    error_message: str
    save_time: str
    operation_id: str


@dataclass
class LoadCompleted(_Payload):
    """Terminal event of a load operation."""
    save_slot: int
    success: bool
    systems_loaded: int
    error_message: str
    save_time: str
    operation_id: str

