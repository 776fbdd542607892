"""
SaveHandler base class - adapts one subsystem to the save protocol.

A handler answers every SAVE_REQUESTED with one SAVE_RESPONSE carrying
its serialized blob, and on LOAD_DATA picks its own blob out of the
delivered mapping. The handler registers its name with the manager when
attached, so the manager knows exactly how many responses to expect.

Usage:
    class FlagsHandler(SaveHandler):
        system_name = "Flags"

        def capture(self) -> str:
            return json.dumps(self.flags)

        def restore(self, blob: str) -> None:
            self.flags = json.loads(blob)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar, Optional

from savecore.core.events import Event
from savekit.save.events import LoadDelivery, SaveEvent, SaveRequest, SaveResponse

if TYPE_CHECKING:
    from savekit.context import SaveContext


logger = logging.getLogger(__name__)


class SaveHandler(ABC):
    """
    Base class for save-capable subsystems.

    Override capture() and restore(). Set deferred=True to answer save
    requests on the next update() instead of inside the broadcast.
    """

    # Name used as the key in the save package
    system_name: ClassVar[str] = ""

    def __init__(
        self,
        context: SaveContext,
        *,
        persistent: bool = False,
        deferred: bool = False,
    ):
        self.context = context
        self.persistent = persistent
        self.deferred = deferred
        self.last_loaded_slot: Optional[int] = None
        self._pending: list[SaveRequest] = []
        self._attached = False
        self.attach()

    @property
    def name(self) -> str:
        return self.system_name or type(self).__name__

    @property
    def attached(self) -> bool:
        return self._attached

    @abstractmethod
    def capture(self) -> str:
        """Serialize the subsystem's state to a blob."""
        pass

    @abstractmethod
    def restore(self, blob: str) -> None:
        """Restore the subsystem's state from a blob."""
        pass

    def attach(self) -> None:
        """Start listening and register with the manager."""
        if self._attached:
            return
        bus = self.context.event_bus
        bus.subscribe(SaveEvent.SAVE_REQUESTED, self._on_save_requested)
        bus.subscribe(SaveEvent.LOAD_DATA, self._on_load_data)
        self.context.manager.register_participant(self.name)
        self.context.add_handler(self)
        self._attached = True

    def detach(self) -> None:
        """Stop listening, unregister and drop unanswered requests."""
        if not self._attached:
            return
        bus = self.context.event_bus
        bus.unsubscribe(SaveEvent.SAVE_REQUESTED, self._on_save_requested)
        bus.unsubscribe(SaveEvent.LOAD_DATA, self._on_load_data)
        self.context.manager.unregister_participant(self.name)
        self.context.remove_handler(self)
        self._pending.clear()
        self._attached = False

    def update(self, dt: float = 0.0) -> None:
        """Answer deferred requests."""
        self.flush_pending()

    def flush_pending(self) -> int:
        """
        Answer every deferred request.

        Returns:
            Number of responses sent
        """
        pending, self._pending = self._pending, []
        for request in pending:
            self.respond(request)
        return len(pending)

    def respond(self, request: SaveRequest) -> None:
        """Capture state and publish the response for a request."""
        try:
            blob = self.capture()
            success = True
        except Exception:
            logger.exception(f"{self.name} failed to capture save data")
            blob, success = "", False

        response = SaveResponse(
            system_name=self.name,
            save_data=blob,
            operation_id=request.operation_id,
            total_systems=request.expected_systems,
            success=success,
        )
        self.context.event_bus.publish(SaveEvent.SAVE_RESPONSE, **response.to_data())

    def _on_save_requested(self, event: Event) -> None:
        request = SaveRequest.from_event(event)
        if self.deferred:
            self._pending.append(request)
        else:
            self.respond(request)

    def _on_load_data(self, event: Event) -> None:
        delivery = LoadDelivery.from_event(event)
        blob = delivery.system_data.get(self.name)
        if blob is None:
            logger.debug(f"No save data for {self.name} in slot {delivery.save_slot}")
            return

        try:
            self.restore(blob)
        except Exception:
            logger.exception(f"{self.name} failed to restore save data")
            return

        self.last_loaded_slot = delivery.save_slot
        logger.debug(f"{self.name} restored from slot {delivery.save_slot}")
