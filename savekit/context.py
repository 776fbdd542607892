"""
Save context - the explicit owner of every save system object.

Replaces process-wide singletons: one context holds the config, the
event bus, the cipher, the slot store, the save manager and the attached
save handlers. Tests build isolated contexts side by side.

Usage:
    context = SaveContext.create(SaveSystemConfig.from_file("save.json"))
    ProgressSaveHandler(context, progress, persistent=True)
    context.manager.start_save(2)
    context.update(dt)
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable, Optional

from savecore.codec import ArrayBlockCodec
from savecore.config import ConfigError, SaveSystemConfig
from savecore.core.events import EventBus
from savecore.crypto.cipher import Cipher
from savekit.save.manager import SaveManager
from savekit.save.persistence import SlotStore

if TYPE_CHECKING:
    from savekit.systems.base import SaveHandler


logger = logging.getLogger(__name__)


class SaveContext:
    """Container for one save system instance."""

    def __init__(
        self,
        config: SaveSystemConfig,
        event_bus: EventBus,
        cipher: Optional[Cipher],
        store: SlotStore,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.event_bus = event_bus
        self.cipher = cipher
        self.store = store
        self.codec = ArrayBlockCodec(cipher)
        self._clock = clock
        self.manager = self._create_manager()
        self._handlers: list[SaveHandler] = []

    @classmethod
    def create(
        cls,
        config: Optional[SaveSystemConfig] = None,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> SaveContext:
        """
        Build a context from configuration.

        Raises:
            ConfigError: If encryption is enabled but no key can be resolved
        """
        config = config or SaveSystemConfig()
        key = config.resolve_key()
        if config.encrypt_data and key is None:
            raise ConfigError(
                "encrypt_data is enabled but no key is configured "
                "(set encryption_key, SLOTKEEPER_ENCRYPTION_KEY or key_file)"
            )

        cipher = Cipher(key) if key else None
        context = cls(
            config=config,
            event_bus=event_bus or EventBus(),
            cipher=cipher,
            store=SlotStore(config),
            clock=clock,
        )
        logger.debug(
            f"Save context ready (location={config.file_location.value}, "
            f"encrypt={config.encrypt_data})"
        )
        return context

    @property
    def encrypt(self) -> bool:
        """Whether handlers should cipher their array blocks."""
        return self.config.encrypt_data and self.cipher is not None

    @property
    def handlers(self) -> list[SaveHandler]:
        return list(self._handlers)

    def add_handler(self, handler: SaveHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def remove_handler(self, handler: SaveHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def update(self, dt: float = 0.0) -> None:
        """Tick handlers (deferred responses) and then the manager."""
        for handler in list(self._handlers):
            handler.update(dt)
        self.manager.update(dt)

    def reset_scene(self) -> SaveManager:
        """
        Tear down scene-bound save objects.

        Non-persistent handlers are detached. The manager survives when
        dont_destroy_on_load is set; otherwise it is shut down (cancelling
        collecting saves) and replaced, and persistent handlers register
        with the new one.

        Returns:
            The active manager
        """
        for handler in list(self._handlers):
            if not handler.persistent:
                handler.detach()

        if self.config.dont_destroy_on_load:
            return self.manager

        self.manager.shutdown()
        self.manager = self._create_manager()
        for handler in self._handlers:
            self.manager.register_participant(handler.name)
        logger.info("Save manager recreated for new scene")
        return self.manager

    def _create_manager(self) -> SaveManager:
        return SaveManager(
            self.config,
            self.event_bus,
            store=self.store,
            cipher=self.cipher,
            clock=self._clock,
        )
