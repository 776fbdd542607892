"""
Save/Load orchestration - gather-scatter over the event bus.

Provides:
- Non-blocking save: broadcast a request, collect responses, write a package
- Load: read a package and broadcast the name->blob mapping
- Explicit participant registry (exact expected response count)
- Timeouts with partial saves, checked on update()
- Quick save/load, auto-save, slot queries and validation

Every start_save()/start_load() call produces exactly one SAVE_COMPLETED or
LOAD_COMPLETED event. Failures are reported through that event's
error_message and never raised to the caller.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from savecore.config import SaveSystemConfig
from savecore.core.events import Event, EventBus
from savecore.crypto.cipher import Cipher
from savekit.save.aggregator import OperationState, ResponseAggregator, SaveOperation
from savekit.save.errors import CorruptPackageError, SaveError, SlotNotFoundError
from savekit.save.events import (
    LoadCompleted,
    LoadDelivery,
    SaveCompleted,
    SaveEvent,
    SaveRequest,
    SaveResponse,
)
from savekit.save.package import SavePackage, decode_package, encode_package
from savekit.save.persistence import SaveSlotInfo, SlotStore


logger = logging.getLogger(__name__)


@dataclass
class _PendingSave:
    scene_name: str
    overwrite: bool


class SaveManager:
    """
    Drives save and load operations for numbered slots.

    Usage:
        manager = SaveManager(config, event_bus)
        manager.register_participant("Inventory")
        op_id = manager.start_save(2)       # SAVE_COMPLETED follows
        manager.update(dt)                   # each tick: timeouts, auto-save
        manager.start_load(2)                # LOAD_DATA, then LOAD_COMPLETED
    """

    AUTO_SAVE_SLOT = 99  # Special slot for auto-saves

    def __init__(
        self,
        config: SaveSystemConfig,
        event_bus: EventBus,
        store: Optional[SlotStore] = None,
        cipher: Optional[Cipher] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.event_bus = event_bus
        self.store = store or SlotStore(config)
        self.cipher = cipher

        self._aggregator = ResponseAggregator(on_finished=self._on_operation_finished, clock=clock)
        self._participants: list[str] = []
        self._pending: dict[str, _PendingSave] = {}

        # Runtime tracking
        self._current_slot: Optional[int] = None
        self._scene_name: str = ""

        # Auto-save settings
        self._auto_save_enabled: bool = False
        self._auto_save_interval: float = 300.0
        self._auto_save_timer: float = 0.0

        self.event_bus.subscribe(SaveEvent.SAVE_RESPONSE, self._on_save_response)

    @property
    def current_slot(self) -> Optional[int]:
        """Slot last saved to or loaded from."""
        return self._current_slot

    @property
    def scene_name(self) -> str:
        return self._scene_name

    def set_scene(self, name: str) -> None:
        """Set the scene name stamped on saves that don't pass one."""
        self._scene_name = name or ""

    @property
    def aggregator(self) -> ResponseAggregator:
        return self._aggregator

    # Participants

    @property
    def participants(self) -> list[str]:
        return list(self._participants)

    def register_participant(self, name: str) -> None:
        """
        Register a save-capable system.

        Only systems registered before start_save() count towards that
        operation's expected responses.
        """
        if not name:
            raise ValueError("Participant name cannot be empty")
        if name in self._participants:
            logger.debug(f"Participant '{name}' already registered")
            return
        self._participants.append(name)
        logger.debug(f"Registered save participant '{name}'")

    def unregister_participant(self, name: str) -> None:
        if name in self._participants:
            self._participants.remove(name)
            logger.debug(f"Unregistered save participant '{name}'")

    # Slots

    def is_valid_slot(self, slot: int) -> bool:
        """Regular slots 0..max_slots, the quick-save slot and the auto-save slot."""
        return (
            0 <= slot <= self.config.max_slots
            or slot == self.config.quick_save_slot
            or slot == self.AUTO_SAVE_SLOT
        )

    def slot_numbers(self) -> list[int]:
        """Slots shown to the player (1..max_slots)."""
        return list(range(1, self.config.max_slots + 1))

    # Save

    def start_save(
        self,
        slot: int,
        *,
        scene_name: Optional[str] = None,
        overwrite: bool = False,
    ) -> str:
        """
        Start saving to a slot.

        Returns immediately; SAVE_COMPLETED reports the outcome.

        Args:
            slot: Save slot number
            scene_name: Scene stamped on the package (defaults to the current scene)
            overwrite: Allow replacing an existing save in the slot

        Returns:
            The operation id
        """
        operation_id = uuid.uuid4().hex

        error = self._check_save_allowed(slot, overwrite)
        if error:
            logger.warning(f"Save to slot {slot} rejected: {error}")
            self._publish_save_completed(slot, operation_id, False, 0, error)
            return operation_id

        expected_names = frozenset(self._participants) if self._participants else None
        self._pending[operation_id] = _PendingSave(
            scene_name=self._scene_name if scene_name is None else scene_name,
            overwrite=overwrite,
        )
        operation = self._aggregator.open(
            operation_id,
            slot,
            len(self._participants),
            expected_names=expected_names,
            timeout=self.config.save_timeout,
        )

        logger.info(
            f"Save requested for slot {slot} "
            f"(operation {operation_id}, expecting {operation.expected_systems})"
        )
        request = SaveRequest(
            save_slot=slot,
            operation_id=operation_id,
            request_time=operation.request_time,
            expected_systems=operation.expected_systems,
        )
        self.event_bus.publish(SaveEvent.SAVE_REQUESTED, **request.to_data())
        return operation_id

    def quick_save(self) -> str:
        """Save to the quick-save slot, replacing what is there."""
        return self.start_save(self.config.quick_save_slot, overwrite=True)

    def cancel(self, operation_id: str) -> bool:
        """
        Cancel a collecting save. Nothing is written.

        Returns:
            True if the operation was still collecting
        """
        return self._aggregator.cancel(operation_id, "Save cancelled")

    def _check_save_allowed(self, slot: int, overwrite: bool) -> str:
        if not self.is_valid_slot(slot):
            return f"Invalid save slot: {slot}"
        if self._aggregator.is_collecting(slot):
            return f"A save to slot {slot} is already in progress"
        try:
            if self.store.exists(slot) and not overwrite:
                return f"Slot {slot} already has a save; delete it first or overwrite"
        except Exception as e:
            logger.exception(f"Cannot resolve save path for slot {slot}")
            return f"Cannot access slot {slot}: {e}"
        return ""

    def _on_save_response(self, event: Event) -> None:
        try:
            response = SaveResponse.from_event(event)
        except TypeError as e:
            logger.warning(f"Malformed save response ignored: {e}")
            return

        self._aggregator.register_response(
            response.operation_id,
            response.system_name,
            response.save_data,
            success=response.success,
            response_time=response.response_time,
        )

    def _on_operation_finished(self, operation: SaveOperation) -> None:
        pending = self._pending.pop(operation.operation_id, None) or _PendingSave("", False)

        if operation.state is OperationState.CANCELLED:
            logger.info(f"Save to slot {operation.slot} cancelled ({operation.operation_id})")
            self._publish_save_completed(
                operation.slot, operation.operation_id, False, 0, operation.error or "Save cancelled"
            )
            return

        errors = []
        if operation.state is OperationState.TIMED_OUT:
            errors.append(operation.error)
        elif 0 < operation.expected_systems and operation.systems_responded < operation.expected_systems:
            errors.append(
                f"Finalized with {operation.systems_responded} of "
                f"{operation.expected_systems} systems responded"
            )

        failed = operation.failed_systems()
        if failed:
            errors.append(f"Systems failed to save: {', '.join(failed)}")

        collected = operation.collected()
        success = not errors

        try:
            package = SavePackage.from_map(
                operation.slot,
                pending.scene_name,
                collected,
                operation_id=operation.operation_id,
                game_version=self.config.game_version,
                total_systems=operation.expected_systems,
                systems_responded=operation.systems_responded,
            )
            data = encode_package(package, self.cipher, self.config.encrypt_data)
            self._check_size(operation.slot, data)
            self.store.write(
                operation.slot,
                data,
                overwrite=pending.overwrite,
                keep_backup=not success,
            )
        except Exception as e:
            logger.exception(f"Save to slot {operation.slot} failed")
            self._publish_save_completed(
                operation.slot, operation.operation_id, False, 0, f"Save failed: {e}"
            )
            return

        self._current_slot = operation.slot
        message = "; ".join(errors)
        if success:
            logger.info(f"Saved slot {operation.slot}: {len(collected)} systems")
        else:
            logger.warning(f"Partial save written to slot {operation.slot}: {message}")

        self._publish_save_completed(
            operation.slot,
            operation.operation_id,
            success,
            len(collected),
            message,
            package.save_time,
        )

    def _check_size(self, slot: int, data: bytes) -> None:
        size_mb = len(data) / (1024 * 1024)
        if size_mb > self.config.max_save_file_size_mb:
            logger.warning(
                f"Save for slot {slot} is {size_mb:.2f} MB "
                f"(limit {self.config.max_save_file_size_mb} MB)"
            )

    def _publish_save_completed(
        self,
        slot: int,
        operation_id: str,
        success: bool,
        systems_saved: int,
        error_message: str,
        save_time: str = "",
    ) -> None:
        completed = SaveCompleted(
            save_slot=slot,
            success=success,
            systems_saved=systems_saved,
            error_message="" if success else (error_message or "Save failed"),
            save_time=save_time or datetime.now().isoformat(),
            operation_id=operation_id,
        )
        self.event_bus.publish(SaveEvent.SAVE_COMPLETED, **completed.to_data())

    # Load

    def start_load(self, slot: int) -> str:
        """
        Load a slot and broadcast its data.

        Publishes LOAD_DATA (on success) and then LOAD_COMPLETED before
        returning.

        Returns:
            The operation id
        """
        operation_id = uuid.uuid4().hex

        if not self.is_valid_slot(slot):
            self._publish_load_completed(slot, operation_id, False, 0, f"Invalid save slot: {slot}")
            return operation_id
        if self._aggregator.is_collecting(slot):
            self._publish_load_completed(
                slot, operation_id, False, 0, f"A save to slot {slot} is in progress"
            )
            return operation_id

        try:
            package = decode_package(self._read_slot(slot), self.cipher)
            system_data = package.to_map()
        except SaveError as e:
            logger.warning(f"Load from slot {slot} failed: {e}")
            self._publish_load_completed(slot, operation_id, False, 0, str(e))
            return operation_id
        except Exception as e:
            logger.exception(f"Load from slot {slot} failed")
            self._publish_load_completed(slot, operation_id, False, 0, f"Load failed: {e}")
            return operation_id

        if package.save_slot != slot:
            logger.warning(f"Save file for slot {slot} claims slot {package.save_slot}")

        self._current_slot = slot
        logger.info(f"Loaded slot {slot}: {len(system_data)} systems")

        delivery = LoadDelivery(
            save_slot=slot,
            system_data=system_data,
            save_time=package.save_time,
            operation_id=operation_id,
            scene_name=package.scene_name,
        )
        self.event_bus.publish(SaveEvent.LOAD_DATA, **delivery.to_data())
        self._publish_load_completed(
            slot, operation_id, True, len(system_data), "", package.save_time
        )
        return operation_id

    def quick_load(self) -> str:
        """Load the quick-save slot."""
        return self.start_load(self.config.quick_save_slot)

    def _read_slot(self, slot: int) -> bytes:
        try:
            return self.store.read(slot)
        except SlotNotFoundError:
            if not self.store.has_backup(slot):
                raise
        logger.warning(f"Save file for slot {slot} missing; loading backup")
        return self.store.read_backup(slot)

    def _publish_load_completed(
        self,
        slot: int,
        operation_id: str,
        success: bool,
        systems_loaded: int,
        error_message: str,
        save_time: str = "",
    ) -> None:
        completed = LoadCompleted(
            save_slot=slot,
            success=success,
            systems_loaded=systems_loaded,
            error_message="" if success else (error_message or "Load failed"),
            save_time=save_time,
            operation_id=operation_id,
        )
        self.event_bus.publish(SaveEvent.LOAD_COMPLETED, **completed.to_data())

    # Slot queries

    def save_exists(self, slot: int) -> bool:
        return self.is_valid_slot(slot) and self.store.exists(slot)

    def any_save_exists(self) -> bool:
        slots = set(self.slot_numbers()) | {self.config.quick_save_slot, self.AUTO_SAVE_SLOT}
        return any(self.store.exists(s) for s in slots)

    def delete_save(self, slot: int) -> bool:
        """
        Delete a save slot.

        Returns:
            True if files were removed; False if there was nothing to
            delete or a save to the slot is in progress
        """
        if self._aggregator.is_collecting(slot):
            logger.warning(f"Cannot delete slot {slot} while a save is in progress")
            return False
        try:
            return self.store.delete(slot)
        except OSError:
            logger.exception(f"Failed to delete slot {slot}")
            return False

    def get_save_info(self, slot: int) -> SaveSlotInfo:
        """Slot metadata, with save_time read from the package when readable."""
        info = self.store.describe(slot)
        if not info.exists:
            return info

        try:
            package = decode_package(self.store.read(slot), self.cipher)
        except SaveError as e:
            logger.debug(f"Slot {slot} unreadable: {e}")
            info.status = "Corrupted"
            return info

        info.save_time = package.save_time
        return info

    def get_save_slots(self) -> list[SaveSlotInfo]:
        """Metadata for every player-visible slot."""
        return [self.get_save_info(slot) for slot in self.slot_numbers()]

    def validate_save(self, slot: int) -> bool:
        """
        Validate a save file's integrity.

        Returns:
            True if the save parses and its checksum matches
        """
        try:
            decode_package(self.store.read(slot), self.cipher, strict=True)
        except SlotNotFoundError:
            return False
        except CorruptPackageError as e:
            logger.warning(f"Slot {slot} failed validation: {e}")
            return False
        return True

    def validate_all_saves(self, quarantine: bool = False) -> dict[int, bool]:
        """
        Validate every existing player-visible save.

        Args:
            quarantine: Move invalid saves aside as <file>.corrupt

        Returns:
            slot -> valid, for slots that have a save
        """
        results: dict[int, bool] = {}
        for slot in self.slot_numbers():
            if not self.store.exists(slot):
                continue
            valid = self.validate_save(slot)
            results[slot] = valid
            if not valid and quarantine:
                self.store.quarantine(slot)
        return results

    # Auto-save

    def enable_auto_save(self, interval: float = 300.0) -> None:
        """
        Enable timed auto-saves.

        Args:
            interval: Seconds between auto-saves
        """
        if interval <= 0:
            raise ValueError("Auto-save interval must be positive")
        self._auto_save_enabled = True
        self._auto_save_interval = interval
        self._auto_save_timer = 0.0

    def disable_auto_save(self) -> None:
        """Disable auto-save."""
        self._auto_save_enabled = False

    @property
    def auto_save_enabled(self) -> bool:
        return self._auto_save_enabled

    def auto_save(self) -> str:
        """Save to the auto-save slot, replacing what is there."""
        return self.start_save(self.AUTO_SAVE_SLOT, overwrite=True)

    # Tick

    def update(self, dt: float = 0.0) -> None:
        """
        Update save manager (call each frame).

        Times out overdue operations, finalizes operations that had no
        known participants, and drives the auto-save timer.
        """
        self._aggregator.poll()

        for operation in self._aggregator.active_operations:
            if operation.expected_systems == 0:
                self._aggregator.finalize(operation.operation_id)

        if self._auto_save_enabled:
            self._auto_save_timer += dt
            if self._auto_save_timer >= self._auto_save_interval:
                self._auto_save_timer = 0.0
                self.auto_save()

    def shutdown(self) -> None:
        """Cancel every collecting save and stop listening for responses."""
        for operation in self._aggregator.active_operations:
            self._aggregator.cancel(operation.operation_id, "Save manager shut down")
        self.event_bus.unsubscribe(SaveEvent.SAVE_RESPONSE, self._on_save_response)
