"""
World storage - item containers (chests, lockers) identified by storage id.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from savekit.systems.base import SaveHandler
from savekit.systems.inventory import ItemStack


logger = logging.getLogger(__name__)


class StorageContainer:
    """Fixed-size container of item stacks."""

    def __init__(self, storage_id: str, slot_count: int = 6):
        self.storage_id = storage_id
        self.slots: list[Optional[ItemStack]] = [None] * slot_count

    @property
    def slot_count(self) -> int:
        return len(self.slots)

    def put(self, index: int, item_name: str, quantity: int = 1) -> None:
        self.slots[index] = ItemStack(item_name=item_name, quantity=quantity)

    def take(self, index: int) -> Optional[ItemStack]:
        stack, self.slots[index] = self.slots[index], None
        return stack


class ContainerSlotSaveData(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    slot_index: int
    item_name: str
    quantity: int = 1


class ContainerSaveData(BaseModel):
    """One container; only occupied slots are stored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    storage_id: str
    slot_count: int
    slots: list[ContainerSlotSaveData] = Field(default_factory=list)


class StorageSaveData(BaseModel):
    containers: list[ContainerSaveData] = Field(default_factory=list)


class StorageManager:
    """Registry of every storage container in the world."""

    def __init__(self):
        self.containers: dict[str, StorageContainer] = {}

    def add(self, container: StorageContainer) -> StorageContainer:
        self.containers[container.storage_id] = container
        return container

    def get(self, storage_id: str) -> Optional[StorageContainer]:
        return self.containers.get(storage_id)

    def to_save_data(self) -> StorageSaveData:
        return StorageSaveData(containers=[
            ContainerSaveData(
                storage_id=c.storage_id,
                slot_count=c.slot_count,
                slots=[
                    ContainerSlotSaveData(slot_index=i, item_name=s.item_name, quantity=s.quantity)
                    for i, s in enumerate(c.slots)
                    if s is not None and not s.is_empty
                ],
            )
            for c in self.containers.values()
        ])

    def apply_save_data(self, data: StorageSaveData) -> None:
        """
        Refill containers from save data.

        Containers missing from the world are created; slot indices
        outside a container are skipped.
        """
        for saved in data.containers:
            container = self.containers.get(saved.storage_id)
            if container is None:
                container = self.add(StorageContainer(saved.storage_id, saved.slot_count))
            container.slots = [None] * container.slot_count

            for slot in saved.slots:
                if 0 <= slot.slot_index < container.slot_count:
                    container.put(slot.slot_index, slot.item_name, slot.quantity)
                else:
                    logger.warning(
                        f"Container '{saved.storage_id}' has no slot {slot.slot_index}; item dropped"
                    )


class StorageSaveHandler(SaveHandler):
    """Saves and restores every container of a StorageManager."""

    system_name = "StorageManager"

    def __init__(self, context, storage: Optional[StorageManager] = None, **kwargs):
        self.storage = storage or StorageManager()
        super().__init__(context, **kwargs)

    def capture(self) -> str:
        return self.storage.to_save_data().model_dump_json(by_alias=True)

    def restore(self, blob: str) -> None:
        self.storage.apply_save_data(StorageSaveData.model_validate_json(blob))
