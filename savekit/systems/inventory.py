"""
Inventory - item stacks in normal and dedicated slots, plus an equipped item.

The inventory saves itself as a JSON blob (InventorySaveData). Restoring
fills slots by index up to the smaller of the saved and current slot
counts, so a save from a bigger inventory never overflows a smaller one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from savekit.systems.base import SaveHandler


logger = logging.getLogger(__name__)


@dataclass
class ItemStack:
    """
    A stack of items in one slot.

    Attributes:
        item_name: Display/lookup name of the item
        quantity: Number of items in stack
        item_id: Optional stable id for lookup
        max_stack: Maximum stack size
    """
    item_name: str = ""
    quantity: int = 1
    item_id: str = ""
    max_stack: int = 99

    @property
    def is_full(self) -> bool:
        return self.quantity >= self.max_stack

    @property
    def is_empty(self) -> bool:
        return self.quantity <= 0

    def add(self, amount: int = 1) -> int:
        """
        Add to stack.

        Returns:
            Amount that couldn't be added (overflow)
        """
        to_add = min(amount, self.max_stack - self.quantity)
        self.quantity += to_add
        return amount - to_add

    def remove(self, amount: int = 1) -> int:
        """
        Remove from stack.

        Returns:
            Actual amount removed
        """
        to_remove = min(amount, self.quantity)
        self.quantity -= to_remove
        return to_remove


class Inventory:
    """
    Item container with general slots, dedicated (key item) slots and
    one equipped item.
    """

    def __init__(self, normal_slots: int = 3, dedicated_slots: int = 0):
        self.normal_slots: list[Optional[ItemStack]] = [None] * normal_slots
        self.dedicated_slots: list[Optional[ItemStack]] = [None] * dedicated_slots
        self.equipped: Optional[ItemStack] = None

    @property
    def free_slots(self) -> int:
        return sum(1 for s in self.normal_slots if s is None)

    def add_item(self, item_name: str, quantity: int = 1, max_stack: int = 99) -> int:
        """
        Add items to the normal slots, stacking first.

        Returns:
            Amount that couldn't be added
        """
        remaining = quantity

        for stack in self.normal_slots:
            if stack and stack.item_name == item_name and not stack.is_full:
                remaining = stack.add(remaining)
                if remaining <= 0:
                    return 0

        for i, stack in enumerate(self.normal_slots):
            if stack is None:
                new_stack = ItemStack(item_name=item_name, quantity=0, max_stack=max_stack)
                remaining = new_stack.add(remaining)
                self.normal_slots[i] = new_stack
                if remaining <= 0:
                    return 0

        return remaining

    def remove_item(self, item_name: str, quantity: int = 1) -> int:
        """
        Remove items from the normal slots.

        Returns:
            Amount actually removed
        """
        remaining = quantity
        removed = 0

        for i, stack in enumerate(self.normal_slots):
            if stack and stack.item_name == item_name:
                taken = stack.remove(remaining)
                removed += taken
                remaining -= taken
                if stack.is_empty:
                    self.normal_slots[i] = None
                if remaining <= 0:
                    break

        return removed

    def count_item(self, item_name: str) -> int:
        return sum(
            s.quantity for s in self.normal_slots + self.dedicated_slots
            if s and s.item_name == item_name
        )

    def equip(self, item_name: str, quantity: int = 1) -> None:
        self.equipped = ItemStack(item_name=item_name, quantity=quantity)

    def unequip(self) -> Optional[ItemStack]:
        stack, self.equipped = self.equipped, None
        return stack

    def clear(self) -> None:
        self.normal_slots = [None] * len(self.normal_slots)
        self.dedicated_slots = [None] * len(self.dedicated_slots)
        self.equipped = None


class InventorySlotSaveData(BaseModel):
    """One saved slot."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    item_name: str = ""
    item_id: str = ""
    quantity: int = 0
    is_empty: bool = True

    @classmethod
    def from_stack(cls, stack: Optional[ItemStack]) -> InventorySlotSaveData:
        if stack is None or stack.is_empty:
            return cls()
        return cls(
            item_name=stack.item_name,
            item_id=stack.item_id,
            quantity=stack.quantity,
            is_empty=False,
        )

    def to_stack(self) -> Optional[ItemStack]:
        if self.is_empty or not self.item_name or self.quantity <= 0:
            return None
        return ItemStack(item_name=self.item_name, quantity=self.quantity, item_id=self.item_id)


class InventorySaveData(BaseModel):
    """Serialized form of an Inventory."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    normal_slots: list[InventorySlotSaveData] = Field(default_factory=list)
    dedicated_slots: list[InventorySlotSaveData] = Field(default_factory=list)
    equipped_item: str = ""
    equipped_quantity: int = 0

    @classmethod
    def from_inventory(cls, inventory: Inventory) -> InventorySaveData:
        equipped = inventory.equipped
        return cls(
            normal_slots=[InventorySlotSaveData.from_stack(s) for s in inventory.normal_slots],
            dedicated_slots=[InventorySlotSaveData.from_stack(s) for s in inventory.dedicated_slots],
            equipped_item=equipped.item_name if equipped else "",
            equipped_quantity=equipped.quantity if equipped else 0,
        )

    def apply_to(self, inventory: Inventory) -> None:
        inventory.clear()

        for i in range(min(len(self.normal_slots), len(inventory.normal_slots))):
            inventory.normal_slots[i] = self.normal_slots[i].to_stack()

        for i in range(min(len(self.dedicated_slots), len(inventory.dedicated_slots))):
            inventory.dedicated_slots[i] = self.dedicated_slots[i].to_stack()

        if self.equipped_item:
            inventory.equip(self.equipped_item, max(1, self.equipped_quantity))

        dropped = max(0, len(self.normal_slots) - len(inventory.normal_slots))
        if dropped:
            logger.warning(f"Saved inventory has {dropped} more slots than the current one")


class InventorySaveHandler(SaveHandler):
    """Saves and restores an Inventory."""

    system_name = "InventorySystem"

    def __init__(self, context, inventory: Optional[Inventory] = None, **kwargs):
        self.inventory = inventory or Inventory()
        super().__init__(context, **kwargs)

    def capture(self) -> str:
        return InventorySaveData.from_inventory(self.inventory).model_dump_json(by_alias=True)

    def restore(self, blob: str) -> None:
        InventorySaveData.model_validate_json(blob).apply_to(self.inventory)
