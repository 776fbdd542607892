"""Save handlers adapting gameplay subsystems to the save protocol."""

from savekit.systems.base import SaveHandler
from savekit.systems.progress import GameProgress, GameProgressSaveData, ProgressSaveHandler
from savekit.systems.inventory import Inventory, ItemStack, InventorySaveData, InventorySaveHandler
from savekit.systems.storage import StorageContainer, StorageManager, StorageSaveHandler
from savekit.systems.settings import Settings, SettingsSaveHandler

__all__ = [
    'SaveHandler',
    'GameProgress',
    'GameProgressSaveData',
    'ProgressSaveHandler',
    'Inventory',
    'ItemStack',
    'InventorySaveData',
    'InventorySaveHandler',
    'StorageContainer',
    'StorageManager',
    'StorageSaveHandler',
    'Settings',
    'SettingsSaveHandler',
]
