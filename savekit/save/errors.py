class SaveError(Exception):
    """Base exception for save/load errors."""


class SlotNotFoundError(SaveError):
    """Raised when a slot has no save file (and no backup to fall back to)."""


class SlotOccupiedError(SaveError):
    """Raised when a write would replace an existing save without explicit intent."""


class SlotWriteError(SaveError):
    """Raised when a save file cannot be written."""


class CorruptPackageError(SaveError):
    """Raised when a save file cannot be parsed into a package at all."""


class OperationError(SaveError):
    """Raised for invalid save/load operation requests."""
