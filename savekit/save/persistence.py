"""
Slot persistence - maps slot numbers to files.

A slot file lives at:

    <root>[/<sub_folder_name>]/<slot>.<extension>

where <root> is one of the well-known locations in FileLocation. Writes
are atomic (temp file + os.replace) and never replace an existing save
unless the caller asks for it with overwrite=True.
"""

from __future__ import annotations

import logging
import os
import secrets
import shutil
import string
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from platformdirs import PlatformDirs

from savecore.config import ConfigError, FileLocation, SaveSystemConfig
from savekit.save.errors import SlotNotFoundError, SlotOccupiedError, SlotWriteError


logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".backup"
TEMP_SUFFIX = ".tmp"
CORRUPT_SUFFIX = ".corrupt"

_EXTENSION_FIRST_CHARS = string.ascii_lowercase
_EXTENSION_CHARS = string.ascii_lowercase + string.digits


@dataclass
class SaveSlotInfo:
    """Metadata about one slot, computed on demand."""
    slot_number: int
    exists: bool
    size_bytes: int = 0
    modified: Optional[datetime] = None
    save_time: str = ""
    has_backup: bool = False
    status: str = "Empty"


def generate_random_extension(length: int = 3) -> str:
    """Random file extension: a letter, then letters and digits."""
    if length < 1:
        raise ValueError("Extension length must be positive")
    first = secrets.choice(_EXTENSION_FIRST_CHARS)
    return first + ''.join(secrets.choice(_EXTENSION_CHARS) for _ in range(length - 1))


def resolve_root(config: SaveSystemConfig) -> Path:
    """
    Resolve the configured save root (without sub folder).

    Raises:
        ConfigError: If a custom root is selected but blank
    """
    location = config.file_location
    if location is FileLocation.PERSISTENT_DATA:
        return Path(PlatformDirs(appname=config.app_name, appauthor=False).user_data_dir)
    if location is FileLocation.TEMPORARY_CACHE:
        return Path(PlatformDirs(appname=config.app_name, appauthor=False).user_cache_dir)
    if location is FileLocation.APPLICATION_DATA:
        return Path(config.application_path)
    if location is FileLocation.STREAMING_ASSETS:
        return Path(config.application_path) / "StreamingAssets"

    if not config.custom_file_path.strip():
        raise ConfigError("Custom save location selected but custom_file_path is blank")
    return Path(config.custom_file_path).expanduser()


class SlotStore:
    """
    Reads and writes slot files.

    A per-store re-entrant lock serializes writers, so a slot never has
    two writes in flight.
    """

    def __init__(self, config: SaveSystemConfig):
        self.config = config
        self.lock = threading.RLock()

    @property
    def directory(self) -> Path:
        """Directory slot files live in."""
        root = resolve_root(self.config)
        if self.config.sub_folder:
            name = self.config.sub_folder_name.strip()
            if not name:
                raise ConfigError("Sub folder enabled but sub_folder_name is blank")
            return root / name
        return root

    def resolve_path(self, slot: int) -> Path:
        """Path of a slot's save file."""
        if slot < 0:
            raise ValueError(f"Slot must be non-negative, got {slot}")
        return self.directory / f"{slot}.{self.config.file_extension}"

    def backup_path(self, slot: int) -> Path:
        path = self.resolve_path(slot)
        return path.with_name(path.name + BACKUP_SUFFIX)

    def exists(self, slot: int) -> bool:
        return self.resolve_path(slot).is_file()

    def has_backup(self, slot: int) -> bool:
        return self.backup_path(slot).is_file()

    def read(self, slot: int) -> bytes:
        """
        Read a slot's save file.

        Raises:
            SlotNotFoundError: If the slot has no save file
        """
        return self._read_file(self.resolve_path(slot), slot)

    def read_backup(self, slot: int) -> bytes:
        """
        Read a slot's backup file.

        Raises:
            SlotNotFoundError: If the slot has no backup
        """
        return self._read_file(self.backup_path(slot), slot)

    def write(
        self,
        slot: int,
        data: bytes,
        *,
        overwrite: bool = False,
        keep_backup: bool = False,
    ) -> Path:
        """
        Write a slot's save file atomically.

        The previous file (if any) is copied to <file>.backup first. The
        backup is removed after a successful write unless keep_backup.

        Args:
            slot: Slot number
            data: File contents
            overwrite: Allow replacing an existing save
            keep_backup: Keep the previous content as <file>.backup

        Returns:
            Path of the written file

        Raises:
            SlotOccupiedError: If the slot has a save and overwrite is False
            SlotWriteError: If the file cannot be written
        """
        with self.lock:
            path = self.resolve_path(slot)
            backup = self.backup_path(slot)
            tmp = path.with_name(path.name + TEMP_SUFFIX)

            if path.exists() and not overwrite:
                raise SlotOccupiedError(
                    f"Slot {slot} already has a save; delete it or pass overwrite=True"
                )

            try:
                path.parent.mkdir(parents=True, exist_ok=True)

                if path.exists():
                    shutil.copy2(path, backup)

                with open(tmp, 'wb') as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, path)
            except OSError as e:
                tmp.unlink(missing_ok=True)
                logger.error(f"Failed to write slot {slot} to {path}: {e}")
                raise SlotWriteError(f"Cannot write slot {slot}: {e}") from e

            if not keep_backup:
                backup.unlink(missing_ok=True)

            logger.debug(f"Wrote {len(data)} bytes to slot {slot} ({path})")
            return path

    def delete(self, slot: int) -> bool:
        """
        Delete a slot's save, backup and temp files.

        Returns:
            True if anything was removed
        """
        with self.lock:
            path = self.resolve_path(slot)
            removed = False
            for candidate in (
                path,
                path.with_name(path.name + BACKUP_SUFFIX),
                path.with_name(path.name + TEMP_SUFFIX),
            ):
                if candidate.exists():
                    candidate.unlink()
                    removed = True
            if removed:
                logger.info(f"Deleted save slot {slot}")
            return removed

    def quarantine(self, slot: int) -> Optional[Path]:
        """
        Move a slot's save file aside as <file>.corrupt.

        Returns:
            The new path, or None if the slot had no file
        """
        with self.lock:
            path = self.resolve_path(slot)
            if not path.exists():
                return None
            target = path.with_name(path.name + CORRUPT_SUFFIX)
            os.replace(path, target)
            logger.warning(f"Moved corrupt save for slot {slot} to {target}")
            return target

    def describe(self, slot: int) -> SaveSlotInfo:
        """Existence, size, timestamp and backup presence of a slot."""
        path = self.resolve_path(slot)
        has_backup = self.has_backup(slot)

        try:
            stat = path.stat()
        except FileNotFoundError:
            return SaveSlotInfo(
                slot_number=slot,
                exists=False,
                has_backup=has_backup,
                status="Backup only" if has_backup else "Empty",
            )

        return SaveSlotInfo(
            slot_number=slot,
            exists=True,
            size_bytes=stat.st_size,
            modified=datetime.fromtimestamp(stat.st_mtime),
            has_backup=has_backup,
            status="Saved",
        )

    def _read_file(self, path: Path, slot: int) -> bytes:
        try:
            with open(path, 'rb') as f:
                return f.read()
        except FileNotFoundError as e:
            raise SlotNotFoundError(f"No save in slot {slot} ({path})") from e
