"""
Save system configuration.

Holds every recognised option of the save system in one validated model.
Instances are created explicitly and passed to the SaveContext; there is
no process-wide config singleton.

Usage:
    config = SaveSystemConfig(file_location=FileLocation.CUSTOM,
                              custom_file_path="/tmp/saves",
                              encrypt_data=True)
    config = SaveSystemConfig.from_file("save_config.json")
    config = SaveSystemConfig.from_env()
"""

from __future__ import annotations

import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, model_validator

from savecore.crypto.cipher import key_from_env, load_or_create_key


logger = logging.getLogger(__name__)

ENV_PREFIX = "SLOTKEEPER_"


class ConfigError(Exception):
    """Raised for invalid or unreadable configuration."""


class FileLocation(Enum):
    """Well-known roots a save directory can live under."""
    PERSISTENT_DATA = "persistent_data"
    APPLICATION_DATA = "application_data"
    TEMPORARY_CACHE = "temporary_cache"
    STREAMING_ASSETS = "streaming_assets"
    CUSTOM = "custom"


class SaveSystemConfig(BaseModel):
    """
    Save system settings.

    Path options:
        file_location: Root the save directory lives under
        custom_file_path: Root used when file_location is CUSTOM
        application_path: Application directory (APPLICATION_DATA and
            STREAMING_ASSETS roots)
        sub_folder / sub_folder_name: Optional folder below the root
        file_extension: Extension of slot files, without the dot

    Encryption options:
        encrypt_data: Cipher field names and values when writing
        encryption_key: Explicit key (wins over env and key file)
        key_file: File the key is read from, created on first use

    Behaviour options:
        save_timeout: Seconds to wait for subsystem responses
        max_slots: Number of regular slots (listed as 1..max_slots)
        quick_save_slot: Slot used by quick_save()/quick_load()
        max_save_file_size_mb: Size above which a warning is logged
        dont_destroy_on_load: Keep the manager alive across scene resets
        debug_mode: Verbose logging
    """

    model_config = ConfigDict(
        validate_assignment=True,
        extra='forbid',
    )

    dont_destroy_on_load: bool = True

    # File location
    file_location: FileLocation = FileLocation.PERSISTENT_DATA
    custom_file_path: str = ""
    application_path: str = Field(default_factory=os.getcwd)
    sub_folder: bool = False
    sub_folder_name: str = "Saves"
    file_extension: str = "sav"

    # Encryption
    encrypt_data: bool = False
    encryption_key: SecretStr | None = None
    key_file: str | None = None

    # Identity
    app_name: str = "slotkeeper"
    game_version: str = "1.0.0"

    # Save behaviour
    save_timeout: float = Field(default=5.0, gt=0)
    max_slots: int = Field(default=4, ge=1)
    quick_save_slot: int = Field(default=1, ge=0)
    max_save_file_size_mb: float = Field(default=10.0, gt=0)
    debug_mode: bool = False

    @model_validator(mode='after')
    def _check_paths(self) -> SaveSystemConfig:
        if self.file_location is FileLocation.CUSTOM and not self.custom_file_path.strip():
            raise ValueError("custom_file_path is required when file_location is CUSTOM")
        if self.sub_folder and not self.sub_folder_name.strip():
            raise ValueError("sub_folder_name cannot be blank when sub_folder is enabled")
        if not self.file_extension.strip() or '/' in self.file_extension:
            raise ValueError(f"Invalid file extension: {self.file_extension!r}")
        return self

    @classmethod
    def from_file(cls, path: Path | str) -> SaveSystemConfig:
        """
        Load configuration from a JSON file.

        Raises:
            ConfigError: If the file is missing, not JSON or not valid config
        """
        config_path = Path(path)
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read config {config_path}: {e}") from e

        return cls._build(data, source=str(config_path))

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> SaveSystemConfig:
        """
        Build configuration from SLOTKEEPER_* environment variables.

        Variable names are the upper-cased field names, e.g.
        SLOTKEEPER_ENCRYPT_DATA=true or SLOTKEEPER_FILE_LOCATION=custom.
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        for name in cls.model_fields:
            value = env.get(ENV_PREFIX + name.upper())
            if value is not None:
                data[name] = value
        return cls._build(data, source="environment")

    @classmethod
    def _build(cls, data: Any, source: str) -> SaveSystemConfig:
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            logger.error(f"Invalid save config from {source}: {e}")
            raise ConfigError(f"Invalid save config from {source}") from e

    def resolve_key(self) -> str | None:
        """
        Resolve the process-wide encryption key.

        Order: explicit encryption_key, SLOTKEEPER_ENCRYPTION_KEY, key_file.
        Returns None when no source provides a key.
        """
        if self.encryption_key is not None and self.encryption_key.get_secret_value():
            return self.encryption_key.get_secret_value()

        env_key = key_from_env()
        if env_key:
            return env_key

        if self.key_file:
            try:
                return load_or_create_key(self.key_file)
            except (OSError, ValueError) as e:
                raise ConfigError(f"Cannot load key file {self.key_file}: {e}") from e

        return None

    @property
    def log_level(self) -> int:
        """Logging level implied by debug_mode."""
        return logging.DEBUG if self.debug_mode else logging.INFO
