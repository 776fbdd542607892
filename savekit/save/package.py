"""
Save package - the envelope written to one slot.

A package is flat: two parallel arrays (system names and their blobs) plus
metadata. The checksum is the sum of blob lengths; it is a corruption
smoke test, not an integrity guarantee.

On disk the package is a JSON document with camelCase keys. When written
with encryption every name and every blob is ciphered on its own, so the
array lengths stay visible.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Mapping

import jsonschema
from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field
from pydantic.alias_generators import to_camel

from savecore.codec import ArrayBlock, ArrayBlockCodec, BlockKind
from savecore.crypto.cipher import Cipher
from savekit.save.errors import CorruptPackageError


logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class SavePackage(BaseModel):
    """
    Aggregated save data for one slot.

    system_names and system_data_array are parallel; use from_map() or
    set_system_data() so they are always replaced together.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        extra='ignore',
    )

    save_slot: int = Field(ge=0)
    save_time: str = ""
    scene_name: str = ""
    system_names: list[str | None] = Field(default_factory=list)
    system_data_array: list[str | None] = Field(default_factory=list)
    total_systems: int = 0
    systems_responded: int = 0
    game_version: str = ""
    operation_id: str = ""

    @computed_field
    @property
    def checksum(self) -> int:
        """Sum of the lengths of every blob."""
        return calculate_checksum(self.system_data_array)

    @classmethod
    def from_map(
        cls,
        slot: int,
        scene: str,
        mapping: Mapping[str, str],
        *,
        operation_id: str = "",
        game_version: str = "",
        total_systems: int | None = None,
        systems_responded: int | None = None,
        save_time: datetime | None = None,
    ) -> SavePackage:
        """
        Build a package from a name->blob mapping, keeping its order.

        Args:
            slot: Save slot number
            scene: Active scene name
            mapping: System name -> serialized blob
            operation_id: Operation that produced the data
            game_version: Version stamp
            total_systems: Systems expected to respond (defaults to len(mapping))
            systems_responded: Systems that responded (defaults to len(mapping))
            save_time: Timestamp (defaults to now)
        """
        package = cls(
            save_slot=slot,
            scene_name=scene or "",
            save_time=(save_time or datetime.now()).isoformat(),
            game_version=game_version,
            operation_id=operation_id,
            total_systems=len(mapping) if total_systems is None else total_systems,
            systems_responded=len(mapping) if systems_responded is None else systems_responded,
        )
        package.set_system_data(mapping)
        return package

    def set_system_data(self, mapping: Mapping[str, str]) -> None:
        """Replace both arrays from a mapping."""
        self.system_names = list(mapping.keys())
        self.system_data_array = list(mapping.values())

    def to_map(self) -> dict[str, str]:
        """
        Rebuild the name->blob mapping.

        Pairs up to the shorter array, skips empty names and maps a
        missing blob to "".
        """
        if len(self.system_names) != len(self.system_data_array):
            logger.warning(
                f"Package for slot {self.save_slot} has {len(self.system_names)} names "
                f"but {len(self.system_data_array)} blobs; unmatched entries dropped"
            )

        result: dict[str, str] = {}
        for name, blob in zip(self.system_names, self.system_data_array):
            if not name:
                continue
            result[name] = blob if blob is not None else ""
        return result

    @property
    def saved_at(self) -> datetime | None:
        """save_time parsed back to a datetime (None if unparsable)."""
        try:
            return datetime.fromisoformat(self.save_time)
        except ValueError:
            return None


def calculate_checksum(blobs: list[str | None]) -> int:
    """Sum of blob lengths (None counts as empty)."""
    return sum(len(b) for b in blobs if b is not None)


# On-disk document

_STRING_ARRAY = {"type": "array", "items": {"type": ["string", "null"]}}

PACKAGE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["saveSlot", "systemNames", "systemDataArray"],
    "properties": {
        "formatVersion": {"type": "integer", "minimum": 1},
        "saveSlot": {"type": "integer", "minimum": 0},
        "saveTime": {"type": "string"},
        "sceneName": {"type": "string"},
        "systemNames": _STRING_ARRAY,
        "systemDataArray": _STRING_ARRAY,
        "totalSystems": {"type": "integer", "minimum": 0},
        "systemsResponded": {"type": "integer", "minimum": 0},
        "gameVersion": {"type": "string"},
        "operationId": {"type": "string"},
        "checksum": {"type": "integer"},
        "encrypted": {"type": "boolean"},
    },
}


def encode_package(
    package: SavePackage,
    cipher: Cipher | None = None,
    encrypt: bool = False,
) -> bytes:
    """
    Serialize a package to its JSON document.

    Raises:
        ValueError: If encryption is requested without a cipher
    """
    codec = ArrayBlockCodec(cipher)
    names = codec.encode(
        BlockKind.STRING, "systemNames", [n or "" for n in package.system_names], encrypt
    )
    blobs = codec.encode(
        BlockKind.STRING, "systemDataArray", [b or "" for b in package.system_data_array], encrypt
    )

    document = package.model_dump(by_alias=True)
    document['systemNames'] = names.values
    document['systemDataArray'] = blobs.values
    document['encrypted'] = encrypt
    document['formatVersion'] = FORMAT_VERSION

    return json.dumps(document, indent=2).encode('utf-8')


def decode_package(
    data: bytes,
    cipher: Cipher | None = None,
    strict: bool = False,
) -> SavePackage:
    """
    Parse a package document.

    Whether entries are deciphered follows the document's own
    "encrypted" flag. An entry whose name or blob cannot be deciphered
    is dropped with a warning; the rest of the package still loads.
    A checksum mismatch is only logged unless strict is set.

    Raises:
        CorruptPackageError: If the document is not JSON, does not match
            the package schema, or is encrypted with no cipher available;
            with strict, also when entries were dropped or the checksum differs
    """
    try:
        document = json.loads(data.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CorruptPackageError(f"Save file is not a valid document: {e}") from e

    try:
        jsonschema.validate(instance=document, schema=PACKAGE_SCHEMA)
    except jsonschema.ValidationError as e:
        logger.error(f"Save document failed schema validation: {e.message}")
        raise CorruptPackageError(f"Save document is malformed: {e.message}") from e

    encrypted = document.get('encrypted', False)
    if encrypted and cipher is None:
        raise CorruptPackageError("Save file is encrypted but no encryption key is configured")

    codec = ArrayBlockCodec(cipher)
    names = codec.decode(_stored_block(document, 'systemNames', encrypted), encrypted)
    blobs = codec.decode(_stored_block(document, 'systemDataArray', encrypted), encrypted)

    system_names: list[str | None] = list(names.values)
    dropped = set(names.failed) | set(blobs.failed)
    for index in sorted(dropped):
        if index < len(system_names):
            system_names[index] = ""
    if dropped:
        if strict:
            raise CorruptPackageError(f"{len(dropped)} save entries cannot be deciphered")
        logger.warning(f"Dropped {len(dropped)} undecodable entries from save package")

    document['systemNames'] = system_names
    document['systemDataArray'] = list(blobs.values)

    try:
        package = SavePackage.model_validate(document)
    except ValidationError as e:
        raise CorruptPackageError(f"Save document has invalid fields: {e}") from e

    stored = document.get('checksum')
    if stored is not None and stored != package.checksum:
        message = (
            f"Checksum mismatch for slot {package.save_slot}: "
            f"stored {stored}, computed {package.checksum}"
        )
        if strict:
            raise CorruptPackageError(message)
        logger.warning(message)

    return package


def _stored_block(document: dict[str, Any], key: str, encrypted: bool) -> ArrayBlock:
    values = [v or "" for v in document[key]]
    return ArrayBlock(name=key, kind=BlockKind.STRING, values=values, encrypted=encrypted)
