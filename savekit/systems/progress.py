"""
Game progress tracking - named flags, counters and lists.

GameProgress is a bag of named primitives kept per kind (bool, int,
float, string, list). The same key may exist once in each kind.

Saved as GameProgressSaveData: one key/value array pair per kind, each
encoded as array blocks so keys and values can be ciphered. Lists are
stored as "|"-joined strings.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from savecore.codec import ArrayBlock, ArrayBlockCodec, BlockKind
from savekit.systems.base import SaveHandler


logger = logging.getLogger(__name__)

LIST_DELIMITER = "|"

# kind name -> value block kind
_KINDS: dict[str, BlockKind] = {
    'bool': BlockKind.BOOL,
    'int': BlockKind.INT,
    'float': BlockKind.DOUBLE,
    'string': BlockKind.STRING,
    'list': BlockKind.STRING,
}


class GameProgress:
    """
    Tracks story and world progression.

    Usage:
        progress.set_bool("seenIntro", True)
        progress.increment_int("deaths")
        progress.add_to_list("defeatedBosses", "Warden")
    """

    def __init__(self):
        self.bools: dict[str, bool] = {}
        self.ints: dict[str, int] = {}
        self.floats: dict[str, float] = {}
        self.strings: dict[str, str] = {}
        self.lists: dict[str, list[str]] = {}

    # Bools

    def set_bool(self, key: str, value: bool) -> None:
        self.bools[key] = bool(value)

    def get_bool(self, key: str, default: bool = False) -> bool:
        return self.bools.get(key, default)

    def has_bool(self, key: str) -> bool:
        return key in self.bools

    # Ints

    def set_int(self, key: str, value: int) -> None:
        self.ints[key] = int(value)

    def get_int(self, key: str, default: int = 0) -> int:
        return self.ints.get(key, default)

    def increment_int(self, key: str, amount: int = 1) -> int:
        self.ints[key] = self.ints.get(key, 0) + amount
        return self.ints[key]

    def decrement_int(self, key: str, amount: int = 1) -> int:
        return self.increment_int(key, -amount)

    def has_int(self, key: str) -> bool:
        return key in self.ints

    # Floats

    def set_float(self, key: str, value: float) -> None:
        self.floats[key] = float(value)

    def get_float(self, key: str, default: float = 0.0) -> float:
        return self.floats.get(key, default)

    def increment_float(self, key: str, amount: float) -> float:
        self.floats[key] = self.floats.get(key, 0.0) + amount
        return self.floats[key]

    def has_float(self, key: str) -> bool:
        return key in self.floats

    # Strings

    def set_string(self, key: str, value: str) -> None:
        self.strings[key] = value

    def get_string(self, key: str, default: str = "") -> str:
        return self.strings.get(key, default)

    def has_string(self, key: str) -> bool:
        return key in self.strings

    # Lists

    def add_to_list(self, key: str, item: str) -> bool:
        """
        Add an item to a list (no duplicates).

        Items must be non-empty and free of the list delimiter, since an
        empty list is stored as "".

        Returns:
            True if the item was added
        """
        if not item:
            raise ValueError("List items cannot be empty")
        if LIST_DELIMITER in item:
            raise ValueError(f"List items cannot contain '{LIST_DELIMITER}': {item!r}")
        items = self.lists.setdefault(key, [])
        if item in items:
            return False
        items.append(item)
        return True

    def remove_from_list(self, key: str, item: str) -> bool:
        items = self.lists.get(key)
        if items and item in items:
            items.remove(item)
            return True
        return False

    def list_contains(self, key: str, item: str) -> bool:
        return item in self.lists.get(key, [])

    def get_list(self, key: str) -> list[str]:
        """Get a copy of a list."""
        return list(self.lists.get(key, []))

    def get_list_count(self, key: str) -> int:
        return len(self.lists.get(key, []))

    def clear_list(self, key: str) -> None:
        if key in self.lists:
            self.lists[key].clear()

    # Bulk

    def delete(self, kind: str, key: str) -> bool:
        """
        Delete one key of one kind ('bool', 'int', 'float', 'string', 'list').

        Returns:
            True if the key existed
        """
        store = self.values_of(kind)
        if key not in store:
            return False
        del store[key]
        return True

    def reset_all(self) -> None:
        """Clear every value of every kind."""
        for kind in _KINDS:
            self.values_of(kind).clear()

    def total_value_count(self) -> int:
        return sum(len(self.values_of(kind)) for kind in _KINDS)

    def get_all_keys(self, kind: str = "all") -> list[str]:
        """Keys of one kind, or of every kind (deduplicated) with 'all'."""
        if kind != "all":
            return list(self.values_of(kind).keys())
        keys: list[str] = []
        for k in _KINDS:
            for key in self.values_of(k):
                if key not in keys:
                    keys.append(key)
        return keys

    def values_of(self, kind: str) -> dict[str, Any]:
        stores = {
            'bool': self.bools,
            'int': self.ints,
            'float': self.floats,
            'string': self.strings,
            'list': self.lists,
        }
        try:
            return stores[kind]
        except KeyError:
            raise ValueError(f"Unknown value kind: {kind!r}") from None


class GameProgressSaveData(BaseModel):
    """
    Serialized form of GameProgress.

    Every *_keys / *_values pair holds the encoded strings of one array
    block pair; `encrypted` records whether they went through the cipher.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    bool_keys: list[str] = Field(default_factory=list)
    bool_values: list[str] = Field(default_factory=list)
    int_keys: list[str] = Field(default_factory=list)
    int_values: list[str] = Field(default_factory=list)
    float_keys: list[str] = Field(default_factory=list)
    float_values: list[str] = Field(default_factory=list)
    string_keys: list[str] = Field(default_factory=list)
    string_values: list[str] = Field(default_factory=list)
    list_keys: list[str] = Field(default_factory=list)
    list_values: list[str] = Field(default_factory=list)
    encrypted: bool = False

    @classmethod
    def from_progress(
        cls,
        progress: GameProgress,
        codec: ArrayBlockCodec,
        encrypt: bool = False,
    ) -> GameProgressSaveData:
        data: dict[str, Any] = {'encrypted': encrypt}
        for kind, block_kind in _KINDS.items():
            mapping = progress.values_of(kind)
            if kind == 'list':
                mapping = {k: LIST_DELIMITER.join(v) for k, v in mapping.items()}
            keys, values = codec.encode_pairs(block_kind, kind, mapping, encrypt)
            data[f'{kind}_keys'] = keys.values
            data[f'{kind}_values'] = values.values
        return cls(**data)

    def apply_to(
        self,
        progress: GameProgress,
        codec: ArrayBlockCodec,
        encrypt: bool = False,
    ) -> None:
        """
        Replace the progress values with the saved ones.

        Entries whose key cannot be decoded are dropped; values that
        cannot be decoded fall back to the kind's default.
        """
        for kind, block_kind in _KINDS.items():
            keys = ArrayBlock(
                f"{kind}Keys", BlockKind.STRING, getattr(self, f'{kind}_keys'), self.encrypted
            )
            values = ArrayBlock(
                f"{kind}Values", block_kind, getattr(self, f'{kind}_values'), self.encrypted
            )
            mapping = codec.decode_pairs(keys, values, encrypt)

            store = progress.values_of(kind)
            store.clear()
            if kind == 'list':
                store.update({
                    k: [item for item in v.split(LIST_DELIMITER) if item]
                    for k, v in mapping.items()
                })
            else:
                store.update(mapping)


class ProgressSaveHandler(SaveHandler):
    """Saves and restores a GameProgress instance."""

    system_name = "GameProgress"

    def __init__(self, context, progress: Optional[GameProgress] = None, **kwargs):
        self.progress = progress or GameProgress()
        super().__init__(context, **kwargs)

    def capture(self) -> str:
        data = GameProgressSaveData.from_progress(
            self.progress, self.context.codec, self.context.encrypt
        )
        logger.debug(f"Captured {self.progress.total_value_count()} progress values")
        return data.model_dump_json(by_alias=True)

    def restore(self, blob: str) -> None:
        if not blob:
            logger.debug("Empty progress data, starting fresh")
            return
        data = GameProgressSaveData.model_validate_json(blob)
        data.apply_to(self.progress, self.context.codec, self.context.encrypt)
        logger.debug(f"Restored {self.progress.total_value_count()} progress values")
