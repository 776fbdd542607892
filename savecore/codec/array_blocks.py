"""
Array blocks - per-type encoding of primitive arrays.

An array block is a name plus one string per source value. Each value is
formatted by its kind (see values.py) and, when encryption is on, passed
through the Cipher as a whole. The name is ciphered the same way.

Decoding never raises. A value that cannot be deciphered, split or parsed
comes back as the kind's zero default and its index is recorded in
DecodedBlock.failed so the caller can tell a real zero from a broken field.

Usage:
    codec = ArrayBlockCodec(cipher)
    block = codec.encode(BlockKind.VECTOR2, "spawn", [Vector2(1, 2)], encrypt=True)
    decoded = codec.decode(block, encrypt=True)
    assert decoded.values == [Vector2(1, 2)]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from savecore.codec.values import BlockKind, get_format
from savecore.crypto.cipher import Cipher, CipherError


logger = logging.getLogger(__name__)


@dataclass
class ArrayBlock:
    """
    One encoded array.

    Attributes:
        name: Block name (ciphered when encrypted)
        kind: Value kind of every entry
        values: Encoded values, one string per source value
        encrypted: Whether name and values went through the cipher
    """
    name: str
    kind: BlockKind
    values: list[str] = field(default_factory=list)
    encrypted: bool = False

    def __len__(self) -> int:
        return len(self.values)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            'name': self.name,
            'kind': self.kind.value,
            'values': list(self.values),
            'encrypted': self.encrypted,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ArrayBlock:
        """
        Deserialize from a dict produced by to_dict().

        Raises:
            ValueError: If the kind is unknown or values is not a list of strings
        """
        values = data.get('values', [])
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            raise ValueError("Array block values must be a list of strings")
        return cls(
            name=str(data.get('name', '')),
            kind=BlockKind(data['kind']),
            values=values,
            encrypted=bool(data.get('encrypted', False)),
        )


@dataclass
class DecodedBlock:
    """
    Result of decoding an array block.

    Attributes:
        name: Plain block name ("" when it could not be recovered)
        values: Decoded values (defaults at failed indices)
        failed: Indices of values that fell back to the default
        name_failed: Whether the name could not be recovered
    """
    name: str
    values: list[Any] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    name_failed: bool = False

    @property
    def ok(self) -> bool:
        """True when every value and the name decoded cleanly."""
        return not self.failed and not self.name_failed


class ArrayBlockCodec:
    """
    Encodes and decodes typed arrays.

    The cipher is optional; without one only plain blocks can be produced
    and encrypted blocks always decode to defaults.
    """

    def __init__(self, cipher: Cipher | None = None):
        self.cipher = cipher

    def encode(
        self,
        kind: BlockKind,
        name: str,
        values: Iterable[Any],
        encrypt: bool = False,
    ) -> ArrayBlock:
        """
        Encode an array of values.

        Args:
            kind: Kind of every value
            name: Block name
            values: Values to encode
            encrypt: Pass name and values through the cipher

        Returns:
            The encoded block

        Raises:
            ValueError: If encryption is requested without a cipher
        """
        if encrypt and self.cipher is None:
            raise ValueError("Encryption requested but no cipher is configured")

        fmt = get_format(kind)
        encoded = [fmt.format(v) for v in values]

        if encrypt:
            return ArrayBlock(
                name=self.cipher.encrypt(name),
                kind=kind,
                values=self.cipher.encrypt_all(encoded),
                encrypted=True,
            )
        return ArrayBlock(name=name, kind=kind, values=encoded, encrypted=False)

    def decode(self, block: ArrayBlock, encrypt: bool = False) -> DecodedBlock:
        """
        Decode a block back to values.

        A block whose encrypted flag disagrees with `encrypt` is not
        trusted: every value comes back as the default.

        Args:
            block: Block to decode
            encrypt: Whether the caller expects ciphered content

        Returns:
            DecodedBlock with values, failure indices and the plain name
        """
        fmt = get_format(block.kind)
        count = len(block.values)

        if block.encrypted != encrypt or (encrypt and self.cipher is None):
            logger.warning(
                f"Array block encryption mismatch (stored={block.encrypted}, "
                f"expected={encrypt}); using defaults for {count} values"
            )
            return DecodedBlock(
                name="",
                values=[fmt.default] * count,
                failed=list(range(count)),
                name_failed=True,
            )

        name, name_failed = block.name, False
        if encrypt:
            try:
                name = self.cipher.decrypt(block.name)
            except CipherError:
                name, name_failed = "", True

        result = DecodedBlock(name=name, name_failed=name_failed)
        for index, raw in enumerate(block.values):
            try:
                text = self.cipher.decrypt(raw) if encrypt else raw
                result.values.append(fmt.parse(text))
            except (CipherError, ValueError, TypeError, OverflowError):
                result.values.append(fmt.default)
                result.failed.append(index)

        if result.failed:
            logger.warning(
                f"Array block '{name}': {len(result.failed)} of {count} "
                f"{block.kind.value} values fell back to default"
            )
        return result

    def encode_pairs(
        self,
        kind: BlockKind,
        name: str,
        mapping: dict[str, Any],
        encrypt: bool = False,
    ) -> tuple[ArrayBlock, ArrayBlock]:
        """
        Encode a name->value mapping as a parallel key block and value block.

        Keys are always STRING; the value block uses `kind`. Both blocks
        keep the mapping's iteration order.
        """
        keys = self.encode(BlockKind.STRING, f"{name}Keys", mapping.keys(), encrypt)
        values = self.encode(kind, f"{name}Values", mapping.values(), encrypt)
        return keys, values

    def decode_pairs(
        self,
        keys: ArrayBlock,
        values: ArrayBlock,
        encrypt: bool = False,
    ) -> dict[str, Any]:
        """
        Rebuild a mapping from a key block and a value block.

        Pairs up to the shorter block and skips empty or undecodable keys.
        """
        decoded_keys = self.decode(keys, encrypt)
        decoded_values = self.decode(values, encrypt)

        if len(decoded_keys.values) != len(decoded_values.values):
            logger.warning(
                f"Array block length mismatch: {len(decoded_keys.values)} keys, "
                f"{len(decoded_values.values)} values"
            )

        failed_keys = set(decoded_keys.failed)
        result: dict[str, Any] = {}
        for index, (key, value) in enumerate(zip(decoded_keys.values, decoded_values.values)):
            if not key or index in failed_keys:
                continue
            result[key] = value
        return result
