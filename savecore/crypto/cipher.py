"""
Field-level cipher for save data.

A reversible, symmetric string transform: the UTF-8 bytes of the input are
XOR'ed with the cycled key bytes and carried as Base64 text. It hides save
contents from casual inspection; it is not a cryptographic guarantee.

The key is process-wide configuration. Rotating it makes every save written
with the previous key unreadable.

Usage:
    cipher = Cipher(load_or_create_key(Path("save.key")))
    token = cipher.encrypt("seenIntro=true")
    assert cipher.decrypt(token) == "seenIntro=true"
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import secrets
import string
from pathlib import Path


logger = logging.getLogger(__name__)

KEY_LENGTH = 32
KEY_ENV_VAR = "SLOTKEEPER_ENCRYPTION_KEY"

_KEY_FIRST_CHARS = string.ascii_lowercase
_KEY_CHARS = string.ascii_lowercase + string.digits


class CipherError(Exception):
    """Raised when a ciphertext cannot be turned back into text."""


class Cipher:
    """
    Symmetric key-based string cipher.

    encrypt() and decrypt() are exact inverses for every string:
    decrypt(encrypt(s)) == s.
    """

    def __init__(self, key: str):
        if not key:
            raise ValueError("Encryption key cannot be empty")
        self._key = key.encode('utf-8')

    def encrypt(self, plain: str) -> str:
        """Encipher a string. The result is ASCII (Base64)."""
        data = self._xor(plain.encode('utf-8'))
        return base64.b64encode(data).decode('ascii')

    def decrypt(self, cipher_text: str) -> str:
        """
        Decipher a string produced by encrypt().

        Raises:
            CipherError: If the text is not Base64 or does not decode to UTF-8
        """
        try:
            data = base64.b64decode(cipher_text.encode('ascii'), validate=True)
        except (binascii.Error, UnicodeEncodeError, ValueError) as e:
            raise CipherError(f"Not a ciphertext: {e}") from e

        try:
            return self._xor(data).decode('utf-8')
        except UnicodeDecodeError as e:
            raise CipherError(f"Wrong key or corrupted ciphertext: {e}") from e

    def encrypt_all(self, values: list[str]) -> list[str]:
        """Encipher every value of a list."""
        return [self.encrypt(v) for v in values]

    def decrypt_all(self, values: list[str]) -> list[str]:
        """Decipher every value of a list (raises on the first failure)."""
        return [self.decrypt(v) for v in values]

    def _xor(self, data: bytes) -> bytes:
        key = self._key
        key_len = len(key)
        return bytes(b ^ key[i % key_len] for i, b in enumerate(data))


def generate_key(length: int = KEY_LENGTH) -> str:
    """Generate a random key: one lowercase letter, then lowercase letters and digits."""
    if length < 1:
        raise ValueError("Key length must be positive")
    first = secrets.choice(_KEY_FIRST_CHARS)
    rest = ''.join(secrets.choice(_KEY_CHARS) for _ in range(length - 1))
    return first + rest


def load_or_create_key(path: Path | str) -> str:
    """
    Read the key stored in a key file, creating the file with a fresh key
    when it does not exist yet.
    """
    key_path = Path(path)
    if key_path.exists():
        key = key_path.read_text(encoding='utf-8').strip()
        if not key:
            raise ValueError(f"Key file is empty: {key_path}")
        return key

    key_path.parent.mkdir(parents=True, exist_ok=True)
    key = generate_key()
    key_path.write_text(key, encoding='utf-8')
    try:
        os.chmod(key_path, 0o600)
    except OSError:
        logger.debug(f"Could not restrict permissions on {key_path}", exc_info=True)
    logger.info(f"Generated new encryption key file: {key_path}")
    return key


def key_from_env() -> str | None:
    """Key provided through the environment, if any."""
    value = os.environ.get(KEY_ENV_VAR, "").strip()
    return value or None
