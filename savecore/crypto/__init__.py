"""
Crypto module - field-level save data cipher and key handling.
"""

from savecore.crypto.cipher import (
    Cipher,
    CipherError,
    generate_key,
    load_or_create_key,
    key_from_env,
)

__all__ = [
    "Cipher",
    "CipherError",
    "generate_key",
    "load_or_create_key",
    "key_from_env",
]
